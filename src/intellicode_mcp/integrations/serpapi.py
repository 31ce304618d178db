"""
SerpAPI adapter (web_search_enhanced).

Results are cached on disk, one JSON file per query named by the
base64url-encoded query text. Entries older than the configured
cache_duration ("30s", "5m", "1h", "1d") are deleted on lookup.
"""

import asyncio
import base64
import json
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ..config import SerpApiConfig
from ..errors import ExternalToolError
from ..mcp_logger import log_error, log_info, log_warn
from ..models import WebSearchRequest
from ..time_utils import epoch_ms
from ..tool_registry import ToolContext

TOOL_NAME = "web_search_enhanced"
SERPAPI_ENDPOINT = "https://serpapi.com/search"

_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(duration: str) -> float:
    """'1h' -> 3600.0. Unknown units or malformed values give 0 (no caching)."""
    duration = (duration or "").strip()
    if len(duration) < 2 or duration[-1] not in _UNIT_SECONDS:
        return 0.0
    try:
        value = int(duration[:-1])
    except ValueError:
        return 0.0
    return float(value * _UNIT_SECONDS[duration[-1]])


# === Cache ===

class SearchCache:
    def __init__(self, cache_dir: str):
        self.cache_dir = Path(cache_dir)

    def path_for(self, query: str) -> Path:
        name = base64.urlsafe_b64encode(query.encode("utf-8")).decode("ascii").rstrip("=")
        return self.cache_dir / f"{name}.json"

    def get(self, query: str) -> Optional[Any]:
        path = self.path_for(query)
        try:
            entry = json.loads(path.read_text(encoding="utf-8"))
            age_ms = epoch_ms() - int(entry["timestamp"])
            ttl_ms = parse_duration(entry.get("cache_duration", "")) * 1000
        except (OSError, ValueError, KeyError, TypeError):
            return None

        if age_ms < ttl_ms:
            log_info(f"Cache hit for query: {query}")
            return entry.get("results")

        log_info(f"Cache expired for query: {query}")
        try:
            path.unlink()
        except OSError as e:
            log_warn(f"Could not remove expired cache entry {path}: {e}")
        return None

    def put(self, query: str, results: Any, cache_duration: str) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        entry = {
            "query": query,
            "timestamp": epoch_ms(),
            "cache_duration": cache_duration,
            "results": results,
        }
        self.path_for(query).write_text(json.dumps(entry, indent=2), encoding="utf-8")
        log_info(f"Results cached for query: {query}")


# === Result formatting ===

def _organic(data: Dict[str, Any]):
    return data.get("organic_results") or []


def format_results(data: Dict[str, Any], search_type: str) -> Dict[str, Any]:
    if search_type == "code":
        results = [
            {"title": r.get("title"), "link": r.get("link"), "snippet": r.get("snippet"), "source": r.get("source")}
            for r in _organic(data)
        ]
    elif search_type == "documentation":
        results = [
            {"title": r.get("title"), "link": r.get("link"), "description": r.get("snippet")}
            for r in _organic(data)
        ]
    elif search_type == "error_solution":
        results = [
            {"title": r.get("title"), "solution": r.get("snippet"), "reference": r.get("link")}
            for r in _organic(data)
        ]
    else:
        search_type = "general"
        results = [
            {"title": r.get("title"), "link": r.get("link"), "snippet": r.get("snippet")}
            for r in _organic(data)
        ]
    return {"type": search_type, "results": results}


# === HTTP ===

def http_get_json(url: str, timeout: int = 30) -> Dict[str, Any]:
    req = urllib.request.Request(url, headers={"User-Agent": "IntelliCode/2.1"})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as response:
            return json.loads(response.read())
    except urllib.error.HTTPError as e:
        raise ExternalToolError(f"Search failed: HTTP {e.code} {e.reason}", tool=TOOL_NAME) from e
    except urllib.error.URLError as e:
        raise ExternalToolError(f"Search failed: {e.reason}", tool=TOOL_NAME) from e
    except json.JSONDecodeError as e:
        raise ExternalToolError(f"Search returned invalid JSON: {e}", tool=TOOL_NAME) from e


class WebSearch:
    def __init__(
        self,
        config: SerpApiConfig,
        fetch: Callable[[str], Dict[str, Any]] = http_get_json,
        cache: Optional[SearchCache] = None,
    ):
        self.config = config
        self.fetch = fetch
        self.cache = cache or SearchCache(config.cache_dir)

    def build_url(self, request: WebSearchRequest) -> str:
        if not self.config.api_key:
            raise ExternalToolError("SERP_API_KEY not configured", tool=TOOL_NAME)
        params = urllib.parse.urlencode({
            "q": request.query,
            "api_key": self.config.api_key,
            "num": str(request.max_results),
        })
        return f"{SERPAPI_ENDPOINT}?{params}"

    async def search(self, request: WebSearchRequest, ctx: ToolContext) -> Dict[str, Any]:
        log_info(f"Performing web search: {request.query}")

        cached = await asyncio.to_thread(self.cache.get, request.query)
        if cached is not None:
            log_info("Returning cached result")
            return cached

        url = self.build_url(request)
        try:
            data = await asyncio.to_thread(self.fetch, url)
        except ExternalToolError as e:
            log_error("Web search failed", e.message)
            raise

        results = format_results(data, request.search_type)
        await asyncio.to_thread(self.cache.put, request.query, results, self.config.cache_duration)
        return results
