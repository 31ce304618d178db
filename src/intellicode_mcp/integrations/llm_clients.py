"""
LLM provider clients used for optional summary enhancement.

Providers: openai, deepseek (OpenAI-compatible chat API), anthropic,
google. A provider without an API key is unavailable and
initialize_client() returns None for it.
"""

import asyncio
import json
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from ..config import LLMConfig
from ..errors import ExternalToolError
from ..mcp_logger import log_info, log_warn

DEFAULTS: Dict[str, Tuple[str, str]] = {
    # provider: (base_url, model)
    "openai": ("https://api.openai.com/v1", "gpt-4o-mini"),
    "deepseek": ("https://api.deepseek.com", "deepseek-chat"),
    "anthropic": ("https://api.anthropic.com/v1", "claude-3-5-haiku-latest"),
    "google": ("https://generativelanguage.googleapis.com/v1beta", "gemini-1.5-flash"),
}

ANTHROPIC_VERSION = "2023-06-01"
MAX_TOKENS = 2048


@dataclass
class LLMClient:
    provider: str
    api_key: str
    base_url: str
    model: str
    timeout: int = 60

    def build_request(self, prompt: str) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        """(url, headers, body) for a single-turn completion."""
        headers = {"Content-Type": "application/json"}
        if self.provider in ("openai", "deepseek"):
            headers["Authorization"] = f"Bearer {self.api_key}"
            body = {"model": self.model, "messages": [{"role": "user", "content": prompt}]}
            return f"{self.base_url}/chat/completions", headers, body
        if self.provider == "anthropic":
            headers["x-api-key"] = self.api_key
            headers["anthropic-version"] = ANTHROPIC_VERSION
            body = {
                "model": self.model,
                "max_tokens": MAX_TOKENS,
                "messages": [{"role": "user", "content": prompt}],
            }
            return f"{self.base_url}/messages", headers, body
        if self.provider == "google":
            headers["x-goog-api-key"] = self.api_key
            body = {"contents": [{"parts": [{"text": prompt}]}]}
            return f"{self.base_url}/models/{self.model}:generateContent", headers, body
        raise ExternalToolError(f"Unsupported LLM provider: {self.provider}", tool="llm")

    def extract_text(self, payload: Dict[str, Any]) -> str:
        try:
            if self.provider in ("openai", "deepseek"):
                return payload["choices"][0]["message"]["content"]
            if self.provider == "anthropic":
                return "".join(block.get("text", "") for block in payload["content"])
            if self.provider == "google":
                parts = payload["candidates"][0]["content"]["parts"]
                return "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError) as e:
            raise ExternalToolError(f"Unexpected {self.provider} response shape: {e}", tool="llm") from e
        raise ExternalToolError(f"Unsupported LLM provider: {self.provider}", tool="llm")

    def complete(self, prompt: str) -> str:
        """Blocking completion call. Run it in a worker thread."""
        url, headers, body = self.build_request(prompt)
        req = urllib.request.Request(url, data=json.dumps(body).encode("utf-8"), headers=headers, method="POST")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                payload = json.loads(response.read())
        except urllib.error.HTTPError as e:
            raise ExternalToolError(f"{self.provider} request failed: HTTP {e.code}", tool="llm") from e
        except urllib.error.URLError as e:
            raise ExternalToolError(f"{self.provider} request failed: {e.reason}", tool="llm") from e
        return self.extract_text(payload)

    async def acomplete(self, prompt: str) -> str:
        return await asyncio.to_thread(self.complete, prompt)


def initialize_client(config: LLMConfig, provider: str) -> Optional[LLMClient]:
    settings = config.providers.get(provider)
    if provider not in DEFAULTS:
        log_warn(f"Unknown LLM provider: {provider}")
        return None
    if settings is None or not settings.api_key:
        log_warn(f"{provider} API key not found in config. {provider} client not initialized.")
        return None

    base_url, model = DEFAULTS[provider]
    log_info(f"Initializing {provider} client...")
    return LLMClient(
        provider=provider,
        api_key=settings.api_key,
        base_url=(settings.base_url or base_url).rstrip("/"),
        model=settings.model or model,
    )


def preferred_client(config: LLMConfig) -> Optional[LLMClient]:
    """Client for llm_apis.preferred_llm, or None when unset or unavailable."""
    if not config.preferred_llm:
        return None
    return initialize_client(config, config.preferred_llm)
