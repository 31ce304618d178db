"""Timestamp helpers shared by the memory bank, workflows and summarizer."""

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def fs_safe_timestamp() -> str:
    """ISO timestamp with ':' and '.' replaced so it is safe in file names."""
    return utc_now_iso().replace(":", "-").replace(".", "-")


def today_str() -> str:
    return utc_now().strftime("%Y-%m-%d")


def epoch_ms() -> int:
    return int(time.time() * 1000)


def human_timestamp() -> str:
    """Local, human-readable timestamp used in 'Last updated' footers."""
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")
