"""Freshness checks based on the document's modification time.

Used at two scales that must stay separate:
- idle throttle (minutes): skip a merge a sibling session just did;
- staleness banner (hours): tell the user the restored memory may be old.
"""

from __future__ import annotations

import time
from pathlib import Path


def file_age(path: Path, now: float | None = None) -> float | None:
    """Seconds since `path` was last modified, or None if it does not exist."""
    try:
        mtime = path.stat().st_mtime
    except FileNotFoundError:
        return None
    return (time.time() if now is None else now) - mtime


def is_throttled(path: Path, threshold_seconds: float, now: float | None = None) -> bool:
    """True if `path` exists and was modified less than `threshold_seconds` ago."""
    age = file_age(path, now)
    return age is not None and age < threshold_seconds


def staleness_banner(path: Path, threshold_seconds: float, now: float | None = None) -> str:
    """Warning line for a document older than `threshold_seconds`, else ''."""
    age = file_age(path, now)
    if age is None or age <= threshold_seconds:
        return ""
    hours = int(age // 3600)
    label = f"{hours}h" if hours else f"{int(age // 60)}m"
    return f"⚠ This working memory is {label} old. Verify before relying on it."
