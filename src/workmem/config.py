"""Configuration loading from environment variables and workmem.toml."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

logger = logging.getLogger(__name__)

_CONFIG_FILENAME = "workmem.toml"
_DEFAULT_DOCS_DIR = ".docs"


@dataclass
class ThrottleConfig:
    """Freshness thresholds. Deliberately two separate knobs."""

    idle_seconds: int = 120
    stale_banner_seconds: int = 3600


@dataclass
class LockConfig:
    """Merge lock timing."""

    timeout: float = 90.0
    retry_interval: float = 1.0
    stale_after: float = 300.0


@dataclass
class MergeConfig:
    """Background merge configuration."""

    mode: str = "background"  # background | block
    claude_bin: str = "claude"
    model: str | None = "haiku"
    deadline: float = 240.0
    flush_delay: float = 3.0


@dataclass
class WorkmemConfig:
    """Top-level workmem configuration."""

    throttle: ThrottleConfig = field(default_factory=ThrottleConfig)
    lock: LockConfig = field(default_factory=LockConfig)
    merge: MergeConfig = field(default_factory=MergeConfig)
    docs_dir: str = _DEFAULT_DOCS_DIR
    log_level: str = "WARNING"
    log_max_lines: int = 100
    log_keep_lines: int = 50


def _read_toml(path: Path) -> dict:
    return tomllib.loads(path.read_text(encoding="utf-8"))


def _find_config_file(cwd: str | None) -> tuple[Path | None, str]:
    """The config file to use, and the docs dir its project file lives in.

    The home file may move the docs dir, so it is read first to know where
    to look for the project file.
    """
    home = Path.home() / ".workmem" / _CONFIG_FILENAME
    docs_dir = _DEFAULT_DOCS_DIR
    if home.exists():
        docs_dir = _read_toml(home).get("docs_dir", docs_dir)
    if cwd:
        project = Path(cwd) / docs_dir / _CONFIG_FILENAME
        if project.exists():
            return project, docs_dir
    return (home if home.exists() else None), docs_dir


def load_config(config_path: Path | None = None, cwd: str | None = None) -> WorkmemConfig:
    """Load configuration from environment variables and optional workmem.toml.

    Priority: environment variables > workmem.toml > defaults.
    The project-local ``<cwd>/<docs_dir>/workmem.toml`` wins over
    ``~/.workmem/workmem.toml``; ``docs_dir`` defaults to ``.docs`` and may be
    moved by the home file.
    """
    file_data: dict = {}
    docs_dir = _DEFAULT_DOCS_DIR
    if config_path and config_path.exists():
        path: Path | None = config_path
    else:
        path, docs_dir = _find_config_file(cwd)
    if path:
        file_data = _read_toml(path)

    throttle_data = file_data.get("throttle", {})
    lock_data = file_data.get("lock", {})
    merge_data = file_data.get("merge", {})

    config = WorkmemConfig(
        throttle=ThrottleConfig(
            idle_seconds=int(
                os.getenv("WORKMEM_IDLE_SECONDS", throttle_data.get("idle_seconds", 120))
            ),
            stale_banner_seconds=int(
                os.getenv(
                    "WORKMEM_STALE_BANNER_SECONDS",
                    throttle_data.get("stale_banner_seconds", 3600),
                )
            ),
        ),
        lock=LockConfig(
            timeout=float(os.getenv("WORKMEM_LOCK_TIMEOUT", lock_data.get("timeout", 90.0))),
            retry_interval=float(lock_data.get("retry_interval", 1.0)),
            stale_after=float(
                os.getenv("WORKMEM_LOCK_STALE_AFTER", lock_data.get("stale_after", 300.0))
            ),
        ),
        merge=MergeConfig(
            mode=os.getenv("WORKMEM_MERGE_MODE", merge_data.get("mode", "background")),
            claude_bin=os.getenv("WORKMEM_CLAUDE_BIN", merge_data.get("claude_bin", "claude")),
            model=os.getenv("WORKMEM_MODEL", merge_data.get("model", "haiku")),
            deadline=float(
                os.getenv("WORKMEM_MERGE_DEADLINE", merge_data.get("deadline", 240.0))
            ),
            flush_delay=float(merge_data.get("flush_delay", 3.0)),
        ),
        docs_dir=file_data.get("docs_dir", docs_dir),
        log_level=os.getenv("WORKMEM_LOG_LEVEL", file_data.get("log_level", "WARNING")),
        log_max_lines=int(file_data.get("log_max_lines", 100)),
        log_keep_lines=int(file_data.get("log_keep_lines", 50)),
    )

    if config.merge.mode not in ("background", "block"):
        logger.warning("Unknown merge mode %r, using 'background'", config.merge.mode)
        config.merge.mode = "background"
    if config.lock.stale_after <= config.merge.deadline:
        # A live holder must never look stale to a sibling.
        logger.warning(
            "lock.stale_after (%ss) should exceed merge.deadline (%ss)",
            config.lock.stale_after,
            config.merge.deadline,
        )
    return config
