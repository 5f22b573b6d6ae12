"""Cross-process merge lock with stale-lock recovery.

The lock is a file created with O_EXCL that records who holds it:

    {"pid": 4242, "token": "9f1c...", "acquired_at": 1760781234.5}

Age comes from the file's mtime. Removing the lock file (on release, or when
breaking a stale lock) always happens under a short flock on a sibling guard
file and re-checks the lock inside the guard, so two processes that see the
same stale lock cannot both break it, and nobody can delete a fresh lock that
replaced a stale one between check and removal.
"""

from __future__ import annotations

import asyncio
import fcntl
import json
import logging
import os
import time
import uuid
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path

from workmem.errors import LockTimeout
from workmem.memory.throttle import file_age

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = 300.0  # seconds
DEFAULT_RETRY_INTERVAL = 1.0  # seconds


class LockManager:
    """Exclusive, cross-process ownership of one in-progress merge."""

    def __init__(
        self,
        path: Path,
        *,
        stale_after: float = DEFAULT_STALE_AFTER,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
    ) -> None:
        self.path = path
        self.guard_path = path.with_name(path.name + ".guard")
        self.stale_after = stale_after
        self.retry_interval = retry_interval
        self._token: str | None = None

    @property
    def held(self) -> bool:
        return self._token is not None

    # ── Acquire / release ─────────────────────────────────────

    def try_acquire(self) -> bool:
        """Single non-blocking attempt."""
        if self.held:
            return True
        token = uuid.uuid4().hex
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump({"pid": os.getpid(), "token": token, "acquired_at": time.time()}, f)
        self._token = token
        logger.debug("Acquired lock %s (token=%s)", self.path, token[:8])
        return True

    async def acquire(self, timeout: float) -> bool:
        """Retry until acquired or `timeout` seconds pass. Never raises on timeout."""
        deadline = time.monotonic() + timeout
        while True:
            if self.try_acquire():
                return True
            if self.break_if_stale() and self.try_acquire():
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.info("Lock %s busy after %gs, giving up", self.path, timeout)
                return False
            await asyncio.sleep(min(self.retry_interval, remaining))

    def release(self) -> bool:
        """Remove the lock if, and only if, this manager still owns it. Idempotent."""
        if not self.held:
            return False
        token, self._token = self._token, None
        with self._guard():
            holder = self.read_holder()
            if not holder or holder.get("token") != token:
                logger.warning("Lock %s no longer ours, leaving it in place", self.path)
                return False
            self.path.unlink(missing_ok=True)
        logger.debug("Released lock %s", self.path)
        return True

    @asynccontextmanager
    async def hold(self, timeout: float) -> AsyncIterator[LockManager]:
        """`async with lock.hold(90):` raises LockTimeout if not acquired."""
        if not await self.acquire(timeout):
            raise LockTimeout(str(self.path), timeout)
        try:
            yield self
        finally:
            self.release()

    # ── Staleness ─────────────────────────────────────────────

    def is_stale(self, now: float | None = None) -> bool:
        age = file_age(self.path, now)
        return age is not None and age > self.stale_after

    def break_if_stale(self) -> bool:
        """Remove the lock if it is older than the stale threshold.

        Returns True if a stale lock was removed by this call.
        """
        if not self.is_stale():
            return False
        with self._guard():
            # Re-check inside the guard: a sibling may have broken it already.
            if not self.is_stale():
                return False
            age = file_age(self.path) or 0.0
            holder = self.read_holder() or {}
            self.path.unlink(missing_ok=True)
        logger.info(
            "Removed stale lock %s (age %.0fs, holder pid=%s)",
            self.path,
            age,
            holder.get("pid", "?"),
        )
        return True

    def read_holder(self) -> dict | None:
        """Parsed lock content, or None if absent or unreadable."""
        try:
            holder = json.loads(self.path.read_text(encoding="utf-8"))
        except (FileNotFoundError, json.JSONDecodeError, UnicodeDecodeError):
            return None
        return holder if isinstance(holder, dict) else None

    @contextmanager
    def _guard(self) -> Iterator[None]:
        self.guard_path.parent.mkdir(parents=True, exist_ok=True)
        with self.guard_path.open("a") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
