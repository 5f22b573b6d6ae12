"""Background merge: detached spawn plus the unit of work it runs.

The Stop hook must return control to the user immediately, so it only
spawns `python -m workmem worker ...` in a new session and exits. The worker
then waits for the parent transcript to flush, takes the merge lock, re-reads
the document, runs the merge under a deadline, writes the result atomically
and records the outcome in the update log.
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path

from workmem.config import WorkmemConfig
from workmem.errors import LockTimeout, MergeFailure, MissingTooling
from workmem.hooks import INVOCATION_ENV, InvocationSource
from workmem.memory.lock import LockManager
from workmem.memory.prompts import build_merge_instruction
from workmem.memory.store import ProjectPaths, WorkingMemoryStore
from workmem.providers.base import MergeOutcome, MergeProvider
from workmem.providers.claude_cli import ClaudeCLIProvider

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    MergeOutcome.SUCCESS: logging.INFO,
    MergeOutcome.SKIPPED: logging.INFO,
    MergeOutcome.TIMEOUT: logging.WARNING,
    MergeOutcome.FAILURE: logging.ERROR,
}


# ── Update log ────────────────────────────────────────────────


class _UTCFormatter(logging.Formatter):
    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        return datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def attach_update_log(log_path: Path, level: int = logging.INFO) -> logging.Handler:
    """Send workmem log records to the project's durable update log."""
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(_UTCFormatter("[%(asctime)s] %(levelname)s %(message)s"))
    root = logging.getLogger("workmem")
    root.addHandler(handler)
    if root.getEffectiveLevel() > level:
        root.setLevel(level)
    return handler


def rotate_log(log_path: Path, max_lines: int = 100, keep_lines: int = 50) -> bool:
    """Trim the log to its last `keep_lines` lines once it exceeds `max_lines`.

    Rewrites in place, byte for byte, so append-mode handles held by this
    process (and the worker's redirected stderr) keep writing to the same
    file. Not atomic: a line appended by another process between the read
    and the truncate is lost. Only the lock holder rotates, so such lines can
    only come from workers still waiting for the lock.
    """
    try:
        with log_path.open("r+b") as f:
            lines = f.readlines()
            if len(lines) <= max_lines:
                return False
            f.seek(0)
            f.writelines(lines[-keep_lines:])
            f.truncate()
    except FileNotFoundError:
        return False
    return True


# ── Unit of work (runs inside the detached worker) ────────────


class MergeTask:
    """One background merge of the current session into the working memory."""

    def __init__(
        self,
        paths: ProjectPaths,
        config: WorkmemConfig,
        provider: MergeProvider,
        session_id: str,
    ) -> None:
        self.paths = paths
        self.config = config
        self.provider = provider
        self.session_id = session_id
        self.store = WorkingMemoryStore(paths)
        self.lock = LockManager(
            paths.lock_file,
            stale_after=config.lock.stale_after,
            retry_interval=config.lock.retry_interval,
        )

    async def run(self) -> MergeOutcome:
        """Run the merge and record its outcome. Never raises."""
        if self.config.merge.flush_delay > 0:
            # Let the parent session flush its transcript before we resume it.
            await asyncio.sleep(self.config.merge.flush_delay)

        logger.info("Starting update for session %s", self.session_id)
        try:
            async with self.lock.hold(self.config.lock.timeout):
                rotate_log(
                    self.paths.log_file, self.config.log_max_lines, self.config.log_keep_lines
                )
                await self._merge()
        except LockTimeout as e:
            return self._record(MergeOutcome.SKIPPED, str(e))
        except MergeFailure as e:
            return self._record(MergeOutcome(e.cause), e.detail)
        except Exception as e:
            logger.exception("Unexpected error during update")
            return self._record(MergeOutcome.FAILURE, f"{type(e).__name__}: {e}")
        return self._record(MergeOutcome.SUCCESS, str(self.paths.memory_file))

    async def _merge(self) -> None:
        """Critical section: caller holds the lock."""
        # Re-read under the lock; a sibling may have just written.
        existing = self.store.read()
        instruction = build_merge_instruction(str(self.paths.memory_file), existing)

        result = await self.provider.merge(
            instruction,
            session_id=self.session_id or None,
            cwd=str(self.paths.cwd),
            deadline=self.config.merge.deadline,
        )
        if not result.ok:
            cause = "timeout" if result.outcome is MergeOutcome.TIMEOUT else "failure"
            raise MergeFailure(cause, result.detail)
        try:
            self.store.replace(result.document)
        except OSError as e:
            raise MergeFailure("failure", f"write failed: {e}") from e

    def _record(self, outcome: MergeOutcome, detail: str) -> MergeOutcome:
        logger.log(
            _LOG_LEVELS[outcome],
            "update %s for session %s: %s",
            outcome.value,
            self.session_id or "-",
            detail,
        )
        return outcome


def run_worker(cwd: str, session_id: str, config: WorkmemConfig) -> MergeOutcome:
    """Entry point of the detached worker process."""
    paths = ProjectPaths(Path(cwd), config.docs_dir)
    handler = attach_update_log(paths.log_file)
    try:
        provider = ClaudeCLIProvider(
            claude_bin=config.merge.claude_bin,
            model=config.merge.model,
            extra_env={INVOCATION_ENV: InvocationSource.BACKGROUND.value},
        )
        task = MergeTask(paths, config, provider, session_id)
        return asyncio.run(task.run())
    finally:
        logging.getLogger("workmem").removeHandler(handler)
        handler.close()


# ── Spawner (runs inside the short-lived Stop hook) ───────────


class BackgroundRunner:
    """Detach the worker from the invoking hook's lifecycle."""

    def __init__(self, paths: ProjectPaths, config: WorkmemConfig) -> None:
        self.paths = paths
        self.config = config

    def _build_command(self, session_id: str) -> list[str]:
        return [
            sys.executable,
            "-m",
            "workmem",
            "worker",
            "--cwd",
            str(self.paths.cwd),
            "--session",
            session_id,
        ]

    def spawn(self, session_id: str) -> int:
        """Start the worker and return its pid without waiting for it."""
        provider = ClaudeCLIProvider(claude_bin=self.config.merge.claude_bin)
        if not provider.is_available():
            raise MissingTooling(self.config.merge.claude_bin)

        self.paths.log_file.parent.mkdir(parents=True, exist_ok=True)
        with self.paths.log_file.open("a", encoding="utf-8") as log:
            proc = subprocess.Popen(
                self._build_command(session_id),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=log,
                cwd=str(self.paths.cwd),
                start_new_session=True,
                close_fds=True,
            )
        logger.info("Spawned background update (pid=%d, session=%s)", proc.pid, session_id)
        return proc.pid
