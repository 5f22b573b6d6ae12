"""Memory synchronizer: the four lifecycle trigger points.

Each trigger is a separate, short-lived, cold process started by the host:

1. SessionStart: read document, patterns, git state, pending snapshot → inject context
2. UserPromptSubmit: ambient classification preamble
3. Stop: throttle, then spawn the background merge (or ask the host to block)
4. PreCompact: snapshot, and bootstrap a document from git if none exists

Nothing here may disturb the host session: every failure is logged and
turned into "no reply".
"""

from __future__ import annotations

import logging
from datetime import timezone
from pathlib import Path

from workmem.config import WorkmemConfig
from workmem.errors import ConfigurationAbsent, MissingTooling
from workmem.git import GitState, capture_git_state
from workmem.hooks import HookEvent, HookPayload, HookReply, InvocationSource
from workmem.memory.prompts import AMBIENT_PREAMBLE, build_block_instruction
from workmem.memory.snapshot import Snapshot, SnapshotStore
from workmem.memory.store import ProjectPaths, WorkingMemoryStore, synthesize_from_git
from workmem.memory.throttle import is_throttled, staleness_banner
from workmem.memory.worker import BackgroundRunner

logger = logging.getLogger(__name__)

AMBIENT_MIN_WORDS = 3


class Synchronizer:
    """Routes host lifecycle events to the memory components."""

    def __init__(self, config: WorkmemConfig) -> None:
        self.config = config

    def _paths(self, payload: HookPayload) -> ProjectPaths:
        if not payload.cwd:
            raise ConfigurationAbsent("(no cwd)")
        paths = ProjectPaths(Path(payload.cwd), self.config.docs_dir)
        paths.require_initialized()
        return paths

    # ── Dispatch ─────────────────────────────────────────────

    def handle(
        self,
        event: HookEvent,
        payload: HookPayload,
        source: InvocationSource = InvocationSource.INTERACTIVE,
    ) -> HookReply | None:
        """Run one trigger. Never raises."""
        try:
            if event is HookEvent.SESSION_START:
                return self.on_session_start(payload)
            if event is HookEvent.USER_PROMPT_SUBMIT:
                return self.on_prompt(payload)
            if event is HookEvent.STOP:
                return self.on_stop(payload, source)
            if event is HookEvent.PRE_COMPACT:
                return self.on_pre_compact(payload)
        except ConfigurationAbsent as e:
            logger.debug("%s: %s", event.value, e)
        except MissingTooling as e:
            logger.debug("%s skipped: %s", event.value, e)
        except Exception as e:
            logger.error("%s hook failed: %s", event.value, e, exc_info=True)
        return None

    # ── 1. Init ──────────────────────────────────────────────

    def on_session_start(self, payload: HookPayload) -> HookReply | None:
        paths = self._paths(payload)
        store = WorkingMemoryStore(paths)

        try:
            memory = store.read()
        except OSError as e:
            logger.warning("Cannot read %s: %s", paths.memory_file, e)
            return None

        git = capture_git_state(str(paths.cwd), log_limit=5, status_limit=20)
        recovery = SnapshotStore(paths.snapshot_file).pending_recovery(paths.memory_file)

        parts: list[str] = []
        if memory is not None:
            banner = staleness_banner(paths.memory_file, self.config.throttle.stale_banner_seconds)
            header = "--- WORKING MEMORY (from previous session) ---"
            parts.append(f"{banner}\n\n{header}" if banner else header)
            parts.append(memory.strip())
        elif git is not None:
            parts.append("--- WORKING MEMORY (synthesized from git, none saved yet) ---")
            parts.append(synthesize_from_git(git).strip())
        elif recovery is None:
            return None

        patterns = store.read_patterns().strip()
        if patterns:
            parts.append("--- PROJECT PATTERNS (accumulated) ---")
            parts.append(patterns)

        if recovery is not None:
            parts.append(_recovery_note(recovery))

        if git is not None:
            parts.append(_git_section(git))

        return HookReply.context(HookEvent.SESSION_START, "\n\n".join(parts))

    # ── 2. PromptObserved ────────────────────────────────────

    def on_prompt(self, payload: HookPayload) -> HookReply | None:
        if not payload.cwd:
            return None
        prompt = payload.prompt.strip()
        # Slash commands have their own orchestration; short confirmations need none.
        if prompt.startswith("/") or len(prompt.split()) < AMBIENT_MIN_WORDS:
            return None
        return HookReply.context(HookEvent.USER_PROMPT_SUBMIT, AMBIENT_PREAMBLE)

    # ── 3. Idle ──────────────────────────────────────────────

    def on_stop(
        self,
        payload: HookPayload,
        source: InvocationSource = InvocationSource.INTERACTIVE,
    ) -> HookReply | None:
        if source is InvocationSource.BACKGROUND:
            # Our own merge subprocess finishing; scheduling again would recurse.
            logger.debug("Stop from background merge, not rescheduling")
            return None
        if payload.stop_hook_active:
            return None

        paths = self._paths(payload)
        if is_throttled(paths.memory_file, self.config.throttle.idle_seconds):
            logger.debug("Working memory fresh (<%ds), skipping", self.config.throttle.idle_seconds)
            return None

        if self.config.merge.mode == "block":
            exists = paths.memory_file.exists()
            memory_file = f"{self.config.docs_dir}/{paths.memory_file.name}"
            return HookReply.block(build_block_instruction(memory_file, exists))

        if not payload.session_id:
            logger.warning("Stop payload without session_id, cannot resume for update")
            return None
        BackgroundRunner(paths, self.config).spawn(payload.session_id)
        return None

    # ── 4. PreCompact ────────────────────────────────────────

    def on_pre_compact(self, payload: HookPayload) -> HookReply | None:
        paths = self._paths(payload)
        store = WorkingMemoryStore(paths)

        git = capture_git_state(str(paths.cwd), include_diff_stat=True)
        SnapshotStore(paths.snapshot_file).capture(store.read() or "", git)

        if git is not None and not store.exists():
            store.bootstrap(git)
        # PreCompact cannot inject context or block; it only persists.
        return None


def _recovery_note(snapshot: Snapshot) -> str:
    ts = snapshot.timestamp.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    lines = [
        "--- RECOVERED SNAPSHOT (working memory was not updated after compaction) ---",
        f"Captured at {ts} before {snapshot.trigger}.",
    ]
    if snapshot.git.branch:
        lines.append(f"Branch at the time: {snapshot.git.branch}")
    if snapshot.git.diff_stat:
        lines.append(f"Diff stat:\n{snapshot.git.diff_stat}")
    lines.extend(["", snapshot.memory.strip()])
    return "\n".join(lines)


def _git_section(git: GitState) -> str:
    text = f"--- CURRENT GIT STATE ---\nBranch: {git.branch}\nRecent commits:\n{git.log}"
    if git.status:
        text += f"\nUncommitted changes:\n{git.status}"
    return text
