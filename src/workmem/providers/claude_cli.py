"""Claude CLI merge provider: resumes the session headlessly via `claude -p`.

The CLI prints the merged document on stdout; the caller does the atomic
write. The subprocess runs under a supervisor deadline and is killed (with
its whole process group) when it overruns.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import signal
import subprocess
from dataclasses import dataclass, field

from workmem.memory.prompts import extract_document
from workmem.providers.base import MergeOutcome, MergeResult

logger = logging.getLogger(__name__)

KILL_GRACE = 5.0  # seconds between SIGTERM and SIGKILL


@dataclass
class ClaudeCLIProvider:
    """Subprocess wrapper around `claude -p --output-format text`.

    Runs on the local CLI login, so no API key is needed.
    """

    claude_bin: str = "claude"
    model: str | None = "haiku"
    extra_env: dict[str, str] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return "claude_cli"

    def is_available(self) -> bool:
        return shutil.which(self.claude_bin) is not None

    def _build_command(self, instruction: str, session_id: str | None = None) -> list[str]:
        cmd = [self.claude_bin, "-p"]
        if session_id:
            cmd.extend(["--resume", session_id])
        if self.model:
            cmd.extend(["--model", self.model])
        cmd.extend(
            [
                "--dangerously-skip-permissions",
                "--no-session-persistence",
                "--output-format",
                "text",
                instruction,
            ]
        )
        return cmd

    def _build_env(self) -> dict[str, str]:
        env = dict(os.environ)
        # The child is a fresh CLI run, not a nested one.
        env.pop("CLAUDECODE", None)
        env.update(self.extra_env)
        return env

    async def merge(
        self,
        instruction: str,
        *,
        session_id: str | None = None,
        cwd: str | None = None,
        deadline: float | None = None,
    ) -> MergeResult:
        cmd = self._build_command(instruction, session_id)
        logger.debug("Running: %s", " ".join(cmd[:4]) + " ...")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=self._build_env(),
                start_new_session=True,
            )
        except FileNotFoundError:
            return MergeResult(
                MergeOutcome.FAILURE, detail=f"`{self.claude_bin}` CLI not found"
            )

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=deadline)
        except asyncio.TimeoutError:
            logger.warning("Merge exceeded %gs deadline (pid=%d), killing", deadline, proc.pid)
            await self._kill(proc)
            return MergeResult(
                MergeOutcome.TIMEOUT,
                detail=f"killed after {deadline:g}s",
                returncode=proc.returncode,
            )

        if proc.returncode != 0:
            err = stderr.decode(errors="replace").strip()
            logger.error("claude CLI error (rc=%d): %s", proc.returncode, err[-500:])
            return MergeResult(
                MergeOutcome.FAILURE,
                detail=f"exit code {proc.returncode}: {err[-200:] or 'unknown error'}",
                returncode=proc.returncode,
            )

        document = extract_document(stdout.decode(errors="replace"))
        if document is None:
            return MergeResult(
                MergeOutcome.FAILURE,
                detail="output is not a working memory document",
                returncode=proc.returncode,
            )
        return MergeResult(MergeOutcome.SUCCESS, document=document, returncode=0)

    async def _kill(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM the process group, then SIGKILL it if it lingers."""
        for sig, grace in ((signal.SIGTERM, KILL_GRACE), (signal.SIGKILL, None)):
            try:
                os.killpg(proc.pid, sig)
            except ProcessLookupError:
                break
            try:
                await asyncio.wait_for(proc.wait(), timeout=grace)
                return
            except asyncio.TimeoutError:
                continue
        await proc.wait()
