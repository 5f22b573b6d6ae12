"""Version-control state: branch, short status, recent history."""

from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Total seconds one capture may spend across all its git calls. Hooks get
# HOOK_TIMEOUT (10s) from the host and still have other work to do.
GIT_BUDGET = 5.0


@dataclass
class GitState:
    """Point-in-time view of the repository a session runs in."""

    branch: str = ""
    status: str = ""
    log: str = ""
    diff_stat: str = ""

    def recent_commits(self, limit: int = 3) -> list[str]:
        return [line for line in self.log.splitlines() if line.strip()][:limit]

    def modified_paths(self, limit: int = 10) -> list[str]:
        """Paths from `git status --porcelain` lines (second column)."""
        paths = []
        for line in self.status.splitlines():
            parts = line.split()
            if len(parts) >= 2:
                paths.append(parts[1])
            if len(paths) >= limit:
                break
        return paths

    def to_dict(self) -> dict[str, str]:
        return {
            "branch": self.branch,
            "status": self.status,
            "log": self.log,
            "diff_stat": self.diff_stat,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> GitState:
        data = data or {}
        return cls(
            branch=str(data.get("branch") or ""),
            status=str(data.get("status") or ""),
            log=str(data.get("log") or ""),
            diff_stat=str(data.get("diff_stat") or ""),
        )


def _git(cwd: str, *args: str, deadline: float) -> str | None:
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        logger.debug("git %s skipped: git budget spent", args[0])
        return None
    try:
        result = subprocess.run(
            ["git", *args],
            capture_output=True,
            text=True,
            cwd=cwd,
            timeout=remaining,
        )
    except (FileNotFoundError, NotADirectoryError, subprocess.TimeoutExpired) as e:
        logger.debug("git %s failed: %s", args[0], e)
        return None
    if result.returncode != 0:
        return None
    return result.stdout.rstrip("\n")


def capture_git_state(
    cwd: str,
    *,
    log_limit: int = 10,
    status_limit: int = 30,
    include_diff_stat: bool = False,
    budget: float = GIT_BUDGET,
) -> GitState | None:
    """Capture git state for `cwd`. Returns None outside a repository.

    All calls share `budget` seconds; whatever does not fit is left empty.
    """
    deadline = time.monotonic() + budget
    if _git(cwd, "rev-parse", "--git-dir", deadline=deadline) is None:
        return None

    branch = _git(cwd, "branch", "--show-current", deadline=deadline)
    status = _git(cwd, "status", "--porcelain", deadline=deadline) or ""
    log = _git(cwd, "log", "--oneline", f"-{log_limit}", deadline=deadline) or ""
    diff_stat = ""
    if include_diff_stat:
        diff_stat = _git(cwd, "diff", "--stat", "HEAD", deadline=deadline) or ""

    return GitState(
        # Detached HEAD prints nothing for --show-current
        branch=branch or "unknown",
        status="\n".join(status.splitlines()[:status_limit]),
        log=log,
        diff_stat=diff_stat,
    )
