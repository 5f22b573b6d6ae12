"""Exception hierarchy for workmem.

None of these ever reach the host session: the hook entry point logs and
swallows them. They exist so the layers below can say precisely why an
update did not happen.
"""

from __future__ import annotations


class WorkmemError(Exception):
    """Base class for all workmem errors."""


class ConfigurationAbsent(WorkmemError):
    """The project has not been initialized for working memory (no docs dir)."""

    def __init__(self, docs_dir: str) -> None:
        self.docs_dir = docs_dir
        super().__init__(f"Working memory not initialized: {docs_dir} missing")


class LockTimeout(WorkmemError):
    """The merge lock could not be acquired within the bounded retry window."""

    def __init__(self, lock_path: str, timeout: float) -> None:
        self.lock_path = lock_path
        self.timeout = timeout
        super().__init__(f"Lock {lock_path} not acquired within {timeout:g}s")


class MergeFailure(WorkmemError):
    """The merge subprocess failed or was killed by the supervisor."""

    def __init__(self, cause: str, detail: str = "") -> None:
        self.cause = cause  # "timeout" | "failure"
        self.detail = detail
        super().__init__(f"Merge {cause}: {detail}" if detail else f"Merge {cause}")


class MissingTooling(WorkmemError):
    """A required external tool or parser is not available."""

    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(f"Required tool not available: {tool}")
