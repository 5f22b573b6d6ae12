"""Merge provider protocol and shared types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable


class MergeOutcome(str, Enum):
    """How a background update ended. Recorded verbatim in the update log."""

    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    SKIPPED = "skipped"


@dataclass
class MergeResult:
    """Result of one merge invocation."""

    outcome: MergeOutcome
    document: str | None = None
    detail: str = ""
    returncode: int | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is MergeOutcome.SUCCESS and self.document is not None


@runtime_checkable
class MergeProvider(Protocol):
    """Anything that turns an instruction into an updated document."""

    @property
    def name(self) -> str: ...

    async def merge(
        self,
        instruction: str,
        *,
        session_id: str | None = None,
        cwd: str | None = None,
        deadline: float | None = None,
    ) -> MergeResult:
        """Run the merge under `deadline` seconds. Never raises."""
        ...
