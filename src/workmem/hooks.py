"""Host hook contract: payload in on stdin, at most one envelope out on stdout."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

# Set by the background worker on the merge subprocess it launches, so hooks
# fired by that subprocess can be recognised at the CLI boundary.
INVOCATION_ENV = "WORKMEM_INVOCATION"


class HookEvent(str, Enum):
    SESSION_START = "SessionStart"
    USER_PROMPT_SUBMIT = "UserPromptSubmit"
    STOP = "Stop"
    PRE_COMPACT = "PreCompact"


class InvocationSource(str, Enum):
    """Who is invoking a trigger: the user's session, or our own background merge."""

    INTERACTIVE = "interactive"
    BACKGROUND = "background"

    @classmethod
    def from_value(cls, value: str | None) -> InvocationSource:
        return cls.BACKGROUND if value == cls.BACKGROUND.value else cls.INTERACTIVE


@dataclass
class HookPayload:
    """Structured payload the host delivers to every hook."""

    cwd: str = ""
    session_id: str = ""
    hook_event_name: str = ""
    prompt: str = ""
    stop_hook_active: bool = False
    transcript_path: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HookPayload:
        return cls(
            cwd=str(data.get("cwd") or ""),
            session_id=str(data.get("session_id") or ""),
            hook_event_name=str(data.get("hook_event_name") or ""),
            prompt=str(data.get("prompt") or ""),
            stop_hook_active=data.get("stop_hook_active") is True,
            transcript_path=str(data.get("transcript_path") or ""),
        )

    @classmethod
    def from_json(cls, text: str) -> HookPayload:
        """Parse stdin. Empty or malformed input yields an empty payload."""
        if not text.strip():
            return cls()
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return cls()
        return cls.from_dict(data) if isinstance(data, dict) else cls()


@dataclass
class HookReply:
    """One of the two reply channels the host understands."""

    payload: dict[str, Any]

    @classmethod
    def context(cls, event: HookEvent, text: str) -> HookReply:
        """Inject `text` into the session as additional context."""
        return cls(
            {
                "hookSpecificOutput": {
                    "hookEventName": event.value,
                    "additionalContext": text,
                }
            }
        )

    @classmethod
    def block(cls, reason: str) -> HookReply:
        """Keep the session alive and have it execute `reason` first."""
        return cls({"decision": "block", "reason": reason})

    def to_json(self) -> str:
        return json.dumps(self.payload, ensure_ascii=False)
