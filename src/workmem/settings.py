"""Register / unregister workmem hooks in the host's settings.json.

All functions take and return the settings file as JSON text, and return the
input unchanged when there is nothing to do, so callers can compare before
writing.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

from workmem.hooks import HookEvent

# event → CLI slug for `python -m workmem hook <slug>`
MEMORY_HOOKS: dict[HookEvent, str] = {
    HookEvent.STOP: "stop",
    HookEvent.SESSION_START: "session-start",
    HookEvent.PRE_COMPACT: "pre-compact",
}
AMBIENT_HOOKS: dict[HookEvent, str] = {
    HookEvent.USER_PROMPT_SUBMIT: "prompt",
}

HOOK_TIMEOUT = 10  # seconds the host allows each hook


def default_settings_path() -> Path:
    return Path.home() / ".claude" / "settings.json"


def hook_command(slug: str, python: str | None = None) -> str:
    return f"{python or sys.executable} -m workmem hook {slug}"


def _marker(slug: str) -> str:
    return f"workmem hook {slug}"


def _has_marker(matcher: dict, marker: str) -> bool:
    return any(marker in h.get("command", "") for h in matcher.get("hooks", []))


def count_hooks(settings_json: str, hooks: dict[HookEvent, str]) -> int:
    """How many of `hooks` are registered."""
    settings = json.loads(settings_json)
    registered = settings.get("hooks") or {}
    count = 0
    for event, slug in hooks.items():
        if any(_has_marker(m, _marker(slug)) for m in registered.get(event.value, [])):
            count += 1
    return count


def add_hooks(
    settings_json: str, hooks: dict[HookEvent, str], python: str | None = None
) -> str:
    """Add any missing `hooks`. Idempotent."""
    settings = json.loads(settings_json)
    registered = settings.setdefault("hooks", {})
    changed = False

    for event, slug in hooks.items():
        matchers = registered.setdefault(event.value, [])
        if any(_has_marker(m, _marker(slug)) for m in matchers):
            continue
        matchers.append(
            {
                "hooks": [
                    {
                        "type": "command",
                        "command": hook_command(slug, python),
                        "timeout": HOOK_TIMEOUT,
                    }
                ]
            }
        )
        changed = True

    if not changed:
        return settings_json
    return json.dumps(settings, indent=2) + "\n"


def remove_hooks(settings_json: str, hooks: dict[HookEvent, str]) -> str:
    """Remove `hooks`, keeping everything else. Empty containers are dropped."""
    settings = json.loads(settings_json)
    registered = settings.get("hooks")
    if not registered:
        return settings_json

    changed = False
    for event, slug in hooks.items():
        matchers = registered.get(event.value)
        if matchers is None:
            continue
        kept = [m for m in matchers if not _has_marker(m, _marker(slug))]
        if len(kept) != len(matchers):
            changed = True
        if kept:
            registered[event.value] = kept
        else:
            del registered[event.value]

    if not registered:
        del settings["hooks"]
    if not changed:
        return settings_json
    return json.dumps(settings, indent=2) + "\n"


def describe_status(settings_json: str, hooks: dict[HookEvent, str]) -> str:
    count = count_hooks(settings_json, hooks)
    total = len(hooks)
    if count == total:
        return f"enabled ({count}/{total} hooks)"
    if count == 0:
        return "disabled"
    return f"partial ({count}/{total} hooks) — run --enable to fix"
