"""Entry point: python -m workmem <command>

- hook <event>:  Host hook (session-start | prompt | stop | pre-compact), JSON on stdin
- worker:        Detached background merge (spawned by the stop hook)
- init:          Opt a project in by creating its docs directory
- memory:        Enable / disable / inspect the working memory hooks
- ambient:       Enable / disable / inspect the ambient prompt hook
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from workmem.hooks import INVOCATION_ENV, HookEvent, HookPayload, InvocationSource

logger = logging.getLogger("workmem")

HOOK_SLUGS = {
    "session-start": HookEvent.SESSION_START,
    "prompt": HookEvent.USER_PROMPT_SUBMIT,
    "stop": HookEvent.STOP,
    "pre-compact": HookEvent.PRE_COMPACT,
}


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _run_hook(slug: str) -> int:
    """Host hook. Always exits 0; the only output is an optional JSON envelope."""
    payload = HookPayload.from_json(sys.stdin.buffer.read().decode("utf-8", errors="replace"))
    # The environment is read here, once, and passed down as a value.
    source = InvocationSource.from_value(os.environ.get(INVOCATION_ENV))

    try:
        from workmem.config import load_config
        from workmem.sync import Synchronizer
    except ImportError as e:
        logger.debug("workmem unavailable (%s), skipping hook", e)
        return 0

    try:
        config = load_config(cwd=payload.cwd or None)
    except Exception as e:
        print(f"workmem: bad config, skipping hook: {e}", file=sys.stderr)
        return 0
    _setup_logging(config.log_level)

    reply = Synchronizer(config).handle(HOOK_SLUGS[slug], payload, source)
    if reply is not None:
        print(reply.to_json())
    return 0


def _run_worker(args: argparse.Namespace) -> int:
    from workmem.config import load_config
    from workmem.memory.worker import run_worker

    config = load_config(cwd=args.cwd)
    # stderr is already redirected to the update log; run_worker logs there directly.
    run_worker(args.cwd, args.session, config)
    return 0


def _run_init(args: argparse.Namespace) -> int:
    from workmem.config import load_config

    config = load_config(cwd=args.cwd)
    docs = Path(args.cwd) / config.docs_dir
    if docs.is_dir():
        print(f"Already initialized: {docs}")
        return 0
    docs.mkdir(parents=True)
    print(f"Initialized working memory in {docs}")
    return 0


def _run_toggle(args: argparse.Namespace, name: str) -> int:
    from workmem import settings as hook_settings

    hooks = hook_settings.MEMORY_HOOKS if name == "memory" else hook_settings.AMBIENT_HOOKS
    path = Path(args.settings) if args.settings else hook_settings.default_settings_path()
    try:
        current = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        if args.status:
            print(f"{name}: disabled (no settings.json found)")
            return 0
        current = "{}"

    if args.status:
        print(f"{name}: {hook_settings.describe_status(current, hooks)}")
        return 0

    if args.enable:
        updated = hook_settings.add_hooks(current, hooks)
        verb = "enabled"
    else:
        updated = hook_settings.remove_hooks(current, hooks)
        verb = "disabled"

    if updated == current:
        print(f"{name}: already {verb}")
        return 0
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(updated, encoding="utf-8")
    print(f"{name}: {verb} ({path})")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="workmem", description="Session working memory")
    sub = parser.add_subparsers(dest="command", required=True)

    hook = sub.add_parser("hook", help="Run a host hook (payload on stdin)")
    hook.add_argument("event", choices=sorted(HOOK_SLUGS))

    worker = sub.add_parser("worker", help="Background merge (internal)")
    worker.add_argument("--cwd", required=True)
    worker.add_argument("--session", required=True)

    init = sub.add_parser("init", help="Create the docs directory for this project")
    init.add_argument("--cwd", default=os.getcwd())

    for name, label in (("memory", "working memory hooks"), ("ambient", "ambient prompt hook")):
        toggle = sub.add_parser(name, help=f"Manage the {label}")
        group = toggle.add_mutually_exclusive_group(required=True)
        group.add_argument("--enable", action="store_true")
        group.add_argument("--disable", action="store_true")
        group.add_argument("--status", action="store_true")
        toggle.add_argument("--settings", help="Path to settings.json")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.command == "hook":
        return _run_hook(args.event)
    if args.command == "worker":
        return _run_worker(args)
    if args.command == "init":
        return _run_init(args)
    return _run_toggle(args, args.command)


if __name__ == "__main__":
    sys.exit(main())
