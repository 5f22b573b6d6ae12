"""Pre-compaction snapshot of the working memory plus git state.

One record, rewritten atomically on every capture. Metadata lives in YAML
front matter and the document snapshot is the body:

    ---
    timestamp: '2026-10-18T09:12:44.120331+00:00'
    trigger: pre-compact
    git:
      branch: main
      status: ' M src/app.py'
      log: |-
        a1b2c3d Fix parser
      diff_stat: ''
    ---

    # Working Memory
    ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import frontmatter
import yaml

from workmem.git import GitState
from workmem.memory.store import write_atomic

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    """A point-in-time backup taken right before a destructive session event."""

    timestamp: datetime
    memory: str = ""
    trigger: str = "pre-compact"
    git: GitState = field(default_factory=GitState)

    @property
    def epoch(self) -> float:
        return self.timestamp.timestamp()


class SnapshotStore:
    """Read/write the single current snapshot record."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def capture(
        self,
        memory_text: str,
        git: GitState | None,
        *,
        trigger: str = "pre-compact",
        now: datetime | None = None,
    ) -> Snapshot:
        """Write a new snapshot, superseding any previous one."""
        snapshot = Snapshot(
            timestamp=now or datetime.now(timezone.utc),
            memory=memory_text,
            trigger=trigger,
            git=git or GitState(),
        )
        post = frontmatter.Post(
            snapshot.memory,
            timestamp=snapshot.timestamp.isoformat(),
            trigger=snapshot.trigger,
            git=snapshot.git.to_dict(),
        )
        write_atomic(self.path, frontmatter.dumps(post) + "\n")
        logger.info("Snapshot written: %s (%d chars)", self.path, len(memory_text))
        return snapshot

    def load(self) -> Snapshot | None:
        """Return the current snapshot, or None if missing or unreadable."""
        try:
            post = frontmatter.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
            logger.warning("Unreadable snapshot %s: %s", self.path, e)
            return None

        timestamp = _parse_timestamp(post.metadata.get("timestamp"))
        if timestamp is None:
            logger.warning("Snapshot %s has no usable timestamp", self.path)
            return None

        git_data = post.metadata.get("git")
        return Snapshot(
            timestamp=timestamp,
            memory=post.content,
            trigger=str(post.metadata.get("trigger", "pre-compact")),
            git=GitState.from_dict(git_data if isinstance(git_data, dict) else None),
        )

    def pending_recovery(self, document_path: Path) -> Snapshot | None:
        """The snapshot, if the document was not rewritten after it was taken.

        Recovery is due iff the snapshot timestamp is strictly newer than the
        document's mtime (a missing document is older than everything) and
        the snapshot actually holds document content.
        """
        snapshot = self.load()
        if snapshot is None or not snapshot.memory.strip():
            return None
        try:
            doc_mtime = document_path.stat().st_mtime
        except FileNotFoundError:
            return snapshot
        return snapshot if snapshot.epoch > doc_mtime else None


def _parse_timestamp(value: object) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
