"""Working memory document store.

The document is flat markdown with fixed sections and is only ever replaced
wholesale. A project opts in by having the docs directory at all.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from workmem.errors import ConfigurationAbsent

if TYPE_CHECKING:
    from workmem.git import GitState

logger = logging.getLogger(__name__)

MEMORY_FILENAME = "WORKING-MEMORY.md"
PATTERNS_FILENAME = "patterns.md"
SNAPSHOT_FILENAME = "working-memory-backup.md"
LOCK_FILENAME = ".working-memory.lock"
LOG_FILENAME = ".working-memory-update.log"


@dataclass(frozen=True)
class ProjectPaths:
    """Every persisted artifact for one project directory."""

    cwd: Path
    docs_dir_name: str = ".docs"

    @property
    def docs_dir(self) -> Path:
        return self.cwd / self.docs_dir_name

    @property
    def memory_file(self) -> Path:
        return self.docs_dir / MEMORY_FILENAME

    @property
    def patterns_file(self) -> Path:
        return self.docs_dir / PATTERNS_FILENAME

    @property
    def snapshot_file(self) -> Path:
        return self.docs_dir / SNAPSHOT_FILENAME

    @property
    def lock_file(self) -> Path:
        return self.docs_dir / LOCK_FILENAME

    @property
    def log_file(self) -> Path:
        return self.docs_dir / LOG_FILENAME

    @property
    def is_initialized(self) -> bool:
        return self.docs_dir.is_dir()

    def require_initialized(self) -> None:
        if not self.is_initialized:
            raise ConfigurationAbsent(str(self.docs_dir))


def write_atomic(path: Path, content: str) -> None:
    """Replace `path` with `content` via temp file + fsync + rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        delete=False,
        dir=str(path.parent),
        prefix=path.name + ".tmp.",
    ) as tmp:
        tmp.write(content)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_name = tmp.name
    try:
        os.replace(tmp_name, path)
    except OSError:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_if_absent(path: Path, content: str) -> bool:
    """Atomically create `path` only if it does not exist yet.

    The content is fully written to a temp file first and then hard-linked
    into place, so readers never see a partial file and an existing document
    is never overwritten. Returns False if the file already existed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        delete=False,
        dir=str(path.parent),
        prefix=path.name + ".tmp.",
    ) as tmp:
        tmp.write(content)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_name = tmp.name
    try:
        os.link(tmp_name, path)
        return True
    except FileExistsError:
        return False
    finally:
        Path(tmp_name).unlink(missing_ok=True)


def synthesize_from_git(git: GitState) -> str:
    """Minimal document for a project that has git state but no working memory yet."""
    lines = [
        "# Working Memory",
        "",
        "## Now",
        "- Session compacted before working memory was established",
        "",
        "## Context",
        f"- Branch: {git.branch}",
    ]
    lines.extend(f"- {commit}" for commit in git.recent_commits(3))

    modified = git.modified_paths(10)
    if modified:
        lines.extend(["", "## Modified Files"])
        lines.extend(f"- {p}" for p in modified)

    return "\n".join(lines) + "\n"


class WorkingMemoryStore:
    """Read/write access to one project's working memory document."""

    def __init__(self, paths: ProjectPaths) -> None:
        self.paths = paths

    def exists(self) -> bool:
        return self.paths.memory_file.is_file()

    def read(self) -> str | None:
        """Return the document text, or None if there is no document yet."""
        try:
            return self.paths.memory_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def read_patterns(self) -> str:
        try:
            return self.paths.patterns_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""

    def replace(self, content: str) -> None:
        """Overwrite the document wholesale."""
        if not content.endswith("\n"):
            content += "\n"
        write_atomic(self.paths.memory_file, content)
        logger.info("Updated %s (%d chars)", self.paths.memory_file, len(content))

    def bootstrap(self, git: GitState) -> bool:
        """Create a minimal document from git state unless one already exists."""
        created = write_if_absent(self.paths.memory_file, synthesize_from_git(git))
        if created:
            logger.info("Bootstrapped %s from git state", self.paths.memory_file)
        return created
