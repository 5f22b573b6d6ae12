"""Shared fixtures: an initialized project directory, fast config, a small git repo."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from workmem.config import WorkmemConfig
from workmem.memory.store import ProjectPaths


def _git(cwd: Path, *args: str) -> None:
    subprocess.run(
        [
            "git",
            "-c", "user.name=Test",
            "-c", "user.email=test@example.com",
            "-c", "commit.gpgsign=false",
            *args,
        ],
        cwd=cwd,
        check=True,
        capture_output=True,
    )


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project directory that has opted in (has .docs/)."""
    (tmp_path / ".docs").mkdir()
    return tmp_path


@pytest.fixture
def paths(project: Path) -> ProjectPaths:
    return ProjectPaths(project)


@pytest.fixture
def config() -> WorkmemConfig:
    config = WorkmemConfig()
    config.merge.flush_delay = 0
    config.lock.retry_interval = 0.02
    return config


@pytest.fixture
def git_repo(project: Path) -> Path:
    """`project` as a git repo on branch main with four commits (newest: 'commit 4')."""
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    _git(project, "init", "-q")
    _git(project, "symbolic-ref", "HEAD", "refs/heads/main")
    (project / ".git" / "info").mkdir(parents=True, exist_ok=True)
    (project / ".git" / "info" / "exclude").write_text(".docs/\n", encoding="utf-8")
    for i in range(1, 5):
        (project / "app.txt").write_text(f"v{i}\n", encoding="utf-8")
        _git(project, "add", "app.txt")
        _git(project, "commit", "-q", "-m", f"commit {i}")
    return project
