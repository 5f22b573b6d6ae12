"""Tests for the pre-compaction snapshot and recovery detection."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from workmem.git import GitState
from workmem.memory.snapshot import SnapshotStore

T0 = datetime(2026, 10, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path: Path) -> SnapshotStore:
    return SnapshotStore(tmp_path / "working-memory-backup.md")


@pytest.fixture
def doc(tmp_path: Path) -> Path:
    path = tmp_path / "WORKING-MEMORY.md"
    path.write_text("# Working Memory\n\n## Now\n- current\n", encoding="utf-8")
    return path


def set_mtime(path: Path, when: datetime) -> None:
    ts = when.timestamp()
    os.utime(path, (ts, ts))


class TestCapture:
    def test_capture_and_load(self, store: SnapshotStore):
        git = GitState(branch="feat/x", status=" M a.py", log="abc123 Add x", diff_stat="1 file")
        store.capture("# Working Memory\n\n## Now\n- parsing\n", git, now=T0)

        loaded = store.load()
        assert loaded is not None
        assert loaded.timestamp == T0
        assert loaded.trigger == "pre-compact"
        assert "- parsing" in loaded.memory
        assert loaded.git.branch == "feat/x"
        assert loaded.git.status == " M a.py"
        assert loaded.git.log == "abc123 Add x"

    def test_record_is_front_matter_markdown(self, store: SnapshotStore):
        store.capture("# Working Memory\n", GitState(branch="main"), now=T0)
        text = store.path.read_text(encoding="utf-8")
        assert text.startswith("---\n")
        assert "trigger: pre-compact" in text
        assert "# Working Memory" in text

    def test_new_snapshot_supersedes_old(self, store: SnapshotStore):
        store.capture("first", None, now=T0)
        store.capture("second", None, now=T0 + timedelta(minutes=5))
        loaded = store.load()
        assert loaded.memory.strip() == "second"
        assert loaded.timestamp == T0 + timedelta(minutes=5)
        assert list(store.path.parent.glob("*.tmp.*")) == []

    def test_without_git_state(self, store: SnapshotStore):
        store.capture("", None, now=T0)
        loaded = store.load()
        assert loaded.git.branch == ""
        assert loaded.memory == ""


class TestLoad:
    def test_missing(self, store: SnapshotStore):
        assert store.load() is None

    def test_without_timestamp(self, store: SnapshotStore):
        store.path.write_text("---\ntrigger: pre-compact\n---\n\nbody\n", encoding="utf-8")
        assert store.load() is None

    def test_malformed_yaml(self, store: SnapshotStore):
        store.path.write_text("---\ntimestamp: [unclosed\n---\n\nbody\n", encoding="utf-8")
        assert store.load() is None

    def test_naive_timestamp_treated_as_utc(self, store: SnapshotStore):
        store.path.write_text(
            "---\ntimestamp: '2026-10-01T12:00:00'\n---\n\nbody\n", encoding="utf-8"
        )
        assert store.load().timestamp == T0


class TestPendingRecovery:
    def test_snapshot_newer_than_document(self, store: SnapshotStore, doc: Path):
        set_mtime(doc, T0 - timedelta(seconds=30))
        store.capture("# Working Memory\n\n## Now\n- mid-merge\n", None, now=T0)
        recovery = store.pending_recovery(doc)
        assert recovery is not None
        assert "mid-merge" in recovery.memory

    def test_document_updated_after_snapshot(self, store: SnapshotStore, doc: Path):
        store.capture("# Working Memory\n", None, now=T0)
        set_mtime(doc, T0 + timedelta(seconds=30))
        assert store.pending_recovery(doc) is None

    def test_equal_times_do_not_recover(self, store: SnapshotStore, doc: Path):
        store.capture("# Working Memory\n", None, now=T0)
        set_mtime(doc, T0)
        assert store.pending_recovery(doc) is None

    def test_missing_document_recovers(self, store: SnapshotStore, tmp_path: Path):
        store.capture("# Working Memory\n\n## Now\n- only copy\n", None, now=T0)
        recovery = store.pending_recovery(tmp_path / "absent.md")
        assert recovery is not None

    def test_empty_snapshot_never_recovers(self, store: SnapshotStore, doc: Path):
        set_mtime(doc, T0 - timedelta(hours=1))
        store.capture("", GitState(branch="main"), now=T0)
        assert store.pending_recovery(doc) is None

    def test_no_snapshot(self, store: SnapshotStore, doc: Path):
        assert store.pending_recovery(doc) is None
