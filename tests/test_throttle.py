"""Tests for mtime-based freshness checks."""

import os
import time
from pathlib import Path

import pytest

from workmem.memory.throttle import file_age, is_throttled, staleness_banner


@pytest.fixture
def doc(tmp_path: Path) -> Path:
    path = tmp_path / "WORKING-MEMORY.md"
    path.write_text("# Working Memory\n", encoding="utf-8")
    return path


def age_file(path: Path, seconds: float) -> None:
    past = time.time() - seconds
    os.utime(path, (past, past))


class TestIsThrottled:
    def test_fresh_document_is_throttled(self, doc: Path):
        assert is_throttled(doc, 120)

    def test_old_document_is_not_throttled(self, doc: Path):
        age_file(doc, 300)
        assert not is_throttled(doc, 120)

    def test_missing_document_is_not_throttled(self, tmp_path: Path):
        assert not is_throttled(tmp_path / "missing.md", 120)

    def test_explicit_now(self, doc: Path):
        mtime = doc.stat().st_mtime
        assert is_throttled(doc, 120, now=mtime + 119)
        assert not is_throttled(doc, 120, now=mtime + 121)


class TestFileAge:
    def test_missing(self, tmp_path: Path):
        assert file_age(tmp_path / "nope") is None

    def test_age(self, doc: Path):
        age_file(doc, 50)
        assert 49 <= file_age(doc) <= 60


class TestStalenessBanner:
    def test_no_banner_when_recent(self, doc: Path):
        age_file(doc, 600)
        assert staleness_banner(doc, 3600) == ""

    def test_banner_reports_hours(self, doc: Path):
        age_file(doc, 3 * 3600 + 120)
        banner = staleness_banner(doc, 3600)
        assert "3h old" in banner
        assert "Verify before relying on it" in banner

    def test_banner_for_missing_file(self, tmp_path: Path):
        assert staleness_banner(tmp_path / "missing.md", 3600) == ""

    def test_scales_are_independent(self, doc: Path):
        """Old enough to merge again, far too young for a staleness warning."""
        age_file(doc, 300)
        assert not is_throttled(doc, 120)
        assert staleness_banner(doc, 3600) == ""

    def test_minutes_below_one_hour(self, doc: Path):
        age_file(doc, 45 * 60 + 5)
        assert "45m old" in staleness_banner(doc, 600)
