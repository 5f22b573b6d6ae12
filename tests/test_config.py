"""Tests for configuration loading."""

import logging

import pytest
from pathlib import Path

from workmem.config import load_config

ENV_KEYS = [
    "WORKMEM_IDLE_SECONDS",
    "WORKMEM_STALE_BANNER_SECONDS",
    "WORKMEM_LOCK_TIMEOUT",
    "WORKMEM_LOCK_STALE_AFTER",
    "WORKMEM_MERGE_MODE",
    "WORKMEM_CLAUDE_BIN",
    "WORKMEM_MODEL",
    "WORKMEM_MERGE_DEADLINE",
    "WORKMEM_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestConfig:
    def test_defaults(self, tmp_path: Path):
        config = load_config(cwd=str(tmp_path))
        assert config.throttle.idle_seconds == 120
        assert config.throttle.stale_banner_seconds == 3600
        assert config.lock.timeout == 90
        assert config.lock.stale_after == 300
        assert config.merge.mode == "background"
        assert config.merge.model == "haiku"
        assert config.merge.deadline < config.lock.stale_after
        assert config.docs_dir == ".docs"

    def test_thresholds_are_independent(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("WORKMEM_IDLE_SECONDS", "30")
        config = load_config(cwd=str(tmp_path))
        assert config.throttle.idle_seconds == 30
        assert config.throttle.stale_banner_seconds == 3600

    def test_env_override(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("WORKMEM_MERGE_MODE", "block")
        monkeypatch.setenv("WORKMEM_LOCK_TIMEOUT", "15")
        monkeypatch.setenv("WORKMEM_CLAUDE_BIN", "/opt/claude")

        config = load_config(cwd=str(tmp_path))
        assert config.merge.mode == "block"
        assert config.lock.timeout == 15.0
        assert config.merge.claude_bin == "/opt/claude"

    def test_toml_file(self, tmp_path: Path):
        toml_path = tmp_path / "workmem.toml"
        toml_path.write_text("""
[throttle]
idle_seconds = 60

[lock]
timeout = 30
stale_after = 900

[merge]
model = "sonnet"
deadline = 600
""")
        config = load_config(toml_path)
        assert config.throttle.idle_seconds == 60
        assert config.lock.timeout == 30
        assert config.lock.stale_after == 900
        assert config.merge.model == "sonnet"
        assert config.merge.deadline == 600

    def test_project_file_discovered(self, tmp_path: Path):
        (tmp_path / ".docs").mkdir()
        (tmp_path / ".docs" / "workmem.toml").write_text('[merge]\nmode = "block"\n')
        config = load_config(cwd=str(tmp_path))
        assert config.merge.mode == "block"

    def test_project_file_wins_over_home(self, tmp_path: Path):
        home = tmp_path / "home" / ".workmem"
        home.mkdir(parents=True)
        (home / "workmem.toml").write_text("[throttle]\nidle_seconds = 10\n")
        project = tmp_path / "proj"
        (project / ".docs").mkdir(parents=True)
        (project / ".docs" / "workmem.toml").write_text("[throttle]\nidle_seconds = 20\n")

        assert load_config(cwd=str(project)).throttle.idle_seconds == 20
        assert load_config(cwd=str(tmp_path / "elsewhere")).throttle.idle_seconds == 10

    def test_home_file_moves_docs_dir(self, tmp_path: Path):
        home = tmp_path / "home" / ".workmem"
        home.mkdir(parents=True)
        (home / "workmem.toml").write_text('docs_dir = "notes"\n\n[throttle]\nidle_seconds = 10\n')
        project = tmp_path / "proj"
        (project / "notes").mkdir(parents=True)
        (project / "notes" / "workmem.toml").write_text("[throttle]\nidle_seconds = 20\n")
        # Ignored: the docs dir has moved.
        (project / ".docs").mkdir()
        (project / ".docs" / "workmem.toml").write_text("[throttle]\nidle_seconds = 30\n")

        config = load_config(cwd=str(project))
        assert config.throttle.idle_seconds == 20
        assert config.docs_dir == "notes"

    def test_env_overrides_toml(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("WORKMEM_MODEL", "opus")
        toml_path = tmp_path / "workmem.toml"
        toml_path.write_text('[merge]\nmodel = "sonnet"\n')
        config = load_config(toml_path)
        assert config.merge.model == "opus"  # env wins

    def test_unknown_mode_falls_back(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("WORKMEM_MERGE_MODE", "sometimes")
        config = load_config(cwd=str(tmp_path))
        assert config.merge.mode == "background"

    def test_warns_when_stale_threshold_below_deadline(self, tmp_path: Path, caplog):
        toml_path = tmp_path / "workmem.toml"
        toml_path.write_text("[lock]\nstale_after = 60\n\n[merge]\ndeadline = 120\n")
        with caplog.at_level(logging.WARNING, logger="workmem.config"):
            load_config(toml_path)
        assert "stale_after" in caplog.text
