"""Tests for the command line interface."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner
from structlog.testing import capture_logs

from repo_sync import cli as cli_module
from repo_sync.config.settings import get_settings


@pytest.fixture
def runner(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> CliRunner:
    monkeypatch.setattr(cli_module, "configure_logging", lambda log_level: None)
    monkeypatch.setenv("REPO_SYNC_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("REPO_SYNC_TELEMETRY_DISABLED", "true")
    get_settings.cache_clear()
    yield CliRunner()
    get_settings.cache_clear()


@pytest.mark.unit
class TestCli:
    """Tests for the repo-sync CLI."""

    def test_discover_prints_repositories_as_json(self, runner: CliRunner, tmp_path: Path) -> None:
        (tmp_path / "notes").mkdir()
        config_file = tmp_path / "repo-sync.json"
        config_file.write_text(
            json.dumps({"repos": [{"type": "local", "path": "notes", "exclude": {"paths": ["drafts"]}}]})
        )

        with capture_logs():
            result = runner.invoke(cli_module.cli, ["discover", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        [repo] = json.loads(result.stdout)
        assert repo["vcs"] == "local"
        assert repo["name"] == "notes"
        assert repo["excluded_paths"] == ["drafts"]

    def test_invalid_config_exits_with_error(self, runner: CliRunner, tmp_path: Path) -> None:
        config_file = tmp_path / "broken.json"
        config_file.write_text("{")

        with capture_logs():
            result = runner.invoke(cli_module.cli, ["discover", "--config", str(config_file)])

        assert result.exit_code == 1
        assert "Unable to read config file" in result.output
