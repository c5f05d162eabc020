"""Tests for the command-line interface."""

import pytest
import yaml
from click.testing import CliRunner

from cli import cli
from impact_sync import __version__
from impact_sync.database.schema import reset_engine


@pytest.fixture
def config_file(tmp_path):
    reset_engine()
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "database": {"url": f"sqlite:///{tmp_path / 'cli.db'}"},
        "logging": {"level": "WARNING"},
    }))
    yield str(path)
    reset_engine()


class TestCli:

    def test_version(self):
        result = CliRunner().invoke(cli, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_db_init_and_stats(self, config_file, tmp_path):
        runner = CliRunner()

        init = runner.invoke(cli, ["--config", config_file, "db", "init"])
        assert init.exit_code == 0
        assert (tmp_path / "cli.db").exists()

        stats = runner.invoke(cli, ["--config", config_file, "db", "stats"])
        assert stats.exit_code == 0
        assert "Recordings: 0" in stats.output
        assert "Analyses: 0" in stats.output

    def test_analyze_requires_impact_frame(self, tmp_path):
        clip = tmp_path / "swing.avi"
        clip.write_bytes(b"")
        result = CliRunner().invoke(cli, ["analyze", str(clip), "--frame-rate", "120"])
        assert result.exit_code != 0
        assert "--impact-frame" in result.output
