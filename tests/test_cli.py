from typer.testing import CliRunner

from autodev import __version__
from autodev.cli import app
from autodev.config_loader import load_config
from autodev.ledger import IssueLedger

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert f"AUTODEV v{__version__}" in result.stdout


def test_config_set_persists(tmp_path):
    result = runner.invoke(app, ["config", "set", "limits.max_retries=4", "git.target_branch=develop", "--repo", str(tmp_path)])
    assert result.exit_code == 0, result.stdout

    config = load_config(tmp_path)
    assert config.limits.max_retries == 4
    assert config.git.target_branch == "develop"


def test_config_set_rejects_invalid_value(tmp_path):
    result = runner.invoke(app, ["config", "set", "limits.max_daily_runs=0", "--repo", str(tmp_path)])
    assert result.exit_code == 1
    assert not (tmp_path / ".autodev" / "config.yaml").exists()


def test_feedback_and_issues(tmp_path):
    result = runner.invoke(app, ["feedback", "Please add retries to the HTTP client", "--repo", str(tmp_path)])
    assert result.exit_code == 0

    assert len(IssueLedger(tmp_path).pending_feedback()) == 1

    result = runner.invoke(app, ["issues", "--repo", str(tmp_path)])
    assert result.exit_code == 0
    assert "Please add retries" in result.stdout


def test_history_empty(tmp_path):
    result = runner.invoke(app, ["history", "--repo", str(tmp_path)])
    assert result.exit_code == 0
    assert "No history yet" in result.stdout


def test_init_creates_config(tmp_path):
    result = runner.invoke(app, ["init", str(tmp_path)])
    assert result.exit_code == 0
    assert (tmp_path / ".autodev" / "config.yaml").exists()
    assert ".autodev/" in (tmp_path / ".gitignore").read_text()
