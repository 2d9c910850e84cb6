import pytest
from pydantic import ValidationError

from autodev.config_loader import (
    AutoDevConfig,
    load_config,
    merge_config,
    parse_assignment,
    repo_config_path,
    save_config,
)


def test_defaults():
    config = load_config()
    assert config.limits.max_files_per_run == 15
    assert config.limits.max_daily_runs == 3
    assert config.limits.max_lines_changed == 500
    assert config.limits.max_retries == 2
    assert config.git.target_branch == "main"
    assert config.git.work_branch_prefix == "autodev/"
    assert config.build.require_build_pass is True
    assert config.schedule.enabled is False
    assert config.categories == ["security", "quality", "performance", "dependencies", "tests"]


def test_repo_override_is_deep_merged(tmp_path):
    path = repo_config_path(tmp_path)
    path.parent.mkdir()
    path.write_text("limits:\n  max_retries: 5\n")

    config = load_config(tmp_path)
    assert config.limits.max_retries == 5
    assert config.limits.max_daily_runs == 3


def test_unknown_keys_rejected(tmp_path):
    path = repo_config_path(tmp_path)
    path.parent.mkdir()
    path.write_text("limits:\n  max_retires: 5\n")

    with pytest.raises(ValidationError):
        load_config(tmp_path)


def test_save_then_load_roundtrip(tmp_path):
    config = merge_config(AutoDevConfig(), {"schedule": {"enabled": True, "daily_at": "04:30"}})
    save_config(config, tmp_path)

    loaded = load_config(tmp_path)
    assert loaded.schedule.enabled is True
    assert loaded.schedule.daily_at == "04:30"


def test_merge_config_validates():
    with pytest.raises(ValidationError):
        merge_config(AutoDevConfig(), {"schedule": {"daily_at": "25:99"}})
    with pytest.raises(ValidationError):
        merge_config(AutoDevConfig(), {"limits": {"max_daily_runs": 0}})


def test_parse_assignment():
    assert parse_assignment("limits.max_retries=3") == {"limits": {"max_retries": 3}}
    assert parse_assignment("build.require_build_pass=false") == {"build": {"require_build_pass": False}}
    assert parse_assignment("git.target_branch=develop") == {"git": {"target_branch": "develop"}}
    assert parse_assignment('schedule.daily_at="03:15"') == {"schedule": {"daily_at": "03:15"}}


def test_parse_assignment_rejects_garbage():
    with pytest.raises(ValueError):
        parse_assignment("no_equals_sign")
    with pytest.raises(ValueError):
        parse_assignment("=value")
