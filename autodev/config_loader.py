"""
Configuration loader for AutoDev.
Merges defaults with per-repo .autodev/config.yaml overrides,
and persists updates back to the repo store.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")


class RoutingConfig(_Strict):
    researcher: str = "gemini/gemini-3-flash-preview"
    deep_researcher: str = "gemini/gemini-3.1-pro-preview"
    analyzer: str = "gemini/gemini-3.1-pro-preview"
    planner: str = "gemini/gemini-3.1-pro-preview"
    coder: str = "gemini/gemini-3.1-pro-preview"
    reviewer: str = "gemini/gemini-3.1-pro-preview"
    summarizer: str = "gemini/gemini-3-flash-preview"
    fallback_model: str = "gemini/gemini-3-flash-preview"
    token_threshold: int = 200_000
    search_grounding: bool = True


class LimitsConfig(_Strict):
    max_files_per_run: int = Field(15, ge=1)
    max_daily_runs: int = Field(3, ge=1)
    max_lines_changed: int = Field(500, ge=1)
    max_research_queries: int = Field(30, ge=0)
    max_parallel_agents: int = Field(2, ge=1)
    max_retries: int = Field(2, ge=0)
    coder_concurrency: int = Field(2, ge=1)
    build_timeout_seconds: int = Field(180, ge=1)
    max_file_bytes: int = Field(500_000, ge=1)


class GitConfig(_Strict):
    target_branch: str = "main"
    work_branch_prefix: str = "autodev/"
    commit_tag: str = "[AutoDev]"


class BuildConfig(_Strict):
    require_build_pass: bool = True
    command: list[str] | None = None


class ScheduleConfig(_Strict):
    enabled: bool = False
    daily_at: str = Field("03:00", pattern=r"^([01]\d|2[0-3]):[0-5]\d$")


class NotifyConfig(_Strict):
    enabled: bool = False
    target: str = ""


class LedgerConfig(_Strict):
    issues_file: str = "AUTODEV_ISSUES.md"
    feedback_file: str = "AUTODEV_FEEDBACK.md"
    max_pending_issues: int = 30
    max_pending_feedback: int = 20
    max_entries: int = 200


class AutoDevConfig(_Strict):
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    notify: NotifyConfig = Field(default_factory=NotifyConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    categories: list[str] = Field(
        default_factory=lambda: ["security", "quality", "performance", "dependencies", "tests"]
    )


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"

CONFIG_DIR = ".autodev"


def repo_config_path(repo_path: Path) -> Path:
    return repo_path / CONFIG_DIR / "config.yaml"


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(repo_path: Path | None = None) -> AutoDevConfig:
    """
    Load config by merging:
      1. Built-in defaults (autodev/config.yaml)
      2. Repo-level overrides (<repo>/.autodev/config.yaml)
    """
    with open(_DEFAULT_CONFIG_PATH, "r") as f:
        base: dict[str, Any] = yaml.safe_load(f) or {}

    if repo_path:
        repo_config = repo_config_path(repo_path)
        if repo_config.exists():
            with open(repo_config, "r") as f:
                overrides: dict[str, Any] = yaml.safe_load(f) or {}
            base = _deep_merge(base, overrides)

    return AutoDevConfig(**base)


def save_config(config: AutoDevConfig, repo_path: Path) -> Path:
    """Persist the full config to the repo-level store."""
    path = repo_config_path(repo_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(config.model_dump(mode="json"), f, sort_keys=False)
    return path


def merge_config(config: AutoDevConfig, updates: dict[str, Any]) -> AutoDevConfig:
    """Apply a partial mapping on top of an existing config and re-validate."""
    merged = _deep_merge(config.model_dump(mode="json"), updates)
    return AutoDevConfig(**merged)


def parse_assignment(assignment: str) -> dict[str, Any]:
    """
    Turn a dotted `key=value` assignment into a nested update mapping.

    The value is parsed as YAML so `limits.max_retries=3` yields an int
    and `build.require_build_pass=false` yields a bool.
    """
    if "=" not in assignment:
        raise ValueError(f"Expected KEY=VALUE, got: {assignment!r}")
    key, raw = assignment.split("=", 1)
    parts = [p for p in key.strip().split(".") if p]
    if not parts:
        raise ValueError(f"Empty key in assignment: {assignment!r}")

    value: Any = yaml.safe_load(raw) if raw.strip() else ""
    for part in reversed(parts):
        value = {part: value}
    return value


def validate_api_keys() -> dict[str, bool]:
    """Check which API keys are available."""
    return {
        "ANTHROPIC_API_KEY": bool(os.environ.get("ANTHROPIC_API_KEY")),
        "OPENAI_API_KEY":    bool(os.environ.get("OPENAI_API_KEY")),
        "GOOGLE_API_KEY":    bool(os.environ.get("GOOGLE_API_KEY")),
        "GEMINI_API_KEY":    bool(os.environ.get("GEMINI_API_KEY")),
    }
