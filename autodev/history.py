"""
AutoDev Run History

Persists finished runs to <repo>/.autodev/history.json, oldest evicted
first once the cap is reached. Also answers "how many runs started
today" for the daily limit.
"""

from __future__ import annotations

import json
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from autodev.state import Run, RunStatus

MAX_HISTORY = 50


class RunHistory:

    def __init__(self, repo_path: Path, max_runs: int = MAX_HISTORY):
        self.path = Path(repo_path) / ".autodev" / "history.json"
        self.max_runs = max_runs

    def _load(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"[HISTORY] Unreadable history file, starting fresh: {e}")
            return []
        return data if isinstance(data, list) else []

    def record(self, run: Run) -> None:
        entries = self._load()
        entries.append(run.model_dump(mode="json"))
        if len(entries) > self.max_runs:
            entries = entries[-self.max_runs:]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(entries, indent=2), encoding="utf-8")
        logger.debug(f"[HISTORY] Recorded {run.id} ({run.status.value})")

    def all(self) -> list[Run]:
        runs: list[Run] = []
        for entry in self._load():
            try:
                runs.append(Run.model_validate(entry))
            except ValueError as e:
                logger.debug(f"[HISTORY] Skipping malformed entry: {e}")
        return runs

    def recent(self, count: int = 10) -> list[Run]:
        return self.all()[-count:]

    def runs_started_on(self, day: str | None = None) -> int:
        day = day or datetime.now(timezone.utc).date().isoformat()
        return sum(1 for run in self.all() if run.started_at.startswith(day))

    def stats(self) -> dict[str, Any]:
        runs = self.all()
        if not runs:
            return {"total_runs": 0}

        statuses = Counter(run.status.value for run in runs)
        completed = statuses.get(RunStatus.COMPLETED.value, 0)
        total_cost = sum(run.usage.get("estimated_cost", 0.0) for run in runs)
        return {
            "total_runs": len(runs),
            "success_rate": round(100 * completed / len(runs), 1),
            "prs_opened": sum(1 for run in runs if run.pr_url),
            "improvements_applied": sum(len(run.applied) for run in runs),
            "total_cost": total_cost,
            "statuses": dict(statuses),
        }
