from datetime import datetime, timezone

from autodev.history import RunHistory
from autodev.state import Improvement, Run, RunStatus


def _run(status=RunStatus.COMPLETED, started_at=None, pr_url=None, cost=0.0):
    run = Run(status=status, pr_url=pr_url, usage={"estimated_cost": cost})
    if started_at:
        run.started_at = started_at
    return run


def test_empty_history(tmp_path):
    hist = RunHistory(tmp_path)
    assert hist.all() == []
    assert hist.stats() == {"total_runs": 0}
    assert hist.runs_started_on() == 0


def test_record_and_reload(tmp_path):
    run = _run(pr_url="https://github.com/o/r/pull/1")
    run.improvements.append(Improvement(file="a.py", applied=True))
    RunHistory(tmp_path).record(run)

    loaded = RunHistory(tmp_path).all()
    assert len(loaded) == 1
    assert loaded[0].id == run.id
    assert loaded[0].status == RunStatus.COMPLETED
    assert len(loaded[0].applied) == 1


def test_history_is_capped(tmp_path):
    hist = RunHistory(tmp_path, max_runs=3)
    runs = [_run() for _ in range(5)]
    for run in runs:
        hist.record(run)

    assert [r.id for r in hist.all()] == [r.id for r in runs[-3:]]


def test_runs_started_today(tmp_path):
    hist = RunHistory(tmp_path)
    today = datetime.now(timezone.utc).isoformat()
    hist.record(_run(started_at=today))
    hist.record(_run(started_at="2001-01-01T00:00:00+00:00"))

    assert hist.runs_started_on() == 1
    assert hist.runs_started_on("2001-01-01") == 1


def test_stats(tmp_path):
    hist = RunHistory(tmp_path)
    hist.record(_run(pr_url="https://github.com/o/r/pull/1", cost=0.5))
    hist.record(_run(status=RunStatus.FAILED, cost=0.25))

    s = hist.stats()
    assert s["total_runs"] == 2
    assert s["success_rate"] == 50.0
    assert s["prs_opened"] == 1
    assert s["total_cost"] == 0.75
    assert s["statuses"] == {"completed": 1, "failed": 1}


def test_corrupt_history_starts_fresh(tmp_path):
    path = tmp_path / ".autodev" / "history.json"
    path.parent.mkdir()
    path.write_text("{not json")
    assert RunHistory(tmp_path).all() == []
