import asyncio
import json

import pytest

from autodev.auditor import DependencyReport
from autodev.config_loader import AutoDevConfig, load_config
from autodev.controller import (
    Controller,
    DailyLimitError,
    RunAlreadyActiveError,
    build_commit_message,
    build_pr_title,
    split_batches,
)
from autodev.event_bus import CONFIG_UPDATED, NOTIFY, RUN_COMPLETED, RUN_STARTED
from autodev.history import RunHistory
from autodev.router import RouterResponse, UsageTracker
from autodev.state import Improvement, PlanStep, Run, RunStatus
from autodev.workspace.build import BuildResult

FINDINGS = {
    "findings": [
        {
            "category": "security",
            "query": "lodash advisories",
            "findings": "lodash < 4.17.21 has a prototype pollution CVE",
            "sources": ["https://nvd.nist.gov/vuln/detail/CVE-2021-23337"],
            "actionable": True,
        }
    ]
}
IMPROVEMENTS = {
    "improvements": [
        {"file": "app.py", "category": "quality", "description": "Tidy output", "estimated_lines": 4},
    ]
}
PLAN = {
    "plan": [
        {"step": 1, "file": "app.py", "action": "modify", "description": "Tidy output",
         "category": "quality", "estimated_lines": 4, "source": "https://nvd.nist.gov"},
    ]
}
FIX_PLAN = {"plan": [{"step": 1, "file": "app.py", "description": "Fix the build"}]}
CODE = {
    "modified_code": "print('tidy')\n",
    "changes_description": "Tidied the greeting",
    "sources_consulted": ["https://nvd.nist.gov"],
}
APPROVE = {"decision": "approve", "confidence": 0.9, "summary": "Looks good"}


def _planner(messages):
    return FIX_PLAN if "Failure:" in messages[-1]["content"] else PLAN


class FakeRouter:
    def __init__(self, **overrides):
        self.script = {
            "researcher": FINDINGS,
            "deep_researcher": {"findings": []},
            "analyzer": IMPROVEMENTS,
            "planner": _planner,
            "coder": CODE,
            "reviewer": APPROVE,
        }
        self.script.update(overrides)
        self.calls: list[str] = []
        self.completed: dict[str, list] = {}
        self.configured = 0
        self.usage = UsageTracker()

    def configure(self, config):
        self.configured += 1

    def reset_usage(self):
        self.usage = UsageTracker()

    def resolve_model(self, role):
        return f"fake/{role}"

    async def invoke(self, role, messages, tools=None, executor=None, max_turns=8, grounded=False):
        self.calls.append(role)
        reply = self.script.get(role)
        if callable(reply):
            reply = reply(messages)
        content = json.dumps(reply) if reply is not None else "I could not do it."
        return reply, RouterResponse(content=content, model=f"fake/{role}")

    async def complete(self, role, messages, **kwargs):
        self.calls.append(role)
        self.completed[role] = messages
        return RouterResponse(content="Tidied app.py after research.", model=f"fake/{role}")


class FakeGit:
    def __init__(self, remote=True, gh=True, lines=12):
        self.target_branch = "main"
        self.branch_prefix = "autodev/"
        self.commit_tag = "[AutoDev]"
        self.protected = frozenset({"main", "master"})
        self.remote = remote
        self.gh = gh
        self.lines = lines
        self.branch = "main"
        self.ops: list[tuple] = []

    def kinds(self):
        return [op[0] for op in self.ops]

    def has_remote(self, name="origin"):
        return self.remote

    def is_gh_authenticated(self):
        return self.gh

    def current_branch(self):
        return self.branch

    def create_work_branch(self, name):
        self.branch = f"{self.branch_prefix}{name}"
        self.ops.append(("branch", self.branch))
        return self.branch

    def stage_all(self):
        self.ops.append(("stage",))

    def diff_line_count(self):
        return self.lines

    def full_diff(self):
        return "diff --git a/app.py b/app.py\n-print('hello')\n+print('tidy')\n"

    def commit(self, message):
        self.ops.append(("commit", message))
        return "abc1234"

    def push_branch(self, name):
        self.ops.append(("push", name))

    def create_pr(self, title, body, base):
        self.ops.append(("pr", title, body, base))
        return "https://github.com/acme/app/pull/7"

    def switch_branch(self, name):
        self.branch = name
        self.ops.append(("switch", name))

    def cleanup_branch(self, name):
        self.branch = self.target_branch
        self.ops.append(("cleanup", name))


class FakeScanner:
    def scan(self, repo_path):
        return DependencyReport()


def _passing_build(repo, command, timeout):
    return BuildResult(passed=True, command=["make"])


@pytest.fixture
def repo(tmp_path):
    (tmp_path / "app.py").write_text("print('hello')\n")
    return tmp_path


def _controller(repo, router=None, git=None, build_runner=_passing_build, **limits):
    config = AutoDevConfig()
    config.categories = ["security", "quality"]
    for key, value in limits.items():
        setattr(config.limits, key, value)
    ctl = Controller(
        repo,
        config,
        router=router or FakeRouter(),
        git=git or FakeGit(),
        scanner=FakeScanner(),
        build_runner=build_runner,
    )
    events = []
    ctl.bus.subscribe(events.append)
    return ctl, events


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

def test_full_run_opens_pr(repo):
    git = FakeGit()
    ctl, events = _controller(repo, git=git)
    ctl.ledger.log_issue("build_failure", "old failure", run_id="run_old")

    run = asyncio.run(ctl.run())

    assert run.status == RunStatus.COMPLETED
    assert run.pr_url == "https://github.com/acme/app/pull/7"
    assert run.branch_name.startswith("autodev/")
    assert run.summary == "Tidied app.py after research."
    assert run.completed_at is not None
    assert (repo / "app.py").read_text() == "print('tidy')\n"

    assert git.kinds() == ["branch", "stage", "commit", "push", "pr", "switch", "cleanup"]
    commit_message = git.ops[2][1]
    assert commit_message.startswith("Automated improvements: quality")
    pr = git.ops[4]
    assert pr[1] == "quality: 1 automated improvements"
    assert "## Research Conducted" in pr[2]
    assert pr[3] == "main"

    assert len(run.actionable_findings) == 2
    roles = {t.description for t in run.agent_tasks}
    assert {"security_researcher", "quality_researcher", "dependency_audit", "analyzer", "planner"} <= roles

    assert ctl.ledger.pending_issues() == []
    assert ctl.current_run is None
    assert [r.id for r in RunHistory(repo).all()] == [run.id]
    assert events[0].event_type == RUN_STARTED
    assert events[-1].event_type == RUN_COMPLETED


def test_summary_reports_elapsed_duration(repo):
    router = FakeRouter()
    ctl, _ = _controller(repo, router=router)

    asyncio.run(ctl.run())

    prompt = router.completed["summarizer"][-1]["content"]
    assert '"duration": "0 min"' in prompt
    assert "in progress" not in prompt


def test_no_improvements_completes_without_branch(repo):
    git = FakeGit()
    router = FakeRouter(analyzer={"improvements": []})
    ctl, _ = _controller(repo, router=router, git=git)

    run = asyncio.run(ctl.run())

    assert run.status == RunStatus.COMPLETED
    assert run.summary == "No actionable improvements found after research."
    assert run.branch_name is None
    assert git.ops == []
    assert "planner" not in router.calls


def test_empty_plan_completes_without_branch(repo):
    git = FakeGit()
    ctl, _ = _controller(repo, router=FakeRouter(planner={"plan": []}), git=git)

    run = asyncio.run(ctl.run())

    assert run.status == RunStatus.COMPLETED
    assert run.summary == "Plan generation produced no actionable steps."
    assert git.ops == []


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

def test_missing_remote_fails_with_one_limitation(repo):
    git = FakeGit(remote=False)
    router = FakeRouter()
    ctl, _ = _controller(repo, router=router, git=git)

    run = asyncio.run(ctl.run())

    assert run.status == RunStatus.FAILED
    assert run.branch_name is None
    assert git.ops == []
    assert router.calls == []
    issues = ctl.ledger.pending_issues()
    assert len(issues) == 1
    assert "[LIMITATION]" in issues[0]


def test_gh_not_authenticated_fails(repo):
    ctl, _ = _controller(repo, git=FakeGit(gh=False))
    run = asyncio.run(ctl.run())
    assert run.status == RunStatus.FAILED
    assert "gh auth login" in run.error


def test_line_budget_exceeded_preserves_branch(repo):
    git = FakeGit(lines=10_000)
    ctl, _ = _controller(repo, git=git)

    run = asyncio.run(ctl.run())

    assert run.status == RunStatus.FAILED
    assert "line limit" in run.error
    assert "reviewer" not in ctl.router.calls
    assert "cleanup" not in git.kinds()
    assert "pr" not in git.kinds()
    assert ("push", run.branch_name) in git.ops
    assert git.ops[-1] == ("switch", "main")
    assert "[LIMITATION]" in ctl.ledger.pending_issues()[0]


def test_build_failing_every_time_exhausts_retries(repo):
    builds = []

    def failing_build(repo_path, command, timeout):
        builds.append(command)
        return BuildResult(passed=False, command=["make"], output="error: missing semicolon")

    git = FakeGit()
    router = FakeRouter()
    ctl, _ = _controller(repo, router=router, git=git, build_runner=failing_build, max_retries=2)

    run = asyncio.run(ctl.run())

    assert run.status == RunStatus.FAILED
    assert len(builds) == 3
    assert router.calls.count("reviewer") == 3
    # One initial plan plus one fix plan per retry.
    assert router.calls.count("planner") == 3
    assert "pr" not in git.kinds()
    assert "[BUILD_FAILURE]" in ctl.ledger.pending_issues()[0]


def test_build_fixed_on_retry_opens_pr(repo):
    results = iter([False, True])

    def flaky_build(repo_path, command, timeout):
        return BuildResult(passed=next(results), command=["make"], output="boom")

    git = FakeGit()
    ctl, _ = _controller(repo, git=git, build_runner=flaky_build)
    run = asyncio.run(ctl.run())

    assert run.status == RunStatus.COMPLETED
    assert any(i.agent_role == "fix_agent_1" for i in run.applied)
    assert len(run.applied) == 2
    pr = next(op for op in git.ops if op[0] == "pr")
    assert pr[1] == "quality: 1 automated improvements"


def test_review_rejection_with_no_retries(repo):
    router = FakeRouter(reviewer={"decision": "reject", "summary": "Breaks the API", "issues": ["app.py:1"]})
    ctl, _ = _controller(repo, router=router, max_retries=0)

    run = asyncio.run(ctl.run())

    assert run.status == RunStatus.FAILED
    assert "Breaks the API" in run.error
    assert "[REVIEW_REJECTION]" in ctl.ledger.pending_issues()[0]


def test_unparseable_review_counts_as_rejection(repo):
    ctl, _ = _controller(repo, router=FakeRouter(reviewer=None), max_retries=0)
    run = asyncio.run(ctl.run())
    assert run.status == RunStatus.FAILED


def test_every_coding_step_failing(repo):
    git = FakeGit()
    ctl, _ = _controller(repo, router=FakeRouter(coder=None), git=git)

    run = asyncio.run(ctl.run())

    assert run.status == RunStatus.FAILED
    assert run.error == "No improvements were successfully applied"
    assert run.improvements and not run.applied
    assert (repo / "app.py").read_text() == "print('hello')\n"
    assert git.ops[-1] == ("switch", "main")
    categories = " ".join(ctl.ledger.pending_issues())
    assert "[CODING_ERROR]" in categories


def test_step_outside_repo_is_not_recorded(repo):
    plan = {"plan": [
        {"step": 1, "file": "../outside.py", "description": "escape"},
        {"step": 2, "file": "app.py", "description": "tidy"},
    ]}
    ctl, _ = _controller(repo, router=FakeRouter(planner=plan))

    run = asyncio.run(ctl.run())

    assert run.status == RunStatus.COMPLETED
    assert [i.file for i in run.improvements] == ["app.py"]
    assert not (repo.parent / "outside.py").exists()


def test_research_failure_does_not_stop_run(repo):
    def broken(messages):
        raise RuntimeError("search backend down")

    ctl, _ = _controller(repo, router=FakeRouter(researcher=broken, deep_researcher=broken))
    run = asyncio.run(ctl.run())

    assert run.status == RunStatus.COMPLETED
    failed = {t.description for t in run.agent_tasks if t.status == "failed"}
    assert {"security_researcher", "quality_researcher", "deep_researcher"} <= failed


# ---------------------------------------------------------------------------
# Abort and rejections
# ---------------------------------------------------------------------------

def test_abort_mid_coding(repo):
    git = FakeGit()
    two_steps = {"plan": [
        {"step": 1, "file": "app.py", "description": "first"},
        {"step": 2, "file": "app.py", "description": "second"},
    ]}
    holder = {}

    def coder(messages):
        holder["ctl"].abort()
        return CODE

    ctl, _ = _controller(repo, router=FakeRouter(planner=two_steps, coder=coder), git=git)
    holder["ctl"] = ctl

    run = asyncio.run(ctl.run())

    assert run.status == RunStatus.ABORTED
    assert len(run.improvements) == 1
    assert not {"commit", "push", "pr"} & set(git.kinds())
    assert git.ops[-1] == ("cleanup", run.branch_name)
    assert ctl.abort() is False


def test_second_run_rejected_while_active(repo):
    ctl, _ = _controller(repo)

    async def scenario():
        first = asyncio.create_task(ctl.run())
        await asyncio.sleep(0)
        with pytest.raises(RunAlreadyActiveError):
            await ctl.run()
        return await first

    run = asyncio.run(scenario())
    assert run.status == RunStatus.COMPLETED


def test_daily_limit_rejects_before_starting(repo):
    RunHistory(repo).record(Run(status=RunStatus.COMPLETED))
    ctl, events = _controller(repo, max_daily_runs=1)

    with pytest.raises(DailyLimitError):
        asyncio.run(ctl.run())

    assert events == []
    assert ctl.current_run is None


# ---------------------------------------------------------------------------
# Config, notifications, report builders
# ---------------------------------------------------------------------------

def test_update_config_persists_and_reconfigures(repo):
    router = FakeRouter()
    git = FakeGit()
    ctl, events = _controller(repo, router=router, git=git)
    before = router.configured

    ctl.update_config({"git": {"target_branch": "develop"}, "limits": {"max_retries": 4}})

    assert router.configured == before + 1
    assert git.target_branch == "develop"
    assert "develop" in git.protected
    assert load_config(repo).limits.max_retries == 4
    assert events[-1].event_type == CONFIG_UPDATED


def test_notify_event_when_enabled(repo):
    ctl, events = _controller(repo)
    ctl.config.notify.enabled = True
    ctl.config.notify.target = "#releases"

    asyncio.run(ctl.run())

    notify = [e for e in events if e.event_type == NOTIFY]
    assert len(notify) == 1
    assert notify[0].payload["target"] == "#releases"
    assert "pull/7" in notify[0].payload["message"]


def test_commit_message_and_title():
    run = Run()
    run.improvements = [
        Improvement(file="a.py", category="security", description="Pin lodash", applied=True,
                    research_sources=["https://a"]),
        Improvement(file="b.py", category="quality", description="Tidy", applied=True,
                    research_sources=["https://a", "https://b"]),
        Improvement(file="c.py", category="tests", description="Failed", applied=False),
    ]

    message = build_commit_message(run)
    assert message.splitlines()[0] == "Automated improvements: security, quality"
    assert "- [security] a.py: Pin lodash" in message
    assert "c.py" not in message
    assert message.splitlines()[-1] == "Files: 2 | Sources: https://a, https://b"
    assert build_pr_title(run) == "security, quality: 2 automated improvements"


def test_split_batches_is_contiguous():
    steps = [PlanStep(step=i, file=f"f{i}.py") for i in range(5)]
    batches = split_batches(steps, 2)
    assert [[s.step for s in b] for b in batches] == [[0, 1, 2], [3, 4]]
    assert split_batches([], 2) == []
