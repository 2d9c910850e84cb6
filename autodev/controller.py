"""
AutoDev Controller — The Brainstem

The most important piece. It is NOT smart. It is deterministic.

Pipeline per run:
  researching → analyzing → planning → coding → verifying → pushing
  → completed | failed | aborted

Responsibilities:
  - Gate on pre-flight checks (remote, gh auth, daily limit, one run at a time)
  - Fan research out across bounded workers
  - Drive every agent through the Router
  - Apply the plan sequentially on an ephemeral work branch
  - Verify (review + build, concurrently) with bounded auto-correction
  - Commit, push, open the PR, resolve the ledger
  - Persist the branch on failure, discard it on abort
  - Record every categorized failure in the IssueLedger

It never writes code. It only coordinates.
"""

from __future__ import annotations

import asyncio
import math
import threading
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from loguru import logger

from autodev.agents import AgentContext
from autodev.agents.analyzer import AnalyzerAgent
from autodev.agents.implementer import ImplementerAgent
from autodev.agents.planner import FixPlannerAgent, PlannerAgent
from autodev.agents.researcher import DeepResearchAgent, ResearchAgent
from autodev.agents.reviewer import ReviewerAgent, ReviewVerdict
from autodev.agents.summarizer import SummarizerAgent
from autodev.auditor import DependencyReport, DependencyScanner
from autodev.config_loader import AutoDevConfig, CONFIG_DIR, load_config, merge_config, save_config
from autodev.event_bus import (
    AGENT_COMPLETED,
    CONFIG_UPDATED,
    NOTIFY,
    RUN_COMPLETED,
    RUN_STARTED,
    STATUS_CHANGED,
    EventBus,
)
from autodev.history import RunHistory
from autodev.identity import __version__
from autodev.indexer import (
    PathEscapeError,
    dependencies_list,
    read_source_files,
    render_source_context,
    resolve_inside,
)
from autodev.ledger import IssueCategory, IssueLedger
from autodev.parallel import run_parallel
from autodev.router import Router
from autodev.schedule import DailyScheduler
from autodev.state import AgentTask, Improvement, PlanStep, ResearchFinding, Run, RunStatus
from autodev.toolbox import ResearchToolbox
from autodev.workspace import GitGateway
from autodev.workspace.build import BuildResult, run_build

BuildRunner = Callable[[Path, "list[str] | None", int], BuildResult]

# Which configured model an audit-trail role maps to.
_ROLE_MODELS = {
    "research": "researcher",
    "deep_research": "deep_researcher",
    "analysis": "analyzer",
    "planning": "planner",
    "coding": "coder",
    "review": "reviewer",
    "summary": "summarizer",
}


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class RunAlreadyActiveError(RuntimeError):
    """A run was requested while another one is in flight."""


class DailyLimitError(RuntimeError):
    """The configured number of runs for today has been used up."""


class RunAborted(Exception):
    """Raised internally when the cancellation flag is observed."""


class RunFailed(Exception):
    """A categorized, already-ledgered failure that ends the run."""


# ---------------------------------------------------------------------------
# Report builders
# ---------------------------------------------------------------------------

def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def build_commit_message(run: Run) -> str:
    applied = run.applied
    categories = _unique([i.category for i in applied])
    sources = _unique([s for i in applied for s in i.research_sources])[:5]
    lines = [f"Automated improvements: {', '.join(categories)}", ""]
    lines += [f"- [{i.category}] {i.file}: {i.description}" for i in applied]
    lines += ["", f"Files: {len(_unique([i.file for i in applied]))} | Sources: {', '.join(sources)}"]
    return "\n".join(lines)


def build_pr_title(run: Run) -> str:
    applied = run.applied
    categories = _unique([i.category for i in applied])
    files = _unique([i.file for i in applied])
    return f"{', '.join(categories)}: {len(files)} automated improvements"


def build_pr_body(run: Run) -> str:
    applied = run.applied
    body = [
        "## Summary",
        f"AutoDev run `{run.id}`: {len(run.agent_tasks)} agents deployed, {len(applied)} improvements applied.",
        "",
        "## Agents Used",
        *(f"- **{t.description}** ({t.model}) — {t.status}" for t in run.agent_tasks),
        "",
        "## Improvements",
    ]
    for i in applied:
        links = ", ".join(f"[link]({s})" for s in i.research_sources) or "N/A"
        body.append(f"- **[{i.category}]** `{i.file}`: {i.description}\n  Sources: {links}")
    body += ["", "## Research Conducted"]
    for f in run.actionable_findings[:10]:
        links = ", ".join(f"[link]({s})" for s in f.sources) or "N/A"
        body.append(f"- **[{f.category}]** {f.findings}\n  Sources: {links}")
    body += ["", "---", f"*Generated by AutoDev v{__version__}*"]
    return "\n".join(body)


def split_batches(plan: list[PlanStep], slots: int) -> list[list[PlanStep]]:
    """Contiguous batches, at most `slots` of them."""
    if not plan:
        return []
    size = math.ceil(len(plan) / max(1, slots))
    return [plan[i:i + size] for i in range(0, len(plan), size)]


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class Controller:
    """
    Owns one repository and at most one live Run.

    Collaborators can be injected; anything left out is built from config.
    """

    def __init__(
        self,
        repo_path: Path,
        config: AutoDevConfig | None = None,
        *,
        router: Router | None = None,
        git: GitGateway | None = None,
        ledger: IssueLedger | None = None,
        history: RunHistory | None = None,
        scanner: DependencyScanner | None = None,
        build_runner: BuildRunner = run_build,
        bus: EventBus | None = None,
    ):
        self.repo_path = Path(repo_path).resolve()
        self.config = config or load_config(self.repo_path)

        self.router = router or Router(self.config)
        self.ledger = ledger or IssueLedger(
            self.repo_path, self.config.ledger.issues_file, self.config.ledger.feedback_file,
        )
        self.git = git or GitGateway(
            self.repo_path,
            keep_paths=(CONFIG_DIR, self.config.ledger.issues_file, self.config.ledger.feedback_file),
        )
        self.history = history or RunHistory(self.repo_path)
        self.scanner = scanner or DependencyScanner()
        self.build_runner = build_runner
        self.bus = bus or EventBus()
        self.scheduler: DailyScheduler | None = None

        self._apply_config()

        self._current: Run | None = None
        self._cancel = threading.Event()

    # ------------------------------------------------------------------ #
    # Host-facing API
    # ------------------------------------------------------------------ #

    @property
    def current_run(self) -> Run | None:
        return self._current

    @property
    def is_running(self) -> bool:
        return self._current is not None

    def status(self) -> dict[str, Any]:
        run = self._current
        return {
            "running": run is not None,
            "run_id": run.id if run else None,
            "status": run.status.value if run else None,
            "agents": len(run.agent_tasks) if run else 0,
            "runs_today": self.history.runs_started_on(),
            "max_daily_runs": self.config.limits.max_daily_runs,
            "schedule_enabled": self.config.schedule.enabled,
        }

    def abort(self) -> bool:
        """Request cooperative cancellation of the live run."""
        if self._current is None:
            return False
        logger.warning(f"[AUTODEV] Abort requested for {self._current.id}")
        self._cancel.set()
        return True

    async def run(self) -> Run:
        """
        Execute one full run and return its terminal Run record.

        Raises RunAlreadyActiveError / DailyLimitError before anything
        starts. Everything after that ends in a Run with a terminal status.
        """
        run = self._begin()
        return await self._drive(run)

    def update_config(self, updates: dict[str, Any]) -> AutoDevConfig:
        """Merge, validate, persist, and re-wire. Restarts the schedule if it changed."""
        new_config = merge_config(self.config, updates)
        save_config(new_config, self.repo_path)

        schedule_changed = new_config.schedule != self.config.schedule
        self.config = new_config
        self._apply_config()

        self.bus.emit(CONFIG_UPDATED, None, {"config": new_config.model_dump(mode="json")})
        if schedule_changed and self.scheduler is not None:
            self.scheduler.restart(new_config.schedule)
        logger.info("[AUTODEV] Config updated")
        return new_config

    def start_schedule(self) -> DailyScheduler:
        """Attach a daily scheduler to the running event loop."""
        if self.scheduler is None:
            self.scheduler = DailyScheduler(self.run, self.config.schedule)
        self.scheduler.start()
        return self.scheduler

    def stop_schedule(self) -> None:
        if self.scheduler is not None:
            self.scheduler.stop()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def _apply_config(self) -> None:
        cfg = self.config
        self.router.configure(cfg)
        self.git.target_branch = cfg.git.target_branch
        self.git.branch_prefix = cfg.git.work_branch_prefix
        self.git.commit_tag = cfg.git.commit_tag
        self.git.protected = self.git.protected | {cfg.git.target_branch}
        self.ledger.max_pending_issues = cfg.ledger.max_pending_issues
        self.ledger.max_pending_feedback = cfg.ledger.max_pending_feedback
        self.ledger.max_entries = cfg.ledger.max_entries

    def _begin(self) -> Run:
        # No awaits in here: check-and-claim is atomic on the event loop.
        if self._current is not None:
            raise RunAlreadyActiveError(f"Run {self._current.id} is already active")

        today = self.history.runs_started_on()
        if today >= self.config.limits.max_daily_runs:
            raise DailyLimitError(f"Daily limit reached ({self.config.limits.max_daily_runs})")

        run = Run()
        self._current = run
        self._cancel.clear()
        return run

    async def _drive(self, run: Run) -> Run:
        self.router.reset_usage()
        toolbox = ResearchToolbox(self.repo_path, self.config.limits.max_research_queries)
        self.bus.emit(RUN_STARTED, run.id, {"started_at": run.started_at})
        logger.info(f"[AUTODEV] ═══ Run {run.id} started ═══")

        try:
            await self._execute(run, toolbox)
        except RunAborted:
            run.status = RunStatus.ABORTED
            run.error = "Run aborted"
            logger.warning(f"[AUTODEV] Run {run.id} aborted")
            if run.branch_name:
                self.git.cleanup_branch(run.branch_name)
        except RunFailed as e:
            run.status = RunStatus.FAILED
            run.error = str(e)
            logger.error(f"[AUTODEV] Run {run.id} failed: {e}")
            if run.branch_name:
                self._persist_failed_branch(run)
        except Exception as e:
            run.status = RunStatus.FAILED
            run.error = str(e)
            logger.exception(f"[AUTODEV] Run {run.id} crashed")
            self._log_issue(
                "runtime_error", f"Run crashed: {e}",
                "".join(traceback.format_exception(e))[-2000:], run.id,
            )
            if run.branch_name:
                self._persist_failed_branch(run)
        finally:
            run.completed_at = datetime.now(timezone.utc).isoformat()
            run.usage = self.router.usage.summary()
            try:
                self.history.record(run)
            except OSError as e:
                logger.error(f"[AUTODEV] Could not persist run history: {e}")
            self._current = None
            self._cancel.clear()
            self.bus.emit(RUN_COMPLETED, run.id, {"status": run.status.value, "pr_url": run.pr_url, "error": run.error})
            self._notify(run)

        logger.info(f"[AUTODEV] ═══ Run {run.id} {run.status.value} ═══")
        return run

    # ------------------------------------------------------------------ #
    # Pipeline
    # ------------------------------------------------------------------ #

    async def _execute(self, run: Run, toolbox: ResearchToolbox) -> None:
        limits = self.config.limits

        # ── Pre-flight ──
        self._set_status(run, RunStatus.RESEARCHING)
        if not self.git.has_remote():
            self._log_issue(
                "limitation",
                "No git remote configured. AutoDev needs a remote repository to open pull requests.",
                "git remote -v returned no origin", run.id,
            )
            raise RunFailed("No git remote configured")
        if not self.git.is_gh_authenticated():
            self._log_issue(
                "limitation",
                "GitHub CLI is not authenticated. AutoDev needs `gh auth login` to open pull requests.",
                "gh auth status failed", run.id,
            )
            raise RunFailed("GitHub CLI not authenticated (run: gh auth login)")
        self._check_abort()

        # ── 1. Research ──
        known_issues = self.ledger.get_open_issues_summary()
        if known_issues:
            logger.info("[AUTODEV] Open issues from previous runs will be used as context")

        sources = await asyncio.to_thread(read_source_files, self.repo_path, limits.max_file_bytes)
        if not sources:
            self._log_issue("limitation", "No readable source files found in the repository.", None, run.id)
            raise RunFailed("No source files found")

        ctx = AgentContext(
            run_id=run.id,
            repo_path=str(self.repo_path),
            categories=self.config.categories,
            max_files=limits.max_files_per_run,
            max_lines=limits.max_lines_changed,
            max_queries=limits.max_research_queries,
            source_context=render_source_context(sources),
            dependencies=dependencies_list(self.repo_path),
            known_issues=known_issues,
        )

        report = await self._research(run, ctx, toolbox)
        ctx.audit_text = report.audit_text()
        ctx.outdated_text = report.outdated_text()
        ctx.findings = list(run.research_findings)
        self._check_abort()

        deep = await self._deep_research(run, ctx, toolbox)
        run.research_findings.extend(deep)
        ctx.findings = list(run.research_findings)
        self._check_abort()

        # ── 2. Analyze ──
        self._set_status(run, RunStatus.ANALYZING)
        improvements = await AnalyzerAgent(self.router, toolbox).run(ctx)
        self._track(run, "analyzer", "analysis")
        if not improvements:
            run.status = RunStatus.COMPLETED
            run.summary = "No actionable improvements found after research."
            return
        self._check_abort()

        # ── 3. Plan ──
        self._set_status(run, RunStatus.PLANNING)
        plan_ctx = ctx.model_copy(update={"extra": {"improvements": [i.model_dump() for i in improvements]}})
        plan = await PlannerAgent(self.router).run(plan_ctx)
        self._track(run, "planner", "planning")
        if not plan:
            run.status = RunStatus.COMPLETED
            run.summary = "Plan generation produced no actionable steps."
            return
        self._check_abort()

        # ── 4. Code (sequential: one checkout, one writer) ──
        self._set_status(run, RunStatus.CODING)
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M")
        run.branch_name = self.git.create_work_branch(f"{stamp}-{run.id[-6:]}")

        coder = ImplementerAgent(self.router, toolbox)
        for index, batch in enumerate(split_batches(plan, limits.coder_concurrency), start=1):
            self._check_abort()
            agent_name = f"coder_{index}"
            for step in batch:
                self._check_abort()
                await self._apply_step(run, ctx, coder, step, agent_name)
            self._track(run, agent_name, "coding")

        if not run.applied:
            self._log_issue(
                "coding_error",
                "No improvement could be applied in this run. Every coding step failed.",
                f"Steps attempted: {len(plan)}\nAgents: "
                + ", ".join(f"{t.description}: {t.status}" for t in run.agent_tasks),
                run.id,
            )
            raise RunFailed("No improvements were successfully applied")

        # ── 5. Verify with auto-correction ──
        await self._verify(run, ctx, coder)
        self._check_abort()

        # ── 6. Push ──
        self._set_status(run, RunStatus.PUSHING)
        self.git.commit(build_commit_message(run))
        self.git.push_branch(run.branch_name)
        run.pr_url = self.git.create_pr(build_pr_title(run), build_pr_body(run), self.config.git.target_branch)
        self.git.switch_branch(self.config.git.target_branch)

        elapsed = datetime.now(timezone.utc) - datetime.fromisoformat(run.started_at)
        summary_ctx = ctx.model_copy(update={"extra": {"run": run, "elapsed": elapsed}})
        run.summary = await SummarizerAgent(self.router).run(summary_ctx)
        self._track(run, "summarizer", "summary")

        run.status = RunStatus.COMPLETED
        self.ledger.mark_resolved(run.id)
        self.git.cleanup_branch(run.branch_name)
        logger.info(f"[AUTODEV] {len(run.applied)} improvements, PR: {run.pr_url}")

    async def _research(self, run: Run, ctx: AgentContext, toolbox: ResearchToolbox) -> DependencyReport:
        researcher = ResearchAgent(self.router, toolbox)

        def _category_job(category: str):
            return lambda: researcher.run(ctx.model_copy(update={"extra": {"category": category}}))

        jobs = [(f"{category}_researcher", _category_job(category)) for category in self.config.categories]
        jobs.append(("dependency_audit", lambda: asyncio.to_thread(self.scanner.scan, self.repo_path)))

        def _on_done(name: str, result: Any, error: BaseException | None) -> None:
            role = "audit" if name == "dependency_audit" else "research"
            self._track(run, name, role, error)

        results = await run_parallel(jobs, self.config.limits.max_parallel_agents, on_done=_on_done)

        for name, result in results.items():
            if name == "dependency_audit":
                continue
            run.research_findings.extend(f for f in result if isinstance(f, ResearchFinding))

        report = results.get("dependency_audit")
        return report if isinstance(report, DependencyReport) else DependencyReport()

    async def _deep_research(self, run: Run, ctx: AgentContext, toolbox: ResearchToolbox) -> list[ResearchFinding]:
        try:
            findings = await DeepResearchAgent(self.router, toolbox).run(ctx)
        except Exception as e:
            logger.warning(f"[AUTODEV] Deep research failed, continuing without it: {e}")
            self._track(run, "deep_researcher", "deep_research", e)
            return []
        self._track(run, "deep_researcher", "deep_research")
        return findings

    async def _apply_step(
        self,
        run: Run,
        ctx: AgentContext,
        coder: ImplementerAgent,
        step: PlanStep,
        agent_name: str,
    ) -> bool:
        step_ctx = ctx.model_copy(update={"extra": {"step": step, "agent_name": agent_name}})
        try:
            improvement = await coder.run(step_ctx)
        except Exception as e:
            logger.warning(f"[AUTODEV] {agent_name} step failed ({step.file}): {e}")
            self._log_issue(
                "coding_error",
                f"Agent {agent_name} failed to implement changes in `{step.file}`: {e}",
                f"File: {step.file}\nStep: {step.model_dump_json(indent=2)[:1000]}",
                run.id,
            )
            if self._inside_repo(step.file):
                run.improvements.append(Improvement(
                    file=step.file,
                    category=step.category,
                    description=step.description,
                    applied=False,
                    agent_role=agent_name,
                ))
            return False

        run.improvements.append(improvement)
        return True

    async def _verify(self, run: Run, ctx: AgentContext, coder: ImplementerAgent) -> None:
        limits = self.config.limits
        attempt = 0

        while True:
            self._check_abort()
            self._set_status(run, RunStatus.VERIFYING)
            logger.info(f"[AUTODEV] Verification pass {attempt + 1}/{limits.max_retries + 1}")

            self.git.stage_all()
            lines = self.git.diff_line_count()
            if lines > limits.max_lines_changed:
                message = f"Changes exceed line limit: {lines} > {limits.max_lines_changed}"
                self._log_issue("limitation", message, f"Improvements: {len(run.applied)}", run.id)
                raise RunFailed(message)

            diff = self.git.full_diff()
            verdict, build = await asyncio.gather(
                self._review(run, ctx, diff),
                self._build(),
            )
            self._track(run, f"reviewer_attempt_{attempt + 1}", "review")
            self._track(run, f"tester_attempt_{attempt + 1}", "testing", None if build.passed else build.failure_text[:200])

            if build.passed and verdict.approved:
                return

            if attempt >= limits.max_retries:
                if not build.passed:
                    self._log_issue(
                        "build_failure",
                        "The build kept failing after auto-correction.",
                        f"Error:\n{build.failure_text}", run.id,
                    )
                    raise RunFailed("Build failed after applying changes and max retries exhausted")
                self._log_issue(
                    "review_rejection",
                    f"The reviewer kept rejecting the changes: {verdict.summary}",
                    f"Diff size: {len(diff)}\nImprovements: {len(run.improvements)}", run.id,
                )
                raise RunFailed(f"Self-review rejected and max retries exhausted: {verdict.summary}")

            attempt += 1
            logger.warning(f"[AUTODEV] Verification failed, auto-correcting ({attempt}/{limits.max_retries})")
            self._set_status(run, RunStatus.CODING)

            if not build.passed:
                error = f"Build error:\n{build.failure_text}"
            else:
                error = f"Review rejection:\n{verdict.summary}\n" + "\n".join(f"- {i}" for i in verdict.issues)

            fix_plan = await self._fix_plan(run, ctx, diff, error, attempt)
            for step in fix_plan:
                self._check_abort()
                await self._apply_step(run, ctx, coder, step, f"fix_agent_{attempt}")

    async def _review(self, run: Run, ctx: AgentContext, diff: str) -> ReviewVerdict:
        review_ctx = ctx.model_copy(update={"extra": {"diff": diff, "improvements": list(run.improvements)}})
        try:
            return await ReviewerAgent(self.router).run(review_ctx)
        except Exception as e:
            logger.warning(f"[AUTODEV] Review call failed, treating as rejection: {e}")
            return ReviewVerdict(decision="reject", summary=f"Review failed: {e}")

    async def _build(self) -> BuildResult:
        build = self.config.build
        if not build.require_build_pass:
            return BuildResult(passed=True, command=[], output="Build verification disabled")
        return await asyncio.to_thread(
            self.build_runner, self.repo_path, build.command, self.config.limits.build_timeout_seconds,
        )

    async def _fix_plan(self, run: Run, ctx: AgentContext, diff: str, error: str, attempt: int) -> list[PlanStep]:
        fix_ctx = ctx.model_copy(update={"extra": {"diff": diff, "error": error}})
        try:
            plan = await FixPlannerAgent(self.router).run(fix_ctx)
        except Exception as e:
            logger.warning(f"[AUTODEV] Fix planner failed: {e}")
            self._track(run, f"fix_planner_{attempt}", "planning", e)
            return []
        if not plan:
            logger.warning("[AUTODEV] Fix planner produced no steps")
        self._track(run, f"fix_planner_{attempt}", "planning")
        return plan

    # ------------------------------------------------------------------ #
    # Failure handling
    # ------------------------------------------------------------------ #

    def _persist_failed_branch(self, run: Run) -> None:
        """Commit whatever is on the branch, push it if possible, leave it in place."""
        branch = run.branch_name
        if not branch:
            return
        try:
            if self.git.current_branch() == branch:
                self.git.stage_all()
                if self.git.diff_line_count() > 0:
                    self.git.commit(f"Failed run {run.id}: {run.error or 'review needed'}")
                try:
                    self.git.push_branch(branch)
                except Exception as e:
                    logger.warning(f"[AUTODEV] Could not push failed branch {branch}: {e}")
                self.git.switch_branch(self.config.git.target_branch)
            logger.info(f"[AUTODEV] Failed branch preserved: {branch}")
        except Exception as e:
            logger.error(f"[AUTODEV] Could not persist branch {branch}: {e}")

    # ------------------------------------------------------------------ #
    # Utilities
    # ------------------------------------------------------------------ #

    def _check_abort(self) -> None:
        if self._cancel.is_set():
            raise RunAborted()

    def _set_status(self, run: Run, status: RunStatus) -> None:
        run.status = status
        self.bus.emit(STATUS_CHANGED, run.id, {"status": status.value, "agents": len(run.agent_tasks)})

    def _model_for(self, role: str) -> str:
        routed = _ROLE_MODELS.get(role)
        if routed is None:
            return "local"
        try:
            return self.router.resolve_model(routed)
        except ValueError:
            return "unknown"

    def _track(self, run: Run, name: str, role: str, error: BaseException | str | None = None) -> None:
        status = "failed" if error else "completed"
        run.agent_tasks.append(AgentTask(
            id=f"{name}_{uuid.uuid4().hex[:8]}",
            agent_role=role,
            model=self._model_for(role),
            status=status,
            description=name,
            error=str(error) if error else None,
        ))
        self.bus.emit(AGENT_COMPLETED, run.id, {"agent": name, "role": role, "status": status})

    def _log_issue(self, category: IssueCategory, description: str, context: str | None, run_id: str) -> None:
        try:
            self.ledger.log_issue(category, description, context, run_id=run_id)
        except OSError as e:
            logger.error(f"[AUTODEV] Could not write to issue ledger: {e}")

    def _inside_repo(self, rel_path: str) -> bool:
        try:
            resolve_inside(self.repo_path, rel_path)
        except PathEscapeError:
            return False
        return True

    def _notify(self, run: Run) -> None:
        if not self.config.notify.enabled:
            return
        if run.status == RunStatus.COMPLETED:
            message = f"✅ AutoDev finished:\n\n{run.summary or 'Improvements ready.'}\nPR: {run.pr_url or 'N/A'}"
        else:
            message = f"❌ AutoDev {run.status.value}:\n\n{run.error or 'Unknown error'}"
        self.bus.emit(NOTIFY, run.id, {"target": self.config.notify.target, "message": message})
