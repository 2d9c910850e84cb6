"""
AutoDev CLI — The Interface

  autodev run                 (one full research → PR run, in the foreground)
  autodev serve               (daily schedule as a long-lived worker)

Plus utilities:
  - autodev status            (config, API keys, tools, today's runs)
  - autodev history           (previous runs, --stats for aggregates)
  - autodev issues            (pending ledger entries)
  - autodev feedback TEXT     (queue a suggestion for the next run)
  - autodev config show|set   (inspect or change the repo-level config)
  - autodev init              (bootstrap .autodev in a repo)
"""

from __future__ import annotations

import asyncio
import shutil
import signal
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from dotenv import load_dotenv
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from autodev.identity import __codename__, __tagline__, __version__, BANNER
from autodev.config_loader import (
    CONFIG_DIR,
    load_config,
    merge_config,
    parse_assignment,
    repo_config_path,
    save_config,
    validate_api_keys,
)
from autodev.controller import Controller, DailyLimitError, RunAlreadyActiveError
from autodev.event_bus import AGENT_COMPLETED, NOTIFY, RUN_COMPLETED, STATUS_CHANGED, RunEvent
from autodev.history import RunHistory
from autodev.ledger import IssueLedger
from autodev.state import Run, RunStatus

# Load .env from current directory or home
load_dotenv()
load_dotenv(Path.home() / ".autodev" / ".env")

app = typer.Typer(
    name="autodev",
    help=f"{__codename__} — {__tagline__}",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
config_app = typer.Typer(help="Inspect or change the repo-level config.", no_args_is_help=True)
app.add_typer(config_app, name="config")

console = Console()

_STATUS_COLORS = {
    RunStatus.COMPLETED.value: "green",
    RunStatus.ABORTED.value: "yellow",
    RunStatus.FAILED.value: "red",
}


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Banner
# ---------------------------------------------------------------------------


def _print_banner():
    console.print(f"[bright_green]{BANNER}[/]")
    console.print(f"  [dim]v{__version__} — {__tagline__}[/]\n")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def run(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Run one full AutoDev cycle: research, analyze, plan, code, verify, PR."""
    _print_banner()
    repo = _resolve_repo(repo)
    _configure_logging(verbose, repo)

    controller = Controller(repo)
    controller.bus.subscribe(_print_event)

    try:
        result = asyncio.run(_run_once(controller))
    except (RunAlreadyActiveError, DailyLimitError) as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)

    _print_run(result)
    if result.status != RunStatus.COMPLETED:
        raise typer.Exit(1)


@app.command()
def serve(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Stay in the foreground and fire a run every day at the configured time."""
    _print_banner()
    repo = _resolve_repo(repo)
    _configure_logging(verbose, repo)

    controller = Controller(repo)
    if not controller.config.schedule.enabled:
        console.print("[yellow]Schedule is disabled. Enable it with:[/]")
        console.print("  autodev config set schedule.enabled=true")
        raise typer.Exit(1)

    controller.bus.subscribe(_print_event)
    console.print(f"[cyan]Serving {repo.name}: daily run at {controller.config.schedule.daily_at} (Ctrl+C to stop)[/]")
    try:
        asyncio.run(_serve(controller))
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/]")


@app.command()
def status(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository"),
):
    """Check AutoDev configuration and readiness."""
    _print_banner()
    repo = _resolve_repo(repo)
    config = load_config(repo)

    # API Keys
    keys = validate_api_keys()
    key_table = Table(title="API Keys", border_style="cyan")
    key_table.add_column("Key")
    key_table.add_column("Status")
    for key, available in keys.items():
        status_str = "[green]✓ Available[/]" if available else "[red]✗ Missing[/]"
        key_table.add_row(key, status_str)
    console.print(key_table)

    console.print("\n[bold]Routing:[/]")
    for role, model in config.routing.model_dump().items():
        if role in ("token_threshold", "search_grounding"):
            continue
        console.print(f"  {role + ':':<17}{model}")

    limits = config.limits
    runs_today = RunHistory(repo).runs_started_on()
    console.print("\n[bold]Limits:[/]")
    console.print(f"  Runs today:        {runs_today}/{limits.max_daily_runs}")
    console.print(f"  Files per run:     {limits.max_files_per_run}")
    console.print(f"  Lines per run:     {limits.max_lines_changed}")
    console.print(f"  Research queries:  {limits.max_research_queries}")
    console.print(f"  Fix retries:       {limits.max_retries}")
    console.print(f"\n[bold]Schedule:[/] {'daily at ' + config.schedule.daily_at if config.schedule.enabled else 'disabled'}")

    # Tools
    tools_table = Table(title="System Tools", border_style="cyan")
    tools_table.add_column("Tool")
    tools_table.add_column("Status")
    for tool in ["git", "gh", "npm", "pip-audit", "cargo", "go"]:
        found = shutil.which(tool)
        s = f"[green]✓ {found}[/]" if found else "[dim]✗ Not found[/]"
        tools_table.add_row(tool, s)
    console.print(tools_table)


@app.command()
def history(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository"),
    count: int = typer.Option(10, "--count", "-n", help="Number of entries to show"),
    stats: bool = typer.Option(False, "--stats", "-s", help="Show aggregate statistics"),
):
    """View run history and statistics."""
    repo = _resolve_repo(repo)
    hist = RunHistory(repo)

    if stats:
        s = hist.stats()
        if s["total_runs"] == 0:
            console.print("[dim]No history yet.[/]")
            return

        stats_table = Table(title="AutoDev Statistics", border_style="cyan")
        stats_table.add_column("Metric")
        stats_table.add_column("Value")
        stats_table.add_row("Total runs", str(s["total_runs"]))
        stats_table.add_row("Success rate", f"{s['success_rate']}%")
        stats_table.add_row("PRs opened", str(s["prs_opened"]))
        stats_table.add_row("Improvements applied", str(s["improvements_applied"]))
        stats_table.add_row("Total cost", f"${s['total_cost']:.4f}")
        console.print(stats_table)

        status_table = Table(title="Status Breakdown", border_style="dim")
        status_table.add_column("Status")
        status_table.add_column("Count")
        for status_name, cnt in sorted(s["statuses"].items(), key=lambda x: -x[1]):
            status_table.add_row(status_name, str(cnt))
        console.print(status_table)
        return

    runs = hist.recent(count)
    if not runs:
        console.print("[dim]No history yet. Run `autodev run` first.[/]")
        return

    table = Table(title=f"Recent Runs (last {count})", border_style="cyan")
    table.add_column("Started", style="dim")
    table.add_column("Run")
    table.add_column("Status")
    table.add_column("Applied")
    table.add_column("Cost")
    table.add_column("Notes")

    for r in reversed(runs):
        color = _STATUS_COLORS.get(r.status.value, "white")
        cost = f"${r.usage.get('estimated_cost', 0.0):.4f}"
        notes = escape(r.pr_url or (r.error or "")[:50])
        table.add_row(r.started_at[:19], r.id, f"[{color}]{r.status.value}[/]", str(len(r.applied)), cost, notes)

    console.print(table)


@app.command()
def issues(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository"),
):
    """Show pending ledger entries the next run will see."""
    repo = _resolve_repo(repo)
    ledger = _ledger(repo)
    summary = ledger.get_open_issues_summary()
    if not summary:
        console.print("[green]✅ No pending issues or feedback.[/]")
        return
    console.print(Panel(Text(summary.strip()), title="Pending", border_style="yellow"))


@app.command()
def feedback(
    text: str = typer.Argument(..., help="Suggestion for the next run"),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository"),
):
    """Queue a suggestion; the next run treats it as a known issue."""
    repo = _resolve_repo(repo)
    if not text.strip():
        console.print("[red]Feedback text is empty.[/]")
        raise typer.Exit(1)
    _ledger(repo).log_feedback(text.strip(), source="cli")
    console.print("[green]✅ Feedback recorded.[/]")


@config_app.command("show")
def config_show(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository"),
):
    """Print the effective (merged) config."""
    repo = _resolve_repo(repo)
    config = load_config(repo)
    console.print(yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False), highlight=False)


@config_app.command("set")
def config_set(
    assignments: List[str] = typer.Argument(..., help="Dotted KEY=VALUE pairs, e.g. limits.max_retries=3"),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository"),
):
    """Update one or more config values and persist them to the repo store."""
    repo = _resolve_repo(repo)
    config = load_config(repo)
    try:
        for assignment in assignments:
            config = merge_config(config, parse_assignment(assignment))
    except (ValueError, ValidationError) as e:
        console.print(f"[red]Invalid config update:[/] {e}")
        raise typer.Exit(1)

    path = save_config(config, repo)
    console.print(f"[green]✅ Saved {path}[/]")


@app.command()
def init(
    repo: Optional[Path] = typer.Argument(None, help="Path to repository"),
):
    """Initialize .autodev directory in a repository."""
    _print_banner()
    repo = (repo or Path.cwd()).resolve()
    ad_dir = repo / CONFIG_DIR
    ad_dir.mkdir(exist_ok=True)
    (ad_dir / "logs").mkdir(exist_ok=True)

    config_path = repo_config_path(repo)
    if not config_path.exists():
        config_path.write_text("""# AutoDev repo-level config overrides
# These merge with the built-in defaults.

# Route a role to a different model:
# routing:
#   coder: "anthropic/claude-sonnet-4-20250514"

# Adjust limits:
# limits:
#   max_lines_changed: 300
#   max_daily_runs: 1

# Run every day at 03:00 with `autodev serve`:
# schedule:
#   enabled: true
#   daily_at: "03:00"
""")

    gitignore = repo / ".gitignore"
    ignore_entries = [f"{CONFIG_DIR}/"]
    if gitignore.exists():
        content = gitignore.read_text()
        additions = [e for e in ignore_entries if e not in content]
        if additions:
            with open(gitignore, "a") as f:
                f.write("\n# AutoDev\n")
                for e in additions:
                    f.write(f"{e}\n")
    else:
        gitignore.write_text("# AutoDev\n" + "\n".join(ignore_entries) + "\n")

    console.print(f"[green]✅ Initialized AutoDev in {ad_dir}[/]")
    console.print(f"  Config:  {config_path}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _run_once(controller: Controller) -> Run:
    # Ctrl+C becomes a cooperative abort.
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, controller.abort)
    try:
        return await controller.run()
    finally:
        loop.remove_signal_handler(signal.SIGINT)


async def _serve(controller: Controller) -> None:
    controller.start_schedule()
    try:
        await asyncio.Event().wait()
    finally:
        controller.stop_schedule()


def _resolve_repo(repo: Path) -> Path:
    repo = repo.resolve()
    if not repo.exists():
        console.print(f"[red]Repository not found: {repo}[/]")
        raise typer.Exit(1)
    return repo


def _ledger(repo: Path) -> IssueLedger:
    cfg = load_config(repo).ledger
    return IssueLedger(
        repo,
        cfg.issues_file,
        cfg.feedback_file,
        max_pending_issues=cfg.max_pending_issues,
        max_pending_feedback=cfg.max_pending_feedback,
        max_entries=cfg.max_entries,
    )


def _print_event(event: RunEvent) -> None:
    payload = event.payload
    if event.event_type == STATUS_CHANGED:
        console.print(f"[bold cyan]▶ {payload['status']}[/]")
    elif event.event_type == AGENT_COMPLETED:
        mark = "[green]✓[/]" if payload["status"] == "completed" else "[red]✗[/]"
        console.print(f"  {mark} [dim]{payload['agent']}[/]")
    elif event.event_type == NOTIFY:
        console.print(Panel(Text(payload["message"]), title=f"Notify {payload['target'] or ''}".strip(), border_style="magenta"))
    elif event.event_type == RUN_COMPLETED:
        color = _STATUS_COLORS.get(payload["status"], "white")
        console.print(f"[bold {color}]■ {payload['status']}[/]")


def _print_run(result: Run) -> None:
    color = _STATUS_COLORS.get(result.status.value, "white")
    lines = [
        f"Run:          {result.id}",
        f"Status:       [{color}]{result.status.value}[/]",
        f"Agents:       {len(result.agent_tasks)}",
        f"Applied:      {len(result.applied)}/{len(result.improvements)}",
    ]
    if result.branch_name:
        lines.append(f"Branch:       {result.branch_name}")
    if result.pr_url:
        lines.append(f"PR:           {result.pr_url}")
    if result.error:
        lines.append(f"Error:        {escape(result.error)}")
    if result.usage:
        lines.append(f"Cost:         ${result.usage.get('estimated_cost', 0.0):.4f}")
    console.print(Panel("\n".join(lines), title="AutoDev", border_style=color))
    if result.summary:
        console.print(Text(result.summary))


def _configure_logging(verbose: bool, repo: Path) -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(f"{msg}", style="dim", highlight=False, markup=False),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(f"{msg}", style="dim", highlight=False, markup=False),
            level="WARNING",
            format="{message}",
        )
    logger.add(
        repo / CONFIG_DIR / "logs" / "autodev.log",
        level="DEBUG",
        rotation="10 MB",
        retention=5,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level:<7} | {message}",
    )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
