"""
📣 Herald — The Summarizer

Writes the short human-readable run summary. Plain text, no JSON.
If the model is unavailable a plain template stands in.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta

from loguru import logger

from autodev.agents import AgentContext, BaseAgent
from autodev.router import RouterResponse
from autodev.state import Run

MAX_SUMMARY_CHARS = 1500


def fallback_summary(run: Run) -> str:
    return (
        f"🤖 AutoDev run {run.id} finished\n"
        f"{len(run.agent_tasks)} agents used\n"
        f"{len(run.applied)} improvements applied\n"
        f"{run.pr_url or 'No PR'}"
    )


def _duration(run: Run, elapsed: timedelta | None = None) -> str:
    if elapsed is not None:
        delta = elapsed
    elif run.completed_at:
        delta = datetime.fromisoformat(run.completed_at) - datetime.fromisoformat(run.started_at)
    else:
        return "in progress"
    return f"{round(delta.total_seconds() / 60)} min"


class SummarizerAgent(BaseAgent):
    role = "summarizer"

    system_prompt = """You are Herald, the reporter inside AutoDev.

Write a short summary (at most 10 lines) of an automated improvement run for a busy
maintainer: what changed, why (citing the research), and where the PR is.
Plain text only. No JSON, no markdown headings.
"""

    async def run(self, context: AgentContext) -> str:
        run: Run = context.extra["run"]
        try:
            response = await self.router.complete(self.role, self.build_messages(context))
        except Exception as e:
            logger.warning(f"[HERALD] Summary generation failed, using template: {e}")
            return fallback_summary(run)
        return self.parse_response(None, response, context)

    def build_messages(self, context: AgentContext) -> list[dict[str, str]]:
        run: Run = context.extra["run"]
        info = {
            "id": run.id,
            "agents": len(run.agent_tasks),
            "duration": _duration(run, context.extra.get("elapsed")),
            "status": run.status.value,
            "branch_name": run.branch_name,
            "pr_url": run.pr_url,
        }
        improvements = "\n".join(
            f"- [{i.category}] {i.file}: {i.description}\n  Sources: {', '.join(i.research_sources)}"
            for i in run.applied
        )
        user_content = f"""Run:
{json.dumps(info, indent=2)}

Improvements:
{improvements or 'None'}

Research findings:
{context.findings_text(with_sources=False) or 'None'}"""

        return [self._system_msg(), self._user_msg(user_content)]

    def parse_response(self, parsed: dict | None, response: RouterResponse, context: AgentContext) -> str:
        text = response.content.strip()
        return text[:MAX_SUMMARY_CHARS] if text else fallback_summary(context.extra["run"])
