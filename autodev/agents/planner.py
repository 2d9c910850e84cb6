"""
🧠 Professor Zap — The Planner

Turns proposed improvements into an ordered list of file-level steps
that fits the line budget. Also drafts fix plans when verification
fails. Never writes code. Only plans.

Energy: manic genius with whiteboard chaos.
"""

from __future__ import annotations

import json

from loguru import logger

from autodev.agents import AgentContext, BaseAgent, validate_items
from autodev.router import RouterResponse
from autodev.state import PlanStep

_PLAN_SCHEMA = """{
  "plan": [
    {
      "step": 1,
      "file": "relative/path/to/file",
      "action": "modify|create",
      "category": "security|dependencies|quality|performance|tests",
      "description": "What to do",
      "details": "Precise technical detail for the coder",
      "source": "URL or finding that justifies this step",
      "estimated_lines": 10
    }
  ],
  "total_estimated_lines": 10,
  "risk_assessment": "low|medium|high",
  "risk_notes": "Why this risk level"
}"""


def fit_to_budget(steps: list[PlanStep], max_lines: int) -> list[PlanStep]:
    """Keep steps in order until the cumulative estimate would pass the budget."""
    kept: list[PlanStep] = []
    total = 0
    for step in steps:
        if kept and total + step.estimated_lines > max_lines:
            logger.info(f"[ZAP] Line budget reached at step {step.step}, dropping {len(steps) - len(kept)} steps")
            break
        kept.append(step)
        total += step.estimated_lines
    return kept


class PlannerAgent(BaseAgent):
    role = "planner"

    system_prompt = f"""You are Professor Zap, the planning engine inside AutoDev.

Your job is to turn a list of proposed improvements into a precise, ordered execution plan.

You MUST respond with a valid JSON object ONLY. No markdown, no commentary.

Output schema:
{_PLAN_SCHEMA}

Rules:
- ONE FILE PER STEP. Each step is a whole-file rewrite by the coder.
- Order steps so that earlier steps never depend on later ones.
- Stay inside the line budget you are given. Drop the least valuable work first.
- Only "modify" or "create". No deletions, no shell commands, no test runs.
- Carry the research source into every step.
"""

    def build_messages(self, context: AgentContext) -> list[dict[str, str]]:
        improvements = context.extra.get("improvements", [])
        user_content = f"""Improvements to plan:
{json.dumps(improvements, indent=2)}

Research context:
{context.findings_text() or 'None'}

Line budget: {context.max_lines} changed lines in total.

Produce your execution plan as JSON."""

        return [self._system_msg(), self._user_msg(user_content)]

    def parse_response(self, parsed: dict | None, response: RouterResponse, context: AgentContext) -> list[PlanStep]:
        if not parsed:
            logger.error("[ZAP] Failed to parse plan JSON")
            return []
        steps = fit_to_budget(validate_items(PlanStep, parsed.get("plan"), "ZAP"), context.max_lines)
        logger.info(
            f"[ZAP] Plan ready — {len(steps)} steps, "
            f"risk={parsed.get('risk_assessment', '?')}"
        )
        return steps


class FixPlannerAgent(BaseAgent):
    """Drafts a corrective plan from a build error or review rejection."""

    role = "planner"

    system_prompt = f"""You are Professor Zap on repair duty inside AutoDev.

A previous change on this branch failed its build or was rejected in review.
Produce the smallest plan that fixes exactly that failure. Reverting part of the
change is allowed when that is the cleanest fix.

You MUST respond with a valid JSON object ONLY:
{_PLAN_SCHEMA}
"""

    def build_messages(self, context: AgentContext) -> list[dict[str, str]]:
        user_content = f"""Failure:
{context.extra.get('error', '')}

Current diff on the work branch:
```diff
{context.extra.get('diff', '')}
```

Produce the fix plan as JSON."""

        return [self._system_msg(), self._user_msg(user_content)]

    def parse_response(self, parsed: dict | None, response: RouterResponse, context: AgentContext) -> list[PlanStep]:
        if not parsed:
            logger.warning("[ZAP] Fix planner returned no JSON")
            return []
        steps = validate_items(PlanStep, parsed.get("plan"), "ZAP")
        for step in steps:
            step.source = step.source or "auto-correction"
        logger.info(f"[ZAP] Fix plan — {len(steps)} steps")
        return steps
