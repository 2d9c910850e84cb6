"""
🛡️ Gatekeeper — The Reviewer

Reads the staged diff against what was promised and the research
behind it. Approves or rejects. Silence counts as a rejection.
"""

from __future__ import annotations

from typing import Literal

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from autodev.agents import AgentContext, BaseAgent
from autodev.router import RouterResponse
from autodev.state import Improvement


class ReviewVerdict(BaseModel):
    decision: Literal["approve", "reject"] = "reject"
    confidence: float = 0.0
    issues: list[str] = Field(default_factory=list)
    summary: str = ""

    @property
    def approved(self) -> bool:
        return self.decision == "approve"


class ReviewerAgent(BaseAgent):
    role = "reviewer"

    system_prompt = """You are Gatekeeper, the code reviewer inside AutoDev.

Review the diff as a strict senior engineer. Reject anything that:
- breaks behaviour or public APIs without reason,
- is not justified by the listed improvements and sources,
- introduces security problems, secrets or dead code.

You MUST respond with a valid JSON object ONLY:
{
  "decision": "approve|reject",
  "confidence": 0.0,
  "issues": ["specific problem, with file and line where possible"],
  "summary": "One paragraph rationale"
}
"""

    def build_messages(self, context: AgentContext) -> list[dict[str, str]]:
        improvements: list[Improvement] = context.extra.get("improvements", [])
        applied = "\n".join(
            f"- [{i.category}] {i.file}: {i.description} (sources: {', '.join(i.research_sources)})"
            for i in improvements if i.applied
        )
        sources = "\n".join(
            f"- {f.findings}: {', '.join(f.sources)}" for f in context.findings if f.actionable
        )

        user_content = f"""Improvements applied:
{applied or 'None'}

Research sources:
{sources or 'None'}

Diff:
```diff
{context.extra.get('diff', '')}
```

Produce your review as JSON."""

        return [self._system_msg(), self._user_msg(user_content)]

    def parse_response(self, parsed: dict | None, response: RouterResponse, context: AgentContext) -> ReviewVerdict:
        if not parsed:
            logger.warning("[GATEKEEPER] Unparseable review, rejecting")
            return ReviewVerdict(decision="reject", summary="Could not parse review")
        try:
            verdict = ReviewVerdict.model_validate(parsed)
        except ValidationError as e:
            logger.warning(f"[GATEKEEPER] Invalid review payload, rejecting: {e.errors()[:1]}")
            return ReviewVerdict(decision="reject", summary=str(parsed.get("summary") or "Invalid review payload"))

        logger.info(f"[GATEKEEPER] {verdict.decision} — {verdict.summary[:80]}")
        return verdict
