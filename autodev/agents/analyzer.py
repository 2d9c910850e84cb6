"""
🔬 Lens — The Analyzer

Reads the code against the research and proposes file-level
improvements. Can pull extra files or check a source with tools.
Never writes code.
"""

from __future__ import annotations

from typing import Literal

from loguru import logger
from pydantic import BaseModel, Field

from autodev.agents import AgentContext, BaseAgent, validate_items
from autodev.router import RouterResponse


class ProposedImprovement(BaseModel):
    file: str = Field(min_length=1)
    category: str = "quality"
    description: str
    priority: Literal["critical", "high", "medium", "low"] = "medium"
    estimated_lines: int = 0
    research_sources: list[str] = Field(default_factory=list)
    reasoning: str = ""


class AnalyzerAgent(BaseAgent):
    role = "analyzer"
    uses_tools = True
    max_turns = 8

    system_prompt = """You are Lens, the analysis engine inside AutoDev.

Compare the project's source code with the research findings and dependency audit,
and propose concrete, file-level improvements.

You have tools: web_search, read_webpage, read_file. Use them to confirm, not to wander.

When done, respond with a valid JSON object ONLY:
{
  "improvements": [
    {
      "file": "relative/path/to/file",
      "category": "security|dependencies|quality|performance|tests",
      "description": "What to change",
      "priority": "critical|high|medium|low",
      "estimated_lines": 10,
      "research_sources": ["https://..."],
      "reasoning": "Why, citing the research"
    }
  ]
}

Rules:
- Every improvement must be grounded in a finding or audit entry.
- Paths must be relative to the repository root and exist (unless the change creates a file).
- Respect the file and line limits you are given.
- Return an empty list if nothing is worth changing. That is a valid answer.
"""

    def build_messages(self, context: AgentContext) -> list[dict[str, str]]:
        user_content = f"""Repository: {context.repo_path}
Categories: {', '.join(context.categories)}
Limits: at most {context.max_files} files, at most {context.max_lines} changed lines in total.

Research findings:
{context.findings_text() or 'No prior findings'}

Dependency audit:
{context.audit_text}

Outdated packages:
{context.outdated_text}

Source code:
{context.source_context}
{context.known_issues}

Produce your improvements as JSON."""

        return [self._system_msg(), self._user_msg(user_content)]

    def parse_response(self, parsed: dict | None, response: RouterResponse, context: AgentContext) -> list[ProposedImprovement]:
        if not parsed:
            logger.warning("[LENS] No JSON payload, treating as nothing to do")
            return []
        improvements = validate_items(ProposedImprovement, parsed.get("improvements"), "LENS")
        if len(improvements) > context.max_files:
            logger.info(f"[LENS] Capping {len(improvements)} proposals to {context.max_files}")
            improvements = improvements[: context.max_files]
        logger.info(f"[LENS] {len(improvements)} improvements proposed ({response.model})")
        return improvements
