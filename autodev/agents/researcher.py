"""
🔭 Scout — The Researcher

Looks outward before anyone touches code. One Scout per enabled
category runs a single grounded query pass over the dependency list.
The Deep Researcher then follows up with real tool calls.

Energy: reads changelogs for fun.
"""

from __future__ import annotations

from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from autodev.agents import AgentContext, BaseAgent, validate_items
from autodev.router import RouterResponse
from autodev.state import ResearchFinding

CATEGORY_FOCUS = {
    "security": "Look for CVEs, security advisories and OWASP-class weaknesses affecting these dependencies. "
                "Prioritise critical and high severity.",
    "dependencies": "Look for new releases, significant changelog entries and breaking changes. "
                    "Identify packages that are substantially out of date.",
    "quality": "Look for current best practice and recommended modern patterns for the frameworks and "
               "language versions in use.",
    "performance": "Look for known performance pitfalls, regressions and recommended optimisations for "
                   "these libraries and runtimes.",
    "tests": "Look for recommended testing approaches and tooling for this stack, and common gaps in "
             "coverage for projects like this one.",
}

_FINDINGS_SCHEMA = """{
  "findings": [
    {
      "category": "security|dependencies|quality|performance|tests",
      "query": "what you searched for",
      "findings": "what you learned, concretely",
      "sources": ["https://..."],
      "actionable": true
    }
  ]
}"""


class _RawFinding(BaseModel):
    category: str = ""
    query: str = ""
    findings: str = ""
    sources: list[str] = Field(default_factory=list)
    actionable: bool = False


def to_findings(parsed: dict | None, default_category: str, agent_role: str, tag: str) -> list[ResearchFinding]:
    if not parsed:
        return []
    return [
        ResearchFinding(
            category=raw.category or default_category,
            query=raw.query,
            findings=raw.findings,
            sources=raw.sources,
            actionable=raw.actionable,
            agent_role=agent_role,
        )
        for raw in validate_items(_RawFinding, parsed.get("findings"), tag)
    ]


class ResearchAgent(BaseAgent):
    role = "researcher"
    grounded = True

    system_prompt = f"""You are Scout, the research engine inside AutoDev.

You investigate a project's dependencies on the web BEFORE any code is changed.
Every claim must be backed by a source URL. Do not speculate.

You MUST respond with a valid JSON object ONLY.

Output schema:
{_FINDINGS_SCHEMA}

Rules:
- Mark a finding actionable only if a concrete code or dependency change follows from it.
- Prefer official advisories, release notes and documentation as sources.
- Return an empty findings list if nothing relevant turns up.
"""

    def build_messages(self, context: AgentContext) -> list[dict[str, str]]:
        category = context.extra["category"]
        focus = CATEGORY_FOCUS.get(category, f"Research current issues in the '{category}' category.")

        user_content = f"""Category: {category}

Dependencies:
{context.dependencies}
{context.known_issues}

Focus for this agent:
{focus}

Produce your findings as JSON."""

        return [self._system_msg(), self._user_msg(user_content)]

    def parse_response(self, parsed: dict | None, response: RouterResponse, context: AgentContext) -> list[ResearchFinding]:
        category = context.extra["category"]
        findings = to_findings(parsed, category, f"{category}_researcher", "SCOUT")
        logger.info(f"[SCOUT] {category}: {len(findings)} findings ({response.model})")
        return findings


class DeepResearchAgent(BaseAgent):
    """Follows up on earlier findings with web_search / read_webpage / read_file."""

    role = "deep_researcher"
    uses_tools = True
    max_turns = 10

    system_prompt = f"""You are Scout in deep mode, the follow-up researcher inside AutoDev.

You have tools: web_search, read_webpage, read_file.
1. For each prior finding, dig for specifics: changelogs, fixes, migration guides.
2. Confirm proposed solutions against official documentation.
3. Use read_file to check how the project actually uses a library before recommending a change.
4. Your search budget is shared and limited. When a tool reports the limit is reached, stop and answer.

When done, respond with a valid JSON object ONLY:
{_FINDINGS_SCHEMA}
"""

    def build_messages(self, context: AgentContext) -> list[dict[str, str]]:
        user_content = f"""Prior research (from parallel agents):
{context.findings_text() or 'None'}

Dependency audit:
{context.audit_text}

Outdated packages:
{context.outdated_text}

Categories: {', '.join(context.categories)}
Maximum web queries for the whole run: {context.max_queries}

Source code:
{context.source_context}
{context.known_issues}

Investigate, then produce your findings as JSON."""

        return [self._system_msg(), self._user_msg(user_content)]

    def parse_response(self, parsed: dict | None, response: RouterResponse, context: AgentContext) -> list[ResearchFinding]:
        findings = to_findings(parsed, "quality", "deep_researcher", "SCOUT")
        logger.info(f"[SCOUT] Deep research: {len(findings)} findings in {response.turns} tool rounds")
        return findings
