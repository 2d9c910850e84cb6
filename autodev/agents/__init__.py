"""
AutoDev Agent Roster

Each agent is:
  - A system prompt
  - A structured input template
  - A constrained output schema

Agents are stateless between runs. State lives in the Run and the repo.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from loguru import logger

from autodev.router import Router, RouterResponse
from autodev.state import ResearchFinding
from autodev.toolbox import RESEARCH_TOOLS, ResearchToolbox


class AgentContext(BaseModel):
    """Shared context passed to every agent invocation."""
    run_id: str
    repo_path: str
    categories: list[str] = Field(default_factory=list)
    max_files: int = 15
    max_lines: int = 500
    max_queries: int = 30
    source_context: str = ""
    dependencies: str = ""
    known_issues: str = ""
    audit_text: str = "[]"
    outdated_text: str = "[]"
    findings: list[ResearchFinding] = Field(default_factory=list)
    extra: dict[str, Any] = Field(default_factory=dict)

    def findings_text(self, with_sources: bool = True) -> str:
        lines = []
        for f in self.findings:
            if not f.actionable:
                continue
            line = f"- [{f.category}] {f.findings}"
            if with_sources and f.sources:
                line += f"\n  Sources: {', '.join(f.sources)}"
            lines.append(line)
        return "\n".join(lines)


class BaseAgent(ABC):
    """
    Base class for all AutoDev agents.

    Subclasses define:
      - role: str — maps to router model
      - system_prompt: str — agent personality + constraints
      - build_messages() — constructs the chat messages
      - parse_response() — turns the extracted JSON into typed output

    Setting `uses_tools` switches the call to the multi-turn tool loop,
    capped at `max_turns` rounds.
    """

    role: str = "unknown"
    system_prompt: str = "You are a helpful assistant."
    uses_tools: bool = False
    max_turns: int = 8
    grounded: bool = False

    def __init__(self, router: Router, toolbox: ResearchToolbox | None = None):
        self.router = router
        self.toolbox = toolbox

    async def run(self, context: AgentContext) -> Any:
        """Execute the agent: build messages → call model → parse."""
        messages = self.build_messages(context)
        if self.uses_tools and self.toolbox is not None:
            parsed, response = await self.router.invoke(
                self.role, messages,
                tools=RESEARCH_TOOLS, executor=self.toolbox.execute, max_turns=self.max_turns,
            )
        else:
            parsed, response = await self.router.invoke(self.role, messages, grounded=self.grounded)
        return self.parse_response(parsed, response, context)

    @abstractmethod
    def build_messages(self, context: AgentContext) -> list[dict[str, str]]:
        """Build the message list for the LLM call."""
        ...

    @abstractmethod
    def parse_response(self, parsed: dict | None, response: RouterResponse, context: AgentContext) -> Any:
        """Turn the extracted JSON payload (None if absent) into structured output."""
        ...

    def _system_msg(self) -> dict[str, str]:
        return {"role": "system", "content": self.system_prompt}

    def _user_msg(self, content: str) -> dict[str, str]:
        return {"role": "user", "content": content}


def validate_items(model: type[BaseModel], items: Any, tag: str) -> list[Any]:
    """Validate a list of dicts against `model`, dropping the ones that don't fit."""
    if not isinstance(items, list):
        return []
    valid = []
    for raw in items:
        if not isinstance(raw, dict):
            continue
        try:
            valid.append(model.model_validate(raw))
        except ValidationError as e:
            logger.debug(f"[{tag}] Dropping malformed item: {e.errors()[:1]}")
    return valid
