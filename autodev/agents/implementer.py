"""
🔧 Patch — The Implementer

Executes one plan step: reads the target file, may consult the
research tools, and returns the complete new file content. The write
is a whole-file replace, and only ever inside the repository root.
"""

from __future__ import annotations

import json
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field

from autodev.agents import AgentContext, BaseAgent
from autodev.indexer import resolve_inside
from autodev.router import RouterResponse
from autodev.state import Improvement, PlanStep


class StepFailed(Exception):
    pass


class CodeChange(BaseModel):
    modified_code: str = Field(min_length=1)
    changes_description: str = ""
    sources_consulted: list[str] = Field(default_factory=list)


class ImplementerAgent(BaseAgent):
    role = "coder"
    uses_tools = True
    max_turns = 5

    system_prompt = """You are Patch, the surgical implementation engine inside AutoDev.

You receive ONE plan step and the current content of ONE file.
You have tools: web_search, read_webpage, read_file. Use read_file to check
signatures in other files instead of guessing.

When done, respond with a valid JSON object ONLY:
{
  "modified_code": "<the COMPLETE new content of the file>",
  "changes_description": "What you changed and why",
  "sources_consulted": ["https://..."]
}

Rules:
- Return the whole file, never a fragment or a diff.
- Change only what the step asks for. Preserve formatting and unrelated code.
- Never introduce secrets, network calls or dependencies the step does not ask for.
"""

    async def run(self, context: AgentContext) -> Improvement:
        step: PlanStep = context.extra["step"]
        target = resolve_inside(Path(context.repo_path), step.file)

        if target.exists():
            current_code = target.read_text(encoding="utf-8")
        elif step.action == "create":
            current_code = ""
        else:
            raise StepFailed(f"File does not exist: {step.file}")

        context.extra["current_code"] = current_code
        improvement = await super().run(context)

        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(context.extra["modified_code"], encoding="utf-8")
        logger.info(f"[PATCH] Wrote {step.file} ({len(context.extra['modified_code'])} chars)")
        return improvement

    def build_messages(self, context: AgentContext) -> list[dict[str, str]]:
        step: PlanStep = context.extra["step"]
        user_content = f"""Plan step:
{json.dumps(step.model_dump(), indent=2)}

File: {step.file}

Current content:
```
{context.extra.get('current_code') or '(new file)'}
```

Research context: {step.source or 'None'}

Produce the complete new file as JSON."""

        return [self._system_msg(), self._user_msg(user_content)]

    def parse_response(self, parsed: dict | None, response: RouterResponse, context: AgentContext) -> Improvement:
        step: PlanStep = context.extra["step"]
        if not parsed:
            raise StepFailed(f"No code returned for {step.file}")
        try:
            change = CodeChange.model_validate(parsed)
        except ValueError as e:
            raise StepFailed(f"Malformed code response for {step.file}: {e}") from e

        context.extra["modified_code"] = change.modified_code
        return Improvement(
            file=step.file,
            category=step.category,
            description=change.changes_description or step.description,
            applied=True,
            research_sources=change.sources_consulted or [s for s in [step.source] if s],
            agent_role=context.extra.get("agent_name", "coder"),
        )
