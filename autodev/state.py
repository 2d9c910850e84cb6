"""
AutoDev run state.

A Run is owned by exactly one orchestrator while it is live and becomes
read-only once it has been appended to history.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class RunStatus(str, Enum):
    RESEARCHING = "researching"
    ANALYZING = "analyzing"
    PLANNING = "planning"
    CODING = "coding"
    VERIFYING = "verifying"
    PUSHING = "pushing"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.ABORTED)


class ResearchFinding(BaseModel):
    category: str
    query: str = ""
    findings: str = ""
    sources: list[str] = Field(default_factory=list)
    actionable: bool = False
    agent_role: str = ""


class Improvement(BaseModel):
    file: str
    category: str = "quality"
    description: str = ""
    applied: bool = False
    research_sources: list[str] = Field(default_factory=list)
    agent_role: str = ""


class AgentTask(BaseModel):
    id: str
    agent_role: str
    model: str
    status: Literal["completed", "failed"]
    completed_at: str = Field(default_factory=utcnow)
    description: str
    error: str | None = None


class PlanStep(BaseModel):
    """One file-level unit of work handed to the coder."""
    step: int = 0
    file: str
    action: Literal["modify", "create"] = "modify"
    description: str = ""
    details: str = ""
    source: str = ""
    category: str = "quality"
    estimated_lines: int = 0


class Run(BaseModel):
    id: str = Field(default_factory=lambda: f"run_{uuid.uuid4().hex[:12]}")
    started_at: str = Field(default_factory=utcnow)
    completed_at: str | None = None
    status: RunStatus = RunStatus.RESEARCHING
    improvements: list[Improvement] = Field(default_factory=list)
    research_findings: list[ResearchFinding] = Field(default_factory=list)
    agent_tasks: list[AgentTask] = Field(default_factory=list)
    branch_name: str | None = None
    pr_url: str | None = None
    summary: str = ""
    error: str | None = None
    usage: dict[str, Any] = Field(default_factory=dict)

    @property
    def applied(self) -> list[Improvement]:
        return [i for i in self.improvements if i.applied]

    @property
    def actionable_findings(self) -> list[ResearchFinding]:
        return [f for f in self.research_findings if f.actionable]

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)
