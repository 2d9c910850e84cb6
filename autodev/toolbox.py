"""
AutoDev Research Toolbox

Tool declarations shared by the tool-calling agents and the executor
that runs them. One toolbox lives for one run: its query counter is the
run-wide research budget, and every tool call spends from it.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable

from loguru import logger

from autodev import web
from autodev.indexer import PathEscapeError, resolve_inside

RESEARCH_TOOLS: list[dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "web_search",
            "description": "Search the web for CVEs, changelogs, migration guides or current best practice.",
            "parameters": {
                "type": "object",
                "properties": {"query": {"type": "string", "description": "Search query"}},
                "required": ["query"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "read_webpage",
            "description": "Read the text content of a web page (documentation, advisory, changelog).",
            "parameters": {
                "type": "object",
                "properties": {"url": {"type": "string", "description": "Absolute http(s) URL"}},
                "required": ["url"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "read_file",
            "description": "Read a file from the repository, relative to the repository root.",
            "parameters": {
                "type": "object",
                "properties": {"path": {"type": "string", "description": "Repository-relative path"}},
                "required": ["path"],
            },
        },
    },
]

BUDGET_EXHAUSTED = {"success": False, "error": "Research query limit reached"}


class ResearchToolbox:

    def __init__(
        self,
        repo_path: Path,
        max_queries: int,
        search: Callable[[str], web.WebResult] = web.web_search,
        read_page: Callable[[str], web.WebResult] = web.read_webpage,
    ):
        self.repo_path = Path(repo_path).resolve()
        self.max_queries = max_queries
        self.queries_used = 0
        self._search = search
        self._read_page = read_page

    @property
    def exhausted(self) -> bool:
        return self.queries_used >= self.max_queries

    async def execute(self, name: str, args: dict[str, Any]) -> dict[str, Any]:
        """Run one tool call. Over-budget calls return an error without executing."""
        self.queries_used += 1
        if self.queries_used > self.max_queries:
            logger.debug(f"[TOOLS] Budget spent, refusing {name}")
            return dict(BUDGET_EXHAUSTED)

        if name == "web_search":
            query = str(args.get("query", ""))
            logger.info(f"[TOOLS] 🔍 web_search: {query!r}")
            result = await asyncio.to_thread(self._search, query)
            return result.as_tool_payload()

        if name == "read_webpage":
            url = str(args.get("url", ""))
            logger.info(f"[TOOLS] 📖 read_webpage: {url}")
            result = await asyncio.to_thread(self._read_page, url)
            return result.as_tool_payload()

        if name == "read_file":
            return self.read_file(str(args.get("path", "")))

        return {"success": False, "error": f"Unknown tool: {name}"}

    def read_file(self, rel_path: str) -> dict[str, Any]:
        try:
            path = resolve_inside(self.repo_path, rel_path)
        except PathEscapeError as e:
            return {"success": False, "error": str(e)}
        try:
            return {"success": True, "result": path.read_text(encoding="utf-8")}
        except (OSError, UnicodeDecodeError) as e:
            return {"success": False, "error": str(e)}
