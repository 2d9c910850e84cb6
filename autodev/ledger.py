"""
AutoDev Issue Ledger

Human-readable markdown record of run failures with a pending/resolved
lifecycle. New entries go on top. Pending entries (plus any pending
user feedback from the sibling file) are rendered back into the next
run's research context.

Single writer: only one run is ever active, so no locking.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, get_args

from loguru import logger

IssueCategory = Literal[
    "build_failure",
    "review_rejection",
    "runtime_error",
    "limitation",
    "coding_error",
    "dependency_issue",
]
ISSUE_CATEGORIES: tuple[str, ...] = get_args(IssueCategory)

PENDING_MARKER = "**Status**: 🔴 PENDING"
_PENDING_RE = re.compile(re.escape(PENDING_MARKER) + r"$", re.MULTILINE)
_ENTRY_SPLIT_RE = re.compile(r"^(?=## ❌ \[)", re.MULTILINE)
_CONTEXT_LIMIT = 2000

_ISSUES_HEADER = """# AutoDev Issues

Failures recorded by automated runs. Pending entries are fed into the next run's research.

"""

_FEEDBACK_HEADER = """# AutoDev Feedback

Suggestions for the next automated run. Pending entries are fed into its research.

"""


def _now() -> datetime:
    return datetime.now(timezone.utc)


class IssueLedger:

    def __init__(
        self,
        repo_path: Path,
        issues_file: str = "AUTODEV_ISSUES.md",
        feedback_file: str = "AUTODEV_FEEDBACK.md",
        max_pending_issues: int = 30,
        max_pending_feedback: int = 20,
        max_entries: int = 200,
    ):
        self.issues_path = Path(repo_path) / issues_file
        self.feedback_path = Path(repo_path) / feedback_file
        self.max_pending_issues = max_pending_issues
        self.max_pending_feedback = max_pending_feedback
        self.max_entries = max_entries

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def log_issue(
        self,
        category: IssueCategory,
        description: str,
        context: str | None = None,
        run_id: str | None = None,
    ) -> None:
        if category not in ISSUE_CATEGORIES:
            raise ValueError(f"Unknown issue category: {category}. Known: {list(ISSUE_CATEGORIES)}")

        entry = self._render_entry(category.upper(), category, description, context, run_id)
        self._prepend(self.issues_path, _ISSUES_HEADER, entry)
        logger.info(f"[LEDGER] Logged [{category}] {description[:80]}")

    def log_feedback(self, text: str, source: str = "user") -> None:
        entry = self._render_entry("FEEDBACK", f"feedback ({source})", text, None, None)
        self._prepend(self.feedback_path, _FEEDBACK_HEADER, entry)
        logger.info(f"[LEDGER] Feedback recorded: {text[:80]}")

    def mark_resolved(self, run_id: str) -> int:
        """Resolve every pending entry in both files. Returns how many changed."""
        stamp = f"**Status**: ✅ RESOLVED by {run_id} on {_now().date().isoformat()}"
        resolved = 0
        for path in (self.issues_path, self.feedback_path):
            if not path.exists():
                continue
            text = path.read_text(encoding="utf-8")
            updated, count = _PENDING_RE.subn(stamp, text)
            if count:
                path.write_text(updated, encoding="utf-8")
                resolved += count
        if resolved:
            logger.info(f"[LEDGER] {resolved} pending entries resolved by {run_id}")
        return resolved

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def pending_issues(self) -> list[str]:
        return [e for e in self._entries(self.issues_path) if PENDING_MARKER in e]

    def pending_feedback(self) -> list[str]:
        return [e for e in self._entries(self.feedback_path) if PENDING_MARKER in e]

    def get_open_issues_summary(self) -> str:
        """Plain-text block of the most recent pending entries, or ''."""
        issues = self.pending_issues()[: self.max_pending_issues]
        feedback = self.pending_feedback()[: self.max_pending_feedback]
        if not issues and not feedback:
            return ""

        parts: list[str] = []
        if issues:
            parts.append("## Known issues from previous runs (PENDING)")
            parts.append("Avoid repeating these failures:\n")
            parts.extend(issues)
        if feedback:
            parts.append("## User feedback (PENDING)")
            parts.append("Prioritise these suggestions:\n")
            parts.extend(feedback)
        return "\n\n" + "\n".join(parts)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    @staticmethod
    def _render_entry(
        title: str,
        category: str,
        description: str,
        context: str | None,
        run_id: str | None,
    ) -> str:
        now = _now()
        lines = [
            f"## ❌ [{title}] — {now.date().isoformat()}",
            "",
            f"- **Run ID**: {run_id or 'n/a'}",
            f"- **Timestamp**: {now.isoformat()}",
            f"- **Category**: {category}",
            f"- {PENDING_MARKER}",
            "",
            f"**Description**: {description}",
        ]
        if context:
            lines += ["", "```", context[:_CONTEXT_LIMIT], "```"]
        lines += ["", "---", ""]
        return "\n".join(lines) + "\n"

    @staticmethod
    def _split(text: str) -> tuple[str, list[str]]:
        chunks = _ENTRY_SPLIT_RE.split(text)
        if not chunks:
            return "", []
        head, entries = chunks[0], chunks[1:]
        return head, [e for e in entries if e.strip()]

    def _entries(self, path: Path) -> list[str]:
        if not path.exists():
            return []
        _, entries = self._split(path.read_text(encoding="utf-8"))
        return [e.strip() for e in entries]

    def _prepend(self, path: Path, default_header: str, entry: str) -> None:
        if path.exists():
            head, entries = self._split(path.read_text(encoding="utf-8"))
            head = head or default_header
        else:
            head, entries = default_header, []

        entries = [entry, *entries]
        if len(entries) > self.max_entries:
            logger.debug(f"[LEDGER] Trimming {path.name} to {self.max_entries} entries")
            entries = entries[: self.max_entries]

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(head + "".join(entries), encoding="utf-8")
