"""
AutoDev Git Gateway

Safety-gated wrapper over git and the GitHub CLI. Every mutating
operation asserts the checkout is not on a protected branch before it
touches anything. Read-only probes return falsy values instead of
raising so they can be used for pre-flight gating.
"""

from __future__ import annotations

import re
import subprocess
from pathlib import Path

from loguru import logger

PROTECTED_BRANCHES = frozenset({"main", "master"})

_PR_URL_RE = re.compile(r"https?://\S+/pull/\d+")
_INSERTIONS_RE = re.compile(r"(\d+) insertions?\(\+\)")
_DELETIONS_RE = re.compile(r"(\d+) deletions?\(-\)")


class WorkspaceError(Exception):
    pass


class ProtectedBranchError(WorkspaceError):
    """Raised when a mutating operation is attempted on a protected branch."""


class GitGateway:
    """
    Wraps the repository working tree for a single orchestrator.

    The current branch is always read live from git, never cached.
    """

    def __init__(
        self,
        repo_path: Path,
        target_branch: str = "main",
        branch_prefix: str = "autodev/",
        commit_tag: str = "[AutoDev]",
        keep_paths: tuple[str, ...] = (),
        protected: frozenset[str] = PROTECTED_BRANCHES,
    ):
        self.repo_path = Path(repo_path).resolve()
        self.target_branch = target_branch
        self.branch_prefix = branch_prefix
        self.commit_tag = commit_tag
        self.protected = frozenset(protected) | {target_branch}
        # Bookkeeping files that must never be staged, committed or cleaned away.
        self.keep_paths = tuple(keep_paths)

    # ------------------------------------------------------------------ #
    # Read-only probes
    # ------------------------------------------------------------------ #

    def current_branch(self) -> str | None:
        try:
            return self._git("rev-parse", "--abbrev-ref", "HEAD", capture=True).strip() or None
        except WorkspaceError:
            return None

    def has_remote(self, name: str = "origin") -> bool:
        try:
            out = self._git("remote", "-v", capture=True)
        except WorkspaceError:
            return False
        return any(line.split()[0] == name for line in out.splitlines() if line.strip())

    def is_gh_authenticated(self) -> bool:
        try:
            self._run_cmd(["gh", "auth", "status"], cwd=self.repo_path)
        except WorkspaceError:
            return False
        return True

    def branch_exists(self, name: str) -> bool:
        try:
            out = self._git("branch", "--list", name, capture=True)
        except WorkspaceError:
            return False
        return bool(out.strip())

    def diff_line_count(self) -> int:
        """Insertions + deletions of the staged diff. 0 on any failure."""
        try:
            stat = self._git("diff", "--cached", "--shortstat", capture=True)
        except WorkspaceError:
            return 0
        total = 0
        for pattern in (_INSERTIONS_RE, _DELETIONS_RE):
            match = pattern.search(stat)
            if match:
                total += int(match.group(1))
        return total

    def full_diff(self) -> str:
        return self._git("diff", "--cached", check=False, capture=True)

    def has_changes(self) -> bool:
        try:
            return bool(self._git("status", "--porcelain", capture=True).strip())
        except WorkspaceError:
            return False

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    def assert_not_protected(self, action: str) -> str:
        """Return the current branch, or raise if it is protected."""
        branch = self.current_branch()
        if branch is None:
            raise WorkspaceError(f"Cannot {action}: unable to determine current branch")
        if branch in self.protected:
            raise ProtectedBranchError(f"Refusing to {action} on protected branch '{branch}'")
        return branch

    def work_branch_name(self, name: str) -> str:
        return name if name.startswith(self.branch_prefix) else f"{self.branch_prefix}{name}"

    def create_work_branch(self, name: str) -> str:
        """Check out the target branch, fast-forward it if possible, branch off."""
        branch = self.work_branch_name(name)
        if branch in self.protected:
            raise ProtectedBranchError(f"Work branch may not be named '{branch}'")

        if self.current_branch() != self.target_branch:
            self._git("checkout", self.target_branch)

        # Offline or remote-less checkouts are fine here.
        pull = self._git("pull", "--ff-only", check=False, capture=True)
        logger.debug(f"[GIT] pull --ff-only: {pull.strip()[:120]}")

        self._git("checkout", "-b", branch)
        logger.info(f"[GIT] Work branch created: {branch}")
        return branch

    def stage_all(self) -> None:
        self.assert_not_protected("stage changes")
        excludes = [f":(exclude){p}" for p in self.keep_paths]
        self._git("add", "-A", "--", ".", *excludes)

    def commit(self, message: str) -> str | None:
        """Commit staged changes with the provenance tag. None if nothing to commit."""
        self.assert_not_protected("commit")
        if not self._git("diff", "--cached", "--name-only", capture=True).strip():
            logger.info("[GIT] Nothing to commit.")
            return None

        self._git("commit", "-m", f"{self.commit_tag} {message}")
        sha = self._git("rev-parse", "HEAD", capture=True).strip()
        logger.info(f"[GIT] Committed {sha[:8]}")
        return sha

    def push_branch(self, name: str) -> None:
        if name in self.protected:
            raise ProtectedBranchError(f"Refusing to push protected branch '{name}'")
        self.assert_not_protected("push")
        self._git("push", "-u", "origin", name)
        logger.info(f"[GIT] Pushed: {name}")

    def create_pr(self, title: str, body: str, base: str) -> str:
        """Open a PR via `gh` and return its URL."""
        out = self._run_cmd(
            ["gh", "pr", "create", "--title", f"{self.commit_tag} {title}", "--body", body, "--base", base],
            cwd=self.repo_path,
            capture=True,
        )
        match = _PR_URL_RE.search(out)
        if match:
            url = match.group(0)
        else:
            lines = [line.strip() for line in out.splitlines() if line.strip()]
            if not lines:
                raise WorkspaceError("gh pr create produced no output")
            url = lines[-1]
        logger.info(f"[GIT] PR opened: {url}")
        return url

    def switch_branch(self, name: str) -> None:
        self._git("checkout", name)

    def cleanup_branch(self, name: str) -> None:
        """Discard and delete a work branch. Every step is best-effort."""
        if name in self.protected:
            logger.error(f"[GIT] Refusing to clean up protected branch '{name}'")
            return

        steps: list[tuple[str, ...]] = []
        if self.current_branch() == name:
            steps += [("reset", "--hard", "HEAD"), ("clean", "-fd", *self._clean_excludes()), ("checkout", self.target_branch)]
        steps.append(("branch", "-D", name))

        for args in steps:
            try:
                self._git(*args)
            except WorkspaceError as e:
                logger.warning(f"[GIT] cleanup step '{' '.join(args)}' failed: {e}")
        logger.info(f"[GIT] Cleaned up branch {name}")

    # ------------------------------------------------------------------ #
    # Plumbing
    # ------------------------------------------------------------------ #

    def _clean_excludes(self) -> list[str]:
        args: list[str] = []
        for path in self.keep_paths:
            args += ["-e", path]
        return args

    def _git(self, *args: str, check: bool = True, capture: bool = False) -> str:
        return self._run_cmd(["git", *args], cwd=self.repo_path, check=check, capture=capture)

    @staticmethod
    def _run_cmd(cmd: list[str], cwd: Path, check: bool = True, capture: bool = False, timeout: int = 60) -> str:
        try:
            result = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True, timeout=timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            if check:
                raise WorkspaceError(f"Command failed to run: {' '.join(cmd[:3])}: {e}") from e
            return ""
        if check and result.returncode != 0:
            raise WorkspaceError(f"Command failed: {' '.join(cmd[:3])}\n{result.stderr.strip()}")
        return result.stdout if capture else ""
