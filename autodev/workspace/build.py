"""
Build verification.

Detects the project's build command from its manifest files and runs it
with a hard wall-clock timeout. The command is an argv list, never a
shell string.
"""

from __future__ import annotations

import json
import os
import re
import subprocess
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from autodev.indexer import SKIP_DIRS

_MAX_OUTPUT = 8000

# compileall -x pattern, searched against each full path.
_COMPILEALL_EXCLUDE = r"(^|[\\/])(" + "|".join(re.escape(d) for d in sorted(SKIP_DIRS)) + r")([\\/]|$)"


@dataclass
class BuildResult:
    passed: bool
    command: list[str]
    output: str = ""
    timed_out: bool = False

    @property
    def failure_text(self) -> str:
        if self.timed_out:
            return f"Build timed out: {' '.join(self.command)}\n{self.output}"
        return self.output or "Unknown build error"


def detect_build_command(repo: Path) -> list[str] | None:
    """Guess the build command based on repo contents."""
    package_json = repo / "package.json"
    if package_json.exists():
        try:
            scripts = json.loads(package_json.read_text(encoding="utf-8")).get("scripts", {})
        except (OSError, ValueError):
            scripts = {}
        if "build" in scripts:
            return ["npm", "run", "build"]
    if (repo / "Cargo.toml").exists():
        return ["cargo", "build"]
    if (repo / "go.mod").exists():
        return ["go", "build", "./..."]
    if (repo / "pyproject.toml").exists() or (repo / "setup.py").exists():
        return [sys.executable, "-m", "compileall", "-q", "-x", _COMPILEALL_EXCLUDE, "."]
    if (repo / "Makefile").exists():
        return ["make"]
    return None


def run_build(repo: Path, command: list[str] | None, timeout: int) -> BuildResult:
    """
    Run the build. A repo with no detectable build passes trivially,
    since there is nothing that could break.
    """
    cmd = command or detect_build_command(repo)
    if not cmd:
        logger.info("[BUILD] No build command detected, skipping.")
        return BuildResult(passed=True, command=[], output="No build command detected")

    logger.info(f"[BUILD] Running: {' '.join(cmd)} (timeout {timeout}s)")
    # Bytecode goes to a throwaway cache so the working tree stays clean.
    with tempfile.TemporaryDirectory(prefix="autodev-pycache-") as pycache:
        env = {**os.environ, "PYTHONPYCACHEPREFIX": pycache}
        try:
            result = subprocess.run(cmd, cwd=repo, env=env, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            partial = (e.stdout or "") if isinstance(e.stdout, str) else ""
            logger.error(f"[BUILD] Timed out after {timeout}s")
            return BuildResult(passed=False, command=cmd, output=partial[-_MAX_OUTPUT:], timed_out=True)
        except OSError as e:
            logger.error(f"[BUILD] Could not start build: {e}")
            return BuildResult(passed=False, command=cmd, output=str(e))

    output = "\n---\n".join(s for s in (result.stdout, result.stderr) if s)
    if result.returncode == 0:
        logger.info("[BUILD] Build passed.")
        return BuildResult(passed=True, command=cmd, output=output[-_MAX_OUTPUT:])

    logger.error(f"[BUILD] Build failed (exit {result.returncode}).")
    return BuildResult(
        passed=False,
        command=cmd,
        output=f"Exit code {result.returncode}\n{output}"[-_MAX_OUTPUT:],
    )
