"""
AutoDev Repo Reader

Walks the repository and collects the source text handed to the
research, analysis and coding agents. Build output, VCS metadata and
dependency caches are skipped, as is anything over the size ceiling.
"""

from __future__ import annotations

import json
import os
import re
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import List

from loguru import logger

# ---------------------------------------------------------------------------
# Constants & Configuration
# ---------------------------------------------------------------------------

SKIP_DIRS = {
    ".git", ".autodev", ".context", ".venv", "venv", "env",
    "node_modules", "target", "dist", "build", "release", "out", "__pycache__",
    ".tox", ".mypy_cache", ".pytest_cache", ".ruff_cache",
    ".next", ".nuxt", "coverage", ".cargo", "vendor", "dist-electron",
}

CODE_EXTENSIONS = {
    ".rs", ".py", ".ts", ".tsx", ".js", ".jsx", ".mjs", ".go", ".java",
    ".kt", ".rb", ".php", ".cs", ".c", ".h", ".cpp", ".hpp", ".swift",
}

SKIP_SUFFIXES = (".d.ts", ".min.js")

_REQUIREMENT_NAME_RE = re.compile(r"^\s*([A-Za-z0-9_.\-\[\]]+)\s*(.*)$")


class PathEscapeError(ValueError):
    """Raised when a path resolves outside the repository root."""


@dataclass
class SourceFile:
    path: str
    content: str


# ---------------------------------------------------------------------------
# Path safety
# ---------------------------------------------------------------------------

def resolve_inside(repo_path: Path, rel_path: str) -> Path:
    """Resolve `rel_path` against the repo root, refusing escapes."""
    root = Path(repo_path).resolve()
    if not rel_path or not str(rel_path).strip():
        raise PathEscapeError("Empty path")
    candidate = (root / rel_path).resolve()
    if candidate != root and root not in candidate.parents:
        raise PathEscapeError(f"Path outside repository: {rel_path}")
    return candidate


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def read_source_files(repo_path: Path, max_bytes: int = 500_000) -> List[SourceFile]:
    """Recursive walk returning every source file under the size ceiling."""
    root = Path(repo_path).resolve()
    files: List[SourceFile] = []

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS and not d.startswith("."))
        for name in sorted(filenames):
            if name.endswith(SKIP_SUFFIXES) or Path(name).suffix not in CODE_EXTENSIONS:
                continue
            full = Path(dirpath) / name
            try:
                if full.stat().st_size >= max_bytes:
                    continue
                content = full.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.debug(f"[INDEX] Skipping {full}: {e}")
                continue
            files.append(SourceFile(path=full.relative_to(root).as_posix(), content=content))

    logger.info(f"[INDEX] Read {len(files)} source files from {root.name}")
    return files


def render_source_context(files: List[SourceFile]) -> str:
    return "\n\n".join(f"--- {f.path} ---\n{f.content}" for f in files)


def python_requirements(repo_path: Path) -> List[str]:
    """Requirement specifiers declared in pyproject.toml and requirements.txt."""
    root = Path(repo_path)
    specs: List[str] = []

    pyproject = root / "pyproject.toml"
    if pyproject.exists():
        try:
            data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
            project = data.get("project", {})
            declared = list(project.get("dependencies", []))
            for extra in project.get("optional-dependencies", {}).values():
                declared += extra
            specs += [s.replace(" ", "") for s in declared]
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.debug(f"[INDEX] Could not read pyproject.toml: {e}")

    requirements = root / "requirements.txt"
    if requirements.exists():
        for raw in requirements.read_text(encoding="utf-8").splitlines():
            raw = raw.split("#", 1)[0].strip()
            if not raw or raw.startswith("-"):
                continue
            match = _REQUIREMENT_NAME_RE.match(raw)
            if match:
                specs.append(f"{match.group(1)}{match.group(2).replace(' ', '')}")

    return specs


def dependencies_list(repo_path: Path) -> str:
    """`name@version` lines from whichever manifests the repo has."""
    root = Path(repo_path)
    lines: List[str] = []

    package_json = root / "package.json"
    if package_json.exists():
        try:
            pkg = json.loads(package_json.read_text(encoding="utf-8"))
            deps = {**pkg.get("dependencies", {}), **pkg.get("devDependencies", {})}
            lines += [f"{name}@{version}" for name, version in deps.items()]
        except (OSError, ValueError) as e:
            logger.debug(f"[INDEX] Could not read package.json: {e}")

    lines += python_requirements(root)
    return "\n".join(lines) if lines else "No dependency manifest found"
