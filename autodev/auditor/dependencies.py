"""
AutoDev Auditor — Dependency Scanner

Runs the ecosystem's own audit tooling (npm, pip-audit) against a
repository's declared dependencies and normalises the output. Python
pins are checked against the PyPI JSON API. A missing tool, a failed
lookup or unparseable output degrades to an empty list.
"""

from __future__ import annotations

import json
import re
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import requests
from loguru import logger

from autodev.indexer import python_requirements

PYPI_JSON_URL = "https://pypi.org/pypi/{name}/json"

SEVERITY_ORDER = {"critical": 0, "high": 1, "moderate": 2, "medium": 2, "low": 3, "info": 4}

# name, then the version after ==, ~= or >=
_PINNED_RE = re.compile(r"^([A-Za-z0-9_.\-]+)(?:\[[^\]]*\])?(?:==|~=|>=)([A-Za-z0-9_.+!]+)(?:,|$)")


# ---------------------------------------------------------------------------
# Finding Types
# ---------------------------------------------------------------------------

@dataclass
class Vulnerability:
    name: str
    severity: str = "info"
    title: str = "Unknown"
    url: str = ""
    range: str = ""
    fix_available: bool = False


@dataclass
class OutdatedPackage:
    name: str
    current: str = "unknown"
    wanted: str = "unknown"
    latest: str = "unknown"
    dependency_type: str = "dependencies"


@dataclass
class DependencyReport:
    vulnerabilities: list[Vulnerability] = field(default_factory=list)
    outdated: list[OutdatedPackage] = field(default_factory=list)

    def audit_text(self, limit: int = 20) -> str:
        return json.dumps([v.__dict__ for v in self.vulnerabilities[:limit]], indent=2)

    def outdated_text(self, limit: int = 30) -> str:
        return json.dumps([p.__dict__ for p in self.outdated[:limit]], indent=2)


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------

class DependencyScanner:
    """`audit(repo)` and `outdated(repo)` over whichever ecosystems the repo uses."""

    def __init__(self, timeout: int = 60):
        self.timeout = timeout

    def audit(self, repo_path: Path) -> list[Vulnerability]:
        vulns: list[Vulnerability] = []
        if (repo_path / "package.json").exists():
            vulns += self._npm_audit(repo_path)
        if self._is_python(repo_path):
            vulns += self._pip_audit(repo_path)
        vulns.sort(key=lambda v: SEVERITY_ORDER.get(v.severity, 5))
        return vulns

    def outdated(self, repo_path: Path) -> list[OutdatedPackage]:
        packages: list[OutdatedPackage] = []
        if (repo_path / "package.json").exists():
            packages += self._npm_outdated(repo_path)
        if self._is_python(repo_path):
            packages += self._pip_outdated(repo_path)
        return packages

    def scan(self, repo_path: Path) -> DependencyReport:
        return DependencyReport(vulnerabilities=self.audit(repo_path), outdated=self.outdated(repo_path))

    # -- npm ---------------------------------------------------------------

    def _npm_audit(self, repo: Path) -> list[Vulnerability]:
        data = self._run_json(["npm", "audit", "--json"], repo)
        if not isinstance(data, dict):
            return []
        vulns = []
        for name, info in (data.get("vulnerabilities") or {}).items():
            via = info.get("via") or []
            first = via[0] if via else {}
            title = first.get("title", "Unknown") if isinstance(first, dict) else str(first)
            url = first.get("url", "") if isinstance(first, dict) else ""
            vulns.append(Vulnerability(
                name=name,
                severity=info.get("severity", "info"),
                title=title,
                url=url,
                range=info.get("range", ""),
                fix_available=bool(info.get("fixAvailable")),
            ))
        return vulns

    def _npm_outdated(self, repo: Path) -> list[OutdatedPackage]:
        data = self._run_json(["npm", "outdated", "--json"], repo)
        if not isinstance(data, dict):
            return []
        return [
            OutdatedPackage(
                name=name,
                current=info.get("current", "unknown"),
                wanted=info.get("wanted", "unknown"),
                latest=info.get("latest", "unknown"),
                dependency_type="devDependencies" if info.get("type") == "devDependencies" else "dependencies",
            )
            for name, info in data.items()
            if isinstance(info, dict)
        ]

    # -- python ------------------------------------------------------------

    @staticmethod
    def _is_python(repo: Path) -> bool:
        return any((repo / f).exists() for f in ("pyproject.toml", "requirements.txt", "setup.py"))

    def _pip_audit(self, repo: Path) -> list[Vulnerability]:
        specs = python_requirements(repo)
        if not specs:
            return []
        # pip-audit resolves the declared requirements in its own isolated env.
        with tempfile.TemporaryDirectory(prefix="autodev-audit-") as tmp:
            req_file = Path(tmp) / "requirements.txt"
            req_file.write_text("\n".join(specs) + "\n", encoding="utf-8")
            data = self._run_json(["pip-audit", "-f", "json", "-r", str(req_file)], repo)
        deps = data.get("dependencies", []) if isinstance(data, dict) else (data or [])
        vulns = []
        for dep in deps:
            for v in dep.get("vulns", []):
                fixes = v.get("fix_versions") or []
                vulns.append(Vulnerability(
                    name=dep.get("name", "?"),
                    severity="high",
                    title=v.get("id", "Unknown"),
                    url=f"https://osv.dev/vulnerability/{v['id']}" if v.get("id") else "",
                    range=dep.get("version", ""),
                    fix_available=bool(fixes),
                ))
        return vulns

    def _pip_outdated(self, repo: Path) -> list[OutdatedPackage]:
        """Declared version floors or pins compared with the latest release on PyPI."""
        packages = []
        for spec in python_requirements(repo):
            match = _PINNED_RE.match(spec.split(";", 1)[0])
            if not match:
                continue
            name, declared = match.group(1), match.group(2)
            latest = self._pypi_latest(name)
            if latest and latest != declared:
                packages.append(OutdatedPackage(name=name, current=declared, wanted=latest, latest=latest))
        return packages

    def _pypi_latest(self, name: str) -> str | None:
        try:
            response = requests.get(PYPI_JSON_URL.format(name=name), timeout=self.timeout)
            response.raise_for_status()
            return response.json()["info"]["version"]
        except (requests.RequestException, ValueError, KeyError) as e:
            logger.debug(f"[AUDITOR] PyPI lookup failed for {name}: {e}")
            return None

    # -- plumbing ----------------------------------------------------------

    def _run_json(self, cmd: list[str], cwd: Path) -> Any:
        # Audit tools exit non-zero when they find something, so the exit
        # code is ignored and stdout is parsed regardless.
        try:
            result = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True, timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"[AUDITOR] {cmd[0]} unavailable: {e}")
            return None
        try:
            return json.loads(result.stdout or "null")
        except json.JSONDecodeError:
            logger.debug(f"[AUDITOR] {' '.join(cmd[:3])} returned non-JSON output")
            return None
