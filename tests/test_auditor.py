from pathlib import Path
from types import SimpleNamespace

import requests

from autodev.auditor import dependencies
from autodev.auditor.dependencies import DependencyScanner

PYPROJECT = """[project]
name = "target"
dependencies = ["requests==2.0.0", "pydantic>=2.5,<3", "rich"]
"""


def _fake_pypi(versions):
    def fake_get(url, timeout):
        name = url.rstrip("/").split("/")[-2]
        if name not in versions:
            raise requests.ConnectionError("offline")
        return SimpleNamespace(raise_for_status=lambda: None, json=lambda: {"info": {"version": versions[name]}})
    return fake_get


def test_pip_audit_targets_declared_requirements(tmp_path, monkeypatch):
    (tmp_path / "pyproject.toml").write_text(PYPROJECT)
    seen = []

    def fake_run_json(self, cmd, cwd):
        req_file = Path(cmd[cmd.index("-r") + 1])
        seen.append((cmd, req_file.read_text(), cwd))
        return {"dependencies": [
            {"name": "requests", "version": "2.0.0", "vulns": [{"id": "PYSEC-1", "fix_versions": ["2.31.0"]}]},
        ]}

    monkeypatch.setattr(DependencyScanner, "_run_json", fake_run_json)

    vulns = DependencyScanner()._pip_audit(tmp_path)

    cmd, requirements, cwd = seen[0]
    assert cmd[:3] == ["pip-audit", "-f", "json"]
    assert requirements.splitlines() == ["requests==2.0.0", "pydantic>=2.5,<3", "rich"]
    assert cwd == tmp_path
    assert vulns[0].name == "requests"
    assert vulns[0].fix_available


def test_pip_audit_without_declared_requirements_is_empty(tmp_path, monkeypatch):
    (tmp_path / "setup.py").write_text("from setuptools import setup\nsetup()\n")
    calls = []
    monkeypatch.setattr(DependencyScanner, "_run_json", lambda self, cmd, cwd: calls.append(cmd))

    assert DependencyScanner().audit(tmp_path) == []
    assert calls == []


def test_pip_outdated_compares_declared_versions(tmp_path, monkeypatch):
    (tmp_path / "pyproject.toml").write_text(PYPROJECT)
    (tmp_path / "requirements.txt").write_text("urllib3==2.2.0  # pinned\n-e .\n")
    monkeypatch.setattr(dependencies.requests, "get", _fake_pypi({
        "requests": "2.32.3", "pydantic": "2.9.0", "rich": "13.0.0", "urllib3": "2.2.0",
    }))
    calls = []
    monkeypatch.setattr(DependencyScanner, "_run_json", lambda self, cmd, cwd: calls.append(cmd))

    packages = DependencyScanner().outdated(tmp_path)

    assert calls == []
    assert [(p.name, p.current, p.latest) for p in packages] == [
        ("requests", "2.0.0", "2.32.3"),
        ("pydantic", "2.5", "2.9.0"),
    ]


def test_pip_outdated_skips_failed_lookups(tmp_path, monkeypatch):
    (tmp_path / "requirements.txt").write_text("requests==2.0.0\n")
    monkeypatch.setattr(dependencies.requests, "get", _fake_pypi({}))

    assert DependencyScanner().outdated(tmp_path) == []
