import subprocess
import sys
from pathlib import Path

import pytest

from autodev.workspace import GitGateway, ProtectedBranchError
from autodev.workspace.build import detect_build_command, run_build


def _git(repo: Path, *args: str) -> str:
    return subprocess.run(["git", *args], cwd=repo, check=True, capture_output=True, text=True).stdout


@pytest.fixture
def repo(tmp_path):
    _git(tmp_path, "init", "-b", "main")
    _git(tmp_path, "config", "user.email", "autodev@example.com")
    _git(tmp_path, "config", "user.name", "AutoDev Tests")
    (tmp_path / "app.py").write_text("print('hello')\n")
    _git(tmp_path, "add", "-A")
    _git(tmp_path, "commit", "-m", "initial")
    return tmp_path


@pytest.fixture
def gateway(repo):
    return GitGateway(repo, keep_paths=(".autodev", "AUTODEV_ISSUES.md"))


def test_read_only_checks_on_plain_repo(gateway):
    assert gateway.current_branch() == "main"
    assert gateway.has_remote() is False
    assert gateway.diff_line_count() == 0


def test_read_only_checks_outside_a_repo(tmp_path):
    gw = GitGateway(tmp_path)
    assert gw.current_branch() is None
    assert gw.has_remote() is False
    assert gw.diff_line_count() == 0


def test_mutations_refused_on_protected_branch(repo, gateway):
    (repo / "app.py").write_text("print('changed')\n")

    with pytest.raises(ProtectedBranchError):
        gateway.stage_all()
    with pytest.raises(ProtectedBranchError):
        gateway.commit("should not happen")
    with pytest.raises(ProtectedBranchError):
        gateway.push_branch("main")

    # Nothing was staged or committed.
    assert _git(repo, "diff", "--cached", "--name-only").strip() == ""
    assert len(_git(repo, "log", "--oneline").splitlines()) == 1


def test_work_branch_commit_and_line_count(repo, gateway):
    branch = gateway.create_work_branch("2026-01-01T03-00-abc123")
    assert branch == "autodev/2026-01-01T03-00-abc123"
    assert gateway.current_branch() == branch

    (repo / "app.py").write_text("print('hello')\nprint('world')\n")
    (repo / "AUTODEV_ISSUES.md").write_text("# ledger\n")
    gateway.stage_all()

    assert gateway.diff_line_count() == 1
    staged = _git(repo, "diff", "--cached", "--name-only").split()
    assert staged == ["app.py"]

    sha = gateway.commit("Automated improvements: quality")
    assert sha
    subject = _git(repo, "log", "-1", "--format=%s").strip()
    assert subject == "[AutoDev] Automated improvements: quality"


def test_commit_with_nothing_staged_returns_none(gateway):
    gateway.create_work_branch("empty")
    gateway.stage_all()
    assert gateway.commit("nothing") is None


def test_cleanup_discards_branch_and_keeps_ledger(repo, gateway):
    branch = gateway.create_work_branch("doomed")
    (repo / "app.py").write_text("broken(\n")
    (repo / "scratch.py").write_text("x = 1\n")
    (repo / "AUTODEV_ISSUES.md").write_text("# ledger\n")

    gateway.cleanup_branch(branch)

    assert gateway.current_branch() == "main"
    assert gateway.branch_exists(branch) is False
    assert (repo / "app.py").read_text() == "print('hello')\n"
    assert not (repo / "scratch.py").exists()
    assert (repo / "AUTODEV_ISSUES.md").exists()


def test_cleanup_refuses_protected_branch(repo, gateway):
    gateway.cleanup_branch("main")
    assert gateway.current_branch() == "main"
    assert gateway.branch_exists("main")


def test_work_branch_may_not_be_protected(repo):
    gw = GitGateway(repo, branch_prefix="")
    with pytest.raises(ProtectedBranchError):
        gw.create_work_branch("main")


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------

def test_detect_build_command(tmp_path):
    assert detect_build_command(tmp_path) is None

    (tmp_path / "pyproject.toml").write_text("[project]\nname = 'x'\n")
    assert detect_build_command(tmp_path)[1:3] == ["-m", "compileall"]

    (tmp_path / "package.json").write_text('{"scripts": {"build": "tsc"}}')
    assert detect_build_command(tmp_path) == ["npm", "run", "build"]


def test_run_build_without_command_passes(tmp_path):
    result = run_build(tmp_path, None, timeout=5)
    assert result.passed


def test_run_build_reports_failure(tmp_path):
    result = run_build(tmp_path, [sys.executable, "-c", "import sys; sys.exit(3)"], timeout=30)
    assert not result.passed
    assert "Exit code 3" in result.failure_text


def test_run_build_timeout(tmp_path):
    result = run_build(tmp_path, [sys.executable, "-c", "import time; time.sleep(5)"], timeout=1)
    assert not result.passed
    assert result.timed_out


def test_python_build_leaves_working_tree_clean(repo):
    (repo / "pyproject.toml").write_text("[project]\nname = 'x'\n")
    (repo / "node_modules" / "pkg").mkdir(parents=True)
    (repo / "node_modules" / "pkg" / "broken.py").write_text("def (:\n")
    _git(repo, "add", "-A")
    _git(repo, "commit", "-m", "python project")

    result = run_build(repo, None, timeout=60)

    assert result.passed, result.failure_text
    assert _git(repo, "status", "--porcelain", "--untracked-files=all") == ""
    assert not list(repo.rglob("__pycache__"))
