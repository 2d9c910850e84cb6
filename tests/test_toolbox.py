import asyncio

import pytest

from autodev.indexer import PathEscapeError, read_source_files, resolve_inside
from autodev.toolbox import BUDGET_EXHAUSTED, ResearchToolbox
from autodev.web import WebResult


def _fake_search(query):
    return WebResult(success=True, content=f"results for {query}")


def _fake_read(url):
    return WebResult(success=False, error="404")


def test_tools_dispatch(tmp_path):
    (tmp_path / "a.py").write_text("x = 1\n")
    box = ResearchToolbox(tmp_path, max_queries=5, search=_fake_search, read_page=_fake_read)

    assert asyncio.run(box.execute("web_search", {"query": "lodash cve"})) == {
        "success": True, "result": "results for lodash cve",
    }
    assert asyncio.run(box.execute("read_webpage", {"url": "https://x"})) == {"success": False, "error": "404"}
    assert asyncio.run(box.execute("read_file", {"path": "a.py"})) == {"success": True, "result": "x = 1\n"}
    assert box.queries_used == 3


def test_budget_exhaustion(tmp_path):
    searched = []

    def search(query):
        searched.append(query)
        return WebResult(success=True, content="ok")

    box = ResearchToolbox(tmp_path, max_queries=2, search=search)
    results = [asyncio.run(box.execute("web_search", {"query": f"q{i}"})) for i in range(4)]

    assert searched == ["q0", "q1"]
    assert results[2] == BUDGET_EXHAUSTED
    assert results[3] == BUDGET_EXHAUSTED
    assert box.exhausted


def test_read_file_refuses_escape(tmp_path):
    repo = tmp_path / "repo"
    repo.mkdir()
    (tmp_path / "secret.txt").write_text("hunter2")
    box = ResearchToolbox(repo, max_queries=5)

    result = box.read_file("../secret.txt")
    assert result["success"] is False
    assert "outside" in result["error"]


def test_unknown_tool(tmp_path):
    box = ResearchToolbox(tmp_path, max_queries=5)
    assert asyncio.run(box.execute("rm_rf", {}))["success"] is False


def test_resolve_inside(tmp_path):
    assert resolve_inside(tmp_path, "src/a.py") == (tmp_path / "src" / "a.py").resolve()
    with pytest.raises(PathEscapeError):
        resolve_inside(tmp_path, "/etc/passwd")
    with pytest.raises(PathEscapeError):
        resolve_inside(tmp_path, "")


def test_read_source_files_skips_noise(tmp_path):
    (tmp_path / "main.py").write_text("print(1)\n")
    (tmp_path / "README.md").write_text("docs")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "lib.js").write_text("x")
    (tmp_path / "big.py").write_text("#" * 100)

    files = read_source_files(tmp_path, max_bytes=50)
    assert [f.path for f in files] == ["main.py"]
