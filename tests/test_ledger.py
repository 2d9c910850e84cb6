import pytest

from autodev.ledger import PENDING_MARKER, IssueLedger


@pytest.fixture
def ledger(tmp_path):
    return IssueLedger(tmp_path)


def test_empty_ledger_has_no_summary(ledger):
    assert ledger.get_open_issues_summary() == ""


def test_log_issue_creates_file_with_pending_entry(tmp_path, ledger):
    ledger.log_issue("build_failure", "tsc exploded", "error TS2304", run_id="run_1")

    text = (tmp_path / "AUTODEV_ISSUES.md").read_text()
    assert text.startswith("# AutoDev Issues")
    assert "## ❌ [BUILD_FAILURE]" in text
    assert "- **Run ID**: run_1" in text
    assert PENDING_MARKER in text
    assert "error TS2304" in text


def test_unknown_category_rejected(ledger):
    with pytest.raises(ValueError):
        ledger.log_issue("cosmic_rays", "bit flip")


def test_new_entries_go_on_top(ledger):
    ledger.log_issue("limitation", "first")
    ledger.log_issue("coding_error", "second")

    entries = ledger.pending_issues()
    assert "second" in entries[0]
    assert "first" in entries[1]


def test_summary_includes_issues_and_feedback(ledger):
    ledger.log_issue("review_rejection", "reviewer unhappy")
    ledger.log_feedback("please add type hints", source="cli")

    summary = ledger.get_open_issues_summary()
    assert summary.startswith("\n\n")
    assert "Known issues from previous runs" in summary
    assert "reviewer unhappy" in summary
    assert "User feedback" in summary
    assert "please add type hints" in summary


def test_summary_caps_pending_entries(tmp_path):
    ledger = IssueLedger(tmp_path, max_pending_issues=2)
    for i in range(5):
        ledger.log_issue("limitation", f"issue-{i}")

    summary = ledger.get_open_issues_summary()
    assert "issue-4" in summary
    assert "issue-3" in summary
    assert "issue-2" not in summary


def test_mark_resolved_covers_both_files(ledger):
    ledger.log_issue("runtime_error", "crash")
    ledger.log_feedback("idea")

    assert ledger.mark_resolved("run_9") == 2
    assert ledger.pending_issues() == []
    assert ledger.pending_feedback() == []
    assert ledger.get_open_issues_summary() == ""
    assert "RESOLVED by run_9" in ledger.issues_path.read_text()


def test_context_with_headings_does_not_split_entries(ledger):
    ledger.log_issue("build_failure", "bad build", "## not an entry\nstack trace")
    assert len(ledger.pending_issues()) == 1


def test_oldest_entries_trimmed(tmp_path):
    ledger = IssueLedger(tmp_path, max_entries=3)
    for i in range(5):
        ledger.log_issue("limitation", f"issue-{i}")

    text = ledger.issues_path.read_text()
    assert len(ledger.pending_issues()) == 3
    assert "issue-0" not in text
    assert "issue-1" not in text
    assert text.startswith("# AutoDev Issues")
