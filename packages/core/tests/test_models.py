"""Tests for the shared data types."""

import pytest

from rulelens_core.models import FileChange, Issue, comment_kind


class TestFileChange:
    def test_changes_must_equal_additions_plus_deletions(self):
        with pytest.raises(ValueError):
            FileChange(path="a.py", status="modified", additions=2, deletions=1, changes=4)

    def test_unknown_status_rejected(self):
        with pytest.raises(ValueError, match="unknown file status"):
            FileChange(path="a.py", status="copied")

    @pytest.mark.parametrize("status", ["added", "modified", "removed", "renamed"])
    def test_known_statuses_accepted(self, status):
        assert FileChange(path="a.py", status=status).status == status

    def test_valid_change(self):
        change = FileChange(path="a.py", status="added", additions=3, deletions=0, changes=3, patch="@@ -0,0 +1,3 @@")
        assert change.changes == 3


class TestIssue:
    def test_end_line_before_line_rejected(self):
        with pytest.raises(ValueError):
            Issue(severity="error", category="bug", message="m", line=5, end_line=4)

    def test_end_line_without_line_rejected(self):
        with pytest.raises(ValueError):
            Issue(severity="error", category="bug", message="m", end_line=4)

    def test_from_dict_camel_case(self):
        issue = Issue.from_dict(
            {
                "type": "error",
                "category": "rule_violation",
                "message": "Use const",
                "file": "src/a.ts",
                "line": "3",
                "endLine": 4,
                "fixedCode": "const x = 1;",
                "ruleId": "style",
                "ruleName": "Style",
            }
        )
        assert issue.severity == "error"
        assert issue.line == 3
        assert issue.end_line == 4
        assert issue.replacement == "const x = 1;"
        assert issue.rule_id == "style"
        assert issue.description == "Use const"

    def test_from_dict_snake_case(self):
        issue = Issue.from_dict({"severity": "info", "comment": "note", "end_line": 2, "line": 1, "replacement": "x"})
        assert issue.message == "note"
        assert issue.end_line == 2
        assert issue.replacement == "x"

    def test_unknown_severity_becomes_warning(self):
        assert Issue.from_dict({"severity": "critical", "message": "m"}).severity == "warning"

    def test_default_category(self):
        assert Issue.from_dict({"message": "m"}).category == "best_practice"

    def test_invalid_lines_dropped(self):
        issue = Issue.from_dict({"message": "m", "line": 0, "endLine": "x"})
        assert issue.line is None
        assert issue.end_line is None

    def test_inverted_range_drops_end_line(self):
        issue = Issue.from_dict({"message": "m", "line": 10, "endLine": 2})
        assert issue.line == 10
        assert issue.end_line is None

    def test_missing_message_raises(self):
        with pytest.raises(ValueError):
            Issue.from_dict({"severity": "error", "line": 1})


@pytest.mark.parametrize(
    "body,kind",
    [
        ("<!-- rulelens -->\n<!-- rulelens-summary -->\n## x", "summary"),
        ("<!-- rulelens -->\n<!-- rulelens-inline -->\nbody", "inline"),
        ("<!-- rulelens -->\n<!-- rulelens-autofix -->\nbody", "autofix"),
        ("LGTM", "other"),
        (None, "other"),
    ],
)
def test_comment_kind(body, kind):
    assert comment_kind(body) == kind
