"""Tests for the review pipeline and its helpers.

GitHub and the AI provider are MagicMocks; rule documents and working-copy
files live in a tmp_path workspace so rule loading and auto-fix run for real.
"""

import logging
import types
from unittest.mock import MagicMock, call

import pytest
from github import GithubException

from rulelens_core.config import ReviewOptions
from rulelens_core.models import SUMMARY_MARKER, FileChange, Issue, PRPlan
from rulelens_core.providers.base import ProviderError
from rulelens_core.reviewer import (
    FALLBACK_PAUSE_SECONDS,
    ReviewPipeline,
    ReviewStage,
    attribute_issues,
    build_fallback_plan,
    build_fallback_summary,
    print_shadow_comments,
)

# One added line at new-file line 2.
PATCH = "@@ -1,1 +1,2 @@\n a\n+b"


def _change(path, status="modified", patch=PATCH, additions=1, deletions=0):
    return FileChange(
        path=path, status=status, additions=additions, deletions=deletions, changes=additions + deletions, patch=patch
    )


def _issue(file="src/a.ts", line=2, severity="error", **kwargs):
    kwargs.setdefault("category", "rule_violation")
    return Issue(severity=severity, message=f"problem in {file}", file=file, line=line, **kwargs)


def _workspace(tmp_path, rule="---\nalwaysApply: true\n---\nHandle errors."):
    rules_dir = tmp_path / ".cursor" / "rules"
    rules_dir.mkdir(parents=True)
    (rules_dir / "errors.mdc").write_text(rule)
    return tmp_path


def _pr(issue_comments=(), review_comments=()):
    pr = MagicMock()
    pr.head.sha = "abc1234def"
    pr.get_issue_comments.return_value = list(issue_comments)
    pr.get_review_comments.return_value = list(review_comments)
    pr.create_issue_comment.return_value.id = 100
    pr.create_review_comment.return_value.id = 200
    return pr


def _repo():
    repo = MagicMock()
    repo.get_contents.side_effect = GithubException(404, "Not Found", None)
    return repo


def _reviewer(issues=()):
    reviewer = MagicMock()
    reviewer.generate_plan.return_value = PRPlan(overview="Adds error handling")
    reviewer.review_batch.return_value = list(issues)
    reviewer.review_file.return_value = []
    reviewer.generate_summary.return_value = "AI summary"
    return reviewer


def _options(**kwargs):
    kwargs.setdefault("request_delay_ms", 0)
    return ReviewOptions(openai_api_key="sk", **kwargs)


@pytest.fixture
def changed_files(mocker):
    return mocker.patch("rulelens_core.reviewer.get_changed_files")


@pytest.fixture
def sleep(mocker):
    return mocker.patch("rulelens_core.reviewer.time.sleep")


# ---------------------------------------------------------------------------
# End-to-end runs
# ---------------------------------------------------------------------------


class TestPipeline:
    def test_no_changed_files_is_skipped(self, tmp_path, changed_files):
        changed_files.return_value = []
        pr, reviewer = _pr(), _reviewer()

        pipeline = ReviewPipeline(_options(), _repo(), pr, reviewer, workspace=_workspace(tmp_path))
        result = pipeline.run()

        assert result.files_reviewed == 0
        assert result.status == "passed"
        assert "No files to review" in result.summary
        assert pipeline.stage == ReviewStage.SKIPPED
        reviewer.generate_plan.assert_not_called()
        pr.create_issue_comment.assert_not_called()

    def test_single_error_creates_one_inline_and_one_summary(self, tmp_path, changed_files):
        changed_files.return_value = [_change("src/a.ts")]
        pr, repo = _pr(), _repo()
        reviewer = _reviewer([_issue()])

        result = ReviewPipeline(_options(), repo, pr, reviewer, workspace=_workspace(tmp_path)).run()

        assert result.status == "needs_attention"
        assert result.files_reviewed == 1
        assert result.summary == "AI summary"
        assert [r.id for r in result.rules_applied] == ["errors"]
        pr.create_review_comment.assert_called_once()
        args, kwargs = pr.create_review_comment.call_args
        assert args[1] is repo.get_commit.return_value
        assert args[2] == "src/a.ts"
        assert kwargs["line"] == 2
        pr.create_issue_comment.assert_called_once()
        repo.get_commit.assert_called_once_with("abc1234def")

    def test_failed_batch_retried_per_file(self, tmp_path, changed_files, sleep):
        files = [_change(f"src/{name}.ts") for name in "abcdef"]
        changed_files.return_value = files

        def review_batch(batch_files, rules, plan, contents):
            if batch_files[0].path == "src/c.ts":
                raise ProviderError("timeout")
            return [_issue(file=f.path) for f in batch_files]

        reviewer = _reviewer()
        reviewer.review_batch.side_effect = review_batch
        reviewer.review_file.side_effect = lambda file, content, rules, plan: [_issue(file="whatever")]

        options = _options(batch_size=2, request_delay_ms=1500)
        pipeline = ReviewPipeline(options, _repo(), _pr(), reviewer, workspace=_workspace(tmp_path), shadow=True)
        result = pipeline.run()

        assert reviewer.review_batch.call_count == 3
        assert [c.args[0].path for c in reviewer.review_file.call_args_list] == ["src/c.ts", "src/d.ts"]
        assert sorted(i.file for i in result.issues) == [f.path for f in files]
        assert result.files_reviewed == 6
        # Two inter-batch pauses plus one pause between the fallback calls.
        assert sleep.call_args_list == [call(1.5), call(FALLBACK_PAUSE_SECONDS), call(1.5)]

    def test_file_failing_individually_is_not_counted(self, tmp_path, changed_files, sleep):
        changed_files.return_value = [_change("src/a.ts"), _change("src/b.ts")]
        reviewer = _reviewer()
        reviewer.review_batch.side_effect = ProviderError("down")
        reviewer.review_file.side_effect = [ProviderError("still down"), [_issue(file="src/b.ts")]]

        pipeline = ReviewPipeline(_options(batch_size=2), _repo(), _pr(), reviewer, workspace=_workspace(tmp_path))
        result = pipeline.run()

        assert pipeline.failed_files == ["src/a.ts"]
        assert result.files_reviewed == 1
        assert len(result.issues) == 1

    def test_rerun_updates_comments_in_place(self, tmp_path, changed_files):
        changed_files.return_value = [_change("src/a.ts")]
        workspace = _workspace(tmp_path)

        first = _pr()
        ReviewPipeline(_options(), _repo(), first, _reviewer([_issue()]), workspace=workspace).run()
        inline_body = first.create_review_comment.call_args.args[0]
        summary_body = first.create_issue_comment.call_args.args[0]

        second = _pr(
            issue_comments=[types.SimpleNamespace(id=100, body=summary_body)],
            review_comments=[
                types.SimpleNamespace(id=200, body=inline_body, path="src/a.ts", line=2, original_line=2)
            ],
        )
        ReviewPipeline(_options(), _repo(), second, _reviewer([_issue()]), workspace=workspace).run()

        second.create_issue_comment.assert_not_called()
        second.create_review_comment.assert_not_called()
        second.get_issue_comment.assert_called_once_with(100)
        second.get_issue_comment.return_value.edit.assert_called_once()
        assert SUMMARY_MARKER in second.get_issue_comment.return_value.edit.call_args.args[0]

    def test_shadow_mode_posts_nothing(self, tmp_path, changed_files):
        changed_files.return_value = [_change("src/a.ts")]
        pr, repo = _pr(), _repo()

        result = ReviewPipeline(_options(), repo, pr, _reviewer([_issue()]), workspace=_workspace(tmp_path), shadow=True).run()

        assert len(result.issues) == 1
        repo.get_commit.assert_not_called()
        pr.create_review_comment.assert_not_called()
        pr.create_issue_comment.assert_not_called()

    def test_skip_when_repository_has_no_rules(self, tmp_path, changed_files):
        pipeline = ReviewPipeline(_options(skip_if_no_rules=True), _repo(), _pr(), _reviewer(), workspace=tmp_path)
        result = pipeline.run()
        assert result.skipped_reason == "No rules found in the repository"
        changed_files.assert_not_called()

    def test_review_without_rules_when_not_skipping(self, tmp_path, changed_files):
        changed_files.return_value = [_change("src/a.ts")]
        reviewer = _reviewer()
        result = ReviewPipeline(_options(), _repo(), _pr(), reviewer, workspace=tmp_path, shadow=True).run()
        assert result.skipped_reason is None
        assert result.rules_applied == []
        reviewer.review_batch.assert_called_once()

    def test_skip_when_no_rule_applies(self, tmp_path, changed_files):
        changed_files.return_value = [_change("src/a.ts")]
        workspace = _workspace(tmp_path, rule="---\nglobs: ['*.py']\n---\nPython only.")
        reviewer = _reviewer()

        result = ReviewPipeline(_options(skip_if_no_rules=True), _repo(), _pr(), reviewer, workspace=workspace).run()

        assert result.skipped_reason == "No applicable rules for the changed files"
        reviewer.generate_plan.assert_not_called()

    def test_filtered_removed_and_large_files_not_sent(self, tmp_path, changed_files):
        changed_files.return_value = [
            _change("README.md"),
            _change("node_modules/x/index.js"),
            _change("src/gone.ts", status="removed"),
            _change("src/huge.ts", additions=2000),
            _change("src/ok.ts"),
        ]
        reviewer = _reviewer()

        pipeline = ReviewPipeline(_options(), _repo(), _pr(), reviewer, workspace=_workspace(tmp_path), shadow=True)
        result = pipeline.run()

        (sent,) = [c.args[0] for c in reviewer.review_batch.call_args_list]
        assert [f.path for f in sent] == ["src/ok.ts"]
        assert [f.path for f in pipeline.files] == ["src/gone.ts", "src/huge.ts", "src/ok.ts"]
        assert result.total_files == 5

    def test_max_files_cap(self, tmp_path, changed_files):
        changed_files.return_value = [_change(f"src/{i}.ts") for i in range(5)]
        pipeline = ReviewPipeline(
            _options(max_files=2), _repo(), _pr(), _reviewer(), workspace=_workspace(tmp_path), shadow=True
        )
        pipeline.run()
        assert [f.path for f in pipeline.files] == ["src/0.ts", "src/1.ts"]

    def test_plan_and_summary_fall_back(self, tmp_path, changed_files):
        changed_files.return_value = [_change("src/a.ts")]
        reviewer = _reviewer([_issue()])
        reviewer.generate_plan.side_effect = ProviderError("no plan")
        reviewer.generate_summary.side_effect = ProviderError("no summary")

        pipeline = ReviewPipeline(_options(), _repo(), _pr(), reviewer, workspace=_workspace(tmp_path), shadow=True)
        result = pipeline.run()

        assert pipeline.plan.generated is False
        assert result.summary == "Reviewed 1 file(s) and found 1 issue(s): 1 error."

    def test_local_content_sent_and_truncated(self, tmp_path, changed_files):
        workspace = _workspace(tmp_path)
        (workspace / "src").mkdir()
        (workspace / "src" / "a.ts").write_text("x" * 50)
        changed_files.return_value = [_change("src/a.ts")]
        reviewer = _reviewer()

        ReviewPipeline(_options(max_chars_per_file=10), _repo(), _pr(), reviewer, workspace=workspace, shadow=True).run()

        contents = reviewer.review_batch.call_args.args[3]
        assert contents["src/a.ts"].startswith("x" * 10 + "\n... [file truncated]")

    def test_rate_limit_checked_when_client_given(self, tmp_path, changed_files, mocker):
        check = mocker.patch("rulelens_core.reviewer.check_rate_limit")
        changed_files.return_value = []
        client = MagicMock()
        ReviewPipeline(_options(), _repo(), _pr(), _reviewer(), workspace=tmp_path, client=client).run()
        check.assert_called_once_with(client)


class TestArchitecturalReview:
    def test_disabled_by_default(self, tmp_path, changed_files):
        changed_files.return_value = [_change("src/a.ts")]
        reviewer = _reviewer()
        ReviewPipeline(_options(), _repo(), _pr(), reviewer, workspace=_workspace(tmp_path), shadow=True).run()
        reviewer.review_architecture.assert_not_called()

    def test_issues_come_before_batch_issues(self, tmp_path, changed_files):
        changed_files.return_value = [_change("src/a.ts"), _change("src/b.ts")]
        reviewer = _reviewer([_issue()])
        reviewer.review_architecture.return_value = [
            Issue(
                severity="warning",
                category="best_practice",
                message="duplicated retry logic",
                file="src/b.ts",
                line=2,
                review_type="architectural",
            )
        ]

        options = _options(enable_architectural_review=True, batch_size=2)
        result = ReviewPipeline(options, _repo(), _pr(), reviewer, workspace=_workspace(tmp_path), shadow=True).run()

        assert [i.message for i in result.issues] == ["duplicated retry logic", "problem in src/a.ts"]
        assert result.issues[0].review_type == "architectural"
        sent_files, _, plan = reviewer.review_architecture.call_args.args
        assert sorted(f.path for f in sent_files) == ["src/a.ts", "src/b.ts"]
        assert plan.overview == "Adds error handling"

    def test_failure_does_not_stop_the_review(self, tmp_path, changed_files, caplog):
        changed_files.return_value = [_change("src/a.ts")]
        reviewer = _reviewer([_issue()])
        reviewer.review_architecture.side_effect = ProviderError("overloaded")

        options = _options(enable_architectural_review=True)
        with caplog.at_level(logging.WARNING):
            result = ReviewPipeline(options, _repo(), _pr(), reviewer, workspace=_workspace(tmp_path), shadow=True).run()

        assert len(result.issues) == 1
        assert "Architectural review failed" in caplog.text


class TestAutoFix:
    def test_fix_applied_and_summary_posted(self, tmp_path, changed_files):
        workspace = _workspace(tmp_path)
        (workspace / "src").mkdir()
        (workspace / "src" / "a.ts").write_text("a\nb\n")
        changed_files.return_value = [_change("src/a.ts")]
        pr = _pr()
        reviewer = _reviewer([_issue(replacement="B")])

        pipeline = ReviewPipeline(_options(enable_auto_fix=True), _repo(), pr, reviewer, workspace=workspace)
        pipeline.run()

        assert (workspace / "src" / "a.ts").read_text() == "a\nB\n"
        assert [r.applied for r in pipeline.autofix_results] == [True]
        bodies = [c.args[0] for c in pr.create_issue_comment.call_args_list]
        assert any("## Auto-fix summary" in b for b in bodies)
        assert any(SUMMARY_MARKER in b for b in bodies)

    def test_disabled_by_default(self, tmp_path, changed_files):
        workspace = _workspace(tmp_path)
        (workspace / "src").mkdir()
        (workspace / "src" / "a.ts").write_text("a\nb\n")
        changed_files.return_value = [_change("src/a.ts")]

        ReviewPipeline(_options(), _repo(), _pr(), _reviewer([_issue(replacement="B")]), workspace=workspace).run()

        assert (workspace / "src" / "a.ts").read_text() == "a\nb\n"

    def test_security_issue_never_fixed(self, tmp_path, changed_files):
        workspace = _workspace(tmp_path)
        (workspace / "src").mkdir()
        (workspace / "src" / "a.ts").write_text("a\nb\n")
        changed_files.return_value = [_change("src/a.ts")]
        reviewer = _reviewer([_issue(replacement="B", category="security")])

        pipeline = ReviewPipeline(_options(enable_auto_fix=True), _repo(), _pr(), reviewer, workspace=workspace, shadow=True)
        pipeline.run()

        assert pipeline.autofix_results == []
        assert (workspace / "src" / "a.ts").read_text() == "a\nb\n"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestFallbacks:
    def test_fallback_plan(self):
        plan = build_fallback_plan([_change("a.ts"), _change("b.ts", status="added", additions=3)])
        assert plan.generated is False
        assert "2 file(s)" in plan.overview
        assert "+4 -0" in plan.overview
        assert plan.key_changes == ["a.ts (modified)", "b.ts (added)"]

    def test_fallback_summary_without_issues(self):
        assert build_fallback_summary([], 3) == "Reviewed 3 file(s) and found no issues."

    def test_fallback_summary_counts(self):
        issues = [_issue(), _issue(severity="warning"), _issue(severity="warning")]
        assert build_fallback_summary(issues, 2) == "Reviewed 2 file(s) and found 3 issue(s): 1 error, 2 warning."


class TestAttributeIssues:
    def test_single_file_batch_claims_every_issue(self):
        (issue,) = attribute_issues([_issue(file="")], [_change("src/a.ts")], {})
        assert issue.file == "src/a.ts"
        assert issue.original_code == "b"

    def test_exact_path_then_basename(self):
        files = [_change("src/a.ts"), _change("lib/b.ts")]
        issues = attribute_issues([_issue(file="./src/a.ts"), _issue(file="b.ts")], files, {})
        assert [i.file for i in issues] == ["src/a.ts", "lib/b.ts"]

    def test_unknown_file_left_alone(self):
        files = [_change("src/a.ts"), _change("lib/b.ts")]
        (issue,) = attribute_issues([_issue(file="other.py")], files, {})
        assert issue.file == "other.py"
        assert issue.original_code is None

    def test_original_code_from_content_when_not_in_patch(self):
        (issue,) = attribute_issues([_issue(line=5)], [_change("src/a.ts")], {"src/a.ts": "1\n2\n3\n4\nfive\n"})
        assert issue.original_code == "five"


def test_print_shadow_comments(capsys):
    print_shadow_comments([_issue(rule_id="errors")])
    out = capsys.readouterr().out
    assert "src/a.ts" in out
    assert "ERROR" in out
    assert "not posted" in out


def test_print_shadow_comments_empty(capsys):
    print_shadow_comments([])
    assert "no issues" in capsys.readouterr().out
