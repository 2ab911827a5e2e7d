"""Core PR review orchestration."""

from __future__ import annotations

import dataclasses
import logging
import time
from enum import Enum
from pathlib import Path

from github import GithubException
from rich.console import Console

from rulelens_core.autofix import AutoFixer, format_autofix_summary, select_fixable
from rulelens_core.batching import plan_batches
from rulelens_core.comments import count_by_severity, post_comments
from rulelens_core.config import ReviewOptions
from rulelens_core.gh.pull_request import (
    check_rate_limit,
    fetch_file_content,
    get_changed_files,
    list_existing_comments,
    upsert_issue_comment,
)
from rulelens_core.models import (
    AutoFixResult,
    CommentPlan,
    FileChange,
    Issue,
    PRPlan,
    ReviewBatch,
    ReviewResult,
    Rule,
    RuleSet,
)
from rulelens_core.providers.base import BaseReviewer, ProviderError
from rulelens_core.rules import RuleStore, filter_for_files
from rulelens_core.utils.diff import get_patch_line_content
from rulelens_core.utils.paths import is_reviewable

console = Console()
logger = logging.getLogger(__name__)

# Pause between per-file calls when a batch falls back to single-file review.
FALLBACK_PAUSE_SECONDS = 0.5


class ReviewStage(Enum):
    INIT = "init"
    RULES_LOADED = "rules_loaded"
    FILES_LOADED = "files_loaded"
    PLANNED = "planned"
    REVIEWING = "reviewing"
    AGGREGATED = "aggregated"
    AUTO_FIXING = "auto_fixing"
    COMMENTED = "commented"
    DONE = "done"
    SKIPPED = "skipped"


def build_fallback_plan(files: list[FileChange]) -> PRPlan:
    """Deterministic plan used when the provider cannot produce one."""
    additions = sum(f.additions for f in files)
    deletions = sum(f.deletions for f in files)
    by_status: dict[str, int] = {}
    for f in files:
        by_status[f.status] = by_status.get(f.status, 0) + 1
    status_text = ", ".join(f"{n} {status}" for status, n in by_status.items())
    return PRPlan(
        overview=f"Changes to {len(files)} file(s) ({status_text}), +{additions} -{deletions} lines.",
        key_changes=[f"{f.path} ({f.status})" for f in files[:10]],
        risk_areas=[],
        review_focus=["Rule compliance", "Correctness of the changed lines"],
        context="",
        generated=False,
    )


def build_fallback_summary(issues: list[Issue], files_reviewed: int) -> str:
    """Templated summary built from severity counts."""
    if not issues:
        return f"Reviewed {files_reviewed} file(s) and found no issues."
    counts = count_by_severity(issues)
    parts = [f"{n} {severity}" for severity, n in counts.items() if n]
    return f"Reviewed {files_reviewed} file(s) and found {len(issues)} issue(s): {', '.join(parts)}."


def attribute_issues(issues: list[Issue], files: list[FileChange], contents: dict[str, str]) -> list[Issue]:
    """Pin each issue to one of the batch's files and record the code it points at."""
    by_path = {f.path: f for f in files}
    by_name: dict[str, FileChange] = {}
    for f in files:
        by_name.setdefault(f.path.rsplit("/", 1)[-1], f)

    for issue in issues:
        if len(files) == 1:
            target = files[0]
        else:
            reported = issue.file[2:] if issue.file.startswith("./") else issue.file
            target = by_path.get(reported) or by_name.get(reported.rsplit("/", 1)[-1])
        if target is None:
            logger.debug("Could not attribute issue %r to a file in the batch", issue.message)
            continue
        issue.file = target.path

        if issue.line is not None and issue.original_code is None:
            code = get_patch_line_content(target.patch, issue.line)
            if not code and target.path in contents:
                content_lines = contents[target.path].splitlines()
                if issue.line <= len(content_lines):
                    code = content_lines[issue.line - 1]
            issue.original_code = code or None
    return issues


def print_shadow_comments(issues: list[Issue]) -> None:
    """Print review issues to the terminal without posting to GitHub."""
    _severity_color = {"error": "red", "warning": "yellow", "info": "blue", "suggestion": "dim"}
    if not issues:
        console.print("[yellow]Shadow mode: no issues found.[/yellow]")
        return
    console.print(f"\n[bold]Shadow review — {len(issues)} issue(s) (not posted)[/bold]\n")
    for issue in issues:
        color = _severity_color.get(issue.severity, "white")
        location = f"line [bold]{issue.line}[/bold]" if issue.line else "no line"
        console.print(
            f"[bold cyan]{issue.file or '(unattributed)'}[/bold cyan]  {location}  "
            f"[{color}]{issue.severity.upper()}[/{color}]"
            + (f"  [dim]{issue.rule_id}[/dim]" if issue.rule_id else "")
            + ("  [magenta]architectural[/magenta]" if issue.review_type == "architectural" else "")
        )
        if issue.original_code:
            console.print(f"  [dim]{issue.original_code.strip()}[/dim]")
        console.print(f"  {issue.message}")
        console.print()


class ReviewPipeline:
    """One review run over one pull request.

    Owns the accumulating issue list and the file content cache for the
    duration of ``run()``; nothing is shared across runs.
    """

    def __init__(
        self,
        options: ReviewOptions,
        repo,
        pr,
        reviewer: BaseReviewer,
        workspace: str | Path = ".",
        shadow: bool = False,
        client=None,
    ):
        self.options = options
        self.repo = repo
        self.pr = pr
        self.reviewer = reviewer
        self.workspace = Path(workspace)
        self.shadow = shadow
        self.client = client

        self.stage = ReviewStage.INIT
        self.head_sha: str = pr.head.sha
        self.rule_set: RuleSet | None = None
        self.changed_files: list[FileChange] = []
        self.files: list[FileChange] = []
        self.rules: list[Rule] = []
        self.plan: PRPlan | None = None
        self.issues: list[Issue] = []
        self.failed_files: list[str] = []
        self.autofix_results: list[AutoFixResult] = []
        self.comment_plan: CommentPlan | None = None
        self._content_cache: dict[str, str | None] = {}

    def run(self) -> ReviewResult:
        if self.client is not None:
            check_rate_limit(self.client)

        self.rule_set = RuleStore(self.workspace).load_all(self.options.rules_path)
        self.stage = ReviewStage.RULES_LOADED
        console.print(f"Loaded [bold]{len(self.rule_set.all_rules())}[/bold] rule(s).")
        if self.options.skip_if_no_rules and not self.rule_set.has_any():
            return self._skip("No rules found in the repository")

        self.changed_files = get_changed_files(self.pr)
        self.files = self._select_files(self.changed_files)
        self.stage = ReviewStage.FILES_LOADED
        if not self.files:
            return self._skip("No files to review")

        self.rules = filter_for_files(self.rule_set.all_rules(), [f.path for f in self.files])
        if self.options.skip_if_no_rules and not self.rules:
            return self._skip("No applicable rules for the changed files")

        self.plan = self._generate_plan()
        self.stage = ReviewStage.PLANNED

        if self.options.enable_architectural_review:
            self.issues.extend(self._review_architecture())
        self._review()

        self.stage = ReviewStage.AGGREGATED
        files_reviewed = len(self.files) - len(self.failed_files)
        result = ReviewResult(
            issues=self.issues,
            files_reviewed=files_reviewed,
            total_files=len(self.changed_files),
            rules_applied=self.rules,
            summary=self._summarize(files_reviewed),
            status="needs_attention" if self.issues else "passed",
        )

        if self.options.enable_auto_fix:
            self.stage = ReviewStage.AUTO_FIXING
            self._auto_fix()

        if self.shadow:
            print_shadow_comments(self.issues)
            console.print(f"[bold]Shadow review complete. {len(self.issues)} issue(s) would be reported.[/bold]")
        else:
            commit = self.repo.get_commit(self.head_sha)
            self.comment_plan = post_comments(
                self.pr,
                commit,
                result,
                self.changed_files,
                self.plan,
                comment_style=self.options.comment_style,
                inline_severity=self.options.inline_severity,
                update_existing=self.options.update_existing_comments,
                summary_format=self.options.summary_format,
                enable_suggestions=self.options.enable_suggestions,
            )
            self.stage = ReviewStage.COMMENTED

        self.stage = ReviewStage.DONE
        return result

    # ------------------------------------------------------------------ #
    # Stages                                                               #
    # ------------------------------------------------------------------ #

    def _skip(self, reason: str) -> ReviewResult:
        self.stage = ReviewStage.SKIPPED
        console.print(f"[yellow]Review skipped: {reason}[/yellow]")
        return ReviewResult(
            files_reviewed=0,
            total_files=len(self.changed_files),
            summary=f"Review skipped: {reason}",
            status="passed",
            skipped_reason=reason,
        )

    def _select_files(self, files: list[FileChange]) -> list[FileChange]:
        selected = []
        for f in files:
            if is_reviewable(f.path, self.options.include, self.options.exclude):
                selected.append(f)
            else:
                console.print(f"  Skipping: {f.path}")
        if len(selected) > self.options.max_files:
            logger.warning(
                "PR has %d reviewable files; only the first %d will be reviewed", len(selected), self.options.max_files
            )
            selected = selected[: self.options.max_files]
        return selected

    def _generate_plan(self) -> PRPlan:
        try:
            return self.reviewer.generate_plan(self.files, self.rules)
        except ProviderError as e:
            logger.warning("Could not generate PR plan, using a basic one: %s", e)
            return build_fallback_plan(self.files)

    def _review_architecture(self) -> list[Issue]:
        """Look across all changed files at once; issues come before the per-batch ones."""
        reviewable = [f for f in self.files if f.status != "removed" and f.patch]
        if not reviewable:
            return []
        console.print("\nReviewing architecture across the changed files...")
        try:
            issues = self.reviewer.review_architecture([self._truncate(f) for f in reviewable], self.rules, self.plan)
        except ProviderError as e:
            logger.warning("Architectural review failed, continuing with the file review: %s", e)
            return []
        console.print(f"  {len(issues)} architectural issue(s) found.")
        return attribute_issues(issues, reviewable, {})

    def _review(self) -> None:
        reviewable = []
        for f in self.files:
            if f.status == "removed" or not f.patch:
                continue
            if f.changes > self.options.max_changes_per_file:
                console.print(f"  Skipping large file: {f.path} ({f.changes} changes)")
                continue
            reviewable.append(f)

        batches = plan_batches(reviewable, self.options.batch_size)
        for batch in batches:
            self.stage = ReviewStage.REVIEWING
            if batch.index > 0 and self.options.request_delay_ms > 0:
                time.sleep(self.options.request_delay_seconds)
            console.print(
                f"\n[[{batch.index + 1}/{batch.total}]] Reviewing: {', '.join(f.path for f in batch.files)}"
            )
            issues = self._review_batch(batch)
            self.issues.extend(issues)
            console.print(f"  {len(issues)} issue(s) found.")

    def _review_batch(self, batch: ReviewBatch) -> list[Issue]:
        contents = {}
        for f in batch.files:
            content = self._load_content(f)
            if content is not None:
                contents[f.path] = content
        rules = filter_for_files(self.rules, [f.path for f in batch.files])
        sent = [self._truncate(f) for f in batch.files]

        try:
            issues = self.reviewer.review_batch(sent, rules, self.plan, contents)
            return attribute_issues(issues, batch.files, contents)
        except ProviderError as e:
            logger.warning("Batch %d failed (%s); reviewing its files individually", batch.index + 1, e)

        issues: list[Issue] = []
        for i, (original, file) in enumerate(zip(batch.files, sent)):
            if i > 0:
                time.sleep(FALLBACK_PAUSE_SECONDS)
            try:
                found = self.reviewer.review_file(
                    file, contents.get(file.path), filter_for_files(self.rules, [file.path]), self.plan
                )
            except ProviderError as e:
                logger.error("Review failed for %s: %s", file.path, e)
                self.failed_files.append(file.path)
                continue
            issues.extend(attribute_issues(found, [original], contents))
        return issues

    def _load_content(self, file: FileChange) -> str | None:
        """Return file content from the working copy, else from GitHub at the head commit."""
        if file.path in self._content_cache:
            return self._content_cache[file.path]

        content = None
        local = self.workspace / file.path
        if local.is_file():
            try:
                content = local.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.debug("Could not read %s locally: %s", file.path, e)
        if content is None:
            content = fetch_file_content(self.repo, file.path, self.head_sha)

        max_chars = self.options.max_chars_per_file
        if content is not None and len(content) > max_chars:
            content = content[:max_chars] + "\n... [file truncated]"
        self._content_cache[file.path] = content
        return content

    def _truncate(self, file: FileChange) -> FileChange:
        max_chars = self.options.max_chars_per_file
        if file.patch and len(file.patch) > max_chars:
            return dataclasses.replace(file, patch=file.patch[:max_chars] + "\n... [diff truncated]")
        return file

    def _summarize(self, files_reviewed: int) -> str:
        try:
            summary = self.reviewer.generate_summary(self.issues, files_reviewed, self.rules)
        except ProviderError as e:
            logger.warning("Could not generate summary, using a basic one: %s", e)
            summary = ""
        return summary or build_fallback_summary(self.issues, files_reviewed)

    def _auto_fix(self) -> None:
        fixable = select_fixable(self.issues, self.options.auto_fix_severity)
        if not fixable:
            logger.info("No issues eligible for auto-fix")
            return
        self.autofix_results = AutoFixer(self.workspace).apply(fixable)
        if self.shadow:
            return

        existing_id = next(
            (c.id for c in list_existing_comments(self.pr) if c.is_bot and c.kind == "autofix"),
            None,
        )
        try:
            upsert_issue_comment(self.pr, format_autofix_summary(self.autofix_results), existing_id)
        except GithubException as e:
            logger.warning("Could not post auto-fix summary: %s", e)
