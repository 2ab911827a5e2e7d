"""Turn review issues into GitHub comments.

Reconciliation is pure: it takes the issues, the PR's file changes and the
comments already on the PR, and returns a CommentPlan saying what to create,
what to edit in place and what to leave alone. Posting is a separate step.
"""

from __future__ import annotations

import logging

from github import GithubException

from rulelens_core.config import SEVERITY_RANK, THRESHOLD_RANK
from rulelens_core.gh.pull_request import (
    create_inline_comment,
    list_existing_comments,
    update_inline_comment,
    upsert_issue_comment,
)
from rulelens_core.models import (
    BOT_MARKER,
    INLINE_MARKER,
    SEVERITIES,
    SUMMARY_MARKER,
    CommentPlan,
    ExistingComment,
    FileChange,
    InlineComment,
    Issue,
    PRPlan,
    ReviewResult,
    SkippedIssue,
)
from rulelens_core.utils.diff import valid_lines

logger = logging.getLogger(__name__)


class CommentPostError(RuntimeError):
    """The summary comment could not be posted."""


def severity_rank(severity: str) -> int:
    return SEVERITY_RANK.get(severity, 0)


def threshold_rank(threshold: str) -> int:
    try:
        return THRESHOLD_RANK[threshold]
    except KeyError:
        raise ValueError(f"Unknown severity threshold {threshold!r}") from None


def filter_by_severity(issues: list[Issue], threshold: str) -> list[Issue]:
    """Keep issues whose severity ranks at or above threshold."""
    minimum = threshold_rank(threshold)
    return [i for i in issues if severity_rank(i.severity) >= minimum]


def count_by_severity(issues: list[Issue]) -> dict[str, int]:
    counts = {s: 0 for s in SEVERITIES}
    for issue in issues:
        counts[issue.severity] = counts.get(issue.severity, 0) + 1
    return counts


def reconcile(
    issues: list[Issue],
    file_changes: list[FileChange],
    existing_comments: list[ExistingComment],
    threshold: str = "warning",
    update_existing: bool = True,
    enable_suggestions: bool = True,
) -> CommentPlan:
    """Decide which inline comments to create, update or skip."""
    plan = CommentPlan()
    lines_by_file = {f.path: valid_lines(f.patch) for f in file_changes if f.patch}

    minimum = threshold_rank(threshold)
    groups: dict[tuple[str, int], list[Issue]] = {}
    for issue in issues:
        if severity_rank(issue.severity) < minimum:
            plan.to_skip.append(SkippedIssue(issue, "below_threshold"))
        elif issue.line is None:
            plan.to_skip.append(SkippedIssue(issue, "no_line"))
        elif issue.file not in lines_by_file:
            plan.to_skip.append(SkippedIssue(issue, "no_patch"))
        elif issue.line not in lines_by_file[issue.file]:
            plan.to_skip.append(SkippedIssue(issue, "line_not_in_diff"))
        else:
            groups.setdefault((issue.file, issue.line), []).append(issue)

    bot_inline: dict[tuple[str | None, int | None], ExistingComment] = {}
    if update_existing:
        for c in existing_comments:
            if not c.is_bot:
                continue
            if c.kind == "inline":
                bot_inline.setdefault((c.path, c.line), c)
            elif c.kind == "summary" and plan.summary_comment_id is None:
                plan.summary_comment_id = c.id

    for (path, line), group in groups.items():
        body = format_inline_body(group, enable_suggestions)
        comment = InlineComment(path=path, line=line, body=body, issues=group)
        previous = bot_inline.get((path, line))
        if previous is None:
            plan.to_create.append(comment)
        elif previous.body.strip() == comment.body.strip():
            plan.to_skip.extend(SkippedIssue(i, "unchanged") for i in group)
        else:
            comment.comment_id = previous.id
            plan.to_update.append(comment)

    return plan


# ------------------------------------------------------------------ #
# Formatting                                                           #
# ------------------------------------------------------------------ #


def _format_issue(issue: Issue, enable_suggestions: bool = True) -> str:
    header = f"**[{issue.severity.upper()}]** {issue.message}"
    tags = [issue.category]
    if issue.review_type == "architectural":
        tags.append("architectural")
    if issue.rule_id:
        tags.append(f"rule `{issue.rule_id}`" + (f" ({issue.rule_name})" if issue.rule_name else ""))
    if issue.low_confidence:
        tags.append("low confidence")
    parts = [header, f"_{' · '.join(tags)}_"]
    if issue.description and issue.description != issue.message:
        parts.append(issue.description)
    if not enable_suggestions:
        return "\n\n".join(parts)
    if issue.suggestion:
        parts.append(f"**Suggestion:** {issue.suggestion}")
    if issue.replacement is not None:
        if issue.end_line is None or issue.end_line == issue.line:
            parts.append(f"```suggestion\n{issue.replacement}\n```")
        else:
            parts.append(f"Suggested replacement for lines {issue.line}-{issue.end_line}:\n```\n{issue.replacement}\n```")
    return "\n\n".join(parts)


def format_inline_body(issues: list[Issue], enable_suggestions: bool = True) -> str:
    """Render one inline comment covering every issue at the same location."""
    rendered = "\n\n---\n\n".join(_format_issue(i, enable_suggestions) for i in issues)
    return f"{BOT_MARKER}\n{INLINE_MARKER}\n{rendered}"


# Issues listed one by one in a detailed summary; above this only the table is shown.
MAX_LISTED_ISSUES = 15


def _issue_list(issues: list[Issue]) -> list[str]:
    by_category: dict[str, list[Issue]] = {}
    for issue in issues:
        by_category.setdefault(issue.category, []).append(issue)
    lines = ["\n<details><summary>All issues</summary>\n"]
    for category, group in by_category.items():
        lines.append(f"**{category}** ({len(group)})")
        for issue in group:
            location = f"`{issue.file or '(unattributed)'}:{issue.line or '?'}`"
            lines.append(f"- **[{issue.severity.upper()}]** {location} {issue.message}")
        lines.append("")
    lines.append("</details>")
    return lines


def format_summary_body(
    result: ReviewResult,
    plan: PRPlan | None,
    files: list[FileChange],
    summary_format: str = "detailed",
) -> str:
    """Build the single PR-level summary comment.

    summary_format:
    - minimal: the status line only
    - brief: adds the summary text, the per-file table and the applied rules
    - detailed: adds the issue list (up to MAX_LISTED_ISSUES) and the review plan
    """
    lines = [BOT_MARKER, SUMMARY_MARKER, "## Rule review summary\n"]

    if result.skipped_reason:
        lines.append(f"> Review skipped: {result.skipped_reason}")
        return "\n".join(lines)

    if result.summary and summary_format != "minimal":
        lines.append(result.summary.strip() + "\n")

    totals = count_by_severity(result.issues)
    status = "Needs attention" if result.status == "needs_attention" else "Passed"
    lines.append(
        f"**Status:** {status} · **{result.files_reviewed}** of {result.total_files} file(s) reviewed"
        f" · **{len(result.issues)}** issue(s) · **{len(result.rules_applied)}** rule(s) applied\n"
    )
    if summary_format == "minimal":
        return "\n".join(lines)

    file_counts: dict[str, dict[str, int]] = {}
    for issue in result.issues:
        counts = file_counts.setdefault(issue.file or "(unattributed)", {s: 0 for s in SEVERITIES})
        counts[issue.severity] += 1

    if file_counts:
        lines.append("| File | Error | Warning | Info | Suggestion | Total |")
        lines.append("|------|:-----:|:-------:|:----:|:----------:|:-----:|")
        for path, counts in sorted(file_counts.items(), key=lambda kv: -sum(kv[1].values())):
            cells = " | ".join(str(counts[s] or "—") for s in SEVERITIES)
            lines.append(f"| `{path}` | {cells} | {sum(counts.values())} |")
        lines.append(
            "| **Total** | "
            + " | ".join(str(totals[s]) for s in SEVERITIES)
            + f" | {len(result.issues)} |"
        )
    else:
        lines.append("_No issues found. The changes follow the project rules._")

    if summary_format == "detailed" and result.issues:
        if len(result.issues) <= MAX_LISTED_ISSUES:
            lines.extend(_issue_list(result.issues))
        else:
            lines.append("\n_Too many issues to list here; see the inline comments for details._")

    if result.rules_applied:
        lines.append("\n<details><summary>Rules applied</summary>\n")
        for rule in result.rules_applied:
            lines.append(f"- `{rule.id}` {rule.name} ({rule.kind})")
        lines.append("\n</details>")

    if summary_format == "detailed" and plan is not None and plan.generated:
        lines.append("\n<details><summary>Review plan</summary>\n")
        lines.append(f"**Overview:** {plan.overview}")
        if plan.key_changes:
            lines.append("\n**Key changes:**\n" + "\n".join(f"- {c}" for c in plan.key_changes))
        if plan.risk_areas:
            lines.append("\n**Risk areas:**\n" + "\n".join(f"- {r}" for r in plan.risk_areas))
        lines.append("\n</details>")

    not_reviewed = len(files) - result.files_reviewed
    if not_reviewed > 0:
        lines.append(f"\n_{not_reviewed} changed file(s) were not reviewed (filtered or over the file limit)._")

    return "\n".join(lines)


# ------------------------------------------------------------------ #
# Posting                                                              #
# ------------------------------------------------------------------ #


def post_comments(
    pr,
    commit,
    result: ReviewResult,
    files: list[FileChange],
    plan: PRPlan | None,
    comment_style: str = "both",
    inline_severity: str = "warning",
    update_existing: bool = True,
    summary_format: str = "detailed",
    enable_suggestions: bool = True,
) -> CommentPlan:
    """Reconcile and post inline comments and the summary comment.

    Inline failures are logged and skipped (diff positions can go stale
    between fetch and post). A summary failure raises CommentPostError.
    """
    existing = list_existing_comments(pr)
    comment_plan = reconcile(result.issues, files, existing, inline_severity, update_existing, enable_suggestions)

    if comment_style in ("inline", "both"):
        for comment in comment_plan.to_create:
            try:
                comment.comment_id = create_inline_comment(pr, commit, comment.path, comment.line, comment.body)
            except GithubException as e:
                logger.warning("Could not post inline comment on %s:%d: %s", comment.path, comment.line, e)
        for comment in comment_plan.to_update:
            try:
                update_inline_comment(pr, comment.comment_id, comment.body)
            except GithubException as e:
                logger.warning("Could not update inline comment on %s:%d: %s", comment.path, comment.line, e)
        logger.info(
            "Inline comments: %d created, %d updated, %d skipped",
            len(comment_plan.to_create),
            len(comment_plan.to_update),
            len(comment_plan.to_skip),
        )

    if comment_style in ("summary", "both"):
        body = format_summary_body(result, plan, files, summary_format)
        try:
            comment_plan.summary_comment_id = upsert_issue_comment(pr, body, comment_plan.summary_comment_id)
        except GithubException as e:
            raise CommentPostError(f"Could not post summary comment: {e}") from e

    return comment_plan
