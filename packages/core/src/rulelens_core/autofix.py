"""Apply low-risk fixes suggested by the reviewer to the local working copy.

Only issues carrying an exact replacement, at or above the configured
severity, in a low-risk category are touched. Nothing is committed; the CI
job decides what to do with the modified files.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rulelens_core.comments import severity_rank, threshold_rank
from rulelens_core.models import AUTOFIX_MARKER, BOT_MARKER, AutoFixResult, Issue

logger = logging.getLogger(__name__)

# Bug and security findings always need a human.
SAFE_CATEGORIES = frozenset({"rule_violation", "best_practice"})


def select_fixable(issues: list[Issue], threshold: str = "error") -> list[Issue]:
    minimum = threshold_rank(threshold)
    return [
        i
        for i in issues
        if i.replacement is not None
        and i.file
        and i.line is not None
        and severity_rank(i.severity) >= minimum
        and i.category in SAFE_CATEGORIES
    ]


def apply_fixes(content: str, issues: list[Issue]) -> tuple[str, list[AutoFixResult]]:
    """Apply fixes for one file, bottom-up so earlier lines keep their numbers.

    Returns the new content and one result per issue, in application order.
    """
    trailing_newline = content.endswith("\n")
    lines = content.split("\n")
    if trailing_newline:
        lines.pop()

    results: list[AutoFixResult] = []
    lowest_applied: int | None = None
    ordered = sorted(issues, key=lambda i: (i.line or 0, i.end_line or i.line or 0), reverse=True)
    for issue in ordered:
        start = issue.line
        end = issue.end_line or start
        if start is None or start < 1 or end > len(lines):
            results.append(
                AutoFixResult(issue.file, issue, False, f"line {start} out of range (file has {len(lines)} lines)")
            )
            continue
        if lowest_applied is not None and end >= lowest_applied:
            results.append(AutoFixResult(issue.file, issue, False, "overlaps another fix"))
            continue
        if issue.original_code is not None and lines[start - 1].strip() != issue.original_code.strip():
            results.append(AutoFixResult(issue.file, issue, False, "line no longer matches the reported code"))
            continue

        replacement = issue.replacement.rstrip("\n")
        lines[start - 1 : end] = replacement.split("\n") if replacement else []
        lowest_applied = start
        results.append(AutoFixResult(issue.file, issue, True))

    new_content = "\n".join(lines)
    if trailing_newline and lines:
        new_content += "\n"
    return new_content, results


class AutoFixer:
    def __init__(self, workspace: str | Path = "."):
        self.workspace = Path(workspace)

    def apply(self, issues: list[Issue]) -> list[AutoFixResult]:
        """Apply fixes file by file; a failed write un-claims every fix for that file."""
        by_file: dict[str, list[Issue]] = {}
        for issue in issues:
            by_file.setdefault(issue.file, []).append(issue)

        results: list[AutoFixResult] = []
        for file, group in by_file.items():
            results.extend(self._apply_file(file, group))

        applied = sum(1 for r in results if r.applied)
        logger.info("Auto-fix applied %d of %d fix(es)", applied, len(results))
        return results

    def _apply_file(self, file: str, issues: list[Issue]) -> list[AutoFixResult]:
        base = self.workspace.resolve()
        path = (base / file).resolve()
        try:
            path.relative_to(base)
        except ValueError:
            return [AutoFixResult(file, i, False, "path is outside the workspace") for i in issues]
        if not path.is_file():
            return [AutoFixResult(file, i, False, "file not found in working copy") for i in issues]

        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return [AutoFixResult(file, i, False, f"could not read file: {e}") for i in issues]

        new_content, results = apply_fixes(content, issues)
        if new_content == content:
            return results
        try:
            path.write_text(new_content, encoding="utf-8")
        except OSError as e:
            logger.error("Could not write fixes to %s: %s", file, e)
            for r in results:
                if r.applied:
                    r.applied = False
                    r.error = f"write failed: {e}"
        return results


def format_autofix_summary(results: list[AutoFixResult]) -> str:
    applied = [r for r in results if r.applied]
    failed = [r for r in results if not r.applied]
    lines = [BOT_MARKER, AUTOFIX_MARKER, "## Auto-fix summary\n"]
    lines.append(f"**{len(applied)}** fix(es) applied to the working copy, **{len(failed)}** not applied.\n")
    if applied:
        lines.append("| File | Line | Fix |")
        lines.append("|------|:----:|-----|")
        for r in applied:
            lines.append(f"| `{r.file}` | {r.issue.line} | {r.issue.message} |")
    if failed:
        lines.append("\n**Not applied:**")
        for r in failed:
            lines.append(f"- `{r.file}`:{r.issue.line} {r.issue.message}: {r.error}")
    lines.append("\n_Review the changes before committing them._")
    return "\n".join(lines)
