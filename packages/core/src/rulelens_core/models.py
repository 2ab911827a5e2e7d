"""Data types shared by the review pipeline.

Kept as plain dataclasses so every stage (rules, batching, providers,
comments, auto-fix) can pass them around without depending on each other.
"""

from __future__ import annotations

from dataclasses import dataclass, field

SEVERITIES = ("error", "warning", "info", "suggestion")
FILE_STATUSES = ("added", "modified", "removed", "renamed")


class RuleKind:
    ALWAYS = "always"
    PATH_SCOPED = "path-scoped"
    MANUAL = "manual"
    LEGACY = "legacy"

    ALL = (ALWAYS, PATH_SCOPED, MANUAL, LEGACY)


@dataclass(frozen=True)
class Rule:
    """A single reviewable guideline loaded from the project's rule documents."""

    id: str
    name: str
    kind: str
    body: str
    globs: tuple[str, ...] = ()
    referenced_files: tuple[str, ...] = ()
    description: str | None = None
    source_path: str = ""
    order: int = 0
    # Referenced file name -> loaded text. Filled once at load time.
    referenced_content: dict[str, str] = field(default_factory=dict, compare=False, hash=False)


@dataclass
class RuleSet:
    """All three rule channels found in a repository.

    The caller decides which channels feed the review; ``has_any`` answers the
    "do rules exist at all" question used by the skip policy.
    """

    project_rules: list[Rule] = field(default_factory=list)
    agents_document: str | None = None
    legacy_document: str | None = None

    def has_any(self) -> bool:
        return bool(self.project_rules) or bool(self.agents_document) or bool(self.legacy_document)

    def channel_rules(self) -> list[Rule]:
        """Turn the single-document channels into global rules placed after the project rules."""
        extra: list[Rule] = []
        next_order = len(self.project_rules)
        if self.agents_document:
            extra.append(
                Rule(
                    id="AGENTS",
                    name="AGENTS.md",
                    kind=RuleKind.ALWAYS,
                    body=self.agents_document.strip(),
                    source_path="AGENTS.md",
                    order=next_order,
                )
            )
            next_order += 1
        if self.legacy_document:
            extra.append(
                Rule(
                    id="cursorrules",
                    name=".cursorrules",
                    kind=RuleKind.LEGACY,
                    body=self.legacy_document.strip(),
                    source_path=".cursorrules",
                    order=next_order,
                )
            )
        return extra

    def all_rules(self) -> list[Rule]:
        return [*self.project_rules, *self.channel_rules()]


@dataclass(frozen=True)
class FileChange:
    path: str
    status: str
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    patch: str | None = None
    previous_path: str | None = None

    def __post_init__(self):
        if self.status not in FILE_STATUSES:
            raise ValueError(f"{self.path}: unknown file status {self.status!r}")
        if self.changes != self.additions + self.deletions:
            raise ValueError(
                f"{self.path}: changes ({self.changes}) must equal additions + deletions "
                f"({self.additions} + {self.deletions})"
            )


@dataclass
class Issue:
    """One finding reported by the AI provider."""

    severity: str
    category: str
    message: str
    description: str = ""
    file: str = ""
    line: int | None = None
    end_line: int | None = None
    replacement: str | None = None
    suggestion: str | None = None
    rule_id: str | None = None
    rule_name: str | None = None
    original_code: str | None = None
    low_confidence: bool = False
    review_type: str = "detailed"  # "detailed" | "architectural"

    def __post_init__(self):
        if self.end_line is not None and (self.line is None or self.line > self.end_line):
            raise ValueError(f"Issue end_line {self.end_line} precedes line {self.line}")

    @classmethod
    def from_dict(cls, data: dict) -> Issue:
        """Build an Issue from one element of a provider's JSON response.

        Providers are inconsistent about key style, so both camelCase and
        snake_case spellings are accepted. Unknown severities become warnings.
        """
        severity = str(data.get("severity") or data.get("type") or "warning").lower()
        if severity not in SEVERITIES:
            severity = "warning"

        message = str(data.get("message") or data.get("comment") or data.get("title") or "").strip()
        if not message:
            raise ValueError("issue has no message")

        line = _as_line(data.get("line"))
        end_line = _as_line(data.get("endLine", data.get("end_line")))
        if end_line is not None and (line is None or end_line < line):
            end_line = None

        replacement = data.get("fixedCode", data.get("fixed_code", data.get("replacement")))

        return cls(
            severity=severity,
            category=str(data.get("category") or "best_practice"),
            message=message,
            description=str(data.get("description") or message),
            file=str(data.get("file") or data.get("path") or ""),
            line=line,
            end_line=end_line,
            replacement=replacement if isinstance(replacement, str) else None,
            suggestion=data.get("suggestion") if isinstance(data.get("suggestion"), str) else None,
            rule_id=data.get("ruleId", data.get("rule_id")),
            rule_name=data.get("ruleName", data.get("rule_name")),
        )


def _as_line(value) -> int | None:
    try:
        line = int(value)
    except (TypeError, ValueError):
        return None
    return line if line > 0 else None


@dataclass
class ReviewBatch:
    files: list[FileChange]
    index: int
    total: int


@dataclass
class PRPlan:
    overview: str
    key_changes: list[str] = field(default_factory=list)
    risk_areas: list[str] = field(default_factory=list)
    review_focus: list[str] = field(default_factory=list)
    context: str = ""
    generated: bool = True


@dataclass
class ReviewResult:
    issues: list[Issue] = field(default_factory=list)
    files_reviewed: int = 0
    total_files: int = 0
    rules_applied: list[Rule] = field(default_factory=list)
    summary: str = ""
    status: str = "passed"  # "passed" | "needs_attention"
    skipped_reason: str | None = None


@dataclass
class AutoFixResult:
    file: str
    issue: Issue
    applied: bool
    error: str | None = None


@dataclass
class ExistingComment:
    """A comment already on the PR, as far as reconciliation cares."""

    id: int
    kind: str  # "inline" | "summary" | "autofix" | "other"
    body: str
    is_bot: bool
    path: str | None = None
    line: int | None = None


@dataclass
class InlineComment:
    path: str
    line: int
    body: str
    issues: list[Issue] = field(default_factory=list)
    side: str = "RIGHT"
    comment_id: int | None = None


@dataclass
class SkippedIssue:
    issue: Issue
    reason: str


@dataclass
class CommentPlan:
    to_create: list[InlineComment] = field(default_factory=list)
    to_update: list[InlineComment] = field(default_factory=list)
    to_skip: list[SkippedIssue] = field(default_factory=list)
    summary_comment_id: int | None = None


# Hidden markers identifying comments this tool owns. Anything without one is
# treated as a human comment and never touched.
BOT_MARKER = "<!-- rulelens -->"
SUMMARY_MARKER = "<!-- rulelens-summary -->"
INLINE_MARKER = "<!-- rulelens-inline -->"
AUTOFIX_MARKER = "<!-- rulelens-autofix -->"


def comment_kind(body: str | None) -> str:
    """Classify a comment body by its marker: summary, autofix, inline or other."""
    body = body or ""
    if SUMMARY_MARKER in body:
        return "summary"
    if AUTOFIX_MARKER in body:
        return "autofix"
    if INLINE_MARKER in body:
        return "inline"
    return "other"
