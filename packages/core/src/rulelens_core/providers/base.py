"""Base reviewer implementing the Template Method pattern.

All providers share the same algorithms:
    review_file() / review_batch() / review_architecture() / generate_plan() / generate_summary()
        → _build_*_prompt()
        → _call_with_retry() → _call_api()   ← only this differs per provider
        → _parse_*()

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response
"""

from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod

from rulelens_core.models import FileChange, Issue, PRPlan, Rule

logger = logging.getLogger(__name__)

# Shared defaults; subclasses may override them as class attributes.
_MAX_RETRIES = 3
_MAX_TOKENS = 4096

_MAX_REFERENCE_CHARS = 4000
_LINE_REF_RE = re.compile(r"\bline\s+(\d+)", re.IGNORECASE)
_NO_ISSUES_RE = re.compile(r"\bno\s+(?:issues|violations)\b", re.IGNORECASE)
# Brackets, braces and `"key": value` lines of a JSON document.
_JSON_SYNTAX_RE = re.compile(r'^(?:[\[\]{},]+|"[^"]*"\s*:.*)$')

ISSUE_CATEGORIES = ("rule_violation", "best_practice", "security", "performance", "bug", "style")

_LEVEL_GUIDANCE = {
    "light": "Only report clear rule violations and likely bugs. Skip stylistic remarks.",
    "standard": "Report rule violations, bugs and meaningful best-practice problems.",
    "thorough": "Report every rule violation, bug, risk and best-practice problem, including minor ones.",
}


class ProviderError(RuntimeError):
    """One AI call failed after all retries, or returned an unusable response."""


class BaseReviewer(ABC):
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS
    PLAN_MAX_TOKENS: int = 2000
    SUMMARY_MAX_TOKENS: int = 1000
    DEFAULT_MODEL: str = ""

    def __init__(self, model: str | None = None, review_level: str = "standard"):
        self.model = model or self.DEFAULT_MODEL
        self.review_level = review_level

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def review_file(
        self, file: FileChange, content: str | None, rules: list[Rule], plan: PRPlan | None = None
    ) -> list[Issue]:
        """Review a single file and return the issues found."""
        system = self._build_system_prompt(rules)
        user = self._build_file_prompt(file, content, plan)
        raw = self._call_with_retry(system, user, self.MAX_TOKENS, json_mode=True)
        return self._parse_issues(raw)

    def review_batch(
        self,
        files: list[FileChange],
        rules: list[Rule],
        plan: PRPlan,
        contents: dict[str, str] | None = None,
    ) -> list[Issue]:
        """Review several files in one request so cross-file problems are visible."""
        system = self._build_system_prompt(rules)
        user = self._build_batch_prompt(files, plan, contents or {})
        raw = self._call_with_retry(system, user, self.MAX_TOKENS, json_mode=True)
        return self._parse_issues(raw)

    def review_architecture(
        self, files: list[FileChange], rules: list[Rule], plan: PRPlan | None = None
    ) -> list[Issue]:
        """Review the change set as a whole for duplication, broken logic and misplaced code."""
        system = self._build_system_prompt(rules)
        user = self._build_architecture_prompt(files, plan)
        raw = self._call_with_retry(system, user, self.MAX_TOKENS, json_mode=True)
        issues = self._parse_issues(raw)
        for issue in issues:
            issue.review_type = "architectural"
        return issues

    def generate_plan(self, files: list[FileChange], rules: list[Rule]) -> PRPlan:
        system = (
            "You are an expert code reviewer who analyzes pull requests to create review plans. "
            "Focus on understanding the overall changes and their implications."
        )
        raw = self._call_with_retry(system, self._build_plan_prompt(files, rules), self.PLAN_MAX_TOKENS, json_mode=True)
        return self._parse_plan(raw)

    def generate_summary(self, issues: list[Issue], files_reviewed: int, rules: list[Rule]) -> str:
        system = "You are a code reviewer writing a short, friendly summary of a pull request review."
        raw = self._call_with_retry(
            system,
            self._build_summary_prompt(issues, files_reviewed, rules),
            self.SUMMARY_MAX_TOKENS,
            json_mode=False,
        )
        return (raw or "").strip()

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                                #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str, max_tokens: int, json_mode: bool) -> str:
        """Make a single API call and return the raw text response.

        This is the only method subclasses must implement. It should raise
        on failure; _call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _call_with_retry(self, system_prompt: str, user_prompt: str, max_tokens: int, json_mode: bool) -> str:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff.

        Raises ProviderError once every attempt has failed.
        """
        for attempt in range(self.MAX_RETRIES):
            try:
                raw = self._call_api(system_prompt, user_prompt, max_tokens, json_mode)
                if not raw:
                    raise ProviderError("empty response")
                return raw
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempts: %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    raise ProviderError(f"{self.__class__.__name__} failed: {e}") from e
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                time.sleep(delay)
        raise ProviderError(f"{self.__class__.__name__}: no attempts made")

    def _build_system_prompt(self, rules: list[Rule]) -> str:
        """Build the system prompt listing every applicable rule."""
        sections = []
        for rule in rules:
            header = f"### Rule `{rule.id}`: {rule.name} ({rule.kind})"
            lines = [header]
            if rule.description:
                lines.append(f"_{rule.description}_")
            if rule.globs:
                lines.append(f"Applies to: {', '.join(rule.globs)}")
            lines.append("")
            lines.append(rule.body)
            for name, text in rule.referenced_content.items():
                snippet = text if len(text) <= _MAX_REFERENCE_CHARS else text[:_MAX_REFERENCE_CHARS] + "\n... [truncated]"
                lines.append(f"\nReferenced file `{name}`:\n```\n{snippet}\n```")
            sections.append("\n".join(lines))
        rules_text = "\n\n".join(sections) if sections else "No project rules were provided; apply general best practices."

        return f"""You are a strict and precise senior code reviewer.
Review the changes against the project rules below.

## Project Rules

{rules_text}

## Instructions
- {_LEVEL_GUIDANCE.get(self.review_level, _LEVEL_GUIDANCE["standard"])}
- Focus on added lines (starting with '+'). Report line numbers of the new file.
- When an issue breaks a rule above, set "category" to "rule_violation" and fill "ruleId" and "ruleName".
- Only provide "fixedCode" when the fix is a direct replacement for the reported lines.
- Do not comment on code that already follows the rules. Be concise and actionable.

## Output Format
Respond with **only** a JSON object:

{{
  "issues": [
    {{
      "file": "<path of the file>",
      "line": <line number in the new file (integer)>,
      "endLine": <optional last line of the range>,
      "severity": "<error|warning|info|suggestion>",
      "category": "<{'|'.join(ISSUE_CATEGORIES)}>",
      "message": "<one-line summary>",
      "description": "<explanation using GitHub-flavored markdown>",
      "suggestion": "<optional advice>",
      "fixedCode": "<optional replacement for the reported lines>",
      "ruleId": "<id of the violated rule, if any>",
      "ruleName": "<name of the violated rule, if any>"
    }}
  ]
}}

If there are no issues, return: {{"issues": []}}"""

    def _build_file_prompt(self, file: FileChange, content: str | None, plan: PRPlan | None) -> str:
        plan_section = _plan_section(plan) if plan else ""
        content_section = f"\n## Full File Content\n```\n{content}\n```\n" if content else ""
        return f"""You are reviewing `{file.path}` ({file.status}, +{file.additions} -{file.deletions}).
{plan_section}
## Diff
```diff
{file.patch or ""}
```
{content_section}"""

    def _build_batch_prompt(self, files: list[FileChange], plan: PRPlan, contents: dict[str, str]) -> str:
        parts = ["# Batch Code Review Request", _plan_section(plan), f"## Files to Review ({len(files)} files)\n"]
        for i, file in enumerate(files, 1):
            parts.append(f"### File {i}: {file.path}")
            parts.append(f"**Status**: {file.status} | **Changes**: +{file.additions} -{file.deletions}\n")
            if file.patch:
                parts.append(f"**Code Changes**:\n```diff\n{file.patch}\n```\n")
            if contents.get(file.path):
                parts.append(f"**Full File Content**:\n```\n{contents[file.path]}\n```\n")
        parts.append(
            f"## Review Instructions\n\nReview these {len(files)} files as one unit. Look for cross-file "
            "inconsistencies, incomplete changes and missing error handling as well as rule violations. "
            'Always set "file" on each issue.'
        )
        return "\n".join(parts)

    def _build_architecture_prompt(self, files: list[FileChange], plan: PRPlan | None) -> str:
        parts = ["# Architectural Review Request", _plan_section(plan) if plan else ""]
        parts.append(f"## Changed Files ({len(files)} files)\n")
        for file in files:
            parts.append(f"### {file.path} ({file.status}, +{file.additions} -{file.deletions})")
            parts.append(f"```diff\n{file.patch or ''}\n```\n")
        parts.append(
            "## Review Instructions\n\n"
            "Do not review individual lines for style. Look across all files for:\n"
            "- duplicated logic that should be shared\n"
            "- logical problems in the flow between the changed files (state, data, control flow)\n"
            "- code placed in the wrong module or layer\n\n"
            'Report each finding in the usual JSON format with "category" set to "best_practice" '
            'or "bug", and "file" and "line" pointing at the most relevant added line.'
        )
        return "\n".join(parts)

    def _build_plan_prompt(self, files: list[FileChange], rules: list[Rule]) -> str:
        file_lines = "\n".join(f"- {f.path} ({f.status}, +{f.additions} -{f.deletions})" for f in files)
        rule_lines = "\n".join(f"- {r.id}: {r.description or r.name}" for r in rules) or "- none"
        patches = "\n\n".join(f"### {f.path}\n```diff\n{(f.patch or '')[:2000]}\n```" for f in files if f.patch)
        return f"""Analyze this pull request and produce a review plan.

## Changed Files
{file_lines}

## Project Rules
{rule_lines}

## Changes
{patches}

Respond with **only** a JSON object:
{{
  "overview": "<what the PR does in one or two sentences>",
  "keyChanges": ["<change>", ...],
  "riskAreas": ["<risk>", ...],
  "reviewFocus": ["<what reviewers should check>", ...],
  "context": "<anything else a reviewer should know>"
}}"""

    def _build_summary_prompt(self, issues: list[Issue], files_reviewed: int, rules: list[Rule]) -> str:
        issue_lines = "\n".join(
            f"- [{i.severity}] {i.file}{f':{i.line}' if i.line else ''} {i.message}" for i in issues[:50]
        )
        return f"""Summarize this code review in a short Markdown paragraph followed by a few bullet points.

Files reviewed: {files_reviewed}
Rules applied: {", ".join(r.id for r in rules) or "none"}
Issues found: {len(issues)}
{issue_lines}

Do not repeat every issue; highlight the most important themes. Do not include a heading."""

    # ------------------------------------------------------------------ #
    # Parsing                                                              #
    # ------------------------------------------------------------------ #

    def _parse_issues(self, raw: str) -> list[Issue]:
        """Parse a response into issues.

        Strict stage: locate the JSON object or list in the response. A JSON
        response cut off mid-way (max_tokens) keeps only its complete issue
        objects. When the response is not JSON at all, fall back to scanning
        plain text lines and mark every extracted issue as low confidence.
        """
        data = _load_json(raw)
        if data is None:
            cleaned = _strip_fences(raw)
            if cleaned.startswith(("{", "[")):
                items = _complete_objects(cleaned)
                logger.warning(
                    "%s: response JSON is incomplete, recovered %d complete object(s)",
                    self.__class__.__name__,
                    len(items),
                )
                return self._issues_from_items(items)
            logger.warning(
                "%s: failed to parse response as JSON, extracting issues from text: %s",
                self.__class__.__name__,
                raw[:200],
            )
            return _extract_issues_from_text(raw)

        items = data.get("issues", []) if isinstance(data, dict) else data
        if not isinstance(items, list):
            logger.warning("%s: response JSON has no issue list", self.__class__.__name__)
            return []
        return self._issues_from_items(items)

    def _issues_from_items(self, items: list) -> list[Issue]:
        issues = []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                issues.append(Issue.from_dict(item))
            except ValueError as e:
                logger.debug("Dropping malformed issue %r: %s", item, e)
        return issues

    def _parse_plan(self, raw: str) -> PRPlan:
        data = _load_json(raw)
        if not isinstance(data, dict) or not data.get("overview"):
            raise ProviderError(f"{self.__class__.__name__}: unusable plan response")
        return PRPlan(
            overview=str(data["overview"]),
            key_changes=_str_list(data.get("keyChanges", data.get("key_changes"))),
            risk_areas=_str_list(data.get("riskAreas", data.get("risk_areas"))),
            review_focus=_str_list(data.get("reviewFocus", data.get("review_focus"))),
            context=str(data.get("context") or ""),
        )


def _plan_section(plan: PRPlan) -> str:
    return f"""
## PR Context
**Overview**: {plan.overview}

**Key Changes**: {", ".join(plan.key_changes) or "n/a"}

**Risk Areas**: {", ".join(plan.risk_areas) or "n/a"}

**Review Focus**: {", ".join(plan.review_focus) or "n/a"}

**Additional Context**: {plan.context or "n/a"}
"""


def _strip_fences(raw: str) -> str:
    # Strip only the outer ```json ... ``` fence, not backticks inside string values.
    cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
    return re.sub(r"\s*```$", "", cleaned.strip())


def _load_json(raw: str):
    """Return the decoded JSON value in raw, or None if none can be found."""
    cleaned = _strip_fences(raw)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = cleaned.find(opener), cleaned.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(cleaned[start : end + 1])
            except json.JSONDecodeError:
                continue
    return None


def _complete_objects(text: str) -> list[dict]:
    """Decode every complete JSON object in a truncated JSON document.

    Objects found inside an ``issues`` list are unwrapped; the object that was
    cut off never decodes and is dropped.
    """
    decoder = json.JSONDecoder()
    objects: list[dict] = []
    start = text.find("{")
    while start != -1:
        try:
            value, end = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(value, dict) and isinstance(value.get("issues"), list):
            objects.extend(v for v in value["issues"] if isinstance(v, dict))
        elif isinstance(value, dict):
            objects.append(value)
        start = text.find("{", end)
    return objects


def _extract_issues_from_text(text: str) -> list[Issue]:
    issues = []
    for line in text.splitlines():
        if _JSON_SYNTAX_RE.match(line.strip()):
            continue
        stripped = line.strip().lstrip("-*• ").strip()
        lowered = stripped.lower()
        if not stripped or ("issue" not in lowered and "violation" not in lowered):
            continue
        if _NO_ISSUES_RE.search(stripped):
            continue
        match = _LINE_REF_RE.search(stripped)
        issues.append(
            Issue(
                severity="warning",
                category="best_practice",
                message=stripped,
                description=stripped,
                line=int(match.group(1)) if match and int(match.group(1)) > 0 else None,
                low_confidence=True,
            )
        )
    return issues


def _str_list(value) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value if v]
    if isinstance(value, str) and value:
        return [value]
    return []
