"""Loading of project review rules.

Three channels are read from the repository root:

  .cursor/rules/**/*.mdc   project rules with YAML front matter
  AGENTS.md                a single free-form document applied everywhere
  .cursorrules             the legacy single-file format

Monorepo packages may carry their own ``<dir>/.cursor/rules`` tree; those
rules are scoped to files under ``<dir>/``.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

import yaml

from rulelens_core.models import Rule, RuleKind, RuleSet
from rulelens_core.utils.paths import matches_any

logger = logging.getLogger(__name__)

RULES_DIR = Path(".cursor") / "rules"
RULE_EXTENSIONS = (".mdc", ".md")
AGENTS_FILE = "AGENTS.md"
LEGACY_FILE = ".cursorrules"

_SKIP_DIRS = {".git", "node_modules", ".cursor"}
_FRONT_MATTER_RE = re.compile(r"\A---[ \t]*\r?\n(?:(.*?)\r?\n)?---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
_REFERENCE_RE = re.compile(r"@([a-zA-Z0-9._/-]+\.[a-zA-Z0-9]+)")
_ID_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9_-]")


class RuleParseError(ValueError):
    """A rule document could not be parsed."""


def parse_rule_document(text: str) -> tuple[dict, str]:
    """Split a rule document into (metadata, body).

    Documents without front matter have empty metadata. Raises RuleParseError
    when the front matter is not valid YAML or not a mapping.
    """
    match = _FRONT_MATTER_RE.match(text)
    if not match:
        return {}, text.strip()
    try:
        metadata = yaml.safe_load(match.group(1) or "")
    except yaml.YAMLError as e:
        raise RuleParseError(f"invalid front matter: {e}") from e
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise RuleParseError(f"front matter must be a mapping, got {type(metadata).__name__}")
    return metadata, text[match.end() :].strip()


def _normalise_globs(value) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(v) for v in value if v is not None]
    else:
        raise RuleParseError(f"globs must be a list or string, got {type(value).__name__}")
    return tuple(g.strip() for g in items if g.strip())


def _determine_kind(metadata: dict, globs: tuple[str, ...]) -> str:
    explicit = metadata.get("kind")
    if explicit:
        if explicit in RuleKind.ALL:
            return explicit
        logger.warning("Ignoring unknown rule kind %r", explicit)
    if metadata.get("alwaysApply") is True:
        return RuleKind.ALWAYS
    if globs:
        return RuleKind.PATH_SCOPED
    return RuleKind.MANUAL


def extract_referenced_files(body: str) -> tuple[str, ...]:
    """Return @path/to/file.ext references in first-seen order, without duplicates."""
    seen: dict[str, None] = {}
    for match in _REFERENCE_RE.finditer(body):
        seen.setdefault(match.group(1), None)
    return tuple(seen)


def make_rule_id(relative_path: str) -> str:
    rel = relative_path.replace("\\", "/")
    if rel.startswith(".cursor/rules/"):
        rel = rel[len(".cursor/rules/") :]
    for ext in RULE_EXTENSIONS:
        if rel.endswith(ext):
            rel = rel[: -len(ext)]
            break
    return _ID_UNSAFE_RE.sub("_", rel)


def _scope_globs(scope: str, globs: tuple[str, ...]) -> tuple[str, ...]:
    if not globs:
        return (f"{scope}/**",)
    scoped = []
    for glob in globs:
        if glob.startswith(scope + "/"):
            scoped.append(glob)
        elif "/" not in glob:
            # Basename globs keep matching at any depth below the scope.
            scoped.append(f"{scope}/**/{glob}")
        else:
            scoped.append(f"{scope}/{glob}")
    return tuple(scoped)


def filter_for_files(rules: list[Rule], paths: list[str]) -> list[Rule]:
    """Return the rules that apply to at least one of the given paths.

    A rule applies when it is an always-rule, has no globs, or any of its
    globs matches any path. Result order is document read order, then id.
    """
    selected = [
        rule
        for rule in rules
        if rule.kind == RuleKind.ALWAYS or not rule.globs or any(matches_any(p, rule.globs) for p in paths)
    ]
    return sorted(selected, key=lambda r: (r.order, r.id))


class RuleStore:
    def __init__(self, base_path: str | os.PathLike = "."):
        self.base_path = Path(base_path)

    def load_all(self, custom_path: str | None = None) -> RuleSet:
        """Load every rule channel. A missing repository root yields an empty RuleSet."""
        if not self.base_path.is_dir():
            logger.warning("Rules base path %s does not exist", self.base_path)
            return RuleSet()

        rules: list[Rule] = []
        if custom_path:
            root = Path(custom_path)
            if not root.is_absolute():
                root = self.base_path / root
            rules.extend(self._load_tree(root, scope=None, start_order=0))
        else:
            rules.extend(self._load_tree(self.base_path / RULES_DIR, scope=None, start_order=0))
            for nested, scope in self._nested_rule_dirs():
                rules.extend(self._load_tree(nested, scope=scope, start_order=len(rules)))

        return RuleSet(
            project_rules=rules,
            agents_document=self._read_optional(AGENTS_FILE),
            legacy_document=self._read_optional(LEGACY_FILE),
        )

    # ------------------------------------------------------------------ #
    # Internals                                                            #
    # ------------------------------------------------------------------ #

    def _rule_files(self, root: Path) -> list[Path]:
        found: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in (".git", "node_modules"))
            for name in sorted(filenames):
                if name.endswith(RULE_EXTENSIONS):
                    found.append(Path(dirpath) / name)
        return found

    def _nested_rule_dirs(self) -> list[tuple[Path, str]]:
        """Find <dir>/.cursor/rules trees below the repository root."""
        nested: list[tuple[Path, str]] = []
        for dirpath, dirnames, _ in os.walk(self.base_path):
            dirnames[:] = sorted(d for d in dirnames if d not in _SKIP_DIRS)
            current = Path(dirpath)
            if current == self.base_path:
                continue
            candidate = current / RULES_DIR
            if candidate.is_dir():
                nested.append((candidate, current.relative_to(self.base_path).as_posix()))
        return nested

    def _load_tree(self, root: Path, scope: str | None, start_order: int) -> list[Rule]:
        if not root.is_dir():
            return []
        rules: list[Rule] = []
        for path in self._rule_files(root):
            rule = self._load_rule(path, root, scope, start_order + len(rules))
            if rule is not None:
                rules.append(rule)
        logger.debug("Loaded %d rule(s) from %s", len(rules), root)
        return rules

    def _load_rule(self, path: Path, root: Path, scope: str | None, order: int) -> Rule | None:
        try:
            text = path.read_text(encoding="utf-8")
            metadata, body = parse_rule_document(text)
            globs = _normalise_globs(metadata.get("globs"))
        except (OSError, UnicodeDecodeError, RuleParseError) as e:
            logger.warning("Skipping rule file %s: %s", path, e)
            return None

        kind = _determine_kind(metadata, globs)
        if scope:
            globs = _scope_globs(scope, globs)
            if kind in (RuleKind.ALWAYS, RuleKind.MANUAL):
                kind = RuleKind.PATH_SCOPED

        try:
            relative = path.relative_to(self.base_path).as_posix()
        except ValueError:
            relative = path.relative_to(root).as_posix()

        referenced = extract_referenced_files(body)
        description = metadata.get("description")
        return Rule(
            id=make_rule_id(relative),
            name=str(metadata.get("name") or path.stem),
            kind=kind,
            body=body,
            globs=globs,
            referenced_files=referenced,
            description=str(description) if description is not None else None,
            source_path=relative,
            order=order,
            referenced_content=self._read_references(referenced),
        )

    def _read_references(self, names: tuple[str, ...]) -> dict[str, str]:
        contents: dict[str, str] = {}
        base = self.base_path.resolve()
        for name in names:
            target = (base / name).resolve()
            try:
                target.relative_to(base)
            except ValueError:
                logger.warning("Referenced file %s is outside the repository; skipping", name)
                continue
            if not target.is_file():
                logger.warning("Referenced file %s not found; skipping", name)
                continue
            try:
                contents[name] = target.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Could not read referenced file %s: %s", name, e)
        return contents

    def _read_optional(self, name: str) -> str | None:
        path = self.base_path / name
        if not path.is_file():
            return None
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s: %s", name, e)
            return None
        return text if text.strip() else None
