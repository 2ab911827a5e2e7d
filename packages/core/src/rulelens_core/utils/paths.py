"""Path matching shared by rule scoping and file selection."""

from __future__ import annotations

import fnmatch
from typing import Iterable

NON_CODE_EXTENSIONS = {
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".ico",
    ".webp",
    ".bmp",
    ".pdf",
    ".woff",
    ".woff2",
    ".ttf",
    ".eot",
    ".otf",
    ".mp4",
    ".mp3",
    ".wav",
    ".ogg",
    ".zip",
    ".tar",
    ".gz",
    ".rar",
    ".7z",
    ".lock",  # e.g. package-lock.json, Pipfile.lock
}


def is_code_file(file_name: str) -> bool:
    return not any(file_name.lower().endswith(ext) for ext in NON_CODE_EXTENSIONS)


def matches_glob(path: str, pattern: str) -> bool:
    """Return True if path matches a glob pattern.

    Matching is done one path segment at a time, so ``*`` never crosses a
    ``/``:
    - "src/*.py" matches "src/a.py" but not "src/deep/a.py"
    - "**" matches zero or more whole segments: "pkg/**/*.ts", "**/*.ts"
    - patterns without a "/" match the basename: "*.ts" matches "a/b.ts"
    - a trailing "/" means everything beneath: "dist/" is "dist/**"
    """
    if path.startswith("./"):
        path = path[2:]
    pattern = pattern.strip()
    if pattern.startswith("./"):
        pattern = pattern[2:]
    if not pattern:
        return False

    if "/" not in pattern:
        return fnmatch.fnmatch(path.rsplit("/", 1)[-1], pattern)
    if pattern.endswith("/"):
        pattern += "**"
    return _match_segments(path.split("/"), pattern.split("/"))


def _match_segments(parts: list[str], patterns: list[str]) -> bool:
    if not patterns:
        return not parts
    head, rest = patterns[0], patterns[1:]
    if head == "**":
        return any(_match_segments(parts[i:], rest) for i in range(len(parts) + 1))
    return bool(parts) and fnmatch.fnmatch(parts[0], head) and _match_segments(parts[1:], rest)


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    return any(matches_glob(path, p) for p in patterns)


def is_reviewable(path: str, include: Iterable[str], exclude: Iterable[str]) -> bool:
    """A path is reviewable when it is code, matches an include glob and no exclude glob."""
    if not is_code_file(path):
        return False
    if not matches_any(path, include):
        return False
    return not matches_any(path, exclude)
