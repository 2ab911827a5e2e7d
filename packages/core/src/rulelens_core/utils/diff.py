"""Unified diff helpers.

GitHub only accepts inline review comments on lines that appear in the PR
diff, so every comment location is checked against the patch first.
"""

from __future__ import annotations

import re

_HUNK_RE = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)(?:,\d+)? @@")


def _hunk_start(line: str) -> int | None:
    match = _HUNK_RE.match(line)
    return int(match.group(1)) if match else None


def valid_lines(patch_text: str | None) -> set[int]:
    """Return the new-file line numbers of every added line in a patch.

    Context lines advance the new-file counter without being recorded; removed
    lines have no new-file number. Lines outside a hunk, a malformed header or
    an empty patch simply contribute nothing.

    ``---``/``+++`` file headers only ever precede the first hunk, so once a
    hunk is open a line is classified by its first character alone. A removed
    SQL comment shows up as ``--- ...`` and must not shift the counter.
    """
    lines: set[int] = set()
    if not patch_text:
        return lines

    file_line: int | None = None
    for line in patch_text.splitlines():
        if line.startswith("@@"):
            file_line = _hunk_start(line)
            continue
        if file_line is None:
            continue
        if line.startswith("+"):
            lines.add(file_line)
            file_line += 1
        elif line.startswith("-"):
            pass  # Removed line, no new-file line number
        elif line.startswith("\\"):
            pass  # "\ No newline at end of file"
        else:
            file_line += 1

    return lines


def get_patch_line_content(patch_text: str | None, target_line: int) -> str:
    """Return the source content of a specific new-file line number from a patch."""
    if not patch_text:
        return ""
    file_line: int | None = None
    for line in patch_text.splitlines():
        if line.startswith("@@"):
            file_line = _hunk_start(line)
            continue
        if file_line is None:
            continue
        if line.startswith("-") or line.startswith("\\"):
            continue  # removed line, no new-file line number
        if file_line == target_line:
            return line[1:] if line and line[0] in ("+", " ") else line
        file_line += 1
    return ""
