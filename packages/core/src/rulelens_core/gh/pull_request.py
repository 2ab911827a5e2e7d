from __future__ import annotations

import logging

from github import Github, GithubException

from rulelens_core.models import BOT_MARKER, ExistingComment, FileChange, comment_kind

logger = logging.getLogger(__name__)

# GitHub reports a few statuses beyond the four the pipeline distinguishes.
_STATUS_MAP = {
    "added": "added",
    "copied": "added",
    "removed": "removed",
    "renamed": "renamed",
    "modified": "modified",
    "changed": "modified",
    "unchanged": "modified",
}

_RATE_LIMIT_WARN_RATIO = 0.1


def get_client(token: str) -> Github:
    return Github(token)


def get_repo(repo_name: str, token: str | None = None, client: Github | None = None):
    client = client or get_client(token)
    return client.get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def get_changed_files(pr) -> list[FileChange]:
    """Return the PR's changed files in the order GitHub lists them."""
    files = []
    for f in pr.get_files():
        additions = f.additions or 0
        deletions = f.deletions or 0
        files.append(
            FileChange(
                path=f.filename,
                status=_STATUS_MAP.get(f.status, "modified"),
                additions=additions,
                deletions=deletions,
                changes=additions + deletions,
                patch=f.patch,
                previous_path=getattr(f, "previous_filename", None),
            )
        )
    return files


def fetch_file_content(repo, path: str, ref: str) -> str | None:
    """Return the file's text at ref, or None if it cannot be fetched."""
    try:
        contents = repo.get_contents(path, ref=ref)
    except GithubException as e:
        logger.warning("Could not fetch %s@%s: %s", path, ref[:7], e)
        return None
    if isinstance(contents, list):
        # A directory listing; nothing to review.
        return None
    return contents.decoded_content.decode("utf-8", errors="replace")


def list_existing_comments(pr) -> list[ExistingComment]:
    """Collect the PR's issue comments and review comments."""
    existing = []
    for c in pr.get_issue_comments():
        body = c.body or ""
        kind = comment_kind(body)
        existing.append(
            ExistingComment(
                id=c.id,
                kind=kind if kind in ("summary", "autofix") else "other",
                body=body,
                is_bot=kind != "other" or BOT_MARKER in body,
            )
        )
    for c in pr.get_review_comments():
        body = c.body or ""
        kind = comment_kind(body)
        # c.line is None once a comment is outdated (its line left the current diff).
        # Such comments are never matched, so a still-present issue gets a fresh comment.
        existing.append(
            ExistingComment(
                id=c.id,
                kind="inline",
                body=body,
                is_bot=kind != "other" or BOT_MARKER in body,
                path=c.path,
                line=c.line,
            )
        )
    return existing


def upsert_issue_comment(pr, body: str, comment_id: int | None = None) -> int:
    """Edit the issue comment with comment_id in place, or create a new one."""
    if comment_id is not None:
        comment = pr.get_issue_comment(comment_id)
        comment.edit(body)
        return comment_id
    return pr.create_issue_comment(body).id


def create_inline_comment(pr, commit, path: str, line: int, body: str) -> int:
    comment = pr.create_review_comment(body, commit, path, line=line, side="RIGHT")
    return comment.id


def update_inline_comment(pr, comment_id: int, body: str) -> None:
    pr.get_review_comment(comment_id).edit(body)


def check_rate_limit(client: Github) -> tuple[int, int] | None:
    """Log a warning when less than 10% of the core API quota remains.

    Returns (remaining, limit), or None when the quota cannot be read.
    """
    try:
        overview = client.get_rate_limit()
    except GithubException as e:
        logger.debug("Could not read rate limit: %s", e)
        return None
    # PyGithub 2.x nests the buckets under .resources
    core = getattr(overview, "resources", overview).core
    remaining, limit = core.remaining, core.limit
    if limit and remaining / limit < _RATE_LIMIT_WARN_RATIO:
        logger.warning("GitHub API rate limit low: %d of %d requests remaining", remaining, limit)
    return remaining, limit
