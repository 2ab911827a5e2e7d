"""Resolve which pull request to review from arguments or the Actions environment."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Mapping

logger = logging.getLogger(__name__)


class PRContextError(RuntimeError):
    """No repository or pull request could be determined."""


@dataclass(frozen=True)
class PRContext:
    repo: str
    pr_number: int


def resolve_pr_context(
    repo: str | None = None, pr_number: int | None = None, env: Mapping[str, str] | None = None
) -> PRContext:
    """Return the repository and PR number to review.

    Explicit arguments win. Otherwise GITHUB_REPOSITORY names the repository
    and the event payload at GITHUB_EVENT_PATH supplies ``pull_request.number``
    (or ``issue.number`` when an issue_comment event was raised on a PR).
    """
    env = os.environ if env is None else env

    repo = repo or env.get("GITHUB_REPOSITORY")
    if not repo:
        raise PRContextError("No repository given. Pass --repo owner/name or set GITHUB_REPOSITORY.")

    if pr_number is None:
        pr_number = _pr_number_from_event(env.get("GITHUB_EVENT_PATH"))
    if pr_number is None:
        raise PRContextError("This is not a pull request event. Pass --pr or run on a pull_request trigger.")
    return PRContext(repo=repo, pr_number=int(pr_number))


def _pr_number_from_event(event_path: str | None) -> int | None:
    if not event_path:
        return None
    try:
        with open(event_path, encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not read event payload %s: %s", event_path, e)
        return None
    if not isinstance(payload, dict):
        return None

    pull_request = payload.get("pull_request")
    if isinstance(pull_request, dict) and isinstance(pull_request.get("number"), int):
        return pull_request["number"]
    issue = payload.get("issue")
    if isinstance(issue, dict) and isinstance(issue.get("pull_request"), dict) and isinstance(issue.get("number"), int):
        return issue["number"]
    return None
