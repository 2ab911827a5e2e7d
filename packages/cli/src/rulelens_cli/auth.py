"""Locate the GitHub token the review runs with.

A token passed in the workflow's ``with: gh_token`` input (or GITHUB_TOKEN)
arrives through the loaded config. Local runs without either reuse the
GitHub CLI session.
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

_GH_TIMEOUT_SECONDS = 5


def _token_from_gh_cli() -> str | None:
    try:
        completed = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=_GH_TIMEOUT_SECONDS,
        )
    except FileNotFoundError:
        logger.debug("gh CLI is not installed; no session token to reuse.")
        return None
    except subprocess.TimeoutExpired:
        logger.debug("gh auth token did not answer within %ds.", _GH_TIMEOUT_SECONDS)
        return None
    if completed.returncode != 0:
        logger.debug("gh auth token exited with %d: %s", completed.returncode, completed.stderr.strip())
        return None
    return completed.stdout.strip() or None


def resolve_github_token(configured: str | None = None) -> str | None:
    """Return the first available token: configured, GITHUB_TOKEN, then gh CLI.

    Returns None when none is available; the caller reports the usage error.
    """
    for source, token in (("config", configured), ("GITHUB_TOKEN", os.environ.get("GITHUB_TOKEN"))):
        if token:
            logger.debug("Using GitHub token from %s.", source)
            return token
    token = _token_from_gh_cli()
    if token:
        logger.debug("Using GitHub token from the gh CLI session.")
    return token
