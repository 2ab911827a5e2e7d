"""review command: review a pull request against the repository's rules."""

from __future__ import annotations

import os
import uuid

import click
from github import GithubException
from rich.console import Console
from rich.table import Table

from rulelens_core.comments import CommentPostError
from rulelens_core.config import PROVIDERS
from rulelens_core.gh.context import PRContextError, resolve_pr_context
from rulelens_core.gh.pull_request import get_client, get_pull, get_repo
from rulelens_core.models import ReviewResult
from rulelens_core.providers import get_reviewer
from rulelens_core.reviewer import ReviewPipeline

console = Console()


def write_action_outputs(result: ReviewResult, output_path: str | None = None) -> None:
    """Append the run's results to $GITHUB_OUTPUT so later workflow steps can read them."""
    output_path = output_path or os.environ.get("GITHUB_OUTPUT")
    if not output_path:
        return
    outputs = {
        "review_summary": result.summary,
        "files_reviewed": str(result.files_reviewed),
        "issues_found": str(len(result.issues)),
        "rules_applied": str(len(result.rules_applied)),
        "status": result.status,
    }
    with open(output_path, "a", encoding="utf-8") as f:
        for name, value in outputs.items():
            if "\n" in value:
                delimiter = f"ghadelimiter_{uuid.uuid4().hex}"
                f.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")
            else:
                f.write(f"{name}={value}\n")


def _print_result(result: ReviewResult) -> None:
    table = Table(title="Review result", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    status_color = "yellow" if result.status == "needs_attention" else "green"
    table.add_row("Status", f"[{status_color}]{result.status}[/{status_color}]")
    table.add_row("Files reviewed", f"{result.files_reviewed} of {result.total_files}")
    table.add_row("Issues found", str(len(result.issues)))
    table.add_row("Rules applied", str(len(result.rules_applied)))
    console.print(table)
    if result.summary:
        console.print(result.summary)


@click.command("review")
@click.option("--repo", default=None, help="GitHub repository in owner/name format. Defaults to GITHUB_REPOSITORY.")
@click.option(
    "--pr",
    "pr_number",
    type=int,
    default=None,
    help="Pull request number. Defaults to the PR of the triggering event.",
)
@click.option(
    "--provider",
    type=click.Choice(list(PROVIDERS)),
    default=None,
    help="AI provider. Overrides config file.",
)
@click.option("--model", default=None, help="Model name (or Azure deployment). Overrides config file.")
@click.option("--rules-path", default=None, help="Directory of rule documents. Defaults to .cursor/rules.")
@click.option(
    "--workspace",
    default=".",
    show_default=True,
    type=click.Path(file_okay=False),
    help="Local checkout of the PR head, used for rules, file content and auto-fix.",
)
@click.option(
    "--shadow",
    "-s",
    is_flag=True,
    help="Dry-run mode: print review issues without posting to GitHub.",
)
@click.option("--auto-fix/--no-auto-fix", "auto_fix", default=None, help="Apply safe fixes to the working copy.")
@click.pass_context
def review_cmd(
    ctx,
    repo: str | None,
    pr_number: int | None,
    provider: str | None,
    model: str | None,
    rules_path: str | None,
    workspace: str,
    shadow: bool,
    auto_fix: bool | None,
):
    """Review a pull request against the repository's Cursor rules.

    Loads rules from .cursor/rules, AGENTS.md and .cursorrules, reviews the
    changed files with the configured AI provider, and posts inline and
    summary comments on GitHub.

    \b
    Required environment variables:
      GITHUB_TOKEN           GitHub token (or use gh CLI)
      OPENAI_API_KEY         for --provider openai
      ANTHROPIC_API_KEY      for --provider anthropic
      AZURE_OPENAI_API_KEY   for --provider azure (with AZURE_OPENAI_ENDPOINT)
      AWS_ACCESS_KEY_ID      for --provider bedrock (or the default AWS credential chain)
    """
    from rulelens_core.config import ConfigError, ReviewOptions, load_config
    from rulelens_cli.auth import resolve_github_token

    config_path = (ctx.obj or {}).get("config_path", ".rulelens.yml")
    overrides = {
        "provider": provider,
        "model": model,
        "rules_path": rules_path,
        "enable_auto_fix": auto_fix,
    }

    try:
        config = load_config(config_path, cli_overrides=overrides)
        token = resolve_github_token(config.get("github_token"))
        if not token:
            raise ConfigError(
                "No GitHub token found. Set the gh_token input or GITHUB_TOKEN, or run `gh auth login` first.\n"
                "Create a token at https://github.com/settings/tokens"
            )
        config["github_token"] = token
        options = ReviewOptions.from_config(config)
        options.validate()
        reviewer = get_reviewer(options)
    except ConfigError as e:
        raise click.UsageError(str(e))

    try:
        pr_context = resolve_pr_context(repo, pr_number)
    except PRContextError as e:
        raise click.ClickException(str(e))

    client = get_client(token)
    this_repo = get_repo(pr_context.repo, client=client)
    try:
        this_pr = get_pull(this_repo, pr_context.pr_number)
    except GithubException:
        raise click.ClickException(f"PR #{pr_context.pr_number} not found in {pr_context.repo}.")

    console.print(f"Reviewing [bold]{pr_context.repo}#{pr_context.pr_number}[/bold]: {this_pr.title}")
    pipeline = ReviewPipeline(options, this_repo, this_pr, reviewer, workspace=workspace, shadow=shadow, client=client)
    try:
        result = pipeline.run()
    except CommentPostError as e:
        raise click.ClickException(str(e))

    _print_result(result)
    write_action_outputs(result)
