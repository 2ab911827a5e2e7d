"""CLI entry point for rulelens.

Commands:
  review   review a pull request against the repository's rules
  rules    list the rules found in a working copy
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.logging import RichHandler

from rulelens_cli.commands.review import review_cmd
from rulelens_cli.commands.rules import rules_cmd


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # Keep HTTP client chatter out of normal runs.
    for noisy in ("urllib3", "httpx", "httpcore", "openai", "anthropic", "github"):
        logging.getLogger(noisy).setLevel(logging.DEBUG if verbose else logging.WARNING)


@click.group()
@click.version_option(
    version=importlib.metadata.version("rulelens"),
    prog_name="rulelens",
)
@click.option(
    "--config",
    "config_path",
    default=".rulelens.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="RULELENS_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Review GitHub pull requests against your project's Cursor rules."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


main.add_command(review_cmd)
main.add_command(rules_cmd)
