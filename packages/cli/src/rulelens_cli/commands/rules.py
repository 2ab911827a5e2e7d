"""rules command: list the rules found in a working copy."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from rulelens_core.rules import RuleStore, filter_for_files

console = Console()


@click.command("rules")
@click.argument("paths", nargs=-1)
@click.option(
    "--workspace",
    default=".",
    show_default=True,
    type=click.Path(file_okay=False),
    help="Repository root to load rules from.",
)
@click.option("--rules-path", default=None, help="Directory of rule documents. Defaults to .cursor/rules.")
@click.pass_context
def rules_cmd(ctx, paths: tuple[str, ...], workspace: str, rules_path: str | None):
    """List loaded rules, marking which apply to PATHS when given."""
    from rulelens_core.config import ConfigError, load_config

    try:
        config = load_config((ctx.obj or {}).get("config_path", ".rulelens.yml"), {"rules_path": rules_path})
    except ConfigError as e:
        raise click.UsageError(str(e))

    rules = RuleStore(workspace).load_all(config.get("rules_path")).all_rules()
    if not rules:
        console.print("[yellow]No rules found (.cursor/rules, AGENTS.md, .cursorrules).[/yellow]")
        return

    applicable = {r.id for r in filter_for_files(rules, list(paths))} if paths else None

    table = Table(title=f"{len(rules)} rule(s)")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Globs")
    if applicable is not None:
        table.add_column("Applies", justify="center")
    for rule in rules:
        row = [rule.id, rule.name, rule.kind, ", ".join(rule.globs) or "—"]
        if applicable is not None:
            row.append("[green]yes[/green]" if rule.id in applicable else "[dim]no[/dim]")
        table.add_row(*row)
    console.print(table)

    for rule in rules:
        missing = [f for f in rule.referenced_files if f not in rule.referenced_content]
        if missing:
            console.print(f"[yellow]{rule.id}: referenced file(s) not found: {', '.join(missing)}[/yellow]")
