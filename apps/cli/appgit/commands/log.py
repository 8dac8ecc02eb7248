"""AppGit log command.

Shows the commit history of a branch.

Execution Context:
    CLI command - invoked via `appgit log APP`

Dependencies:
    - click: CLI framework
    - rich: Terminal output
    - appgit_core: Service facade

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from appgit_cli.commands.utils import get_service
from appgit_cli.commands.utils import resolve_target
from appgit_core.errors import AppGitError

console = Console()


# ---- Log Command --------------------------------------------------------------------------------------------


@click.command()
@click.argument("application_id")
@click.option(
    "--branch",
    "-b",
    default=None,
    help="Branch to show (defaults to the application's branch).",
)
@click.option(
    "--limit",
    "-n",
    default=10,
    help="Maximum number of commits to show.",
)
@click.option(
    "--oneline",
    is_flag=True,
    help="Show compact one-line format.",
)
def log(
        application_id: str,
        branch: str | None,
        limit: int,
        oneline: bool,
) -> None:
    """Show commit history.

    Examples:
        appgit log shop
        appgit log shop -n 5 --oneline
    """
    try:
        with get_service() as service:
            default_id, branch_name = resolve_target(service, application_id, branch)
            commits = service.history(default_id, branch_name)[:limit]

        if not commits:
            console.print("[dim]No commits yet[/dim]")
            return

        if oneline:
            for record in commits:
                summary = record.message.partition("\n")[0]
                console.print(f"[cyan]{record.hash[:8]}[/cyan] {summary}")
            return

        table = Table(title=f"History of '{branch_name}'")
        table.add_column("Commit", style="cyan")
        table.add_column("Author")
        table.add_column("Date", style="dim")
        table.add_column("Message")
        for record in commits:
            table.add_row(
                record.hash[:8],
                f"{record.author_name} <{record.author_email}>",
                record.timestamp[:19].replace("T", " "),
                record.message.partition("\n")[0],
            )
        console.print(table)

    except AppGitError as log_error:
        msg = f"Log failed: {log_error}"
        raise click.ClickException(msg) from log_error
