"""AppGit status command.

Shows the state of a branch: uncommitted resources, commits ahead of and
behind the remote, and conflicts left by a pull.

Execution Context:
    CLI command - invoked via `appgit status APP`

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
from rich.panel import Panel

from appgit_cli.commands.utils import get_service
from appgit_cli.commands.utils import resolve_target
from appgit_core.errors import AppGitError

console = Console()


# ---- Status Command -----------------------------------------------------------------------------------------


@click.command()
@click.argument("application_id")
@click.option(
    "--branch",
    "-b",
    default=None,
    help="Branch to inspect (defaults to the application's branch).",
)
def status(
        application_id: str,
        branch: str | None,
) -> None:
    """Show the working state of a branch.

    Example:
        appgit status shop
        appgit status shop -b feature/cart
    """
    try:
        with get_service() as service:
            default_id, branch_name = resolve_target(service, application_id, branch)
            report = service.status(default_id, branch_name)

        console.print(Panel(
            f"[bold]On branch:[/bold] [cyan]{branch_name}[/cyan]",
            title="AppGit Status",
            expand=False,
        ))

        if report["aheadBy"] or report["behindBy"]:
            console.print(
                f"Your branch is ahead by [green]{report['aheadBy']}[/green] and "
                f"behind by [yellow]{report['behindBy']}[/yellow] commit(s)."
            )

        if report["conflictingResources"]:
            console.print()
            console.print("[bold red]Unresolved conflicts:[/bold red]")
            for path in report["conflictingResources"]:
                console.print(f"  [red]! {path}[/red]")
            console.print("[dim]Edit the application and commit to conclude the merge.[/dim]")

        if report["modifiedResources"]:
            console.print()
            console.print("[bold]Changes not committed:[/bold]")
            for path in report["modifiedResources"]:
                console.print(f"  [yellow]~ {path}[/yellow]")
        elif report["isClean"]:
            console.print("[green]Nothing to commit, working tree clean[/green]")

    except AppGitError as status_error:
        msg = f"Status failed: {status_error}"
        raise click.ClickException(msg) from status_error
