"""AppGit branch command.

Lists, creates or deletes branches of a connected application.

Execution Context:
    CLI command - invoked via `appgit branch APP [name]`

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

from appgit_cli.commands.utils import get_service
from appgit_cli.commands.utils import resolve_target
from appgit_core.errors import AppGitError
from appgit_core.models import BranchSpec

console = Console()


# ---- Branch Command -----------------------------------------------------------------------------------------


@click.command()
@click.argument("application_id")
@click.argument(
    "name",
    required=False,
)
@click.option(
    "--from",
    "source",
    default=None,
    help="Branch to create from (defaults to the application's branch).",
)
@click.option(
    "--delete",
    "-d",
    is_flag=True,
    help="Delete the specified branch.",
)
@click.option(
    "--fetch",
    is_flag=True,
    help="Fetch from the remote before listing.",
)
def branch(
        application_id: str,
        name: str | None,
        source: str | None,
        delete: bool,
        fetch: bool,
) -> None:
    """List or create branches.

    Without NAME, lists local and remote branches. With NAME, creates a
    branch (and its application) from the current branch.

    Examples:
        appgit branch shop                  # List branches
        appgit branch shop feature/cart     # Create 'feature/cart'
        appgit branch shop -d feature/cart  # Delete 'feature/cart'
    """
    try:
        with get_service() as service:
            default_id, current_branch = resolve_target(service, application_id)

            if not name:
                if delete:
                    raise click.ClickException("Branch name required")
                entries = service.list_branches(default_id, ignore_cache=fetch)
                if not entries:
                    console.print("[dim]No branches yet[/dim]")
                    return
                for entry in entries:
                    label = entry.name + (" [dim](default)[/dim]" if entry.is_default else "")
                    commit = f" [dim]{entry.last_commit[:8]}[/dim]" if entry.last_commit else ""
                    if entry.name == current_branch:
                        console.print(f"[green]* {label}[/green]{commit}")
                    elif entry.is_remote:
                        console.print(f"  [red]{label}[/red]{commit}")
                    else:
                        console.print(f"  {label}{commit}")
                return

            if delete:
                service.delete_branch(default_id, name)
                console.print(f"[green]Deleted branch '{name}'[/green]")
                return

            child = service.create_branch(default_id, BranchSpec(branch_name=name), source or current_branch)

        console.print(f"[green]Created branch '{name}'[/green]")
        console.print(f"[dim]Application: {child.id}[/dim]")

    except (AppGitError, ValueError) as branch_error:
        msg = f"Branch operation failed: {branch_error}"
        raise click.ClickException(msg) from branch_error
