"""AppGit checkout command.

Switches to a branch, loading its committed state into the branch
application.

Execution Context:
    CLI command - invoked via `appgit checkout APP BRANCH`

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

console = Console()


# ---- Checkout Command ---------------------------------------------------------------------------------------


@click.command()
@click.argument("application_id")
@click.argument("branch_name")
@click.option(
    "--remote",
    "-r",
    is_flag=True,
    help="Check out a remote branch as a new local tracking branch.",
)
def checkout(
        application_id: str,
        branch_name: str,
        remote: bool,
) -> None:
    """Switch to a branch.

    Examples:
        appgit checkout shop feature/cart
        appgit checkout shop origin/hotfix --remote
    """
    try:
        with get_service() as service:
            default_id, _ = resolve_target(service, application_id)
            application = service.checkout_branch(default_id, branch_name, is_remote=remote)

        console.print(f"[green]Switched to branch '{application.branch_name}'[/green]")
        console.print(f"[dim]Application: {application.id}[/dim]")

    except AppGitError as checkout_error:
        msg = f"Checkout failed: {checkout_error}"
        raise click.ClickException(msg) from checkout_error
