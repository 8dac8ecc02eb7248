"""AppGit commit command.

Records the current application artifact as a new commit on its branch.

Execution Context:
    CLI command - invoked via `appgit commit APP -m "message"`

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
from appgit_cli.commands.utils import get_user_id
from appgit_cli.commands.utils import resolve_target
from appgit_core.errors import NOTHING_TO_COMMIT
from appgit_core.errors import AppGitError
from appgit_core.models import CommitSpec

console = Console()


# ---- Commit Command -----------------------------------------------------------------------------------------


@click.command()
@click.argument("application_id")
@click.option(
    "--message",
    "-m",
    required=True,
    help="Commit message describing the changes.",
)
@click.option(
    "--branch",
    "-b",
    default=None,
    help="Branch to commit on (defaults to the application's branch).",
)
@click.option(
    "--allow-empty",
    is_flag=True,
    help="Create the commit even if nothing changed.",
)
@click.option(
    "--push",
    "do_push",
    is_flag=True,
    help="Push the branch after committing.",
)
@click.option(
    "--user",
    default=None,
    help="Acting user id (defaults to APPGIT_USER or the login name).",
)
def commit(
        application_id: str,
        message: str,
        branch: str | None,
        allow_empty: bool,
        do_push: bool,
        user: str | None,
) -> None:
    """Record application changes.

    Examples:
        appgit commit shop -m "Add checkout page"
        appgit commit shop -m "Release" --push
    """
    try:
        with get_service() as service:
            default_id, branch_name = resolve_target(service, application_id, branch)
            sha = service.commit(
                CommitSpec(message=message, allow_empty=allow_empty, push=do_push),
                default_id,
                branch_name,
                get_user_id(user),
            )

        if sha == NOTHING_TO_COMMIT:
            console.print("[yellow]Nothing to commit, working tree clean[/yellow]")
            return

        console.print(f"[green]Created commit {sha[:8]}[/green]")
        console.print(f"  [bold]Message:[/bold] {message}")
        console.print(f"[dim]Branch '{branch_name}' updated to {sha[:8]}[/dim]")
        if do_push:
            console.print(f"[dim]Pushed '{branch_name}'[/dim]")

    except (AppGitError, ValueError) as commit_error:
        msg = f"Commit failed: {commit_error}"
        raise click.ClickException(msg) from commit_error
