"""AppGit push and pull commands.

Synchronizes a branch with its counterpart on the remote.

Execution Context:
    CLI command - invoked via `appgit push APP` / `appgit pull APP`

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
from appgit_core.errors import AppGitError
from appgit_core.errors import NonFastForward

console = Console()


# ---- Push Command -------------------------------------------------------------------------------------------


@click.command()
@click.argument("application_id")
@click.option(
    "--branch",
    "-b",
    default=None,
    help="Branch to push (defaults to the application's branch).",
)
def push(
        application_id: str,
        branch: str | None,
) -> None:
    """Push committed changes to the remote.

    Examples:
        appgit push shop
        appgit push shop -b feature/cart
    """
    try:
        with get_service() as service:
            default_id, branch_name = resolve_target(service, application_id, branch)
            result = service.push(default_id, branch_name)

        if result.pushed_commits:
            console.print(f"[green]Pushed {result.pushed_commits} commit(s) to '{result.branch_name}'[/green]")
        else:
            console.print(f"[dim]'{result.branch_name}' already up to date on the remote[/dim]")
        console.print(f"[dim]Remote tip: {result.remote_commit[:8]}[/dim]")

    except NonFastForward as push_error:
        msg = f"Push rejected: {push_error}\nRun 'appgit pull {application_id}' first."
        raise click.ClickException(msg) from push_error
    except AppGitError as push_error:
        hint = " (retry later)" if push_error.retryable else ""
        msg = f"Push failed{hint}: {push_error}"
        raise click.ClickException(msg) from push_error


# ---- Pull Command -------------------------------------------------------------------------------------------


@click.command()
@click.argument("application_id")
@click.option(
    "--branch",
    "-b",
    default=None,
    help="Branch to pull into (defaults to the application's branch).",
)
@click.option(
    "--user",
    default=None,
    help="Acting user id (defaults to APPGIT_USER or the login name).",
)
def pull(
        application_id: str,
        branch: str | None,
        user: str | None,
) -> None:
    """Fetch remote changes and merge them into the branch.

    Uncommitted changes are committed first unless APPGIT_PULL_POLICY is
    set to "reject".

    Examples:
        appgit pull shop
    """
    try:
        with get_service() as service:
            default_id, branch_name = resolve_target(service, application_id, branch)
            result = service.pull(default_id, branch_name, get_user_id(user))

        status = result.merge_status
        if not status.is_mergeable:
            console.print(f"[bold red]{status.message}[/bold red]")
            for path in sorted(status.conflicting_files):
                console.print(f"  [red]! {path}[/red]")
            return

        for message in result.messages:
            console.print(f"[green]{message}[/green]")

    except AppGitError as pull_error:
        hint = " (retry later)" if pull_error.retryable else ""
        msg = f"Pull failed{hint}: {pull_error}"
        raise click.ClickException(msg) from pull_error
