"""AppGit connect and detach commands.

Binds an application to a remote git repository, or removes the binding.

Execution Context:
    CLI command - invoked via `appgit connect APP URL` / `appgit detach APP`

Dependencies:
    - click: CLI framework
    - rich: Terminal output
    - appgit_core: Service facade

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

import os

import click
from rich.console import Console

from appgit_cli.commands.utils import get_service
from appgit_cli.commands.utils import get_user_id
from appgit_core.errors import AppGitError
from appgit_core.models import RemoteConfig

console = Console()


# ---- Connect Command ----------------------------------------------------------------------------------------


@click.command()
@click.argument("application_id")
@click.argument("remote_url")
@click.option(
    "--token",
    default=None,
    help="Access token for HTTPS remotes (or set APPGIT_TOKEN).",
)
@click.option(
    "--ssh-key",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Private key for SSH remotes.",
)
@click.option(
    "--default-branch",
    default=None,
    help="Default branch when the remote is empty.",
)
@click.option(
    "--origin",
    default="",
    help="Base URL of the application host, linked from the README.",
)
@click.option(
    "--user",
    default=None,
    help="Acting user id (defaults to APPGIT_USER or the login name).",
)
def connect(
        application_id: str,
        remote_url: str,
        token: str | None,
        ssh_key: str | None,
        default_branch: str | None,
        origin: str,
        user: str | None,
) -> None:
    """Connect an application to a remote repository.

    Clones the remote when it already has branches, otherwise creates a
    new repository, and commits the current application as the first
    commit of the default branch.

    Examples:
        appgit connect shop git@github.com:acme/shop.git --ssh-key ~/.ssh/id_ed25519
        appgit connect shop https://github.com/acme/shop.git --token ghp_xxx
    """
    try:
        remote_config = RemoteConfig(
            remote_url=remote_url,
            auth_token=token or os.getenv("APPGIT_TOKEN"),
            ssh_key_path=ssh_key,
            default_branch_name=default_branch,
        )
        with get_service() as service:
            application = service.connect(application_id, remote_config, origin, get_user_id(user))
            metadata = service.get_metadata(application.id)

        console.print(f"[green]Connected '{application.id}' to {metadata['remote_url']}[/green]")
        console.print(f"  [bold]Default branch:[/bold] {metadata['default_branch_name']}")
        if metadata.get("browser_url"):
            console.print(f"  [bold]Browse:[/bold] {metadata['browser_url']}")
        if metadata.get("is_private") is not None:
            console.print(f"  [bold]Private:[/bold] {'yes' if metadata['is_private'] else 'no'}")

    except (AppGitError, ValueError) as connect_error:
        msg = f"Connect failed: {connect_error}"
        raise click.ClickException(msg) from connect_error


# ---- Detach Command -----------------------------------------------------------------------------------------


@click.command()
@click.argument("application_id")
@click.confirmation_option(prompt="Delete the local working copy and disconnect all branches?")
def detach(
        application_id: str,
) -> None:
    """Disconnect an application from its repository.

    The remote repository is left untouched. Branch applications keep
    their last artifact but are no longer version controlled.

    Example:
        appgit detach shop --yes
    """
    try:
        with get_service() as service:
            application = service.detach(application_id)

        console.print(f"[green]Detached '{application.id}'[/green]")

    except AppGitError as detach_error:
        msg = f"Detach failed: {detach_error}"
        raise click.ClickException(msg) from detach_error
