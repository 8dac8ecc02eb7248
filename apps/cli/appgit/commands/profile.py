"""AppGit profile command.

Shows or sets the commit author identity of the acting user.

Execution Context:
    CLI command - invoked via `appgit profile`

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
from appgit_cli.commands.utils import get_user_id
from appgit_core.errors import AppGitError
from appgit_core.models import GitProfile

console = Console()


# ---- Profile Command ----------------------------------------------------------------------------------------


@click.command()
@click.option("--name", default=None, help="Author name.")
@click.option("--email", default=None, help="Author email.")
@click.option(
    "--app",
    "application_id",
    default=None,
    help="Set the profile for one application only.",
)
@click.option(
    "--use-global",
    is_flag=True,
    help="Make the application defer to the global profile.",
)
@click.option(
    "--default",
    "is_default",
    is_flag=True,
    help="Also use this profile as the global fallback.",
)
@click.option(
    "--user",
    default=None,
    help="Acting user id (defaults to APPGIT_USER or the login name).",
)
def profile(
        name: str | None,
        email: str | None,
        application_id: str | None,
        use_global: bool,
        is_default: bool,
        user: str | None,
) -> None:
    """Show or set commit author profiles.

    Without options, lists the stored profiles.

    Examples:
        appgit profile
        appgit profile --name "Jane Doe" --email jane@example.com
        appgit profile --app shop --name "Jane (shop)" --email jane@shop.example
        appgit profile --app shop --use-global
    """
    try:
        user_id = get_user_id(user)
        with get_service() as service:
            if name is None and email is None and not use_global:
                profiles = service.get_profiles(user_id)
            else:
                profiles = service.upsert_profile(
                    user_id,
                    GitProfile(author_name=name or "", author_email=email or "", use_global_profile=use_global),
                    is_default=is_default,
                    application_id=application_id,
                )
                console.print("[green]Profile updated[/green]")

        if not profiles:
            console.print("[dim]No profiles configured[/dim]")
            return

        table = Table(title=f"Git profiles of '{user_id}'")
        table.add_column("Scope", style="cyan")
        table.add_column("Name")
        table.add_column("Email")
        for scope, stored in sorted(profiles.items()):
            if stored.use_global_profile:
                table.add_row(scope, "[dim](global)[/dim]", "")
            else:
                table.add_row(scope, stored.author_name, stored.author_email)
        console.print(table)

    except (AppGitError, ValueError) as profile_error:
        msg = f"Profile update failed: {profile_error}"
        raise click.ClickException(msg) from profile_error
