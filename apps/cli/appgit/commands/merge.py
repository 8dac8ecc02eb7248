"""AppGit merge command.

Merges one branch into another, or checks whether it would merge cleanly.

Execution Context:
    CLI command - invoked via `appgit merge APP SOURCE`

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
from appgit_core.merge import format_merge_summary
from appgit_core.models import MergeSpec
from appgit_core.models import PullResult

console = Console()


# ---- Merge Command ------------------------------------------------------------------------------------------


@click.command()
@click.argument("application_id")
@click.argument("source")
@click.option(
    "--into",
    "destination",
    default=None,
    help="Branch to merge into (defaults to the application's branch).",
)
@click.option(
    "--check",
    is_flag=True,
    help="Only report whether the merge would succeed.",
)
@click.option(
    "--user",
    default=None,
    help="Acting user id (defaults to APPGIT_USER or the login name).",
)
def merge(
        application_id: str,
        source: str,
        destination: str | None,
        check: bool,
        user: str | None,
) -> None:
    """Merge a branch into the current branch.

    The merge is all or nothing: on conflicts nothing changes and the
    conflicting resources are listed.

    Examples:
        appgit merge shop feature/cart
        appgit merge shop feature/cart --into main --check
    """
    try:
        with get_service() as service:
            default_id, destination_branch = resolve_target(service, application_id, destination)
            if check:
                status = service.is_branch_mergeable(default_id, source, destination_branch)
                result = PullResult(merge_status=status)
            else:
                result = service.merge_branch(
                    default_id,
                    MergeSpec(source_branch=source, destination_branch=destination_branch),
                    get_user_id(user),
                )

        style = "green" if result.merge_status.is_mergeable else "red"
        for line in format_merge_summary(result).splitlines():
            console.print(f"[{style}]{line}[/{style}]")

    except AppGitError as merge_error:
        msg = f"Merge failed: {merge_error}"
        raise click.ClickException(msg) from merge_error
