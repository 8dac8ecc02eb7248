"""AppGit diff command.

Shows resource-level differences between the applications of two
branches.

Execution Context:
    CLI command - invoked via `appgit diff APP SOURCE [DESTINATION]`

Dependencies:
    - click: CLI framework
    - rich: Terminal output
    - appgit_core: Service facade

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

import json

import click
from rich.console import Console

from appgit_cli.commands.utils import get_service
from appgit_cli.commands.utils import resolve_target
from appgit_core.diff import format_diff_summary
from appgit_core.errors import AppGitError

console = Console()


# ---- Diff Command -------------------------------------------------------------------------------------------


@click.command()
@click.argument("application_id")
@click.argument("source")
@click.argument("destination", required=False)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Show property-level details of modified resources.",
)
def diff(
        application_id: str,
        source: str,
        destination: str | None,
        verbose: bool,
) -> None:
    """Compare the applications of two branches.

    Examples:
        appgit diff shop feature/cart
        appgit diff shop feature/cart main -v
    """
    try:
        with get_service() as service:
            default_id, destination_branch = resolve_target(service, application_id, destination)
            artifact_diff = service.compare_branches(default_id, source, destination_branch)

        console.print(f"[bold]{destination_branch}[/bold] -> [bold]{source}[/bold]")
        console.print(format_diff_summary(artifact_diff))

        if verbose:
            for change in artifact_diff.modified:
                console.print()
                console.print(f"[cyan]{change.collection}/{change.name}[/cyan]")
                console.print(json.dumps(change.details, indent=2, default=str))

    except AppGitError as diff_error:
        msg = f"Diff failed: {diff_error}"
        raise click.ClickException(msg) from diff_error
