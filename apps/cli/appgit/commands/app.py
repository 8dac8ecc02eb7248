"""AppGit app command.

Imports an application artifact from a JSON file into the document store
and exports it back, so applications can be edited outside AppGit.

Execution Context:
    CLI command - invoked via `appgit app import|export|show`

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
from pathlib import Path

import click
from rich.console import Console

from appgit_cli.commands.utils import get_service
from appgit_core.errors import AppGitError
from appgit_core.models import Application

console = Console()


# ---- App Group ----------------------------------------------------------------------------------------------


@click.group()
def app() -> None:
    """Manage application documents."""


@app.command("import")
@click.argument("application_id")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--name",
    default=None,
    help="Display name (defaults to the existing name or the file stem).",
)
def import_app(
        application_id: str,
        path: Path,
        name: str | None,
) -> None:
    """Load an application artifact from a JSON file.

    Creates the application if it doesn't exist, otherwise replaces its
    artifact. Connected applications keep their git association; the
    change shows up in `appgit status`.

    Examples:
        appgit app import shop ./shop.json
        appgit app import shop ./shop.json --name "Shop Admin"
    """
    try:
        artifact = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(artifact, dict):
            raise click.ClickException("Application file must contain a JSON object")

        with get_service() as service:
            existing = service.store.get_application(application_id)
            if existing:
                existing.artifact = artifact
                if name:
                    existing.name = name
                application = service.save_application(existing)
            else:
                application = service.save_application(Application(
                    id=application_id,
                    name=name or path.stem,
                    artifact=artifact,
                ))

        console.print(f"[green]Imported application '{application.id}'[/green]")
        if application.branch_name:
            console.print(f"[dim]Branch: {application.branch_name}[/dim]")

    except (AppGitError, ValueError) as import_error:
        msg = f"Import failed: {import_error}"
        raise click.ClickException(msg) from import_error


@app.command("export")
@click.argument("application_id")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="File to write (prints to stdout if omitted).",
)
def export_app(
        application_id: str,
        output: Path | None,
) -> None:
    """Write an application artifact as JSON.

    Examples:
        appgit app export shop
        appgit app export shop -o shop.json
    """
    try:
        with get_service() as service:
            application = service.get_application(application_id)

        content = json.dumps(application.artifact, indent=2, sort_keys=True)
        if output:
            output.write_text(content + "\n", encoding="utf-8")
            console.print(f"[green]Exported '{application_id}' to {output}[/green]")
        else:
            click.echo(content)

    except AppGitError as export_error:
        msg = f"Export failed: {export_error}"
        raise click.ClickException(msg) from export_error
