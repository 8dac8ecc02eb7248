"""AppGit CLI entry point.

Orchestrator for the AppGit command-line interface. Registers all
command modules and provides the main entry point.

Execution Context:
    CLI application - run via `python main.py` or `appgit` command

Dependencies:
    - click: CLI framework
    - rich: Log output
    - appgit_core: Core library

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

import logging
import sys

import click
from rich.logging import RichHandler

from appgit_cli import __version__
from appgit_cli.commands.app import app
from appgit_cli.commands.branch import branch
from appgit_cli.commands.checkout import checkout
from appgit_cli.commands.commit import commit
from appgit_cli.commands.connect import connect
from appgit_cli.commands.connect import detach
from appgit_cli.commands.diff import diff
from appgit_cli.commands.log import log
from appgit_cli.commands.merge import merge
from appgit_cli.commands.profile import profile
from appgit_cli.commands.status import status
from appgit_cli.commands.sync import pull
from appgit_cli.commands.sync import push


# ---- CLI Group ----------------------------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="appgit")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Log git operations to stderr.",
)
def cli(
        verbose: bool,
) -> None:
    """AppGit - Git version control for applications.

    Connect an application to a Git repository, then commit, branch,
    merge, push and pull its definition using familiar workflows.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        )
        logging.getLogger("git").setLevel(logging.INFO)


# ---- Register Commands --------------------------------------------------------------------------------------


cli.add_command(app)
cli.add_command(profile)
cli.add_command(connect)
cli.add_command(detach)
cli.add_command(status)
cli.add_command(branch)
cli.add_command(checkout)
cli.add_command(commit)
cli.add_command(diff)
cli.add_command(log)
cli.add_command(merge)
cli.add_command(push)
cli.add_command(pull)


# ---- Main Function ------------------------------------------------------------------------------------------


def main() -> int:
    """Main entry point for AppGit CLI.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    try:
        cli()
        return 0
    except Exception as cli_error:
        click.echo(f"Error: {cli_error}", err=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
