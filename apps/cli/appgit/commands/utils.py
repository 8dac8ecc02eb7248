"""Utility functions for AppGit CLI commands.

Execution Context:
    CLI command utilities - imported by command modules

Dependencies:
    - os: Environment variable access
    - appgit_core: Service facade

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

import getpass
import os

import click

from appgit_core.config import load_settings
from appgit_core.service import GitService


def get_service() -> GitService:
    """Build the service from environment settings (.env aware)."""
    return GitService(load_settings())


def get_user_id(user: str | None = None) -> str:
    """Get the acting user from parameter, APPGIT_USER, or the login name.

    Args:
        user: Optional user id parameter (takes precedence if provided).

    Returns:
        User id string.
    """
    if user:
        return user
    return os.getenv("APPGIT_USER") or getpass.getuser()


def resolve_target(
        service: GitService,
        application_id: str,
        branch: str | None = None,
) -> tuple[str, str]:
    """Resolve an application (default or child) and optional branch.

    Without ``branch`` the branch the application materializes is used.

    Returns:
        Tuple of (default application id, branch name).

    Raises:
        click.ClickException: If the application is not git-connected.
    """
    application = service.get_application(application_id)
    if not application.git_application_id:
        msg = f"Application '{application_id}' is not connected to git. Run 'appgit connect' first."
        raise click.ClickException(msg)
    return application.git_application_id, branch or application.branch_name
