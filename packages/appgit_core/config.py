"""Runtime configuration for AppGit.

Settings come from environment variables, optionally loaded from a
``.env`` file first.

Execution Context:
    Library module - imported by the service facade and the CLI

Dependencies:
    - python-dotenv: Load environment variables from .env file

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path

from dotenv import load_dotenv

from appgit_core.models import PullPolicy


# ---- Constants ----------------------------------------------------------------------------------------------


APPGIT_HOME = Path.home() / ".appgit"

DEFAULT_BRANCH = "main"
DEFAULT_REMOTE = "origin"
DEFAULT_LOCK_TIMEOUT = 10.0
DEFAULT_BRANCH_CACHE_TTL = 30.0


# ---- Environment Loading ------------------------------------------------------------------------------------


def _load_env_file(
        env_path: Path | None = None,
) -> None:
    """Load environment variables from .env file.

    Searches for .env file in:
    1. Specified path (if provided)
    2. Current working directory
    3. Parent directories (up to 3 levels)

    Args:
        env_path: Explicit path to .env file (optional).
    """
    if env_path:
        if env_path.exists():
            load_dotenv(env_path, override=False)
        return

    current = Path.cwd()
    for _ in range(4):
        candidate = current / ".env"
        if candidate.exists():
            load_dotenv(candidate, override=False)
            return
        current = current.parent


def _float_env(
        name: str,
        default: float,
) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as parse_error:
        msg = f"{name} must be a number, got {raw!r}"
        raise ValueError(msg) from parse_error


# ---- Settings -----------------------------------------------------------------------------------------------


@dataclass
class Settings:
    """AppGit settings.

    Attributes:
        repo_root: Directory holding one working copy per application.
        db_path: SQLite document store path (":memory:" for ephemeral).
        default_branch: Branch name used when initializing a new repository.
        remote_name: Name of the configured remote.
        lock_timeout: Seconds to wait for a branch lock before raising Busy.
        branch_cache_ttl: Seconds a branch listing stays cached.
        pull_policy: Handling of uncommitted changes on pull.
    """

    repo_root: Path = field(default_factory=lambda: APPGIT_HOME / "repos")
    db_path: str = field(default_factory=lambda: str(APPGIT_HOME / "appgit.db"))
    default_branch: str = DEFAULT_BRANCH
    remote_name: str = DEFAULT_REMOTE
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    branch_cache_ttl: float = DEFAULT_BRANCH_CACHE_TTL
    pull_policy: PullPolicy = PullPolicy.AUTO_COMMIT


def load_settings(
        env_path: Path | None = None,
) -> Settings:
    """Build settings from the environment.

    Args:
        env_path: Explicit .env file to load before reading variables.

    Returns:
        Settings instance.

    Raises:
        ValueError: If a variable holds an invalid value.
    """
    _load_env_file(env_path)

    settings = Settings()

    repo_root = os.environ.get("APPGIT_REPO_ROOT")
    if repo_root:
        settings.repo_root = Path(repo_root).expanduser()

    db_path = os.environ.get("APPGIT_DB_PATH")
    if db_path:
        settings.db_path = db_path if db_path == ":memory:" else str(Path(db_path).expanduser())

    settings.default_branch = os.environ.get("APPGIT_DEFAULT_BRANCH") or DEFAULT_BRANCH
    settings.remote_name = os.environ.get("APPGIT_REMOTE_NAME") or DEFAULT_REMOTE
    settings.lock_timeout = _float_env("APPGIT_LOCK_TIMEOUT", DEFAULT_LOCK_TIMEOUT)
    settings.branch_cache_ttl = _float_env("APPGIT_BRANCH_CACHE_TTL", DEFAULT_BRANCH_CACHE_TTL)

    policy = os.environ.get("APPGIT_PULL_POLICY")
    if policy:
        try:
            settings.pull_policy = PullPolicy(policy.strip().lower())
        except ValueError as policy_error:
            allowed = ", ".join(p.value for p in PullPolicy)
            msg = f"APPGIT_PULL_POLICY must be one of {allowed}, got {policy!r}"
            raise ValueError(msg) from policy_error

    return settings
