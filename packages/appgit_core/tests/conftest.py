"""Shared test configuration and fixtures for appgit_core tests.

Provides:
- ``git`` marker: tests that drive a real git binary are skipped when git
  (2.38 or newer, for ``merge-tree --write-tree``) is not available.
- Isolated git configuration so user or system settings (signing,
  hooks, default branch) never leak into the tests.
- A bare repository acting as the remote, and a connected application.
"""
from __future__ import annotations

import os
import re
import shutil
import subprocess
from pathlib import Path
from typing import Any

import pytest

from appgit_core.config import Settings
from appgit_core.models import Application
from appgit_core.models import GitProfile
from appgit_core.models import RemoteConfig
from appgit_core.serializer import JsonTreeSerializer
from appgit_core.service import GitService
from appgit_core.store import SqliteDocumentStore

MIN_GIT_VERSION = (2, 38)

IDENTITY_ENV = {
    "GIT_AUTHOR_NAME": "Remote User",
    "GIT_AUTHOR_EMAIL": "remote@example.com",
    "GIT_COMMITTER_NAME": "Remote User",
    "GIT_COMMITTER_EMAIL": "remote@example.com",
}


def _git_version() -> tuple[int, ...] | None:
    if shutil.which("git") is None:
        return None
    output = subprocess.run(["git", "--version"], capture_output=True, text=True, check=False).stdout
    match = re.search(r"(\d+)\.(\d+)", output)
    return tuple(int(part) for part in match.groups()) if match else None


# ---- Markers ------------------------------------------------------------------------------------------------


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    version = _git_version()
    if version is not None and version >= MIN_GIT_VERSION:
        return
    skip_git = pytest.mark.skip(reason="git 2.38+ is not available")
    for item in items:
        if "git" in item.keywords:
            item.add_marker(skip_git)


# ---- Fixtures -----------------------------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def isolated_git_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Point git at an empty global config."""
    global_config = tmp_path / "gitconfig"
    global_config.write_text("", encoding="utf-8")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(global_config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")


@pytest.fixture
def sample_artifact() -> dict[str, Any]:
    """Application artifact with two collections and scalar properties."""
    return {
        "name": "Shop",
        "version": 3,
        "theme": {"primary": "#0055ff", "font": "Inter"},
        "pages": [
            {"name": "Home", "layout": {"widgets": ["header", "hero"]}},
            {"name": "Cart", "layout": {"widgets": ["table"]}},
        ],
        "actions": [
            {"name": "getOrders", "body": "SELECT * FROM orders", "datasource": "postgres"},
        ],
    }


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        repo_root=tmp_path / "repos",
        db_path=":memory:",
        lock_timeout=5.0,
        branch_cache_ttl=60.0,
    )


@pytest.fixture
def store() -> SqliteDocumentStore:
    with SqliteDocumentStore() as document_store:
        yield document_store


@pytest.fixture
def service(settings: Settings, store: SqliteDocumentStore) -> GitService:
    return GitService(settings=settings, store=store)


@pytest.fixture
def application(store: SqliteDocumentStore, sample_artifact: dict[str, Any]) -> Application:
    return store.save_application(Application(id="app-1", name="Shop", artifact=sample_artifact))


@pytest.fixture
def profile(service: GitService) -> GitProfile:
    author = GitProfile(author_name="Alice", author_email="alice@example.com")
    service.upsert_profile("alice", author)
    return author


@pytest.fixture
def bare_remote(tmp_path: Path) -> str:
    """Empty bare repository used as the remote."""
    path = tmp_path / "remote.git"
    subprocess.run(["git", "init", "--bare", "--initial-branch=main", str(path)], check=True,
                   capture_output=True)
    return str(path)


@pytest.fixture
def connected(service: GitService, application: Application, bare_remote: str, profile: GitProfile) -> Application:
    """Application connected to the empty bare remote."""
    return service.connect(
        application.id,
        RemoteConfig(remote_url=bare_remote),
        "https://apps.example.com",
        "alice",
    )


class RemoteClone:
    """Second working copy of the remote, standing in for another user."""

    def __init__(self, remote: str, path: Path) -> None:
        self.path = path
        subprocess.run(["git", "clone", remote, str(path)], check=True, capture_output=True)

    def git(self, *args: str) -> str:
        result = subprocess.run(
            ["git", *args], cwd=self.path, check=True, capture_output=True, text=True,
            env={**os.environ, **IDENTITY_ENV},
        )
        return result.stdout.strip()

    def write_artifact(self, artifact: dict[str, Any]) -> None:
        for rel_path, content in JsonTreeSerializer().export(artifact).items():
            target = self.path / rel_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)

    def commit_and_push(self, message: str, branch: str = "main") -> str:
        self.git("add", "-A")
        self.git("commit", "-m", message)
        self.git("push", "origin", branch)
        return self.git("rev-parse", "HEAD")


@pytest.fixture
def remote_clone(bare_remote: str, tmp_path: Path):
    """Factory for clones of the remote made by another user."""
    def make(name: str = "other") -> RemoteClone:
        return RemoteClone(bare_remote, tmp_path / name)
    return make
