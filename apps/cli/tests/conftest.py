"""Shared fixtures for appgit CLI tests.

Every test runs in its own directory with its own document store,
repository root and empty git configuration.
"""
from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def cli_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point AppGit and git at per-test locations."""
    global_config = tmp_path / "gitconfig"
    global_config.write_text("", encoding="utf-8")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(global_config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("APPGIT_DB_PATH", str(tmp_path / "appgit.db"))
    monkeypatch.setenv("APPGIT_REPO_ROOT", str(tmp_path / "repos"))
    monkeypatch.setenv("APPGIT_USER", "alice")
    monkeypatch.delenv("APPGIT_TOKEN", raising=False)
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return workdir


@pytest.fixture
def bare_remote(tmp_path: Path) -> str:
    if shutil.which("git") is None:
        pytest.skip("git is not available")
    path = tmp_path / "remote.git"
    subprocess.run(["git", "init", "--bare", "--initial-branch=main", str(path)], check=True,
                   capture_output=True)
    return str(path)
