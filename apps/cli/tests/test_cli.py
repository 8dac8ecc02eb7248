"""Tests for the appgit command-line interface.

Drives the click commands with CliRunner against a local bare remote.
"""
from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from appgit_cli.main import cli

SHOP = {
    "name": "Shop",
    "theme": {"primary": "#0055ff"},
    "pages": [{"name": "Home", "layout": {"widgets": ["hero"]}}],
}


# ---- Fixtures -----------------------------------------------------------------------------------------------


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def invoke(runner: CliRunner, *args: str):
    return runner.invoke(cli, list(args), catch_exceptions=False)


def write_app(path: Path, artifact: dict) -> Path:
    path.write_text(json.dumps(artifact), encoding="utf-8")
    return path


@pytest.fixture
def connected(runner, cli_env, bare_remote):
    """Application 'shop' imported and connected."""
    assert invoke(runner, "profile", "--name", "Alice", "--email", "alice@example.com").exit_code == 0
    assert invoke(runner, "app", "import", "shop", str(write_app(cli_env / "shop.json", SHOP))).exit_code == 0
    result = invoke(runner, "connect", "shop", bare_remote, "--origin", "https://apps.example.com")
    assert result.exit_code == 0, result.output
    return "shop"


# ---- Basic Command Tests ------------------------------------------------------------------------------------


class TestBasics:
    """Tests for commands that need no repository."""

    def test_version(self, runner):
        result = invoke(runner, "--version")
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_profile_list_empty(self, runner):
        result = invoke(runner, "profile")
        assert result.exit_code == 0
        assert "No profiles configured" in result.output

    def test_profile_invalid(self, runner):
        result = invoke(runner, "profile", "--name", "Alice")
        assert result.exit_code != 0
        assert "Profile update failed" in result.output

    def test_import_export(self, runner, cli_env):
        invoke(runner, "app", "import", "shop", str(write_app(cli_env / "shop.json", SHOP)))
        result = invoke(runner, "app", "export", "shop")
        assert result.exit_code == 0
        assert json.loads(result.output) == SHOP

    def test_status_unconnected(self, runner, cli_env):
        invoke(runner, "app", "import", "shop", str(write_app(cli_env / "shop.json", SHOP)))
        result = invoke(runner, "status", "shop")
        assert result.exit_code != 0
        assert "not connected" in result.output


# ---- Workflow Tests -----------------------------------------------------------------------------------------


@pytest.mark.git
class TestWorkflow:
    """Tests for a full command-line workflow."""

    def test_status_clean(self, runner, connected):
        result = invoke(runner, "status", "shop")
        assert result.exit_code == 0
        assert "On branch: main" in result.output
        assert "Nothing to commit" in result.output

    def test_commit_log_push(self, runner, connected, cli_env):
        changed = dict(SHOP, pages=SHOP["pages"] + [{"name": "Checkout", "layout": {"widgets": []}}])
        invoke(runner, "app", "import", "shop", str(write_app(cli_env / "changed.json", changed)))

        status = invoke(runner, "status", "shop")
        assert "pages/Checkout.json" in status.output

        commit = invoke(runner, "commit", "shop", "-m", "Add checkout")
        assert commit.exit_code == 0, commit.output
        assert "Created commit" in commit.output

        again = invoke(runner, "commit", "shop", "-m", "Again")
        assert "Nothing to commit" in again.output

        log = invoke(runner, "log", "shop", "--oneline")
        assert log.exit_code == 0
        assert "Add checkout" in log.output

        push = invoke(runner, "push", "shop")
        assert push.exit_code == 0, push.output
        assert "Pushed 2 commit(s)" in push.output

        pull = invoke(runner, "pull", "shop")
        assert "Already up to date" in pull.output

    def test_branch_diff_merge(self, runner, connected, cli_env):
        created = invoke(runner, "branch", "shop", "feature")
        assert created.exit_code == 0, created.output
        assert "Created branch 'feature'" in created.output
        child_id = created.output.split("Application:")[1].split()[0]

        listing = invoke(runner, "branch", "shop")
        assert "* main" in listing.output
        assert "feature" in listing.output

        changed = dict(SHOP, theme={"primary": "#000000"})
        invoke(runner, "app", "import", child_id, str(write_app(cli_env / "feature.json", changed)))
        assert invoke(runner, "commit", child_id, "-m", "Dark theme").exit_code == 0

        diff = invoke(runner, "diff", "shop", "feature")
        assert "Application properties changed" in diff.output

        check = invoke(runner, "merge", "shop", "feature", "--check")
        assert "Incoming commits: 1" in check.output

        merge = invoke(runner, "merge", "shop", "feature")
        assert merge.exit_code == 0, merge.output
        exported = json.loads(invoke(runner, "app", "export", "shop").output)
        assert exported["theme"] == {"primary": "#000000"}

        checkout = invoke(runner, "checkout", "shop", "feature")
        assert "Switched to branch 'feature'" in checkout.output

        deleted = invoke(runner, "branch", "shop", "-d", "feature")
        assert "Deleted branch 'feature'" in deleted.output

    def test_detach(self, runner, connected):
        result = invoke(runner, "detach", "shop", "--yes")
        assert result.exit_code == 0
        assert "Detached 'shop'" in result.output
        assert invoke(runner, "status", "shop").exit_code != 0
