"""Tests for appgit_core.branches module.

Tests branch creation, listing (and its cache), checkout of local and
remote branches, and deletion.
"""
from __future__ import annotations

import copy

import pytest

from appgit_core.branches import BranchCache
from appgit_core.diff import artifacts_equal
from appgit_core.errors import (
    BranchAlreadyExists,
    BranchNotFound,
    InvalidBranchName,
    InvalidStateError,
    SourceBranchNotFound,
    UncommittedChangesConflict,
)
from appgit_core.models import BranchListEntry, BranchSpec, CommitSpec
from appgit_core.serializer import JsonTreeSerializer


def edit_theme(service, application_id: str, color: str) -> None:
    application = service.get_application(application_id)
    application.artifact = copy.deepcopy(application.artifact)
    application.artifact["theme"]["primary"] = color
    service.save_application(application)


# ---- Cache Tests --------------------------------------------------------------------------------------------


class TestBranchCache:
    """Tests for BranchCache."""

    def test_hit_and_invalidate(self):
        cache = BranchCache(ttl=60)
        entries = [BranchListEntry(name="main", is_default=True)]
        cache.put("app", entries)
        assert cache.get("app") == entries
        cache.invalidate("app")
        assert cache.get("app") is None

    def test_expiry(self):
        cache = BranchCache(ttl=-1)
        cache.put("app", [BranchListEntry(name="main")])
        assert cache.get("app") is None

    def test_returns_copy(self):
        cache = BranchCache(ttl=60)
        cache.put("app", [BranchListEntry(name="main")])
        cache.get("app").append(BranchListEntry(name="x"))
        assert len(cache.get("app")) == 1


# ---- Create Tests -------------------------------------------------------------------------------------------


@pytest.mark.git
class TestCreateBranch:
    """Tests for create_branch."""

    def test_create(self, service, connected):
        """Test the new branch starts at the source tip with a copy of its application."""
        child = service.create_branch("app-1", BranchSpec("feature/cart"), "main")

        assert child.id != "app-1"
        assert child.git_application_id == "app-1"
        assert child.branch_name == "feature/cart"
        assert artifacts_equal(child.artifact, connected.artifact)
        feature_hashes = [record.hash for record in service.history("app-1", "feature/cart")]
        assert feature_hashes == [record.hash for record in service.history("app-1", "main")]
        assert service.get_branch_application("app-1", "feature/cart").id == child.id

    def test_create_from_child_id(self, service, connected):
        child = service.create_branch("app-1", BranchSpec("one"), "main")
        grandchild = service.create_branch(child.id, BranchSpec("two"), "one")
        assert grandchild.git_application_id == "app-1"

    def test_uses_committed_source_state(self, service, connected):
        """Test uncommitted edits of the source stay on the source branch."""
        edit_theme(service, "app-1", "#222222")
        child = service.create_branch("app-1", BranchSpec("feature"), "main")

        assert child.artifact["theme"]["primary"] == "#0055ff"
        assert service.status("app-1", "feature")["isClean"]
        assert service.get_application("app-1").artifact["theme"]["primary"] == "#222222"
        assert service.status("app-1", "main")["modifiedResources"] == ["application.json"]

    def test_checkout_after_create_with_dirty_source(self, service, connected, sample_artifact):
        edit_theme(service, "app-1", "#222222")
        child = service.create_branch("app-1", BranchSpec("feature"), "main")

        checked_out = service.checkout_branch("app-1", "feature")

        assert checked_out.id == child.id
        assert artifacts_equal(checked_out.artifact, sample_artifact)

    def test_already_exists(self, service, connected):
        service.create_branch("app-1", BranchSpec("feature"), "main")
        with pytest.raises(BranchAlreadyExists):
            service.create_branch("app-1", BranchSpec("feature"), "main")
        with pytest.raises(BranchAlreadyExists):
            service.create_branch("app-1", BranchSpec("main"), "feature")

    def test_exists_on_remote(self, service, connected):
        service.create_branch("app-1", BranchSpec("feature"), "main")
        service.push("app-1", "feature")
        service.delete_branch("app-1", "feature")
        service.list_branches("app-1", ignore_cache=True)
        with pytest.raises(BranchAlreadyExists, match="remote"):
            service.create_branch("app-1", BranchSpec("feature"), "main")

    def test_invalid_name(self, service, connected):
        with pytest.raises(InvalidBranchName):
            service.create_branch("app-1", BranchSpec("bad..name"), "main")

    def test_missing_source(self, service, connected):
        with pytest.raises(SourceBranchNotFound):
            service.create_branch("app-1", BranchSpec("feature"), "nope")


# ---- Listing Tests ------------------------------------------------------------------------------------------


@pytest.mark.git
class TestListBranches:
    """Tests for list_branches."""

    def test_order(self, service, connected):
        service.create_branch("app-1", BranchSpec("zeta"), "main")
        service.create_branch("app-1", BranchSpec("alpha"), "main")
        entries = service.list_branches("app-1")
        assert [entry.name for entry in entries] == ["main", "alpha", "zeta"]
        assert entries[0].is_default
        assert entries[0].last_commit == service.history("app-1", "main")[0].hash

    def test_cache_invalidated_by_writes(self, service, connected):
        assert [e.name for e in service.list_branches("app-1")] == ["main"]
        service.create_branch("app-1", BranchSpec("feature"), "main")
        assert [e.name for e in service.list_branches("app-1")] == ["main", "feature"]

    def test_remote_only(self, service, connected, remote_clone):
        service.push("app-1", "main")
        other = remote_clone()
        other.git("checkout", "-b", "hotfix")
        other.git("commit", "--allow-empty", "-m", "Hotfix")
        other.git("push", "origin", "hotfix")

        cached = service.list_branches("app-1")
        assert "origin/hotfix" not in [e.name for e in cached]

        entries = service.list_branches("app-1", ignore_cache=True)
        remote = [e for e in entries if e.is_remote]
        assert [e.name for e in remote] == ["origin/hotfix"]
        assert remote[0].last_commit == other.git("rev-parse", "HEAD")


# ---- Checkout Tests -----------------------------------------------------------------------------------------


@pytest.mark.git
class TestCheckoutBranch:
    """Tests for checkout_branch."""

    def test_checkout_loads_committed_state(self, service, connected, sample_artifact):
        child = service.create_branch("app-1", BranchSpec("feature"), "main")
        edit_theme(service, child.id, "#333333")
        service.commit(CommitSpec("Feature theme"), "app-1", "feature", "alice")

        checked_out = service.checkout_branch("app-1", "feature")

        assert checked_out.id == child.id
        assert checked_out.artifact["theme"]["primary"] == "#333333"
        assert service.get_application("app-1").artifact["theme"]["primary"] == "#0055ff"

        main = service.checkout_branch("app-1", "main")
        assert artifacts_equal(main.artifact, sample_artifact)

    def test_dirty_refused(self, service, connected):
        child = service.create_branch("app-1", BranchSpec("feature"), "main")
        edit_theme(service, child.id, "#444444")
        with pytest.raises(UncommittedChangesConflict):
            service.checkout_branch("app-1", "feature")
        assert service.get_application(child.id).artifact["theme"]["primary"] == "#444444"

    def test_missing(self, service, connected):
        with pytest.raises(BranchNotFound):
            service.checkout_branch("app-1", "nope")
        with pytest.raises(BranchNotFound):
            service.checkout_branch("app-1", "origin/nope", is_remote=True)

    def test_remote(self, service, connected, remote_clone, sample_artifact):
        service.push("app-1", "main")
        other = remote_clone()
        other.git("checkout", "-b", "hotfix")
        changed = copy.deepcopy(sample_artifact)
        changed["pages"].append({"name": "Sale", "layout": {"widgets": ["banner"]}})
        other.write_artifact(changed)
        other.commit_and_push("Add sale page", branch="hotfix")
        service.list_branches("app-1", ignore_cache=True)

        application = service.checkout_branch("app-1", "origin/hotfix", is_remote=True)

        assert application.branch_name == "hotfix"
        assert application.git_application_id == "app-1"
        assert {page["name"] for page in application.artifact["pages"]} == {"Home", "Cart", "Sale"}
        assert service.status("app-1", "hotfix") == {
            "modifiedResources": [],
            "aheadBy": 0,
            "behindBy": 0,
            "isClean": True,
            "conflictingResources": [],
        }
        with pytest.raises(BranchAlreadyExists):
            service.checkout_branch("app-1", "hotfix", is_remote=True)

    def test_failed_remote_checkout_is_rolled_back(self, service, connected, remote_clone, sample_artifact,
                                                   monkeypatch):
        """Test an interrupted remote checkout leaves no tracking branch behind."""
        service.push("app-1", "main")
        other = remote_clone()
        other.git("checkout", "-b", "hotfix")
        changed = copy.deepcopy(sample_artifact)
        changed["version"] = 4
        other.write_artifact(changed)
        other.commit_and_push("Hotfix", branch="hotfix")
        service.list_branches("app-1", ignore_cache=True)

        def interrupt(serializer, tree):
            raise KeyboardInterrupt

        monkeypatch.setattr("appgit_core.branches.import_artifact", interrupt)
        with pytest.raises(KeyboardInterrupt):
            service.checkout_branch("app-1", "origin/hotfix", is_remote=True)

        with service.bindings.open("app-1") as (_, repo):
            assert not repo.branch_exists("hotfix")
            assert repo.current_branch() == "main"
        assert service.store.get_branch("app-1", "hotfix") is None

    def test_equivalence_with_tree(self, service, connected):
        """Test the checked-out application exports to the committed tree."""
        application = service.checkout_branch("app-1", "main")
        with service.bindings.open("app-1") as (_, repo):
            committed = repo.read_tree("main")
        assert JsonTreeSerializer().export(application.artifact) == committed


# ---- Delete Tests -------------------------------------------------------------------------------------------


@pytest.mark.git
class TestDeleteBranch:
    """Tests for delete_branch."""

    def test_delete(self, service, connected):
        child = service.create_branch("app-1", BranchSpec("feature"), "main")
        service.checkout_branch("app-1", "feature")

        default_app = service.delete_branch("app-1", "feature")

        assert default_app.id == "app-1"
        assert service.store.get_application(child.id) is None
        assert service.store.get_branch("app-1", "feature") is None
        assert [e.name for e in service.list_branches("app-1")] == ["main"]
        with service.bindings.open("app-1") as (_, repo):
            assert repo.current_branch() == "main"

    def test_delete_default(self, service, connected):
        with pytest.raises(InvalidStateError):
            service.delete_branch("app-1", "main")

    def test_delete_missing(self, service, connected):
        with pytest.raises(BranchNotFound):
            service.delete_branch("app-1", "nope")
