"""Tests for appgit_core.service module.

Tests the service facade end to end:
- A full connect / branch / commit / merge / push / pull round
- Lock behavior (Busy and concurrent structural operations)
- Package exports
"""
from __future__ import annotations

import copy
import threading

import pytest

import appgit_core
from appgit_core.errors import BindingNotFound, Busy
from appgit_core.models import BranchSpec, CommitSpec, MergeSpec, RemoteConfig
from appgit_core.service import GitService
from appgit_core.store import SqliteDocumentStore


def add_page(service, application_id: str, name: str) -> None:
    application = service.get_application(application_id)
    application.artifact = copy.deepcopy(application.artifact)
    application.artifact["pages"].append({"name": name, "layout": {"widgets": []}})
    service.save_application(application)


# ---- Package Tests ------------------------------------------------------------------------------------------


class TestPackage:
    """Tests for the appgit_core package exports."""

    def test_exports(self):
        for name in appgit_core.__all__:
            assert hasattr(appgit_core, name)
        assert appgit_core.GitService is GitService
        assert appgit_core.__version__ == "0.1.0"

    def test_context_manager(self, settings):
        with GitService(settings=settings, store=SqliteDocumentStore()) as service:
            assert service.store.get_application("x") is None
        assert service.store._conn is None


# ---- Scenario Tests -----------------------------------------------------------------------------------------


@pytest.mark.git
class TestScenario:
    """Tests for a full version-control round."""

    def test_round_trip(self, service, connected, bare_remote, remote_clone):
        service.push("app-1", "main")

        child = service.create_branch("app-1", BranchSpec("feature/checkout"), "main")
        add_page(service, child.id, "Checkout")
        service.commit(CommitSpec("Add checkout page"), child.id, "feature/checkout", "alice")

        assert service.is_branch_mergeable("app-1", "feature/checkout", "main").is_mergeable
        merged = service.merge_branch("app-1", MergeSpec("feature/checkout", "main"), "alice")
        assert merged.merge_status.is_mergeable

        pushed = service.push("app-1", "main")
        assert pushed.pushed_commits == 1

        other = remote_clone()
        assert (other.path / "pages" / "Checkout.json").exists()

        service.delete_branch("app-1", "feature/checkout")
        assert [entry.name for entry in service.list_branches("app-1")] == ["main"]
        assert service.status("app-1", "main") == {
            "modifiedResources": [],
            "aheadBy": 0,
            "behindBy": 0,
            "isClean": True,
            "conflictingResources": [],
        }

    def test_unconnected_application(self, service, application):
        with pytest.raises(BindingNotFound):
            service.status(application.id, "main")
        with pytest.raises(BindingNotFound):
            service.list_branches(application.id)


# ---- Locking Tests ------------------------------------------------------------------------------------------


@pytest.mark.git
class TestLocking:
    """Tests for per-branch locking through the service."""

    def test_busy_while_branch_written(self, service, connected):
        service.locks.timeout = 0.2
        entered = threading.Event()
        release = threading.Event()

        def hold():
            with service.locks.write("app-1", "main", "test"):
                entered.set()
                release.wait(5)

        thread = threading.Thread(target=hold, daemon=True)
        thread.start()
        assert entered.wait(5)
        try:
            with pytest.raises(Busy):
                service.commit(CommitSpec("Blocked", allow_empty=True), "app-1", "main", "alice")
            with pytest.raises(Busy):
                service.history("app-1", "main")
        finally:
            release.set()
            thread.join()

        assert len(service.history("app-1", "main")) == 1

    def test_concurrent_commits_on_different_branches(self, service, connected):
        children = [
            service.create_branch("app-1", BranchSpec(f"branch-{index}"), "main")
            for index in range(3)
        ]
        for index, child in enumerate(children):
            add_page(service, child.id, f"Page{index}")

        errors = []
        shas = {}

        def work(index, child):
            try:
                shas[index] = service.commit(
                    CommitSpec(f"Commit {index}"), child.id, f"branch-{index}", "alice",
                )
            except Exception as work_error:
                errors.append(work_error)

        threads = [threading.Thread(target=work, args=pair) for pair in enumerate(children)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        for index in range(3):
            history = service.history("app-1", f"branch-{index}")
            assert history[0].hash == shas[index]
            assert len(history) == 2
            assert service.status("app-1", f"branch-{index}")["isClean"]

    def test_concurrent_commits_on_same_branch(self, service, connected):
        """Test same-branch commits serialize; the loser sees nothing to commit."""
        add_page(service, "app-1", "Shared")
        results = []

        def work():
            results.append(service.commit(CommitSpec("Shared page"), "app-1", "main", "alice"))

        threads = [threading.Thread(target=work) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(result == appgit_core.NOTHING_TO_COMMIT for result in results) == [False, True]
        assert len(service.history("app-1", "main")) == 2

    def test_detach_drops_locks(self, service, connected, bare_remote):
        service.detach("app-1")
        assert ("app-1", "main") not in service.locks._branch_locks
        service.connect("app-1", RemoteConfig(remote_url=bare_remote), "", "alice")
        assert service.status("app-1", "main")["isClean"]
