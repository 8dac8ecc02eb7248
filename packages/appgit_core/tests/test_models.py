"""Tests for appgit_core.models module.

Tests the stored records and computed values:
- Application ownership helpers
- Binding serialization without local paths
- Profile completeness
- Status and merge status maps
"""
from __future__ import annotations

from appgit_core.models import (
    Application,
    BranchRecord,
    GitProfile,
    MergeStatus,
    RepositoryBinding,
    StatusReport,
)


# ---- Application Tests --------------------------------------------------------------------------------------


class TestApplication:
    """Tests for Application dataclass."""

    def test_unconnected(self):
        """Test an application without a repository."""
        app = Application(id="a", name="A")
        assert not app.is_git_connected
        assert not app.is_default

    def test_default_and_child(self):
        """Test default/child detection."""
        default = Application(id="a", name="A", git_application_id="a", branch_name="main")
        child = Application(id="b", name="A", git_application_id="a", branch_name="feature")
        assert default.is_default
        assert child.is_git_connected
        assert not child.is_default

    def test_round_trip_copies_artifact(self):
        """Test from_dict does not share the artifact with its input."""
        data = Application(id="a", name="A", artifact={"pages": [{"name": "Home"}]}).to_dict()
        app = Application.from_dict(data)
        app.artifact["pages"].append({"name": "Cart"})
        assert len(data["artifact"]["pages"]) == 1


# ---- Binding Tests ------------------------------------------------------------------------------------------


class TestRepositoryBinding:
    """Tests for RepositoryBinding dataclass."""

    def test_public_dict_hides_local_path(self):
        """Test local_path is not exposed."""
        binding = RepositoryBinding(
            application_id="a",
            remote_url="https://github.com/acme/shop.git",
            local_path="/srv/repos/a/shop",
            default_branch_name="main",
        )
        public = binding.to_public_dict()
        assert "local_path" not in public
        assert public["remote_url"] == "https://github.com/acme/shop.git"
        assert RepositoryBinding.from_dict(binding.to_dict()) == binding

    def test_branch_record_round_trip(self):
        """Test branch record serialization."""
        record = BranchRecord(application_id="b", branch_name="feature", default_application_id="a")
        assert BranchRecord.from_dict(record.to_dict()) == record


# ---- Profile Tests ------------------------------------------------------------------------------------------


class TestGitProfile:
    """Tests for GitProfile dataclass."""

    def test_complete(self):
        assert GitProfile(author_name="Alice", author_email="alice@example.com").is_complete

    def test_incomplete(self):
        assert not GitProfile(author_name="Alice").is_complete
        assert not GitProfile(author_name="  ", author_email="alice@example.com").is_complete

    def test_from_dict_defaults(self):
        profile = GitProfile.from_dict({"author_name": "Alice"})
        assert profile.author_email == ""
        assert profile.use_global_profile is False


# ---- Computed Value Tests -----------------------------------------------------------------------------------


class TestStatusReport:
    """Tests for StatusReport dataclass."""

    def test_clean(self):
        report = StatusReport(ahead_by=2)
        assert report.is_clean
        assert report.to_dict() == {
            "modifiedResources": [],
            "aheadBy": 2,
            "behindBy": 0,
            "isClean": True,
            "conflictingResources": [],
        }

    def test_conflicts_make_dirty(self):
        report = StatusReport(conflicting_resources=["application.json"])
        assert not report.is_clean
        assert report.to_dict()["isClean"] is False


class TestMergeStatus:
    """Tests for MergeStatus dataclass."""

    def test_defaults(self):
        status = MergeStatus()
        assert status.is_mergeable
        assert status.conflicting_files == set()

    def test_to_dict_sorts_files(self):
        status = MergeStatus(is_mergeable=False, conflicting_files={"pages/b.json", "pages/a.json"})
        assert status.to_dict()["conflicting_files"] == ["pages/a.json", "pages/b.json"]
