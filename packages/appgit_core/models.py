"""Data models for AppGit version control.

Defines the records AppGit persists (applications, repository bindings,
branch records, git profiles) and the values it computes and returns
(commit log entries, merge status, pull/push results, status reports).

Execution Context:
    Library module - imported by other appgit_core modules

Dependencies:
    - dataclasses: Data class decorators
    - typing: Type annotations

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

import copy
from dataclasses import asdict
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from typing import Any


# ---- Constants ----------------------------------------------------------------------------------------------


DEFAULT_PROFILE_KEY = "default"


class PullPolicy(str, Enum):
    """What pull does with uncommitted local artifact changes."""

    AUTO_COMMIT = "auto_commit"
    REJECT = "reject"


# ---- Stored Records -----------------------------------------------------------------------------------------


@dataclass
class Application:
    """Application document with its artifact.

    Attributes:
        id: Application identifier.
        name: Display name.
        artifact: Application definition (pages, actions, datasources, ...).
        git_application_id: Default application id of the repository this
            document belongs to (None when not git-connected).
        branch_name: Branch this document materializes.
    """

    id: str
    name: str
    artifact: dict[str, Any] = field(default_factory=dict)
    git_application_id: str | None = None
    branch_name: str | None = None

    @property
    def is_git_connected(
            self,
    ) -> bool:
        """Check if the application is backed by a repository."""
        return self.git_application_id is not None

    @property
    def is_default(
            self,
    ) -> bool:
        """Check if this is the default application of its repository."""
        return self.git_application_id == self.id

    def to_dict(
            self,
    ) -> dict[str, Any]:
        """Convert application to dictionary for JSON serialization.

        Returns:
            Dictionary representation.
        """
        return asdict(self)

    @classmethod
    def from_dict(
            cls,
            data: dict[str, Any],
    ) -> Application:
        """Create application from dictionary.

        Args:
            data: Dictionary with application fields.

        Returns:
            Application instance.
        """
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            artifact=copy.deepcopy(data.get("artifact") or {}),
            git_application_id=data.get("git_application_id"),
            branch_name=data.get("branch_name"),
        )


@dataclass
class RepositoryBinding:
    """Mapping from a default application to its physical repository.

    Attributes:
        application_id: Default application id.
        remote_url: Remote repository URL as supplied by the user.
        local_path: Local working directory (never exposed to callers).
        default_branch_name: Name of the default branch.
        is_private: Whether the remote refuses anonymous reads.
        browser_url: Web URL of the repository, when derivable.
        repo_name: Repository name derived from the remote URL.
    """

    application_id: str
    remote_url: str
    local_path: str
    default_branch_name: str
    is_private: bool | None = None
    browser_url: str | None = None
    repo_name: str = ""

    def to_dict(
            self,
    ) -> dict[str, Any]:
        """Convert binding to dictionary.

        Returns:
            Dictionary representation.
        """
        return asdict(self)

    def to_public_dict(
            self,
    ) -> dict[str, Any]:
        """Dictionary representation without the local working directory."""
        data = self.to_dict()
        data.pop("local_path", None)
        return data

    @classmethod
    def from_dict(
            cls,
            data: dict[str, Any],
    ) -> RepositoryBinding:
        """Create binding from dictionary.

        Args:
            data: Dictionary with binding fields.

        Returns:
            RepositoryBinding instance.
        """
        return cls(**data)


@dataclass
class BranchRecord:
    """One branch of a connected repository and its application document.

    Attributes:
        application_id: Application document materializing the branch.
        branch_name: Branch name.
        default_application_id: Default application of the repository.
        is_default: Whether this is the repository's default branch.
        last_synced_commit: Commit last pushed to or pulled from the remote.
    """

    application_id: str
    branch_name: str
    default_application_id: str
    is_default: bool = False
    last_synced_commit: str | None = None

    def to_dict(
            self,
    ) -> dict[str, Any]:
        """Convert branch record to dictionary.

        Returns:
            Dictionary representation.
        """
        return asdict(self)

    @classmethod
    def from_dict(
            cls,
            data: dict[str, Any],
    ) -> BranchRecord:
        """Create branch record from dictionary.

        Args:
            data: Dictionary with branch record fields.

        Returns:
            BranchRecord instance.
        """
        return cls(**data)


@dataclass
class GitProfile:
    """Commit author identity.

    Attributes:
        author_name: Name written into commits.
        author_email: Email written into commits.
        use_global_profile: Defer to the user's global profile.
    """

    author_name: str = ""
    author_email: str = ""
    use_global_profile: bool = False

    @property
    def is_complete(
            self,
    ) -> bool:
        """Check if both name and email are set."""
        return bool(self.author_name.strip() and self.author_email.strip())

    def to_dict(
            self,
    ) -> dict[str, Any]:
        """Convert profile to dictionary.

        Returns:
            Dictionary representation.
        """
        return asdict(self)

    @classmethod
    def from_dict(
            cls,
            data: dict[str, Any],
    ) -> GitProfile:
        """Create profile from dictionary.

        Args:
            data: Dictionary with profile fields.

        Returns:
            GitProfile instance.
        """
        return cls(
            author_name=data.get("author_name", ""),
            author_email=data.get("author_email", ""),
            use_global_profile=bool(data.get("use_global_profile", False)),
        )


# ---- Requests -----------------------------------------------------------------------------------------------


@dataclass
class RemoteConfig:
    """Connect request.

    Attributes:
        remote_url: HTTPS or SSH URL of the remote repository.
        auth_token: Token injected into HTTPS URLs.
        ssh_key_path: Private key used for SSH URLs.
        default_branch_name: Default branch for a freshly initialized repo.
        profile: Author identity to store for this application.
    """

    remote_url: str
    auth_token: str | None = None
    ssh_key_path: str | None = None
    default_branch_name: str | None = None
    profile: GitProfile | None = None


@dataclass
class CommitSpec:
    """Commit request."""

    message: str
    allow_empty: bool = False
    push: bool = False


@dataclass
class BranchSpec:
    """Branch creation request."""

    branch_name: str


@dataclass
class MergeSpec:
    """Merge request: merge ``source_branch`` into ``destination_branch``."""

    source_branch: str
    destination_branch: str


# ---- Computed Values ----------------------------------------------------------------------------------------


@dataclass
class CommitRecord:
    """Commit as read from history.

    Attributes:
        hash: Full commit SHA.
        author_name: Commit author name.
        author_email: Commit author email.
        message: Commit message.
        timestamp: ISO 8601 commit time.
        branch_name: Branch the history was read from.
    """

    hash: str
    author_name: str
    author_email: str
    message: str
    timestamp: str
    branch_name: str

    def to_dict(
            self,
    ) -> dict[str, Any]:
        """Convert commit record to dictionary.

        Returns:
            Dictionary representation.
        """
        return asdict(self)


@dataclass
class BranchListEntry:
    """Branch as listed to callers."""

    name: str
    is_default: bool = False
    last_commit: str | None = None
    is_remote: bool = False

    def to_dict(
            self,
    ) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MergeStatus:
    """Mergeability of one branch into another.

    Attributes:
        is_mergeable: Whether the merge would complete without conflicts.
        conflicting_files: Paths that would conflict.
        ahead_count: Commits on the source missing from the destination.
        behind_count: Commits on the destination missing from the source.
        message: Human readable explanation.
    """

    is_mergeable: bool = True
    conflicting_files: set[str] = field(default_factory=set)
    ahead_count: int = 0
    behind_count: int = 0
    message: str = ""

    def to_dict(
            self,
    ) -> dict[str, Any]:
        """Convert merge status to dictionary.

        Returns:
            Dictionary representation with sorted conflicting files.
        """
        return {
            "is_mergeable": self.is_mergeable,
            "conflicting_files": sorted(self.conflicting_files),
            "ahead_count": self.ahead_count,
            "behind_count": self.behind_count,
            "message": self.message,
        }


@dataclass
class PullResult:
    """Result of a pull or merge.

    Attributes:
        merge_status: Outcome of integrating the other side.
        messages: Informational messages (or conflicting paths).
        is_rebased: Whether history was rewritten (always False: pull merges).
        application: Application document after the operation.
    """

    merge_status: MergeStatus = field(default_factory=MergeStatus)
    messages: list[str] = field(default_factory=list)
    is_rebased: bool = False
    application: Application | None = None


@dataclass
class PushResult:
    """Result of a push."""

    branch_name: str
    remote_commit: str
    pushed_commits: int = 0


@dataclass
class StatusReport:
    """Working state of a branch relative to its tip and its remote.

    Attributes:
        modified_resources: Artifact paths differing from the tip commit.
        ahead_by: Local commits not on the remote tracking ref.
        behind_by: Remote commits not on the local branch.
        conflicting_resources: Paths left conflicted by a pull.
    """

    modified_resources: list[str] = field(default_factory=list)
    ahead_by: int = 0
    behind_by: int = 0
    conflicting_resources: list[str] = field(default_factory=list)

    @property
    def is_clean(
            self,
    ) -> bool:
        """Check if nothing needs committing or resolving."""
        return not self.modified_resources and not self.conflicting_resources

    def to_dict(
            self,
    ) -> dict[str, Any]:
        """Structured status map handed to callers.

        Returns:
            Dictionary with camelCase keys.
        """
        return {
            "modifiedResources": list(self.modified_resources),
            "aheadBy": self.ahead_by,
            "behindBy": self.behind_by,
            "isClean": self.is_clean,
            "conflictingResources": list(self.conflicting_resources),
        }
