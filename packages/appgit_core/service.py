"""Git service facade for AppGit.

One method per version-control operation. Each call resolves the
repository of the given application, takes the locks the operation needs
(``Busy`` when they stay taken past the timeout), delegates to the
component managers and invalidates the branch listing cache after writes.

Execution Context:
    Library module - imported by the CLI and embedding services

Dependencies:
    - appgit_core.*: Component managers

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import ExitStack
from contextlib import contextmanager
from typing import Any

from appgit_core.binding import RepositoryBindingManager
from appgit_core.binding import load_application
from appgit_core.binding import load_branch
from appgit_core.binding import resolve_default_id
from appgit_core.branches import BranchManager
from appgit_core.commits import CommitEngine
from appgit_core.config import Settings
from appgit_core.config import load_settings
from appgit_core.diff import ArtifactDiff
from appgit_core.diff import diff_artifacts
from appgit_core.errors import NOTHING_TO_COMMIT
from appgit_core.identity import IdentityStore
from appgit_core.locks import LockRegistry
from appgit_core.merge import MergeEvaluator
from appgit_core.models import Application
from appgit_core.models import BranchListEntry
from appgit_core.models import BranchSpec
from appgit_core.models import CommitRecord
from appgit_core.models import CommitSpec
from appgit_core.models import GitProfile
from appgit_core.models import MergeSpec
from appgit_core.models import MergeStatus
from appgit_core.models import PullResult
from appgit_core.models import PushResult
from appgit_core.models import RemoteConfig
from appgit_core.serializer import ArtifactSerializer
from appgit_core.serializer import JsonTreeSerializer
from appgit_core.store import DocumentStore
from appgit_core.store import SqliteDocumentStore
from appgit_core.sync import SyncCoordinator

logger = logging.getLogger(__name__)


# ---- Git Service --------------------------------------------------------------------------------------------


class GitService:
    """Version-control operations for git-connected applications.

    Attributes:
        settings: Runtime settings.
        store: Document store.
        serializer: Artifact serializer.
        locks: Per-branch and per-repository lock registry.
    """

    def __init__(
            self,
            settings: Settings | None = None,
            store: DocumentStore | None = None,
            serializer: ArtifactSerializer | None = None,
    ) -> None:
        """Wire the component managers.

        Args:
            settings: Runtime settings (loaded from the environment if omitted).
            store: Document store (SQLite at ``settings.db_path`` if omitted).
            serializer: Artifact serializer (JsonTreeSerializer if omitted).
        """
        self.settings = settings or load_settings()
        self.store = store or SqliteDocumentStore(self.settings.db_path)
        self.serializer = serializer or JsonTreeSerializer()
        self.locks = LockRegistry(self.settings.lock_timeout)

        self.identity = IdentityStore(self.store)
        self.bindings = RepositoryBindingManager(self.store, self.serializer, self.identity, self.settings)
        self.branches = BranchManager(self.bindings)
        self.commits = CommitEngine(self.bindings)
        self.sync = SyncCoordinator(self.commits, self.settings.pull_policy)
        self.merges = MergeEvaluator(self.bindings)

    @contextmanager
    def _writing(
            self,
            default_application_id: str,
            operation: str,
            *branch_names: str,
            reading: tuple[str, ...] = (),
    ) -> Iterator[None]:
        """Hold write locks on ``branch_names``, read locks on ``reading`` and the repository lock."""
        with ExitStack() as stack:
            keys = sorted({(name, True) for name in branch_names} | {(name, False) for name in reading
                                                                       if name not in branch_names})
            for name, exclusive in keys:
                if exclusive:
                    stack.enter_context(self.locks.write(default_application_id, name, operation))
                else:
                    stack.enter_context(self.locks.read(default_application_id, name, operation))
            stack.enter_context(self.locks.repository(default_application_id, operation))
            try:
                yield
            finally:
                self.branches.cache.invalidate(default_application_id)

    @contextmanager
    def _reading(
            self,
            default_application_id: str,
            operation: str,
            *branch_names: str,
    ) -> Iterator[None]:
        with ExitStack() as stack:
            for name in sorted(set(branch_names)):
                stack.enter_context(self.locks.read(default_application_id, name, operation))
            yield

    # ---- Applications ---------------------------------------------------------------------------------------

    def get_application(
            self,
            application_id: str,
    ) -> Application:
        """Load an application document.

        Raises:
            ApplicationNotFound: If it doesn't exist.
        """
        return load_application(self.store, application_id)

    def save_application(
            self,
            application: Application,
    ) -> Application:
        """Store an application document (an edit of its artifact, typically)."""
        return self.store.save_application(application)

    def get_branch_application(
            self,
            application_id: str,
            branch_name: str,
    ) -> Application:
        """Application document materializing a branch.

        Raises:
            BindingNotFound: If the application is not connected.
            BranchNotFound: If the branch doesn't exist.
        """
        default_id = resolve_default_id(self.store, application_id)
        _, application = load_branch(self.store, default_id, branch_name)
        return application

    # ---- Identity -------------------------------------------------------------------------------------------

    def get_profiles(
            self,
            user_id: str,
    ) -> dict[str, GitProfile]:
        return self.identity.get_profiles(user_id)

    def resolve_profile(
            self,
            user_id: str,
            application_id: str | None = None,
            required: bool = True,
    ) -> GitProfile | None:
        return self.identity.resolve_profile(user_id, application_id, required)

    def upsert_profile(
            self,
            user_id: str,
            profile: GitProfile,
            is_default: bool = False,
            application_id: str | None = None,
    ) -> dict[str, GitProfile]:
        return self.identity.upsert_profile(user_id, profile, is_default, application_id)

    # ---- Repository Binding ---------------------------------------------------------------------------------

    def connect(
            self,
            application_id: str,
            remote_config: RemoteConfig,
            origin: str,
            user_id: str,
    ) -> Application:
        """Connect an application to a remote repository.

        Returns:
            The default application of the new repository.
        """
        with self.locks.repository(application_id, "connect"):
            application = self.bindings.connect(application_id, remote_config, origin, user_id)
        self.branches.cache.invalidate(application_id)
        return application

    def update_metadata(
            self,
            application_id: str,
            metadata: dict[str, Any],
    ) -> Application:
        default_id = resolve_default_id(self.store, application_id)
        with self._writing(default_id, "update metadata"):
            return self.bindings.update_metadata(default_id, metadata)

    def get_metadata(
            self,
            application_id: str,
    ) -> dict[str, Any]:
        """Binding of an application without local file paths."""
        return self.bindings.get_metadata(application_id).to_public_dict()

    def detach(
            self,
            application_id: str,
    ) -> Application:
        """Disconnect an application; its working copy is deleted."""
        default_id = self.get_application(application_id).git_application_id or application_id
        with self._writing(default_id, "detach"):
            application = self.bindings.detach(application_id)
        self.locks.forget(default_id)
        return application

    # ---- Branches -------------------------------------------------------------------------------------------

    def list_branches(
            self,
            application_id: str,
            ignore_cache: bool = False,
    ) -> list[BranchListEntry]:
        default_id = resolve_default_id(self.store, application_id)
        if not ignore_cache:
            cached = self.branches.cache.get(default_id)
            if cached is not None:
                return cached
        with self.locks.repository(default_id, "list branches"):
            return self.branches.list_branches(default_id, ignore_cache)

    def create_branch(
            self,
            default_application_id: str,
            branch_spec: BranchSpec,
            source_branch: str,
    ) -> Application:
        default_id = resolve_default_id(self.store, default_application_id)
        with self._writing(default_id, "create branch", branch_spec.branch_name, reading=(source_branch,)):
            return self.branches.create_branch(default_id, branch_spec, source_branch)

    def checkout_branch(
            self,
            default_application_id: str,
            branch_name: str,
            is_remote: bool = False,
    ) -> Application:
        default_id = resolve_default_id(self.store, default_application_id)
        local_name = branch_name
        if is_remote and branch_name.startswith(f"{self.settings.remote_name}/"):
            local_name = branch_name[len(self.settings.remote_name) + 1:]
        with self._writing(default_id, "checkout", local_name):
            return self.branches.checkout_branch(default_id, branch_name, is_remote)

    def delete_branch(
            self,
            default_application_id: str,
            branch_name: str,
    ) -> Application:
        default_id = resolve_default_id(self.store, default_application_id)
        with self._writing(default_id, "delete branch", branch_name):
            return self.branches.delete_branch(default_id, branch_name)

    # ---- Commits --------------------------------------------------------------------------------------------

    def commit(
            self,
            commit_spec: CommitSpec,
            default_application_id: str,
            branch_name: str,
            user_id: str,
    ) -> str:
        """Commit a branch application, pushing afterwards if requested.

        Returns:
            Commit SHA, or NOTHING_TO_COMMIT.
        """
        default_id = resolve_default_id(self.store, default_application_id)
        with self._writing(default_id, "commit", branch_name):
            sha = self.commits.commit(commit_spec, default_id, branch_name, user_id)
            if commit_spec.push and sha != NOTHING_TO_COMMIT:
                self.sync.push(default_id, branch_name)
        return sha

    def history(
            self,
            default_application_id: str,
            branch_name: str,
    ) -> list[CommitRecord]:
        default_id = resolve_default_id(self.store, default_application_id)
        with self._reading(default_id, "read history", branch_name):
            return self.commits.history(default_id, branch_name)

    # ---- Sync -----------------------------------------------------------------------------------------------

    def push(
            self,
            default_application_id: str,
            branch_name: str,
    ) -> PushResult:
        default_id = resolve_default_id(self.store, default_application_id)
        with self._writing(default_id, "push", branch_name):
            return self.sync.push(default_id, branch_name)

    def pull(
            self,
            default_application_id: str,
            branch_name: str,
            user_id: str,
    ) -> PullResult:
        default_id = resolve_default_id(self.store, default_application_id)
        with self._writing(default_id, "pull", branch_name):
            return self.sync.pull(default_id, branch_name, user_id)

    # ---- Merge ----------------------------------------------------------------------------------------------

    def is_branch_mergeable(
            self,
            application_id: str,
            source_branch: str,
            destination_branch: str,
    ) -> MergeStatus:
        default_id = resolve_default_id(self.store, application_id)
        with self._reading(default_id, "check mergeability", source_branch, destination_branch):
            return self.merges.is_branch_mergeable(default_id, source_branch, destination_branch)

    def merge_branch(
            self,
            application_id: str,
            merge_spec: MergeSpec,
            user_id: str,
    ) -> PullResult:
        default_id = resolve_default_id(self.store, application_id)
        with self._writing(default_id, "merge", merge_spec.destination_branch,
                           reading=(merge_spec.source_branch,)):
            return self.merges.merge_branch(default_id, merge_spec, user_id)

    def status(
            self,
            default_application_id: str,
            branch_name: str,
    ) -> dict[str, Any]:
        """Structured status map of a branch.

        Returns:
            Dictionary with modifiedResources, aheadBy, behindBy, isClean
            and conflictingResources.
        """
        default_id = resolve_default_id(self.store, default_application_id)
        with self._reading(default_id, "read status", branch_name):
            return self.merges.status(default_id, branch_name).to_dict()

    def compare_branches(
            self,
            application_id: str,
            source_branch: str,
            destination_branch: str,
    ) -> ArtifactDiff:
        """Resource-level diff between the applications of two branches.

        Args:
            application_id: Default (or child) application id.
            source_branch: Branch whose application is the new side.
            destination_branch: Branch whose application is the old side.

        Returns:
            ArtifactDiff of destination -> source.
        """
        default_id = resolve_default_id(self.store, application_id)
        _, source_app = load_branch(self.store, default_id, source_branch)
        _, destination_app = load_branch(self.store, default_id, destination_branch)
        return diff_artifacts(source_app.artifact, destination_app.artifact)

    # ---- Lifecycle ------------------------------------------------------------------------------------------

    def close(self) -> None:
        """Close the document store if it supports closing."""
        close = getattr(self.store, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> GitService:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
