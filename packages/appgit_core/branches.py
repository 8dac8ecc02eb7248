"""Branch management for AppGit.

Every branch of a connected repository is materialized by its own
application document: the default application for the default branch,
a child application for every other branch. This module creates, lists,
checks out and deletes branches, keeping git refs, branch records and
application documents aligned.

Execution Context:
    Library module - imported by the service facade

Dependencies:
    - git (GitPython): Fetch errors
    - appgit_core.binding: Repository access and lookups

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

import logging
import threading
import time
import uuid

from git.exc import GitCommandError

from appgit_core.binding import RepositoryBindingManager
from appgit_core.binding import load_application
from appgit_core.binding import load_branch
from appgit_core.binding import pending_changes
from appgit_core.binding import resolve_default_id
from appgit_core.errors import BranchAlreadyExists
from appgit_core.errors import BranchNotFound
from appgit_core.errors import InvalidStateError
from appgit_core.errors import SourceBranchNotFound
from appgit_core.errors import UncommittedChangesConflict
from appgit_core.errors import classify_git_error
from appgit_core.models import Application
from appgit_core.models import BranchListEntry
from appgit_core.models import BranchRecord
from appgit_core.models import BranchSpec
from appgit_core.repository import Repository
from appgit_core.repository import validate_branch_name
from appgit_core.serializer import ArtifactSerializer
from appgit_core.serializer import import_artifact
from appgit_core.store import DocumentStore

logger = logging.getLogger(__name__)


# ---- Branch Cache -------------------------------------------------------------------------------------------


class BranchCache:
    """Branch listings keyed by default application id, expiring after ``ttl`` seconds."""

    def __init__(
            self,
            ttl: float,
    ) -> None:
        self.ttl = ttl
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, list[BranchListEntry]]] = {}

    def get(
            self,
            default_application_id: str,
    ) -> list[BranchListEntry] | None:
        with self._lock:
            cached = self._entries.get(default_application_id)
            if cached is None:
                return None
            stored_at, entries = cached
            if time.monotonic() - stored_at > self.ttl:
                del self._entries[default_application_id]
                return None
            return list(entries)

    def put(
            self,
            default_application_id: str,
            entries: list[BranchListEntry],
    ) -> None:
        with self._lock:
            self._entries[default_application_id] = (time.monotonic(), list(entries))

    def invalidate(
            self,
            default_application_id: str,
    ) -> None:
        with self._lock:
            self._entries.pop(default_application_id, None)


# ---- Branch Manager -----------------------------------------------------------------------------------------


class BranchManager:
    """Creates, lists, checks out and deletes branches.

    Attributes:
        bindings: Repository binding manager.
        cache: Branch listing cache.
    """

    def __init__(
            self,
            bindings: RepositoryBindingManager,
    ) -> None:
        self.bindings = bindings
        self.cache = BranchCache(bindings.settings.branch_cache_ttl)

    @property
    def store(self) -> DocumentStore:
        return self.bindings.store

    @property
    def serializer(self) -> ArtifactSerializer:
        return self.bindings.serializer

    # ---- Listing --------------------------------------------------------------------------------------------

    def list_branches(
            self,
            application_id: str,
            ignore_cache: bool = False,
    ) -> list[BranchListEntry]:
        """List local and remote branches of a repository.

        Args:
            application_id: Default (or child) application id.
            ignore_cache: Fetch from the remote and rebuild the listing.

        Returns:
            Default branch first, then local branches by name, then
            remote-only branches as ``<remote>/<name>``.

        Raises:
            BindingNotFound: If the application is not connected.
            AuthFailed: If fetching is refused by the remote.
            NetworkError: If fetching cannot reach the remote.
        """
        default_id = resolve_default_id(self.store, application_id)

        if not ignore_cache:
            cached = self.cache.get(default_id)
            if cached is not None:
                logger.debug("Branch list cache hit for %s", default_id)
                return cached

        with self.bindings.open(default_id) as (binding, repo):
            if ignore_cache:
                try:
                    repo.fetch()
                except GitCommandError as fetch_error:
                    raise classify_git_error(fetch_error, "fetch") from fetch_error
            entries = self._collect(repo, binding.default_branch_name)

        self.cache.put(default_id, entries)
        return entries

    def _collect(
            self,
            repo: Repository,
            default_branch: str,
    ) -> list[BranchListEntry]:
        local = repo.list_branches()
        entries = []
        if default_branch in local:
            entries.append(BranchListEntry(
                name=default_branch,
                is_default=True,
                last_commit=repo.branch_commit(default_branch),
            ))
        for name in local:
            if name != default_branch:
                entries.append(BranchListEntry(name=name, last_commit=repo.branch_commit(name)))
        for name in repo.list_remote_branches():
            if name not in local:
                entries.append(BranchListEntry(
                    name=f"{repo.remote_name}/{name}",
                    last_commit=repo.remote_commit(name),
                    is_remote=True,
                ))
        return entries

    # ---- Create ---------------------------------------------------------------------------------------------

    def create_branch(
            self,
            default_application_id: str,
            branch_spec: BranchSpec,
            source_branch: str,
    ) -> Application:
        """Create a branch at the tip of ``source_branch``.

        The new branch gets a child application holding the artifact
        committed at the source tip, so checking the branch out later yields
        the same state. Uncommitted edits of the source application stay on
        the source.

        Args:
            default_application_id: Default application of the repository.
            branch_spec: Name of the new branch.
            source_branch: Existing local branch to branch from.

        Returns:
            The child application materializing the new branch.

        Raises:
            InvalidBranchName: If git rejects the name.
            BranchAlreadyExists: If the name exists locally or on the remote.
            SourceBranchNotFound: If the source branch doesn't exist.
            SerializationFailed: If the source tree cannot be imported.
        """
        name = validate_branch_name(branch_spec.branch_name.strip())

        with self.bindings.open(default_application_id) as (_, repo):
            if repo.branch_exists(name) or self.store.get_branch(default_application_id, name):
                msg = f"Branch '{name}' already exists"
                raise BranchAlreadyExists(msg)
            if repo.remote_branch_exists(name):
                msg = f"Branch '{name}' already exists on the remote; check it out instead"
                raise BranchAlreadyExists(msg)
            try:
                _, source_app = load_branch(self.store, default_application_id, source_branch)
            except BranchNotFound as lookup_error:
                msg = f"Source branch '{source_branch}' not found"
                raise SourceBranchNotFound(msg) from lookup_error
            if not repo.branch_exists(source_branch):
                msg = f"Source branch '{source_branch}' not found"
                raise SourceBranchNotFound(msg)

            artifact = import_artifact(self.serializer, repo.read_tree(source_branch))
            tip = repo.create_branch(name, source_branch)
            try:
                child = self.store.save_application(Application(
                    id=uuid.uuid4().hex,
                    name=source_app.name,
                    artifact=artifact,
                    git_application_id=default_application_id,
                    branch_name=name,
                ))
                self.store.save_branch(BranchRecord(
                    application_id=child.id,
                    branch_name=name,
                    default_application_id=default_application_id,
                ))
            except BaseException:
                repo.delete_branch(name)
                raise

        self.cache.invalidate(default_application_id)
        logger.info("Created branch %s from %s at %s", name, source_branch, tip[:8])
        return child

    # ---- Checkout -------------------------------------------------------------------------------------------

    def checkout_branch(
            self,
            default_application_id: str,
            branch_name: str,
            is_remote: bool = False,
    ) -> Application:
        """Check out a branch and load its tree into the branch application.

        Args:
            default_application_id: Default application of the repository.
            branch_name: Local branch name, or remote branch (with or
                without the ``<remote>/`` prefix) when ``is_remote``.
            is_remote: Create a local tracking branch first.

        Returns:
            Application materializing the branch.

        Raises:
            BranchNotFound: If the branch doesn't exist.
            BranchAlreadyExists: If a remote checkout collides with a local branch.
            UncommittedChangesConflict: If the branch application has
                uncommitted changes or a merge awaits resolution.
        """
        with self.bindings.open(default_application_id) as (binding, repo):
            if is_remote:
                prefix = f"{repo.remote_name}/"
                if branch_name.startswith(prefix):
                    branch_name = branch_name[len(prefix):]
                if repo.branch_exists(branch_name):
                    msg = f"Branch '{branch_name}' already exists locally"
                    raise BranchAlreadyExists(msg)
                if not repo.remote_branch_exists(branch_name):
                    msg = f"Remote branch '{prefix}{branch_name}' not found"
                    raise BranchNotFound(msg)
            elif not repo.branch_exists(branch_name):
                msg = f"Branch '{branch_name}' not found"
                raise BranchNotFound(msg)

            if repo.is_merging():
                msg = (f"Cannot checkout '{branch_name}': branch '{repo.current_branch()}' has unresolved "
                       f"conflicts; commit to conclude the merge first")
                raise UncommittedChangesConflict(msg)

            record = self.store.get_branch(default_application_id, branch_name)
            application = self.store.get_application(record.application_id) if record else None
            if application is not None and pending_changes(self.serializer, application, repo, branch_name):
                msg = f"Cannot checkout '{branch_name}': its application has uncommitted changes"
                raise UncommittedChangesConflict(msg)

            with repo.atomic(branch_name):
                if is_remote:
                    repo.create_tracking_branch(branch_name)
                repo.checkout(branch_name)
                artifact = import_artifact(self.serializer, repo.read_tree(branch_name))

                if application is None:
                    default_app = load_application(self.store, default_application_id)
                    application = Application(
                        id=uuid.uuid4().hex,
                        name=default_app.name,
                        git_application_id=default_application_id,
                        branch_name=branch_name,
                    )
                application.artifact = artifact
                self.store.save_application(application)
                if record is None:
                    self.store.save_branch(BranchRecord(
                        application_id=application.id,
                        branch_name=branch_name,
                        default_application_id=default_application_id,
                        is_default=branch_name == binding.default_branch_name,
                        last_synced_commit=repo.remote_commit(branch_name),
                    ))

        self.cache.invalidate(default_application_id)
        logger.info("Checked out branch %s of application %s", branch_name, default_application_id)
        return application

    # ---- Delete ---------------------------------------------------------------------------------------------

    def delete_branch(
            self,
            default_application_id: str,
            branch_name: str,
    ) -> Application:
        """Delete a local branch and its child application.

        Args:
            default_application_id: Default application of the repository.
            branch_name: Branch to delete.

        Returns:
            The default application.

        Raises:
            BranchNotFound: If the branch doesn't exist.
            InvalidStateError: If the branch is the default branch.
            UncommittedChangesConflict: If the branch has an unresolved merge.
        """
        record, application = load_branch(self.store, default_application_id, branch_name)
        if record.is_default:
            msg = f"Cannot delete default branch '{branch_name}'"
            raise InvalidStateError(msg)

        with self.bindings.open(default_application_id) as (binding, repo):
            current = repo.current_branch()
            if current == branch_name and repo.is_merging():
                msg = f"Cannot delete '{branch_name}' while its merge awaits resolution"
                raise UncommittedChangesConflict(msg)
            with repo.atomic():
                if current == branch_name:
                    repo.checkout(binding.default_branch_name)
                if repo.branch_exists(branch_name):
                    repo.delete_branch(branch_name)

        self.store.delete_branch(default_application_id, branch_name)
        self.store.delete_application(application.id)
        self.cache.invalidate(default_application_id)
        logger.info("Deleted branch %s of application %s", branch_name, default_application_id)
        return load_application(self.store, default_application_id)
