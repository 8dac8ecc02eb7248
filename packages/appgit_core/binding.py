"""Repository binding for AppGit.

Owns the mapping from a default application to its physical repository
(working directory + remote), and the keyed lookup from
``(default application, branch)`` to the application document that
materializes the branch.

Execution Context:
    Library module - imported by the service facade and other managers

Dependencies:
    - git (GitPython): Remote probing errors
    - appgit_core.repository: Working copy operations
    - appgit_core.store: Binding and branch record persistence

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from git.exc import GitCommandError

from appgit_core.config import Settings
from appgit_core.diff import diff_trees
from appgit_core.errors import AlreadyConnected
from appgit_core.errors import ApplicationNotFound
from appgit_core.errors import BindingNotFound
from appgit_core.errors import BranchNotFound
from appgit_core.errors import InvalidStateError
from appgit_core.errors import classify_git_error
from appgit_core.identity import IdentityStore
from appgit_core.models import Application
from appgit_core.models import BranchRecord
from appgit_core.models import RemoteConfig
from appgit_core.models import RepositoryBinding
from appgit_core.repository import README_FILE
from appgit_core.repository import Repository
from appgit_core.repository import browser_url_from_url
from appgit_core.repository import insert_token
from appgit_core.repository import is_ssh_url
from appgit_core.repository import list_remote_heads
from appgit_core.repository import repo_name_from_url
from appgit_core.repository import validate_branch_name
from appgit_core.serializer import ArtifactSerializer
from appgit_core.serializer import export_artifact
from appgit_core.store import DocumentStore

logger = logging.getLogger(__name__)


# ---- Constants ----------------------------------------------------------------------------------------------


INITIAL_COMMIT_MESSAGE = "Initial commit of application state"

MUTABLE_METADATA_FIELDS = frozenset({"default_branch_name", "browser_url", "is_private"})

README_TEMPLATE = """# {name}

This repository holds the definition of the application **{name}**.

It is managed by AppGit: every branch is a working copy of the application,
and files are regenerated on each commit.

Open the application: {link}
"""


# ---- Lookup Functions ---------------------------------------------------------------------------------------


def load_application(
        store: DocumentStore,
        application_id: str,
) -> Application:
    """Load an application document.

    Raises:
        ApplicationNotFound: If no such document exists.
    """
    application = store.get_application(application_id)
    if application is None:
        msg = f"Application '{application_id}' not found"
        raise ApplicationNotFound(msg)
    return application


def resolve_default_id(
        store: DocumentStore,
        application_id: str,
) -> str:
    """Default application id of the repository an application belongs to.

    Raises:
        ApplicationNotFound: If the application doesn't exist.
        BindingNotFound: If the application is not git-connected.
    """
    application = load_application(store, application_id)
    if not application.git_application_id:
        msg = f"Application '{application_id}' is not connected to git"
        raise BindingNotFound(msg)
    return application.git_application_id


def load_branch(
        store: DocumentStore,
        default_application_id: str,
        branch_name: str,
) -> tuple[BranchRecord, Application]:
    """Branch record and application document of a branch.

    Raises:
        BranchNotFound: If the repository has no record for the branch.
    """
    record = store.get_branch(default_application_id, branch_name)
    if record is None:
        msg = f"Branch '{branch_name}' not found"
        raise BranchNotFound(msg)
    application = store.get_application(record.application_id)
    if application is None:
        msg = f"Application document for branch '{branch_name}' is missing"
        raise BranchNotFound(msg)
    return record, application


def pending_changes(
        serializer: ArtifactSerializer,
        application: Application,
        repo: Repository,
        branch_name: str,
) -> list[str]:
    """Artifact paths where an application differs from its branch tip.

    Compared in memory; the working copy is not touched.
    """
    return diff_trees(export_artifact(serializer, application.artifact), repo.read_tree(branch_name))


# ---- Binding Manager ----------------------------------------------------------------------------------------


class RepositoryBindingManager:
    """Connects, describes and detaches application repositories.

    Attributes:
        store: Document store.
        serializer: Artifact serializer.
        identity: Identity store for commit authors.
        settings: Runtime settings.
    """

    def __init__(
            self,
            store: DocumentStore,
            serializer: ArtifactSerializer,
            identity: IdentityStore,
            settings: Settings,
    ) -> None:
        self.store = store
        self.serializer = serializer
        self.identity = identity
        self.settings = settings

    # ---- Lookup ---------------------------------------------------------------------------------------------

    def get_binding(
            self,
            default_application_id: str,
    ) -> RepositoryBinding:
        """Load the binding of a default application.

        Raises:
            BindingNotFound: If the application is not connected.
        """
        binding = self.store.get_binding(default_application_id)
        if binding is None:
            msg = f"Application '{default_application_id}' is not connected to git"
            raise BindingNotFound(msg)
        return binding

    def get_metadata(
            self,
            application_id: str,
    ) -> RepositoryBinding:
        """Binding of the repository an application (default or child) belongs to."""
        return self.get_binding(resolve_default_id(self.store, application_id))

    @contextmanager
    def open(
            self,
            default_application_id: str,
    ) -> Iterator[tuple[RepositoryBinding, Repository]]:
        """Open the working copy of a connected application.

        A fresh GitPython handle is used per operation and closed afterwards.

        Raises:
            BindingNotFound: If unconnected or the working copy is missing.
        """
        binding = self.get_binding(default_application_id)
        repo = Repository(binding.local_path, remote_name=self.settings.remote_name)
        if not repo.exists():
            msg = f"Working copy of application '{default_application_id}' is missing"
            raise BindingNotFound(msg)
        try:
            yield binding, repo
        finally:
            repo.close()

    # ---- Connect --------------------------------------------------------------------------------------------

    def connect(
            self,
            application_id: str,
            remote_config: RemoteConfig,
            origin: str,
            user_id: str,
    ) -> Application:
        """Bind an application to a remote repository.

        Args:
            application_id: Application to connect (becomes the default application).
            remote_config: Remote URL, credentials, default branch and profile.
            origin: Base URL of the application host, linked from the README.
            user_id: User performing the connect (commit author).

        Returns:
            The connected default application.

        Raises:
            AlreadyConnected: If the application already has a binding.
            ProfileNotConfigured: If no author identity resolves.
            InvalidCredentials: If the remote rejects the credentials.
            RemoteUnreachable: If the remote cannot be reached.
        """
        application = load_application(self.store, application_id)
        if application.is_git_connected or self.store.get_binding(application_id):
            msg = f"Application '{application_id}' is already connected to git"
            raise AlreadyConnected(msg)

        if remote_config.profile is not None:
            self.identity.upsert_profile(user_id, remote_config.profile, application_id=application_id)
        author = self.identity.resolve_profile(user_id, application_id)

        remote_url = remote_config.remote_url.strip()
        auth_url = insert_token(remote_url, remote_config.auth_token)
        try:
            remote_heads = list_remote_heads(auth_url, remote_config.ssh_key_path)
        except GitCommandError as probe_error:
            raise classify_git_error(probe_error, "connect", connect=True) from probe_error

        repo_name = repo_name_from_url(remote_url) or application_id
        repo = Repository(
            self.settings.repo_root / application_id / repo_name,
            remote_name=self.settings.remote_name,
        )
        if repo.root.exists():
            logger.warning("Removing stale working copy at %s", repo.root)
            repo.destroy()

        record: BranchRecord | None = None
        try:
            if remote_heads:
                repo.clone(auth_url, remote_config.ssh_key_path)
                default_branch = repo.current_branch() or sorted(remote_heads)[0]
                last_synced = repo.head_commit()
            else:
                default_branch = validate_branch_name(
                    remote_config.default_branch_name or self.settings.default_branch
                )
                repo.init(default_branch)
                last_synced = None
            repo.configure(auth_url, remote_config.ssh_key_path)

            if not (repo.root / README_FILE).exists():
                link = f"{origin.rstrip('/')}/applications/{application_id}" if origin else application_id
                repo.write_file(README_FILE, README_TEMPLATE.format(name=application.name, link=link))

            tree = export_artifact(self.serializer, application.artifact)
            repo.stage_tree(tree)
            repo.commit(INITIAL_COMMIT_MESSAGE, author.author_name, author.author_email, allow_empty=True)

            binding = RepositoryBinding(
                application_id=application_id,
                remote_url=remote_url,
                local_path=str(repo.root),
                default_branch_name=default_branch,
                is_private=self._detect_private(remote_url, remote_config),
                browser_url=browser_url_from_url(remote_url),
                repo_name=repo_name,
            )
            self.store.save_binding(binding)
            record = self.store.save_branch(BranchRecord(
                application_id=application_id,
                branch_name=default_branch,
                default_application_id=application_id,
                is_default=True,
                last_synced_commit=last_synced,
            ))

            application.git_application_id = application_id
            application.branch_name = default_branch
            self.store.save_application(application)

        except BaseException:
            if record is not None:
                self.store.delete_branch(application_id, record.branch_name)
            self.store.delete_binding(application_id)
            repo.destroy()
            raise

        logger.info("Connected application %s to %s (branch %s)", application_id, remote_url, default_branch)
        return application

    def _detect_private(
            self,
            remote_url: str,
            remote_config: RemoteConfig,
    ) -> bool | None:
        """Probe the remote without credentials.

        Returns:
            True if anonymous access fails, False if it works, None when
            unknown (SSH remotes always need a key).
        """
        if is_ssh_url(remote_url):
            return None
        if not remote_config.auth_token:
            return False
        try:
            list_remote_heads(remote_url)
        except GitCommandError:
            return True
        return False

    # ---- Metadata -------------------------------------------------------------------------------------------

    def update_metadata(
            self,
            application_id: str,
            metadata: dict[str, Any],
    ) -> Application:
        """Update binding fields without touching repository contents.

        Args:
            application_id: Default (or child) application id.
            metadata: Fields to change (default_branch_name, browser_url, is_private).

        Returns:
            The default application.

        Raises:
            BindingNotFound: If the application is not connected.
            BranchNotFound: If the new default branch has no branch record.
            ValueError: If an unknown or immutable field is given.
        """
        default_id = resolve_default_id(self.store, application_id)
        binding = self.get_binding(default_id)

        unknown = set(metadata) - MUTABLE_METADATA_FIELDS
        if unknown:
            msg = f"Cannot update binding fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        new_default = metadata.get("default_branch_name")
        if new_default and new_default != binding.default_branch_name:
            record, _ = load_branch(self.store, default_id, new_default)
            if record.application_id != default_id:
                # The default application always materializes the default branch.
                old_record, _ = load_branch(self.store, default_id, binding.default_branch_name)
                self._swap_branch_documents(default_id, old_record, record)
            record.is_default = True
            record.application_id = default_id
            self.store.save_branch(record)

        for key, value in metadata.items():
            setattr(binding, key, value)
        self.store.save_binding(binding)

        logger.info("Updated git metadata of application %s: %s", default_id, sorted(metadata))
        return load_application(self.store, default_id)

    def _swap_branch_documents(
            self,
            default_id: str,
            old_default: BranchRecord,
            new_default: BranchRecord,
    ) -> None:
        default_app = load_application(self.store, default_id)
        child_app = load_application(self.store, new_default.application_id)

        default_app.artifact, child_app.artifact = child_app.artifact, default_app.artifact
        default_app.branch_name, child_app.branch_name = new_default.branch_name, old_default.branch_name
        self.store.save_application(default_app)
        self.store.save_application(child_app)

        old_default.application_id = child_app.id
        old_default.is_default = False
        self.store.save_branch(old_default)

    # ---- Detach ---------------------------------------------------------------------------------------------

    def detach(
            self,
            application_id: str,
    ) -> Application:
        """Remove the remote association and delete the working copy.

        Child applications become orphaned stubs: their artifact is kept but
        they are no longer git-backed. The remote repository is untouched.

        Args:
            application_id: Default (or child) application id.

        Returns:
            The default application, now unconnected.

        Raises:
            InvalidStateError: If the application is not connected.
        """
        application = load_application(self.store, application_id)
        default_id = application.git_application_id
        binding = self.store.get_binding(default_id) if default_id else None
        if binding is None:
            msg = f"Cannot detach application '{application_id}': it is not connected to git"
            raise InvalidStateError(msg)

        repo = Repository(binding.local_path, remote_name=self.settings.remote_name)
        if repo.exists():
            repo.remove_remote()
        repo.destroy()

        for record in self.store.list_branch_records(default_id):
            self.store.delete_branch(default_id, record.branch_name)

        default_app = None
        for document in self.store.list_applications(default_id):
            document.git_application_id = None
            document.branch_name = None
            self.store.save_application(document)
            if document.id == default_id:
                default_app = document
        self.store.delete_binding(default_id)

        logger.info("Detached application %s from %s", default_id, binding.remote_url)
        return default_app or load_application(self.store, default_id)
