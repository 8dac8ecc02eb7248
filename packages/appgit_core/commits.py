"""Commit engine for AppGit.

Turns the current artifact of a branch application into a commit and
reads branch history back as commit records.

Execution Context:
    Library module - imported by the service facade and sync coordinator

Dependencies:
    - appgit_core.binding: Repository access and lookups
    - appgit_core.identity: Commit author resolution

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

import logging

from appgit_core.binding import RepositoryBindingManager
from appgit_core.binding import load_branch
from appgit_core.errors import NOTHING_TO_COMMIT
from appgit_core.errors import UncommittedChangesConflict
from appgit_core.models import CommitRecord
from appgit_core.models import CommitSpec
from appgit_core.repository import Repository
from appgit_core.repository import commit_timestamp
from appgit_core.serializer import FileTree
from appgit_core.serializer import export_artifact

logger = logging.getLogger(__name__)


# ---- Commit Engine ------------------------------------------------------------------------------------------


class CommitEngine:
    """Commits branch applications and reads their history.

    Attributes:
        bindings: Repository binding manager.
    """

    def __init__(
            self,
            bindings: RepositoryBindingManager,
    ) -> None:
        self.bindings = bindings

    def commit(
            self,
            commit_spec: CommitSpec,
            default_application_id: str,
            branch_name: str,
            user_id: str,
    ) -> str:
        """Commit the artifact of a branch application.

        If a pull left the branch conflicted, the commit concludes that
        merge with the application's current artifact as the resolution.

        Args:
            commit_spec: Message and options.
            default_application_id: Default application of the repository.
            branch_name: Branch to commit on.
            user_id: User whose git profile becomes the author.

        Returns:
            SHA of the new commit, or NOTHING_TO_COMMIT when nothing changed.

        Raises:
            ValueError: If the message is empty.
            BranchNotFound: If the branch doesn't exist.
            ProfileNotConfigured: If no author identity resolves.
            SerializationFailed: If the artifact cannot be exported.
            UncommittedChangesConflict: If another branch has a merge awaiting resolution.
        """
        message = (commit_spec.message or "").strip()
        if not message:
            msg = "Commit message must not be empty"
            raise ValueError(msg)

        _, application = load_branch(self.bindings.store, default_application_id, branch_name)
        author = self.bindings.identity.resolve_profile(user_id, default_application_id)
        tree = export_artifact(self.bindings.serializer, application.artifact)

        with self.bindings.open(default_application_id) as (_, repo):
            return self.commit_tree(
                repo, tree, message, branch_name,
                author.author_name, author.author_email,
                allow_empty=commit_spec.allow_empty,
            )

    def commit_tree(
            self,
            repo: Repository,
            tree: FileTree,
            message: str,
            branch_name: str,
            author_name: str,
            author_email: str,
            allow_empty: bool = False,
    ) -> str:
        """Check out ``branch_name``, write ``tree`` and commit it.

        Returns:
            SHA of the new commit, or NOTHING_TO_COMMIT.
        """
        merging = repo.is_merging()
        if merging and repo.current_branch() != branch_name:
            msg = (f"Cannot commit on '{branch_name}': branch '{repo.current_branch()}' has unresolved "
                   f"conflicts; commit on it first")
            raise UncommittedChangesConflict(msg)

        with repo.atomic(branch_name):
            repo.checkout(branch_name)
            staged = repo.stage_tree(tree)
            if not staged and not merging and not allow_empty:
                logger.info("Nothing to commit on branch %s", branch_name)
                return NOTHING_TO_COMMIT
            sha = repo.commit(message, author_name, author_email, allow_empty=allow_empty or merging)

        if merging:
            logger.info("Concluded pending merge on %s with %s", branch_name, sha[:8])
        else:
            logger.info("Committed %s on %s", sha[:8], branch_name)
        return sha

    def history(
            self,
            default_application_id: str,
            branch_name: str,
    ) -> list[CommitRecord]:
        """Read the commit log of a branch.

        Args:
            default_application_id: Default application of the repository.
            branch_name: Branch to read.

        Returns:
            Commits newest first.

        Raises:
            BranchNotFound: If the branch doesn't exist.
        """
        load_branch(self.bindings.store, default_application_id, branch_name)

        with self.bindings.open(default_application_id) as (_, repo):
            if not repo.branch_exists(branch_name):
                return []
            return [
                CommitRecord(
                    hash=commit.hexsha,
                    author_name=commit.author.name or "",
                    author_email=commit.author.email or "",
                    message=commit.message.strip(),
                    timestamp=commit_timestamp(commit),
                    branch_name=branch_name,
                )
                for commit in repo.iter_history(branch_name)
            ]
