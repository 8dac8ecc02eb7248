"""Branch merge evaluation for AppGit.

Provides the read-only mergeability check, the all-or-nothing branch
merge and the per-branch status report. Conflicts are detected per file,
so each serialized resource (page, action, datasource...) is an atomic
unit for conflict detection.

Execution Context:
    Library module - imported by the service facade and CLI merge command

Dependencies:
    - appgit_core.binding: Repository access and lookups
    - appgit_core.serializer: Artifact import after a merge

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

import logging

from appgit_core.binding import RepositoryBindingManager
from appgit_core.binding import load_branch
from appgit_core.binding import pending_changes
from appgit_core.errors import BranchNotFound
from appgit_core.errors import InvalidStateError
from appgit_core.errors import SourceBranchNotFound
from appgit_core.errors import UncommittedChangesConflict
from appgit_core.models import Application
from appgit_core.models import BranchRecord
from appgit_core.models import MergeSpec
from appgit_core.models import MergeStatus
from appgit_core.models import PullResult
from appgit_core.models import StatusReport
from appgit_core.repository import Repository
from appgit_core.serializer import import_artifact

logger = logging.getLogger(__name__)

BranchState = tuple[BranchRecord, Application]


# ---- Merge Evaluator ----------------------------------------------------------------------------------------


class MergeEvaluator:
    """Evaluates and performs merges between branches of one repository.

    Attributes:
        bindings: Repository binding manager.
    """

    def __init__(
            self,
            bindings: RepositoryBindingManager,
    ) -> None:
        self.bindings = bindings

    def _load_pair(
            self,
            default_application_id: str,
            source_branch: str,
            destination_branch: str,
    ) -> tuple[BranchState, BranchState]:
        if source_branch == destination_branch:
            msg = f"Cannot merge branch '{source_branch}' into itself"
            raise InvalidStateError(msg)
        try:
            source = load_branch(self.bindings.store, default_application_id, source_branch)
        except BranchNotFound as lookup_error:
            msg = f"Source branch '{source_branch}' not found"
            raise SourceBranchNotFound(msg) from lookup_error
        destination = load_branch(self.bindings.store, default_application_id, destination_branch)
        return source, destination

    def _dirty_branches(
            self,
            repo: Repository,
            *branches: BranchState,
    ) -> list[str]:
        return [
            record.branch_name
            for record, application in branches
            if pending_changes(self.bindings.serializer, application, repo, record.branch_name)
        ]

    # ---- Mergeability ---------------------------------------------------------------------------------------

    def is_branch_mergeable(
            self,
            default_application_id: str,
            source_branch: str,
            destination_branch: str,
    ) -> MergeStatus:
        """Check whether ``source_branch`` merges cleanly into ``destination_branch``.

        Runs entirely in memory: refs, index and working copy are untouched.

        Args:
            default_application_id: Default application of the repository.
            source_branch: Branch to merge from.
            destination_branch: Branch to merge into.

        Returns:
            MergeStatus with conflicting files and ahead/behind counts.

        Raises:
            SourceBranchNotFound: If the source branch doesn't exist.
            BranchNotFound: If the destination branch doesn't exist.
        """
        source, destination = self._load_pair(default_application_id, source_branch, destination_branch)

        with self.bindings.open(default_application_id) as (_, repo):
            ahead = repo.count_commits(f"{destination_branch}..{source_branch}")
            behind = repo.count_commits(f"{source_branch}..{destination_branch}")

            dirty = self._dirty_branches(repo, source, destination)
            if dirty:
                return MergeStatus(
                    is_mergeable=False,
                    ahead_count=ahead,
                    behind_count=behind,
                    message=f"Uncommitted changes on {', '.join(repr(name) for name in dirty)}; commit them first",
                )

            if ahead == 0:
                return MergeStatus(ahead_count=0, behind_count=behind, message="Already up to date")

            conflicts = repo.merge_dry_run(destination_branch, source_branch)

        if conflicts:
            logger.debug("Merge %s -> %s would conflict on %s", source_branch, destination_branch, conflicts)
            return MergeStatus(
                is_mergeable=False,
                conflicting_files=set(conflicts),
                ahead_count=ahead,
                behind_count=behind,
                message=f"Merge would conflict in {len(conflicts)} file(s)",
            )
        return MergeStatus(
            ahead_count=ahead,
            behind_count=behind,
            message="Branches can be merged without conflicts",
        )

    # ---- Merge ----------------------------------------------------------------------------------------------

    def merge_branch(
            self,
            default_application_id: str,
            merge_spec: MergeSpec,
            user_id: str,
    ) -> PullResult:
        """Merge one branch into another, all or nothing.

        On conflicts the merge is aborted and the destination tip stays
        where it was.

        Args:
            default_application_id: Default application of the repository.
            merge_spec: Source and destination branches.
            user_id: User whose git profile authors the merge commit.

        Returns:
            PullResult with the merge status and the destination application.

        Raises:
            SourceBranchNotFound: If the source branch doesn't exist.
            BranchNotFound: If the destination branch doesn't exist.
            UncommittedChangesConflict: If either branch has uncommitted
                changes or a merge awaits resolution.
        """
        source_branch = merge_spec.source_branch
        destination_branch = merge_spec.destination_branch
        source, destination = self._load_pair(default_application_id, source_branch, destination_branch)
        _, destination_app = destination
        author = self.bindings.identity.resolve_profile(user_id, default_application_id)

        with self.bindings.open(default_application_id) as (_, repo):
            if repo.is_merging():
                msg = f"Cannot merge: branch '{repo.current_branch()}' has unresolved conflicts"
                raise UncommittedChangesConflict(msg)
            dirty = self._dirty_branches(repo, source, destination)
            if dirty:
                msg = f"Cannot merge: uncommitted changes on {', '.join(repr(name) for name in dirty)}"
                raise UncommittedChangesConflict(msg)

            ahead = repo.count_commits(f"{destination_branch}..{source_branch}")
            behind = repo.count_commits(f"{source_branch}..{destination_branch}")
            if ahead == 0:
                status = MergeStatus(ahead_count=0, behind_count=behind, message="Already up to date")
                return PullResult(merge_status=status, messages=[status.message], application=destination_app)

            original_tip = repo.branch_commit(destination_branch)
            with repo.atomic(destination_branch):
                repo.checkout(destination_branch)
                conflicts = repo.merge(
                    source_branch, f"Merge branch '{source_branch}' into {destination_branch}",
                    author.author_name, author.author_email,
                )
                if conflicts:
                    repo.abort_merge()
                    status = MergeStatus(
                        is_mergeable=False,
                        conflicting_files=set(conflicts),
                        ahead_count=ahead,
                        behind_count=behind,
                        message=f"Merge aborted: {len(conflicts)} conflicting file(s)",
                    )
                    logger.warning("Merge %s -> %s aborted on conflicts: %s",
                                   source_branch, destination_branch, conflicts)
                    return PullResult(merge_status=status, messages=conflicts, application=destination_app)

                destination_app.artifact = import_artifact(
                    self.bindings.serializer, repo.read_tree(destination_branch),
                )
                self.bindings.store.save_application(destination_app)
                new_tip = repo.branch_commit(destination_branch)

        status = MergeStatus(ahead_count=ahead, behind_count=behind, message="Merge completed successfully")
        result = PullResult(merge_status=status, application=destination_app)
        result.messages = format_merge_summary(result).splitlines()
        logger.info("Merged %s into %s (%s -> %s)", source_branch, destination_branch,
                    original_tip[:8] if original_tip else "-", new_tip[:8] if new_tip else "-")
        return result

    # ---- Status ---------------------------------------------------------------------------------------------

    def status(
            self,
            default_application_id: str,
            branch_name: str,
    ) -> StatusReport:
        """Working state of a branch.

        Modified resources are computed by exporting the branch application
        and comparing it with the tip tree in memory.

        Args:
            default_application_id: Default application of the repository.
            branch_name: Branch to inspect.

        Returns:
            StatusReport (``to_dict()`` gives the structured status map).

        Raises:
            BranchNotFound: If the branch doesn't exist.
        """
        _, application = load_branch(self.bindings.store, default_application_id, branch_name)

        with self.bindings.open(default_application_id) as (_, repo):
            modified = pending_changes(self.bindings.serializer, application, repo, branch_name)

            if repo.remote_branch_exists(branch_name):
                ahead, behind = repo.ahead_behind(branch_name, f"{repo.remote_name}/{branch_name}")
            else:
                ahead, behind = repo.count_commits(branch_name), 0

            conflicting = []
            if repo.is_merging() and repo.current_branch() == branch_name:
                conflicting = repo.unmerged_paths()

        return StatusReport(
            modified_resources=modified,
            ahead_by=ahead,
            behind_by=behind,
            conflicting_resources=conflicting,
        )


# ---- Formatting Functions -----------------------------------------------------------------------------------


def format_merge_summary(
        result: PullResult,
) -> str:
    """Format a merge or pull result as human-readable summary.

    Args:
        result: PullResult object.

    Returns:
        Formatted string summary.
    """
    status = result.merge_status
    lines = []

    if status.is_mergeable:
        lines.append(status.message or "Merge completed successfully.")
    else:
        lines.append(f"Merge has {len(status.conflicting_files)} conflict(s).")

    if status.ahead_count:
        lines.append(f"Incoming commits: {status.ahead_count}")
    if status.behind_count:
        lines.append(f"Commits only on destination: {status.behind_count}")

    if status.conflicting_files:
        lines.append("Conflicts:")
        for path in sorted(status.conflicting_files):
            lines.append(f"  ! {path}")

    return "\n".join(lines)
