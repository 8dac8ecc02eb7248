"""Remote synchronization for AppGit.

Pushes branch commits to the remote and pulls remote commits into a
branch, re-importing the artifact afterwards.

Execution Context:
    Library module - imported by the service facade

Dependencies:
    - git (GitPython): Push results and command errors
    - appgit_core.commits: Implicit commits before a pull

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

import logging

from git.exc import GitCommandError
from git.remote import PushInfo

from appgit_core.binding import load_branch
from appgit_core.binding import pending_changes
from appgit_core.commits import CommitEngine
from appgit_core.errors import NetworkError
from appgit_core.errors import NonFastForward
from appgit_core.errors import SerializationFailed
from appgit_core.errors import UncommittedChangesConflict
from appgit_core.errors import classify_git_error
from appgit_core.models import MergeStatus
from appgit_core.models import PullPolicy
from appgit_core.models import PullResult
from appgit_core.models import PushResult
from appgit_core.serializer import export_artifact
from appgit_core.serializer import import_artifact

logger = logging.getLogger(__name__)


# ---- Constants ----------------------------------------------------------------------------------------------


AUTO_COMMIT_MESSAGE = "Auto-commit of local changes before pull"

_REJECTED_FLAGS = PushInfo.REJECTED | PushInfo.REMOTE_REJECTED

_REJECTED_MARKERS = ("[rejected]", "non-fast-forward", "fetch first")


# ---- Sync Coordinator ---------------------------------------------------------------------------------------


class SyncCoordinator:
    """Push and pull between a branch and its remote counterpart.

    Attributes:
        commits: Commit engine (shares the binding manager).
        pull_policy: Handling of uncommitted changes on pull.
    """

    def __init__(
            self,
            commits: CommitEngine,
            pull_policy: PullPolicy | None = None,
    ) -> None:
        self.commits = commits
        self.bindings = commits.bindings
        self.pull_policy = pull_policy or self.bindings.settings.pull_policy

    # ---- Push -----------------------------------------------------------------------------------------------

    def push(
            self,
            default_application_id: str,
            branch_name: str,
    ) -> PushResult:
        """Push the committed state of a branch.

        Uncommitted application changes are not pushed.

        Args:
            default_application_id: Default application of the repository.
            branch_name: Branch to push.

        Returns:
            PushResult with the pushed tip.

        Raises:
            BranchNotFound: If the branch doesn't exist.
            NonFastForward: If the remote has commits the branch lacks.
            AuthFailed: If the remote rejects the credentials.
            NetworkError: If the remote cannot be reached.
        """
        record, _ = load_branch(self.bindings.store, default_application_id, branch_name)

        with self.bindings.open(default_application_id) as (_, repo):
            tip = repo.branch_commit(branch_name)
            if repo.remote_branch_exists(branch_name):
                pushed_commits, _ = repo.ahead_behind(branch_name, f"{repo.remote_name}/{branch_name}")
            else:
                pushed_commits = repo.count_commits(branch_name)

            try:
                info = repo.push(branch_name)
            except GitCommandError as push_error:
                if any(marker in str(push_error) for marker in _REJECTED_MARKERS):
                    msg = f"Push of '{branch_name}' rejected: the remote has commits this branch does not have"
                    raise NonFastForward(msg) from push_error
                raise classify_git_error(push_error, "push") from push_error

            if info.flags & _REJECTED_FLAGS:
                msg = (f"Push of '{branch_name}' rejected: the remote has commits this branch "
                       f"does not have; pull first ({info.summary.strip()})")
                raise NonFastForward(msg)
            if info.flags & PushInfo.ERROR:
                msg = f"Push of '{branch_name}' failed: {info.summary.strip()}"
                raise NetworkError(msg)

        record.last_synced_commit = tip
        self.bindings.store.save_branch(record)

        logger.info("Pushed %s (%d commit(s)) to %s", branch_name, pushed_commits, tip[:8] if tip else "-")
        return PushResult(branch_name=branch_name, remote_commit=tip or "", pushed_commits=pushed_commits)

    # ---- Pull -----------------------------------------------------------------------------------------------

    def pull(
            self,
            default_application_id: str,
            branch_name: str,
            user_id: str,
    ) -> PullResult:
        """Fetch the remote and merge its branch into the local one.

        Uncommitted application changes are committed first or refused,
        depending on the pull policy. On conflicts the merge is left in
        progress: the application receives the cleanly merged resources
        (our side for conflicting ones) and the next commit on the branch
        concludes the merge.

        Args:
            default_application_id: Default application of the repository.
            branch_name: Branch to pull into.
            user_id: User whose git profile authors implicit and merge commits.

        Returns:
            PullResult; ``merge_status.is_mergeable`` is False on conflicts.

        Raises:
            BranchNotFound: If the branch doesn't exist.
            UncommittedChangesConflict: If changes are pending under the
                reject policy, or a merge already awaits resolution.
            AuthFailed: If the remote rejects the credentials.
            NetworkError: If the remote cannot be reached.
        """
        store = self.bindings.store
        serializer = self.bindings.serializer
        record, application = load_branch(store, default_application_id, branch_name)
        author = self.bindings.identity.resolve_profile(user_id, default_application_id)
        messages: list[str] = []

        with self.bindings.open(default_application_id) as (_, repo):
            if repo.is_merging():
                msg = f"Cannot pull: branch '{repo.current_branch()}' has unresolved conflicts"
                raise UncommittedChangesConflict(msg)

            changed = pending_changes(serializer, application, repo, branch_name)
            if changed and self.pull_policy is PullPolicy.REJECT:
                msg = f"Cannot pull '{branch_name}': {len(changed)} resource(s) have uncommitted changes"
                raise UncommittedChangesConflict(msg)

            try:
                repo.fetch()
            except GitCommandError as fetch_error:
                raise classify_git_error(fetch_error, "pull") from fetch_error

            with repo.atomic(branch_name):
                if changed:
                    sha = self.commits.commit_tree(
                        repo, export_artifact(serializer, application.artifact), AUTO_COMMIT_MESSAGE,
                        branch_name, author.author_name, author.author_email,
                    )
                    messages.append(f"Committed local changes as {sha[:8]}")

                if not repo.remote_branch_exists(branch_name):
                    messages.append(f"Branch '{branch_name}' does not exist on the remote; nothing to pull")
                    return PullResult(merge_status=MergeStatus(message=messages[-1]), messages=messages,
                                      application=application)

                upstream = f"{repo.remote_name}/{branch_name}"
                ahead, behind = repo.ahead_behind(branch_name, upstream)
                if behind == 0:
                    messages.append("Already up to date")
                    return PullResult(
                        merge_status=MergeStatus(ahead_count=0, behind_count=ahead, message=messages[-1]),
                        messages=messages,
                        application=application,
                    )

                repo.checkout(branch_name)
                conflicts = repo.merge(
                    upstream, f"Merge remote-tracking branch '{upstream}' into {branch_name}",
                    author.author_name, author.author_email,
                )
                if conflicts:
                    try:
                        application.artifact = import_artifact(serializer, repo.merged_tree())
                    except SerializationFailed:
                        logger.warning("Merged tree of %s is not importable; keeping application artifact",
                                       branch_name)
                    store.save_application(application)
                    logger.warning("Pull of %s left %d conflicting file(s)", branch_name, len(conflicts))
                    return PullResult(
                        merge_status=MergeStatus(
                            is_mergeable=False,
                            conflicting_files=set(conflicts),
                            ahead_count=behind,
                            behind_count=ahead,
                            message="Pull has conflicts; resolve them and commit to conclude the merge",
                        ),
                        messages=conflicts,
                        application=application,
                    )

                application.artifact = import_artifact(serializer, repo.read_tree(branch_name))
                store.save_application(application)
                fast_forward = ahead == 0

            record.last_synced_commit = repo.remote_commit(branch_name)
            store.save_branch(record)

        messages.append(f"{'Fast-forwarded' if fast_forward else 'Merged'} {behind} commit(s) from {upstream}")
        logger.info("Pulled %s: %s", branch_name, messages[-1])
        return PullResult(
            merge_status=MergeStatus(ahead_count=behind, behind_count=ahead, message=messages[-1]),
            messages=messages,
            application=application,
        )
