"""Local repository management for AppGit.

Wraps one Git working directory (one per connected application) with the
operations the managers need: branch refs, writing/reading the serialized
artifact tree, staging and committing, fetch/push, merges and the
read-only merge dry run. Structural changes run inside ``atomic()`` so a
failure or cancellation never leaves a partial commit or merge behind.

Execution Context:
    Library module - imported by binding, branch, commit, sync and merge managers

Dependencies:
    - git (GitPython): Git repository access
    - appgit_core.serializer: File tree type

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

import logging
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from datetime import timezone
from pathlib import Path
from urllib.parse import urlsplit
from urllib.parse import urlunsplit

from git import Repo
from git.cmd import Git
from git.exc import BadName
from git.exc import GitCommandError
from git.exc import InvalidGitRepositoryError
from git.exc import NoSuchPathError
from git.objects import Commit as GitCommit
from git.remote import PushInfo

from appgit_core.errors import AppGitError
from appgit_core.errors import BindingNotFound
from appgit_core.errors import InvalidBranchName
from appgit_core.errors import SerializationFailed
from appgit_core.serializer import FileTree


# ---- Constants ----------------------------------------------------------------------------------------------


GIT_DIR = ".git"
MERGE_HEAD_FILE = "MERGE_HEAD"
README_FILE = "README.md"

# Files that belong to the repository rather than to the artifact.
PRESERVED_FILES = frozenset({README_FILE, ".gitignore", ".gitattributes"})

NETWORK_ENV = {
    "GIT_TERMINAL_PROMPT": "0",
    "GCM_INTERACTIVE": "never",
    "GIT_HTTP_LOW_SPEED_LIMIT": "1",
    "GIT_HTTP_LOW_SPEED_TIME": "30",
}

logger = logging.getLogger(__name__)


# ---- URL Helpers --------------------------------------------------------------------------------------------


def insert_token(
        url: str,
        token: str | None,
) -> str:
    """Embed an access token into an HTTPS remote URL.

    Args:
        url: Remote URL.
        token: Access token (ignored for non-HTTP URLs).

    Returns:
        URL carrying the token as credentials.
    """
    if not token:
        return url
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        logger.warning("Ignoring access token for non-HTTP remote %s", url)
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, f"x-access-token:{token}@{host}", parts.path, parts.query, parts.fragment))


def ssh_command(
        key_path: str | None,
) -> str:
    """Non-interactive ssh command for git."""
    if key_path:
        return f"ssh -i {key_path} -o IdentitiesOnly=yes -o BatchMode=yes"
    return "ssh -o BatchMode=yes"


def is_ssh_url(
        url: str,
) -> bool:
    return url.startswith("ssh://") or ("@" in url and ":" in url.split("@", 1)[1] and "://" not in url)


def repo_name_from_url(
        url: str,
) -> str:
    """Repository name (last path component without .git)."""
    tail = url.rstrip("/").replace(":", "/").rsplit("/", 1)[-1]
    return tail[:-4] if tail.endswith(".git") else tail


def browser_url_from_url(
        url: str,
) -> str | None:
    """Derive the web URL of a hosted repository.

    Args:
        url: HTTPS or SSH remote URL.

    Returns:
        HTTPS URL without credentials or .git suffix, or None for local
        and file:// remotes.
    """
    if url.startswith("ssh://"):
        parts = urlsplit(url)
        host, path = parts.hostname, parts.path
    elif is_ssh_url(url):
        host, path = url.split("@", 1)[1].split(":", 1)
        path = "/" + path
    else:
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https"):
            return None
        host = parts.hostname
        if parts.port:
            host = f"{host}:{parts.port}"
        path = parts.path

    if not host:
        return None
    path = path.rstrip("/")
    if path.endswith(".git"):
        path = path[:-4]
    return f"https://{host}{path}"


# ---- Remote Probing -----------------------------------------------------------------------------------------


def list_remote_heads(
        url: str,
        ssh_key_path: str | None = None,
) -> dict[str, str]:
    """List branch heads of a remote without cloning it.

    Args:
        url: Remote URL (credentials embedded for HTTPS).
        ssh_key_path: Private key for SSH remotes.

    Returns:
        Mapping of branch name to commit SHA (empty for an empty repo).

    Raises:
        GitCommandError: If the remote is unreachable or refuses access.
    """
    env = dict(NETWORK_ENV)
    env["GIT_SSH_COMMAND"] = ssh_command(ssh_key_path)
    output = Git().ls_remote("--heads", url, env=env)
    heads = {}
    for line in output.splitlines():
        if not line.strip():
            continue
        sha, ref = line.split("\t", 1)
        heads[ref.replace("refs/heads/", "", 1)] = sha
    return heads


def validate_branch_name(
        name: str,
) -> str:
    """Validate a branch name with ``git check-ref-format``.

    Raises:
        InvalidBranchName: If git rejects the name.
    """
    if not name or not name.strip():
        msg = "Branch name must not be empty"
        raise InvalidBranchName(msg)
    try:
        Git().check_ref_format("--branch", name)
    except GitCommandError as ref_error:
        msg = f"Invalid branch name '{name}'"
        raise InvalidBranchName(msg) from ref_error
    return name


# ---- Repository Class ---------------------------------------------------------------------------------------


class Repository:
    """Manages the Git working copy of one application.

    Attributes:
        root: Working directory.
        remote_name: Name of the configured remote.
    """

    def __init__(
            self,
            root: Path | str,
            remote_name: str = "origin",
    ) -> None:
        """Initialize repository at given root path.

        Args:
            root: Working directory of the repository.
            remote_name: Name of the remote used for fetch/push.
        """
        self.root = Path(root).resolve()
        self.remote_name = remote_name
        self._repo: Repo | None = None

    # ---- Path Properties ------------------------------------------------------------------------------------

    @property
    def git_dir(
            self,
    ) -> Path:
        """Path to .git directory."""
        return self.root / GIT_DIR

    @property
    def merge_head_path(
            self,
    ) -> Path:
        """Path to MERGE_HEAD (present while a merge is in progress)."""
        return self.git_dir / MERGE_HEAD_FILE

    @property
    def repo(
            self,
    ) -> Repo:
        """Get the GitPython repository.

        Raises:
            BindingNotFound: If the working copy is missing or not a git repository.
        """
        if self._repo is None:
            try:
                self._repo = Repo(str(self.root))
            except (InvalidGitRepositoryError, NoSuchPathError) as open_error:
                msg = f"No git working copy at {self.root}"
                raise BindingNotFound(msg) from open_error
            self._repo.git.update_environment(**NETWORK_ENV)
        return self._repo

    # ---- Repository State -----------------------------------------------------------------------------------

    def exists(
            self,
    ) -> bool:
        """Check if the working copy exists.

        Returns:
            True if .git directory exists.
        """
        return self.git_dir.is_dir()

    def is_merging(
            self,
    ) -> bool:
        """Check if a merge is waiting for conflict resolution."""
        return self.merge_head_path.exists()

    def unmerged_paths(
            self,
    ) -> list[str]:
        """Paths with unresolved conflicts in the index."""
        return sorted(str(path) for path in self.repo.index.unmerged_blobs())

    # ---- Initialization -------------------------------------------------------------------------------------

    def init(
            self,
            default_branch: str,
    ) -> None:
        """Create an empty repository.

        Args:
            default_branch: Name of the initial branch.

        Raises:
            RuntimeError: If a repository already exists.
        """
        if self.exists():
            msg = f"Git repository already exists at {self.root}"
            raise RuntimeError(msg)
        self.root.mkdir(parents=True, exist_ok=True)
        self._repo = Repo.init(str(self.root), initial_branch=default_branch)
        self._repo.git.update_environment(**NETWORK_ENV)

    def clone(
            self,
            url: str,
            ssh_key_path: str | None = None,
    ) -> None:
        """Clone a remote into the working directory.

        Args:
            url: Remote URL (credentials embedded for HTTPS).
            ssh_key_path: Private key for SSH remotes.

        Raises:
            GitCommandError: If cloning fails.
        """
        env = dict(NETWORK_ENV)
        env["GIT_SSH_COMMAND"] = ssh_command(ssh_key_path)
        self.root.parent.mkdir(parents=True, exist_ok=True)
        self._repo = Repo.clone_from(url, str(self.root), origin=self.remote_name, env=env)
        self._repo.git.update_environment(**NETWORK_ENV)

    def configure(
            self,
            remote_url: str,
            ssh_key_path: str | None = None,
    ) -> None:
        """Point the remote at ``remote_url`` and set non-interactive ssh.

        Args:
            remote_url: Remote URL (credentials embedded for HTTPS).
            ssh_key_path: Private key for SSH remotes.
        """
        repo = self.repo
        if self.remote_name in [remote.name for remote in repo.remotes]:
            repo.remote(self.remote_name).set_url(remote_url)
        else:
            repo.create_remote(self.remote_name, remote_url)

        with repo.config_writer() as writer:
            writer.set_value("core", "sshCommand", ssh_command(ssh_key_path))

    def remove_remote(
            self,
    ) -> None:
        """Drop the remote configuration, if any."""
        repo = self.repo
        if self.remote_name in [remote.name for remote in repo.remotes]:
            repo.delete_remote(repo.remote(self.remote_name))

    def close(
            self,
    ) -> None:
        """Release the GitPython handle and its helper processes."""
        if self._repo is not None:
            self._repo.close()
            self._repo = None

    def destroy(
            self,
    ) -> None:
        """Delete the working copy from disk."""
        self.close()
        if self.root.exists():
            shutil.rmtree(self.root)

    # ---- Branch Operations ----------------------------------------------------------------------------------

    def current_branch(
            self,
    ) -> str | None:
        """Get name of the checked-out branch.

        Returns:
            Branch name or None if HEAD is detached.
        """
        head = self.repo.head
        if head.is_detached:
            return None
        return head.reference.name

    def head_commit(
            self,
    ) -> str | None:
        """Commit SHA of HEAD, or None on an unborn branch."""
        head = self.repo.head
        return head.commit.hexsha if head.is_valid() else None

    def list_branches(
            self,
    ) -> list[str]:
        """List all local branches.

        Returns:
            Sorted list of branch names.
        """
        return sorted(head.name for head in self.repo.heads)

    def list_remote_branches(
            self,
    ) -> list[str]:
        """List remote-tracking branches (without the remote prefix)."""
        output = self.repo.git.for_each_ref("--format=%(refname:strip=3)", f"refs/remotes/{self.remote_name}")
        return sorted(name for name in output.splitlines() if name and name != "HEAD")

    def branch_exists(
            self,
            name: str,
    ) -> bool:
        return name in [head.name for head in self.repo.heads]

    def remote_branch_exists(
            self,
            name: str,
    ) -> bool:
        return name in self.list_remote_branches()

    def branch_commit(
            self,
            name: str,
    ) -> str | None:
        """Get commit SHA of a local branch.

        Returns:
            Commit SHA or None if the branch doesn't exist.
        """
        if not self.branch_exists(name):
            return None
        return self.repo.heads[name].commit.hexsha

    def remote_commit(
            self,
            name: str,
    ) -> str | None:
        """Get commit SHA of a remote-tracking branch, if present."""
        if not self.remote_branch_exists(name):
            return None
        return self.repo.commit(f"refs/remotes/{self.remote_name}/{name}").hexsha

    def create_branch(
            self,
            name: str,
            source: str,
    ) -> str:
        """Create a local branch at the tip of ``source``.

        Args:
            name: New branch name.
            source: Existing branch name.

        Returns:
            Commit SHA the new branch points to.
        """
        head = self.repo.create_head(name, self.repo.heads[source].commit)
        return head.commit.hexsha

    def create_tracking_branch(
            self,
            name: str,
    ) -> str:
        """Create a local branch tracking ``<remote>/<name>``."""
        self.repo.git.branch("--track", name, f"{self.remote_name}/{name}")
        return self.repo.heads[name].commit.hexsha

    def delete_branch(
            self,
            name: str,
    ) -> None:
        """Delete a local branch.

        Raises:
            RuntimeError: If the branch is checked out.
        """
        if name == self.current_branch():
            msg = f"Cannot delete current branch '{name}'"
            raise RuntimeError(msg)
        self.repo.delete_head(name, force=True)

    def checkout(
            self,
            name: str,
    ) -> None:
        """Switch the working copy to a local branch.

        Raises:
            GitCommandError: If git refuses the switch.
        """
        if self.current_branch() != name:
            self.repo.git.checkout(name, "--")

    # ---- Tree Operations ------------------------------------------------------------------------------------

    def write_tree(
            self,
            tree: FileTree,
    ) -> None:
        """Replace the artifact files of the working copy with ``tree``.

        Files outside the tree are removed, except repository files such
        as the README.

        Args:
            tree: Mapping of POSIX path to file content.

        Raises:
            SerializationFailed: If a path leaves the working copy or points
                into the git directory.
        """
        root = self.root.resolve()
        for rel_path in tree:
            target = (root / rel_path).resolve()
            if root not in target.parents or target.relative_to(root).parts[0] == GIT_DIR:
                msg = f"Refusing to write '{rel_path}' outside the artifact files"
                raise SerializationFailed(msg)

        for path in sorted(self.root.rglob("*"), reverse=True):
            relative = path.relative_to(self.root)
            if relative.parts[0] == GIT_DIR or relative.as_posix() in PRESERVED_FILES:
                continue
            if path.is_dir():
                if not any(path.iterdir()):
                    path.rmdir()
            elif relative.as_posix() not in tree:
                path.unlink()

        for rel_path, content in tree.items():
            target = self.root / rel_path
            target.parent.mkdir(parents=True, exist_ok=True)
            if not target.exists() or target.read_bytes() != content:
                target.write_bytes(content)

    def read_tree(
            self,
            ref: str = "HEAD",
    ) -> FileTree:
        """Read the artifact files of a commit.

        Args:
            ref: Branch name, SHA or symbolic ref.

        Returns:
            Mapping of POSIX path to content (empty for an unborn branch).
        """
        try:
            commit = self.repo.commit(ref)
        except (BadName, ValueError, GitCommandError):
            return {}
        tree: FileTree = {}
        for item in commit.tree.traverse():
            if item.type != "blob" or item.path in PRESERVED_FILES:
                continue
            tree[item.path] = item.data_stream.read()
        return tree

    def merged_tree(
            self,
    ) -> FileTree:
        """Working copy contents during a conflicted merge.

        Cleanly merged files are read from disk; conflicted files fall back
        to our side of the merge (index stage 2), or are left out when our
        side deleted them.
        """
        conflicted = self.repo.index.unmerged_blobs()
        tree: FileTree = {}
        for path in self.root.rglob("*"):
            relative = path.relative_to(self.root)
            rel_path = relative.as_posix()
            if relative.parts[0] == GIT_DIR or rel_path in PRESERVED_FILES or rel_path in conflicted:
                continue
            if path.is_file():
                tree[rel_path] = path.read_bytes()
        for rel_path, stages in conflicted.items():
            for stage, blob in stages:
                if stage == 2:
                    tree[str(rel_path)] = blob.data_stream.read()
        return tree

    def write_file(
            self,
            rel_path: str,
            content: str,
    ) -> None:
        """Write a repository file (e.g. README.md)."""
        target = self.root / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    # ---- Commit Operations ----------------------------------------------------------------------------------

    def stage_tree(
            self,
            tree: FileTree,
    ) -> bool:
        """Write ``tree`` to the working copy and stage everything.

        Returns:
            True if the index now differs from HEAD.
        """
        self.write_tree(tree)
        self.stage_all()
        return self.has_staged_changes()

    def stage_all(
            self,
    ) -> None:
        """Stage additions, modifications and deletions."""
        self.repo.git.add(A=True)

    def has_staged_changes(
            self,
    ) -> bool:
        """Check if the index differs from HEAD."""
        if not self.repo.head.is_valid():
            return bool(self.repo.index.entries)
        return bool(self.repo.index.diff("HEAD"))

    def commit(
            self,
            message: str,
            author_name: str,
            author_email: str,
            allow_empty: bool = False,
    ) -> str:
        """Commit the index (concluding a pending merge, if any).

        Args:
            message: Commit message.
            author_name: Author and committer name.
            author_email: Author and committer email.
            allow_empty: Create the commit even without changes.

        Returns:
            SHA of the new commit.
        """
        identity = {
            "GIT_AUTHOR_NAME": author_name,
            "GIT_AUTHOR_EMAIL": author_email,
            "GIT_COMMITTER_NAME": author_name,
            "GIT_COMMITTER_EMAIL": author_email,
        }
        args = ["--no-verify", "-m", message]
        if allow_empty:
            args.insert(0, "--allow-empty")
        self.repo.git.commit(*args, env=identity)
        return self.repo.head.commit.hexsha

    def iter_history(
            self,
            ref: str,
    ) -> Iterator[GitCommit]:
        """Commits reachable from ``ref``, newest first.

        Ties on commit time keep children before parents (--date-order).
        """
        if not self.repo.heads[ref].is_valid():
            return iter(())
        return self.repo.iter_commits(ref, date_order=True)

    def count_commits(
            self,
            revision_range: str,
    ) -> int:
        return int(self.repo.git.rev_list("--count", revision_range))

    def ahead_behind(
            self,
            local: str,
            upstream: str,
    ) -> tuple[int, int]:
        """Count commits only on ``local`` and only on ``upstream``.

        Returns:
            Tuple of (ahead, behind).
        """
        output = self.repo.git.rev_list("--left-right", "--count", f"{local}...{upstream}")
        ahead, behind = output.split()
        return int(ahead), int(behind)

    # ---- Remote Operations ----------------------------------------------------------------------------------

    def fetch(
            self,
    ) -> None:
        """Fetch all branches from the remote, pruning deleted ones.

        Raises:
            GitCommandError: If the remote cannot be reached.
        """
        self.repo.git.fetch(self.remote_name, "--prune")

    def push(
            self,
            branch: str,
    ) -> PushInfo:
        """Push a local branch to the same name on the remote.

        Returns:
            PushInfo of the branch ref; inspect ``flags`` for rejection.

        Raises:
            GitCommandError: If the remote cannot be reached.
            AppGitError: If git reports no result for the ref.
        """
        refspec = f"refs/heads/{branch}:refs/heads/{branch}"
        results = self.repo.remote(self.remote_name).push(refspec=refspec)
        for info in results:
            if info.local_ref is None or info.local_ref.name == branch:
                return info
        msg = f"Push of '{branch}' returned no result"
        raise AppGitError(msg)

    # ---- Merge Operations -----------------------------------------------------------------------------------

    def merge(
            self,
            ref: str,
            message: str,
            author_name: str,
            author_email: str,
    ) -> list[str]:
        """Merge ``ref`` into the checked-out branch.

        Returns:
            Conflicting paths; empty when the merge (or fast-forward) succeeded.
            On conflicts the merge is left in progress.

        Raises:
            GitCommandError: If the merge fails for a reason other than conflicts.
        """
        identity = {
            "GIT_AUTHOR_NAME": author_name,
            "GIT_AUTHOR_EMAIL": author_email,
            "GIT_COMMITTER_NAME": author_name,
            "GIT_COMMITTER_EMAIL": author_email,
        }
        try:
            self.repo.git.merge("--no-edit", "-m", message, ref, env=identity)
        except GitCommandError:
            if not self.is_merging():
                raise
            return self.unmerged_paths()
        return []

    def abort_merge(
            self,
    ) -> None:
        """Abandon an in-progress merge."""
        if self.is_merging():
            self.repo.git.merge("--abort")

    def merge_dry_run(
            self,
            destination: str,
            source: str,
    ) -> list[str]:
        """Three-way merge in memory, without touching refs or the working copy.

        Args:
            destination: Branch (or SHA) merged into.
            source: Branch (or SHA) merged from.

        Returns:
            Paths that would conflict.

        Raises:
            AppGitError: If git cannot evaluate the merge.
        """
        status, stdout, stderr = self.repo.git.merge_tree(
            "--write-tree", "--name-only", "--no-messages", destination, source,
            with_extended_output=True,
            with_exceptions=False,
        )
        if status == 0:
            return []
        if status == 1:
            lines = stdout.splitlines()[1:]
            return sorted({line.strip() for line in lines if line.strip()})
        msg = f"Cannot evaluate merge of '{source}' into '{destination}': {stderr.strip()}"
        raise AppGitError(msg)

    # ---- Atomicity ------------------------------------------------------------------------------------------

    @contextmanager
    def atomic(
            self,
            *branches: str,
    ) -> Iterator[None]:
        """Restore refs, checked-out branch and working copy if the block raises.

        Covers cancellation too (KeyboardInterrupt and other BaseException).

        Args:
            *branches: Branches the block may move besides the checked-out
                one (merge destination, commit target, new tracking branch).
                Branches that don't exist yet are deleted again.
        """
        branch = self.current_branch()
        tip = self.head_commit()
        ref_tips = {name: self.branch_commit(name) for name in branches if name != branch}
        try:
            yield
        except BaseException:
            self._restore(branch, tip, ref_tips)
            raise

    def _restore(
            self,
            branch: str | None,
            tip: str | None,
            ref_tips: dict[str, str | None],
    ) -> None:
        git = self.repo.git
        if self.is_merging():
            git.merge("--abort")
        if branch and self.current_branch() != branch:
            git.checkout("-f", branch, "--")
        for name, ref_tip in ref_tips.items():
            if ref_tip:
                git.update_ref(f"refs/heads/{name}", ref_tip)
            elif self.branch_exists(name):
                git.update_ref("-d", f"refs/heads/{name}")
        if tip:
            git.reset("--hard", tip)
        else:
            git.read_tree("--empty")
        git.clean("-fd")
        logger.info("Restored %s to %s after failed operation", branch or "HEAD", tip[:8] if tip else "empty")


# ---- Module Functions ---------------------------------------------------------------------------------------


def commit_timestamp(
        commit: GitCommit,
) -> str:
    """ISO 8601 commit time in UTC."""
    return datetime.fromtimestamp(commit.committed_date, tz=timezone.utc).isoformat()
