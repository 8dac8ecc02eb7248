"""Error taxonomy for AppGit.

Every failure surfaced by the core is an ``AppGitError``. Errors are grouped
by what the caller is expected to do about them: look something up again
(``NotFoundError``), act before retrying (``ConflictError``), retry later
(``AuthOrNetworkError`` and ``Busy``), or fix its own logic
(``InvalidStateError``).

Execution Context:
    Library module - imported by every core module

Dependencies:
    - git (GitPython): GitCommandError classification

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from git.exc import GitCommandError


# ---- Constants ----------------------------------------------------------------------------------------------


NOTHING_TO_COMMIT = "On current branch nothing to commit, working tree clean"

_AUTH_MARKERS = (
    "authentication failed",
    "permission denied",
    "could not read username",
    "could not read password",
    "invalid username or password",
    "access denied",
    "401",
    "403",
)

_NETWORK_MARKERS = (
    "could not resolve host",
    "connection refused",
    "connection timed out",
    "operation timed out",
    "network is unreachable",
    "failed to connect",
    "unable to access",
    "early eof",
    "the remote end hung up",
    "could not read from remote repository",
    "does not appear to be a git repository",
    "repository not found",
)


# ---- Base Classes -------------------------------------------------------------------------------------------


class AppGitError(RuntimeError):
    """Base class for all AppGit failures.

    Attributes:
        retryable: Whether repeating the same call later may succeed.
    """

    retryable = False


class NotFoundError(AppGitError):
    """A binding, branch, application or profile does not exist."""


class ConflictError(AppGitError):
    """The operation conflicts with repository state; caller action required."""


class AuthOrNetworkError(AppGitError):
    """The remote could not be reached or rejected the credentials."""

    retryable = True


class InvalidStateError(AppGitError):
    """The operation does not apply to the current state (caller logic error)."""


# ---- Not Found ----------------------------------------------------------------------------------------------


class ApplicationNotFound(NotFoundError):
    pass


class BindingNotFound(NotFoundError):
    pass


class BranchNotFound(NotFoundError):
    pass


class SourceBranchNotFound(BranchNotFound):
    pass


class ProfileNotConfigured(NotFoundError):
    pass


# ---- Conflicts ----------------------------------------------------------------------------------------------


class AlreadyConnected(ConflictError):
    pass


class BranchAlreadyExists(ConflictError):
    pass


class UncommittedChangesConflict(ConflictError):
    pass


class NonFastForward(ConflictError):
    pass


# ---- Auth / Network -----------------------------------------------------------------------------------------


class RemoteUnreachable(AuthOrNetworkError):
    pass


class InvalidCredentials(AuthOrNetworkError):
    pass


class AuthFailed(AuthOrNetworkError):
    pass


class NetworkError(AuthOrNetworkError):
    pass


# ---- Other Failures -----------------------------------------------------------------------------------------


class InvalidBranchName(InvalidStateError):
    pass


class SerializationFailed(AppGitError):
    """The artifact could not be exported or imported.

    Fatal for the operation, never for the repository.
    """


class Busy(AppGitError):
    """Another structural operation holds the lock for this branch."""

    retryable = True


class InvalidProfile(ValueError):
    """Profile fields are missing or malformed."""


# ---- Classification -----------------------------------------------------------------------------------------


def classify_git_error(
        error: GitCommandError,
        operation: str,
        connect: bool = False,
) -> AppGitError:
    """Map a failed git network command onto the error taxonomy.

    Args:
        error: Error raised by GitPython.
        operation: Short description used in the message (e.g. "push").
        connect: Use the connect-time error names (InvalidCredentials,
            RemoteUnreachable) instead of AuthFailed/NetworkError.

    Returns:
        AppGitError instance (not raised) chained by the caller.
    """
    stderr = str(getattr(error, "stderr", "") or error).strip()
    lowered = stderr.lower()

    if any(marker in lowered for marker in _AUTH_MARKERS):
        error_cls: type[AppGitError] = InvalidCredentials if connect else AuthFailed
        msg = f"{operation} failed: authentication rejected by remote ({stderr})"
    elif connect or any(marker in lowered for marker in _NETWORK_MARKERS):
        error_cls = RemoteUnreachable if connect else NetworkError
        msg = f"{operation} failed: remote unreachable ({stderr})"
    else:
        error_cls = AppGitError
        msg = f"{operation} failed: {stderr}"

    return error_cls(msg)
