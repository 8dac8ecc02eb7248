"""AppGit Core Library.

Provides git version control for applications: binding an application to
a remote repository, committing its artifact, branching, merging and
synchronizing with the remote.

Execution Context:
    Library package - imported by CLI and other applications

Dependencies:
    - GitPython: Git repository access
    - deepdiff: JSON comparison
    - python-dotenv: Settings from .env files

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

from appgit_core.errors import NOTHING_TO_COMMIT
from appgit_core.errors import AppGitError
from appgit_core.models import Application
from appgit_core.models import BranchSpec
from appgit_core.models import CommitSpec
from appgit_core.models import GitProfile
from appgit_core.models import MergeSpec
from appgit_core.models import RemoteConfig
from appgit_core.service import GitService

__version__ = "0.1.0"

__all__ = [
    "NOTHING_TO_COMMIT",
    "AppGitError",
    "Application",
    "BranchSpec",
    "CommitSpec",
    "GitProfile",
    "GitService",
    "MergeSpec",
    "RemoteConfig",
    "__version__",
]
