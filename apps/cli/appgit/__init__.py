"""AppGit CLI Application.

Command-line interface for git version control of applications.

Execution Context:
    CLI application - invoked from terminal

Dependencies:
    - click: CLI framework
    - rich: Terminal formatting
    - appgit_core: Core library

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

__version__ = "0.1.0"
