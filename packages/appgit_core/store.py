"""Document store for AppGit.

The core reads and writes application documents, repository bindings,
branch records and git profiles through the ``DocumentStore`` protocol.
``SqliteDocumentStore`` is the bundled implementation.

Execution Context:
    Library module - imported by the service facade and core managers

Dependencies:
    - sqlite3: Database operations (stdlib)

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any
from typing import Protocol

from appgit_core.models import Application
from appgit_core.models import BranchRecord
from appgit_core.models import GitProfile
from appgit_core.models import RepositoryBinding


# ---- Protocol -----------------------------------------------------------------------------------------------


class DocumentStore(Protocol):
    """Persistence consumed by the core, keyed by id / user id."""

    def get_application(self, application_id: str) -> Application | None: ...

    def save_application(self, application: Application) -> Application: ...

    def delete_application(self, application_id: str) -> None: ...

    def list_applications(self, git_application_id: str) -> list[Application]: ...

    def get_binding(self, application_id: str) -> RepositoryBinding | None: ...

    def save_binding(self, binding: RepositoryBinding) -> RepositoryBinding: ...

    def delete_binding(self, application_id: str) -> None: ...

    def get_branch(self, default_application_id: str, branch_name: str) -> BranchRecord | None: ...

    def list_branch_records(self, default_application_id: str) -> list[BranchRecord]: ...

    def save_branch(self, record: BranchRecord) -> BranchRecord: ...

    def delete_branch(self, default_application_id: str, branch_name: str) -> None: ...

    def get_profiles(self, user_id: str) -> dict[str, GitProfile]: ...

    def save_profile(self, user_id: str, profile_key: str, profile: GitProfile) -> None: ...


# ---- SQLite Store -------------------------------------------------------------------------------------------


class SqliteDocumentStore:
    """SQLite-backed document store.

    One connection is shared between threads; every statement runs under
    an internal lock.

    Attributes:
        db_path: Path to SQLite database file, or ":memory:".
    """

    def __init__(self, db_path: Path | str = ":memory:") -> None:
        """Initialize store with SQLite database.

        Args:
            db_path: Database file path, or ":memory:".
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._ensure_schema()

    @property
    def _connection(self) -> sqlite3.Connection:
        """Get or create database connection.

        Returns:
            SQLite connection with row factory.
        """
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            if self.db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist."""
        with self._lock:
            conn = self._connection
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS applications (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    artifact JSON NOT NULL,
                    git_application_id TEXT,
                    branch_name TEXT
                );

                CREATE TABLE IF NOT EXISTS bindings (
                    application_id TEXT PRIMARY KEY,
                    data JSON NOT NULL
                );

                CREATE TABLE IF NOT EXISTS branches (
                    default_application_id TEXT NOT NULL,
                    branch_name TEXT NOT NULL,
                    application_id TEXT NOT NULL,
                    is_default INTEGER NOT NULL DEFAULT 0,
                    last_synced_commit TEXT,
                    PRIMARY KEY (default_application_id, branch_name)
                );

                CREATE TABLE IF NOT EXISTS profiles (
                    user_id TEXT NOT NULL,
                    profile_key TEXT NOT NULL,
                    data JSON NOT NULL,
                    PRIMARY KEY (user_id, profile_key)
                );

                CREATE INDEX IF NOT EXISTS idx_applications_git ON applications(git_application_id);
            """)
            conn.commit()

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self._connection
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            conn.commit()

    def _query(self, sql: str, params: list[Any]) -> list[sqlite3.Row]:
        with self._lock:
            return self._connection.execute(sql, params).fetchall()

    # ---- Applications ---------------------------------------------------------------------------------------

    @staticmethod
    def _application_from_row(row: sqlite3.Row) -> Application:
        return Application(
            id=row["id"],
            name=row["name"],
            artifact=json.loads(row["artifact"]),
            git_application_id=row["git_application_id"],
            branch_name=row["branch_name"],
        )

    def get_application(self, application_id: str) -> Application | None:
        """Retrieve application by ID.

        Args:
            application_id: Application identifier.

        Returns:
            Application instance or None if not found.
        """
        rows = self._query("SELECT * FROM applications WHERE id = ?", [application_id])
        return self._application_from_row(rows[0]) if rows else None

    def save_application(self, application: Application) -> Application:
        """Insert or replace an application document.

        Args:
            application: Application to store.

        Returns:
            The stored application.
        """
        with self._write() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO applications (id, name, artifact, git_application_id, branch_name)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    application.id,
                    application.name,
                    json.dumps(application.artifact),
                    application.git_application_id,
                    application.branch_name,
                ],
            )
        return application

    def delete_application(self, application_id: str) -> None:
        with self._write() as conn:
            conn.execute("DELETE FROM applications WHERE id = ?", [application_id])

    def list_applications(self, git_application_id: str) -> list[Application]:
        """List every application document of a repository.

        Args:
            git_application_id: Default application id of the repository.

        Returns:
            Applications ordered by id.
        """
        rows = self._query(
            "SELECT * FROM applications WHERE git_application_id = ? ORDER BY id",
            [git_application_id],
        )
        return [self._application_from_row(row) for row in rows]

    # ---- Bindings -------------------------------------------------------------------------------------------

    def get_binding(self, application_id: str) -> RepositoryBinding | None:
        rows = self._query("SELECT data FROM bindings WHERE application_id = ?", [application_id])
        return RepositoryBinding.from_dict(json.loads(rows[0]["data"])) if rows else None

    def save_binding(self, binding: RepositoryBinding) -> RepositoryBinding:
        with self._write() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO bindings (application_id, data) VALUES (?, ?)",
                [binding.application_id, json.dumps(binding.to_dict())],
            )
        return binding

    def delete_binding(self, application_id: str) -> None:
        with self._write() as conn:
            conn.execute("DELETE FROM bindings WHERE application_id = ?", [application_id])

    # ---- Branch Records -------------------------------------------------------------------------------------

    @staticmethod
    def _branch_from_row(row: sqlite3.Row) -> BranchRecord:
        return BranchRecord(
            application_id=row["application_id"],
            branch_name=row["branch_name"],
            default_application_id=row["default_application_id"],
            is_default=bool(row["is_default"]),
            last_synced_commit=row["last_synced_commit"],
        )

    def get_branch(self, default_application_id: str, branch_name: str) -> BranchRecord | None:
        rows = self._query(
            "SELECT * FROM branches WHERE default_application_id = ? AND branch_name = ?",
            [default_application_id, branch_name],
        )
        return self._branch_from_row(rows[0]) if rows else None

    def list_branch_records(self, default_application_id: str) -> list[BranchRecord]:
        """List branch records of a repository, default branch first.

        Args:
            default_application_id: Default application id.

        Returns:
            List of BranchRecord objects.
        """
        rows = self._query(
            """
            SELECT * FROM branches
            WHERE default_application_id = ?
            ORDER BY is_default DESC, branch_name
            """,
            [default_application_id],
        )
        return [self._branch_from_row(row) for row in rows]

    def save_branch(self, record: BranchRecord) -> BranchRecord:
        """Insert or replace a branch record.

        Saving a default record clears the flag on every other record of
        the same repository.

        Args:
            record: Branch record to store.

        Returns:
            The stored record.
        """
        with self._write() as conn:
            if record.is_default:
                conn.execute(
                    "UPDATE branches SET is_default = 0 WHERE default_application_id = ? AND branch_name != ?",
                    [record.default_application_id, record.branch_name],
                )
            conn.execute(
                """
                INSERT OR REPLACE INTO branches
                    (default_application_id, branch_name, application_id, is_default, last_synced_commit)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    record.default_application_id,
                    record.branch_name,
                    record.application_id,
                    int(record.is_default),
                    record.last_synced_commit,
                ],
            )
        return record

    def delete_branch(self, default_application_id: str, branch_name: str) -> None:
        with self._write() as conn:
            conn.execute(
                "DELETE FROM branches WHERE default_application_id = ? AND branch_name = ?",
                [default_application_id, branch_name],
            )

    # ---- Profiles -------------------------------------------------------------------------------------------

    def get_profiles(self, user_id: str) -> dict[str, GitProfile]:
        """Get every profile of a user keyed by application id or "default".

        Args:
            user_id: User identifier.

        Returns:
            Mapping of profile key to GitProfile.
        """
        rows = self._query("SELECT profile_key, data FROM profiles WHERE user_id = ?", [user_id])
        return {row["profile_key"]: GitProfile.from_dict(json.loads(row["data"])) for row in rows}

    def save_profile(self, user_id: str, profile_key: str, profile: GitProfile) -> None:
        with self._write() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO profiles (user_id, profile_key, data) VALUES (?, ?, ?)",
                [user_id, profile_key, json.dumps(profile.to_dict())],
            )

    # ---- Lifecycle ------------------------------------------------------------------------------------------

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> SqliteDocumentStore:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.close()
