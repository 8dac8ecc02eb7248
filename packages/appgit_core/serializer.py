"""Artifact serialization for AppGit.

Converts an application artifact to and from the file tree committed to
the repository. The core only depends on the ``ArtifactSerializer``
protocol; ``JsonTreeSerializer`` is the bundled implementation.

Tree layout produced by ``JsonTreeSerializer``::

    application.json            scalar properties + collection names
    pages/<name>.json           one file per item of each collection
    actions/<name>.json
    ...

Output is deterministic: keys sorted, two-space indent, trailing newline,
items keyed by their ``name`` (or ``id``).

Execution Context:
    Library module - imported by commit, branch, sync and merge managers

Dependencies:
    - json: Canonical encoding (stdlib)

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

import json
import re
from typing import Any
from typing import Protocol

from appgit_core.errors import SerializationFailed


# ---- Constants ----------------------------------------------------------------------------------------------


APPLICATION_FILE = "application.json"
FORMAT_VERSION = 1

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_COLLECTION_KEY = re.compile(r"[A-Za-z0-9_][A-Za-z0-9_-]*")

FileTree = dict[str, bytes]


# ---- Protocol -----------------------------------------------------------------------------------------------


class ArtifactSerializer(Protocol):
    """Pluggable artifact <-> file tree conversion.

    ``export`` must be deterministic so that diffs only reflect real changes.
    """

    def export(self, artifact: dict[str, Any]) -> FileTree: ...

    def import_tree(self, tree: FileTree) -> dict[str, Any]: ...


# ---- JSON Tree Serializer -----------------------------------------------------------------------------------


def _encode(
        data: Any,
) -> bytes:
    """Canonical JSON encoding used for every file."""
    return (json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False) + "\n").encode("utf-8")


def _is_collection(
        value: Any,
) -> bool:
    return isinstance(value, list) and all(isinstance(item, dict) for item in value)


def _file_stem(
        item: dict[str, Any],
        index: int,
) -> str:
    raw = item.get("name") or item.get("id") or f"item-{index}"
    stem = _UNSAFE_CHARS.sub("_", str(raw)).strip("._")
    return stem or f"item-{index}"


class JsonTreeSerializer:
    """Splits list-of-object properties into one JSON file per item."""

    def export(
            self,
            artifact: dict[str, Any],
    ) -> FileTree:
        """Convert an artifact to a file tree.

        Args:
            artifact: Application artifact.

        Returns:
            Mapping of POSIX path to file content.

        Raises:
            SerializationFailed: If the artifact is not JSON serializable.
        """
        try:
            properties: dict[str, Any] = {}
            collections: dict[str, list[dict[str, Any]]] = {}
            for key, value in artifact.items():
                if _is_collection(value) and _COLLECTION_KEY.fullmatch(key):
                    collections[key] = value
                else:
                    properties[key] = value

            tree: FileTree = {
                APPLICATION_FILE: _encode({
                    "formatVersion": FORMAT_VERSION,
                    "collections": sorted(collections),
                    "properties": properties,
                }),
            }

            for collection, items in collections.items():
                used: set[str] = set()
                for index, item in enumerate(items):
                    stem = _file_stem(item, index)
                    candidate = stem
                    suffix = 2
                    while candidate in used:
                        candidate = f"{stem}__{suffix}"
                        suffix += 1
                    used.add(candidate)
                    tree[f"{collection}/{candidate}.json"] = _encode(item)

            return tree

        except (TypeError, ValueError) as export_error:
            msg = f"Failed to export artifact: {export_error}"
            raise SerializationFailed(msg) from export_error

    def import_tree(
            self,
            tree: FileTree,
    ) -> dict[str, Any]:
        """Rebuild an artifact from a file tree.

        Args:
            tree: Mapping of POSIX path to file content.

        Returns:
            Application artifact. Collection items are ordered by file name.

        Raises:
            SerializationFailed: If the tree is missing application.json or
                holds invalid JSON (e.g. unresolved conflict markers).
        """
        if APPLICATION_FILE not in tree:
            msg = f"File tree has no {APPLICATION_FILE}"
            raise SerializationFailed(msg)

        try:
            header = json.loads(tree[APPLICATION_FILE].decode("utf-8"))
            artifact: dict[str, Any] = dict(header.get("properties", {}))

            for collection in header.get("collections", []):
                prefix = f"{collection}/"
                paths = sorted(path for path in tree if path.startswith(prefix))
                artifact[collection] = [
                    json.loads(tree[path].decode("utf-8"))
                    for path in paths
                ]

            return artifact

        except (UnicodeDecodeError, ValueError, AttributeError) as import_error:
            msg = f"Failed to import artifact: {import_error}"
            raise SerializationFailed(msg) from import_error


# ---- Helpers ------------------------------------------------------------------------------------------------


def export_artifact(
        serializer: ArtifactSerializer,
        artifact: dict[str, Any],
) -> FileTree:
    """Export through any serializer, normalizing failures.

    Raises:
        SerializationFailed: If the serializer fails for any reason.
    """
    try:
        return serializer.export(artifact)
    except SerializationFailed:
        raise
    except Exception as export_error:
        msg = f"Failed to export artifact: {export_error}"
        raise SerializationFailed(msg) from export_error


def import_artifact(
        serializer: ArtifactSerializer,
        tree: FileTree,
) -> dict[str, Any]:
    """Import through any serializer, normalizing failures.

    Raises:
        SerializationFailed: If the serializer fails for any reason.
    """
    try:
        return serializer.import_tree(tree)
    except SerializationFailed:
        raise
    except Exception as import_error:
        msg = f"Failed to import artifact: {import_error}"
        raise SerializationFailed(msg) from import_error
