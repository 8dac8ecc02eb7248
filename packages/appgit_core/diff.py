"""Artifact diffing and comparison module.

Compares application artifacts and their serialized file trees, detecting
changes at the resource (page, action, datasource...) and property level.

Execution Context:
    Library module - imported by status, merge and the CLI diff output

Dependencies:
    - deepdiff: Deep dictionary comparison

Metadata:
    Version: 0.1.0
    Author: AppGit Team
"""
from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from typing import Any

from deepdiff import DeepDiff

from appgit_core.serializer import FileTree


# ---- Data Classes -------------------------------------------------------------------------------------------


@dataclass
class ResourceChange:
    """Represents a change to a single resource.

    Attributes:
        collection: Collection holding the resource (e.g. "pages").
        name: Resource name (or id).
        change_type: Type of change (added, removed, modified).
        details: DeepDiff output for modified resources.
    """

    collection: str
    name: str
    change_type: str  # 'added', 'removed', 'modified'
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ArtifactDiff:
    """Represents differences between two artifact states.

    Attributes:
        resource_changes: Resource-level changes across all collections.
        property_changes: Application-level property changes.
    """

    resource_changes: list[ResourceChange] = field(default_factory=list)
    property_changes: dict[str, Any] = field(default_factory=dict)

    @property
    def has_changes(
            self,
    ) -> bool:
        """Check if any changes exist."""
        return bool(self.resource_changes or self.property_changes)

    @property
    def added(
            self,
    ) -> list[ResourceChange]:
        """Get added resources."""
        return [c for c in self.resource_changes if c.change_type == "added"]

    @property
    def removed(
            self,
    ) -> list[ResourceChange]:
        """Get removed resources."""
        return [c for c in self.resource_changes if c.change_type == "removed"]

    @property
    def modified(
            self,
    ) -> list[ResourceChange]:
        """Get modified resources."""
        return [c for c in self.resource_changes if c.change_type == "modified"]


# ---- Diff Functions -----------------------------------------------------------------------------------------


def _collection_keys(
        artifact: dict[str, Any],
) -> set[str]:
    return {
        key for key, value in artifact.items()
        if isinstance(value, list) and all(isinstance(item, dict) for item in value)
    }


def _index_resources(
        items: list[dict[str, Any]],
) -> dict[str, dict[str, Any]]:
    index = {}
    for position, item in enumerate(items):
        key = str(item.get("id") or item.get("name") or position)
        index[key] = item
    return index


def diff_resources(
        collection: str,
        items1: list[dict[str, Any]],
        items2: list[dict[str, Any]],
) -> list[ResourceChange]:
    """Compare two versions of one collection.

    Args:
        collection: Collection name, copied into each change.
        items1: Current items.
        items2: Previous items.

    Returns:
        List of ResourceChange objects.
    """
    changes = []

    index1 = _index_resources(items1)
    index2 = _index_resources(items2)

    for key, item in index1.items():
        if key not in index2:
            changes.append(ResourceChange(
                collection=collection,
                name=str(item.get("name") or key),
                change_type="added",
            ))

    for key, item in index2.items():
        if key not in index1:
            changes.append(ResourceChange(
                collection=collection,
                name=str(item.get("name") or key),
                change_type="removed",
            ))

    for key in index1:
        if key in index2 and index1[key] != index2[key]:
            deep_diff = DeepDiff(index2[key], index1[key], ignore_order=True)
            if deep_diff:
                changes.append(ResourceChange(
                    collection=collection,
                    name=str(index1[key].get("name") or key),
                    change_type="modified",
                    details=deep_diff.to_dict(),
                ))

    return changes


def diff_artifacts(
        artifact1: dict[str, Any],
        artifact2: dict[str, Any],
) -> ArtifactDiff:
    """Compare two application artifacts.

    Args:
        artifact1: First artifact (typically the current application state).
        artifact2: Second artifact (typically the committed state).

    Returns:
        ArtifactDiff describing all differences.
    """
    result = ArtifactDiff()

    collections = _collection_keys(artifact1) | _collection_keys(artifact2)
    for collection in sorted(collections):
        result.resource_changes.extend(diff_resources(
            collection,
            artifact1.get(collection) or [],
            artifact2.get(collection) or [],
        ))

    props1 = {k: v for k, v in artifact1.items() if k not in collections}
    props2 = {k: v for k, v in artifact2.items() if k not in collections}

    if props1 != props2:
        deep_diff = DeepDiff(props2, props1, ignore_order=True)
        result.property_changes = deep_diff.to_dict() if deep_diff else {}

    return result


def artifacts_equal(
        artifact1: dict[str, Any],
        artifact2: dict[str, Any],
) -> bool:
    """Domain equality: equal up to the order of collection items."""
    return not DeepDiff(artifact1, artifact2, ignore_order=True)


def diff_trees(
        tree1: FileTree,
        tree2: FileTree,
) -> list[str]:
    """List paths whose content differs between two file trees.

    Args:
        tree1: Current tree.
        tree2: Previous tree.

    Returns:
        Sorted list of added, removed and modified paths.
    """
    paths = set(tree1) | set(tree2)
    return sorted(path for path in paths if tree1.get(path) != tree2.get(path))


# ---- Formatting Functions -----------------------------------------------------------------------------------


def format_diff_summary(
        artifact_diff: ArtifactDiff,
) -> str:
    """Format ArtifactDiff as human-readable summary.

    Args:
        artifact_diff: ArtifactDiff object.

    Returns:
        Formatted string summary.
    """
    if not artifact_diff.has_changes:
        return "No changes detected."

    lines = []

    symbols = (("added", "+", artifact_diff.added),
               ("removed", "-", artifact_diff.removed),
               ("modified", "~", artifact_diff.modified))
    for label, symbol, changes in symbols:
        if changes:
            lines.append(f"{label.capitalize()} resources ({len(changes)}):")
            for change in changes:
                lines.append(f"  {symbol} {change.collection}/{change.name}")

    if artifact_diff.property_changes:
        lines.append("Application properties changed:")
        for key in artifact_diff.property_changes:
            lines.append(f"  * {key}")

    return "\n".join(lines)
