"""Tests for appgit_core.serializer module.

Tests the JSON tree serializer layout, determinism and failure modes.
"""
from __future__ import annotations

import json

import pytest
from hypothesis import given
from hypothesis import settings
from hypothesis import strategies as st

from appgit_core.diff import artifacts_equal
from appgit_core.errors import SerializationFailed
from appgit_core.serializer import (
    APPLICATION_FILE,
    JsonTreeSerializer,
    export_artifact,
    import_artifact,
)


# ---- Fixtures -----------------------------------------------------------------------------------------------


@pytest.fixture
def serializer() -> JsonTreeSerializer:
    return JsonTreeSerializer()


class BrokenSerializer:
    """Serializer failing with arbitrary exceptions."""

    def export(self, artifact):
        raise RuntimeError("boom")

    def import_tree(self, tree):
        raise KeyError("missing")


# ---- Export Tests -------------------------------------------------------------------------------------------


class TestExport:
    """Tests for JsonTreeSerializer.export."""

    def test_layout(self, serializer, sample_artifact):
        """Test one file per collection item plus application.json."""
        tree = serializer.export(sample_artifact)
        assert sorted(tree) == [
            "actions/getOrders.json",
            APPLICATION_FILE,
            "pages/Cart.json",
            "pages/Home.json",
        ]
        header = json.loads(tree[APPLICATION_FILE])
        assert header["collections"] == ["actions", "pages"]
        assert header["properties"]["theme"] == {"font": "Inter", "primary": "#0055ff"}

    def test_deterministic(self, serializer, sample_artifact):
        """Test key order does not change the output."""
        reordered = dict(reversed(list(sample_artifact.items())))
        assert serializer.export(reordered) == serializer.export(sample_artifact)

    def test_canonical_encoding(self, serializer):
        content = serializer.export({"pages": [{"name": "Home", "b": 1, "a": 2}]})["pages/Home.json"]
        assert content.decode("utf-8") == '{\n  "a": 2,\n  "b": 1,\n  "name": "Home"\n}\n'

    def test_unsafe_and_duplicate_names(self, serializer):
        tree = serializer.export({"pages": [{"name": "a/b c"}, {"name": "a/b c"}, {"title": "no name"}]})
        assert "pages/a_b_c.json" in tree
        assert "pages/a_b_c__2.json" in tree
        assert "pages/item-2.json" in tree

    def test_not_serializable(self, serializer):
        with pytest.raises(SerializationFailed):
            serializer.export({"tags": {"a", "b"}})

    @pytest.mark.parametrize("key", ["", ".", "..", ".git", "a/b", APPLICATION_FILE, "README.md"])
    def test_unsafe_collection_keys_stay_properties(self, serializer, key):
        """Test list-of-object keys that are not plain directory names go to application.json."""
        artifact = {key: [{"name": "x"}]}
        tree = serializer.export(artifact)
        assert list(tree) == [APPLICATION_FILE]
        assert json.loads(tree[APPLICATION_FILE])["properties"] == artifact
        assert serializer.import_tree(tree) == artifact


# ---- Import Tests -------------------------------------------------------------------------------------------


class TestImport:
    """Tests for JsonTreeSerializer.import_tree."""

    def test_round_trip(self, serializer, sample_artifact):
        """Test importing an export yields an equal artifact."""
        restored = serializer.import_tree(serializer.export(sample_artifact))
        assert artifacts_equal(restored, sample_artifact)
        assert serializer.export(restored) == serializer.export(sample_artifact)

    def test_empty_collection(self, serializer):
        restored = serializer.import_tree(serializer.export({"name": "x", "pages": []}))
        assert restored == {"name": "x", "pages": []}

    def test_missing_header(self, serializer):
        with pytest.raises(SerializationFailed, match=APPLICATION_FILE):
            serializer.import_tree({"pages/Home.json": b"{}"})

    def test_conflict_markers(self, serializer, sample_artifact):
        tree = serializer.export(sample_artifact)
        tree["pages/Home.json"] = b"<<<<<<< HEAD\n{}\n=======\n{}\n>>>>>>> origin/main\n"
        with pytest.raises(SerializationFailed):
            serializer.import_tree(tree)


# ---- Helper Tests -------------------------------------------------------------------------------------------


class TestHelpers:
    """Tests for export_artifact and import_artifact."""

    def test_normalizes_failures(self):
        with pytest.raises(SerializationFailed, match="boom"):
            export_artifact(BrokenSerializer(), {})
        with pytest.raises(SerializationFailed):
            import_artifact(BrokenSerializer(), {})

    def test_passes_through(self, serializer, sample_artifact):
        assert export_artifact(serializer, sample_artifact) == serializer.export(sample_artifact)


# ---- Property Tests -----------------------------------------------------------------------------------------


json_values = st.recursive(
    st.none() | st.booleans() | st.integers() | st.floats(allow_nan=False, allow_infinity=False) | st.text(),
    lambda children: st.lists(children, max_size=3) | st.dictionaries(st.text(), children, max_size=3),
    max_leaves=8,
)

# Awkward names on purpose: duplicates, separators and reserved path parts
awkward_names = st.sampled_from(["Home", "Home", "Home__2", "", ".", "..", ".git", "a/b", "a_b"]) | st.text()

collection_items = st.lists(
    st.fixed_dictionaries({"name": awkward_names}, optional={"layout": json_values})
    | st.dictionaries(st.text(), json_values, max_size=3),
    max_size=4,
)

artifacts = st.dictionaries(
    keys=awkward_names | st.sampled_from(["pages", "actions", APPLICATION_FILE, "README.md"]),
    values=json_values | collection_items,
    max_size=5,
)


@settings(deadline=None)
@given(artifact=artifacts)
def test_export_import_round_trip(artifact: dict) -> None:
    """
    Property: Importing the export of any JSON artifact yields an equal
    artifact, and every exported path is a plain relative file path.
    """
    serializer = JsonTreeSerializer()
    tree = serializer.export(artifact)

    assert artifacts_equal(serializer.import_tree(tree), artifact)
    for path in tree:
        parts = path.split("/")
        assert len(parts) <= 2
        assert not {"", ".", "..", ".git"} & set(parts)
