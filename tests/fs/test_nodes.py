"""Tests for filesystem nodes and their dict codec."""

import pytest

from happy_os.fs.nodes import DirectoryNode, FileNode, NodeType, node_from_dict, node_to_dict


class TestNodes:
    """Verify node construction and flags."""

    def test_file_defaults(self) -> None:
        """A new file is empty, writable and visible."""
        node = FileNode()
        assert node.content == ""
        assert not node.read_only
        assert not node.hidden
        assert node.node_type is NodeType.FILE

    def test_protected_needs_both_flags(self) -> None:
        """Only read-only AND hidden files are protected."""
        assert FileNode(read_only=True, hidden=True).protected
        assert not FileNode(read_only=True).protected
        assert not FileNode(hidden=True).protected

    def test_directory_names_sorted(self) -> None:
        """Children are listed alphabetically."""
        directory = DirectoryNode(children={"b": FileNode(), "a": FileNode(), "c": DirectoryNode()})
        assert directory.names() == ["a", "b", "c"]
        assert directory.node_type is NodeType.DIRECTORY


class TestCodec:
    """Verify the JSON-compatible dict format."""

    def test_file_dict_shape(self) -> None:
        """Files serialize with their content and flags."""
        data = node_to_dict(FileNode(content="x", read_only=True, hidden=True))
        assert data == {"type": "file", "content": "x", "read_only": True, "hidden": True}

    def test_nested_directory_restores(self) -> None:
        """A nested tree survives a dict round-trip."""
        tree = DirectoryNode(children={"d": DirectoryNode(children={"f": FileNode(content="hi")})})
        restored = node_from_dict(node_to_dict(tree))
        assert restored == tree

    def test_missing_flags_default(self) -> None:
        """Older file records without flags load as plain files."""
        node = node_from_dict({"type": "file", "content": "old"})
        assert node == FileNode(content="old")

    def test_unknown_type_rejected(self) -> None:
        """An unknown node type raises ValueError."""
        with pytest.raises(ValueError):  # noqa: PT011
            node_from_dict({"type": "symlink"})
