"""Tests for path resolution and tree lookup."""

import pytest

from happy_os.errors import NotADirectoryError, PathNotFoundError
from happy_os.fs.nodes import DirectoryNode, FileNode
from happy_os.fs.paths import join_segments, lookup, resolve_path, split_segments, walk_directories


def _tree() -> DirectoryNode:
    """Build ``/a/b/`` with a file ``/a/note.txt``."""
    return DirectoryNode(
        children={
            "a": DirectoryNode(
                children={
                    "b": DirectoryNode(),
                    "note.txt": FileNode(content="hi"),
                },
            ),
        },
    )


class TestResolvePath:
    """Verify normalization of user-typed paths."""

    def test_parent_then_sibling(self) -> None:
        """``..`` pops one segment before appending."""
        assert resolve_path("/a/b", "../c") == "/a/c"

    def test_parent_of_root_is_root(self) -> None:
        """Popping above the root is absorbed."""
        assert resolve_path("/", "..") == "/"
        assert resolve_path("/a", "../../..") == "/"

    def test_absolute_ignores_current_dir(self) -> None:
        """An absolute target does not depend on the current directory."""
        assert resolve_path("/a/b", "/x/./y") == "/x/y"

    def test_relative_appends(self) -> None:
        """A relative target is appended to the current directory."""
        assert resolve_path("/a", "b/c") == "/a/b/c"

    def test_empty_segments_dropped(self) -> None:
        """Repeated and trailing slashes collapse."""
        assert resolve_path("/", "a//b/") == "/a/b"

    def test_dot_is_current(self) -> None:
        """A lone ``.`` resolves to the current directory."""
        assert resolve_path("/a/b", ".") == "/a/b"

    def test_always_leading_slash(self) -> None:
        """The result is always absolute."""
        assert resolve_path("/", "x").startswith("/")


class TestSegments:
    """Verify the segment helpers."""

    def test_split_skips_empty(self) -> None:
        """Leading, trailing and doubled slashes produce no segments."""
        assert split_segments("//a/b//") == ["a", "b"]

    def test_join_empty_is_root(self) -> None:
        """No segments means the root."""
        assert join_segments([]) == "/"


class TestLookup:
    """Verify the iterative tree walk."""

    def test_root_has_no_parent(self) -> None:
        """The root lookup carries no parent or name."""
        root = _tree()
        found = lookup(root, "/")
        assert found.parent is None
        assert found.name is None
        assert found.node is root

    def test_existing_file(self) -> None:
        """A file leaf is reported with its parent and name."""
        found = lookup(_tree(), "/a/note.txt")
        assert found.is_file
        assert found.name == "note.txt"
        assert isinstance(found.parent, DirectoryNode)

    def test_missing_leaf_is_not_an_error(self) -> None:
        """A missing leaf yields ``found == False``, never an exception."""
        found = lookup(_tree(), "/a/missing")
        assert not found.found
        assert found.name == "missing"

    def test_missing_intermediate_raises(self) -> None:
        """A missing directory on the way raises PathNotFoundError."""
        with pytest.raises(PathNotFoundError, match="/x: No such"):
            lookup(_tree(), "/x/y/z")

    def test_file_as_intermediate_raises(self) -> None:
        """Walking through a file raises NotADirectoryError."""
        with pytest.raises(NotADirectoryError, match="Not a directory"):
            lookup(_tree(), "/a/note.txt/inner")

    def test_create_dirs_builds_intermediates(self) -> None:
        """With ``create_dirs`` missing directories are created, not the leaf."""
        root = _tree()
        found = lookup(root, "/x/y/z.txt", create_dirs=True)
        assert not found.found
        assert walk_directories(root, "/x/y") is not None
        assert "z.txt" not in found.parent.children  # type: ignore[union-attr]

    def test_create_dirs_still_rejects_files(self) -> None:
        """``create_dirs`` never replaces a file in the way."""
        with pytest.raises(NotADirectoryError):
            lookup(_tree(), "/a/note.txt/x", create_dirs=True)


class TestWalkDirectories:
    """Verify the directory-only walk used by ``cd``."""

    def test_existing_directory(self) -> None:
        """An existing directory is returned."""
        assert isinstance(walk_directories(_tree(), "/a/b"), DirectoryNode)

    def test_file_is_none(self) -> None:
        """A file is not a directory."""
        assert walk_directories(_tree(), "/a/note.txt") is None

    def test_missing_is_none(self) -> None:
        """A missing path returns None."""
        assert walk_directories(_tree(), "/nope") is None
