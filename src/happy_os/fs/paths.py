"""Path resolution — turning what the user typed into a place in the tree.

Two steps, kept separate so each is trivially testable:

1. ``resolve_path(current_dir, target)`` is pure string work.  Relative
   targets are appended to the current directory, ``.`` is dropped and
   ``..`` pops one segment.  Popping above the root is silently absorbed,
   just like ``cd ..`` at ``/`` in a real shell.

2. ``lookup(root, path)`` walks the tree.  It stops one segment short of
   the leaf and reports the leaf's parent and name, so callers decide
   what (if anything) to put there.  Intermediate directories can be
   created on the way, which is how ``touch a/b/c.txt`` works.

The walk is a loop with an explicit cursor rather than recursion, so an
error at any depth short-circuits with a single ``raise``.
"""

from __future__ import annotations

from dataclasses import dataclass

from happy_os.errors import NotADirectoryError, PathNotFoundError
from happy_os.fs.nodes import DirectoryNode, FileNode, Node

ROOT = "/"


@dataclass
class Lookup:
    """Where a path landed in the tree.

    ``parent`` and ``name`` are ``None`` only for the root itself.
    """

    path: str
    parent: DirectoryNode | None
    name: str | None
    node: Node | None

    @property
    def found(self) -> bool:
        """Return True if the leaf exists."""
        return self.node is not None

    @property
    def is_directory(self) -> bool:
        """Return True if the leaf exists and is a directory."""
        return isinstance(self.node, DirectoryNode)

    @property
    def is_file(self) -> bool:
        """Return True if the leaf exists and is a file."""
        return isinstance(self.node, FileNode)


def split_segments(path: str) -> list[str]:
    """Split a path into its non-empty segments."""
    return [part for part in path.split("/") if part]


def join_segments(segments: list[str]) -> str:
    """Join segments into an absolute path (``[]`` → ``/``)."""
    return ROOT + "/".join(segments)


def resolve_path(current_dir: str, target: str) -> str:
    """Normalize *target* against *current_dir* into an absolute path.

    Examples::

        resolve_path("/a/b", "../c")  → "/a/c"
        resolve_path("/", "..")       → "/"
        resolve_path("/a", "/x/./y")  → "/x/y"

    """
    parts = split_segments(target)
    if not target.startswith(ROOT):
        parts = split_segments(current_dir) + parts

    resolved: list[str] = []
    for part in parts:
        if part == "..":
            if resolved:
                resolved.pop()
        elif part != ".":
            resolved.append(part)
    return join_segments(resolved)


def lookup(root: DirectoryNode, path: str, *, create_dirs: bool = False) -> Lookup:
    """Walk *path* (absolute, normalized) down to its leaf's parent.

    Args:
        root: The tree's root directory.
        path: An absolute path, as returned by ``resolve_path``.
        create_dirs: Create missing intermediate directories in place.

    Returns:
        A ``Lookup`` describing the leaf's parent, name and node (if any).

    Raises:
        PathNotFoundError: If an intermediate directory is missing and
            *create_dirs* is false.
        NotADirectoryError: If an intermediate segment is a file.

    """
    segments = split_segments(path)
    if not segments:
        return Lookup(path=ROOT, parent=None, name=None, node=root)

    *walk, leaf = segments
    current = root
    for depth, part in enumerate(walk, start=1):
        child = current.children.get(part)
        if child is None:
            if not create_dirs:
                msg = f"{join_segments(walk[:depth])}: No such file or directory"
                raise PathNotFoundError(msg)
            child = DirectoryNode()
            current.children[part] = child
        if not isinstance(child, DirectoryNode):
            msg = f"{join_segments(walk[:depth])}: Not a directory"
            raise NotADirectoryError(msg)
        current = child

    return Lookup(path=path, parent=current, name=leaf, node=current.children.get(leaf))


def walk_directories(root: DirectoryNode, path: str) -> DirectoryNode | None:
    """Return the directory at *path*, or None if any segment is missing or a file."""
    current = root
    for part in split_segments(path):
        child = current.children.get(part)
        if not isinstance(child, DirectoryNode):
            return None
        current = child
    return current
