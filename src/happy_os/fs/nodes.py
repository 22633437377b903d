"""Filesystem nodes — the two kinds of thing a user's tree can hold.

A user's filesystem is a plain tree:

- **DirectoryNode** — maps child names to nodes.  The name lives in the
  parent's mapping, not in the child, so a node is reachable from exactly
  one parent and the tree can never contain a cycle.
- **FileNode** — a text payload plus two flags.  ``read_only`` blocks
  edits; ``read_only`` *and* ``hidden`` together mark a protected system
  file that cannot even be read.

Why nested objects instead of an inode table?
    There are no links to support, so identity and name never need to be
    separated.  A nested structure serializes to JSON directly and keeps
    the snapshot format readable in the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, TypeAlias


class NodeType(StrEnum):
    """The kind of object a node represents."""

    FILE = "file"
    DIRECTORY = "directory"


@dataclass
class FileNode:
    """A text file."""

    content: str = ""
    read_only: bool = False
    hidden: bool = False

    @property
    def node_type(self) -> NodeType:
        """Return ``NodeType.FILE``."""
        return NodeType.FILE

    @property
    def protected(self) -> bool:
        """Return True for system files that may not be read."""
        return self.read_only and self.hidden


@dataclass
class DirectoryNode:
    """A directory mapping child names to nodes."""

    children: dict[str, Node] = field(default_factory=dict)  # pyright: ignore[reportUnknownVariableType]

    @property
    def node_type(self) -> NodeType:
        """Return ``NodeType.DIRECTORY``."""
        return NodeType.DIRECTORY

    def names(self) -> list[str]:
        """Return child names in alphabetical order."""
        return sorted(self.children)


Node: TypeAlias = "FileNode | DirectoryNode"


def node_to_dict(node: Node) -> dict[str, Any]:
    """Serialize a node (and, for directories, its subtree) to a dict."""
    if isinstance(node, FileNode):
        return {
            "type": NodeType.FILE.value,
            "content": node.content,
            "read_only": node.read_only,
            "hidden": node.hidden,
        }
    return {
        "type": NodeType.DIRECTORY.value,
        "children": {name: node_to_dict(child) for name, child in node.children.items()},
    }


def node_from_dict(data: dict[str, Any]) -> Node:
    """Rebuild a node from the format produced by ``node_to_dict()``.

    Raises:
        ValueError: If the ``type`` field is not a known node type.

    """
    node_type = NodeType(data["type"])
    if node_type is NodeType.FILE:
        return FileNode(
            content=data.get("content", ""),
            read_only=data.get("read_only", False),
            hidden=data.get("hidden", False),
        )
    children: dict[str, Any] = data.get("children", {})
    return DirectoryNode(
        children={name: node_from_dict(child) for name, child in children.items()},
    )
