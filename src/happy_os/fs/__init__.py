"""File system subsystem — nodes, path resolution, per-user trees and persistence.

Re-exports public symbols so callers can write::

    from happy_os.fs import FilesystemStore, MemoryStore
"""

from happy_os.fs.filesystem import (
    DEFAULT_OS_BRANCH,
    DEFAULT_OS_VERSION,
    EMPTY_DIRECTORY_MESSAGE,
    EMPTY_FILE_MESSAGE,
    OS_BRANCH_PATH,
    OS_VERSION_PATH,
    PACKAGES_PATH,
    READ_ONLY_MESSAGE,
    SYSTEM_FILES,
    SYSTEM_FILES_PATH,
    VARIABLES_PATH,
    FilesystemStore,
    UserFilesystem,
    create_skeleton,
    ensure_system_files,
)
from happy_os.fs.nodes import DirectoryNode, FileNode, Node, NodeType
from happy_os.fs.paths import Lookup, lookup, resolve_path
from happy_os.fs.persistence import JsonFileStore, MemoryStore, Store, Table

__all__ = [
    "DEFAULT_OS_BRANCH",
    "DEFAULT_OS_VERSION",
    "EMPTY_DIRECTORY_MESSAGE",
    "EMPTY_FILE_MESSAGE",
    "OS_BRANCH_PATH",
    "OS_VERSION_PATH",
    "PACKAGES_PATH",
    "READ_ONLY_MESSAGE",
    "SYSTEM_FILES",
    "SYSTEM_FILES_PATH",
    "VARIABLES_PATH",
    "DirectoryNode",
    "FileNode",
    "FilesystemStore",
    "JsonFileStore",
    "Lookup",
    "MemoryStore",
    "Node",
    "NodeType",
    "Store",
    "Table",
    "UserFilesystem",
    "create_skeleton",
    "ensure_system_files",
    "lookup",
    "resolve_path",
]
