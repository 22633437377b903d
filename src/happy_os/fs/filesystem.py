"""Per-user filesystem — the tree, its skeleton and every operation on it.

Each user owns exactly one ``UserFilesystem``: a root directory plus the
current working directory.  The first time a user is seen, a fixed
skeleton is created for them::

    /sys/os_version      "1.0.0"
    /sys/os_branch       "stable"
    /sys/os/             protected system files + the variables file
    /sys/pkgs/           one ``<name>.pkg`` marker per installed package

``FilesystemStore`` is the only thing that touches a user's tree.  One
store instance is created per command line; it loads the snapshot on
first use, mutates it in place, and writes the *whole* snapshot back
after every mutating operation.  There are no partial writes: either the
new snapshot is saved or the old one is still there.

Every failure is raised as a ``TerminalError`` whose message is the text
the user should see (without the command-name prefix, which the shell
adds).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from happy_os.config import TerminalConfig
from happy_os.errors import (
    ContentTooLargeError,
    FileExistsError,
    IsADirectoryError,
    NotADirectoryError,
    PathNotFoundError,
    PermissionDeniedError,
)
from happy_os.fs.nodes import DirectoryNode, FileNode, node_from_dict, node_to_dict
from happy_os.fs.paths import ROOT, lookup, resolve_path, walk_directories
from happy_os.fs.persistence import Store, Table
from happy_os.logging import Logger, LogLevel

DEFAULT_OS_VERSION = "1.0.0"
DEFAULT_OS_BRANCH = "stable"

SYS_DIR = "sys"
OS_VERSION_FILE = "os_version"
OS_BRANCH_FILE = "os_branch"
SYSTEM_FILES_DIR = "os"
PACKAGES_DIR = "pkgs"
VARIABLES_FILE = ".def-vars"

OS_VERSION_PATH = f"/{SYS_DIR}/{OS_VERSION_FILE}"
OS_BRANCH_PATH = f"/{SYS_DIR}/{OS_BRANCH_FILE}"
SYSTEM_FILES_PATH = f"/{SYS_DIR}/{SYSTEM_FILES_DIR}"
PACKAGES_PATH = f"/{SYS_DIR}/{PACKAGES_DIR}"
VARIABLES_PATH = f"{SYSTEM_FILES_PATH}/{VARIABLES_FILE}"

DEFAULT_VARIABLES = "$SYS=/sys"

# Opaque firmware blobs every install ships with.
SYSTEM_FILES: tuple[str, ...] = (
    "happy phone.bin",
    "ssh.bin",
    "handler.hpo",
    "peform.hpo",
    "programs.hpo",
)

EMPTY_FILE_MESSAGE = "(empty file)"
EMPTY_DIRECTORY_MESSAGE = "Empty directory"
READ_ONLY_MESSAGE = "This file is read-only and cannot be edited."

DIRECTORY_MARKER = "📁 "
FILE_MARKER = "📄 "


def _system_file(content: str = "") -> FileNode:
    return FileNode(content=content, read_only=True, hidden=True)


def create_skeleton() -> DirectoryNode:
    """Build the root directory every new user starts with."""
    system_files: dict[str, FileNode] = {name: _system_file() for name in SYSTEM_FILES}
    system_files[VARIABLES_FILE] = _system_file(DEFAULT_VARIABLES)
    return DirectoryNode(
        children={
            SYS_DIR: DirectoryNode(
                children={
                    OS_VERSION_FILE: FileNode(content=DEFAULT_OS_VERSION),
                    OS_BRANCH_FILE: FileNode(content=DEFAULT_OS_BRANCH),
                    SYSTEM_FILES_DIR: DirectoryNode(children=dict(system_files)),
                    PACKAGES_DIR: DirectoryNode(),
                },
            ),
        },
    )


def ensure_system_files(root: DirectoryNode) -> bool:
    """Recreate any part of the skeleton the user has deleted.

    Existing files keep their content; only missing entries (or entries
    of the wrong kind) are replaced.

    Returns:
        True if anything had to be repaired.

    """
    repaired = False

    def _dir(parent: DirectoryNode, name: str) -> DirectoryNode:
        nonlocal repaired
        node = parent.children.get(name)
        if not isinstance(node, DirectoryNode):
            node = DirectoryNode()
            parent.children[name] = node
            repaired = True
        return node

    def _file(parent: DirectoryNode, name: str, factory: FileNode) -> None:
        nonlocal repaired
        if not isinstance(parent.children.get(name), FileNode):
            parent.children[name] = factory
            repaired = True

    sys_dir = _dir(root, SYS_DIR)
    _file(sys_dir, OS_VERSION_FILE, FileNode(content=DEFAULT_OS_VERSION))
    _file(sys_dir, OS_BRANCH_FILE, FileNode(content=DEFAULT_OS_BRANCH))
    _dir(sys_dir, PACKAGES_DIR)
    os_dir = _dir(sys_dir, SYSTEM_FILES_DIR)
    for name in SYSTEM_FILES:
        _file(os_dir, name, _system_file())
    _file(os_dir, VARIABLES_FILE, _system_file(DEFAULT_VARIABLES))
    return repaired


@dataclass
class UserFilesystem:
    """One user's complete filesystem state — the persisted snapshot."""

    root: DirectoryNode
    current_dir: str = ROOT

    @classmethod
    def new(cls) -> UserFilesystem:
        """Create a filesystem holding the default skeleton."""
        return cls(root=create_skeleton())

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {"root": node_to_dict(self.root), "current_dir": self.current_dir}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserFilesystem:
        """Deserialize from the format produced by ``to_dict()``.

        A root that is somehow not a directory is replaced by a fresh
        skeleton rather than crashing every future command.
        """
        root = node_from_dict(data["root"])
        if not isinstance(root, DirectoryNode):
            return cls.new()
        return cls(root=root, current_dir=data.get("current_dir", ROOT))


class FilesystemStore:
    """Exclusive owner of one user's tree for the duration of a command."""

    def __init__(
        self,
        store: Store,
        user_id: str,
        *,
        config: TerminalConfig | None = None,
        logger: Logger | None = None,
    ) -> None:
        """Bind to *user_id*'s snapshot in *store* (loaded lazily).

        Args:
            store: The persistence backend.
            user_id: Whose filesystem this is.
            config: Limits (max content length).
            logger: Optional event log.

        """
        self._store = store
        self._user_id = user_id
        self._config = config or TerminalConfig()
        self._logger = logger
        self._fs: UserFilesystem | None = None

    # -- Snapshot handling ----------------------------------------------------

    @property
    def user_id(self) -> str:
        """Return the owning user's id."""
        return self._user_id

    @property
    def filesystem(self) -> UserFilesystem:
        """Return the user's filesystem, loading or creating it on first use."""
        if self._fs is None:
            data = self._store.load(Table.FILESYSTEMS, self._user_id, None)
            self._fs = UserFilesystem.new() if data is None else UserFilesystem.from_dict(data)
        return self._fs

    @property
    def root(self) -> DirectoryNode:
        """Return the root directory."""
        return self.filesystem.root

    @property
    def current_dir(self) -> str:
        """Return the absolute current working directory."""
        return self.filesystem.current_dir

    @property
    def max_content_length(self) -> int:
        """Return the maximum number of characters a file may hold."""
        return self._config.max_content_length

    def commit(self) -> None:
        """Write the whole snapshot back to the store."""
        self._store.save(Table.FILESYSTEMS, self._user_id, self.filesystem.to_dict())

    def resolve(self, path: str) -> str:
        """Resolve *path* against the current directory."""
        return resolve_path(self.current_dir, path)

    def _log(self, level: LogLevel, message: str) -> None:
        if self._logger is not None:
            self._logger.log(level, message, source="fs", user_id=self._user_id)

    # -- Queries ----------------------------------------------------------------

    def get_file(self, path: str) -> FileNode | None:
        """Return the file at *path*, or None if it is missing or not a file."""
        try:
            found = lookup(self.root, self.resolve(path))
        except (PathNotFoundError, NotADirectoryError):
            return None
        return found.node if isinstance(found.node, FileNode) else None

    def exists(self, path: str) -> bool:
        """Return True if anything exists at *path*."""
        try:
            return lookup(self.root, self.resolve(path)).found
        except (PathNotFoundError, NotADirectoryError):
            return False

    def directory(self, path: str) -> DirectoryNode | None:
        """Return the directory at *path*, or None."""
        return walk_directories(self.root, self.resolve(path))

    # -- Operations -------------------------------------------------------------

    def change_directory(self, path: str | None = None) -> str:
        """Change the current directory and return the new absolute path.

        No argument, or the shorthand ``...``, goes to the root.

        Raises:
            PathNotFoundError: If any segment is missing or is a file.

        """
        target = ROOT if path in (None, "", "...") else path
        new_path = self.resolve(target)
        if walk_directories(self.root, new_path) is None:
            msg = f"{new_path}: No such directory"
            raise PathNotFoundError(msg)
        self.filesystem.current_dir = new_path
        self.commit()
        return new_path

    def list_directory(self, path: str | None = None) -> str:
        """List a directory's children, one per line, with a type marker.

        Raises:
            PathNotFoundError: If the directory does not exist.
            NotADirectoryError: If the path is a file.

        """
        target = self.resolve(path) if path else self.current_dir
        found = lookup(self.root, target)
        if not found.found:
            msg = f"{target}: No such directory"
            raise PathNotFoundError(msg)
        if not isinstance(found.node, DirectoryNode):
            msg = f"{target}: Not a directory"
            raise NotADirectoryError(msg)

        directory = found.node
        lines = [
            (DIRECTORY_MARKER if isinstance(directory.children[name], DirectoryNode) else FILE_MARKER)
            + name
            for name in directory.names()
        ]
        return "\n".join(lines) or EMPTY_DIRECTORY_MESSAGE

    def touch(self, path: str) -> str:
        """Create an empty file, truncating any file already there.

        Intermediate directories are created as needed.

        Raises:
            IsADirectoryError: If the leaf is a directory.
            PermissionDeniedError: If the leaf is a read-only file.

        """
        full_path = self.resolve(path)
        found = lookup(self.root, full_path, create_dirs=True)
        if found.parent is None or found.name is None or isinstance(found.node, DirectoryNode):
            msg = f"{full_path}: Is a directory"
            raise IsADirectoryError(msg)
        if isinstance(found.node, FileNode) and found.node.read_only:
            msg = f"{full_path}: Permission denied"
            raise PermissionDeniedError(msg)
        found.parent.children[found.name] = FileNode()
        self.commit()
        return f"Created file: {full_path}"

    def make_directory(self, path: str) -> str:
        """Create a directory (and any missing parents).

        An existing directory is left as it is.

        Raises:
            FileExistsError: If a file occupies the leaf.

        """
        full_path = self.resolve(path)
        found = lookup(self.root, full_path, create_dirs=True)
        if found.parent is not None and found.name is not None:
            if isinstance(found.node, FileNode):
                msg = f"Cannot create directory '{found.name}': File exists"
                raise FileExistsError(msg)
            if found.node is None:
                found.parent.children[found.name] = DirectoryNode()
        self.commit()
        return f"Created directory: {full_path}"

    def remove(self, path: str) -> str:
        """Delete a file or a whole directory subtree.

        Raises:
            PathNotFoundError: If the path or its parent does not exist.
            PermissionDeniedError: If asked to remove the root.

        """
        full_path = self.resolve(path)
        found = lookup(self.root, full_path)
        if found.parent is None or found.name is None:
            msg = f"{full_path}: Permission denied"
            raise PermissionDeniedError(msg)
        if not found.found:
            msg = f"{full_path}: No such file or directory"
            raise PathNotFoundError(msg)
        del found.parent.children[found.name]
        self.commit()
        self._log(LogLevel.INFO, f"removed {full_path}")
        return f"Removed: {full_path}"

    def read_file(self, path: str) -> str:
        """Return a file's content (or the empty-file sentinel).

        Raises:
            PathNotFoundError: If the file does not exist.
            IsADirectoryError: If the path is a directory.
            PermissionDeniedError: If the file is read-only and hidden.

        """
        full_path = self.resolve(path)
        found = lookup(self.root, full_path)
        if not found.found:
            msg = f"{full_path}: No such file"
            raise PathNotFoundError(msg)
        node = found.node
        if not isinstance(node, FileNode):
            msg = f"{full_path}: Is a directory"
            raise IsADirectoryError(msg)
        if node.protected:
            msg = f"{full_path}: Permission denied"
            raise PermissionDeniedError(msg)
        return node.content or EMPTY_FILE_MESSAGE

    def write_file(self, path: str, content: str, *, append: bool = False) -> str:
        """Replace (or append to) a file's content, creating it if needed.

        Every check runs before the tree is touched, so a rejected write
        leaves it exactly as it was.

        Returns:
            The absolute path that was written.

        Raises:
            ContentTooLargeError: If the resulting content is too long.
            PermissionDeniedError: If the target file is read-only.
            IsADirectoryError: If the target is a directory.
            NotADirectoryError: If a parent segment is a file.

        """
        full_path = self.resolve(path)
        limit = self.max_content_length
        too_large = f"File content exceeds the limit of {limit} characters."
        if len(content) > limit:
            raise ContentTooLargeError(too_large)

        try:
            existing = lookup(self.root, full_path).node
        except PathNotFoundError:
            existing = None
        if isinstance(existing, DirectoryNode):
            msg = f"{full_path}: Is a directory"
            raise IsADirectoryError(msg)
        if existing is not None and existing.read_only:
            raise PermissionDeniedError(READ_ONLY_MESSAGE)

        new_content = content
        if append and existing is not None:
            new_content = existing.content + content
            if len(new_content) > limit:
                raise ContentTooLargeError(too_large)

        found = lookup(self.root, full_path, create_dirs=True)
        if found.parent is None or found.name is None:
            msg = f"{full_path}: Is a directory"
            raise IsADirectoryError(msg)
        found.parent.children[found.name] = FileNode(content=new_content)
        self.commit()
        return full_path

    def staged_content(self, path: str) -> str:
        """Return a file's content for an editing UI, truncated to the limit.

        Missing files and directories stage as empty text.
        """
        node = self.get_file(path)
        if node is None:
            return ""
        return node.content[: self.max_content_length]

    def ensure_system_files(self) -> bool:
        """Repair the ``/sys`` skeleton, committing only if something changed."""
        repaired = ensure_system_files(self.root)
        if repaired:
            self.commit()
            self._log(LogLevel.WARNING, "repaired missing system files")
        return repaired
