"""Error taxonomy for the terminal simulator.

Nothing a user types should ever crash their terminal.  Subsystems raise
one of the exceptions below with a message that is already fit to show
in the chat; the shell catches ``TerminalError`` around each command and
returns ``"<command>: <error>"`` as that command's output.

Persistence failures are not part of this hierarchy: a broken store is
the host's problem and propagates unchanged.
"""


class TerminalError(Exception):
    """Base class for every user-facing command failure."""


# -- Filesystem ---------------------------------------------------------------


class PathNotFoundError(TerminalError):
    """Raised when a path, or a directory on the way to it, does not exist."""


# These shadow the built-ins only inside modules that import them by name.
class NotADirectoryError(TerminalError):  # noqa: A001
    """Raised when a path component that must be a directory is a file."""


class FileExistsError(TerminalError):  # noqa: A001
    """Raised when a directory cannot be created because a file is in the way."""


class IsADirectoryError(TerminalError):  # noqa: A001
    """Raised when a file operation targets a directory."""


class PermissionDeniedError(TerminalError):
    """Raised when a protected (read-only and/or hidden) node is accessed."""


class ContentTooLargeError(TerminalError):
    """Raised when a write would exceed the maximum file content length."""


# -- Packages -----------------------------------------------------------------


class PackageNotFoundError(TerminalError):
    """Raised when a package is not in the catalog or not installed."""


class PackageAlreadyInstalledError(TerminalError):
    """Raised when installing a package whose marker already exists."""


class VersionTooLowError(TerminalError):
    """Raised when the OS version is below a package's minimum."""


class BranchUnsupportedError(TerminalError):
    """Raised when a package is not published on the current branch."""


class UnknownBranchError(TerminalError):
    """Raised when upgrading to a branch that does not exist."""


# -- Argument handling ----------------------------------------------------------


class InvalidPageNumberError(TerminalError):
    """Raised when a listing page is outside the valid range."""


class MissingArgumentError(TerminalError):
    """Raised when a command or subcommand is missing a required argument."""
