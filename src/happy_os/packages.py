"""Package manager — ``pkg``, the only way to unlock extra commands.

A **package** unlocks one command.  Whether it can be installed depends
on the user's OS:

    - the **branch** (``stable`` or ``unstable``) must be one the package
      is published on, and
    - the OS **version** must be at least that branch's minimum.

Versions are dot-separated integers compared component by component,
with missing trailing components treated as 0 (so ``1.0`` == ``1.0.0``
and ``1.0.0.2`` > ``1.0.0.1``).  Because the comparison is a total order,
availability is monotone: upgrading the OS never hides a package that
was available before on the same branch.

Installed state is nothing more than a marker file,
``/sys/pkgs/<name>.pkg``, recording the name, OS version and branch at
install time.  There is no separate index to drift out of sync.

Installing does not write the marker directly.  It starts a simulated
download; the marker is written when the download completes (at once
for an instant download, otherwise on a later tick).
"""

from __future__ import annotations

import itertools
import math
from dataclasses import replace
from typing import TYPE_CHECKING

from happy_os.config import TerminalConfig
from happy_os.errors import (
    BranchUnsupportedError,
    InvalidPageNumberError,
    MissingArgumentError,
    PackageAlreadyInstalledError,
    PackageNotFoundError,
    TerminalError,
    UnknownBranchError,
    VersionTooLowError,
)
from happy_os.fs.filesystem import (
    DEFAULT_OS_BRANCH,
    DEFAULT_OS_VERSION,
    OS_BRANCH_PATH,
    OS_VERSION_PATH,
    PACKAGES_PATH,
    FilesystemStore,
)
from happy_os.io.download import DownloadSimulator, DownloadStatus, TickResult
from happy_os.io.network import NetworkConfigRegistry, format_size, format_time
from happy_os.logging import Logger, LogLevel

if TYPE_CHECKING:
    from collections.abc import Mapping

STABLE = "stable"
UNSTABLE = "unstable"

# Latest OS version published on each branch.
OS_BRANCHES: dict[str, str] = {
    STABLE: "1.0.0.1",
    UNSTABLE: "1.0.0.2",
}

# Package name → branch → minimum OS version.
CATALOG: dict[str, dict[str, str]] = {
    "echo": {STABLE: "1.0.0", UNSTABLE: "1.0.0"},
    "edit": {STABLE: "1.0.0", UNSTABLE: "1.0.0"},
    "happyphone": {STABLE: "1.0.0", UNSTABLE: "1.0.0"},
    "ssh": {STABLE: "1.0.0.1", UNSTABLE: "1.0.0.1"},
    "happybrowser": {UNSTABLE: "1.0.0.2"},
}

PACKAGE_SIZES_KB: dict[str, int] = {
    "echo": 472,
    "edit": 8400,
    "happyphone": 413,
    "ssh": 1536,
    "happybrowser": 2048,
}
DEFAULT_PACKAGE_SIZE_KB = 1024

PACKAGE_SUFFIX = ".pkg"
PAGE_FLAG = "--page"


def _version_parts(version: str) -> list[int]:
    """Split a dotted version into integers; anything non-numeric counts as 0."""
    parts: list[int] = []
    for part in version.strip().split("."):
        try:
            parts.append(int(part))
        except ValueError:
            parts.append(0)
    return parts


def compare_versions(left: str, right: str) -> int:
    """Compare two dotted versions.

    Returns:
        -1, 0 or 1 as *left* is lower than, equal to, or higher than *right*.

    """
    left_parts = _version_parts(left)
    right_parts = _version_parts(right)
    for a, b in itertools.zip_longest(left_parts, right_parts, fillvalue=0):
        if a != b:
            return 1 if a > b else -1
    return 0


def is_available(
    package: str,
    version: str,
    branch: str,
    catalog: Mapping[str, Mapping[str, str]] = CATALOG,
) -> bool:
    """Return True if *package* can be installed on *version* of *branch*."""
    minimum = catalog.get(package, {}).get(branch)
    if minimum is None:
        return False
    return compare_versions(version, minimum) >= 0


def unavailable_reason(package: str, version: str, branch: str) -> str | None:
    """Explain why *package* cannot be installed, or None if it can.

    The text is phrased for the ``pkg`` prefix; the command dispatcher
    rephrases the same three cases for a bare command name.
    """
    if is_available(package, version, branch):
        return None
    branches = CATALOG.get(package)
    if branches is None:
        return f"Package '{package}' not found."
    if branch in branches:
        return f"Package '{package}' requires {branch} version {branches[branch]} or later."
    return f"Package '{package}' is not available on the {branch} branch."


def package_record(package: str, version: str, branch: str) -> str:
    """Return the content of an installed-package marker."""
    return f"Package: {package}\nVersion: {version}\nBranch: {branch}"


def parse_page(args: list[str]) -> int:
    """Return the ``--page N`` value in *args* (1 if absent or not a number)."""
    if PAGE_FLAG not in args:
        return 1
    index = args.index(PAGE_FLAG)
    try:
        return int(args[index + 1])
    except (IndexError, ValueError):
        return 1


def paginate(items: list[str], page: int, page_size: int) -> tuple[list[str], int]:
    """Return the items on *page* and the total page count.

    Raises:
        InvalidPageNumberError: If *page* is outside ``1..total``.

    """
    total = max(1, math.ceil(len(items) / page_size))
    if page < 1 or page > total:
        msg = f"Invalid page number. Valid range: 1-{total}"
        raise InvalidPageNumberError(msg)
    start = (page - 1) * page_size
    return items[start : start + page_size], total


class PackageManager:
    """One user's view of the catalog, bound to their filesystem for a command."""

    def __init__(
        self,
        fs: FilesystemStore,
        *,
        downloads: DownloadSimulator,
        network: NetworkConfigRegistry,
        config: TerminalConfig | None = None,
        logger: Logger | None = None,
    ) -> None:
        """Create a package manager over *fs*.

        Args:
            fs: The user's filesystem (holds version, branch and markers).
            downloads: The shared download registry.
            network: The shared network config registry.
            config: Page sizes.
            logger: Optional event log.

        """
        self._fs = fs
        self._downloads = downloads
        self._network = network
        self._config = config or TerminalConfig()
        self._logger = logger

    @property
    def user_id(self) -> str:
        """Return the owning user's id."""
        return self._fs.user_id

    @property
    def filesystem(self) -> FilesystemStore:
        """Return the filesystem holding the OS files and package markers."""
        return self._fs

    # -- OS state -------------------------------------------------------------

    @property
    def os_version(self) -> str:
        """Return the installed OS version."""
        node = self._fs.get_file(OS_VERSION_PATH)
        return (node.content.strip() if node else "") or DEFAULT_OS_VERSION

    @property
    def os_branch(self) -> str:
        """Return the installed OS branch."""
        node = self._fs.get_file(OS_BRANCH_PATH)
        return (node.content.strip() if node else "") or DEFAULT_OS_BRANCH

    def installed_packages(self) -> list[str]:
        """Return the names of installed packages, sorted."""
        directory = self._fs.directory(PACKAGES_PATH)
        if directory is None:
            return []
        return sorted(
            name.removesuffix(PACKAGE_SUFFIX)
            for name in directory.children
            if name.endswith(PACKAGE_SUFFIX)
        )

    def is_installed(self, package: str) -> bool:
        """Return True if *package*'s marker exists."""
        return self._fs.get_file(f"{PACKAGES_PATH}/{package}{PACKAGE_SUFFIX}") is not None

    def _write_marker(self, package: str) -> None:
        self._fs.write_file(
            f"{PACKAGES_PATH}/{package}{PACKAGE_SUFFIX}",
            package_record(package, self.os_version, self.os_branch),
        )
        self._log(LogLevel.INFO, f"installed {package}")

    # -- Verbs ----------------------------------------------------------------

    def install(self, package: str | None) -> str:
        """Start installing *package*.

        Raises:
            MissingArgumentError: If no package was named.
            PackageAlreadyInstalledError: If the marker already exists.
            PackageNotFoundError: If the catalog has no such package.
            VersionTooLowError: If the OS is older than the branch minimum.
            BranchUnsupportedError: If the package skips this branch.

        """
        if not package:
            msg = "Missing package name"
            raise MissingArgumentError(msg)
        self._fs.ensure_system_files()
        if self.is_installed(package):
            msg = f"Package '{package}' is already installed."
            raise PackageAlreadyInstalledError(msg)

        version, branch = self.os_version, self.os_branch
        reason = unavailable_reason(package, version, branch)
        if reason is not None:
            branches = CATALOG.get(package)
            if branches is None:
                raise PackageNotFoundError(reason)
            if branch in branches:
                raise VersionTooLowError(reason)
            raise BranchUnsupportedError(reason)

        size_kb = PACKAGE_SIZES_KB.get(package, DEFAULT_PACKAGE_SIZE_KB)
        network = self._network.get(self.user_id)
        result = self._downloads.start(self.user_id, package, size_kb, network)
        if result.complete:
            self._write_marker(package)
            return f"{result.message}\nInstalled package: {package}"

        state = self._downloads.state(self.user_id, package)
        estimate = format_time(state.total_ms) if state else "unknown"
        return (
            f"Installing {package} ({format_size(size_kb)}, estimated {estimate})\n"
            f"{result.message}\n"
            "Run 'pkg status' to check progress."
        )

    def remove(self, package: str | None) -> str:
        """Uninstall *package*, cancelling any download of it first.

        Raises:
            MissingArgumentError: If no package was named.
            PackageNotFoundError: If it is neither installed nor downloading.

        """
        if not package:
            msg = "Missing package name"
            raise MissingArgumentError(msg)
        cancelled = self._downloads.cancel(self.user_id, package)
        if not self.is_installed(package):
            if cancelled:
                return f"Cancelled download: {package}"
            msg = f"Package not found: {package}"
            raise PackageNotFoundError(msg)
        self._fs.remove(f"{PACKAGES_PATH}/{package}{PACKAGE_SUFFIX}")
        self._log(LogLevel.INFO, f"removed {package}")
        return f"Removed package: {package}"

    def list_installed(self, page: int = 1) -> str:
        """Return one page of installed packages."""
        installed = self.installed_packages()
        if not installed:
            return "No packages installed."
        names, total = paginate(installed, page, self._config.list_page_size)
        return f"Installed Packages (Page {page}/{total}):\n" + "\n".join(names)

    def search(self, query: str | None = None, page: int = 1) -> str:
        """Return one page of installable packages matching *query*."""
        version, branch = self.os_version, self.os_branch
        matches = [
            name
            for name in sorted(CATALOG)
            if is_available(name, version, branch)
            and (not query or query.lower() in name.lower())
        ]
        names, total = paginate(matches, page, self._config.search_page_size)
        label = query.lower() if query else "all"
        if not names:
            return f'No matching packages found for "{label}".'
        header = (
            f'Search Results for "{label}" ({branch} branch, v{version}) '
            f"(Page {page}/{total}):"
        )
        return header + "\n" + "\n".join(names)

    def branches(self) -> str:
        """List every branch with its latest version, marking the current one."""
        current = self.os_branch
        lines = [
            f"{branch}: {version}" + (" (current)" if branch == current else "")
            for branch, version in OS_BRANCHES.items()
        ]
        return "Available branches:\n" + "\n".join(lines)

    def upgrade(self, branch: str | None = None) -> str:
        """Move the OS to the latest version of *branch* (default stable).

        Missing system files under ``/sys/os`` are restored on every
        upgrade, even a no-op one.

        Raises:
            UnknownBranchError: If *branch* is not a known branch.

        """
        target_branch = branch or STABLE
        if target_branch not in OS_BRANCHES:
            msg = (
                f"Unknown branch '{target_branch}'. "
                f"Available branches: {', '.join(OS_BRANCHES)}"
            )
            raise UnknownBranchError(msg)

        self._fs.ensure_system_files()
        current_version, current_branch = self.os_version, self.os_branch
        target_version = OS_BRANCHES[target_branch]
        if current_version == target_version and current_branch == target_branch:
            return f"Your system is already up to date on branch '{target_branch}'."

        downgrade = (
            current_branch == UNSTABLE
            and target_branch == STABLE
            and compare_versions(current_version, target_version) > 0
        )
        self._fs.write_file(OS_VERSION_PATH, target_version)
        self._fs.write_file(OS_BRANCH_PATH, target_branch)

        if downgrade:
            self._log(
                LogLevel.WARNING,
                f"downgraded {current_branch} {current_version} "
                f"-> {target_branch} {target_version}",
            )
            return (
                f"System downgraded from {current_branch} ({current_version}) to "
                f"{target_branch} ({target_version}). "
                "Note: Some features may no longer be available."
            )
        verb = "switched" if current_version == target_version else "upgraded"
        self._log(LogLevel.INFO, f"{verb} to {target_branch} {target_version}")
        return f"System {verb} successfully to version {target_version} ({target_branch} branch)."

    # -- Downloads ------------------------------------------------------------

    def poll(self) -> list[TickResult]:
        """Tick this user's downloads, writing markers for any that finished.

        Every finished download comes back with a ``notice``.  One whose
        marker cannot be written (the user has put something else at its
        path) comes back FAILED, with the reason in the notice.
        """
        return [
            self._finish(result) if result.complete else result
            for result in self._downloads.tick_user(self.user_id)
        ]

    def _finish(self, result: TickResult) -> TickResult:
        package = result.package
        self._fs.ensure_system_files()
        try:
            self._write_marker(package)
        except TerminalError as e:
            self._log(LogLevel.WARNING, f"{package}: marker not written: {e}")
            return replace(
                result,
                status=DownloadStatus.FAILED,
                notice=f"pkg: Failed to install {package}: {e}",
            )
        return replace(result, notice=f"Installed package: {package}")

    def status(self) -> str:
        """Tick this user's downloads and report where each one stands."""
        results = self.poll()
        if not results:
            return "No active downloads."
        lines: list[str] = []
        for result in results:
            lines.append(result.message)
            if result.notice:
                lines.append(result.notice)
        return "\n".join(lines)

    def _log(self, level: LogLevel, message: str) -> None:
        if self._logger is not None:
            self._logger.log(level, message, source="pkg", user_id=self.user_id)
