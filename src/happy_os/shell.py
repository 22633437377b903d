"""The shell — command interpreter for one user's terminal.

The shell reads a command line, turns it into commands and dispatches
each one to a handler that returns the text to show.

Processing a line happens in this order:

    1. **Variable substitution.**  ``$NAME`` is replaced using the
       ``$NAME=VALUE`` lines of ``/sys/os/.def-vars``.  Unknown names are
       left alone.
    2. **Chaining.**  The line is split on ``&&``.  Commands run left to
       right and the chain stops after the first one whose output looks
       like a failure (see ``FAILURE_SIGNATURES``).
    3. **Tokenizing.**  Whitespace separates tokens, except inside single
       or double quotes.  The first token, lower-cased, is the command.
    4. **Dispatch.**  Built-ins always run.  Programs run only when their
       package is installed.  Anything else is explained: available but
       not installed, gated by version or branch, or simply unknown.

Design choices:
    - **Returns strings, not prints.**  The caller decides how to show
      output, which keeps every command testable.
    - **Command dispatch via a dict.**  Adding a command means writing
      one ``_cmd_*`` method and one dict entry.
    - **Errors are exceptions below, strings here.**  Subsystems raise
      ``TerminalError`` with the user-facing text.  The shell catches it
      per command and prefixes the command name.
"""

import math
import random
import re
from collections.abc import Callable
from typing import TypeAlias

from happy_os.config import TerminalConfig
from happy_os.errors import MissingArgumentError, TerminalError
from happy_os.fs.filesystem import VARIABLES_PATH, FilesystemStore
from happy_os.io.download import DownloadSimulator
from happy_os.io.network import (
    MAX_PACKET_LOSS_PERCENT,
    NetworkConfig,
    NetworkConfigRegistry,
    describe,
    format_size,
    format_time,
    transfer_time_ms,
)
from happy_os.logging import Logger, LogLevel
from happy_os.packages import CATALOG, PackageManager, is_available, parse_page

# Type alias for a command handler: takes a list of args, returns output.
_Handler: TypeAlias = Callable[[list[str]], str]

CHAIN_SEPARATOR = "&&"

# Any output containing one of these stops an ``&&`` chain.
FAILURE_SIGNATURES: tuple[str, ...] = (
    "Command not found:",
    "is available but not installed",
    "pkg: Unknown",
    ": No such",
)

_TOKEN_PATTERN = re.compile(r"\"[^\"]*\"|'[^']*'|\S+")
_VARIABLE_PATTERN = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)\b")

_SSH_HANDSHAKE_KB = 4
_BROWSER_PAGE_KB = 256
HAPPYPHONE_MESSAGE = "Make it happy RN"
EDIT_MESSAGE = (
    'edit: Use the "edit-file" action (with the path of the file to edit) to use the edit command!'
)


def parse_variables(text: str) -> dict[str, str]:
    """Parse ``$NAME=VALUE`` lines into a name → value mapping.

    Lines without ``=`` are skipped; the value is everything after the
    first ``=``.
    """
    variables: dict[str, str] = {}
    for line in text.splitlines():
        name, sep, value = line.strip().partition("=")
        if sep and name.startswith("$") and len(name) > 1:
            variables[name[1:]] = value
    return variables


def substitute_variables(line: str, variables: dict[str, str]) -> str:
    """Replace whole-word ``$NAME`` references that *variables* defines."""

    def _replace(match: re.Match[str]) -> str:
        return variables.get(match.group(1), match.group(0))

    return _VARIABLE_PATTERN.sub(_replace, line)


def tokenize(command: str) -> list[str]:
    """Split *command* on whitespace, keeping quoted spans as one token."""
    tokens: list[str] = []
    for token in _TOKEN_PATTERN.findall(command):
        if len(token) >= 2 and token[0] == token[-1] and token[0] in "\"'":  # noqa: PLR2004
            tokens.append(token[1:-1])
        else:
            tokens.append(token)
    return tokens


def split_chain(line: str) -> list[str]:
    """Split *line* on ``&&``, dropping empty parts."""
    return [part.strip() for part in line.split(CHAIN_SEPARATOR) if part.strip()]


def is_command_failed(output: str) -> bool:
    """Return True if *output* should stop an ``&&`` chain."""
    return any(signature in output for signature in FAILURE_SIGNATURES)


class Shell:
    """Command interpreter bound to one user's filesystem for one line."""

    def __init__(
        self,
        *,
        fs: FilesystemStore,
        network: NetworkConfigRegistry,
        downloads: DownloadSimulator,
        config: TerminalConfig | None = None,
        rng: random.Random | None = None,
        logger: Logger | None = None,
    ) -> None:
        """Create a shell for the user that owns *fs*.

        Args:
            fs: The user's filesystem for this command line.
            network: Shared per-user network configs.
            downloads: Shared download registry.
            config: Limits and page sizes.
            rng: Jitter source for simulated network programs.
            logger: Optional event log.

        """
        self._fs = fs
        self._network = network
        self._downloads = downloads
        self._config = config or TerminalConfig()
        self._rng = rng or random.Random()
        self._logger = logger
        self._packages = PackageManager(
            fs,
            downloads=downloads,
            network=network,
            config=self._config,
            logger=logger,
        )

        # Built-ins: always available.
        self._commands: dict[str, _Handler] = {
            "cd": self._cmd_cd,
            "ls": self._cmd_ls,
            "touch": self._cmd_touch,
            "mkdir": self._cmd_mkdir,
            "rm": self._cmd_rm,
            "cat": self._cmd_cat,
            "pkg": self._cmd_pkg,
            "net": self._cmd_net,
            "test": self._cmd_test,
            "help": self._cmd_help,
        }

        # Programs: available once their package is installed.
        self._programs: dict[str, _Handler] = {
            "echo": self._prog_echo,
            "edit": self._prog_edit,
            "happyphone": self._prog_happyphone,
            "ssh": self._prog_ssh,
            "happybrowser": self._prog_happybrowser,
        }

        self._pkg_verbs: dict[str, _Handler] = {
            "install": self._pkg_install,
            "remove": self._pkg_remove,
            "list": self._pkg_list,
            "search": self._pkg_search,
            "branches": self._pkg_branches,
            "upgrade": self._pkg_upgrade,
            "status": self._pkg_status,
        }

    @property
    def user_id(self) -> str:
        """Return the id of the user this shell runs for."""
        return self._fs.user_id

    @property
    def filesystem(self) -> FilesystemStore:
        """Return the filesystem store this shell operates on."""
        return self._fs

    @property
    def packages(self) -> PackageManager:
        """Return the package manager bound to this user's filesystem."""
        return self._packages

    @property
    def builtin_names(self) -> list[str]:
        """Return the names of the built-in commands, sorted."""
        return sorted(self._commands)

    @property
    def program_names(self) -> list[str]:
        """Return the names of every installable program, sorted."""
        return sorted(self._programs)

    # -- Line processing --------------------------------------------------------

    def variables(self) -> dict[str, str]:
        """Return the user's variables from ``/sys/os/.def-vars``."""
        node = self._fs.get_file(VARIABLES_PATH)
        return parse_variables(node.content) if node else {}

    def execute_line(self, line: str) -> tuple[str, list[str]]:
        """Run a full command line.

        Returns:
            The line after variable substitution, and the outputs of the
            commands that ran (up to and including the first failure).

        """
        substituted = substitute_variables(line.strip(), self.variables())
        outputs: list[str] = []
        for command in split_chain(substituted):
            output = self.execute(command)
            outputs.append(output)
            if is_command_failed(output):
                break
        return substituted, outputs

    def execute(self, command: str) -> str:
        """Tokenize and dispatch a single command (no chaining)."""
        tokens = tokenize(command)
        if not tokens:
            return ""
        name, args = tokens[0].lower(), tokens[1:]
        self._log(LogLevel.DEBUG, f"dispatch {name} {args}")

        handler = self._commands.get(name)
        if handler is None and name in self._programs and self._packages.is_installed(name):
            handler = self._programs[name]
        if handler is None:
            return self._classify(name)
        try:
            return handler(args)
        except TerminalError as e:
            return f"{name}: {e}"

    def _classify(self, name: str) -> str:
        """Explain why *name* could not be run."""
        branches = CATALOG.get(name)
        if branches is None:
            return f"Command not found: {name}"
        version, branch = self._packages.os_version, self._packages.os_branch
        if is_available(name, version, branch):
            return (
                f"Command '{name}' is available but not installed. "
                f"Run 'pkg install {name}' first."
            )
        if branch in branches:
            return f"Command '{name}' requires {branch} version {branches[branch]} or later."
        return f"Command '{name}' is not available on the {branch} branch."

    # -- Built-ins --------------------------------------------------------------

    @staticmethod
    def _path_arg(args: list[str], what: str) -> str:
        """Join *args* into one path (names may contain spaces)."""
        if not args:
            msg = f"Missing {what}"
            raise MissingArgumentError(msg)
        return " ".join(args)

    def _cmd_cd(self, args: list[str]) -> str:
        """Change the current directory."""
        return self._fs.change_directory(" ".join(args) or None)

    def _cmd_ls(self, args: list[str]) -> str:
        """List a directory."""
        return self._fs.list_directory(" ".join(args) or None)

    def _cmd_touch(self, args: list[str]) -> str:
        """Create or truncate a file."""
        return self._fs.touch(self._path_arg(args, "filename"))

    def _cmd_mkdir(self, args: list[str]) -> str:
        """Create a directory."""
        return self._fs.make_directory(self._path_arg(args, "directory name"))

    def _cmd_rm(self, args: list[str]) -> str:
        """Remove a file or directory."""
        return self._fs.remove(self._path_arg(args, "filename"))

    def _cmd_cat(self, args: list[str]) -> str:
        """Print a file."""
        return self._fs.read_file(self._path_arg(args, "filename"))

    def _cmd_test(self, args: list[str]) -> str:
        """Echo the parsed arguments (handy for checking quoting)."""
        return f"Test command executed with args: {' '.join(args)}"

    def _cmd_help(self, _args: list[str]) -> str:
        """List the commands this user can run."""
        installed = [name for name in self.program_names if self._packages.is_installed(name)]
        return "\n".join(
            [
                "Built-in commands: " + ", ".join(self.builtin_names),
                "Installed programs: " + (", ".join(installed) or "none"),
                "Run 'pkg search' to find more programs.",
            ]
        )

    # -- pkg --------------------------------------------------------------------

    def _cmd_pkg(self, args: list[str]) -> str:
        """Dispatch a package-manager verb."""
        if not args:
            return "pkg: Usage: pkg <" + "|".join(self._pkg_verbs) + ">"
        verb = args[0].lower()
        handler = self._pkg_verbs.get(verb)
        if handler is None:
            return f"pkg: Unknown command '{verb}'. Available: {', '.join(self._pkg_verbs)}"
        return handler(args[1:])

    def _pkg_install(self, args: list[str]) -> str:
        return self._packages.install(args[0].lower() if args else None)

    def _pkg_remove(self, args: list[str]) -> str:
        return self._packages.remove(args[0].lower() if args else None)

    def _pkg_list(self, args: list[str]) -> str:
        return self._packages.list_installed(parse_page(args))

    def _pkg_search(self, args: list[str]) -> str:
        query = args[0] if args and not args[0].startswith("--") else None
        return self._packages.search(query, parse_page(args))

    def _pkg_branches(self, _args: list[str]) -> str:
        return self._packages.branches()

    def _pkg_upgrade(self, args: list[str]) -> str:
        flags = [arg[2:].lower() for arg in args if arg.startswith("--")]
        return self._packages.upgrade(flags[0] if flags else None)

    def _pkg_status(self, _args: list[str]) -> str:
        return self._packages.status()

    # -- net --------------------------------------------------------------------

    def _cmd_net(self, args: list[str]) -> str:
        """Show or tune the simulated network link."""
        setting = args[0].lower() if args else "status"
        config = self._network.get(self.user_id)
        if setting == "status":
            return describe(config)
        if setting == "reset":
            return self._apply_network(NetworkConfig(), "Network settings reset to defaults.")
        if setting in ("on", "off"):
            config.enabled = setting == "on"
            state = "enabled" if config.enabled else "disabled"
            return self._apply_network(config, f"Network {state}.")

        limits = {
            "speed": ("speed_mbps", "Mbps"),
            "latency": ("latency_ms", "ms"),
            "jitter": ("jitter_ms", "ms"),
            "loss": ("packet_loss_percent", "%"),
        }
        if setting not in limits:
            return (
                f"net: Unknown setting '{setting}'. "
                "Available: status, speed, latency, jitter, loss, on, off, reset"
            )
        if len(args) < 2:  # noqa: PLR2004
            return f"net: Usage: net {setting} <value>"
        try:
            value = float(args[1])
        except ValueError:
            return f"net: Invalid number '{args[1]}'"
        if not math.isfinite(value):
            return f"net: Invalid number '{args[1]}'"

        field, unit = limits[setting]
        if setting == "speed" and value <= 0:
            return "net: Speed must be greater than 0"
        if setting in ("latency", "jitter") and value < 0:
            return f"net: {setting.capitalize()} cannot be negative"
        if setting == "loss":
            value = min(max(value, 0.0), MAX_PACKET_LOSS_PERCENT)
        setattr(config, field, value)
        separator = "" if unit == "%" else " "
        return self._apply_network(config, f"Network {setting} set to {value:g}{separator}{unit}.")

    def _apply_network(self, config: NetworkConfig, message: str) -> str:
        """Save *config* and re-plan this user's downloads under it."""
        self._network.save(self.user_id, config)
        replanned = self._downloads.reconfigure(self.user_id, config)
        if replanned:
            message += f"\nRecalculated {replanned} active download(s)."
        return message

    # -- Programs ---------------------------------------------------------------

    def _prog_echo(self, args: list[str]) -> str:
        """Print words, or write them to a file with ``>`` / ``>>``."""
        for operator, append in ((">>", True), (">", False)):
            if operator in args:
                index = args.index(operator)
                content = " ".join(args[:index])
                path = " ".join(args[index + 1 :])
                if not path:
                    msg = "Missing filename"
                    raise MissingArgumentError(msg)
                existing = self._fs.get_file(path)
                if append and existing is not None and existing.content:
                    content = "\n" + content
                try:
                    written = self._fs.write_file(path, content, append=append)
                except TerminalError as e:
                    return f"Error: {e}"
                return f"Written to {written}"
        content = " ".join(args)
        if len(content) > self._fs.max_content_length:
            limit = self._fs.max_content_length
            return f"Error: File content exceeds the limit of {limit} characters."
        return content

    def _prog_edit(self, _args: list[str]) -> str:
        return EDIT_MESSAGE

    def _prog_happyphone(self, _args: list[str]) -> str:
        return HAPPYPHONE_MESSAGE

    def _prog_ssh(self, args: list[str]) -> str:
        """Pretend to open a session to a host."""
        if not args:
            msg = "Missing host"
            raise MissingArgumentError(msg)
        host = args[0]
        config = self._network.get(self.user_id)
        if not config.enabled:
            return f"ssh: connect to host {host}: Network is unreachable"
        elapsed = transfer_time_ms(_SSH_HANDSHAKE_KB, config, self._rng)
        return "\n".join(
            [
                f"Connecting to {host}...",
                f"Connected to {host} in {format_time(elapsed)}.",
                f"Connection to {host} closed.",
            ]
        )

    def _prog_happybrowser(self, args: list[str]) -> str:
        """Pretend to fetch a page."""
        if not args:
            msg = "Missing URL"
            raise MissingArgumentError(msg)
        url = args[0]
        config = self._network.get(self.user_id)
        if not config.enabled:
            return f"happybrowser: Unable to reach {url}: Network is disabled"
        elapsed = transfer_time_ms(_BROWSER_PAGE_KB, config, self._rng)
        size = format_size(_BROWSER_PAGE_KB)
        return f"Fetching {url}...\nLoaded {url} ({size}) in {format_time(elapsed)}."

    def _log(self, level: LogLevel, message: str) -> None:
        if self._logger is not None:
            self._logger.log(level, message, source="terminal", user_id=self.user_id)
