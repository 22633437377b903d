"""Terminal service — the single entry point the hosts talk to.

A host (the REPL, the web API, or a chat bot) hands the terminal one
command line plus the user's id and display name, and shows back the
text it returns.  The terminal owns everything that outlives a single
command line:

    - the **network config registry** (persisted, cached),
    - the **download simulator** (live state, never persisted),
    - the **log buffer**, shared with every subsystem,
    - each user's **history** (bounded, persisted).

Everything that belongs to one command line (the user's filesystem
snapshot and the shell bound to it) is built fresh per call and thrown
away afterwards.  Hosts must not run two command lines for the same user
at once.

Each line produces a prompt-echo history entry
(``<username>@happyphone:<cwd>$ <line>``) and, when anything was
printed, one combined output entry.  The history keeps only the newest
entries (16 by default).
"""

import random
import time
from collections import deque
from collections.abc import Callable

from happy_os.config import TerminalConfig
from happy_os.errors import TerminalError
from happy_os.fs.filesystem import FilesystemStore
from happy_os.fs.persistence import Store, Table
from happy_os.io.download import DownloadSimulator
from happy_os.io.network import NetworkConfigRegistry
from happy_os.logging import Logger, LogLevel
from happy_os.shell import Shell

HOSTNAME = "happyphone"
HISTORY_CLEARED_MESSAGE = "History cleared"
EDIT_NOT_INSTALLED_MESSAGE = (
    'Error: The "edit" package is not installed. Please install it via pkg install edit.'
)


def prompt(username: str, cwd: str) -> str:
    """Return the prompt shown before a command line."""
    return f"{username}@{HOSTNAME}:{cwd}$ "


class Terminal:
    """Per-process terminal service shared by every user."""

    def __init__(
        self,
        store: Store,
        *,
        config: TerminalConfig | None = None,
        clock: Callable[[], float] | None = None,
        rng: random.Random | None = None,
        logger: Logger | None = None,
    ) -> None:
        """Create a terminal over *store*.

        Args:
            store: Persistence for histories, filesystems and network configs.
            config: Tunables (history size, limits, download pacing).
            clock: Millisecond clock for downloads (monotonic by default).
            rng: Random source for network jitter.
            logger: Log buffer (a new one is created if omitted).

        """
        self._store = store
        self._config = config or TerminalConfig()
        self._rng = rng or random.Random()
        self._logger = logger or Logger()
        self._network = NetworkConfigRegistry(store, logger=self._logger)
        self._downloads = DownloadSimulator(
            config=self._config, clock=clock, rng=self._rng, logger=self._logger
        )

    @property
    def config(self) -> TerminalConfig:
        """Return the terminal's tunables."""
        return self._config

    @property
    def logger(self) -> Logger:
        """Return the shared log buffer."""
        return self._logger

    @property
    def network(self) -> NetworkConfigRegistry:
        """Return the network config registry."""
        return self._network

    @property
    def downloads(self) -> DownloadSimulator:
        """Return the download simulator."""
        return self._downloads

    def filesystem(self, user_id: str) -> FilesystemStore:
        """Return a fresh filesystem store bound to *user_id*."""
        return FilesystemStore(self._store, user_id, config=self._config, logger=self._logger)

    def shell(self, user_id: str) -> Shell:
        """Return a shell bound to a fresh filesystem store for *user_id*."""
        return Shell(
            fs=self.filesystem(user_id),
            network=self._network,
            downloads=self._downloads,
            config=self._config,
            rng=self._rng,
            logger=self._logger,
        )

    # -- History ----------------------------------------------------------------

    def history(self, user_id: str) -> list[str]:
        """Return the user's history entries, oldest first."""
        return list(self._store.load(Table.HISTORIES, user_id, []))

    def _append_history(self, user_id: str, *entries: str) -> list[str]:
        history: deque[str] = deque(self.history(user_id), maxlen=self._config.history_size)
        history.extend(entries)
        saved = list(history)
        self._store.save(Table.HISTORIES, user_id, saved)
        return saved

    def screen(self, user_id: str) -> str:
        """Render the history block a host shows after each command."""
        return "\n".join(self.history(user_id))

    def view_history(self, user_id: str) -> str:
        """Return the history block without running anything."""
        return self.screen(user_id)

    def clear_history(self, user_id: str) -> str:
        """Forget the user's history."""
        self._store.save(Table.HISTORIES, user_id, [])
        self._logger.log(LogLevel.INFO, "history cleared", source="terminal", user_id=user_id)
        return HISTORY_CLEARED_MESSAGE

    # -- Commands ---------------------------------------------------------------

    def execute(self, user_id: str, username: str, line: str) -> str:
        """Run one command line for *user_id* and record it in their history.

        Pending downloads are ticked first, so an install that finished
        while the user was idle is reported with the next command.

        Returns:
            The combined output of the commands that ran.

        """
        shell = self.shell(user_id)
        notices = [result.notice for result in shell.packages.poll() if result.notice]
        cwd = shell.filesystem.current_dir
        substituted, outputs = shell.execute_line(line)
        combined = "\n".join(output for output in [*notices, *outputs] if output)

        entries = [prompt(username, cwd) + substituted]
        if combined:
            entries.append(combined)
        self._append_history(user_id, *entries)
        self._logger.log(
            LogLevel.DEBUG, f"executed {substituted!r}", source="terminal", user_id=user_id
        )
        return combined

    def staged_content(self, user_id: str, path: str) -> str:
        """Return the text an editing UI should start from for *path*."""
        return self.filesystem(user_id).staged_content(path)

    def edit_file(self, user_id: str, username: str, path: str, content: str) -> str:
        """Replace a file's content on behalf of an editing UI.

        Requires the ``edit`` package.  Failures are reported (prefixed
        with ``Error:``) but not recorded in the history.
        """
        shell = self.shell(user_id)
        if not shell.packages.is_installed("edit"):
            return EDIT_NOT_INSTALLED_MESSAGE
        if not path.strip():
            return "edit: No filename provided!"
        fs = shell.filesystem
        cwd = fs.current_dir
        try:
            full_path = fs.write_file(path.strip(), content)
        except TerminalError as e:
            return f"Error: {e}"
        output = f"Updated file: {full_path}"
        self._append_history(user_id, prompt(username, cwd) + f"edit-file {path.strip()}", output)
        return output

    # -- Downloads --------------------------------------------------------------

    def has_active_downloads(self, user_id: str) -> bool:
        """Return True if *user_id* has a download in flight."""
        return self._downloads.has_active(user_id)

    def poll_downloads(self, user_id: str) -> list[str]:
        """Tick the user's downloads once.

        Returns:
            One message per step reached by this tick.  A finished
            download also adds its notice (``Installed package: <name>``,
            or why the install failed).

        """
        messages: list[str] = []
        for result in self.shell(user_id).packages.poll():
            if result.advanced:
                messages.append(result.message)
            if result.notice:
                messages.append(result.notice)
        if messages:
            self._append_history(user_id, "\n".join(messages))
        return messages

    def watch_downloads(
        self,
        user_id: str,
        *,
        on_update: Callable[[list[str]], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> int:
        """Recheck the user's downloads until none are left, within a bound.

        Sleeps ``recheck_interval_ms`` between checks and gives up after
        ``max_rechecks``; whatever is still running keeps going and is
        picked up by a later command.

        Args:
            user_id: Whose downloads to watch.
            on_update: Called with the new messages whenever a check
                produced any.
            sleep: Sleep function, replaced in tests.

        Returns:
            The number of checks performed.

        """
        checks = 0
        while checks < self._config.max_rechecks and self.has_active_downloads(user_id):
            sleep(self._config.recheck_interval_ms / 1000)
            checks += 1
            messages = self.poll_downloads(user_id)
            if messages and on_update is not None:
                on_update(messages)
        return checks
