"""Context-aware tab completer for the HappyOS terminal.

The completer separates **what to complete** (pure logic, fully
testable) from **how to wire it** (readline integration in the REPL).

The ``complete(text, state)`` method is the readline callback.  It
delegates to ``completions(text, line)`` which looks at the input so far
and returns candidate strings from the user's own state: the commands
they can run, ``pkg``/``net`` subcommands, catalog package names, paths
in their filesystem and their ``$`` variables.
"""

from __future__ import annotations

import readline
from typing import TYPE_CHECKING

from happy_os.fs.nodes import DirectoryNode
from happy_os.packages import CATALOG

if TYPE_CHECKING:
    from happy_os.terminal import Terminal

# Commands whose argument is a filesystem path.
_PATH_COMMANDS: frozenset[str] = frozenset(["cd", "ls", "cat", "rm", "mkdir", "touch"])

# Commands that accept subcommands as a second word.
_SUBCOMMANDS: dict[str, list[str]] = {
    "pkg": ["install", "remove", "list", "search", "branches", "upgrade", "status"],
    "net": ["status", "speed", "latency", "jitter", "loss", "on", "off", "reset"],
}

# pkg verbs whose next word is a package name.
_PACKAGE_VERBS: frozenset[str] = frozenset(["install", "remove", "search"])

_SUBCOMMAND_POSITION = 2
_PACKAGE_POSITION = 3


class Completer:
    """Tab completer for one user's terminal session."""

    def __init__(self, terminal: Terminal, user_id: str) -> None:
        """Create a completer for *user_id*.

        Args:
            terminal: The terminal service the REPL talks to.
            user_id: Whose commands, files and variables to complete.

        """
        self._terminal = terminal
        self._user_id = user_id

    def complete(self, text: str, state: int) -> str | None:
        """Readline callback — return the *state*-th candidate for *text*.

        Args:
            text: The partial word being completed.
            state: Index into the candidate list (0, 1, 2, …).

        Returns:
            The candidate at *state*, or ``None`` when exhausted.

        """
        line = readline.get_line_buffer()
        candidates = self.completions(text, line)
        if state < len(candidates):
            return candidates[state]
        return None

    def completions(self, text: str, line: str) -> list[str]:
        """Return completion candidates based on context.

        Only the last ``&&`` segment of *line* is considered.

        Args:
            text: The partial word under the cursor.
            line: The full input line so far.

        Returns:
            Sorted list of matching candidates.

        """
        segment = line.rsplit("&&", 1)[-1]
        words = segment.lstrip().split()

        if not words or (len(words) == 1 and not segment.endswith(" ")):
            return self._complete_commands(text)

        return self._complete_argument(words, text, segment)

    # -- private completers ------------------------------------------------

    def _complete_argument(self, words: list[str], text: str, segment: str) -> list[str]:
        """Dispatch argument completion based on the command and context."""
        cmd = words[0].lower()
        position = len(words) + (1 if segment.endswith(" ") else 0)

        if cmd in _SUBCOMMANDS and position == _SUBCOMMAND_POSITION:
            return sorted(sub for sub in _SUBCOMMANDS[cmd] if sub.startswith(text))

        if cmd == "pkg" and position == _PACKAGE_POSITION and words[1] in _PACKAGE_VERBS:
            return sorted(name for name in CATALOG if name.startswith(text))

        if text.startswith("$"):
            return self._complete_variables(text)

        if text.startswith("/") or cmd in _PATH_COMMANDS:
            return self._complete_paths(text)

        return []

    def _complete_commands(self, text: str) -> list[str]:
        """Complete built-ins and installed programs."""
        shell = self._terminal.shell(self._user_id)
        names = shell.builtin_names + [
            name for name in shell.program_names if shell.packages.is_installed(name)
        ]
        return sorted(name for name in names if name.startswith(text))

    def _complete_variables(self, text: str) -> list[str]:
        """Complete ``$NAME`` references from the user's variables file."""
        prefix = text[1:]
        variables = self._terminal.shell(self._user_id).variables()
        return sorted(f"${name}" for name in variables if name.startswith(prefix))

    def _complete_paths(self, text: str) -> list[str]:
        """Complete paths in the user's filesystem.

        Split the partial path into a directory and a name prefix, list
        the directory and filter by prefix.  Directories get a trailing
        ``/``.  Relative paths complete against the current directory.
        """
        fs = self._terminal.filesystem(self._user_id)
        last_slash = text.rfind("/")
        directory_text = text[: last_slash + 1]
        prefix = text[last_slash + 1 :]

        directory = fs.directory(directory_text or ".")
        if directory is None:
            return []

        candidates: list[str] = []
        for name in directory.names():
            if name.startswith(prefix):
                suffix = "/" if isinstance(directory.children[name], DirectoryNode) else ""
                candidates.append(f"{directory_text}{name}{suffix}")
        return sorted(candidates)
