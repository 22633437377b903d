"""Interactive REPL (Read-Eval-Print Loop) for the HappyOS terminal.

The REPL stands in for a chat front end.  It runs one local user against
a terminal whose state lives in JSON files, and enters the classic loop:

    1. **Read** — display the prompt and read a command line.
    2. **Eval** — pass it to ``terminal.execute()``.
    3. **Print** — display the output.
    4. **Watch** — while a package download is running, keep printing
       its progress until it finishes (Ctrl+C stops watching, not the
       download).
    5. **Loop** — repeat until ``exit`` or Ctrl+D.

A few words are handled here rather than by the shell because they are
host actions, not commands: ``exit``, ``history``, ``clear-history``
and ``edit-file <path>``.

The helper functions (``format_banner``, ``build_prompt``) are pure and
testable.  The ``run()`` function is the I/O entrypoint.
"""

import getpass
import readline
import sys

from happy_os.completer import Completer
from happy_os.config import data_dir
from happy_os.fs.persistence import JsonFileStore
from happy_os.terminal import Terminal, prompt

_BANNER_WIDTH = 38
EXIT_COMMANDS = frozenset(["exit", "quit"])
EDIT_COMMAND = "edit-file"


def format_banner(username: str) -> str:
    """Return the greeting printed when the REPL starts."""
    border = "=" * _BANNER_WIDTH
    header = f"\n  {border}\n            HappyOS v1.0.0\n      A pocket terminal simulator\n  {border}\n"
    footer = f"\nWelcome, {username}. Type 'help' for commands, 'exit' to quit.\n"
    return header + footer


def build_prompt(terminal: Terminal, user_id: str, username: str) -> str:
    """Build the prompt string showing the user and current directory.

    Returns:
        A prompt like ``alice@happyphone:/sys$ ``.

    """
    return prompt(username, terminal.filesystem(user_id).current_dir)


def read_content() -> str:
    """Read file content from stdin until a line containing only ``.``."""
    lines: list[str] = []
    while True:
        try:
            line = input()
        except EOFError:
            break
        if line == ".":
            break
        lines.append(line)
    return "\n".join(lines)


def handle_host_command(terminal: Terminal, user_id: str, username: str, line: str) -> str | None:
    """Run *line* if it is a host action rather than a shell command.

    Returns:
        The action's output, or None if *line* is an ordinary command.

    """
    words = line.split(maxsplit=1)
    if not words:
        return None
    name = words[0].lower()
    if name == "history":
        return terminal.view_history(user_id)
    if name == "clear-history":
        return terminal.clear_history(user_id)
    if name == EDIT_COMMAND:
        path = words[1] if len(words) > 1 else ""
        staged = terminal.staged_content(user_id, path) if path else ""
        if staged:
            print(staged)  # noqa: T201
        print("Enter the new content, then a line with a single '.':")  # noqa: T201
        return terminal.edit_file(user_id, username, path, read_content())
    return None


def run() -> None:
    """Run the interactive REPL for the local user.

    This is the main entrypoint.  It handles:
    - Opening the JSON store in ``$HAPPY_OS_DATA_DIR``.
    - Tab completion via readline.
    - The read-eval-print loop and download watching.
    - Graceful handling of Ctrl+C and Ctrl+D.
    """
    username = getpass.getuser()
    user_id = username
    terminal = Terminal(JsonFileStore(data_dir()))

    completer = Completer(terminal, user_id)
    readline.set_completer(completer.complete)
    readline.set_completer_delims(" \t")
    readline.parse_and_bind("tab: complete")

    print(format_banner(username))  # noqa: T201

    try:
        while True:
            try:
                line = input(build_prompt(terminal, user_id, username)).strip()
            except EOFError:
                # Ctrl+D exits
                print()  # noqa: T201
                break

            if line.lower() in EXIT_COMMANDS:
                break

            result = handle_host_command(terminal, user_id, username, line)
            if result is None:
                result = terminal.execute(user_id, username, line)
            if result:
                print(result)  # noqa: T201

            try:
                terminal.watch_downloads(
                    user_id,
                    on_update=lambda messages: print("\n".join(messages)),  # noqa: T201
                )
            except KeyboardInterrupt:
                print("\nStopped watching. Run 'pkg status' to check progress.")  # noqa: T201

    except KeyboardInterrupt:
        # Ctrl+C exits
        print("\nInterrupted.")  # noqa: T201

    finally:
        sys.stdout.flush()
