"""Tests for the REPL helpers.

The pure helpers are tested directly; ``handle_host_command`` reads file
content from stdin, so ``input`` is patched for the edit action.
"""

from unittest.mock import patch

from happy_os.fs.persistence import MemoryStore
from happy_os.repl import build_prompt, format_banner, handle_host_command, read_content
from happy_os.terminal import EDIT_NOT_INSTALLED_MESSAGE, HISTORY_CLEARED_MESSAGE, Terminal

USER = "alice"


def _terminal(*, with_edit: bool = False) -> Terminal:
    """Create an offline terminal, optionally with ``edit`` installed."""
    terminal = Terminal(MemoryStore())
    terminal.execute(USER, USER, "net off")
    if with_edit:
        terminal.execute(USER, USER, "pkg install edit")
    return terminal


class TestBanner:
    """Verify the startup banner."""

    def test_greets_user(self) -> None:
        """The banner names the product and the user."""
        banner = format_banner(USER)
        assert "HappyOS" in banner
        assert f"Welcome, {USER}." in banner


class TestPrompt:
    """Verify the prompt follows the current directory."""

    def test_root(self) -> None:
        """A fresh user starts at the root."""
        assert build_prompt(Terminal(MemoryStore()), USER, USER) == "alice@happyphone:/$ "

    def test_after_cd(self) -> None:
        """Changing directory changes the prompt."""
        terminal = Terminal(MemoryStore())
        terminal.execute(USER, USER, "cd /sys")
        assert build_prompt(terminal, USER, USER) == "alice@happyphone:/sys$ "


class TestReadContent:
    """Verify multi-line content entry."""

    def test_stops_at_dot(self) -> None:
        """Lines are joined until a lone ``.``."""
        with patch("builtins.input", side_effect=["one", "two", ".", "ignored"]):
            assert read_content() == "one\ntwo"

    def test_stops_at_eof(self) -> None:
        """End of input also finishes the content."""
        with patch("builtins.input", side_effect=["only", EOFError]):
            assert read_content() == "only"


class TestHostCommands:
    """Verify the words the REPL handles itself."""

    def test_ordinary_command_passes_through(self) -> None:
        """Shell commands are not host actions."""
        assert handle_host_command(_terminal(), USER, USER, "ls /") is None
        assert handle_host_command(_terminal(), USER, USER, "") is None

    def test_history(self) -> None:
        """``history`` shows the screen."""
        terminal = _terminal()
        assert handle_host_command(terminal, USER, USER, "history") == terminal.screen(USER)

    def test_clear_history(self) -> None:
        """``clear-history`` empties it."""
        terminal = _terminal()
        assert handle_host_command(terminal, USER, USER, "clear-history") == HISTORY_CLEARED_MESSAGE
        assert terminal.history(USER) == []

    def test_edit_file(self) -> None:
        """``edit-file`` reads content and saves it."""
        terminal = _terminal(with_edit=True)
        with patch("builtins.input", side_effect=["hello", "."]):
            output = handle_host_command(terminal, USER, USER, "edit-file notes.txt")
        assert output == "Updated file: /notes.txt"
        assert terminal.staged_content(USER, "/notes.txt") == "hello"

    def test_edit_file_needs_package(self) -> None:
        """Without ``edit`` installed the action is refused."""
        with patch("builtins.input", side_effect=["."]):
            output = handle_host_command(_terminal(), USER, USER, "edit-file notes.txt")
        assert output == EDIT_NOT_INSTALLED_MESSAGE
