"""Tunable settings for the terminal simulator.

All knobs live in one frozen dataclass so a host can build a variant
(faster downloads for tests, longer history for a demo) with
``dataclasses.replace`` instead of monkey-patching module constants.
"""

import os
from dataclasses import dataclass
from pathlib import Path

DATA_DIR_ENV = "HAPPY_OS_DATA_DIR"
DEFAULT_DATA_DIR = Path.home() / ".happy_os"


@dataclass(frozen=True)
class TerminalConfig:
    """Limits and pacing constants shared by every subsystem.

    Attributes:
        history_size: Maximum history entries kept per user (FIFO eviction).
        max_content_length: Maximum characters a file may hold.
        list_page_size: Packages per page for ``pkg list``.
        search_page_size: Packages per page for ``pkg search``.
        download_steps: Number of equal-percentage progress steps.
        min_step_wait_ms: Floor for a freshly generated step's wait.
        min_recalc_wait_ms: Floor for a step recomputed after a config change.
        wait_variation: Fractional +/- jitter applied to every step wait.
        recheck_interval_ms: Pause between host-driven download rechecks.
        max_rechecks: Upper bound on rechecks scheduled after one command.

    """

    history_size: int = 16
    max_content_length: int = 10_000
    list_page_size: int = 5
    search_page_size: int = 6
    download_steps: int = 20
    min_step_wait_ms: int = 500
    min_recalc_wait_ms: int = 200
    wait_variation: float = 0.1
    recheck_interval_ms: int = 1000
    max_rechecks: int = 60


def data_dir() -> Path:
    """Return the directory the REPL persists user state in.

    ``$HAPPY_OS_DATA_DIR`` wins; otherwise ``~/.happy_os``.
    """
    override = os.environ.get(DATA_DIR_ENV)
    return Path(override) if override else DEFAULT_DATA_DIR
