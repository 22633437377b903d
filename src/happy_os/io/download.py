"""Download simulator — package installs as a paced sequence of steps.

Installing a package is not instant: its size and the user's simulated
link decide how long the "download" takes, and the user watches it
progress in 5 % increments.  There is no background thread.  The state
machine only moves when the host *ticks* it::

    NOT_STARTED ──start()──▶ IN_PROGRESS(step i) ──tick()──▶ ... ──▶ COMPLETE

- ``start()`` computes the total transfer time and splits it into steps.
  Each step carries its progress, display message and the wait that must
  elapse before the *next* step may be shown.  A disabled link (or a
  zero transfer time) completes at once with a single terminal step.
- ``tick()`` advances **at most one step**, and only once the current
  step's wait has elapsed since the last advance.  Ticking faster never
  skips ahead; ticking slower never catches up more than one step.
- Reaching the terminal step completes the download: the live state is
  discarded and the caller writes the installed marker.
- ``reconfigure()`` re-plans the not-yet-shown steps after the user
  changes their network settings.  Progress already achieved is kept and
  already-elapsed time is never replayed.

All live state sits in this object's registry, keyed by
``(user_id, package)`` and guarded by a re-entrant lock; a threaded host
may call in for several users at once.  It is never persisted: a restart
forgets every in-flight download, leaving those packages uninstalled.
"""

from __future__ import annotations

import math
import random
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import StrEnum
from time import monotonic

from happy_os.config import TerminalConfig
from happy_os.io.network import NetworkConfig, format_size, format_time, transfer_time_ms
from happy_os.logging import Logger, LogLevel

FULL_PROGRESS = 100.0


def _monotonic_ms() -> float:
    return monotonic() * 1000


class DownloadStatus(StrEnum):
    """Lifecycle of one package download."""

    NOT_STARTED = "not started"
    IN_PROGRESS = "in progress"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class Step:
    """One progress increment.

    Attributes:
        progress: Percentage reached when this step is shown.
        message: Text shown to the user for this step.
        wait_ms: Time that must pass before the following step is shown.
        terminal: True for the final (100 %) step.

    """

    progress: float
    message: str
    wait_ms: int
    terminal: bool = False


@dataclass
class DownloadState:
    """A download in flight."""

    package: str
    size_kb: float
    total_ms: int
    steps: list[Step]
    current_index: int = 0
    last_update_ms: float = 0.0

    @property
    def current_step(self) -> Step:
        """Return the step currently shown."""
        return self.steps[self.current_index]

    @property
    def progress(self) -> float:
        """Return the percentage reached so far."""
        return self.current_step.progress


@dataclass(frozen=True)
class TickResult:
    """What a start or tick produced.

    Attributes:
        package: The package concerned.
        message: The message of the step now shown (empty if NOT_STARTED).
        status: The download's status after this call.
        advanced: True if a new step was reached by this call.
        notice: Follow-up line for the user once a finished download has
            been handled (installed, or why it could not be).

    """

    package: str
    message: str
    status: DownloadStatus
    advanced: bool = False
    notice: str = ""

    @property
    def complete(self) -> bool:
        """Return True if the download finished with this call."""
        return self.status is DownloadStatus.COMPLETE


class DownloadSimulator:
    """Registry and state machine for every live download."""

    def __init__(
        self,
        *,
        config: TerminalConfig | None = None,
        clock: Callable[[], float] | None = None,
        rng: random.Random | None = None,
        logger: Logger | None = None,
    ) -> None:
        """Create an empty simulator.

        Args:
            config: Step count, minimum waits and wait variation.
            clock: Returns the current time in milliseconds.
            rng: Source of jitter (seed it for reproducible tests).
            logger: Optional event log.

        """
        self._config = config or TerminalConfig()
        self._clock = clock or _monotonic_ms
        self._rng = rng or random.Random()
        self._logger = logger
        self._active: dict[tuple[str, str], DownloadState] = {}
        self._lock = threading.RLock()

    # -- Planning ---------------------------------------------------------------

    def _vary(self, base_ms: float, floor_ms: int) -> int:
        """Apply the +/- wait variation to *base_ms*, never going below *floor_ms*."""
        variation = self._config.wait_variation
        return max(floor_ms, round(base_ms * (1 + self._rng.uniform(-variation, variation))))

    @staticmethod
    def _progress_message(package: str, size_kb: float, progress: float) -> str:
        done_kb = round(size_kb * progress / 100, 1)
        return (
            f"Downloading {package}... {progress:.1f}% ({format_size(done_kb)}/{format_size(size_kb)})"
        )

    @staticmethod
    def _instant_step(size_kb: float) -> Step:
        return Step(
            progress=FULL_PROGRESS,
            message=f"Downloaded {format_size(size_kb)} instantly",
            wait_ms=0,
            terminal=True,
        )

    def plan(self, package: str, size_kb: float, network: NetworkConfig) -> tuple[list[Step], int]:
        """Build the full step list for a fresh download.

        Returns:
            ``(steps, total_ms)``.  An instant download is one terminal step.

        """
        total_ms = transfer_time_ms(size_kb, network, self._rng)
        if total_ms == 0 or not network.enabled:
            return [self._instant_step(size_kb)], 0

        count = self._config.download_steps
        floor = self._config.min_step_wait_ms
        increment = FULL_PROGRESS / count
        base_wait = max(floor, round(total_ms / count))
        steps: list[Step] = []
        for i in range(count):
            progress = (i + 1) * increment
            terminal = i == count - 1
            message = (
                f"Downloaded {format_size(size_kb)} in {format_time(total_ms)}"
                if terminal
                else self._progress_message(package, size_kb, progress)
            )
            steps.append(
                Step(
                    progress=progress,
                    message=message,
                    wait_ms=self._vary(base_wait, floor),
                    terminal=terminal,
                )
            )
        return steps, total_ms

    # -- Lifecycle ----------------------------------------------------------------

    def start(
        self,
        user_id: str,
        package: str,
        size_kb: float,
        network: NetworkConfig,
    ) -> TickResult:
        """Begin downloading *package*, replacing any existing download of it.

        Returns:
            COMPLETE for an instant download (nothing is registered),
            otherwise IN_PROGRESS showing the first step.

        """
        with self._lock:
            self.cancel(user_id, package)
            steps, total_ms = self.plan(package, size_kb, network)
            first = steps[0]
            if first.terminal:
                self._log(LogLevel.INFO, f"{package}: instant download", user_id)
                return TickResult(package, first.message, DownloadStatus.COMPLETE, advanced=True)

            self._active[(user_id, package)] = DownloadState(
                package=package,
                size_kb=size_kb,
                total_ms=total_ms,
                steps=steps,
                last_update_ms=self._clock(),
            )
        self._log(LogLevel.INFO, f"{package}: download started ({len(steps)} steps)", user_id)
        return TickResult(package, first.message, DownloadStatus.IN_PROGRESS, advanced=True)

    def tick(self, user_id: str, package: str) -> TickResult:
        """Advance *package*'s download by at most one step.

        Returns:
            NOT_STARTED if there is no live download; otherwise the step
            now shown, with ``advanced`` telling whether it is new.

        """
        with self._lock:
            state = self._active.get((user_id, package))
            if state is None:
                return TickResult(package, "", DownloadStatus.NOT_STARTED)

            now = self._clock()
            if now - state.last_update_ms < state.current_step.wait_ms:
                return TickResult(package, state.current_step.message, DownloadStatus.IN_PROGRESS)

            state.current_index += 1
            state.last_update_ms = now
            step = state.current_step
            if step.terminal:
                del self._active[(user_id, package)]
        if step.terminal:
            self._log(LogLevel.INFO, f"{package}: download complete", user_id)
            return TickResult(package, step.message, DownloadStatus.COMPLETE, advanced=True)
        return TickResult(package, step.message, DownloadStatus.IN_PROGRESS, advanced=True)

    def tick_user(self, user_id: str) -> list[TickResult]:
        """Tick every live download belonging to *user_id*, in name order."""
        return [self.tick(user_id, package) for package in self.active_packages(user_id)]

    def cancel(self, user_id: str, package: str) -> bool:
        """Discard *package*'s live download.  Safe to call when there is none.

        Returns:
            True if a download was actually discarded.

        """
        with self._lock:
            if self._active.pop((user_id, package), None) is None:
                return False
        self._log(LogLevel.WARNING, f"{package}: download cancelled", user_id)
        return True

    def reconfigure(self, user_id: str, network: NetworkConfig) -> int:
        """Re-plan the remaining steps of every live download for *user_id*.

        The step currently shown keeps its progress and message; its wait
        and every later step are recomputed from the remaining size under
        *network*.  A disabled link collapses the remainder into a single
        terminal step reached on the next tick.

        Returns:
            The number of downloads re-planned.

        """
        with self._lock:
            packages = self.active_packages(user_id)
            for package in packages:
                self._replan(self._active[(user_id, package)], network)
        if packages:
            self._log(LogLevel.INFO, f"re-planned {len(packages)} download(s)", user_id)
        return len(packages)

    def _replan(self, state: DownloadState, network: NetworkConfig) -> None:
        achieved = state.progress
        kept = state.steps[: state.current_index]
        current = state.current_step
        remaining_kb = state.size_kb * (FULL_PROGRESS - achieved) / 100
        remaining_ms = transfer_time_ms(remaining_kb, network, self._rng)

        if remaining_ms == 0 or not network.enabled:
            state.steps = [*kept, replace(current, wait_ms=0), self._instant_step(state.size_kb)]
            return

        increment = FULL_PROGRESS / self._config.download_steps
        count = max(1, math.ceil(round(FULL_PROGRESS - achieved, 6) / increment))
        share = (FULL_PROGRESS - achieved) / count
        floor = self._config.min_recalc_wait_ms
        base_wait = max(floor, round(remaining_ms / count))
        total_ms = round(remaining_ms + achieved / 100 * state.total_ms)

        new_steps: list[Step] = []
        for i in range(count):
            progress = min(achieved + (i + 1) * share, FULL_PROGRESS)
            terminal = i == count - 1
            message = (
                f"Downloaded {format_size(state.size_kb)} in {format_time(total_ms)}"
                if terminal
                else self._progress_message(state.package, state.size_kb, progress)
            )
            new_steps.append(
                Step(
                    progress=progress,
                    message=message,
                    wait_ms=self._vary(base_wait, floor),
                    terminal=terminal,
                )
            )
        state.total_ms = total_ms
        state.steps = [*kept, replace(current, wait_ms=self._vary(base_wait, floor)), *new_steps]

    # -- Queries ------------------------------------------------------------------

    def state(self, user_id: str, package: str) -> DownloadState | None:
        """Return the live state for *package*, or None."""
        with self._lock:
            return self._active.get((user_id, package))

    def status(self, user_id: str, package: str) -> DownloadStatus:
        """Return IN_PROGRESS if *package* is downloading, else NOT_STARTED."""
        with self._lock:
            if (user_id, package) in self._active:
                return DownloadStatus.IN_PROGRESS
        return DownloadStatus.NOT_STARTED

    def active_packages(self, user_id: str) -> list[str]:
        """Return the names of *user_id*'s live downloads, sorted."""
        with self._lock:
            return sorted(package for owner, package in self._active if owner == user_id)

    def has_active(self, user_id: str) -> bool:
        """Return True if *user_id* has any live download."""
        with self._lock:
            return any(owner == user_id for owner, _package in self._active)

    def _log(self, level: LogLevel, message: str, user_id: str) -> None:
        if self._logger is not None:
            self._logger.log(level, message, source="download", user_id=user_id)
