"""Tests for the tick-driven download simulator."""

import random
import threading

from happy_os.config import TerminalConfig
from happy_os.io.download import DownloadSimulator, DownloadStatus
from happy_os.io.network import NetworkConfig
from happy_os.logging import Logger, LogLevel

USER = "alice"
PACKAGE = "edit"
SIZE_KB = 8400
STEPS = 20
MIN_WAIT_MS = 500
MAX_WAIT_MS = 550  # 500 + 10 % variation
SAFE_ADVANCE_MS = 600
SHORT_WAIT_MS = 100
HUGE_WAIT_MS = 1_000_000
SLOW_SPEED = 0.5
HALF_STEPS = 5
CHURN_ROUNDS = 2000


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self) -> None:
        """Start at time zero."""
        self.now = 0.0

    def __call__(self) -> float:
        """Return the current time."""
        return self.now

    def advance(self, ms: float) -> None:
        """Move time forward."""
        self.now += ms


def _simulator(clock: FakeClock, logger: Logger | None = None) -> DownloadSimulator:
    """Create a simulator with a fake clock and a seeded random source."""
    return DownloadSimulator(clock=clock, rng=random.Random(7), logger=logger)


def _progresses(sim: DownloadSimulator) -> list[float]:
    state = sim.state(USER, PACKAGE)
    assert state is not None
    return [step.progress for step in state.steps]


class TestPlan:
    """Verify step generation."""

    def test_twenty_steps_of_five_percent(self) -> None:
        """A normal download is 20 steps ending at 100 %."""
        sim = _simulator(FakeClock())
        steps, total_ms = sim.plan(PACKAGE, SIZE_KB, NetworkConfig())
        assert len(steps) == STEPS
        assert [step.progress for step in steps] == [5.0 * (i + 1) for i in range(STEPS)]
        assert total_ms > 0
        assert steps[-1].terminal
        assert not any(step.terminal for step in steps[:-1])

    def test_waits_respect_minimum_and_variation(self) -> None:
        """Every wait is between the floor and floor + 10 %."""
        steps, _ = _simulator(FakeClock()).plan(PACKAGE, SIZE_KB, NetworkConfig())
        assert all(MIN_WAIT_MS <= step.wait_ms <= MAX_WAIT_MS for step in steps)

    def test_messages(self) -> None:
        """Progress steps name the package; the last reports the total."""
        steps, _ = _simulator(FakeClock()).plan(PACKAGE, SIZE_KB, NetworkConfig())
        assert steps[0].message.startswith("Downloading edit... 5.0%")
        assert steps[-1].message.startswith("Downloaded 8.20 MB in ")

    def test_disabled_is_single_terminal_step(self) -> None:
        """A disabled link produces one instant terminal step."""
        steps, total_ms = _simulator(FakeClock()).plan(PACKAGE, SIZE_KB, NetworkConfig(enabled=False))
        assert total_ms == 0
        assert len(steps) == 1
        assert steps[0].terminal
        assert steps[0].message == "Downloaded 8.20 MB instantly"


class TestLifecycle:
    """Verify start, tick and completion."""

    def test_instant_start_completes(self) -> None:
        """An instant download completes at once and registers nothing."""
        sim = _simulator(FakeClock())
        result = sim.start(USER, PACKAGE, SIZE_KB, NetworkConfig(enabled=False))
        assert result.complete
        assert not sim.has_active(USER)

    def test_start_shows_first_step(self) -> None:
        """A normal start is in progress at 5 %."""
        sim = _simulator(FakeClock())
        result = sim.start(USER, PACKAGE, SIZE_KB, NetworkConfig())
        assert result.status is DownloadStatus.IN_PROGRESS
        assert sim.state(USER, PACKAGE).progress == 5.0  # type: ignore[union-attr]  # noqa: PLR2004

    def test_tick_waits_for_step(self) -> None:
        """Ticking before the wait elapses changes nothing."""
        clock = FakeClock()
        sim = _simulator(clock)
        sim.start(USER, PACKAGE, SIZE_KB, NetworkConfig())
        clock.advance(SHORT_WAIT_MS)
        result = sim.tick(USER, PACKAGE)
        assert not result.advanced
        assert sim.state(USER, PACKAGE).current_index == 0  # type: ignore[union-attr]

    def test_never_skips_a_step(self) -> None:
        """However long the gap, one tick advances exactly one step."""
        clock = FakeClock()
        sim = _simulator(clock)
        sim.start(USER, PACKAGE, SIZE_KB, NetworkConfig())
        clock.advance(HUGE_WAIT_MS)
        result = sim.tick(USER, PACKAGE)
        assert result.advanced
        assert sim.state(USER, PACKAGE).current_index == 1  # type: ignore[union-attr]

    def test_runs_to_completion(self) -> None:
        """Nineteen timely ticks complete the download and drop its state."""
        clock = FakeClock()
        sim = _simulator(clock)
        sim.start(USER, PACKAGE, SIZE_KB, NetworkConfig())
        results = []
        for _ in range(STEPS - 1):
            clock.advance(SAFE_ADVANCE_MS)
            results.append(sim.tick(USER, PACKAGE))
        assert all(result.advanced for result in results)
        assert results[-1].complete
        assert not results[-2].complete
        assert sim.status(USER, PACKAGE) is DownloadStatus.NOT_STARTED

    def test_tick_unknown(self) -> None:
        """Ticking a download that does not exist reports NOT_STARTED."""
        result = _simulator(FakeClock()).tick(USER, "ghost")
        assert result.status is DownloadStatus.NOT_STARTED

    def test_start_replaces_existing(self) -> None:
        """Starting again restarts from the first step."""
        clock = FakeClock()
        sim = _simulator(clock)
        sim.start(USER, PACKAGE, SIZE_KB, NetworkConfig())
        clock.advance(SAFE_ADVANCE_MS)
        sim.tick(USER, PACKAGE)
        sim.start(USER, PACKAGE, SIZE_KB, NetworkConfig())
        assert sim.state(USER, PACKAGE).current_index == 0  # type: ignore[union-attr]
        assert sim.active_packages(USER) == [PACKAGE]

    def test_users_are_isolated(self) -> None:
        """One user's downloads are invisible to another."""
        sim = _simulator(FakeClock())
        sim.start(USER, PACKAGE, SIZE_KB, NetworkConfig())
        assert not sim.has_active("bob")
        assert sim.tick_user("bob") == []


class TestCancel:
    """Verify cancellation."""

    def test_cancel_is_idempotent(self) -> None:
        """Cancelling twice is safe; only the first discards anything."""
        logger = Logger()
        sim = _simulator(FakeClock(), logger)
        sim.start(USER, PACKAGE, SIZE_KB, NetworkConfig())
        assert sim.cancel(USER, PACKAGE)
        assert not sim.cancel(USER, PACKAGE)
        assert logger.filter(min_level=LogLevel.WARNING, source="download")


class TestReconfigure:
    """Verify re-planning after a network change."""

    def _halfway(self) -> tuple[FakeClock, DownloadSimulator]:
        clock = FakeClock()
        sim = _simulator(clock)
        sim.start(USER, PACKAGE, SIZE_KB, NetworkConfig())
        for _ in range(HALF_STEPS):
            clock.advance(SAFE_ADVANCE_MS)
            sim.tick(USER, PACKAGE)
        return clock, sim

    def test_disabled_completes_on_next_tick(self) -> None:
        """Turning the network off finishes the download on the next tick."""
        _, sim = self._halfway()
        assert sim.reconfigure(USER, NetworkConfig(enabled=False)) == 1
        result = sim.tick(USER, PACKAGE)
        assert result.complete
        assert result.message.endswith("instantly")

    def test_progress_kept_and_monotone(self) -> None:
        """Achieved progress is kept and the new plan still rises to 100 %."""
        _, sim = self._halfway()
        before = sim.state(USER, PACKAGE).progress  # type: ignore[union-attr]
        sim.reconfigure(USER, NetworkConfig(speed_mbps=SLOW_SPEED))
        progresses = _progresses(sim)
        assert sim.state(USER, PACKAGE).progress == before  # type: ignore[union-attr]
        assert progresses == sorted(set(progresses))
        assert progresses[-1] == 100.0  # noqa: PLR2004

    def test_slower_link_waits_longer(self) -> None:
        """A much slower link stretches the remaining waits."""
        _, sim = self._halfway()
        sim.reconfigure(USER, NetworkConfig(speed_mbps=SLOW_SPEED))
        state = sim.state(USER, PACKAGE)
        assert state is not None
        remaining = state.steps[state.current_index + 1 :]
        assert all(step.wait_ms > MAX_WAIT_MS for step in remaining)

    def test_no_downloads_no_work(self) -> None:
        """Re-planning a user with nothing in flight does nothing."""
        assert _simulator(FakeClock()).reconfigure(USER, NetworkConfig()) == 0


class TestConcurrentUsers:
    """Verify the registry under several users at once."""

    def test_queries_while_other_users_churn(self) -> None:
        """Readers never see the registry change size mid-iteration."""
        sim = _simulator(FakeClock())
        sim.start(USER, PACKAGE, SIZE_KB, NetworkConfig())
        errors: list[Exception] = []
        done = threading.Event()

        def _churn() -> None:
            for i in range(CHURN_ROUNDS):
                sim.start(f"b{i}", PACKAGE, SIZE_KB, NetworkConfig())
                sim.cancel(f"b{i - 1}", PACKAGE)
            done.set()

        def _read() -> None:
            try:
                while not done.is_set():
                    assert sim.has_active(USER)
                    assert sim.active_packages(USER) == [PACKAGE]
            except Exception as e:  # noqa: BLE001
                errors.append(e)

        reader = threading.Thread(target=_read)
        writer = threading.Thread(target=_churn)
        reader.start()
        writer.start()
        writer.join()
        reader.join()
        assert errors == []
