"""Tests for the simulated network link and its registry."""

import random
import threading

from happy_os.fs.persistence import MemoryStore, Table
from happy_os.io.network import (
    DEFAULT_LATENCY_MS,
    DEFAULT_SPEED_MBPS,
    NetworkConfig,
    NetworkConfigRegistry,
    describe,
    format_size,
    format_time,
    transfer_time_ms,
)
from happy_os.logging import Logger

USER = "alice"
EDIT_SIZE_KB = 8400
EDIT_DEFAULT_MS = 154  # 8400 * 8 / 500_000 * 1000 + 20, rounded
SLOW_SPEED = 1.0
JITTER_MS = 50.0
THREADS = 8
ROUNDS_PER_USER = 200


class TestTransferTime:
    """Verify the transfer-time formula."""

    def test_default_link(self) -> None:
        """Bandwidth time plus latency, rounded."""
        assert transfer_time_ms(EDIT_SIZE_KB, NetworkConfig(), random.Random(0)) == EDIT_DEFAULT_MS

    def test_disabled_is_instant(self) -> None:
        """A disabled link transfers in zero time."""
        config = NetworkConfig(enabled=False)
        assert transfer_time_ms(EDIT_SIZE_KB, config, random.Random(0)) == 0

    def test_packet_loss_stretches(self) -> None:
        """100 % loss doubles the time."""
        config = NetworkConfig(packet_loss_percent=100.0)
        assert transfer_time_ms(EDIT_SIZE_KB, config, random.Random(0)) == round(
            (EDIT_SIZE_KB * 8 / 500_000 * 1000 + DEFAULT_LATENCY_MS) * 2
        )

    def test_jitter_bounded(self) -> None:
        """Jitter adds at most its configured amount."""
        config = NetworkConfig(jitter_ms=JITTER_MS)
        rng = random.Random(42)
        for _ in range(20):
            time_ms = transfer_time_ms(EDIT_SIZE_KB, config, rng)
            assert EDIT_DEFAULT_MS - 1 <= time_ms <= EDIT_DEFAULT_MS + JITTER_MS + 1

    def test_slower_is_longer(self) -> None:
        """Lower bandwidth means a longer transfer."""
        fast = transfer_time_ms(EDIT_SIZE_KB, NetworkConfig(), random.Random(0))
        slow = transfer_time_ms(EDIT_SIZE_KB, NetworkConfig(speed_mbps=SLOW_SPEED), random.Random(0))
        assert slow > fast


class TestFormatting:
    """Verify size, time and status formatting."""

    def test_sizes(self) -> None:
        """Small sizes in KB, large ones in MB."""
        assert format_size(472) == "472 KB"
        assert format_size(8400) == "8.20 MB"

    def test_times(self) -> None:
        """Short times in ms, long ones in seconds."""
        assert format_time(134) == "134 ms"
        assert format_time(2500) == "2.50 seconds"

    def test_describe(self) -> None:
        """The status report names every parameter."""
        text = describe(NetworkConfig(enabled=False))
        assert "Network: disabled" in text
        assert f"Speed: {DEFAULT_SPEED_MBPS:g} Mbps" in text
        assert "Packet loss: 0%" in text


class TestConfigCodec:
    """Verify the persisted dict format."""

    def test_unknown_keys_ignored(self) -> None:
        """Extra keys in stored data do not break loading."""
        config = NetworkConfig.from_dict({"speed_mbps": 10.0, "colour": "blue"})
        assert config.speed_mbps == 10.0  # noqa: PLR2004
        assert config.latency_ms == DEFAULT_LATENCY_MS


class TestRegistry:
    """Verify the cached, persisted registry."""

    def test_defaults_for_new_user(self) -> None:
        """A user with nothing saved gets the defaults."""
        registry = NetworkConfigRegistry(MemoryStore())
        assert registry.get(USER) == NetworkConfig()

    def test_get_returns_copy(self) -> None:
        """Mutating a returned config does not change the cached one."""
        registry = NetworkConfigRegistry(MemoryStore())
        config = registry.get(USER)
        config.speed_mbps = SLOW_SPEED
        assert registry.get(USER).speed_mbps == DEFAULT_SPEED_MBPS

    def test_save_invalidates_cache(self) -> None:
        """After a save the next read reflects exactly what was stored."""
        store = MemoryStore()
        registry = NetworkConfigRegistry(store)
        registry.get(USER)
        assert registry.is_cached(USER)
        registry.save(USER, NetworkConfig(speed_mbps=SLOW_SPEED))
        assert not registry.is_cached(USER)
        assert registry.get(USER).speed_mbps == SLOW_SPEED
        assert store.load(Table.NETWORK_CONFIGS, USER, None)["speed_mbps"] == SLOW_SPEED

    def test_reset(self) -> None:
        """Reset restores and persists the defaults."""
        registry = NetworkConfigRegistry(MemoryStore())
        registry.save(USER, NetworkConfig(enabled=False))
        registry.reset(USER)
        assert registry.get(USER).enabled

    def test_save_is_logged(self) -> None:
        """Config changes are logged under the ``net`` source."""
        logger = Logger()
        NetworkConfigRegistry(MemoryStore(), logger=logger).save(USER, NetworkConfig())
        assert logger.filter(source="net", user_id=USER)


class TestRegistryThreads:
    """Verify the cache under concurrent users."""

    def test_concurrent_saves_and_reads(self) -> None:
        """Each user reads back exactly what they saved."""
        registry = NetworkConfigRegistry(MemoryStore())
        errors: list[Exception] = []

        def _user(index: int) -> None:
            user_id = f"u{index}"
            try:
                for speed in range(1, ROUNDS_PER_USER + 1):
                    registry.save(user_id, NetworkConfig(speed_mbps=float(speed)))
                    assert registry.get(user_id).speed_mbps == float(speed)
            except Exception as e:  # noqa: BLE001
                errors.append(e)

        threads = [threading.Thread(target=_user, args=(i,)) for i in range(THREADS)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert errors == []
