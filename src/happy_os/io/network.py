"""Simulated network link — how fast a user's packages "download".

Nothing here touches a real socket.  Each user has a ``NetworkConfig``
describing an imaginary link:

    - **speed** (Mbps) — bandwidth; a 8400 KB package at 500 Mbps takes
      ``8400 * 8 / 500_000 * 1000 ≈ 134 ms``.
    - **latency** (ms) — a fixed cost added once per transfer.
    - **jitter** (ms) — a random extra delay, uniform in ``[0, jitter]``.
    - **packet loss** (%) — retransmissions stretch the transfer by
      ``1 + loss / 100``.
    - **enabled** — a disabled link makes every transfer instant.

``NetworkConfigRegistry`` persists configs per user and keeps an
in-memory cache.  The cache entry is dropped on every write, so the next
read always reflects exactly what was stored.
"""

from __future__ import annotations

import random
import threading
from dataclasses import asdict, dataclass, fields
from typing import Any

from happy_os.fs.persistence import Store, Table
from happy_os.logging import Logger, LogLevel

DEFAULT_SPEED_MBPS = 500.0
DEFAULT_LATENCY_MS = 20.0
DEFAULT_JITTER_MS = 0.0
DEFAULT_PACKET_LOSS_PERCENT = 0.0

MAX_PACKET_LOSS_PERCENT = 100.0
_KB_PER_MB = 1024
_MS_PER_SECOND = 1000


@dataclass
class NetworkConfig:
    """Parameters of one user's simulated link."""

    speed_mbps: float = DEFAULT_SPEED_MBPS
    latency_ms: float = DEFAULT_LATENCY_MS
    jitter_ms: float = DEFAULT_JITTER_MS
    packet_loss_percent: float = DEFAULT_PACKET_LOSS_PERCENT
    enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NetworkConfig:
        """Deserialize, ignoring unknown keys and defaulting missing ones."""
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


def transfer_time_ms(size_kb: float, config: NetworkConfig, rng: random.Random) -> int:
    """Return the simulated time to move *size_kb* over *config*'s link.

    A disabled link always returns 0.
    """
    if not config.enabled or config.speed_mbps <= 0:
        return 0
    size_kbits = size_kb * 8
    speed_kbps = config.speed_mbps * 1000
    time_ms = size_kbits / speed_kbps * _MS_PER_SECOND
    time_ms += config.latency_ms
    if config.jitter_ms > 0:
        time_ms += rng.uniform(0, config.jitter_ms)
    if config.packet_loss_percent > 0:
        time_ms *= 1 + config.packet_loss_percent / 100
    return round(time_ms)


def format_size(size_kb: float) -> str:
    """Format a size in KB as ``"472 KB"`` or ``"8.20 MB"``."""
    if size_kb < _KB_PER_MB:
        return f"{size_kb:g} KB" if size_kb == int(size_kb) else f"{size_kb:.1f} KB"
    return f"{size_kb / _KB_PER_MB:.2f} MB"


def format_time(time_ms: float) -> str:
    """Format a duration in ms as ``"134 ms"`` or ``"2.50 seconds"``."""
    if time_ms < _MS_PER_SECOND:
        return f"{round(time_ms)} ms"
    return f"{time_ms / _MS_PER_SECOND:.2f} seconds"


def describe(config: NetworkConfig) -> str:
    """Render a config as the multi-line ``net status`` report."""
    state = "enabled" if config.enabled else "disabled"
    return "\n".join(
        [
            f"Network: {state}",
            f"Speed: {config.speed_mbps:g} Mbps",
            f"Latency: {config.latency_ms:g} ms",
            f"Jitter: {config.jitter_ms:g} ms",
            f"Packet loss: {config.packet_loss_percent:g}%",
        ]
    )


class NetworkConfigRegistry:
    """Per-user network configs with a write-invalidated cache."""

    def __init__(self, store: Store, *, logger: Logger | None = None) -> None:
        """Create a registry backed by *store*."""
        self._store = store
        self._logger = logger
        self._cache: dict[str, NetworkConfig] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> NetworkConfig:
        """Return a copy of the user's config (defaults if never saved)."""
        with self._lock:
            cached = self._cache.get(user_id)
            if cached is None:
                data = self._store.load(Table.NETWORK_CONFIGS, user_id, None)
                cached = NetworkConfig() if data is None else NetworkConfig.from_dict(data)
                self._cache[user_id] = cached
            return NetworkConfig(**asdict(cached))

    def save(self, user_id: str, config: NetworkConfig) -> None:
        """Persist *config* and invalidate the cached copy."""
        with self._lock:
            self._store.save(Table.NETWORK_CONFIGS, user_id, config.to_dict())
            self._cache.pop(user_id, None)
        if self._logger is not None:
            self._logger.log(
                LogLevel.INFO,
                f"config updated: {describe(config).replace(chr(10), ', ')}",
                source="net",
                user_id=user_id,
            )

    def reset(self, user_id: str) -> NetworkConfig:
        """Restore and persist the default config."""
        config = NetworkConfig()
        self.save(user_id, config)
        return config

    def is_cached(self, user_id: str) -> bool:
        """Return True if the user's config is currently cached."""
        with self._lock:
            return user_id in self._cache
