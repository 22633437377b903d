"""I/O subsystem — the simulated network link and package downloads.

Re-exports public symbols so callers can write::

    from happy_os.io import DownloadSimulator, NetworkConfig
"""

from happy_os.io.download import (
    DownloadSimulator,
    DownloadState,
    DownloadStatus,
    Step,
    TickResult,
)
from happy_os.io.network import (
    NetworkConfig,
    NetworkConfigRegistry,
    describe,
    format_size,
    format_time,
    transfer_time_ms,
)

__all__ = [
    "DownloadSimulator",
    "DownloadState",
    "DownloadStatus",
    "NetworkConfig",
    "NetworkConfigRegistry",
    "Step",
    "TickResult",
    "describe",
    "format_size",
    "format_time",
    "transfer_time_ms",
]
