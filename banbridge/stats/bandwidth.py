"""
BanBridge - Bandwidth Meters
============================

Network throughput sampling in kbit/s for the metrics job.

Implementations:
- LinuxBandwidthMeter: one interface (preferred or first non-loopback)
- PsutilBandwidthMeter: sum over physical-looking interfaces, any platform

Both read psutil.net_io_counters(pernic=True). They return (0.0, 0.0) on the first sample and after a counter reset,
and (None, None) when the source cannot be read.
"""

import sys
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

import psutil

from banbridge.core.logger import logger


LOOPBACK_IFACE = "lo"
MIN_WINDOW_SECONDS = 0.001

# Interface name fragments skipped when summing psutil counters
VIRTUAL_IFACE_MARKERS = (
    "loopback", "docker", "veth", "br-", "vmware", "virtualbox",
    "hyper-v", "vmswitch", "tunnel", "isatap", "teredo",
    "wireguard", "tailscale", "hamachi", "npcap",
)


@dataclass(frozen=True)
class BandwidthSample:
    """Throughput since the previous sample; None means unavailable."""
    rx_kbps: Optional[float]
    tx_kbps: Optional[float]


@dataclass(frozen=True)
class _Snapshot:
    at: float
    rx_bytes: int
    tx_bytes: int


# =============================================================================
# Base Meter
# =============================================================================

class BandwidthMeter(ABC):
    """
    Delta-based throughput meter.

    Subclasses only read cumulative (rx_bytes, tx_bytes) counters.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._previous: Optional[_Snapshot] = None

    @abstractmethod
    def _read_counters(self) -> Optional[tuple[int, int]]:
        """Cumulative (rx_bytes, tx_bytes), or None if unreadable."""

    def sample_kbps(self) -> BandwidthSample:
        counters = self._read_counters()
        if counters is None:
            return BandwidthSample(None, None)

        now = _Snapshot(self._clock(), counters[0], counters[1])
        with self._lock:
            previous = self._previous
            self._previous = now

        if previous is None:
            return BandwidthSample(0.0, 0.0)

        seconds = max(MIN_WINDOW_SECONDS, now.at - previous.at)
        d_rx = now.rx_bytes - previous.rx_bytes
        d_tx = now.tx_bytes - previous.tx_bytes

        # Counter reset (interface restarted or wrapped)
        if d_rx < 0 or d_tx < 0:
            return BandwidthSample(0.0, 0.0)

        return BandwidthSample(
            rx_kbps=(d_rx / seconds) * 8.0 / 1000.0,
            tx_kbps=(d_tx / seconds) * 8.0 / 1000.0,
        )


# =============================================================================
# Linux (single interface)
# =============================================================================

class LinuxBandwidthMeter(BandwidthMeter):
    """
    Reads one interface from psutil's per-NIC counters.

    Uses the preferred interface when present, otherwise the first
    non-loopback interface the kernel lists.
    """

    def __init__(
        self,
        preferred_iface: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(clock)
        preferred = (preferred_iface or "").strip()
        self.preferred_iface: Optional[str] = preferred or None

    def _read_counters(self) -> Optional[tuple[int, int]]:
        try:
            counters = psutil.net_io_counters(pernic=True)
        except (OSError, RuntimeError, psutil.Error):
            return None

        interfaces = {
            name: c for name, c in (counters or {}).items()
            if name.strip() and name != LOOPBACK_IFACE
        }
        if self.preferred_iface and self.preferred_iface in interfaces:
            selected = interfaces[self.preferred_iface]
        else:
            selected = next(iter(interfaces.values()), None)
        if selected is None:
            return None
        return selected.bytes_recv, selected.bytes_sent


# =============================================================================
# psutil (cross-platform)
# =============================================================================

def _is_virtual(name: str) -> bool:
    lowered = name.strip().lower()
    if not lowered or lowered == LOOPBACK_IFACE or lowered.startswith("lo "):
        return True
    return any(marker in lowered for marker in VIRTUAL_IFACE_MARKERS)


class PsutilBandwidthMeter(BandwidthMeter):
    """Sums psutil counters over physical-looking interfaces that are up."""

    def _read_counters(self) -> Optional[tuple[int, int]]:
        try:
            counters = psutil.net_io_counters(pernic=True)
            stats = psutil.net_if_stats()
        except (OSError, RuntimeError, psutil.Error):
            return None
        if not counters:
            return None

        filtered = [
            c for name, c in counters.items()
            if not _is_virtual(name) and (name not in stats or stats[name].isup)
        ]
        selected = filtered or list(counters.values())
        return (
            sum(c.bytes_recv for c in selected),
            sum(c.bytes_sent for c in selected),
        )


# =============================================================================
# Factory
# =============================================================================

def create_bandwidth_meter(net_interface: Optional[str] = None) -> Optional[BandwidthMeter]:
    """
    Pick a meter once at startup.

    Returns:
        The platform meter, or None if none could be initialized
    """
    try:
        if sys.platform.startswith("linux"):
            meter: BandwidthMeter = LinuxBandwidthMeter(net_interface)
        else:
            meter = PsutilBandwidthMeter()
    except Exception as e:
        logger.warning("Bandwidth Meter Unavailable", [
            ("Error", str(e)),
            ("Effect", "rx/tx sent as null"),
        ])
        return None

    logger.info("Bandwidth Meter Selected", [
        ("Meter", type(meter).__name__),
        ("Interface", net_interface or "auto"),
    ])
    return meter


__all__ = [
    "BandwidthSample",
    "BandwidthMeter",
    "LinuxBandwidthMeter",
    "PsutilBandwidthMeter",
    "create_bandwidth_meter",
]
