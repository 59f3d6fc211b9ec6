"""
BanBridge - Stats Package
=========================

Player stat deltas, telemetry sanitizing and bandwidth sampling.
"""

from banbridge.stats.accumulator import StatsAccumulator
from banbridge.stats.bandwidth import (
    BandwidthSample,
    BandwidthMeter,
    LinuxBandwidthMeter,
    PsutilBandwidthMeter,
    create_bandwidth_meter,
)

__all__ = [
    "StatsAccumulator",
    "BandwidthSample",
    "BandwidthMeter",
    "LinuxBandwidthMeter",
    "PsutilBandwidthMeter",
    "create_bandwidth_meter",
]
