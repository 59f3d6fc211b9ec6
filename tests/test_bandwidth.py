from collections import namedtuple

import pytest

from banbridge.stats import bandwidth
from banbridge.stats.bandwidth import (
    BandwidthSample,
    LinuxBandwidthMeter,
    PsutilBandwidthMeter,
    create_bandwidth_meter,
)


Counters = namedtuple("Counters", "bytes_recv bytes_sent")
IfStats = namedtuple("IfStats", "isup")


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class FakeNics:
    """Mutable stand-in for psutil.net_io_counters(pernic=True)."""

    def __init__(self, **interfaces: tuple[int, int]) -> None:
        self.counters = {}
        self.set(**interfaces)

    def set(self, **interfaces: tuple[int, int]) -> None:
        self.counters = {name: Counters(rx, tx) for name, (rx, tx) in interfaces.items()}

    def __call__(self, pernic: bool = False) -> dict:
        return dict(self.counters)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def nics(monkeypatch) -> FakeNics:
    fake = FakeNics()
    monkeypatch.setattr(bandwidth.psutil, "net_io_counters", fake)
    return fake


# =============================================================================
# Linux Meter
# =============================================================================

def test_first_sample_is_zero_then_rates(nics, clock):
    nics.set(lo=(999, 999), eth0=(1_000, 2_000))
    meter = LinuxBandwidthMeter(None, clock=clock)

    assert meter.sample_kbps() == BandwidthSample(0.0, 0.0)

    nics.set(lo=(5_000, 5_000), eth0=(3_000, 6_000))
    clock.now += 2.0

    sample = meter.sample_kbps()
    assert sample.rx_kbps == pytest.approx(8.0)
    assert sample.tx_kbps == pytest.approx(16.0)


def test_preferred_interface_is_used(nics, clock):
    nics.set(eth0=(0, 0), wlan0=(0, 0))
    meter = LinuxBandwidthMeter("wlan0", clock=clock)
    meter.sample_kbps()

    nics.set(eth0=(0, 0), wlan0=(1_000, 0))
    clock.now += 1.0

    assert meter.sample_kbps().rx_kbps == pytest.approx(8.0)


def test_missing_preferred_interface_falls_back(nics, clock):
    nics.set(lo=(0, 0), eth0=(0, 0))
    meter = LinuxBandwidthMeter("wg0", clock=clock)
    meter.sample_kbps()

    nics.set(lo=(10**6, 0), eth0=(500, 0))
    clock.now += 1.0

    assert meter.sample_kbps().rx_kbps == pytest.approx(4.0)


def test_counter_reset_reports_zero(nics, clock):
    nics.set(eth0=(10_000, 10_000))
    meter = LinuxBandwidthMeter(None, clock=clock)
    meter.sample_kbps()

    nics.set(eth0=(10, 10))
    clock.now += 1.0

    assert meter.sample_kbps() == BandwidthSample(0.0, 0.0)


def test_unreadable_counters_are_unavailable(monkeypatch, clock):
    def broken(pernic):
        raise OSError("no counters")

    monkeypatch.setattr(bandwidth.psutil, "net_io_counters", broken)
    assert LinuxBandwidthMeter(None, clock=clock).sample_kbps() == BandwidthSample(None, None)


def test_only_loopback_is_unavailable(nics, clock):
    nics.set(lo=(1, 1))
    meter = LinuxBandwidthMeter(None, clock=clock)
    assert meter.sample_kbps() == BandwidthSample(None, None)


# =============================================================================
# psutil Meter
# =============================================================================

def test_psutil_meter_skips_virtual_and_down_interfaces(nics, monkeypatch, clock):
    big = (10**9, 10**9)
    nics.set(lo=big, docker0=big, eth0=(1_000, 1_000), eth1=big)
    stats = {"eth0": IfStats(True), "eth1": IfStats(False)}
    monkeypatch.setattr(bandwidth.psutil, "net_if_stats", lambda: stats)

    meter = PsutilBandwidthMeter(clock=clock)
    assert meter.sample_kbps() == BandwidthSample(0.0, 0.0)

    nics.set(lo=big, docker0=big, eth0=(2_000, 1_500), eth1=(10**10, 10**10))
    clock.now += 1.0

    sample = meter.sample_kbps()
    assert sample.rx_kbps == pytest.approx(8.0)
    assert sample.tx_kbps == pytest.approx(4.0)


def test_psutil_meter_failure_is_unavailable(monkeypatch, clock):
    def broken(pernic):
        raise OSError("no counters")

    monkeypatch.setattr(bandwidth.psutil, "net_io_counters", broken)
    assert PsutilBandwidthMeter(clock=clock).sample_kbps() == BandwidthSample(None, None)


# =============================================================================
# Factory
# =============================================================================

def test_factory_picks_psutil_off_linux(monkeypatch):
    monkeypatch.setattr(bandwidth.sys, "platform", "win32")
    assert isinstance(create_bandwidth_meter(None), PsutilBandwidthMeter)


def test_factory_picks_single_interface_meter_on_linux(monkeypatch):
    monkeypatch.setattr(bandwidth.sys, "platform", "linux")
    meter = create_bandwidth_meter(" eth0 ")
    assert isinstance(meter, LinuxBandwidthMeter)
    assert meter.preferred_iface == "eth0"
