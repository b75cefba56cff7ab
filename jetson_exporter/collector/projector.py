"""Snapshot -> Prometheus gauges.

Every scrape builds fresh metric families from the snapshot it just parsed,
so a category missing from the current line simply has no samples; nothing
is carried over from the previous scrape.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterator, Optional

from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import Collector

from .holder import SnapshotHolder
from .models import FrequencyDomainReading, MemoryRegion, Snapshot

log = logging.getLogger(__name__)

NAMESPACE = "nvidia_jetson"

# scaling_governor name -> ordinal exported as the `governor` statistic
GOVERNORS: Dict[str, int] = {
    "schedutil": 0,
    "performance": 1,
    "powersave": 2,
    "userspace": 3,
    "ondemand": 4,
    "conservative": 5,
    "smartass": 6,
    "hotplug": 7,
}
GOVERNOR_UNKNOWN = -1


def governor_ordinal(name: Optional[str]) -> int:
    if not name:
        return GOVERNOR_UNKNOWN
    return GOVERNORS.get(name.strip().lower(), GOVERNOR_UNKNOWN)


# tegrastats size prefix -> MiB; sizes are binary (kB means KiB)
UNIT_TO_MIB: Dict[str, float] = {
    "b": 1 / (1024 * 1024),
    "k": 1 / 1024,
    "m": 1.0,
    "g": 1024.0,
    "t": 1024.0 * 1024,
}


def to_mib(value: float, unit: Optional[str]) -> float:
    """Scale *value* given in *unit* to MiB. An unknown prefix is taken as MiB."""
    factor = UNIT_TO_MIB.get((unit or "M").lower())
    if factor is None:
        log.warning("unknown memory unit %r, exporting %s unscaled", unit, value)
        return float(value)
    return value * factor


# ---------- per-category families -------------------------------------
def _memory_family(ns: str, key: str, region: MemoryRegion) -> GaugeMetricFamily:
    g = GaugeMetricFamily(
        f"{ns}_{key.lower()}",
        f"{key.lower()} statistics from tegrastats, sizes in MiB",
        labels=["statistic"],
    )
    g.add_metric(["used"], to_mib(region.used, region.unit))
    g.add_metric(["total"], to_mib(region.total, region.unit))
    if region.lfb_blocks is not None:
        g.add_metric(["lfb_blocks"], region.lfb_blocks)
    if region.lfb_size is not None:
        g.add_metric(["lfb_size"], to_mib(region.lfb_size, region.lfb_unit or region.unit))
    if region.cached is not None:
        g.add_metric(["cached"], to_mib(region.cached, region.cached_unit or region.unit))
    return g


def _freq_family(ns: str, key: str, reading: FrequencyDomainReading) -> GaugeMetricFamily:
    g = GaugeMetricFamily(
        f"{ns}_{key.lower()}",
        f"{key.lower()} statistics from tegrastats",
        labels=["statistic"],
    )
    g.add_metric(["utilization_percentage"], reading.utilization)
    if reading.frequency is not None:
        g.add_metric(["frequency"], reading.frequency)
    return g


def _cpu_family(ns: str, snapshot: Snapshot) -> GaugeMetricFamily:
    g = GaugeMetricFamily(
        f"{ns}_cpu", "cpu statistics from tegrastats", labels=["core", "statistic"]
    )
    for index in sorted(snapshot.cpus):
        core = snapshot.cpus[index]
        label = str(index)
        g.add_metric([label, "online"], 1 if core.online else 0)
        if not core.online:
            continue
        g.add_metric([label, "load"], core.load or 0)
        if core.frequency is not None:
            g.add_metric([label, "frequency_mhz"], core.frequency)
        g.add_metric([label, "governor"], governor_ordinal(core.governor))
    return g


def project(snapshot: Snapshot, namespace: str = NAMESPACE) -> Iterator[GaugeMetricFamily]:
    """Yield one gauge family per category present in *snapshot*."""
    ns = namespace
    for key, region in snapshot.memory.items():
        yield _memory_family(ns, key, region)

    if snapshot.cpus:
        yield _cpu_family(ns, snapshot)

    for key, reading in snapshot.frequencies.items():
        yield _freq_family(ns, key, reading)

    if snapshot.rails:
        g = GaugeMetricFamily(
            f"{ns}_vdd", "vdd statistics from tegrastats", labels=["rail", "statistic"]
        )
        for rail in sorted(snapshot.rails.values(), key=lambda r: r.index):
            g.add_metric([rail.name, "current"], rail.current)
            g.add_metric([rail.name, "average"], rail.average)
        yield g

    if snapshot.temperatures:
        g = GaugeMetricFamily(
            f"{ns}_temp", "temperature in degrees Celsius from tegrastats", labels=["sensor"]
        )
        for sensor, reading in snapshot.temperatures.items():
            g.add_metric([sensor], reading.value)
        yield g

    if snapshot.scheduler:
        g = GaugeMetricFamily(
            f"{ns}_mts", "mts statistics from tegrastats", labels=["statistic"]
        )
        for load in snapshot.scheduler.values():
            g.add_metric(["fg"], load.fg)
            g.add_metric(["bg"], load.bg)
        yield g


# ---------- prometheus_client collector -------------------------------
class TegrastatsCollector(Collector):
    """Custom collector: each ``collect()`` is one scrape of the latest line."""

    def __init__(self, holder: SnapshotHolder, namespace: str = NAMESPACE):
        self.holder = holder
        self.namespace = namespace

    def describe(self):
        # Registering must not trigger a scrape.
        return []

    def collect(self):
        # read, parse and project under one hold of the lock
        with self.holder.lock:
            snapshot = self.holder.refresh_locked()
            families = list(project(snapshot, self.namespace))
        log.debug("scrape produced %d metric families", len(families))
        return families
