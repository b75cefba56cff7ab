from __future__ import annotations

import logging
import os
import re
from typing import Callable, Dict, Optional

from .models import (
    CoreReading,
    FrequencyDomainReading,
    MemoryRegion,
    RailReading,
    SchedulerLoad,
    Snapshot,
    TemperatureReading,
)

log = logging.getLogger(__name__)

GovernorReader = Callable[[int], Optional[str]]

# -----------------------------
# Section patterns
# -----------------------------
# Digit groups are `\d*`: an empty number inside a matched section
# degrades to 0 and the rest of the section is kept.

# RAM X/Y (lfb NxZ)
RAM_RE = re.compile(r"\bRAM (\d*)/(\d*)([A-Za-z])B(?: ?\(lfb (\d*)x(\d*)([A-Za-z])B\))?")
# IRAM X/Y (lfb Z)
IRAM_RE = re.compile(r"\bIRAM (\d*)/(\d*)([A-Za-z])B(?: ?\(lfb (\d*)([A-Za-z])B\))?")
# SWAP X/Y (cached Z)
SWAP_RE = re.compile(r"\bSWAP (\d*)/(\d*)([A-Za-z])B(?: ?\(cached (\d*)([A-Za-z])B\))?")
# CPU [X%@F,off,...]   or the older   CPU [X%,Y%,off]@F
CPU_RE = re.compile(r"\bCPU \[([^\]]*)\](?:@(\d+))?")
CORE_RE = re.compile(r"^(\d*)%(@(\d*))?$")
VDD_RE = re.compile(r"\bVDD_(\w+) (\d*)(?:mW)?/(\d*)(?:mW)?")
TEMP_RE = re.compile(r"\b(\w+)@(-?[0-9.]+)C\b")
MTS_RE = re.compile(r"\bMTS fg (\d*)% bg (\d*)%")

# `@[305,305]` (multi-GPC boards) reports the first cluster's frequency.
_FREQ_TMPL = r"\b{tag} (\d*)%(@\[?(\d*))?"
EMC_FREQ_RE = re.compile(_FREQ_TMPL.format(tag="EMC_FREQ"))
GR3D_FREQ_RE = re.compile(_FREQ_TMPL.format(tag="GR3D_FREQ"))
GR3D_RE = re.compile(_FREQ_TMPL.format(tag="GR3D"))

# -----------------------------
# Helpers
# -----------------------------

def _safe_int(text: Optional[str], default: int = 0, field: str = "") -> int:
    try:
        return int(text) if text else _degraded(text, default, field)
    except ValueError:
        return _degraded(text, default, field)


def _safe_float(text: Optional[str], default: float = 0.0, field: str = "") -> float:
    try:
        return float(text) if text else _degraded(text, default, field)
    except ValueError:
        return _degraded(text, default, field)


def _degraded(text, default, field):
    log.debug("unparseable %s value %r, using %r", field or "numeric", text, default)
    return default


def _opt_int(text: Optional[str], field: str = "") -> Optional[int]:
    """None when the optional group did not participate in the match."""
    if text is None:
        return None
    return _safe_int(text, field=field)


def _check_region(name: str, region: MemoryRegion) -> MemoryRegion:
    if region.used > region.total:
        log.warning("%s reports used %d above total %d", name, region.used, region.total)
    return region


class SysfsGovernorReader:
    """Reads ``scaling_governor`` for a core from sysfs.

    Returns None when the file does not exist for that core (the platform
    does not expose it), and "" when it exists but cannot be read.
    """

    PATH = "devices/system/cpu/cpu{index}/cpufreq/scaling_governor"

    def __init__(self, root: str = "/sys"):
        self.root = root

    def path_for(self, index: int) -> str:
        return os.path.join(self.root, self.PATH.format(index=index))

    def __call__(self, index: int) -> Optional[str]:
        path = self.path_for(index)
        if not os.path.isfile(path):
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return f.read().strip()
        except OSError as exc:
            log.warning("cannot read %s: %s", path, exc)
            return ""

# -----------------------------
# Public API
# -----------------------------

def get_ram(text: str) -> Dict[str, MemoryRegion]:
    """RAM X/Y (lfb NxZ).

    X = RAM in use, Y = total RAM available for applications.
    Largest Free Block (lfb) describes allocator fragmentation: N free
    blocks of size Z (at most 4MB). The lfb group may be missing.
    """
    m = RAM_RE.search(text or "")
    if not m:
        return {}
    region = MemoryRegion(
        used=_safe_int(m.group(1), field="RAM used"),
        total=_safe_int(m.group(2), field="RAM total"),
        unit=m.group(3),
        lfb_blocks=_opt_int(m.group(4), field="RAM lfb blocks"),
        lfb_size=_opt_int(m.group(5), field="RAM lfb size"),
        lfb_unit=m.group(6),
    )
    return {"RAM": _check_region("RAM", region)}


def get_iram(text: str) -> Dict[str, MemoryRegion]:
    """IRAM X/Y (lfb Z): memory local to the video hardware engine."""
    m = IRAM_RE.search(text or "")
    if not m:
        return {}
    region = MemoryRegion(
        used=_safe_int(m.group(1), field="IRAM used"),
        total=_safe_int(m.group(2), field="IRAM total"),
        unit=m.group(3),
        lfb_size=_opt_int(m.group(4), field="IRAM lfb"),
        lfb_unit=m.group(5),
    )
    return {"IRAM": _check_region("IRAM", region)}


def get_swap(text: str) -> Dict[str, MemoryRegion]:
    """SWAP X/Y (cached Z)."""
    m = SWAP_RE.search(text or "")
    if not m:
        return {}
    region = MemoryRegion(
        used=_safe_int(m.group(1), field="SWAP used"),
        total=_safe_int(m.group(2), field="SWAP total"),
        unit=m.group(3),
        cached=_opt_int(m.group(4), field="SWAP cached"),
        cached_unit=m.group(5),
    )
    return {"SWAP": _check_region("SWAP", region)}


def get_cpu(
    text: str,
    governor_reader: Optional[GovernorReader] = None,
    stop_on_unsupported: bool = True,
) -> Dict[int, CoreReading]:
    """Per-core load, frequency and scaling governor.

    Each entry of the bracketed list is ``off`` or ``load%@freq``. The
    governor of every online core is looked up through *governor_reader*.
    When it answers None the core has no governor on this platform: with
    *stop_on_unsupported* the array ends there and that core is dropped,
    otherwise the core is kept without a governor.
    """
    m = CPU_RE.search(text or "")
    if not m or not m.group(1).strip():
        return {}
    reader = governor_reader or SysfsGovernorReader()
    shared_freq = _opt_int(m.group(2), field="CPU frequency")

    cores: Dict[int, CoreReading] = {}
    for index, entry in enumerate(m.group(1).split(",")):
        entry = entry.strip()
        if entry == "off":
            cores[index] = CoreReading(index=index, online=False)
            continue

        em = CORE_RE.match(entry)
        if em:
            load = _safe_int(em.group(1), field=f"cpu{index} load")
            freq = _safe_int(em.group(3), field=f"cpu{index} frequency") if em.group(2) else shared_freq
        else:
            _degraded(entry, 0, f"cpu{index}")
            load, freq = 0, 0

        governor = reader(index)
        if governor is None and stop_on_unsupported:
            log.debug("no scaling governor for cpu%d, stopping at this core", index)
            break
        cores[index] = CoreReading(
            index=index, online=True, load=load, frequency=freq, governor=governor
        )
    return cores


def _get_freq_domain(pattern: re.Pattern, tag: str, text: str) -> Dict[str, FrequencyDomainReading]:
    m = pattern.search(text or "")
    if not m:
        return {}
    freq = _safe_int(m.group(3), field=f"{tag} frequency") if m.group(2) else None
    return {
        tag: FrequencyDomainReading(
            utilization=_safe_int(m.group(1), field=f"{tag} utilization"),
            frequency=freq,
        )
    }


def get_emc_freq(text: str) -> Dict[str, FrequencyDomainReading]:
    """EMC_FREQ X%[@F]: external memory controller load, frequency in MHz."""
    return _get_freq_domain(EMC_FREQ_RE, "EMC_FREQ", text)


def get_gr3d_freq(text: str) -> Dict[str, FrequencyDomainReading]:
    """GR3D_FREQ X%[@F]: GPU load, frequency absent while idle."""
    return _get_freq_domain(GR3D_FREQ_RE, "GR3D_FREQ", text)


def get_gr3d(text: str) -> Dict[str, FrequencyDomainReading]:
    return _get_freq_domain(GR3D_RE, "GR3D", text)


def get_vdd(text: str) -> Dict[str, RailReading]:
    """VDD_<NAME> X/Y: instantaneous draw and running average per rail."""
    rails: Dict[str, RailReading] = {}
    for index, m in enumerate(VDD_RE.finditer(text or "")):
        name = m.group(1)
        rails[name] = RailReading(
            index=index,
            name=name,
            current=_safe_int(m.group(2), field=f"VDD_{name} current"),
            average=_safe_int(m.group(3), field=f"VDD_{name} average"),
        )
    return rails


def get_temp(text: str) -> Dict[str, TemperatureReading]:
    """Any ``name@<degrees>C`` token, so new sensor names need no code change."""
    temps: Dict[str, TemperatureReading] = {}
    for sensor, value in TEMP_RE.findall(text or ""):
        temps[sensor] = TemperatureReading(
            sensor=sensor, value=_safe_float(value, field=f"{sensor} temperature")
        )
    return temps


def get_mts(text: str) -> Dict[str, SchedulerLoad]:
    """MTS fg X% bg Y%: memory transaction scheduler load."""
    m = MTS_RE.search(text or "")
    if not m:
        return {}
    return {
        "MTS": SchedulerLoad(
            fg=_safe_int(m.group(1), field="MTS fg"),
            bg=_safe_int(m.group(2), field="MTS bg"),
        )
    }


def parse_snapshot(
    text: Optional[str],
    governor_reader: Optional[GovernorReader] = None,
    stop_on_unsupported: bool = True,
) -> Snapshot:
    """Run every extractor over one raw line. Never raises on bad input."""
    text = (text or "").strip()
    if not text:
        return Snapshot()
    return Snapshot(
        memory={**get_ram(text), **get_iram(text), **get_swap(text)},
        cpus=get_cpu(text, governor_reader, stop_on_unsupported),
        frequencies={**get_emc_freq(text), **get_gr3d_freq(text), **get_gr3d(text)},
        rails=get_vdd(text),
        temperatures=get_temp(text),
        scheduler=get_mts(text),
    )
