# collector/models.py
from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, Field


# ---------- per-section readings --------------------------------------
class MemoryRegion(BaseModel):
    """RAM / IRAM / SWAP usage. ``unit`` is the size prefix (``k``, ``M``, ``G``)."""

    used: int = 0
    total: int = 0
    unit: str = ""
    lfb_blocks: Optional[int] = None  # RAM only
    lfb_size: Optional[int] = None  # RAM and IRAM
    lfb_unit: Optional[str] = None
    cached: Optional[int] = None  # SWAP only
    cached_unit: Optional[str] = None


class CoreReading(BaseModel):
    index: int
    online: bool
    load: Optional[int] = None
    frequency: Optional[int] = None
    governor: Optional[str] = None


class RailReading(BaseModel):
    index: int  # order of appearance in the line
    name: str
    current: int = 0
    average: int = 0


class TemperatureReading(BaseModel):
    sensor: str
    value: float = 0.0


class FrequencyDomainReading(BaseModel):
    utilization: int = 0
    frequency: Optional[int] = None  # None while the domain is idle


class SchedulerLoad(BaseModel):
    fg: int = 0
    bg: int = 0


# ---------- whole line -------------------------------------------------
class Snapshot(BaseModel):
    """Everything parsed out of one tegrastats line."""

    memory: Dict[str, MemoryRegion] = Field(default_factory=dict)
    cpus: Dict[int, CoreReading] = Field(default_factory=dict)
    frequencies: Dict[str, FrequencyDomainReading] = Field(default_factory=dict)
    rails: Dict[str, RailReading] = Field(default_factory=dict)
    temperatures: Dict[str, TemperatureReading] = Field(default_factory=dict)
    scheduler: Dict[str, SchedulerLoad] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (
            self.memory
            or self.cpus
            or self.frequencies
            or self.rails
            or self.temperatures
            or self.scheduler
        )
