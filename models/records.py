"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

# Readings in capture order, as produced by one sampling pass.
ReadingBatch = List[float]


class HvacMode(str, Enum):
    """Direction an actuator pushes the zone temperature."""

    heat = "heat"
    cool = "cool"


class LowPowerOutcome(str, Enum):
    """Result of asking a device to enter deep sleep."""

    # The supervising deadline expired or the call was canceled: the device
    # dropped the connection mid-call and is asleep.
    suspended = "suspended"
    # The device answered the call normally.
    acknowledged = "acknowledged"


@dataclass(frozen=True)
class Credentials:
    """Opaque name/secret pair handed to the transport."""

    name: str
    secret: str = field(repr=False)


@dataclass(frozen=True)
class MachineDescriptor:
    """A remote sensor/actuator unit. Never mutated after load."""

    part_id: str
    address: str
    credentials: Credentials
    calibration_offset: float = 0.0


@dataclass(frozen=True)
class ZoneDescriptor:
    """Sensors averaged together and the actuators that act on their average."""

    name: str
    sensor_ids: Tuple[str, ...]
    actuators: Tuple[MachineDescriptor, ...]
    target_temp_c: float
    mode: str


@dataclass(slots=True)
class SensorResult:
    """A filtered, calibration-adjusted temperature for one machine."""

    part_id: str
    captured_at: datetime
    filtered_mean: float
    temperature: float
    sample_count: int


@dataclass(slots=True)
class CycleReport:
    """Outcome of one poll cycle for one machine."""

    part_id: str
    iteration: int
    result: Optional[SensorResult] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class ZoneReport:
    """Outcome of one control pass over a zone."""

    zone: str
    sensed_temp: Optional[float] = None
    sample_count: int = 0
    actuator_on: Optional[bool] = None
    commanded: List[str] = field(default_factory=list)
    failed_actuators: List[str] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failed_actuators
