"""Fleet configuration document and its conversion to descriptors."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from models.records import Credentials, MachineDescriptor, ZoneDescriptor
from services.errors import ConfigError

DEFAULT_NUM_READINGS = 10


class MachineEntry(BaseModel):
    part_id: str = Field(..., min_length=1)
    part_uri: str = Field(..., min_length=1)
    mach_api_name: str
    mach_api_key: str
    temp_offset_c: float = 0.0


class HvacEntry(BaseModel):
    machine_id: str = Field(..., min_length=1)
    machine_uri: str = Field(..., min_length=1)


class ZoneEntry(BaseModel):
    name: Optional[str] = None
    hvacs: List[HvacEntry] = Field(default_factory=list)
    temp_machines: List[str] = Field(default_factory=list)
    target_temp_c: float
    # Validated when the zone is controlled, so one bad zone cannot block the rest.
    hvac_mode: str


class ConfigDocument(BaseModel):
    """Raw JSON document as written by operators."""

    machines: List[MachineEntry] = Field(default_factory=list)
    app_api_name: str = ""
    app_api_key: str = ""
    app_org_id: str = ""
    sleep_time: int = Field(default=180, ge=0, description="Seconds to sleep between readings.")
    num_sensor_readings: int = Field(
        default=0, ge=0, description="Readings per batch; 0 selects the default of 10."
    )
    zones: List[ZoneEntry] = Field(default_factory=list)
    hvac_api_name: str = ""
    hvac_api_key: str = ""


@dataclass(frozen=True)
class FleetConfig:
    """Read-only run state loaded once at process start."""

    machines: Tuple[MachineDescriptor, ...]
    zones: Tuple[ZoneDescriptor, ...]
    app_credentials: Credentials
    organization_id: str
    sleep_time: float
    num_readings: int

    def machine(self, part_id: str) -> MachineDescriptor:
        for machine in self.machines:
            if machine.part_id == part_id:
                return machine
        raise KeyError(f"Machine {part_id!r} is not configured.")


def build_fleet_config(document: ConfigDocument) -> FleetConfig:
    machines = tuple(
        MachineDescriptor(
            part_id=entry.part_id,
            address=entry.part_uri,
            credentials=Credentials(name=entry.mach_api_name, secret=entry.mach_api_key),
            calibration_offset=entry.temp_offset_c,
        )
        for entry in document.machines
    )
    # A single key is assumed to reach every hvac machine.
    hvac_credentials = Credentials(name=document.hvac_api_name, secret=document.hvac_api_key)
    zones = tuple(
        ZoneDescriptor(
            name=entry.name or f"zone-{index}",
            sensor_ids=tuple(entry.temp_machines),
            actuators=tuple(
                MachineDescriptor(
                    part_id=hvac.machine_id,
                    address=hvac.machine_uri,
                    credentials=hvac_credentials,
                )
                for hvac in entry.hvacs
            ),
            target_temp_c=entry.target_temp_c,
            mode=entry.hvac_mode,
        )
        for index, entry in enumerate(document.zones)
    )
    num_readings = document.num_sensor_readings or DEFAULT_NUM_READINGS
    return FleetConfig(
        machines=machines,
        zones=zones,
        app_credentials=Credentials(name=document.app_api_name, secret=document.app_api_key),
        organization_id=document.app_org_id,
        sleep_time=float(document.sleep_time),
        num_readings=num_readings,
    )


def parse_config(raw: bytes | str) -> FleetConfig:
    try:
        payload = json.loads(raw or "{}")
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Configuration is not valid JSON: {exc}") from exc
    try:
        document = ConfigDocument.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(f"Configuration is invalid: {exc}") from exc
    return build_fleet_config(document)


def load_config(path: Path) -> FleetConfig:
    """Read and validate the JSON fleet document at ``path``."""
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ConfigError(f"Could not read configuration file {path}: {exc}") from exc
    return parse_config(raw)
