"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from models.records import CycleReport, MachineDescriptor, ZoneReport


class CycleStatus(str, Enum):
    """Per-machine or per-zone outcome exposed via the API."""

    ok = "ok"
    partial = "partial"
    failed = "failed"


class ErrorDetail(BaseModel):
    """Typed failure reported for one machine or zone."""

    kind: str
    message: str

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorDetail":
        return cls(kind=type(exc).__name__, message=str(exc))


class MachineSummary(BaseModel):
    part_id: str
    address: str
    calibration_offset: float = 0.0

    @classmethod
    def from_descriptor(cls, machine: MachineDescriptor) -> "MachineSummary":
        return cls(
            part_id=machine.part_id,
            address=machine.address,
            calibration_offset=machine.calibration_offset,
        )


class MachineResult(BaseModel):
    """Outcome of one poll cycle for a machine."""

    part_id: str
    status: CycleStatus
    captured_at: Optional[datetime] = None
    temperature: Optional[float] = Field(default=None, description="Calibrated temperature in °C.")
    filtered_mean: Optional[float] = None
    sample_count: Optional[int] = Field(default=None, ge=0)
    error: Optional[ErrorDetail] = None

    @classmethod
    def from_report(cls, report: CycleReport) -> "MachineResult":
        if report.error is not None or report.result is None:
            return cls(
                part_id=report.part_id,
                status=CycleStatus.failed,
                error=ErrorDetail.from_exception(report.error) if report.error else None,
            )
        result = report.result
        return cls(
            part_id=report.part_id,
            status=CycleStatus.ok,
            captured_at=result.captured_at,
            temperature=result.temperature,
            filtered_mean=result.filtered_mean,
            sample_count=result.sample_count,
        )


class PollResponse(BaseModel):
    results: List[MachineResult] = Field(default_factory=list)


class ZoneResult(BaseModel):
    """Outcome of one control pass over a zone."""

    zone: str
    status: CycleStatus
    sensed_temp: Optional[float] = None
    sample_count: int = Field(default=0, ge=0)
    actuator_on: Optional[bool] = None
    commanded: List[str] = Field(default_factory=list)
    failed_actuators: List[str] = Field(default_factory=list)
    error: Optional[ErrorDetail] = None

    @classmethod
    def from_report(cls, report: ZoneReport) -> "ZoneResult":
        if report.error is not None:
            status = CycleStatus.failed
        elif report.failed_actuators:
            status = CycleStatus.partial
        else:
            status = CycleStatus.ok
        return cls(
            zone=report.zone,
            status=status,
            sensed_temp=report.sensed_temp,
            sample_count=report.sample_count,
            actuator_on=report.actuator_on,
            commanded=list(report.commanded),
            failed_actuators=list(report.failed_actuators),
            error=ErrorDetail.from_exception(report.error) if report.error else None,
        )


class ControlResponse(BaseModel):
    zones: List[ZoneResult] = Field(default_factory=list)
