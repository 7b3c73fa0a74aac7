"""On/off threshold control of zone heating and cooling."""

from __future__ import annotations

import logging
from contextlib import nullcontext
from threading import Event, Lock
from typing import Callable, ContextManager, List, Optional, Sequence

from models.records import HvacMode, MachineDescriptor, ZoneDescriptor, ZoneReport
from services.device import ACTUATOR_COMPONENT, DeviceSession
from services.errors import InsufficientSamples, InvalidMode
from services.telemetry import AverageSource

logger = logging.getLogger(__name__)

MIN_ZONE_SAMPLES = 5


def parse_mode(mode: object) -> HvacMode:
    try:
        return HvacMode(mode)
    except ValueError as exc:
        raise InvalidMode(mode) from exc


def decide(mode: object, sensed_temp: float, target_temp: float) -> bool:
    """Return the desired actuator state for a zone.

    There is no hysteresis band: at exactly the target the actuator is
    commanded on in both modes, which can chatter around the set point.
    """
    hvac_mode = parse_mode(mode)
    if hvac_mode is HvacMode.heat and sensed_temp > target_temp:
        return False
    if hvac_mode is HvacMode.cool and sensed_temp < target_temp:
        return False
    return True


class ThresholdController:
    """Drives every actuator in a zone toward the zone's target temperature."""

    def __init__(
        self,
        average_source: AverageSource,
        open_session: Callable[[MachineDescriptor], DeviceSession],
        session_lock: Optional[Callable[[str], Lock]] = None,
        window: float = 3600.0,
        min_samples: int = MIN_ZONE_SAMPLES,
        actuator_name: str = ACTUATOR_COMPONENT,
    ) -> None:
        self.average_source = average_source
        self.open_session = open_session
        self.session_lock = session_lock
        self.window = window
        self.min_samples = min_samples
        self.actuator_name = actuator_name
        self._stop = Event()

    def sensed_temperature(self, zone: ZoneDescriptor) -> tuple[float, int]:
        mean, count = self.average_source.average_over(zone.sensor_ids, self.window)
        if count < self.min_samples:
            logger.error(
                "Result based on %d samples", count, extra={"zone": zone.name, "sample_count": count}
            )
            raise InsufficientSamples(count, self.min_samples)
        return mean, count

    def control_zone(self, zone: ZoneDescriptor) -> ZoneReport:
        """Average, decide, and command every actuator in ``zone``.

        Raises for zone-level failures; individual actuator failures are
        logged and listed in the returned report.
        """
        mode = parse_mode(zone.mode)
        sensed, count = self.sensed_temperature(zone)
        desired = decide(mode, sensed, zone.target_temp_c)
        logger.info(
            "Average temp: %.2f, Desired temp: %.2f, HVAC to %s",
            sensed,
            zone.target_temp_c,
            desired,
            extra={"zone": zone.name, "sample_count": count},
        )

        report = ZoneReport(zone=zone.name, sensed_temp=sensed, sample_count=count, actuator_on=desired)
        for actuator in zone.actuators:
            logger.info(
                "Adjusting hvac to %s", desired, extra={"zone": zone.name, "machine": actuator.part_id}
            )
            try:
                self._command(actuator, desired)
            except Exception as exc:  # noqa: BLE001 - remaining actuators still get commanded
                logger.error(
                    "Error toggling hvac: %s",
                    exc,
                    extra={"zone": zone.name, "machine": actuator.part_id, "reason": type(exc).__name__},
                )
                report.failed_actuators.append(actuator.part_id)
            else:
                report.commanded.append(actuator.part_id)
        return report

    def run_cycle(self, zones: Sequence[ZoneDescriptor]) -> List[ZoneReport]:
        """Control each zone in turn; a failing zone does not affect the others."""
        reports: List[ZoneReport] = []
        for zone in zones:
            try:
                reports.append(self.control_zone(zone))
            except Exception as exc:  # noqa: BLE001 - isolate zones from each other
                logger.error(
                    "Zone control failed: %s",
                    exc,
                    extra={"zone": zone.name, "reason": type(exc).__name__},
                )
                reports.append(ZoneReport(zone=zone.name, error=exc))
        return reports

    def run_forever(
        self,
        zones: Sequence[ZoneDescriptor],
        interval: float,
        iterations: Optional[int] = None,
    ) -> None:
        completed = 0
        while not self._stop.is_set():
            self.run_cycle(zones)
            completed += 1
            if iterations is not None and completed >= iterations:
                break
            if self._stop.wait(interval):
                break

    def stop(self) -> None:
        self._stop.set()

    def _command(self, actuator: MachineDescriptor, on: bool) -> None:
        guard: ContextManager[object] = (
            self.session_lock(actuator.part_id) if self.session_lock else nullcontext()
        )
        with guard:
            with self.open_session(actuator) as session:
                session.set_actuator(self.actuator_name, on)
