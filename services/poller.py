"""One read-upload-sleep pass against a single machine."""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, DefaultDict, Optional

from models.records import MachineDescriptor, SensorResult
from services.device import ANALOG_READER, DEFAULT_LOW_POWER_TIMEOUT, Connector, DeviceSession
from services.sample_filter import SampleFilter
from services.telemetry import Uploader

logger = logging.getLogger(__name__)


class PollCycle:
    """Coordinates a device session, filtering, upload and power-down."""

    def __init__(
        self,
        connector: Connector,
        uploader: Uploader,
        sample_filter: Optional[SampleFilter] = None,
        num_readings: int = 10,
        sleep_time: float = 180.0,
        connect_timeout: float = 20.0,
        connect_retries: int = 5,
        low_power_timeout: float = DEFAULT_LOW_POWER_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.connector = connector
        self.uploader = uploader
        self.sample_filter = sample_filter or SampleFilter()
        self.num_readings = num_readings
        self.sleep_time = sleep_time
        self.connect_timeout = connect_timeout
        self.connect_retries = connect_retries
        self.low_power_timeout = low_power_timeout
        self._sleep = sleep
        self._session_locks: DefaultDict[str, Lock] = defaultdict(Lock)
        self._session_locks_lock = Lock()

    def session_lock(self, part_id: str) -> Lock:
        """Lock guarding the single open session allowed per machine."""
        with self._session_locks_lock:
            return self._session_locks[part_id]

    def open_session(self, machine: MachineDescriptor) -> DeviceSession:
        return DeviceSession.open(
            machine,
            self.connector,
            timeout=self.connect_timeout,
            max_retries=self.connect_retries,
            sleep=self._sleep,
        )

    def poll_once(self, machine: MachineDescriptor, num_readings: Optional[int] = None) -> SensorResult:
        """Read, filter, upload, then put the machine to sleep.

        Any failure before the sleep request aborts the cycle, leaving the
        machine awake until its next cycle.
        """
        count = num_readings if num_readings and num_readings > 0 else self.num_readings
        start_time = time.perf_counter()

        with self.session_lock(machine.part_id):
            logger.info("Connecting to 'smart' machine...", extra={"machine": machine.part_id})
            with self.open_session(machine) as session:
                captured_at = datetime.now(timezone.utc)
                readings = session.read_analog_series(ANALOG_READER, count)
                summary = self.sample_filter.filter(readings)
                temperature = summary.mean + machine.calibration_offset
                result = SensorResult(
                    part_id=machine.part_id,
                    captured_at=captured_at,
                    filtered_mean=summary.mean,
                    temperature=temperature,
                    sample_count=len(summary.retained),
                )
                logger.info(
                    "Temp: %.2f",
                    temperature,
                    extra={"machine": machine.part_id, "sample_count": result.sample_count},
                )

                self.uploader.upload(machine.part_id, captured_at, {"temp": temperature})

                session.set_low_power_until(self.sleep_time, timeout=self.low_power_timeout)

        logger.debug(
            "Cycle finished",
            extra={
                "machine": machine.part_id,
                "duration_ms": int((time.perf_counter() - start_time) * 1000),
            },
        )
        return result
