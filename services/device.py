"""Connection lifecycle and commands for a single remote machine."""

from __future__ import annotations

import logging
import time
from concurrent.futures import CancelledError
from threading import Thread
from types import TracebackType
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Type

from models.records import Credentials, LowPowerOutcome, MachineDescriptor, ReadingBatch
from services.errors import ActuatorCommandFailed, ConnectionFailed, LowPowerFailed, NoSamples

logger = logging.getLogger(__name__)

POWER_PIN = "12"
ANALOG_READER = "temp"
ACTUATOR_COMPONENT = "AC-switch-generic"
ACTUATOR_COMMAND_KEY = "AC_ON"

STABILIZATION_DELAY = 1.0
SAMPLE_DELAY = 0.01
DEFAULT_LOW_POWER_TIMEOUT = 5.0
CLOSE_GRACE = 1.0


class DeviceHandle(Protocol):
    """Live transport handle returned by a connector."""

    def set_gpio(self, pin: str, high: bool) -> None: ...

    def read_analog(self, reader: str) -> int: ...

    def set_power_mode(self, duration: float) -> None: ...

    def do_command(self, component: str, command: Mapping[str, Any]) -> Mapping[str, Any]: ...

    def close(self) -> None: ...


class Connector(Protocol):
    """Transport factory used to reach machines."""

    def connect(self, address: str, credentials: Credentials, timeout: float) -> DeviceHandle: ...


def raw_to_celsius(raw: int | float) -> float:
    return (raw - 500) / 10.0


class DeviceSession:
    """An open connection to one machine, owned by the call that opened it."""

    def __init__(
        self,
        machine: MachineDescriptor,
        handle: DeviceHandle,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.machine = machine
        self._handle = handle
        self._sleep = sleep
        self._closed = False
        self._power_call: Optional[Thread] = None

    @classmethod
    def open(
        cls,
        machine: MachineDescriptor,
        connector: Connector,
        timeout: float = 20.0,
        max_retries: int = 5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "DeviceSession":
        """Connect with linear backoff: wait ``i`` seconds after failed attempt ``i``."""
        attempts = max(max_retries, 1)
        last_error: Optional[BaseException] = None
        for attempt in range(attempts):
            try:
                handle = connector.connect(machine.address, machine.credentials, timeout)
            except Exception as exc:  # noqa: BLE001 - transports raise arbitrary errors
                last_error = exc
                logger.info(
                    "Connection to machine failed: %s",
                    exc,
                    extra={"machine": machine.part_id, "attempt": attempt + 1},
                )
                if attempt < attempts - 1:
                    sleep(float(attempt))
                continue

            logger.info(
                "Connected", extra={"machine": machine.part_id, "attempt": attempt + 1}
            )
            return cls(machine, handle, sleep=sleep)

        logger.warning(
            "Failed to connect to machine", extra={"machine": machine.part_id, "attempt": attempts}
        )
        raise ConnectionFailed(machine.part_id, attempts) from last_error

    @property
    def closed(self) -> bool:
        return self._closed

    def read_analog_series(
        self,
        channel: str,
        count: int,
        power_pin: str = POWER_PIN,
    ) -> ReadingBatch:
        """Power the probe, let it settle, and collect up to ``count`` readings."""
        part_id = self.machine.part_id
        # Prior pin state is irrelevant; it only needs to be high while sampling.
        self._handle.set_gpio(power_pin, True)
        try:
            self._sleep(STABILIZATION_DELAY)

            readings: ReadingBatch = []
            for index in range(count):
                try:
                    raw = self._handle.read_analog(channel)
                except Exception as exc:  # noqa: BLE001 - a bad sample is skipped, not retried
                    logger.info(
                        "Failed to get reading, skipping: %s",
                        exc,
                        extra={"machine": part_id, "iteration": index},
                    )
                    continue
                temp = raw_to_celsius(raw)
                logger.debug("Sample %d: %.2f", index, temp, extra={"machine": part_id})
                readings.append(temp)
                self._sleep(SAMPLE_DELAY)
        finally:
            try:
                self._handle.set_gpio(power_pin, False)
            except Exception as exc:  # noqa: BLE001 - the probe is powered down on sleep anyway
                logger.debug("Could not lower power pin: %s", exc, extra={"machine": part_id})

        if not readings:
            raise NoSamples(f"No temperature readings received from {part_id!r}.")
        return readings

    def set_low_power_until(
        self, duration: float, timeout: float = DEFAULT_LOW_POWER_TIMEOUT
    ) -> LowPowerOutcome:
        """Ask the device to deep-sleep for ``duration`` seconds.

        The device drops the connection instead of replying, so the call runs
        on a daemon thread supervised by a short deadline. Expiry of that
        deadline, or a cancellation or timeout raised by the transport, means
        the device is asleep and yields ``LowPowerOutcome.suspended``.
        """
        part_id = self.machine.part_id
        errors: List[Exception] = []

        def request() -> None:
            try:
                self._handle.set_power_mode(duration)
            except Exception as exc:  # noqa: BLE001 - reported by the supervising thread
                errors.append(exc)

        worker = Thread(target=request, name=f"sleep-{part_id}", daemon=True)
        self._power_call = worker
        worker.start()
        worker.join(timeout)

        if worker.is_alive():
            outcome = LowPowerOutcome.suspended
        elif errors and isinstance(errors[0], (CancelledError, TimeoutError)):
            outcome = LowPowerOutcome.suspended
        elif errors:
            raise LowPowerFailed(
                f"Machine {part_id!r} refused to enter low power: {errors[0]}"
            ) from errors[0]
        else:
            outcome = LowPowerOutcome.acknowledged

        logger.info("Night night", extra={"machine": part_id, "status": outcome.value})
        return outcome

    def set_actuator(
        self,
        name: str,
        on: bool,
        command_key: str = ACTUATOR_COMMAND_KEY,
    ) -> Mapping[str, Any]:
        command: Dict[str, Any] = {command_key: on}
        try:
            return self._handle.do_command(name, command)
        except Exception as exc:
            raise ActuatorCommandFailed(
                f"Command {command} to {name!r} on {self.machine.part_id!r} failed: {exc}"
            ) from exc

    def close(self) -> None:
        """Release the handle once no power request is using it.

        A power request still blocked after ``CLOSE_GRACE`` seconds keeps the
        handle; the transport is dropped by the sleeping device instead.
        """
        if self._closed:
            return
        self._closed = True
        part_id = self.machine.part_id
        worker = self._power_call
        if worker is not None and worker.is_alive():
            worker.join(CLOSE_GRACE)
            if worker.is_alive():
                logger.debug("Power request still pending; leaving handle open", extra={"machine": part_id})
                return
        try:
            self._handle.close()
        except Exception as exc:  # noqa: BLE001 - the device may already be asleep
            logger.debug("Error closing session: %s", exc, extra={"machine": part_id})

    def __enter__(self) -> "DeviceSession":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()
