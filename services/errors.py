"""Exception taxonomy for polling and control."""

from __future__ import annotations


class MicrotempError(Exception):
    """Base class for orchestrator failures."""


class ConfigError(MicrotempError):
    """The fleet configuration document is missing or malformed."""


class ConnectionFailed(MicrotempError):
    """Every connection attempt to a machine failed."""

    def __init__(self, part_id: str, attempts: int) -> None:
        super().__init__(f"Could not connect to machine {part_id!r} after {attempts} attempts.")
        self.part_id = part_id
        self.attempts = attempts


class NoSamples(MicrotempError):
    """A sampling pass produced no readings."""


class InsufficientSamples(MicrotempError):
    """Too few telemetry samples to trust a zone average."""

    def __init__(self, count: int, required: int) -> None:
        super().__init__(f"Zone average based on {count} samples, need at least {required}.")
        self.count = count
        self.required = required


class InvalidMode(MicrotempError):
    """A zone is configured with a mode other than heat or cool."""

    def __init__(self, mode: object) -> None:
        super().__init__(f"Unsupported hvac mode {mode!r}; expected 'heat' or 'cool'.")
        self.mode = mode


class DeviceError(MicrotempError):
    """A command sent over an open device session failed."""


class ActuatorCommandFailed(DeviceError):
    """An actuator rejected or failed to apply a command."""


class LowPowerFailed(DeviceError):
    """The device refused the deep-sleep request with a real error."""


class UploadFailed(MicrotempError):
    """The telemetry service did not accept a reading."""


class TelemetryQueryFailed(MicrotempError):
    """The telemetry service could not produce a zone average."""
