"""Connector loading and a simulated transport for running without hardware."""

from __future__ import annotations

import logging
import random
from importlib import import_module
from threading import Lock
from typing import Any, Dict, Mapping, Optional

from models.records import Credentials
from services.device import Connector

logger = logging.getLogger(__name__)


class SimulatedDevice:
    """Board-like handle producing noisy readings around a base temperature."""

    def __init__(self, address: str, base_temp: float = 21.0, noise: float = 0.4, rng: Optional[random.Random] = None) -> None:
        self.address = address
        self.base_temp = base_temp
        self.noise = noise
        self.pins: Dict[str, bool] = {}
        self.commands: list[tuple[str, Dict[str, Any]]] = []
        self.closed = False
        self._rng = rng or random.Random()

    def set_gpio(self, pin: str, high: bool) -> None:
        self.pins[pin] = high

    def read_analog(self, reader: str) -> int:
        temp = self._rng.gauss(self.base_temp, self.noise)
        return int(round(temp * 10.0 + 500))

    def set_power_mode(self, duration: float) -> None:
        # Real boards drop the connection here instead of answering.
        raise TimeoutError(f"{self.address} went to sleep for {duration}s")

    def do_command(self, component: str, command: Mapping[str, Any]) -> Mapping[str, Any]:
        self.commands.append((component, dict(command)))
        return {"ok": True}

    def close(self) -> None:
        self.closed = True


class SimulatedConnector:
    """Hands out one simulated device per address."""

    def __init__(self, base_temp: float = 21.0, noise: float = 0.4, seed: Optional[int] = None) -> None:
        self.base_temp = base_temp
        self.noise = noise
        self._rng = random.Random(seed)
        self._devices: Dict[str, SimulatedDevice] = {}
        self._lock = Lock()

    def connect(self, address: str, credentials: Credentials, timeout: float) -> SimulatedDevice:
        with self._lock:
            device = self._devices.get(address)
            if device is None:
                device = SimulatedDevice(address, self.base_temp, self.noise, self._rng)
                self._devices[address] = device
            device.closed = False
        logger.debug("Simulated connection to %s as %s", address, credentials.name)
        return device


def load_connector(reference: str) -> Connector:
    """Instantiate a connector from a ``module:factory`` reference."""
    module_name, _, attribute = reference.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Connector reference {reference!r} must look like 'module:factory'.")
    module = import_module(module_name)
    try:
        factory = getattr(module, attribute)
    except AttributeError as exc:
        raise ValueError(f"Module {module_name!r} has no attribute {attribute!r}.") from exc
    return factory()
