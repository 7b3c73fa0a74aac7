from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime
from threading import Event, Lock
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import httpx
import pytest

from models.config import parse_config
from models.records import Credentials, MachineDescriptor
from services.runtime import Runtime, build_runtime
from services.telemetry import TelemetryClient
from settings import get_settings


class FakeHandle:
    """Scriptable board handle recording everything the session does to it."""

    def __init__(
        self,
        raw_values: Optional[Sequence[int]] = None,
        failing_samples: Iterable[int] = (),
        power_behavior: str = "timeout",
        command_error: Optional[Exception] = None,
    ) -> None:
        self.raw_values = list(raw_values if raw_values is not None else [720] * 10)
        self.failing_samples = set(failing_samples)
        self.power_behavior = power_behavior
        self.command_error = command_error
        self.pin_history: List[Tuple[str, bool]] = []
        self.power_requests: List[float] = []
        self.commands: List[Tuple[str, Dict[str, Any]]] = []
        self.close_calls = 0
        self.closed_during_power_call = False
        self.release = Event()
        self._power_active = False
        self._reads = 0

    @property
    def pin_high(self) -> bool:
        return bool(self.pin_history) and self.pin_history[-1][1]

    def set_gpio(self, pin: str, high: bool) -> None:
        self.pin_history.append((pin, high))

    def read_analog(self, reader: str) -> int:
        index = self._reads
        self._reads += 1
        if index in self.failing_samples:
            raise RuntimeError(f"sample {index} failed")
        return self.raw_values[index % len(self.raw_values)]

    def set_power_mode(self, duration: float) -> None:
        self.power_requests.append(duration)
        if self.power_behavior == "timeout":
            raise TimeoutError("deadline exceeded")
        if self.power_behavior == "hang":
            self._power_active = True
            try:
                self.release.wait(5.0)
            finally:
                self._power_active = False
            return
        if self.power_behavior == "error":
            raise RuntimeError("power mode not supported")

    def do_command(self, component: str, command: Mapping[str, Any]) -> Mapping[str, Any]:
        self.commands.append((component, dict(command)))
        if self.command_error is not None:
            raise self.command_error
        return {"ok": True}

    def close(self) -> None:
        if self._power_active:
            self.closed_during_power_call = True
        self.close_calls += 1


class FakeConnector:
    """Connector failing the first ``failures`` attempts per address (``None`` = always)."""

    def __init__(
        self,
        failures: Optional[int] = 0,
        handle_factory: Optional[Callable[[str], FakeHandle]] = None,
        always_fail: Iterable[str] = (),
    ) -> None:
        self.failures = failures
        self.always_fail = set(always_fail)
        self.handle_factory = handle_factory or (lambda _address: FakeHandle())
        self.attempts: Dict[str, int] = {}
        self.handles: Dict[str, List[FakeHandle]] = {}
        self.timeouts: List[float] = []
        self._lock = Lock()

    def connect(self, address: str, credentials: Credentials, timeout: float) -> FakeHandle:
        with self._lock:
            attempt = self.attempts.get(address, 0) + 1
            self.attempts[address] = attempt
            self.timeouts.append(timeout)
        if address in self.always_fail or self.failures is None or attempt <= self.failures:
            raise ConnectionError(f"{address} unreachable (attempt {attempt})")
        handle = self.handle_factory(address)
        with self._lock:
            self.handles.setdefault(address, []).append(handle)
        return handle


class RecordingUploader:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.uploads: List[Tuple[str, datetime, Dict[str, float]]] = []
        self._lock = Lock()

    def upload(self, part_id: str, timestamp: datetime, fields: Mapping[str, float]) -> None:
        if self.error is not None:
            raise self.error
        with self._lock:
            self.uploads.append((part_id, timestamp, dict(fields)))


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_machine(part_id: str = "part-1", offset: float = 0.0) -> MachineDescriptor:
    return MachineDescriptor(
        part_id=part_id,
        address=f"{part_id}.local.example",
        credentials=Credentials(name=f"{part_id}-key-id", secret="secret"),
        calibration_offset=offset,
    )


SAMPLE_CONFIG: Dict[str, Any] = {
    "machines": [
        {
            "part_id": "part-1",
            "part_uri": "part-1.local.example",
            "mach_api_name": "key-1",
            "mach_api_key": "secret-1",
            "temp_offset_c": -1.5,
        },
        {
            "part_id": "part-2",
            "part_uri": "part-2.local.example",
            "mach_api_name": "key-2",
            "mach_api_key": "secret-2",
        },
    ],
    "app_api_name": "app-key-id",
    "app_api_key": "app-secret",
    "app_org_id": "org-1",
    "sleep_time": 180,
    "num_sensor_readings": 6,
    "zones": [
        {
            "name": "office",
            "hvacs": [{"machine_id": "hvac-1", "machine_uri": "hvac-1.local.example"}],
            "temp_machines": ["part-1", "part-2"],
            "target_temp_c": 21.0,
            "hvac_mode": "heat",
        }
    ],
    "hvac_api_name": "hvac-key-id",
    "hvac_api_key": "hvac-secret",
}


def telemetry_transport(
    average: Tuple[float, int] = (20.0, 12),
    uploads: Optional[List[Dict[str, Any]]] = None,
) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/datasync/upload":
            if uploads is not None:
                uploads.append(json.loads(request.content))
            return httpx.Response(200, json={})
        if request.url.path == "/data/tabular/mql":
            return httpx.Response(
                200, json={"data": [{"temp_avg": average[0], "temp_cnt": average[1]}]}
            )
        return httpx.Response(404, json={"detail": "not found"})

    return httpx.MockTransport(handler)


@pytest.fixture
def sample_config_json() -> str:
    return json.dumps(SAMPLE_CONFIG)


@pytest.fixture
def fake_runtime_factory(sample_config_json: str) -> Callable[..., Runtime]:
    def factory(
        connector: Optional[FakeConnector] = None,
        average: Tuple[float, int] = (20.0, 12),
        uploads: Optional[List[Dict[str, Any]]] = None,
    ) -> Runtime:
        settings = replace(
            get_settings(),
            connect_retries=2,
            cycle_margin=0.0,
            low_power_timeout=2.0,
        )
        config = parse_config(sample_config_json)
        telemetry = TelemetryClient(
            base_url="http://telemetry.test",
            credentials=config.app_credentials,
            organization_id=config.organization_id,
            transport=telemetry_transport(average, uploads),
        )
        runtime = build_runtime(settings, config, connector or FakeConnector(), telemetry)
        # Keep backoff and stabilization waits out of the test run.
        runtime.poll_cycle._sleep = lambda _seconds: None
        return runtime

    return factory
