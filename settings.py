from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


_CONFIG_PATH_ENV = "MICROTEMP_CONFIG"
_LEGACY_CONFIG_PATH_ENV = "CONFIG"
_TELEMETRY_URL_ENV = "TELEMETRY_BASE_URL"
_CONNECTOR_ENV = "MICROTEMP_CONNECTOR"
_CONNECT_TIMEOUT_ENV = "CONNECT_TIMEOUT"
_CONNECT_RETRIES_ENV = "CONNECT_RETRIES"
_LOW_POWER_TIMEOUT_ENV = "LOW_POWER_TIMEOUT"
_CYCLE_MARGIN_ENV = "CYCLE_MARGIN"
_CONTROL_WINDOW_ENV = "CONTROL_WINDOW"
_CONTROL_INTERVAL_ENV = "CONTROL_INTERVAL"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_CONNECTOR = "services.connectors:SimulatedConnector"


@dataclass(frozen=True)
class Settings:
    config_path: Path
    telemetry_base_url: str
    connector: str
    connect_timeout: float
    connect_retries: int
    low_power_timeout: float
    cycle_margin: float
    control_window: float
    control_interval: float
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_float_env(name: str, default: float, allow_zero: bool = False) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    if parsed > 0 or (allow_zero and parsed == 0):
        return parsed
    return default


def _read_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_low_power_timeout(default: float) -> float:
    # The device stops answering once asleep; keep the supervising deadline short.
    parsed = _read_float_env(_LOW_POWER_TIMEOUT_ENV, default)
    return min(max(parsed, 2.0), 5.0)


def _read_config_path() -> Path:
    for name in (_CONFIG_PATH_ENV, _LEGACY_CONFIG_PATH_ENV):
        value = (os.getenv(name) or "").strip()
        if value:
            return Path(value).expanduser()
    return Path.home() / ".viam" / "temperatureconfig"


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        config_path=_read_config_path(),
        telemetry_base_url=_read_str_env(_TELEMETRY_URL_ENV, "http://localhost:8080").rstrip("/"),
        connector=_read_str_env(_CONNECTOR_ENV, DEFAULT_CONNECTOR),
        connect_timeout=_read_float_env(_CONNECT_TIMEOUT_ENV, 20.0),
        connect_retries=_read_int_env(_CONNECT_RETRIES_ENV, 5),
        low_power_timeout=_read_low_power_timeout(5.0),
        cycle_margin=_read_float_env(_CYCLE_MARGIN_ENV, 5.0, allow_zero=True),
        control_window=_read_float_env(_CONTROL_WINDOW_ENV, 3600.0),
        control_interval=_read_float_env(_CONTROL_INTERVAL_ENV, 300.0),
        log_level=_read_log_level("INFO"),
    )
