from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from settings import Settings, get_settings


@dataclass(frozen=True)
class CLIConfig:
    settings: Settings
    use_recent_readings: bool = False


def load_config(
    config_path: Optional[Path] = None,
    telemetry_url: Optional[str] = None,
    connector: Optional[str] = None,
    use_recent_readings: bool = False,
) -> CLIConfig:
    settings = get_settings()
    overrides = {}
    if config_path is not None:
        overrides["config_path"] = config_path.expanduser()
    if telemetry_url:
        overrides["telemetry_base_url"] = telemetry_url.rstrip("/")
    if connector:
        overrides["connector"] = connector
    if overrides:
        settings = replace(settings, **overrides)
    return CLIConfig(settings=settings, use_recent_readings=use_recent_readings)
