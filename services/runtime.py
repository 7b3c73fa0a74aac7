"""Wiring of the long-lived collaborators shared by every loop."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from models.config import FleetConfig, load_config
from services.connectors import load_connector
from services.device import Connector
from services.fleet import FleetScheduler
from services.hvac import ThresholdController
from services.poller import PollCycle
from services.recent import RecentReadings
from services.telemetry import AverageSource, TelemetryClient
from settings import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Runtime:
    """Immutable context handed to the entry points."""

    settings: Settings
    config: FleetConfig
    telemetry: TelemetryClient
    recent: RecentReadings
    poll_cycle: PollCycle
    fleet: FleetScheduler
    controller: ThresholdController

    def shutdown(self) -> None:
        """Stop loops and release the shared telemetry connection."""
        self.fleet.stop()
        self.controller.stop()
        self.telemetry.close()


def build_runtime(
    settings: Settings,
    config: FleetConfig,
    connector: Connector,
    telemetry: TelemetryClient,
    use_recent_readings: bool = False,
) -> Runtime:
    poll_cycle = PollCycle(
        connector=connector,
        uploader=telemetry,
        num_readings=config.num_readings,
        sleep_time=config.sleep_time,
        connect_timeout=settings.connect_timeout,
        connect_retries=settings.connect_retries,
        low_power_timeout=settings.low_power_timeout,
    )
    recent = RecentReadings(max_age=settings.control_window)
    fleet = FleetScheduler(poll_cycle, margin=settings.cycle_margin, on_report=recent.record_report)
    average_source: AverageSource = recent if use_recent_readings else telemetry
    controller = ThresholdController(
        average_source=average_source,
        open_session=poll_cycle.open_session,
        session_lock=poll_cycle.session_lock,
        window=settings.control_window,
    )
    return Runtime(
        settings=settings,
        config=config,
        telemetry=telemetry,
        recent=recent,
        poll_cycle=poll_cycle,
        fleet=fleet,
        controller=controller,
    )


@lru_cache
def build_default_runtime(use_recent_readings: bool = False) -> Runtime:
    """Factory that wires the runtime from the environment and config file."""
    settings = get_settings()
    config = load_config(settings.config_path)
    logger.info(
        "Loaded configuration from %s with %d machines and %d zones",
        settings.config_path,
        len(config.machines),
        len(config.zones),
    )
    connector = load_connector(settings.connector)
    telemetry = TelemetryClient(
        base_url=settings.telemetry_base_url,
        credentials=config.app_credentials,
        organization_id=config.organization_id,
    )
    return build_runtime(settings, config, connector, telemetry, use_recent_readings)


def shutdown_default_runtime(runtime: Optional[Runtime] = None) -> None:
    if runtime is not None:
        runtime.shutdown()
    build_default_runtime.cache_clear()
