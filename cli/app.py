from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from cli.config import CLIConfig, load_config
from cli.render import render_poll, render_zones
from logging_config import configure_logging
from models.config import load_config as load_fleet_config
from services.connectors import load_connector
from services.errors import ConfigError
from services.runtime import Runtime, build_runtime
from services.telemetry import TelemetryClient


@dataclass
class CLIState:
    config: CLIConfig
    runtime: Runtime


app = typer.Typer(
    help="Poll remote temperature sensors and drive zone heating/cooling.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def build_cli_runtime(config: CLIConfig) -> Runtime:
    settings = config.settings
    fleet_config = load_fleet_config(settings.config_path)
    telemetry = TelemetryClient(
        base_url=settings.telemetry_base_url,
        credentials=fleet_config.app_credentials,
        organization_id=fleet_config.organization_id,
    )
    return build_runtime(
        settings,
        fleet_config,
        load_connector(settings.connector),
        telemetry,
        use_recent_readings=config.use_recent_readings,
    )


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Fleet JSON document (defaults to MICROTEMP_CONFIG, CONFIG or ~/.viam/temperatureconfig).",
    ),
    telemetry_url: Optional[str] = typer.Option(
        None,
        "--telemetry-url",
        help="Telemetry service base URL (defaults to TELEMETRY_BASE_URL).",
    ),
    connector: Optional[str] = typer.Option(
        None,
        "--connector",
        help="Device connector as module:factory (defaults to MICROTEMP_CONNECTOR).",
    ),
    local_averages: bool = typer.Option(
        False,
        "--local-averages/--telemetry-averages",
        help="Average zone temperatures from this process's own readings.",
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL."),
) -> None:
    """Entry point for the CLI."""
    configure_logging(log_level.upper() if log_level else None)
    config = load_config(
        config_path=config_path,
        telemetry_url=telemetry_url,
        connector=connector,
        use_recent_readings=local_averages,
    )
    try:
        runtime = build_cli_runtime(config)
    except (ConfigError, ValueError, ImportError) as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    ctx.obj = CLIState(config=config, runtime=runtime)
    ctx.call_on_close(runtime.shutdown)


@app.command("run")
def run_command(
    ctx: typer.Context,
    iterations: Optional[int] = typer.Option(
        None,
        "--iterations",
        "-n",
        min=1,
        help="Cycles per machine before exiting (default: run until interrupted).",
    ),
    interval: Optional[float] = typer.Option(
        None,
        "--interval",
        help="Seconds between cycles (defaults to sleep_time from the config).",
    ),
    control: bool = typer.Option(
        False,
        "--control/--no-control",
        help="Also run zone control on its own schedule.",
    ),
) -> None:
    """Poll every machine in its own loop until stopped."""
    state = _get_state(ctx)
    runtime = state.runtime
    poll_interval = interval if interval is not None else runtime.config.sleep_time
    typer.echo(
        f"Polling {len(runtime.config.machines)} machines every {poll_interval}s "
        f"(+{runtime.settings.cycle_margin}s margin)..."
    )

    control_thread: Optional[threading.Thread] = None
    if control and runtime.config.zones:
        control_thread = threading.Thread(
            target=runtime.controller.run_forever,
            args=(runtime.config.zones, runtime.settings.control_interval),
            name="zone-control",
            daemon=True,
        )
        control_thread.start()

    try:
        runtime.fleet.run_forever(runtime.config.machines, poll_interval, iterations)
    except KeyboardInterrupt:
        typer.echo("Stopping after in-flight cycles finish...")
        runtime.fleet.stop()
    finally:
        runtime.controller.stop()
        if control_thread is not None:
            control_thread.join(timeout=1.0)


@app.command("poll")
def poll_command(ctx: typer.Context) -> None:
    """Poll every machine once, concurrently, and print the results."""
    state = _get_state(ctx)
    reports = state.runtime.fleet.poll_all(state.runtime.config.machines)
    render_poll(reports)


@app.command("control")
def control_command(
    ctx: typer.Context,
    forever: bool = typer.Option(False, "--forever", help="Repeat control cycles until interrupted."),
    interval: Optional[float] = typer.Option(
        None,
        "--interval",
        help="Seconds between control cycles (defaults to CONTROL_INTERVAL).",
    ),
) -> None:
    """Drive zone actuators toward their target temperatures."""
    state = _get_state(ctx)
    runtime = state.runtime
    zones = runtime.config.zones
    if not forever:
        render_zones(runtime.controller.run_cycle(zones))
        return

    cycle_interval = interval if interval is not None else runtime.settings.control_interval
    typer.echo(f"Controlling {len(zones)} zones every {cycle_interval}s...")
    try:
        runtime.controller.run_forever(zones, cycle_interval)
    except KeyboardInterrupt:
        runtime.controller.stop()
