from __future__ import annotations

from typing import Any, Iterable

import typer

from models.records import CycleReport, ZoneReport


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_cycle_report(report: CycleReport) -> None:
    if report.error is not None:
        typer.secho(
            f"  - {report.part_id}: FAILED {type(report.error).__name__}: {report.error}",
            fg=typer.colors.RED,
        )
        return
    result = report.result
    assert result is not None
    typer.echo(
        f"  - {report.part_id}: {result.temperature:.2f} C "
        f"(filtered {result.filtered_mean:.2f} over {result.sample_count} samples)"
    )


def render_poll(reports: Iterable[CycleReport]) -> None:
    reports = list(reports)
    echo_heading("Poll Results")
    if not reports:
        typer.echo("No machines configured.")
        return
    for report in reports:
        render_cycle_report(report)
    failed = sum(1 for report in reports if not report.ok)
    typer.echo()
    echo_key_values([("machines", len(reports)), ("failed", failed)])


def render_zones(reports: Iterable[ZoneReport]) -> None:
    reports = list(reports)
    echo_heading("Zone Control")
    if not reports:
        typer.echo("No zones configured.")
        return
    for report in reports:
        typer.echo()
        echo_heading(report.zone)
        if report.error is not None:
            typer.secho(
                f"error: {type(report.error).__name__}: {report.error}", fg=typer.colors.RED
            )
            continue
        echo_key_values(
            [
                ("sensed_temp", f"{report.sensed_temp:.2f}" if report.sensed_temp is not None else None),
                ("sample_count", report.sample_count),
                ("actuator_on", report.actuator_on),
                ("commanded", ", ".join(report.commanded) or "-"),
            ]
        )
        if report.failed_actuators:
            typer.secho(
                f"failed_actuators: {', '.join(report.failed_actuators)}", fg=typer.colors.RED
            )
