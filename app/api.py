"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from starlette.concurrency import run_in_threadpool

from app.schemas import ControlResponse, MachineResult, MachineSummary, PollResponse, ZoneResult
from services.runtime import Runtime, build_default_runtime

router = APIRouter()


def get_runtime() -> Runtime:
    return build_default_runtime()


@router.get(
    "/machines",
    response_model=List[MachineSummary],
    summary="List the machines this process polls.",
)
async def list_machines(runtime: Runtime = Depends(get_runtime)) -> List[MachineSummary]:
    return [MachineSummary.from_descriptor(machine) for machine in runtime.config.machines]


@router.post(
    "/poll",
    response_model=PollResponse,
    summary="Poll every machine once, concurrently.",
)
async def poll_fleet(runtime: Runtime = Depends(get_runtime)) -> PollResponse:
    reports = await run_in_threadpool(runtime.fleet.poll_all, runtime.config.machines)
    return PollResponse(results=[MachineResult.from_report(report) for report in reports])


@router.post(
    "/machines/{part_id}/poll",
    response_model=MachineResult,
    summary="Poll a single machine once.",
)
async def poll_machine(part_id: str, runtime: Runtime = Depends(get_runtime)) -> MachineResult:
    try:
        machine = runtime.config.machine(part_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    report = await run_in_threadpool(runtime.fleet.run_cycle, machine)
    return MachineResult.from_report(report)


@router.post(
    "/zones/control",
    response_model=ControlResponse,
    summary="Run one threshold control pass over every zone.",
)
async def control_zones(runtime: Runtime = Depends(get_runtime)) -> ControlResponse:
    reports = await run_in_threadpool(runtime.controller.run_cycle, runtime.config.zones)
    return ControlResponse(zones=[ZoneResult.from_report(report) for report in reports])


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
