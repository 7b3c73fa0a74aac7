"""Concurrent per-machine polling loops."""

from __future__ import annotations

import itertools
import logging
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from threading import Event
from typing import Callable, Deque, List, Optional, Sequence

from models.records import CycleReport, MachineDescriptor
from services.poller import PollCycle

logger = logging.getLogger(__name__)

ReportCallback = Callable[[CycleReport], None]


class FleetScheduler:
    """Runs an independent poll loop per machine with failure isolation."""

    def __init__(
        self,
        poll_cycle: PollCycle,
        margin: float = 5.0,
        on_report: Optional[ReportCallback] = None,
        history: int = 1000,
    ) -> None:
        self.poll_cycle = poll_cycle
        self.margin = margin
        self.reports: Deque[CycleReport] = deque(maxlen=history)
        self._callbacks: List[ReportCallback] = [on_report] if on_report else []
        self._stop = Event()

    def add_callback(self, callback: ReportCallback) -> None:
        self._callbacks.append(callback)

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run_cycle(self, machine: MachineDescriptor, iteration: int = 0) -> CycleReport:
        """Run one poll cycle, converting any failure into a report."""
        try:
            result = self.poll_cycle.poll_once(machine)
        except Exception as exc:  # noqa: BLE001 - one machine must not take down the fleet
            logger.error(
                "Poll cycle failed: %s",
                exc,
                extra={"machine": machine.part_id, "iteration": iteration, "reason": type(exc).__name__},
            )
            report = CycleReport(part_id=machine.part_id, iteration=iteration, error=exc)
        else:
            report = CycleReport(part_id=machine.part_id, iteration=iteration, result=result)
        self._publish(report)
        return report

    def poll_all(self, machines: Sequence[MachineDescriptor]) -> List[CycleReport]:
        """Poll every machine once, concurrently, and wait for all of them."""
        if not machines:
            return []
        with ThreadPoolExecutor(max_workers=len(machines), thread_name_prefix="poll") as executor:
            futures = [executor.submit(self.run_cycle, machine) for machine in machines]
            return [future.result() for future in futures]

    def run_forever(
        self,
        machines: Sequence[MachineDescriptor],
        interval: float,
        iterations: Optional[int] = None,
    ) -> None:
        """Start a loop per machine and block until every loop ends.

        With ``iterations`` unset the loops only end after :meth:`stop`. A stop
        requested before the loops start is honoured.
        """
        if not machines:
            logger.warning("No machines configured; nothing to poll.")
            return
        with ThreadPoolExecutor(max_workers=len(machines), thread_name_prefix="machine") as executor:
            for machine in machines:
                executor.submit(self._machine_loop, machine, interval, iterations)

    def stop(self) -> None:
        """Stop scheduling new cycles; in-flight cycles run to completion."""
        self._stop.set()

    def _machine_loop(
        self, machine: MachineDescriptor, interval: float, iterations: Optional[int]
    ) -> None:
        counter = itertools.count() if iterations is None else range(iterations)
        for iteration in counter:
            if self._stop.is_set():
                break
            logger.info("Reading number %d", iteration, extra={"machine": machine.part_id})
            self.run_cycle(machine, iteration)

            # No sleep after the terminal iteration of a bounded run.
            if iterations is not None and iteration >= iterations - 1:
                break
            logger.info("Sleeping...", extra={"machine": machine.part_id})
            if self._stop.wait(interval + self.margin):
                break

    def _publish(self, report: CycleReport) -> None:
        self.reports.append(report)
        for callback in self._callbacks:
            try:
                callback(report)
            except Exception as exc:  # noqa: BLE001 - observers cannot break the loop
                logger.error(
                    "Report callback failed: %s", exc, extra={"machine": report.part_id}
                )
