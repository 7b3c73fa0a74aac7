"""HTTP client for the central telemetry service."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence, Tuple

import httpx

from models.records import Credentials
from services.errors import TelemetryQueryFailed, UploadFailed

logger = logging.getLogger(__name__)

COMPONENT_TYPE = "rdk:component:sensor"
COMPONENT_NAME = "temp"
METHOD_NAME = "Readings"


class Uploader(Protocol):
    def upload(self, part_id: str, timestamp: datetime, fields: Mapping[str, float]) -> None: ...


class AverageSource(Protocol):
    def average_over(self, machine_ids: Sequence[str], window: float) -> Tuple[float, int]: ...


class TelemetryClient:
    """Uploads readings and queries zone averages.

    A single instance is opened at startup and shared by every machine loop;
    ``httpx.Client`` is safe for concurrent use from multiple threads.
    """

    def __init__(
        self,
        base_url: str,
        credentials: Credentials,
        organization_id: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._organization_id = organization_id
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "key_id": credentials.name,
                "key": credentials.secret,
            },
        )

    def close(self) -> None:
        self._client.close()

    def upload(self, part_id: str, timestamp: datetime, fields: Mapping[str, float]) -> None:
        """Send one tabular sensor reading for ``part_id``."""
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        received = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "metadata": {
                "part_id": part_id,
                "component_type": COMPONENT_TYPE,
                "component_name": COMPONENT_NAME,
                "method_name": METHOD_NAME,
                "type": "DATA_TYPE_TABULAR_SENSOR",
            },
            "sensor_contents": [
                {
                    "metadata": {
                        "time_requested": timestamp.isoformat(),
                        "time_received": received.isoformat(),
                    },
                    "struct": {"readings": dict(fields)},
                }
            ],
        }
        logger.info("Sending data to app: %s", dict(fields), extra={"machine": part_id})

        start = time.perf_counter()
        try:
            response = self._client.post("/datasync/upload", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise UploadFailed(f"Upload for {part_id!r} failed: {exc}") from exc
        logger.debug(
            "Upload accepted",
            extra={
                "machine": part_id,
                "status": response.status_code,
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )

    def average_over(self, machine_ids: Sequence[str], window: float) -> Tuple[float, int]:
        """Average ``temp`` across ``machine_ids`` over the last ``window`` seconds."""
        since = datetime.now(timezone.utc) - timedelta(seconds=window)
        pipeline = [
            {
                "$match": {
                    "organization_id": self._organization_id,
                    "component_name": COMPONENT_NAME,
                    "method_name": METHOD_NAME,
                    "robot_id": {"$in": list(machine_ids)},
                    "time_received": {"$gt": since.isoformat()},
                }
            },
            {
                "$group": {
                    "_id": None,
                    "temp_avg": {"$avg": "$data.readings.temp"},
                    "temp_cnt": {"$sum": 1},
                }
            },
        ]
        try:
            response = self._client.post(
                "/data/tabular/mql",
                json={"organization_id": self._organization_id, "mql": pipeline},
            )
            response.raise_for_status()
            data = response.json().get("data")
        except (httpx.HTTPError, ValueError) as exc:
            raise TelemetryQueryFailed(f"Telemetry query failed: {exc}") from exc

        if not isinstance(data, list) or len(data) != 1:
            raise TelemetryQueryFailed("Wrong number of results from telemetry query.")

        row = data[0]
        try:
            return float(row["temp_avg"]), int(row["temp_cnt"])
        except (KeyError, TypeError, ValueError) as exc:
            raise TelemetryQueryFailed(f"Malformed telemetry result: {row!r}") from exc
