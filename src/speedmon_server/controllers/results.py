"""Results controller: thin HTTP adapter for IngestResource."""

from __future__ import annotations

from typing import Any

from litestar import Controller, get, post
from litestar.exceptions import HTTPException

from speedmon_server.resources.ingest import (
    IngestResource,
    InvalidConnectionEventError,
    InvalidTelemetryError,
)

MAX_RESULTS = 1000
MAX_DEVICE_RESULTS = 500


class ResultController(Controller):
    """HTTP adapter for telemetry ingestion and result listing."""

    path = "/api"

    @post("/results", status_code=201)
    async def submit_result(
        self, data: dict[str, Any], ingest_resource: IngestResource,
    ) -> dict[str, object]:
        """Collector submits one speed test result."""
        try:
            return await ingest_resource.submit_result(data)
        except InvalidTelemetryError as error:
            raise HTTPException(status_code=400, detail=str(error)) from error

    @post("/connection-events", status_code=201)
    async def submit_connection_event(
        self, data: dict[str, Any], ingest_resource: IngestResource,
    ) -> dict[str, object]:
        """Collector reports a roam, disconnect, or connect event."""
        try:
            return await ingest_resource.submit_connection_event(data)
        except InvalidConnectionEventError as error:
            raise HTTPException(status_code=400, detail=str(error)) from error

    @get("/results")
    async def list_results(
        self,
        ingest_resource: IngestResource,
        limit: int = 100,
        offset: int = 0,
        device_id: str | None = None,
        ssid: str | None = None,
        vpn_status: str | None = None,
    ) -> list[dict[str, object]]:
        """All results, newest first, with optional filters."""
        return await ingest_resource.list_results(
            limit=max(1, min(limit, MAX_RESULTS)),
            offset=max(0, offset),
            device_id=device_id,
            ssid=ssid,
            vpn_status=vpn_status,
        )

    @get("/results/{device_id:str}")
    async def device_results(
        self, device_id: str, ingest_resource: IngestResource, limit: int = 50,
    ) -> list[dict[str, object]]:
        """Most recent results for one device."""
        return await ingest_resource.device_results(
            device_id, limit=max(1, min(limit, MAX_DEVICE_RESULTS)),
        )
