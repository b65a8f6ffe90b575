"""Ingest resource: protocol-agnostic telemetry submission and retrieval."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from speedmon_server.schemas.telemetry import ConnectionEventCreate, TelemetryRecord
from speedmon_server.services.result_service import ResultService
from speedmon_server.workers.ingest_worker import IngestWorker


class InvalidTelemetryError(Exception):
    """Raised when a submitted telemetry record fails validation."""


class InvalidConnectionEventError(Exception):
    """Raised when a submitted connection event fails validation."""


def describe_validation_error(error: ValidationError, required: tuple[str, ...]) -> str:
    """Collapse a pydantic error into one client-facing sentence."""
    details = error.errors()
    missing = [
        str(detail["loc"][0]) for detail in details
        if detail["loc"] and detail["loc"][0] in required
    ]
    if missing:
        return " and ".join(dict.fromkeys(missing)) + (
            " is required" if len(set(missing)) == 1 else " are required"
        )
    first = details[0]
    field = ".".join(str(part) for part in first["loc"])
    return f"{field}: {first['msg']}" if field else str(first["msg"])


class IngestResource:
    """Telemetry ingestion and result listing.

    Built once at startup with all dependencies pre-wired. Stored records
    are handed to the ingest worker for alerting and baseline upkeep.
    """

    def __init__(self, *, result_service: ResultService, worker: IngestWorker) -> None:
        self._service = result_service
        self._worker = worker

    async def submit_result(self, payload: dict[str, Any]) -> dict[str, object]:
        """Validate, store, and enqueue one telemetry record.

        Raises:
            InvalidTelemetryError: If device_id is missing or a field is malformed.
        """
        try:
            record = TelemetryRecord.model_validate(payload)
        except ValidationError as error:
            raise InvalidTelemetryError(
                describe_validation_error(error, ("device_id",)),
            ) from error
        result_id = await self._service.submit(record, payload)
        self._worker.submit(record)
        return {"success": True, "id": result_id}

    async def submit_connection_event(
        self, payload: dict[str, Any],
    ) -> dict[str, object]:
        """Validate and store a connection event.

        Raises:
            InvalidConnectionEventError: If device_id or event_type is missing
                or a field is malformed.
        """
        try:
            event = ConnectionEventCreate.model_validate(payload)
        except ValidationError as error:
            raise InvalidConnectionEventError(
                describe_validation_error(error, ("device_id", "event_type")),
            ) from error
        event_id = await self._service.record_connection_event(event)
        return {"success": True, "id": event_id}

    async def list_results(
        self,
        *,
        limit: int,
        offset: int,
        device_id: str | None,
        ssid: str | None,
        vpn_status: str | None,
    ) -> list[dict[str, object]]:
        """Page through all results, newest first."""
        return await self._service.list_results(
            limit=limit, offset=offset,
            device_id=device_id, ssid=ssid, vpn_status=vpn_status,
        )

    async def device_results(
        self, device_id: str, *, limit: int,
    ) -> list[dict[str, object]]:
        """Most recent results for one device."""
        return await self._service.list_device_results(device_id, limit=limit)
