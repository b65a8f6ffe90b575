"""Baseline maintenance plugin: periodically refresh the device baseline."""

from __future__ import annotations

from speedmon_server.plugins.contracts.ingest import IngestPlugin
from speedmon_server.schemas.telemetry import TelemetryRecord
from speedmon_server.services.baseline_service import BaselineService


class BaselineMaintenancePlugin(IngestPlugin):
    """Recompute the device baseline on every Nth stored record."""

    name = "baseline_maintenance"

    def __init__(self, baseline_service: BaselineService) -> None:
        self._service = baseline_service

    async def handle(self, record: TelemetryRecord) -> None:
        await self._service.maybe_update(record.device_id)
