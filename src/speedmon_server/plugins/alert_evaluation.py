"""Alert evaluation plugin: run the alert rules against each stored record."""

from __future__ import annotations

from speedmon_server.plugins.contracts.ingest import IngestPlugin
from speedmon_server.schemas.telemetry import TelemetryRecord
from speedmon_server.services.alert_service import AlertService


class AlertEvaluationPlugin(IngestPlugin):
    """Evaluate alert rules and anomaly detection for every record."""

    name = "alert_evaluation"

    def __init__(self, alert_service: AlertService) -> None:
        self._service = alert_service

    async def handle(self, record: TelemetryRecord) -> None:
        await self._service.evaluate(record)
