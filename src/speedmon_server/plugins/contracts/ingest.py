"""Ingest plugin contract: post-storage processing of telemetry records."""

from __future__ import annotations

from abc import ABC, abstractmethod

from speedmon_server.schemas.telemetry import TelemetryRecord


class IngestPlugin(ABC):
    """Processes a telemetry record after it has been stored.

    Plugins run on the ingest worker, off the request path. Implementations
    decide what to do with the record: evaluate alerts, refresh baselines,
    forward it elsewhere.
    """

    name: str = "ingest"

    @abstractmethod
    async def handle(self, record: TelemetryRecord) -> None:
        """Process one stored record.

        Args:
            record: The validated record as it was stored.
        """
