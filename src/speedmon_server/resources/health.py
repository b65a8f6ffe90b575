"""Health resource: protocol-agnostic liveness and store status."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from speedmon_server.services.result_service import ResultService
from speedmon_server.utils.time import Time
from speedmon_server.workers.ingest_worker import IngestWorker


def _package_version() -> str:
    try:
        return version("speedmon-server")
    except PackageNotFoundError:
        return "0.0.0"


class HealthResource:
    """Health check operations."""

    def __init__(self, *, result_service: ResultService, worker: IngestWorker) -> None:
        self._results = result_service
        self._worker = worker
        self._version = _package_version()

    async def check(self) -> dict[str, object]:
        """Return server status, version, and the number of stored results."""
        return {
            "status": "ok",
            "timestamp": Time.utcnow().isoformat(),
            "version": self._version,
            "ingest_worker": "running" if self._worker.running else "stopped",
            "total_results": await self._results.count_results(),
        }
