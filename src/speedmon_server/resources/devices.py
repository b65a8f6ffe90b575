"""Device resource: protocol-agnostic per-device health and diagnosis."""

from __future__ import annotations

from speedmon_server.services.diagnosis_service import DiagnosisService
from speedmon_server.services.result_service import ResultService
from speedmon_server.services.stats_service import StatsService


class DeviceNotFoundError(Exception):
    """Raised when no results exist for the requested device."""


class DeviceResource:
    """Per-device views. Built once at startup with all dependencies pre-wired."""

    def __init__(
        self,
        *,
        stats_service: StatsService,
        diagnosis_service: DiagnosisService,
        result_service: ResultService,
    ) -> None:
        self._stats = stats_service
        self._diagnosis = diagnosis_service
        self._results = result_service

    async def health(self, device_id: str) -> dict[str, object]:
        """Health snapshot, median jitter, and recent tests.

        Raises:
            DeviceNotFoundError: If the device has never reported.
        """
        health = await self._stats.device_health(device_id)
        if health is None:
            raise DeviceNotFoundError(f"Device {device_id} not found")
        return health

    async def diagnose(self, device_id: str) -> dict[str, object]:
        """Multi-factor diagnosis over the device's recent history."""
        return await self._diagnosis.diagnose(device_id)

    async def connection_events(
        self, device_id: str, *, hours: int, event_type: str | None,
    ) -> dict[str, object]:
        """Recent connection events with per-type counts."""
        return await self._results.connection_events(
            device_id, hours=hours, event_type=event_type,
        )

    async def troubleshoot(self, device_id: str) -> dict[str, object]:
        """Rule-based fixes from the device's weekly averages."""
        return await self._diagnosis.troubleshoot(device_id)

    async def link_quality(self, device_id: str, *, hours: int) -> dict[str, object]:
        """MCS and link-error history with a verdict."""
        return await self._diagnosis.link_quality(device_id, hours)

    async def history(self, device_id: str, *, limit: int) -> list[dict[str, object]]:
        """Compact recent results, newest first."""
        return await self._results.device_history(device_id, limit=limit)

    async def export_csv(self, device_id: str, *, days: int) -> str:
        """CSV of the device's results over the window.

        Raises:
            DeviceNotFoundError: If the device has no results in the window.
        """
        text = await self._results.export_csv(device_id, days=days)
        if text is None:
            raise DeviceNotFoundError("No data found for device")
        return text
