"""Devices controller: thin HTTP adapter for DeviceResource."""

from __future__ import annotations

from litestar import Controller, Response, get
from litestar.exceptions import HTTPException

from speedmon_server.resources.devices import DeviceNotFoundError, DeviceResource

MAX_EVENT_HOURS = 168
MAX_HISTORY = 50
MAX_EXPORT_DAYS = 90


class DeviceController(Controller):
    """HTTP adapter for per-device health, diagnosis, history, and export."""

    path = "/api/devices"

    @get("/{device_id:str}/health")
    async def health(
        self, device_id: str, device_resource: DeviceResource,
    ) -> dict[str, object]:
        """Health snapshot and recent tests for a device."""
        try:
            return await device_resource.health(device_id)
        except DeviceNotFoundError as error:
            raise HTTPException(status_code=404, detail=str(error)) from error

    @get("/{device_id:str}/diagnose")
    async def diagnose(
        self, device_id: str, device_resource: DeviceResource,
    ) -> dict[str, object]:
        """Ranked likely causes of poor performance, with recommendations."""
        return await device_resource.diagnose(device_id)

    @get("/{device_id:str}/connection-events")
    async def connection_events(
        self,
        device_id: str,
        device_resource: DeviceResource,
        hours: int = 24,
        event_type: str | None = None,
    ) -> dict[str, object]:
        """Roam and disconnect history for a device."""
        return await device_resource.connection_events(
            device_id,
            hours=max(1, min(hours, MAX_EVENT_HOURS)),
            event_type=event_type,
        )

    @get("/{device_id:str}/troubleshoot")
    async def troubleshoot(
        self, device_id: str, device_resource: DeviceResource,
    ) -> dict[str, object]:
        """Plain-language fixes from the device's weekly averages."""
        return await device_resource.troubleshoot(device_id)

    @get("/{device_id:str}/link-quality")
    async def link_quality(
        self, device_id: str, device_resource: DeviceResource, hours: int = 24,
    ) -> dict[str, object]:
        """MCS, error-rate, and signal history with a link-level verdict."""
        return await device_resource.link_quality(
            device_id, hours=max(1, min(hours, MAX_EVENT_HOURS)),
        )

    @get("/{device_id:str}/history")
    async def history(
        self, device_id: str, device_resource: DeviceResource, limit: int = 10,
    ) -> list[dict[str, object]]:
        """Compact recent results for a device, newest first."""
        return await device_resource.history(
            device_id, limit=max(1, min(limit, MAX_HISTORY)),
        )

    @get("/{device_id:str}/export")
    async def export(
        self, device_id: str, device_resource: DeviceResource, days: int = 30,
    ) -> Response[str]:
        """Download the device's results as a CSV attachment."""
        days = max(1, min(days, MAX_EXPORT_DAYS))
        try:
            text = await device_resource.export_csv(device_id, days=days)
        except DeviceNotFoundError as error:
            raise HTTPException(status_code=404, detail=str(error)) from error
        filename = f"speed_monitor_{device_id[:8]}_{days}d.csv"
        return Response(
            content=text,
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
