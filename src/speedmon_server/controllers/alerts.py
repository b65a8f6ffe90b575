"""Alerts controller: thin HTTP adapter for AlertResource."""

from __future__ import annotations

from typing import Any

from litestar import Controller, delete, get, post, put
from litestar.exceptions import HTTPException

from speedmon_server.resources.alerts import (
    AlertConfigNotFoundError,
    AlertResource,
    InvalidAlertConfigError,
)

MAX_HISTORY = 200
MAX_ANOMALY_HOURS = 720


class AlertController(Controller):
    """HTTP adapter for alert configs, alert history, and anomalies."""

    path = "/api"

    @post("/alerts/config", status_code=201)
    async def create_config(
        self, data: dict[str, Any], alert_resource: AlertResource,
    ) -> dict[str, object]:
        """Register a webhook target.

        Body: {"name": "...", "webhook_url": "...", "threshold_download_mbps": 50}
        """
        try:
            return await alert_resource.create_config(data)
        except InvalidAlertConfigError as error:
            raise HTTPException(status_code=400, detail=str(error)) from error

    @get("/alerts/config")
    async def list_configs(
        self, alert_resource: AlertResource,
    ) -> list[dict[str, object]]:
        """All alert configs, newest first."""
        return await alert_resource.list_configs()

    @put("/alerts/config/{config_id:int}")
    async def update_config(
        self, config_id: int, data: dict[str, Any], alert_resource: AlertResource,
    ) -> dict[str, object]:
        """Partially update an alert config. Only fields sent are changed."""
        try:
            return await alert_resource.update_config(config_id, data)
        except InvalidAlertConfigError as error:
            raise HTTPException(status_code=400, detail=str(error)) from error
        except AlertConfigNotFoundError as error:
            raise HTTPException(status_code=404, detail=str(error)) from error

    @delete("/alerts/config/{config_id:int}", status_code=200)
    async def delete_config(
        self, config_id: int, alert_resource: AlertResource,
    ) -> dict[str, object]:
        """Delete an alert config. Its history is kept."""
        try:
            return await alert_resource.delete_config(config_id)
        except AlertConfigNotFoundError as error:
            raise HTTPException(status_code=404, detail=str(error)) from error

    @post("/alerts/test", status_code=200)
    async def send_test(
        self, data: dict[str, Any], alert_resource: AlertResource,
    ) -> dict[str, object]:
        """Send a test alert.

        Body: {"config_id": 1}
        """
        try:
            return await alert_resource.send_test(data)
        except InvalidAlertConfigError as error:
            raise HTTPException(status_code=400, detail=str(error)) from error
        except AlertConfigNotFoundError as error:
            raise HTTPException(status_code=404, detail=str(error)) from error

    @get("/alerts/history")
    async def history(
        self,
        alert_resource: AlertResource,
        limit: int = 50,
        device_id: str | None = None,
    ) -> list[dict[str, object]]:
        """Recent alerts, newest first."""
        return await alert_resource.history(
            limit=max(1, min(limit, MAX_HISTORY)), device_id=device_id,
        )

    @get("/anomalies")
    async def anomalies(
        self, alert_resource: AlertResource, hours: int = 24,
    ) -> dict[str, object]:
        """Recent anomaly alerts and current device baselines."""
        return await alert_resource.anomalies(max(1, min(hours, MAX_ANOMALY_HOURS)))
