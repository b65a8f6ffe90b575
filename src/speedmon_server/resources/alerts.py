"""Alert resource: protocol-agnostic alert config, history, and anomaly views."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from speedmon_server.resources.ingest import describe_validation_error
from speedmon_server.schemas.alert import AlertConfigCreate, AlertConfigUpdate
from speedmon_server.services.alert_service import AlertService
from speedmon_server.services.baseline_service import BaselineService


class InvalidAlertConfigError(Exception):
    """Raised when an alert config body fails validation."""


class AlertConfigNotFoundError(Exception):
    """Raised when the requested alert config does not exist."""


class AlertResource:
    """Alert target management and alert log queries.

    Built once at startup with all dependencies pre-wired.
    """

    def __init__(
        self, *, alert_service: AlertService, baseline_service: BaselineService,
    ) -> None:
        self._service = alert_service
        self._baselines = baseline_service

    async def create_config(self, payload: dict[str, Any]) -> dict[str, object]:
        """Create an alert config.

        Raises:
            InvalidAlertConfigError: If name or webhook_url is missing or a
                field is malformed.
        """
        try:
            body = AlertConfigCreate.model_validate(payload)
        except ValidationError as error:
            raise InvalidAlertConfigError(
                describe_validation_error(error, ("name", "webhook_url")),
            ) from error
        return await self._service.create_config(body.model_dump())

    async def list_configs(self) -> list[dict[str, object]]:
        """Return all alert configs, newest first."""
        return await self._service.list_configs()

    async def update_config(
        self, config_id: int, payload: dict[str, Any],
    ) -> dict[str, object]:
        """Partially update an alert config.

        Raises:
            InvalidAlertConfigError: If a field is malformed.
            AlertConfigNotFoundError: If the config does not exist.
        """
        try:
            body = AlertConfigUpdate.model_validate(payload)
        except ValidationError as error:
            raise InvalidAlertConfigError(
                describe_validation_error(error, ()),
            ) from error
        try:
            return await self._service.update_config(config_id, body.changes())
        except ValueError as error:
            raise AlertConfigNotFoundError(str(error)) from error

    async def delete_config(self, config_id: int) -> dict[str, object]:
        """Delete an alert config.

        Raises:
            AlertConfigNotFoundError: If the config does not exist.
        """
        try:
            return await self._service.delete_config(config_id)
        except ValueError as error:
            raise AlertConfigNotFoundError(str(error)) from error

    async def send_test(self, payload: dict[str, Any]) -> dict[str, object]:
        """Send a test alert to the config named by ``config_id``.

        Raises:
            InvalidAlertConfigError: If config_id is missing or not an integer.
            AlertConfigNotFoundError: If the config does not exist.
        """
        config_id = payload.get("config_id")
        if isinstance(config_id, bool) or not isinstance(config_id, int):
            raise InvalidAlertConfigError("config_id is required")
        try:
            result = await self._service.send_test_alert(config_id)
        except ValueError as error:
            raise AlertConfigNotFoundError(str(error)) from error
        result["message"] = (
            "Test alert sent!" if result["success"] else "Failed to send alert"
        )
        return result

    async def history(
        self, *, limit: int, device_id: str | None,
    ) -> list[dict[str, object]]:
        """Recent alerts with the name of the config that fired them."""
        return await self._service.list_history(limit=limit, device_id=device_id)

    async def anomalies(self, hours: int) -> dict[str, object]:
        """Recent anomaly alerts and the current device baselines."""
        return {
            "recent_anomalies": await self._service.recent_anomalies(hours),
            "baselines": await self._baselines.list_baselines(),
        }
