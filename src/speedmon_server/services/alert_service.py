"""Alert rule evaluation, alert config management, and alert history."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from speedmon_server.clients.slack_webhook_client import SlackWebhookClient
from speedmon_server.dao.alert_dao import AlertDAO
from speedmon_server.dao.result_dao import ResultDAO
from speedmon_server.models.alert import AlertConfig, AlertHistory
from speedmon_server.schemas.telemetry import TelemetryRecord
from speedmon_server.services.anomaly_service import AnomalyService
from speedmon_server.utils.time import Time

logger = logging.getLogger(__name__)

ANOMALY_ALERT = "Anomaly Detected"
ERROR_RATE_WARNING_PCT = 1.0
ERROR_RATE_CRITICAL_PCT = 5.0
GOOD_SIGNAL_DBM = -60
POOR_MCS = 5
RETRANSMIT_LIMIT = 100
SLOW_DOWNLOAD_MBPS = 50


@dataclass(frozen=True)
class TriggeredAlert:
    """The outcome of a rule that fired."""

    alert_type: str
    message: str
    severity: str


@dataclass(frozen=True)
class LinkActivity:
    """Connection events a device logged in the trailing hour."""

    roams: int
    disconnects: int
    roam_threshold: int
    disconnect_threshold: int


Rule = Callable[[TelemetryRecord, AlertConfig, LinkActivity], TriggeredAlert | None]


def _low_download(
    record: TelemetryRecord, config: AlertConfig, activity: LinkActivity,
) -> TriggeredAlert | None:
    threshold = config.threshold_download_mbps
    if not threshold or record.download_mbps >= threshold:
        return None
    return TriggeredAlert(
        "Low Download Speed",
        f"Download speed {record.download_mbps} Mbps is below threshold "
        f"of {threshold} Mbps",
        "critical" if record.download_mbps < threshold / 2 else "warning",
    )


def _high_jitter(
    record: TelemetryRecord, config: AlertConfig, activity: LinkActivity,
) -> TriggeredAlert | None:
    threshold = config.threshold_jitter_ms
    if not threshold or record.jitter_ms <= threshold:
        return None
    return TriggeredAlert(
        "High Jitter",
        f"Jitter {record.jitter_ms}ms exceeds threshold of {threshold}ms",
        "critical" if record.jitter_ms > threshold * 2 else "warning",
    )


def _high_packet_loss(
    record: TelemetryRecord, config: AlertConfig, activity: LinkActivity,
) -> TriggeredAlert | None:
    threshold = config.threshold_packet_loss_pct
    if not threshold or record.packet_loss_pct <= threshold:
        return None
    return TriggeredAlert(
        "High Packet Loss",
        f"Packet loss {record.packet_loss_pct}% exceeds threshold of {threshold}%",
        "critical",
    )


def _high_error_rate(
    record: TelemetryRecord, config: AlertConfig, activity: LinkActivity,
) -> TriggeredAlert | None:
    rate = record.combined_error_rate
    if rate <= ERROR_RATE_WARNING_PCT:
        return None
    return TriggeredAlert(
        "High Error Rate",
        f"Packet error rate {rate:.2f}% exceeds {ERROR_RATE_WARNING_PCT:g}% "
        f"threshold (input: {record.input_error_rate:.2f}%, "
        f"output: {record.output_error_rate:.2f}%)",
        "critical" if rate > ERROR_RATE_CRITICAL_PCT else "warning",
    )


def _excessive_roaming(
    record: TelemetryRecord, config: AlertConfig, activity: LinkActivity,
) -> TriggeredAlert | None:
    if activity.roams <= activity.roam_threshold:
        return None
    return TriggeredAlert(
        "Excessive Roaming",
        f"Device roamed {activity.roams} times in the last hour "
        f"(threshold: {activity.roam_threshold}). "
        "Possible AP instability or weak signal areas.",
        "critical" if activity.roams > activity.roam_threshold * 2 else "warning",
    )


def _hidden_congestion(
    record: TelemetryRecord, config: AlertConfig, activity: LinkActivity,
) -> TriggeredAlert | None:
    if record.rssi_dbm == 0 or record.rssi_dbm <= GOOD_SIGNAL_DBM:
        return None
    if not 0 <= record.mcs_index < POOR_MCS:
        return None
    if (
        record.tcp_retransmits <= RETRANSMIT_LIMIT
        and record.download_mbps >= SLOW_DOWNLOAD_MBPS
    ):
        return None
    return TriggeredAlert(
        "Hidden Congestion",
        f"Good signal ({record.rssi_dbm} dBm) but poor link quality: "
        f"MCS {record.mcs_index}, {record.download_mbps} Mbps. "
        "Possible interference or congestion.",
        "critical",
    )


def _frequent_disconnects(
    record: TelemetryRecord, config: AlertConfig, activity: LinkActivity,
) -> TriggeredAlert | None:
    if activity.disconnects <= activity.disconnect_threshold:
        return None
    return TriggeredAlert(
        "Frequent Disconnects",
        f"Device disconnected {activity.disconnects} times in the last hour "
        f"(threshold: {activity.disconnect_threshold}). "
        "Check for interference or router issues.",
        "critical",
    )


# Evaluated in order; the first rule that fires wins for a config.
RULES: tuple[Rule, ...] = (
    _low_download,
    _high_jitter,
    _high_packet_loss,
    _high_error_rate,
    _excessive_roaming,
    _hidden_congestion,
    _frequent_disconnects,
)


def first_triggered(
    record: TelemetryRecord, config: AlertConfig, activity: LinkActivity,
) -> TriggeredAlert | None:
    """Run the rule chain for one config and return the first hit."""
    for rule in RULES:
        alert = rule(record, config, activity)
        if alert is not None:
            return alert
    return None


class AlertService:
    """Evaluates alert rules for incoming records and manages alert configs.

    Built once at startup with its DAOs and webhook client pre-wired.
    Each method wraps its DAO calls in a transaction.
    """

    def __init__(
        self,
        alert_dao: AlertDAO,
        result_dao: ResultDAO,
        anomaly_service: AnomalyService,
        webhook_client: SlackWebhookClient,
        *,
        roam_threshold: int = 5,
        disconnect_threshold: int = 3,
    ) -> None:
        self._dao = alert_dao
        self._results = result_dao
        self._anomalies = anomaly_service
        self._webhook = webhook_client
        self._roam_threshold = roam_threshold
        self._disconnect_threshold = disconnect_threshold

    # --- Evaluation ---

    async def evaluate(self, record: TelemetryRecord) -> list[AlertHistory]:
        """Evaluate every enabled config against a stored record.

        At most one rule alert is raised per config, plus one anomaly alert
        per config when the record deviates from the device baseline. Each
        alert is written to history before the webhook is attempted.

        Returns:
            The history entries written.
        """
        async with self._dao.transaction():
            configs = await self._dao.list_enabled_configs()

        written: list[AlertHistory] = []
        if configs:
            activity = await self._link_activity(record.device_id)
            for config in configs:
                alert = first_triggered(record, config, activity)
                if alert is not None:
                    written.append(await self._raise(config, record.device_id, alert))

        anomalies = await self._anomalies.detect_anomaly(record)
        if anomalies:
            alert = TriggeredAlert(
                ANOMALY_ALERT,
                "; ".join(anomaly.describe() for anomaly in anomalies),
                "warning",
            )
            for config in configs:
                written.append(await self._raise(config, record.device_id, alert))
        return written

    async def _link_activity(self, device_id: str) -> LinkActivity:
        since = Time.ago(hours=1)
        async with self._results.transaction():
            roams = await self._results.count_connection_events(
                device_id, "roam", since,
            )
            disconnects = await self._results.count_connection_events(
                device_id, "disconnect", since,
            )
        return LinkActivity(
            roams=roams,
            disconnects=disconnects,
            roam_threshold=self._roam_threshold,
            disconnect_threshold=self._disconnect_threshold,
        )

    async def _raise(
        self, config: AlertConfig, device_id: str, alert: TriggeredAlert,
    ) -> AlertHistory:
        """Record an alert, then attempt delivery for Slack configs."""
        async with self._dao.transaction():
            entry = await self._dao.create_history(
                alert_config_id=config.id,
                device_id=device_id,
                alert_type=alert.alert_type,
                message=alert.message,
                severity=alert.severity,
            )
            await self._dao.commit()
        logger.info(
            "Alert '%s' (%s) for %s via config %s",
            alert.alert_type, alert.severity, device_id, config.id,
        )
        if config.type == "slack":
            await self._webhook.dispatch(
                config.webhook_url, device_id,
                alert.alert_type, alert.message, alert.severity,
            )
        return entry

    # --- Configs ---

    async def create_config(self, fields: dict[str, Any]) -> dict[str, object]:
        """Create an alert config. Returns its id."""
        async with self._dao.transaction():
            config = await self._dao.create_config(**fields)
            await self._dao.commit()
            config_id = config.id
        return {"success": True, "id": config_id}

    async def list_configs(self) -> list[dict[str, object]]:
        """All alert configs, newest first."""
        async with self._dao.transaction():
            configs = await self._dao.list_configs()
            return [AlertService.config_to_dict(c) for c in configs]

    async def update_config(
        self, config_id: int, changes: dict[str, Any],
    ) -> dict[str, object]:
        """Apply a partial update.

        Raises:
            ValueError: If the config does not exist.
        """
        async with self._dao.transaction():
            config = await self._dao.find_config(config_id)
            if config is None:
                raise ValueError(f"Alert config {config_id} not found")
            await self._dao.update_config(config, changes)
            await self._dao.commit()
        return {"success": True}

    async def delete_config(self, config_id: int) -> dict[str, object]:
        """Delete a config. History rows keep their dangling config id.

        Raises:
            ValueError: If the config does not exist.
        """
        async with self._dao.transaction():
            removed = await self._dao.delete_config(config_id)
            await self._dao.commit()
        if removed == 0:
            raise ValueError(f"Alert config {config_id} not found")
        return {"success": True}

    async def send_test_alert(self, config_id: int) -> dict[str, object]:
        """Send a canned alert to one config's webhook, bypassing history.

        Raises:
            ValueError: If the config does not exist.
        """
        async with self._dao.transaction():
            config = await self._dao.find_config(config_id)
        if config is None:
            raise ValueError(f"Alert config {config_id} not found")
        delivered = await self._webhook.dispatch(
            config.webhook_url,
            "test-device",
            "Test Alert",
            "This is a test alert from Speed Monitor. "
            "If you see this, alerts are working!",
            "warning",
        )
        return {"success": delivered}

    # --- History ---

    async def list_history(
        self, *, limit: int = 50, device_id: str | None = None,
    ) -> list[dict[str, object]]:
        """Recent alerts, newest first, with the firing config's name."""
        async with self._dao.transaction():
            rows = await self._dao.list_history(limit=limit, device_id=device_id)
        return [
            {**AlertService.history_to_dict(entry), "config_name": name}
            for entry, name in rows
        ]

    async def recent_anomalies(self, hours: int = 24) -> list[dict[str, object]]:
        """Anomaly alerts raised in the trailing window, newest first."""
        since = Time.ago(hours=hours)
        async with self._dao.transaction():
            entries = await self._dao.list_history_by_type(ANOMALY_ALERT, since)
        return [AlertService.history_to_dict(entry) for entry in entries]

    @staticmethod
    def config_to_dict(config: AlertConfig) -> dict[str, object]:
        """Serialize an AlertConfig to a JSON-safe dict."""
        return {
            "id": config.id,
            "name": config.name,
            "type": config.type,
            "webhook_url": config.webhook_url,
            "channel_name": config.channel_name,
            "threshold_download_mbps": config.threshold_download_mbps,
            "threshold_jitter_ms": config.threshold_jitter_ms,
            "threshold_packet_loss_pct": config.threshold_packet_loss_pct,
            "enabled": config.enabled,
            "created_at": Time.isoformat(config.created_at),
        }

    @staticmethod
    def history_to_dict(entry: AlertHistory) -> dict[str, object]:
        """Serialize an AlertHistory row to a JSON-safe dict."""
        return {
            "id": entry.id,
            "alert_config_id": entry.alert_config_id,
            "device_id": entry.device_id,
            "alert_type": entry.alert_type,
            "message": entry.message,
            "severity": entry.severity,
            "triggered_at": Time.isoformat(entry.triggered_at),
        }
