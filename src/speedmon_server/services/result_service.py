"""Business logic for storing and reading telemetry and connection events."""

from __future__ import annotations

import csv
import io
import json
import logging
from typing import Any

from speedmon_server.dao.result_dao import ResultDAO
from speedmon_server.models.result import ConnectionEvent, SpeedResult
from speedmon_server.schemas.telemetry import ConnectionEventCreate, TelemetryRecord
from speedmon_server.utils.time import Time

logger = logging.getLogger(__name__)

HISTORY_FIELDS = (
    "timestamp_utc", "download_mbps", "upload_mbps", "latency_ms", "jitter_ms",
    "vpn_status", "vpn_name", "ssid", "rssi_dbm", "status",
)


class ResultService:
    """Built once at startup with its DAO pre-wired.

    Each method wraps its DAO calls in a transaction: one unit of work
    per service call.
    """

    def __init__(self, result_dao: ResultDAO) -> None:
        self._dao = result_dao

    async def submit(
        self, record: TelemetryRecord, raw_payload: dict[str, Any],
    ) -> int:
        """Store a telemetry record, plus a roam event if the BSSID changed.

        Returns:
            The id of the stored result.
        """
        fields = record.model_dump()
        fields["user_id"] = record.user_id or record.device_id
        async with self._dao.transaction():
            result = await self._dao.create_result(
                **fields, raw_payload=json.dumps(raw_payload, default=str),
            )
            if record.bssid_changed:
                await self._dao.create_connection_event(
                    device_id=record.device_id,
                    event_type="roam",
                    timestamp_utc=record.timestamp_utc,
                    ssid=record.ssid,
                    bssid=record.bssid,
                    channel=record.channel,
                    band=record.band,
                    rssi_dbm=record.rssi_dbm,
                )
            await self._dao.commit()
            result_id = result.id
        logger.debug("Stored result %s for %s", result_id, record.device_id)
        return result_id

    async def record_connection_event(self, event: ConnectionEventCreate) -> int:
        """Store a connection event posted by a collector. Returns its id."""
        async with self._dao.transaction():
            stored = await self._dao.create_connection_event(**event.model_dump())
            await self._dao.commit()
            event_id = stored.id
        logger.debug(
            "Stored %s event %s for %s", event.event_type, event_id, event.device_id,
        )
        return event_id

    async def list_results(
        self,
        *,
        limit: int = 100,
        offset: int = 0,
        device_id: str | None = None,
        ssid: str | None = None,
        vpn_status: str | None = None,
    ) -> list[dict[str, object]]:
        """Page through results, newest first."""
        async with self._dao.transaction():
            rows = await self._dao.list_results(
                limit=limit, offset=offset,
                device_id=device_id, ssid=ssid, vpn_status=vpn_status,
            )
        return [ResultService.result_to_dict(row) for row in rows]

    async def list_device_results(
        self, device_id: str, *, limit: int = 50,
    ) -> list[dict[str, object]]:
        """Most recent results for one device, newest first."""
        return await self.list_results(limit=limit, device_id=device_id)

    async def device_history(
        self, device_id: str, *, limit: int = 10,
    ) -> list[dict[str, object]]:
        """Compact recent history for one device, newest first."""
        async with self._dao.transaction():
            rows = await self._dao.list_results(limit=limit, device_id=device_id)
        return [
            {key: data[key] for key in HISTORY_FIELDS}
            for data in map(ResultService.result_to_dict, rows)
        ]

    async def export_csv(self, device_id: str, *, days: int = 30) -> str | None:
        """Every result for a device over the window as CSV, newest first.

        Returns:
            CSV text with a header row, or None when the device has no
            results in the window.
        """
        async with self._dao.transaction():
            rows = await self._dao.list_results_since(device_id, Time.ago(days=days))
        if not rows:
            return None
        records = [ResultService.result_to_dict(row) for row in rows]
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=list(records[0]))
        writer.writeheader()
        writer.writerows(records)
        logger.debug("Exported %d result(s) for %s", len(records), device_id)
        return buffer.getvalue()

    async def count_results(self) -> int:
        """Total number of stored results across all devices."""
        async with self._dao.transaction():
            return await self._dao.count_results()

    async def connection_events(
        self,
        device_id: str,
        *,
        hours: int = 24,
        event_type: str | None = None,
    ) -> dict[str, object]:
        """Recent connection events for a device with per-type counts.

        ``roam_count_from_tests`` counts results that reported a BSSID
        change, which covers collectors that never post events directly.
        """
        since = Time.ago(hours=hours)
        async with self._dao.transaction():
            events = await self._dao.list_connection_events(
                device_id, since, event_type=event_type,
            )
            roamed = await self._dao.count_roamed_results(device_id, since)
        return {
            "device_id": device_id,
            "period_hours": hours,
            "events": [ResultService.event_to_dict(e) for e in events],
            "summary": {
                "total_events": len(events),
                "roam_events": sum(1 for e in events if e.event_type == "roam"),
                "disconnect_events": sum(
                    1 for e in events if e.event_type == "disconnect"
                ),
                "roam_count_from_tests": roamed,
            },
        }

    @staticmethod
    def result_to_dict(row: SpeedResult) -> dict[str, object]:
        """Serialize a stored result, omitting the raw payload."""
        data: dict[str, object] = {
            column.key: getattr(row, column.key)
            for column in SpeedResult.__table__.columns
            if column.key != "raw_payload"
        }
        data["timestamp_utc"] = Time.isoformat(row.timestamp_utc)
        data["created_at"] = Time.isoformat(row.created_at)
        return data

    @staticmethod
    def event_to_dict(event: ConnectionEvent) -> dict[str, object]:
        """Serialize a connection event to a JSON-safe dict."""
        return {
            "id": event.id,
            "device_id": event.device_id,
            "event_type": event.event_type,
            "timestamp_utc": Time.isoformat(event.timestamp_utc),
            "ssid": event.ssid,
            "bssid": event.bssid,
            "prev_bssid": event.prev_bssid,
            "channel": event.channel,
            "band": event.band,
            "rssi_dbm": event.rssi_dbm,
            "association_duration_sec": event.association_duration_sec,
        }
