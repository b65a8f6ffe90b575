"""Tests for inbound telemetry and alert config schemas."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from speedmon_server.schemas.alert import AlertConfigCreate, AlertConfigUpdate
from speedmon_server.schemas.telemetry import ConnectionEventCreate, TelemetryRecord


def test_telemetry_defaults() -> None:
    """Only device_id is required; everything else takes a default."""
    record = TelemetryRecord.model_validate({"device_id": "dev-1"})
    assert record.mcs_index == -1
    assert record.status == "success"
    assert record.vpn_status == "disconnected"
    assert record.vpn_name == "none"
    assert record.download_mbps == 0
    assert record.bssid_changed is False
    assert record.timestamp_utc.tzinfo is not None


def test_telemetry_nulls_take_defaults() -> None:
    """JSON nulls are treated as absent."""
    record = TelemetryRecord.model_validate({
        "device_id": "dev-1", "mcs_index": None, "jitter_ms": None, "status": None,
    })
    assert record.mcs_index == -1
    assert record.jitter_ms == 0
    assert record.status == "success"


def test_telemetry_missing_device_id() -> None:
    """A record without device_id is rejected."""
    with pytest.raises(ValidationError):
        TelemetryRecord.model_validate({"download_mbps": 10})


def test_telemetry_blank_device_id() -> None:
    """A whitespace-only device_id is rejected."""
    with pytest.raises(ValidationError):
        TelemetryRecord.model_validate({"device_id": "   "})


def test_telemetry_bssid_changed_accepts_int() -> None:
    """Collectors send bssid_changed as 0/1."""
    assert TelemetryRecord.model_validate(
        {"device_id": "d", "bssid_changed": 1},
    ).bssid_changed is True
    assert TelemetryRecord.model_validate(
        {"device_id": "d", "bssid_changed": 0},
    ).bssid_changed is False


def test_telemetry_timestamp_normalized_to_utc() -> None:
    """Naive timestamps are read as UTC; offsets are converted."""
    naive = TelemetryRecord.model_validate(
        {"device_id": "d", "timestamp_utc": "2026-03-01T12:00:00"},
    )
    assert naive.timestamp_utc == datetime(2026, 3, 1, 12, tzinfo=timezone.utc)
    offset = TelemetryRecord.model_validate(
        {"device_id": "d", "timestamp_utc": "2026-03-01T14:00:00+02:00"},
    )
    assert offset.timestamp_utc == datetime(2026, 3, 1, 12, tzinfo=timezone.utc)


def test_telemetry_error_list_joined() -> None:
    """A list of collector errors is stored as one string."""
    record = TelemetryRecord.model_validate(
        {"device_id": "d", "status": "failed", "errors": ["dns", "timeout"]},
    )
    assert record.errors == "dns; timeout"
    assert record.status == "failed"


def test_telemetry_combined_error_rate() -> None:
    """combined_error_rate adds input and output rates."""
    record = TelemetryRecord.model_validate(
        {"device_id": "d", "input_error_rate": 0.4, "output_error_rate": 0.3},
    )
    assert record.combined_error_rate == pytest.approx(0.7)


def test_telemetry_ignores_unknown_fields() -> None:
    """Unknown collector fields are dropped, not rejected."""
    record = TelemetryRecord.model_validate({"device_id": "d", "isp": "Acme"})
    assert not hasattr(record, "isp")


def test_connection_event_requires_known_type() -> None:
    """event_type must be one of the known connection events."""
    event = ConnectionEventCreate.model_validate(
        {"device_id": "d", "event_type": "disconnect"},
    )
    assert event.channel == 0
    with pytest.raises(ValidationError):
        ConnectionEventCreate.model_validate({"device_id": "d", "event_type": "reboot"})


def test_alert_config_create_requires_name_and_url() -> None:
    """name and webhook_url are required; type defaults to slack."""
    config = AlertConfigCreate.model_validate(
        {"name": "ops", "webhook_url": "https://hooks.example/x"},
    )
    assert config.type == "slack"
    assert config.enabled is True
    with pytest.raises(ValidationError):
        AlertConfigCreate.model_validate({"name": "ops"})


def test_alert_config_rejects_non_positive_threshold() -> None:
    """Thresholds must be positive when given."""
    with pytest.raises(ValidationError):
        AlertConfigCreate.model_validate({
            "name": "ops", "webhook_url": "https://x", "threshold_jitter_ms": 0,
        })


def test_alert_config_update_changes_only_sent_fields() -> None:
    """changes() keeps sent fields, including explicit null thresholds."""
    update = AlertConfigUpdate.model_validate(
        {"enabled": False, "threshold_download_mbps": None, "name": None},
    )
    assert update.changes() == {"enabled": False, "threshold_download_mbps": None}
