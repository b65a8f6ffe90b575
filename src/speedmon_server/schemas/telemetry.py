"""Inbound telemetry and connection-event schemas.

Collectors send loosely-typed JSON with many optional fields. The payload
is validated once here; everything past this boundary works with typed
records.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from speedmon_server.utils.time import Time


def _drop_nulls(data: Any) -> Any:
    """Treat JSON nulls as absent so field defaults apply."""
    if isinstance(data, dict):
        return {key: value for key, value in data.items() if value is not None}
    return data


class TelemetryRecord(BaseModel):
    """One speed test result as submitted by a collector."""

    model_config = ConfigDict(extra="ignore")

    # Identity
    device_id: str = Field(min_length=1)
    user_id: str | None = None
    user_email: str | None = None
    hostname: str | None = None

    # Metadata
    timestamp_utc: datetime = Field(default_factory=Time.utcnow)
    os_version: str | None = None
    app_version: str | None = None
    timezone: str | None = None

    # Network interface
    interface: str | None = None
    local_ip: str | None = None
    public_ip: str | None = None

    # WiFi
    ssid: str | None = None
    bssid: str | None = None
    band: str | None = None
    channel: int = 0
    width_mhz: int = 0
    rssi_dbm: int = 0
    noise_dbm: int = 0
    snr_db: int = 0
    tx_rate_mbps: float = 0
    mcs_index: int = -1
    spatial_streams: int = 0

    # Performance
    latency_ms: float = 0
    jitter_ms: float = 0
    jitter_p50: float = 0
    jitter_p95: float = 0
    packet_loss_pct: float = 0
    download_mbps: float = 0
    upload_mbps: float = 0

    # VPN
    vpn_status: str = "disconnected"
    vpn_name: str = "none"

    # Link errors
    input_errors: int = 0
    output_errors: int = 0
    input_error_rate: float = 0
    output_error_rate: float = 0
    tcp_retransmits: int = 0

    # Roaming
    bssid_changed: bool = False
    roam_count: int = 0

    status: str = "success"
    errors: str | None = None

    @model_validator(mode="before")
    @classmethod
    def normalize_nulls(cls, data: Any) -> Any:
        return _drop_nulls(data)

    @field_validator("device_id")
    @classmethod
    def strip_device_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("device_id is required")
        return value

    @field_validator("timestamp_utc")
    @classmethod
    def to_utc(cls, value: datetime) -> datetime:
        return Time.ensure_utc(value)

    @field_validator("errors", mode="before")
    @classmethod
    def errors_as_text(cls, value: Any) -> Any:
        """Collectors sometimes send a list of error strings."""
        if isinstance(value, list):
            return "; ".join(str(item) for item in value)
        return value

    @property
    def combined_error_rate(self) -> float:
        """Input plus output link-error rate, in percent."""
        return self.input_error_rate + self.output_error_rate


class ConnectionEventCreate(BaseModel):
    """A roam/disconnect/connect event posted by a collector."""

    model_config = ConfigDict(extra="ignore")

    device_id: str = Field(min_length=1)
    event_type: Literal["roam", "disconnect", "connect", "bssid_change"]
    timestamp_utc: datetime = Field(default_factory=Time.utcnow)
    ssid: str | None = None
    bssid: str | None = None
    prev_bssid: str | None = None
    channel: int = 0
    band: str | None = None
    rssi_dbm: int = 0
    association_duration_sec: int | None = None

    @model_validator(mode="before")
    @classmethod
    def normalize_nulls(cls, data: Any) -> Any:
        return _drop_nulls(data)

    @field_validator("timestamp_utc")
    @classmethod
    def to_utc(cls, value: datetime) -> datetime:
        return Time.ensure_utc(value)
