"""Speed test result and connection event models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from speedmon_server.utils.db import Base
from speedmon_server.utils.time import Time


class SpeedResult(Base):
    """One telemetry record submitted by a device. Never updated once stored."""

    __tablename__ = "speed_results"
    __table_args__ = (
        Index("idx_device_time", "device_id", "timestamp_utc"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identity
    device_id: Mapped[str] = mapped_column(String(255), index=True)
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    user_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    hostname: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Metadata
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    os_version: Mapped[str | None] = mapped_column(String(64), nullable=True)
    app_version: Mapped[str | None] = mapped_column(String(64), nullable=True)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Network interface
    interface: Mapped[str | None] = mapped_column(String(32), nullable=True)
    local_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    public_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # WiFi
    ssid: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    bssid: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    band: Mapped[str | None] = mapped_column(String(16), nullable=True)
    channel: Mapped[int] = mapped_column(Integer, default=0)
    width_mhz: Mapped[int] = mapped_column(Integer, default=0)
    rssi_dbm: Mapped[int] = mapped_column(Integer, default=0)
    noise_dbm: Mapped[int] = mapped_column(Integer, default=0)
    snr_db: Mapped[int] = mapped_column(Integer, default=0)
    tx_rate_mbps: Mapped[float] = mapped_column(Float, default=0)
    mcs_index: Mapped[int] = mapped_column(Integer, default=-1)
    spatial_streams: Mapped[int] = mapped_column(Integer, default=0)

    # Performance
    latency_ms: Mapped[float] = mapped_column(Float, default=0)
    jitter_ms: Mapped[float] = mapped_column(Float, default=0)
    jitter_p50: Mapped[float] = mapped_column(Float, default=0)
    jitter_p95: Mapped[float] = mapped_column(Float, default=0)
    packet_loss_pct: Mapped[float] = mapped_column(Float, default=0)
    download_mbps: Mapped[float] = mapped_column(Float, default=0)
    upload_mbps: Mapped[float] = mapped_column(Float, default=0)

    # VPN
    vpn_status: Mapped[str] = mapped_column(String(32), default="disconnected", index=True)
    vpn_name: Mapped[str] = mapped_column(String(255), default="none")

    # Link errors (rates are percentages)
    input_errors: Mapped[int] = mapped_column(BigInteger, default=0)
    output_errors: Mapped[int] = mapped_column(BigInteger, default=0)
    input_error_rate: Mapped[float] = mapped_column(Float, default=0)
    output_error_rate: Mapped[float] = mapped_column(Float, default=0)
    tcp_retransmits: Mapped[int] = mapped_column(BigInteger, default=0)

    # Roaming
    bssid_changed: Mapped[bool] = mapped_column(Boolean, default=False)
    roam_count: Mapped[int] = mapped_column(Integer, default=0)

    status: Mapped[str] = mapped_column(String(32), default="success", index=True)
    errors: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_payload: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=Time.utcnow,
    )


class ConnectionEvent(Base):
    """Roam, disconnect, or connect event for a device."""

    __tablename__ = "connection_events"
    __table_args__ = (
        Index("idx_conn_events_device", "device_id", "timestamp_utc"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[str] = mapped_column(String(255))
    event_type: Mapped[str] = mapped_column(String(32), index=True)
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    ssid: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bssid: Mapped[str | None] = mapped_column(String(64), nullable=True)
    prev_bssid: Mapped[str | None] = mapped_column(String(64), nullable=True)
    channel: Mapped[int] = mapped_column(Integer, default=0)
    band: Mapped[str | None] = mapped_column(String(16), nullable=True)
    rssi_dbm: Mapped[int] = mapped_column(Integer, default=0)
    association_duration_sec: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=Time.utcnow,
    )
