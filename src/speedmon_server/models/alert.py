"""Alert configuration and alert history models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from speedmon_server.utils.db import Base
from speedmon_server.utils.time import Time


class AlertConfig(Base):
    """Named webhook target with optional thresholds."""

    __tablename__ = "alert_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    type: Mapped[str] = mapped_column(String(32), default="slack")  # "slack", "teams"
    webhook_url: Mapped[str] = mapped_column(String(1024))
    channel_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    threshold_download_mbps: Mapped[float | None] = mapped_column(Float, nullable=True)
    threshold_jitter_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
    threshold_packet_loss_pct: Mapped[float | None] = mapped_column(Float, nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=Time.utcnow,
    )


class AlertHistory(Base):
    """A triggered alert. Written before dispatch; never updated."""

    __tablename__ = "alert_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    alert_config_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    device_id: Mapped[str] = mapped_column(String(255), index=True)
    alert_type: Mapped[str] = mapped_column(String(64))
    message: Mapped[str] = mapped_column(Text)
    severity: Mapped[str] = mapped_column(String(16), default="warning")
    triggered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=Time.utcnow, index=True,
    )
