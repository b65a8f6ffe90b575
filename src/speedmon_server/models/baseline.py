"""Per-device rolling performance baseline model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from speedmon_server.utils.db import Base


class DeviceBaseline(Base):
    """Trailing-window mean and population stddev for one device.

    Upserted by baseline maintenance; last write wins.
    """

    __tablename__ = "device_baselines"

    device_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    baseline_download: Mapped[float] = mapped_column(Float, default=0)
    baseline_upload: Mapped[float] = mapped_column(Float, default=0)
    baseline_jitter: Mapped[float] = mapped_column(Float, default=0)
    stddev_download: Mapped[float] = mapped_column(Float, default=0)
    stddev_upload: Mapped[float] = mapped_column(Float, default=0)
    stddev_jitter: Mapped[float] = mapped_column(Float, default=0)
    sample_count: Mapped[int] = mapped_column(Integer, default=0)
    last_updated: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
