"""Alert configuration request schemas."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class AlertConfigCreate(BaseModel):
    """Body of POST /api/alerts/config."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    type: Literal["slack", "teams"] = "slack"
    webhook_url: str = Field(min_length=1)
    channel_name: str | None = None
    threshold_download_mbps: float | None = Field(default=None, gt=0)
    threshold_jitter_ms: float | None = Field(default=None, gt=0)
    threshold_packet_loss_pct: float | None = Field(default=None, gt=0)
    enabled: bool = True


class AlertConfigUpdate(BaseModel):
    """Body of PUT /api/alerts/config/{id}. Only fields sent are changed.

    Sending an explicit null for a threshold clears it.
    """

    model_config = ConfigDict(extra="ignore")

    name: str | None = Field(default=None, min_length=1)
    webhook_url: str | None = Field(default=None, min_length=1)
    channel_name: str | None = None
    threshold_download_mbps: float | None = Field(default=None, gt=0)
    threshold_jitter_ms: float | None = Field(default=None, gt=0)
    threshold_packet_loss_pct: float | None = Field(default=None, gt=0)
    enabled: bool | None = None

    def changes(self) -> dict[str, object]:
        """Return only the fields the caller sent, dropping nulls for required columns."""
        values = self.model_dump(exclude_unset=True)
        for key in ("name", "webhook_url", "enabled"):
            if key in values and values[key] is None:
                del values[key]
        return values
