"""Slack incoming-webhook client. Constructed once at startup with all config."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from speedmon_server.utils.time import Time

logger = logging.getLogger(__name__)

SEVERITY_COLORS = {"critical": "#dc3545", "warning": "#ffc107"}
SEVERITY_EMOJI = {"critical": "🚨", "warning": "⚠️"}


class SlackWebhookClient:
    """Posts alert notifications to Slack. Built once at startup, reused per alert.

    Delivery is best-effort: a failed post is logged and reported as False,
    never raised, and never retried.
    """

    def __init__(self, *, dashboard_url: str, timeout: float = 10.0) -> None:
        self._dashboard_url = dashboard_url
        self._timeout = timeout

    def build_payload(
        self, device_id: str, alert_type: str, message: str, severity: str,
    ) -> dict[str, Any]:
        """Build the Block Kit message for one alert."""
        emoji = SEVERITY_EMOJI.get(severity, SEVERITY_EMOJI["warning"])
        color = SEVERITY_COLORS.get(severity, SEVERITY_COLORS["warning"])
        timestamp = Time.utcnow().isoformat()
        return {
            "attachments": [{
                "color": color,
                "blocks": [
                    {
                        "type": "header",
                        "text": {
                            "type": "plain_text",
                            "text": f"{emoji} Speed Monitor Alert",
                            "emoji": True,
                        },
                    },
                    {
                        "type": "section",
                        "fields": [
                            {"type": "mrkdwn", "text": f"*Alert Type:*\n{alert_type}"},
                            {"type": "mrkdwn", "text": f"*Device:*\n{device_id[:12]}..."},
                        ],
                    },
                    {
                        "type": "section",
                        "text": {"type": "mrkdwn", "text": f"*Details:*\n{message}"},
                    },
                    {
                        "type": "context",
                        "elements": [{
                            "type": "mrkdwn",
                            "text": (
                                f"🕐 {timestamp} | "
                                f"<{self._dashboard_url}|View Dashboard>"
                            ),
                        }],
                    },
                ],
            }],
        }

    async def dispatch(
        self,
        webhook_url: str,
        device_id: str,
        alert_type: str,
        message: str,
        severity: str,
    ) -> bool:
        """POST an alert to a webhook.

        Returns:
            True on a 2xx response, False on any other response or error.
        """
        payload = self.build_payload(device_id, alert_type, message, severity)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as http_client:
                response = await http_client.post(webhook_url, json=payload)
        except (httpx.HTTPError, httpx.InvalidURL) as error:
            logger.warning("Slack webhook request failed: %s", error)
            return False
        if not response.is_success:
            logger.warning(
                "Slack webhook returned %s: %s",
                response.status_code, response.text,
            )
            return False
        return True
