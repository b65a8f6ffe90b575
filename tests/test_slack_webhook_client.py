"""Tests for SlackWebhookClient."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from speedmon_server.clients.slack_webhook_client import SlackWebhookClient

_HTTPX_CLIENT = "speedmon_server.clients.slack_webhook_client.httpx.AsyncClient"
_WEBHOOK = "https://hooks.slack.test/services/T000/B000/XXX"


@pytest.fixture()
def slack() -> SlackWebhookClient:
    """A SlackWebhookClient pointing alerts at a test dashboard."""
    return SlackWebhookClient(dashboard_url="http://dashboard.test")


def _mock_client(response: MagicMock | None = None) -> AsyncMock:
    mock_client = AsyncMock()
    mock_client.post.return_value = response
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


def test_payload_critical(slack: SlackWebhookClient) -> None:
    """Critical alerts are red with the siren emoji."""
    payload = slack.build_payload(
        "device-1234567890abcdef", "Low Download Speed", "too slow", "critical",
    )
    [attachment] = payload["attachments"]
    assert attachment["color"] == "#dc3545"
    header, fields, details, context = attachment["blocks"]
    assert header["text"]["text"] == "🚨 Speed Monitor Alert"
    assert fields["fields"][0]["text"] == "*Alert Type:*\nLow Download Speed"
    assert fields["fields"][1]["text"] == "*Device:*\ndevice-12345..."
    assert details["text"]["text"] == "*Details:*\ntoo slow"
    assert "<http://dashboard.test|View Dashboard>" in context["elements"][0]["text"]


def test_payload_warning(slack: SlackWebhookClient) -> None:
    """Warnings are amber with the warning emoji."""
    payload = slack.build_payload("d", "High Jitter", "jittery", "warning")
    [attachment] = payload["attachments"]
    assert attachment["color"] == "#ffc107"
    assert attachment["blocks"][0]["text"]["text"] == "⚠️ Speed Monitor Alert"


def test_payload_unknown_severity_falls_back_to_warning(slack: SlackWebhookClient) -> None:
    """Unrecognized severities render as warnings."""
    payload = slack.build_payload("d", "Test", "msg", "info")
    assert payload["attachments"][0]["color"] == "#ffc107"


@pytest.mark.asyncio
async def test_dispatch_success(slack: SlackWebhookClient) -> None:
    """A 2xx response reports delivery."""
    response = MagicMock()
    response.is_success = True
    response.status_code = 200
    mock_client = _mock_client(response)

    with patch(_HTTPX_CLIENT, return_value=mock_client):
        delivered = await slack.dispatch(_WEBHOOK, "d", "High Jitter", "jittery", "warning")

    assert delivered is True
    mock_client.post.assert_awaited_once()
    args, kwargs = mock_client.post.call_args
    assert args == (_WEBHOOK,)
    assert "attachments" in kwargs["json"]


@pytest.mark.asyncio
async def test_dispatch_error_status(slack: SlackWebhookClient) -> None:
    """A non-2xx response is reported as not delivered."""
    response = MagicMock()
    response.is_success = False
    response.status_code = 404
    response.text = "no_service"

    with patch(_HTTPX_CLIENT, return_value=_mock_client(response)):
        delivered = await slack.dispatch(_WEBHOOK, "d", "Test", "msg", "warning")

    assert delivered is False


@pytest.mark.asyncio
async def test_dispatch_network_error(slack: SlackWebhookClient) -> None:
    """Transport failures are swallowed and reported as not delivered."""
    mock_client = _mock_client()
    mock_client.post.side_effect = httpx.ConnectError("connection refused")

    with patch(_HTTPX_CLIENT, return_value=mock_client):
        delivered = await slack.dispatch(_WEBHOOK, "d", "Test", "msg", "critical")

    assert delivered is False


@pytest.mark.asyncio
async def test_dispatch_invalid_url(slack: SlackWebhookClient) -> None:
    """A webhook URL httpx cannot post to never raises."""
    assert await slack.dispatch("ftp://hooks.invalid/x", "d", "Test", "msg", "warning") is False
