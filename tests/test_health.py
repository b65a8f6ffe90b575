"""Tests for the health check endpoint."""

from __future__ import annotations

import httpx
import pytest

from tests.conftest import telemetry


@pytest.mark.asyncio
async def test_health_returns_ok(client: httpx.AsyncClient) -> None:
    """GET /api/health returns status ok with a running worker."""
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["ingest_worker"] == "running"
    assert data["total_results"] == 0
    assert "timestamp" in data
    assert "version" in data


@pytest.mark.asyncio
async def test_health_counts_results(client: httpx.AsyncClient) -> None:
    """total_results reflects stored results."""
    await client.post("/api/results", json=telemetry("a"))
    await client.post("/api/results", json=telemetry("b"))
    resp = await client.get("/api/health")
    assert resp.json()["total_results"] == 2
