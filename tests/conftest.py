"""Shared fixtures for speedmon_server tests."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator
from datetime import datetime
from pathlib import Path
from typing import Any

import httpx
import pytest
from litestar import Litestar
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from speedmon_server.app import AppFactory, create_app
from speedmon_server.config import Settings
from speedmon_server.dao.result_dao import ResultDAO
from speedmon_server.utils.db import Database
from speedmon_server.utils.time import Time
from speedmon_server.workers.ingest_worker import IngestWorker


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Test settings with a throwaway file-backed SQLite database.

    A file database gives each session its own connection, so the ingest
    worker and request handlers never share one.
    """
    db_path = os.path.join(str(tmp_path), "speedmon.db")
    return Settings(
        database_url=f"sqlite+aiosqlite:///{db_path}",
        dashboard_url="http://dashboard.test",
        log_level="WARNING",
    )


@pytest.fixture()
async def app(settings: Settings) -> AsyncIterator[Litestar]:
    """The test app with its lifespan (tables, ingest worker) running."""
    application = create_app(settings)
    async with AppFactory._lifespan(application):
        yield application


@pytest.fixture()
async def client(app: Litestar) -> AsyncIterator[httpx.AsyncClient]:
    """Async HTTP client wired to the running test app."""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture()
def worker(app: Litestar) -> IngestWorker:
    """The app's ingest worker, for waiting on post-ingest processing."""
    ingest_worker: IngestWorker = app.state.worker
    return ingest_worker


@pytest.fixture()
async def pool() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """In-memory database for service-level tests."""
    session_pool = Database.init("sqlite+aiosqlite://")
    await Database.create_tables()
    yield session_pool
    await Database.close()


@pytest.fixture()
def result_dao(pool: async_sessionmaker[AsyncSession]) -> ResultDAO:
    return ResultDAO(pool)


def telemetry(device_id: str = "device-1", **fields: Any) -> dict[str, Any]:
    """A successful speed test payload with healthy defaults."""
    payload: dict[str, Any] = {
        "device_id": device_id,
        "timestamp_utc": Time.utcnow().isoformat(),
        "download_mbps": 100.0,
        "upload_mbps": 20.0,
        "latency_ms": 15.0,
        "jitter_ms": 5.0,
        "packet_loss_pct": 0.0,
        "rssi_dbm": -50,
        "mcs_index": 9,
        "ssid": "Corp",
        "bssid": "aa:bb:cc:dd:ee:01",
        "band": "5GHz",
        "channel": 36,
    }
    payload.update(fields)
    return payload


async def store_result(
    result_dao: ResultDAO,
    device_id: str = "device-1",
    *,
    timestamp: datetime | None = None,
    **fields: Any,
) -> int:
    """Insert one result row directly through the DAO."""
    values: dict[str, Any] = {
        "device_id": device_id,
        "user_id": device_id,
        "timestamp_utc": timestamp or Time.utcnow(),
        "download_mbps": 100.0,
        "upload_mbps": 20.0,
        "jitter_ms": 5.0,
        "rssi_dbm": -50,
        "mcs_index": 9,
        "status": "success",
    }
    values.update(fields)
    async with result_dao.transaction():
        row = await result_dao.create_result(**values)
        await result_dao.commit()
        return row.id
