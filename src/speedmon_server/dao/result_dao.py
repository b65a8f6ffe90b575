"""Data access for SpeedResult and ConnectionEvent models."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Any

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from speedmon_server.models.result import ConnectionEvent, SpeedResult

_active_conn: ContextVar[AsyncSession] = ContextVar("_result_dao_conn")


class ResultDAO:
    """Data access for the append-only result and connection-event tables.

    Use transaction() to wrap a group of operations in one unit of work.
    """

    def __init__(self, pool: async_sessionmaker[AsyncSession]) -> None:
        self._pool = pool

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Open a unit of work. All DAO calls inside share one connection."""
        async with self._pool() as connection:
            context_token = _active_conn.set(connection)
            try:
                yield
            finally:
                _active_conn.reset(context_token)

    def _conn(self) -> AsyncSession:
        """Return the current unit-of-work connection."""
        return _active_conn.get()

    # --- SpeedResult ---

    async def create_result(self, **fields: Any) -> SpeedResult:
        """Insert a result row and flush to populate its id."""
        result = SpeedResult(**fields)
        self._conn().add(result)
        await self._conn().flush()
        return result

    async def count_results(self) -> int:
        """Total number of stored results."""
        result = await self._conn().execute(
            select(func.count()).select_from(SpeedResult)
        )
        return int(result.scalar_one())

    async def count_results_for_device(self, device_id: str) -> int:
        """Total number of stored results for a device, any status."""
        result = await self._conn().execute(
            select(func.count())
            .select_from(SpeedResult)
            .where(SpeedResult.device_id == device_id)
        )
        return int(result.scalar_one())

    async def list_recent_successful(
        self,
        device_id: str,
        *,
        limit: int,
        since: datetime | None = None,
    ) -> list[SpeedResult]:
        """Most recent successful results for a device, newest first."""
        stmt = select(SpeedResult).where(
            SpeedResult.device_id == device_id,
            SpeedResult.status == "success",
        )
        if since is not None:
            stmt = stmt.where(SpeedResult.timestamp_utc > since)
        stmt = stmt.order_by(SpeedResult.timestamp_utc.desc()).limit(limit)
        result = await self._conn().execute(stmt)
        return list(result.scalars().all())

    async def list_results(
        self,
        *,
        limit: int,
        offset: int = 0,
        device_id: str | None = None,
        ssid: str | None = None,
        vpn_status: str | None = None,
    ) -> list[SpeedResult]:
        """Page through results, newest first, with optional filters."""
        stmt = select(SpeedResult)
        if device_id:
            stmt = stmt.where(SpeedResult.device_id == device_id)
        if ssid:
            stmt = stmt.where(SpeedResult.ssid == ssid)
        if vpn_status:
            stmt = stmt.where(SpeedResult.vpn_status == vpn_status)
        stmt = (
            stmt.order_by(SpeedResult.timestamp_utc.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._conn().execute(stmt)
        return list(result.scalars().all())

    async def list_results_since(
        self, device_id: str, since: datetime,
    ) -> list[SpeedResult]:
        """Every result for a device since a time, any status, newest first."""
        result = await self._conn().execute(
            select(SpeedResult)
            .where(
                SpeedResult.device_id == device_id,
                SpeedResult.timestamp_utc > since,
            )
            .order_by(SpeedResult.timestamp_utc.desc())
        )
        return list(result.scalars().all())

    async def device_averages(self, device_id: str, since: datetime) -> dict[str, Any]:
        """Means over a device's successful results since a time.

        Averages are None when there are no results. ``band`` and
        ``channel`` are the largest values seen.
        """
        def download_when(vpn_status: str) -> Any:
            return case(
                (SpeedResult.vpn_status == vpn_status, SpeedResult.download_mbps),
            )

        result = await self._conn().execute(
            select(
                func.count().label("test_count"),
                func.avg(SpeedResult.download_mbps).label("avg_download"),
                func.avg(SpeedResult.upload_mbps).label("avg_upload"),
                func.avg(SpeedResult.jitter_ms).label("avg_jitter"),
                func.avg(SpeedResult.packet_loss_pct).label("avg_packet_loss"),
                func.avg(SpeedResult.rssi_dbm).label("avg_rssi"),
                func.max(SpeedResult.band).label("band"),
                func.max(SpeedResult.channel).label("channel"),
                func.avg(download_when("connected")).label("vpn_on_speed"),
                func.avg(download_when("disconnected")).label("vpn_off_speed"),
            ).where(
                SpeedResult.device_id == device_id,
                SpeedResult.status == "success",
                SpeedResult.timestamp_utc > since,
            )
        )
        return dict(result.mappings().one())

    async def list_successful_jitter(self, device_id: str) -> list[float]:
        """All successful jitter readings for a device, ascending."""
        result = await self._conn().execute(
            select(SpeedResult.jitter_ms)
            .where(
                SpeedResult.device_id == device_id,
                SpeedResult.status == "success",
            )
            .order_by(SpeedResult.jitter_ms)
        )
        return [float(value) for value in result.scalars().all()]

    async def count_roamed_results(self, device_id: str, since: datetime) -> int:
        """Results since a time that reported a BSSID change."""
        result = await self._conn().execute(
            select(func.count())
            .select_from(SpeedResult)
            .where(
                SpeedResult.device_id == device_id,
                SpeedResult.bssid_changed == True,  # noqa: E712 (SQLAlchemy comparison)
                SpeedResult.timestamp_utc > since,
            )
        )
        return int(result.scalar_one())

    # --- ConnectionEvent ---

    async def create_connection_event(self, **fields: Any) -> ConnectionEvent:
        """Insert a connection event and flush to populate its id."""
        event = ConnectionEvent(**fields)
        self._conn().add(event)
        await self._conn().flush()
        return event

    async def count_connection_events(
        self, device_id: str, event_type: str, since: datetime,
    ) -> int:
        """Count events of one type for a device since a time."""
        result = await self._conn().execute(
            select(func.count())
            .select_from(ConnectionEvent)
            .where(
                ConnectionEvent.device_id == device_id,
                ConnectionEvent.event_type == event_type,
                ConnectionEvent.timestamp_utc > since,
            )
        )
        return int(result.scalar_one())

    async def list_connection_events(
        self,
        device_id: str,
        since: datetime,
        *,
        event_type: str | None = None,
        limit: int = 100,
    ) -> list[ConnectionEvent]:
        """Recent connection events for a device, newest first."""
        stmt = select(ConnectionEvent).where(
            ConnectionEvent.device_id == device_id,
            ConnectionEvent.timestamp_utc > since,
        )
        if event_type:
            stmt = stmt.where(ConnectionEvent.event_type == event_type)
        stmt = stmt.order_by(ConnectionEvent.timestamp_utc.desc()).limit(limit)
        result = await self._conn().execute(stmt)
        return list(result.scalars().all())

    async def commit(self) -> None:
        """Commit the current transaction."""
        await self._conn().commit()
