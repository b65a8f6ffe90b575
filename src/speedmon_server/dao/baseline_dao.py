"""Data access for DeviceBaseline model."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from speedmon_server.models.baseline import DeviceBaseline

_active_conn: ContextVar[AsyncSession] = ContextVar("_baseline_dao_conn")


class BaselineDAO:
    """Keyed store of per-device baselines.

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

    async def find_baseline(self, device_id: str) -> DeviceBaseline | None:
        """Find the baseline row for a device."""
        result = await self._conn().execute(
            select(DeviceBaseline).where(DeviceBaseline.device_id == device_id)
        )
        return result.scalar_one_or_none()

    async def list_baselines(self, limit: int = 50) -> list[DeviceBaseline]:
        """Most recently updated baselines first."""
        result = await self._conn().execute(
            select(DeviceBaseline)
            .order_by(DeviceBaseline.last_updated.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def upsert_baseline(
        self,
        *,
        device_id: str,
        baseline_download: float,
        baseline_upload: float,
        baseline_jitter: float,
        stddev_download: float,
        stddev_upload: float,
        stddev_jitter: float,
        sample_count: int,
        last_updated: datetime,
    ) -> None:
        """Insert or overwrite the baseline for a device in one statement."""
        values = {
            "device_id": device_id,
            "baseline_download": baseline_download,
            "baseline_upload": baseline_upload,
            "baseline_jitter": baseline_jitter,
            "stddev_download": stddev_download,
            "stddev_upload": stddev_upload,
            "stddev_jitter": stddev_jitter,
            "sample_count": sample_count,
            "last_updated": last_updated,
        }
        dialect = self._conn().get_bind().dialect.name
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        stmt = insert(DeviceBaseline).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[DeviceBaseline.device_id],
            set_={key: value for key, value in values.items() if key != "device_id"},
        )
        await self._conn().execute(stmt)

    async def commit(self) -> None:
        """Commit the current transaction."""
        await self._conn().commit()
