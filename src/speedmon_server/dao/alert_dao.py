"""Data access for AlertConfig and AlertHistory models."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Any, cast

from sqlalchemy import CursorResult, delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from speedmon_server.models.alert import AlertConfig, AlertHistory

_active_conn: ContextVar[AsyncSession] = ContextVar("_alert_dao_conn")


class AlertDAO:
    """Data access for alert targets and the alert log.

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

    # --- AlertConfig ---

    async def create_config(self, **fields: Any) -> AlertConfig:
        """Insert an alert config and flush to populate its id."""
        config = AlertConfig(**fields)
        self._conn().add(config)
        await self._conn().flush()
        return config

    async def find_config(self, config_id: int) -> AlertConfig | None:
        """Find an alert config by primary key."""
        result = await self._conn().execute(
            select(AlertConfig).where(AlertConfig.id == config_id)
        )
        return result.scalar_one_or_none()

    async def list_configs(self) -> list[AlertConfig]:
        """All alert configs, newest first."""
        result = await self._conn().execute(
            select(AlertConfig).order_by(AlertConfig.created_at.desc(), AlertConfig.id.desc())
        )
        return list(result.scalars().all())

    async def list_enabled_configs(self) -> list[AlertConfig]:
        """Enabled alert configs in creation order."""
        result = await self._conn().execute(
            select(AlertConfig)
            .where(AlertConfig.enabled == True)  # noqa: E712 (SQLAlchemy comparison)
            .order_by(AlertConfig.id)
        )
        return list(result.scalars().all())

    async def update_config(
        self, config: AlertConfig, changes: dict[str, Any],
    ) -> None:
        """Apply a partial update to a loaded config."""
        for key, value in changes.items():
            setattr(config, key, value)
        await self._conn().flush()

    async def delete_config(self, config_id: int) -> int:
        """Delete a config. Returns the number of rows removed."""
        result = await self._conn().execute(
            delete(AlertConfig).where(AlertConfig.id == config_id)
        )
        return cast(CursorResult[Any], result).rowcount

    # --- AlertHistory ---

    async def create_history(
        self,
        *,
        alert_config_id: int | None,
        device_id: str,
        alert_type: str,
        message: str,
        severity: str,
    ) -> AlertHistory:
        """Append a triggered alert to the log."""
        entry = AlertHistory(
            alert_config_id=alert_config_id,
            device_id=device_id,
            alert_type=alert_type,
            message=message,
            severity=severity,
        )
        self._conn().add(entry)
        await self._conn().flush()
        return entry

    async def list_history(
        self, *, limit: int, device_id: str | None = None,
    ) -> list[tuple[AlertHistory, str | None]]:
        """Recent alerts with the name of the config that fired them."""
        stmt = select(AlertHistory, AlertConfig.name).outerjoin(
            AlertConfig, AlertHistory.alert_config_id == AlertConfig.id,
        )
        if device_id:
            stmt = stmt.where(AlertHistory.device_id == device_id)
        stmt = stmt.order_by(
            AlertHistory.triggered_at.desc(), AlertHistory.id.desc(),
        ).limit(limit)
        result = await self._conn().execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def list_history_by_type(
        self, alert_type: str, since: datetime,
    ) -> list[AlertHistory]:
        """Alerts of one type triggered since a time, newest first."""
        result = await self._conn().execute(
            select(AlertHistory)
            .where(
                AlertHistory.alert_type == alert_type,
                AlertHistory.triggered_at > since,
            )
            .order_by(AlertHistory.triggered_at.desc())
        )
        return list(result.scalars().all())

    async def commit(self) -> None:
        """Commit the current transaction."""
        await self._conn().commit()
