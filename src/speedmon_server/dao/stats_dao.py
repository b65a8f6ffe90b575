"""Read-only aggregate queries over speed_results for the dashboards."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Any

from sqlalchemy import Date, Integer, case, cast, extract, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from speedmon_server.models.result import SpeedResult

_active_conn: ContextVar[AsyncSession] = ContextVar("_stats_dao_conn")

Row = dict[str, Any]

_SUCCESS = SpeedResult.status == "success"

JITTER_BUCKETS = ("< 5ms", "5-10ms", "10-20ms", "20-50ms", "> 50ms")

_jitter_bucket = case(
    (SpeedResult.jitter_ms < 5, JITTER_BUCKETS[0]),
    (SpeedResult.jitter_ms < 10, JITTER_BUCKETS[1]),
    (SpeedResult.jitter_ms < 20, JITTER_BUCKETS[2]),
    (SpeedResult.jitter_ms < 50, JITTER_BUCKETS[3]),
    else_=JITTER_BUCKETS[4],
)

_error_rate = (
    func.coalesce(SpeedResult.input_error_rate, 0)
    + func.coalesce(SpeedResult.output_error_rate, 0)
)

_vpn_mode = case(
    (SpeedResult.vpn_status == "connected", "VPN On"),
    else_="VPN Off",
)


def _success_only(column: Any) -> Any:
    """CASE expression that keeps a column only on successful rows."""
    return case((_SUCCESS, column))


def _flag(condition: Any) -> Any:
    """1 where a condition holds, else 0, for SUM-based counts."""
    return case((condition, 1), else_=0)


class StatsDAO:
    """Aggregate queries. Results come back as plain dicts keyed by label.

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

    async def _all(self, stmt: Any) -> list[Row]:
        result = await self._conn().execute(stmt)
        return [dict(row) for row in result.mappings().all()]

    async def _one(self, stmt: Any) -> Row:
        result = await self._conn().execute(stmt)
        return dict(result.mappings().one())

    # --- Fleet overview ---

    async def overall(self) -> Row:
        """Fleet-wide averages over successful results."""
        return await self._one(
            select(
                func.count().label("total_tests"),
                func.count(func.distinct(SpeedResult.device_id)).label("total_devices"),
                func.avg(SpeedResult.download_mbps).label("avg_download"),
                func.avg(SpeedResult.upload_mbps).label("avg_upload"),
                func.avg(SpeedResult.latency_ms).label("avg_latency"),
                func.avg(SpeedResult.jitter_ms).label("avg_jitter"),
                func.avg(SpeedResult.packet_loss_pct).label("avg_packet_loss"),
                func.min(SpeedResult.download_mbps).label("min_download"),
                func.max(SpeedResult.download_mbps).label("max_download"),
            ).where(_SUCCESS)
        )

    async def per_device(self) -> list[Row]:
        """Per-device averages over successful results, most recent first."""
        last_test = func.max(SpeedResult.timestamp_utc)
        return await self._all(
            select(
                SpeedResult.device_id,
                func.max(SpeedResult.user_email).label("user_email"),
                func.max(SpeedResult.hostname).label("hostname"),
                func.max(SpeedResult.os_version).label("os_version"),
                func.max(SpeedResult.app_version).label("app_version"),
                func.count().label("test_count"),
                func.avg(SpeedResult.download_mbps).label("avg_download"),
                func.avg(SpeedResult.upload_mbps).label("avg_upload"),
                func.avg(SpeedResult.latency_ms).label("avg_latency"),
                func.avg(SpeedResult.jitter_ms).label("avg_jitter"),
                last_test.label("last_test"),
                func.max(SpeedResult.vpn_status).label("vpn_status"),
                func.max(SpeedResult.vpn_name).label("vpn_name"),
            )
            .where(_SUCCESS)
            .group_by(SpeedResult.device_id)
            .order_by(last_test.desc())
        )

    # --- Time buckets ---

    def _date_of(self, column: Any) -> Any:
        """Calendar date (UTC) of a timestamp column."""
        if self._conn().get_bind().dialect.name == "postgresql":
            return cast(column, Date)
        return func.date(column)

    @staticmethod
    def _hour_of(column: Any) -> Any:
        return cast(extract("hour", column), Integer)

    @staticmethod
    def _weekday_of(column: Any) -> Any:
        """Weekday number with Sunday = 0 on both SQLite and PostgreSQL."""
        return cast(extract("dow", column), Integer)

    async def hourly_since(self, since: datetime) -> list[Row]:
        """Successful results since a time, grouped by date and hour."""
        date = self._date_of(SpeedResult.timestamp_utc)
        hour = self._hour_of(SpeedResult.timestamp_utc)
        return await self._all(
            select(
                date.label("date"),
                hour.label("hour"),
                func.count().label("test_count"),
                func.avg(SpeedResult.download_mbps).label("avg_download"),
                func.avg(SpeedResult.upload_mbps).label("avg_upload"),
                func.avg(SpeedResult.jitter_ms).label("avg_jitter"),
            )
            .where(_SUCCESS, SpeedResult.timestamp_utc > since)
            .group_by(date, hour)
            .order_by(date, hour)
        )

    async def weekday_hour_since(self, since: datetime) -> list[Row]:
        """Successful results since a time, grouped by weekday and hour."""
        day = self._weekday_of(SpeedResult.timestamp_utc)
        hour = self._hour_of(SpeedResult.timestamp_utc)
        return await self._all(
            select(
                day.label("day_of_week"),
                hour.label("hour"),
                func.count().label("test_count"),
                func.avg(SpeedResult.download_mbps).label("avg_download"),
                func.avg(SpeedResult.upload_mbps).label("avg_upload"),
                func.avg(SpeedResult.jitter_ms).label("avg_jitter"),
            )
            .where(_SUCCESS, SpeedResult.timestamp_utc > since)
            .group_by(day, hour)
            .order_by(day, hour)
        )

    async def daily_since(self, since: datetime) -> list[Row]:
        """Successful results since a time, grouped by date, oldest first."""
        date = self._date_of(SpeedResult.timestamp_utc)
        return await self._all(
            select(
                date.label("date"),
                func.count().label("total_tests"),
                func.count(func.distinct(SpeedResult.device_id)).label("active_devices"),
                func.avg(SpeedResult.download_mbps).label("avg_download"),
                func.avg(SpeedResult.upload_mbps).label("avg_upload"),
                func.avg(SpeedResult.latency_ms).label("avg_latency"),
                func.avg(SpeedResult.jitter_ms).label("avg_jitter"),
                func.avg(SpeedResult.packet_loss_pct).label("avg_packet_loss"),
                func.sum(_flag(SpeedResult.vpn_status == "connected")).label("vpn_on_tests"),
                func.sum(_flag(SpeedResult.vpn_status == "disconnected")).label("vpn_off_tests"),
            )
            .where(_SUCCESS, SpeedResult.timestamp_utc > since)
            .group_by(date)
            .order_by(date)
        )

    async def timeline(self, since: datetime) -> list[Row]:
        """Raw successful results since a time, oldest first."""
        return await self._all(
            select(
                SpeedResult.timestamp_utc,
                SpeedResult.device_id,
                SpeedResult.user_email,
                SpeedResult.download_mbps,
                SpeedResult.upload_mbps,
                SpeedResult.latency_ms,
                SpeedResult.jitter_ms,
                SpeedResult.vpn_status,
                SpeedResult.vpn_name,
                SpeedResult.ssid,
                SpeedResult.rssi_dbm,
            )
            .where(_SUCCESS, SpeedResult.timestamp_utc > since)
            .order_by(SpeedResult.timestamp_utc)
        )

    # --- WiFi ---

    async def by_access_point(self) -> list[Row]:
        """Results grouped by BSSID."""
        test_count = func.count()
        return await self._all(
            select(
                SpeedResult.bssid,
                func.max(SpeedResult.ssid).label("ssid"),
                func.max(SpeedResult.band).label("band"),
                func.max(SpeedResult.channel).label("channel"),
                test_count.label("test_count"),
                func.count(func.distinct(SpeedResult.device_id)).label("device_count"),
                func.avg(SpeedResult.download_mbps).label("avg_download"),
                func.avg(SpeedResult.upload_mbps).label("avg_upload"),
                func.avg(SpeedResult.rssi_dbm).label("avg_rssi"),
                func.avg(SpeedResult.jitter_ms).label("avg_jitter"),
                func.avg(SpeedResult.packet_loss_pct).label("avg_packet_loss"),
            )
            .where(
                _SUCCESS,
                SpeedResult.bssid.is_not(None),
                SpeedResult.bssid != "none",
            )
            .group_by(SpeedResult.bssid)
            .order_by(test_count.desc())
        )

    async def by_ssid(self) -> list[Row]:
        """Results grouped by network name."""
        test_count = func.count()
        return await self._all(
            select(
                SpeedResult.ssid,
                test_count.label("test_count"),
                func.count(func.distinct(SpeedResult.device_id)).label("device_count"),
                func.count(func.distinct(SpeedResult.bssid)).label("ap_count"),
                func.avg(SpeedResult.download_mbps).label("avg_download"),
                func.avg(SpeedResult.upload_mbps).label("avg_upload"),
                func.avg(SpeedResult.rssi_dbm).label("avg_rssi"),
            )
            .where(_SUCCESS, SpeedResult.ssid.is_not(None))
            .group_by(SpeedResult.ssid)
            .order_by(test_count.desc())
        )

    async def band_distribution(self) -> list[Row]:
        """Result counts and mean download per band."""
        return await self._all(
            select(
                SpeedResult.band,
                func.count().label("count"),
                func.avg(SpeedResult.download_mbps).label("avg_download"),
            )
            .where(
                _SUCCESS,
                SpeedResult.band.is_not(None),
                SpeedResult.band != "none",
            )
            .group_by(SpeedResult.band)
            .order_by(SpeedResult.band)
        )

    async def channels(self, since: datetime) -> list[Row]:
        """Successful results since a time, grouped by channel and band."""
        return await self._all(
            select(
                SpeedResult.channel,
                SpeedResult.band,
                func.count().label("test_count"),
                func.count(func.distinct(SpeedResult.device_id)).label("device_count"),
                func.avg(SpeedResult.download_mbps).label("avg_download"),
                func.avg(SpeedResult.rssi_dbm).label("avg_rssi"),
                func.avg(SpeedResult.jitter_ms).label("avg_jitter"),
            )
            .where(_SUCCESS, SpeedResult.channel > 0, SpeedResult.timestamp_utc > since)
            .group_by(SpeedResult.channel, SpeedResult.band)
            .order_by(SpeedResult.band, SpeedResult.channel)
        )

    async def channel_load(self, since: datetime) -> list[Row]:
        """Distinct devices per channel and band, busiest first."""
        devices = func.count(func.distinct(SpeedResult.device_id))
        return await self._all(
            select(
                SpeedResult.channel,
                SpeedResult.band,
                devices.label("devices"),
                func.avg(SpeedResult.download_mbps).label("avg_speed"),
                func.avg(SpeedResult.rssi_dbm).label("avg_rssi"),
            )
            .where(_SUCCESS, SpeedResult.channel > 0, SpeedResult.timestamp_utc > since)
            .group_by(SpeedResult.channel, SpeedResult.band)
            .order_by(devices.desc())
        )

    async def weak_signal_devices(
        self, since: datetime, *, rssi_dbm: int, min_tests: int,
    ) -> list[Row]:
        """Devices with at least ``min_tests`` results below a signal level.

        Failed results count too; a weak link is often why a test failed.
        """
        return await self._all(
            select(
                SpeedResult.device_id,
                func.avg(SpeedResult.rssi_dbm).label("avg_rssi"),
                func.max(SpeedResult.ssid).label("ssid"),
            )
            .where(SpeedResult.rssi_dbm < rssi_dbm, SpeedResult.timestamp_utc > since)
            .group_by(SpeedResult.device_id)
            .having(func.count() >= min_tests)
            .order_by(SpeedResult.device_id)
        )

    async def band_speeds(self, since: datetime, bands: tuple[str, ...]) -> list[Row]:
        """Mean download and device count for each of the given bands."""
        return await self._all(
            select(
                SpeedResult.band,
                func.avg(SpeedResult.download_mbps).label("avg_download"),
                func.count(func.distinct(SpeedResult.device_id)).label("devices"),
            )
            .where(
                _SUCCESS,
                SpeedResult.band.in_(bands),
                SpeedResult.timestamp_utc > since,
            )
            .group_by(SpeedResult.band)
        )

    # --- Link quality ---

    @staticmethod
    def _link_sample(since: datetime) -> tuple[Any, ...]:
        return (
            _SUCCESS,
            SpeedResult.rssi_dbm < 0,
            SpeedResult.download_mbps > 0,
            SpeedResult.timestamp_utc > since,
        )

    async def count_link_samples(self, since: datetime) -> int:
        """Successful results since a time that carry a signal and a speed."""
        result = await self._conn().execute(
            select(func.count()).select_from(SpeedResult).where(*self._link_sample(since))
        )
        return int(result.scalar_one())

    async def rssi_buckets(self, since: datetime) -> list[Row]:
        """Link samples grouped into 10 dB signal bands, strongest first.

        ``bucket_index`` n covers -10n to -10n + 9 dBm: -55 falls in 6.
        """
        # Both operands are non-negative, so integer division floors.
        index = (9 - SpeedResult.rssi_dbm) // 10
        valid_mcs = case((SpeedResult.mcs_index >= 0, SpeedResult.mcs_index))
        return await self._all(
            select(
                index.label("bucket_index"),
                func.count().label("sample_count"),
                func.avg(SpeedResult.download_mbps).label("avg_download"),
                func.avg(valid_mcs).label("avg_mcs"),
                func.avg(_error_rate).label("avg_error_rate"),
            )
            .where(*self._link_sample(since))
            .group_by("bucket_index")
            .order_by("bucket_index")
        )

    async def link_samples(
        self,
        since: datetime,
        *,
        limit: int,
        min_rssi_dbm: int | None = None,
        max_download_mbps: float | None = None,
    ) -> list[Row]:
        """Individual link samples, oldest first, optionally filtered.

        ``min_rssi_dbm`` and ``max_download_mbps`` are exclusive bounds.
        """
        stmt = select(
            SpeedResult.device_id,
            SpeedResult.rssi_dbm,
            SpeedResult.download_mbps,
            SpeedResult.mcs_index,
            _error_rate.label("error_rate"),
        ).where(*self._link_sample(since))
        if min_rssi_dbm is not None:
            stmt = stmt.where(SpeedResult.rssi_dbm > min_rssi_dbm)
        if max_download_mbps is not None:
            stmt = stmt.where(SpeedResult.download_mbps < max_download_mbps)
        return await self._all(stmt.order_by(SpeedResult.timestamp_utc).limit(limit))

    # --- VPN ---

    async def vpn_distribution(self) -> list[Row]:
        """Results grouped by VPN status and client name."""
        count = func.count()
        return await self._all(
            select(
                SpeedResult.vpn_status,
                SpeedResult.vpn_name,
                count.label("count"),
                func.avg(SpeedResult.download_mbps).label("avg_download"),
                func.avg(SpeedResult.upload_mbps).label("avg_upload"),
                func.avg(SpeedResult.latency_ms).label("avg_latency"),
                func.avg(SpeedResult.jitter_ms).label("avg_jitter"),
            )
            .where(_SUCCESS)
            .group_by(SpeedResult.vpn_status, SpeedResult.vpn_name)
            .order_by(count.desc())
        )

    async def vpn_comparison(self) -> list[Row]:
        """VPN on versus VPN off averages."""
        return await self._all(
            select(
                _vpn_mode.label("mode"),
                func.count().label("test_count"),
                func.avg(SpeedResult.download_mbps).label("avg_download"),
                func.avg(SpeedResult.upload_mbps).label("avg_upload"),
                func.avg(SpeedResult.latency_ms).label("avg_latency"),
                func.avg(SpeedResult.jitter_ms).label("avg_jitter"),
                func.avg(SpeedResult.packet_loss_pct).label("avg_packet_loss"),
            )
            .where(_SUCCESS)
            .group_by(_vpn_mode)
        )

    # --- Jitter ---

    async def jitter_distribution(self) -> list[Row]:
        """Result counts per jitter bucket. Empty buckets are omitted."""
        return await self._all(
            select(
                _jitter_bucket.label("bucket"),
                func.count().label("count"),
                func.avg(SpeedResult.download_mbps).label("avg_download"),
            )
            .where(_SUCCESS, SpeedResult.jitter_ms.is_not(None))
            .group_by("bucket")
        )

    async def problem_devices(
        self, *, jitter_ms: float, packet_loss_pct: float, limit: int,
    ) -> list[Row]:
        """Devices whose mean jitter or mean packet loss exceeds a limit."""
        avg_jitter = func.avg(SpeedResult.jitter_ms)
        avg_loss = func.avg(SpeedResult.packet_loss_pct)
        return await self._all(
            select(
                SpeedResult.device_id,
                func.max(SpeedResult.hostname).label("hostname"),
                func.count().label("test_count"),
                avg_jitter.label("avg_jitter"),
                avg_loss.label("avg_packet_loss"),
                func.max(SpeedResult.timestamp_utc).label("last_test"),
            )
            .where(_SUCCESS)
            .group_by(SpeedResult.device_id)
            .having(or_(avg_jitter > jitter_ms, avg_loss > packet_loss_pct))
            .order_by(avg_jitter.desc())
            .limit(limit)
        )

    # --- Device ---

    async def device_health(self, device_id: str) -> Row:
        """Health snapshot for one device. total_tests is 0 when unknown."""
        return await self._one(
            select(
                func.count().label("total_tests"),
                func.sum(cast(_SUCCESS, Integer)).label("successful_tests"),
                func.max(SpeedResult.user_email).label("user_email"),
                func.max(SpeedResult.hostname).label("hostname"),
                func.max(SpeedResult.os_version).label("os_version"),
                func.max(SpeedResult.app_version).label("app_version"),
                func.avg(_success_only(SpeedResult.download_mbps)).label("avg_download"),
                func.avg(_success_only(SpeedResult.upload_mbps)).label("avg_upload"),
                func.avg(_success_only(SpeedResult.jitter_ms)).label("avg_jitter"),
                func.avg(_success_only(SpeedResult.packet_loss_pct)).label("avg_packet_loss"),
                func.max(SpeedResult.timestamp_utc).label("last_seen"),
            ).where(SpeedResult.device_id == device_id)
        )

    async def latest_result(self, device_id: str) -> SpeedResult | None:
        """Most recent result for a device, any status."""
        result = await self._conn().execute(
            select(SpeedResult)
            .where(SpeedResult.device_id == device_id)
            .order_by(SpeedResult.timestamp_utc.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
