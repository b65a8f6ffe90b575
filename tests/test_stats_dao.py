"""Tests for StatsDAO: date, hour, and signal grouping done in SQL."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from speedmon_server.dao.result_dao import ResultDAO
from speedmon_server.dao.stats_dao import StatsDAO
from speedmon_server.utils.time import Time
from tests.conftest import store_result


@pytest.fixture()
def stats_dao(pool: async_sessionmaker[AsyncSession]) -> StatsDAO:
    return StatsDAO(pool)


@pytest.mark.asyncio
async def test_weekday_hour_groups(stats_dao: StatsDAO, result_dao: ResultDAO) -> None:
    """Rows are grouped by weekday (Sunday = 0) and UTC hour in the query."""
    stamp = Time.ago(days=3).replace(minute=30, second=0, microsecond=0)
    await store_result(result_dao, download_mbps=40.0, timestamp=stamp)
    await store_result(result_dao, download_mbps=60.0, timestamp=stamp.replace(minute=5))
    await store_result(result_dao, status="failed", timestamp=stamp)

    async with stats_dao.transaction():
        [cell] = await stats_dao.weekday_hour_since(Time.ago(days=7))
    assert cell["day_of_week"] == (stamp.weekday() + 1) % 7
    assert cell["hour"] == stamp.hour
    assert cell["test_count"] == 2
    assert cell["avg_download"] == pytest.approx(50.0)


@pytest.mark.asyncio
async def test_daily_groups(stats_dao: StatsDAO, result_dao: ResultDAO) -> None:
    """Daily rows carry the UTC date and VPN on/off counts, oldest first."""
    older = Time.ago(days=2)
    await store_result(result_dao, timestamp=older)
    await store_result(result_dao, "other", vpn_status="connected", timestamp=Time.ago(days=1))
    await store_result(result_dao, vpn_status="disconnected", timestamp=Time.ago(days=1))

    async with stats_dao.transaction():
        days = await stats_dao.daily_since(Time.ago(days=5))
    assert [str(day["date"]) for day in days] == [
        older.date().isoformat(), Time.ago(days=1).date().isoformat(),
    ]
    latest = days[-1]
    assert latest["total_tests"] == 2
    assert latest["active_devices"] == 2
    assert latest["vpn_on_tests"] == 1
    assert latest["vpn_off_tests"] == 1


@pytest.mark.asyncio
async def test_hourly_excludes_old_rows(stats_dao: StatsDAO, result_dao: ResultDAO) -> None:
    """Only rows newer than ``since`` are grouped."""
    await store_result(result_dao, timestamp=Time.ago(hours=30))
    await store_result(result_dao, timestamp=Time.ago(hours=2))

    async with stats_dao.transaction():
        hours = await stats_dao.hourly_since(Time.ago(hours=24))
    assert sum(row["test_count"] for row in hours) == 1


@pytest.mark.asyncio
async def test_rssi_buckets_floor_to_ten_db(
    stats_dao: StatsDAO, result_dao: ResultDAO,
) -> None:
    """Signal levels fall into 10 dB bands by their floor, strongest first."""
    for rssi in (-50, -51, -59, -60, -61):
        await store_result(result_dao, rssi_dbm=rssi)

    async with stats_dao.transaction():
        buckets = await stats_dao.rssi_buckets(Time.ago(days=1))
    assert [(b["bucket_index"], b["sample_count"]) for b in buckets] == [
        (5, 1), (6, 3), (7, 1),
    ]
