"""Tests for BaselineService: rolling mean and population stddev upkeep."""

from __future__ import annotations

import math
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from speedmon_server.dao.baseline_dao import BaselineDAO
from speedmon_server.dao.result_dao import ResultDAO
from speedmon_server.services.baseline_service import BaselineService
from speedmon_server.utils.time import Time
from tests.conftest import store_result


@pytest.fixture()
def service(
    pool: async_sessionmaker[AsyncSession], result_dao: ResultDAO,
) -> BaselineService:
    return BaselineService(result_dao, BaselineDAO(pool))


@pytest.mark.asyncio
async def test_update_needs_minimum_records(
    service: BaselineService, result_dao: ResultDAO,
) -> None:
    """Fewer than five successful results leave no baseline."""
    for i in range(4):
        await store_result(result_dao, timestamp=Time.ago(minutes=i))
    assert await service.update_baseline("device-1") is None
    assert await service.get_baseline("device-1") is None


@pytest.mark.asyncio
async def test_update_computes_mean_and_population_stddev(
    service: BaselineService, result_dao: ResultDAO,
) -> None:
    """Baseline is the mean and population stddev of recent results."""
    for i, download in enumerate([90.0, 100.0, 110.0, 100.0, 100.0]):
        await store_result(
            result_dao, download_mbps=download, upload_mbps=20.0,
            jitter_ms=4.0 + i % 2, timestamp=Time.ago(minutes=i),
        )
    baseline = await service.update_baseline("device-1")
    assert baseline is not None
    assert baseline.sample_count == 5
    assert baseline.baseline_download == pytest.approx(100.0)
    assert baseline.stddev_download == pytest.approx(math.sqrt(40))
    assert baseline.baseline_upload == pytest.approx(20.0)
    assert baseline.stddev_upload == pytest.approx(0.0)
    assert baseline.baseline_jitter == pytest.approx(4.4)


@pytest.mark.asyncio
async def test_update_ignores_failed_results(
    service: BaselineService, result_dao: ResultDAO,
) -> None:
    """Only successful results feed the baseline."""
    for i in range(5):
        await store_result(result_dao, timestamp=Time.ago(minutes=i))
    await store_result(result_dao, status="failed", download_mbps=0.0)
    baseline = await service.update_baseline("device-1")
    assert baseline is not None
    assert baseline.sample_count == 5
    assert baseline.baseline_download == pytest.approx(100.0)


@pytest.mark.asyncio
async def test_update_uses_most_recent_window(
    pool: async_sessionmaker[AsyncSession], result_dao: ResultDAO,
) -> None:
    """Only the newest ``window`` results are used."""
    service = BaselineService(result_dao, BaselineDAO(pool), window=5)
    for i in range(5):
        await store_result(result_dao, download_mbps=50.0, timestamp=Time.ago(hours=1, minutes=i))
    for i in range(5):
        await store_result(result_dao, download_mbps=200.0, timestamp=Time.ago(minutes=i))
    baseline = await service.update_baseline("device-1")
    assert baseline is not None
    assert baseline.baseline_download == pytest.approx(200.0)


@pytest.mark.asyncio
async def test_update_overwrites_existing_baseline(
    service: BaselineService, result_dao: ResultDAO,
) -> None:
    """A second update replaces the row rather than adding one."""
    for i in range(5):
        await store_result(result_dao, timestamp=Time.ago(minutes=10 + i))
    await service.update_baseline("device-1")
    for i in range(5):
        await store_result(result_dao, download_mbps=300.0, timestamp=Time.ago(minutes=i))
    baseline = await service.update_baseline("device-1")
    assert baseline is not None
    assert baseline.sample_count == 10
    assert baseline.baseline_download == pytest.approx(200.0)
    assert len(await service.list_baselines()) == 1


@pytest.mark.asyncio
async def test_recompute_is_deterministic(
    service: BaselineService, result_dao: ResultDAO,
) -> None:
    """Recomputing over unchanged results yields identical statistics."""
    for i, download in enumerate([82.5, 97.1, 110.3, 64.9, 101.7, 93.2]):
        await store_result(
            result_dao, download_mbps=download, jitter_ms=3.0 + i,
            timestamp=Time.ago(minutes=i),
        )
    first = await service.update_baseline("device-1")
    second = await service.update_baseline("device-1")
    assert first is not None and second is not None
    assert second.baseline_download == first.baseline_download
    assert second.stddev_download == first.stddev_download
    assert second.baseline_jitter == first.baseline_jitter
    assert second.stddev_jitter == first.stddev_jitter
    assert second.sample_count == first.sample_count == 6


@pytest.mark.asyncio
async def test_too_few_records_keep_existing_baseline(
    pool: async_sessionmaker[AsyncSession],
    service: BaselineService,
    result_dao: ResultDAO,
) -> None:
    """A recompute over fewer than five results leaves the stored row alone."""
    baseline_dao = BaselineDAO(pool)
    async with baseline_dao.transaction():
        await baseline_dao.upsert_baseline(
            device_id="device-1",
            baseline_download=1.0,
            baseline_upload=1.0,
            baseline_jitter=1.0,
            stddev_download=0.5,
            stddev_upload=0.5,
            stddev_jitter=0.5,
            sample_count=42,
            last_updated=Time.ago(days=1),
        )
        await baseline_dao.commit()
    for i in range(3):
        await store_result(result_dao, timestamp=Time.ago(minutes=i))

    assert await service.update_baseline("device-1") is None
    baseline = await service.get_baseline("device-1")
    assert baseline is not None
    assert baseline.sample_count == 42
    assert baseline.baseline_download == 1.0
    assert baseline.stddev_download == 0.5


@pytest.mark.asyncio
async def test_update_swallows_errors(
    service: BaselineService, result_dao: ResultDAO,
) -> None:
    """A storage failure is logged and reported as None."""
    with patch.object(
        result_dao, "list_recent_successful",
        AsyncMock(side_effect=RuntimeError("disk gone")),
    ):
        assert await service.update_baseline("device-1") is None


@pytest.mark.asyncio
async def test_maybe_update_every_tenth_result(
    service: BaselineService, result_dao: ResultDAO,
) -> None:
    """maybe_update only recomputes when the result count is a multiple of 10."""
    for i in range(9):
        await store_result(result_dao, timestamp=Time.ago(minutes=i))
    assert await service.maybe_update("device-1") is None
    assert await service.get_baseline("device-1") is None

    await store_result(result_dao)
    baseline = await service.maybe_update("device-1")
    assert baseline is not None
    assert baseline.sample_count == 10


@pytest.mark.asyncio
async def test_maybe_update_counts_failed_results(
    service: BaselineService, result_dao: ResultDAO,
) -> None:
    """The trigger counts every stored result, successful or not."""
    for i in range(6):
        await store_result(result_dao, timestamp=Time.ago(minutes=i))
    for _ in range(4):
        await store_result(result_dao, status="failed")
    baseline = await service.maybe_update("device-1")
    assert baseline is not None
    assert baseline.sample_count == 6


@pytest.mark.asyncio
async def test_baseline_to_dict(
    service: BaselineService, result_dao: ResultDAO,
) -> None:
    """Serialized baselines carry every statistic and an ISO timestamp."""
    for i in range(5):
        await store_result(result_dao, timestamp=Time.ago(minutes=i))
    await service.update_baseline("device-1")
    [data] = await service.list_baselines()
    assert data["device_id"] == "device-1"
    assert data["sample_count"] == 5
    assert isinstance(data["last_updated"], str)
    assert set(data) >= {
        "baseline_download", "baseline_upload", "baseline_jitter",
        "stddev_download", "stddev_upload", "stddev_jitter",
    }
