"""Tests for AnomalyService: z-score checks against device baselines."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from speedmon_server.dao.baseline_dao import BaselineDAO
from speedmon_server.dao.result_dao import ResultDAO
from speedmon_server.schemas.telemetry import TelemetryRecord
from speedmon_server.services.anomaly_service import Anomaly, AnomalyService
from speedmon_server.services.baseline_service import BaselineService
from speedmon_server.utils.time import Time
from tests.conftest import store_result, telemetry


@pytest.fixture()
def baseline_dao(pool: async_sessionmaker[AsyncSession]) -> BaselineDAO:
    return BaselineDAO(pool)


@pytest.fixture()
def baseline_service(result_dao: ResultDAO, baseline_dao: BaselineDAO) -> BaselineService:
    return BaselineService(result_dao, baseline_dao)


@pytest.fixture()
def service(baseline_service: BaselineService) -> AnomalyService:
    return AnomalyService(baseline_service)


async def _seed_baseline(
    baseline_dao: BaselineDAO,
    device_id: str = "device-1",
    *,
    download: tuple[float, float] = (100.0, 10.0),
    jitter: tuple[float, float] = (5.0, 1.0),
    sample_count: int = 50,
) -> None:
    async with baseline_dao.transaction():
        await baseline_dao.upsert_baseline(
            device_id=device_id,
            baseline_download=download[0],
            baseline_upload=20.0,
            baseline_jitter=jitter[0],
            stddev_download=download[1],
            stddev_upload=2.0,
            stddev_jitter=jitter[1],
            sample_count=sample_count,
            last_updated=Time.utcnow(),
        )
        await baseline_dao.commit()


def _record(**fields: object) -> TelemetryRecord:
    return TelemetryRecord.model_validate(telemetry(**fields))


@pytest.mark.asyncio
async def test_low_download_and_high_jitter(
    service: AnomalyService, baseline_dao: BaselineDAO,
) -> None:
    """Slow download and high jitter are both flagged with their z-scores."""
    await _seed_baseline(baseline_dao, sample_count=20)
    anomalies = await service.detect_anomaly(_record(download_mbps=70.0, jitter_ms=9.0))
    assert anomalies == [
        Anomaly(type="low_download", zscore=-3.0, expected="100.0", actual=70.0),
        Anomaly(type="high_jitter", zscore=4.0, expected="5.0", actual=9.0),
    ]


@pytest.mark.asyncio
async def test_within_threshold_is_quiet(
    service: AnomalyService, baseline_dao: BaselineDAO,
) -> None:
    """Deviations of two stddevs or less are not anomalies."""
    await _seed_baseline(baseline_dao)
    assert await service.detect_anomaly(_record(download_mbps=80.0, jitter_ms=7.0)) == []


@pytest.mark.asyncio
async def test_checks_are_one_sided(
    service: AnomalyService, baseline_dao: BaselineDAO,
) -> None:
    """Faster download and lower jitter never count as anomalies."""
    await _seed_baseline(baseline_dao)
    assert await service.detect_anomaly(_record(download_mbps=500.0, jitter_ms=0.1)) == []


@pytest.mark.asyncio
async def test_zero_stddev_skips_metric(
    service: AnomalyService, baseline_dao: BaselineDAO,
) -> None:
    """A metric with no variance is not checked."""
    await _seed_baseline(baseline_dao, download=(100.0, 0.0))
    anomalies = await service.detect_anomaly(_record(download_mbps=1.0, jitter_ms=9.0))
    assert [a.type for a in anomalies] == ["high_jitter"]


@pytest.mark.asyncio
async def test_immature_baseline_is_refreshed(
    service: AnomalyService,
    baseline_dao: BaselineDAO,
    baseline_service: BaselineService,
    result_dao: ResultDAO,
) -> None:
    """A baseline with too few samples yields nothing and gets recomputed."""
    await _seed_baseline(baseline_dao, sample_count=3)
    for i in range(6):
        await store_result(result_dao, timestamp=Time.ago(minutes=i))

    assert await service.detect_anomaly(_record(download_mbps=1.0)) == []
    baseline = await baseline_service.get_baseline("device-1")
    assert baseline is not None
    assert baseline.sample_count == 6


@pytest.mark.asyncio
async def test_cold_start_seeds_baseline(
    service: AnomalyService,
    baseline_service: BaselineService,
    result_dao: ResultDAO,
) -> None:
    """A device with no baseline gets one built from its history."""
    for i in range(5):
        await store_result(result_dao, timestamp=Time.ago(minutes=i))
    assert await service.detect_anomaly(_record(download_mbps=1.0)) == []
    assert await baseline_service.get_baseline("device-1") is not None


@pytest.mark.asyncio
async def test_cold_start_without_history(
    service: AnomalyService, baseline_service: BaselineService,
) -> None:
    """Too little history leaves the device without a baseline."""
    assert await service.detect_anomaly(_record()) == []
    assert await baseline_service.get_baseline("device-1") is None


def test_anomaly_describe() -> None:
    """describe() renders the alert message fragment."""
    anomaly = Anomaly(type="low_download", zscore=-8.0, expected="100.0", actual=20.0)
    assert anomaly.describe() == "low_download: expected 100.0, got 20.0 (z=-8.00)"
    assert anomaly.to_dict()["expected"] == "100.0"
