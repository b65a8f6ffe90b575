"""Business logic for per-device rolling baselines."""

from __future__ import annotations

import logging
import statistics

from speedmon_server.dao.baseline_dao import BaselineDAO
from speedmon_server.dao.result_dao import ResultDAO
from speedmon_server.models.baseline import DeviceBaseline
from speedmon_server.utils.time import Time

logger = logging.getLogger(__name__)


class BaselineService:
    """Recomputes a device's trailing-window baseline and upserts it.

    Built once at startup with its DAOs pre-wired.
    """

    def __init__(
        self,
        result_dao: ResultDAO,
        baseline_dao: BaselineDAO,
        *,
        window: int = 100,
        min_records: int = 5,
        interval: int = 10,
    ) -> None:
        self._results = result_dao
        self._dao = baseline_dao
        self._window = window
        self._min_records = min_records
        self._interval = interval

    async def update_baseline(self, device_id: str) -> DeviceBaseline | None:
        """Recompute the baseline from the last ``window`` successful results.

        A no-op when fewer than ``min_records`` qualifying results exist.
        Failures are logged and swallowed: baseline maintenance is a side
        effect of ingestion and must never fail it.

        Returns:
            The stored baseline, or None if nothing was written.
        """
        try:
            return await self._recompute(device_id)
        except Exception:
            logger.exception("Baseline update failed for device %s", device_id)
            return None

    async def _recompute(self, device_id: str) -> DeviceBaseline | None:
        async with self._results.transaction():
            rows = await self._results.list_recent_successful(
                device_id, limit=self._window,
            )
        if len(rows) < self._min_records:
            logger.debug(
                "Skipping baseline for %s: %d of %d required samples",
                device_id, len(rows), self._min_records,
            )
            return None

        downloads = [row.download_mbps for row in rows]
        uploads = [row.upload_mbps for row in rows]
        jitters = [row.jitter_ms for row in rows]

        async with self._dao.transaction():
            await self._dao.upsert_baseline(
                device_id=device_id,
                baseline_download=statistics.fmean(downloads),
                baseline_upload=statistics.fmean(uploads),
                baseline_jitter=statistics.fmean(jitters),
                stddev_download=statistics.pstdev(downloads),
                stddev_upload=statistics.pstdev(uploads),
                stddev_jitter=statistics.pstdev(jitters),
                sample_count=len(rows),
                last_updated=Time.utcnow(),
            )
            await self._dao.commit()
            baseline = await self._dao.find_baseline(device_id)
        logger.debug("Baseline updated for %s from %d samples", device_id, len(rows))
        return baseline

    async def maybe_update(self, device_id: str) -> DeviceBaseline | None:
        """Recompute on every ``interval``-th stored result for the device."""
        async with self._results.transaction():
            count = await self._results.count_results_for_device(device_id)
        if count == 0 or count % self._interval != 0:
            return None
        return await self.update_baseline(device_id)

    async def get_baseline(self, device_id: str) -> DeviceBaseline | None:
        """Current baseline row for a device, if any."""
        async with self._dao.transaction():
            return await self._dao.find_baseline(device_id)

    async def list_baselines(self, limit: int = 50) -> list[dict[str, object]]:
        """Most recently updated baselines, serialized."""
        async with self._dao.transaction():
            baselines = await self._dao.list_baselines(limit)
        return [BaselineService.baseline_to_dict(b) for b in baselines]

    @staticmethod
    def baseline_to_dict(baseline: DeviceBaseline) -> dict[str, object]:
        """Serialize a DeviceBaseline to a JSON-safe dict."""
        return {
            "device_id": baseline.device_id,
            "baseline_download": baseline.baseline_download,
            "baseline_upload": baseline.baseline_upload,
            "baseline_jitter": baseline.baseline_jitter,
            "stddev_download": baseline.stddev_download,
            "stddev_upload": baseline.stddev_upload,
            "stddev_jitter": baseline.stddev_jitter,
            "sample_count": baseline.sample_count,
            "last_updated": Time.isoformat(baseline.last_updated),
        }
