"""Z-score anomaly detection against a device's baseline."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from speedmon_server.schemas.telemetry import TelemetryRecord
from speedmon_server.services.baseline_service import BaselineService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Anomaly:
    """One metric that deviates from the device's baseline."""

    type: str
    zscore: float
    expected: str
    actual: float

    def describe(self) -> str:
        """Human-readable one-liner used in alert messages."""
        return (
            f"{self.type}: expected {self.expected}, "
            f"got {self.actual} (z={self.zscore:.2f})"
        )

    def to_dict(self) -> dict[str, object]:
        """Serialize to a JSON-safe dict."""
        return {
            "type": self.type,
            "zscore": self.zscore,
            "expected": self.expected,
            "actual": self.actual,
        }


class AnomalyService:
    """Flags low download and high jitter relative to the baseline.

    The thresholds are one-sided: only slower-than-normal throughput and
    higher-than-normal jitter count as anomalies.
    """

    def __init__(
        self,
        baseline_service: BaselineService,
        *,
        min_samples: int = 10,
        z_threshold: float = 2.0,
    ) -> None:
        self._baselines = baseline_service
        self._min_samples = min_samples
        self._z_threshold = z_threshold

    async def detect_anomaly(self, record: TelemetryRecord) -> list[Anomaly]:
        """Compare a record to its device baseline.

        Devices without a usable baseline never produce anomalies; instead
        the baseline is seeded so later records can be judged.
        """
        baseline = await self._baselines.get_baseline(record.device_id)
        if baseline is None or baseline.sample_count < self._min_samples:
            await self._baselines.update_baseline(record.device_id)
            return []

        anomalies: list[Anomaly] = []

        if baseline.stddev_download > 0:
            zscore = (
                record.download_mbps - baseline.baseline_download
            ) / baseline.stddev_download
            if zscore < -self._z_threshold:
                anomalies.append(Anomaly(
                    type="low_download",
                    zscore=round(zscore, 2),
                    expected=f"{baseline.baseline_download:.1f}",
                    actual=record.download_mbps,
                ))

        if baseline.stddev_jitter > 0:
            zscore = (
                record.jitter_ms - baseline.baseline_jitter
            ) / baseline.stddev_jitter
            if zscore > self._z_threshold:
                anomalies.append(Anomaly(
                    type="high_jitter",
                    zscore=round(zscore, 2),
                    expected=f"{baseline.baseline_jitter:.1f}",
                    actual=record.jitter_ms,
                ))

        if anomalies:
            logger.info(
                "Anomalies for %s: %s",
                record.device_id, ", ".join(a.type for a in anomalies),
            )
        return anomalies
