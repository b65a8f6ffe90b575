"""Weighted multi-factor WiFi health diagnosis.

Each factor looks at one symptom averaged over the device's recent
history and, when active, scores its severity in [0, 1]. The strongest
factor is reported as the primary issue and drives the confidence.

Also home to the simpler rule-based troubleshooting advice and the
per-device link quality report.
"""

from __future__ import annotations

import statistics
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from speedmon_server.dao.result_dao import ResultDAO
from speedmon_server.models.result import SpeedResult
from speedmon_server.utils.time import Time

WEAK_SIGNAL_DBM = -70
GOOD_SIGNAL_DBM = -60
ERROR_RATE_PCT = 0.5
MCS_DEFICIT = 2
JITTER_MS = 20
PACKET_LOSS_PCT = 0.5
ROAM_EVENTS = 3
SLOW_DOWNLOAD_MBPS = 50

VERY_WEAK_SIGNAL_DBM = -80
CONGESTION_JITTER_MS = 30
SEVERE_JITTER_MS = 50
LOSSY_PACKET_LOSS_PCT = 1
SEVERE_PACKET_LOSS_PCT = 5
VPN_SLOWDOWN_RATIO = 0.5
NON_OVERLAPPING_CHANNELS = (1, 6, 11)
LOW_DOWNLOAD_MBPS = 25
VERY_LOW_DOWNLOAD_MBPS = 10
SLOW_DESPITE_SIGNAL_SHARE = 0.2
LINK_QUALITY_MAX_RECORDS = 1000

NO_ISSUES = "No significant issues detected - network performance appears normal"

RECOMMENDATIONS: dict[str, str] = {
    "weak_signal": "Move closer to the router or add a WiFi extender/mesh node",
    "high_error_rate": (
        "Check for interference sources (microwave, Bluetooth, neighboring WiFi)"
    ),
    "mcs_below_expected": (
        "Access point may be congested - try switching to a different channel or band"
    ),
    "high_jitter": "Network congestion detected - check for bandwidth-heavy applications",
    "packet_loss": (
        "Packet loss detected - restart the router and contact the ISP if it persists"
    ),
    "excessive_roaming": (
        "Device frequently switches between access points - "
        "check AP placement or signal overlap"
    ),
    "slow_despite_good_signal": (
        "Good signal but slow speeds suggests AP backhaul or ISP issue - "
        "test with wired connection"
    ),
}


def expected_mcs(rssi: float) -> int:
    """Rough MCS index a link at this signal strength should sustain."""
    if rssi > -50:
        return 9
    if rssi > -60:
        return 7
    if rssi > -70:
        return 5
    return 3


@dataclass
class LinkSummary:
    """Means over a device's recent successful results."""

    data_points: int
    rssi: float
    download: float
    jitter: float
    packet_loss: float
    input_error_rate: float
    output_error_rate: float
    mcs: float  # -1 when no result carried a valid MCS
    roam_count: int

    @property
    def error_rate(self) -> float:
        return self.input_error_rate + self.output_error_rate

    @classmethod
    def from_results(cls, rows: list[SpeedResult]) -> LinkSummary:
        def mean(values: list[float]) -> float:
            return statistics.fmean(values) if values else 0.0

        valid_mcs = [row.mcs_index for row in rows if row.mcs_index >= 0]
        return cls(
            data_points=len(rows),
            rssi=mean([row.rssi_dbm or 0 for row in rows]),
            download=mean([row.download_mbps or 0 for row in rows]),
            jitter=mean([row.jitter_ms or 0 for row in rows]),
            packet_loss=mean([row.packet_loss_pct or 0 for row in rows]),
            input_error_rate=mean([row.input_error_rate or 0 for row in rows]),
            output_error_rate=mean([row.output_error_rate or 0 for row in rows]),
            mcs=statistics.fmean(valid_mcs) if valid_mcs else -1,
            roam_count=sum(1 for row in rows if row.bssid_changed),
        )


@dataclass
class Factor:
    """An active issue with its severity score and supporting values."""

    factor: str
    score: float
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"factor": self.factor, "score": round(self.score, 3), **self.details}


def _weak_signal(s: LinkSummary) -> Factor | None:
    if s.rssi >= WEAK_SIGNAL_DBM:
        return None
    return Factor("weak_signal", min(1.0, (-s.rssi - 70) / 20), {
        "value": round(s.rssi), "threshold": WEAK_SIGNAL_DBM, "unit": "dBm",
    })


def _high_error_rate(s: LinkSummary) -> Factor | None:
    if s.error_rate <= ERROR_RATE_PCT:
        return None
    return Factor("high_error_rate", min(1.0, s.error_rate / 5), {
        "value": round(s.error_rate, 3), "threshold": ERROR_RATE_PCT, "unit": "%",
    })


def _mcs_below_expected(s: LinkSummary) -> Factor | None:
    if s.mcs < 0:
        return None
    expected = expected_mcs(s.rssi)
    deficit = expected - s.mcs
    if deficit <= MCS_DEFICIT:
        return None
    return Factor("mcs_below_expected", min(1.0, deficit / 5), {
        "value": round(s.mcs, 1), "expected": expected, "deficit": round(deficit, 1),
    })


def _high_jitter(s: LinkSummary) -> Factor | None:
    if s.jitter <= JITTER_MS:
        return None
    return Factor("high_jitter", min(1.0, (s.jitter - 20) / 50), {
        "value": round(s.jitter, 1), "threshold": JITTER_MS, "unit": "ms",
    })


def _packet_loss(s: LinkSummary) -> Factor | None:
    if s.packet_loss <= PACKET_LOSS_PCT:
        return None
    return Factor("packet_loss", min(1.0, s.packet_loss / 5), {
        "value": round(s.packet_loss, 2), "threshold": PACKET_LOSS_PCT, "unit": "%",
    })


def _excessive_roaming(s: LinkSummary) -> Factor | None:
    if s.roam_count <= ROAM_EVENTS:
        return None
    return Factor("excessive_roaming", min(1.0, s.roam_count / 10), {
        "value": s.roam_count, "threshold": ROAM_EVENTS, "unit": "events/week",
    })


def _slow_despite_good_signal(s: LinkSummary) -> Factor | None:
    if s.rssi <= GOOD_SIGNAL_DBM or s.download >= SLOW_DOWNLOAD_MBPS:
        return None
    return Factor("slow_despite_good_signal", min(1.0, (50 - s.download) / 50), {
        "value": round(s.download, 1), "rssi": round(s.rssi), "unit": "Mbps",
    })


FACTOR_CHECKS: tuple[Callable[[LinkSummary], Factor | None], ...] = (
    _weak_signal,
    _high_error_rate,
    _mcs_below_expected,
    _high_jitter,
    _packet_loss,
    _excessive_roaming,
    _slow_despite_good_signal,
)


@dataclass
class Diagnosis:
    """Ranked factors, the primary issue, and what to do about it."""

    factors: list[Factor]
    confidence: float
    recommendations: list[str]

    @property
    def primary(self) -> Factor | None:
        return self.factors[0] if self.factors else None


def assess(summary: LinkSummary) -> Diagnosis:
    """Score every factor, rank them, and derive confidence."""
    factors = [f for check in FACTOR_CHECKS if (f := check(summary)) is not None]
    factors.sort(key=lambda f: f.score, reverse=True)

    if factors:
        confidence = min(
            0.95, 0.5 + 0.3 * factors[0].score + 0.05 * min(len(factors), 3),
        )
    else:
        confidence = 0.1

    recommendations: list[str] = []
    for f in factors:
        text = RECOMMENDATIONS[f.factor]
        if text not in recommendations:
            recommendations.append(text)
    if not recommendations:
        recommendations.append(NO_ISSUES)

    return Diagnosis(factors, confidence, recommendations)


def troubleshooting(averages: dict[str, Any]) -> list[dict[str, Any]]:
    """Plain-language fixes for a device's averaged metrics.

    ``averages`` is the row from ResultDAO.device_averages. Missing
    averages (no results) produce no advice.
    """
    advice: list[dict[str, Any]] = []

    def add(issue: str, severity: str, icon: str, suggestion: str, **metrics: Any) -> None:
        advice.append({
            "issue": issue, "severity": severity, "icon": icon,
            "suggestion": suggestion, "metrics": metrics,
        })

    rssi = averages.get("avg_rssi")
    if rssi is not None and rssi < WEAK_SIGNAL_DBM:
        add(
            "Weak WiFi Signal", "high" if rssi < VERY_WEAK_SIGNAL_DBM else "medium", "📶",
            "Move closer to the router, reduce obstacles, "
            "or consider a WiFi extender/mesh system.",
            rssi=round(rssi), threshold=WEAK_SIGNAL_DBM,
        )

    jitter = averages.get("avg_jitter")
    if jitter is not None and jitter > CONGESTION_JITTER_MS:
        add(
            "Network Congestion", "high" if jitter > SEVERE_JITTER_MS else "medium", "🌐",
            "Try switching to 5GHz band, use a wired connection, "
            "or check for bandwidth-heavy applications.",
            jitter=round(jitter, 1), threshold=CONGESTION_JITTER_MS,
        )

    loss = averages.get("avg_packet_loss")
    if loss is not None and loss > LOSSY_PACKET_LOSS_PCT:
        add(
            "Packet Loss Detected", "high" if loss > SEVERE_PACKET_LOSS_PCT else "medium", "📦",
            "Check for WiFi interference, restart your router, "
            "or contact your ISP if issue persists.",
            packet_loss=round(loss, 1), threshold=LOSSY_PACKET_LOSS_PCT,
        )

    vpn_on, vpn_off = averages.get("vpn_on_speed"), averages.get("vpn_off_speed")
    if vpn_on is not None and vpn_off is not None and vpn_on < vpn_off * VPN_SLOWDOWN_RATIO:
        add(
            "VPN Significantly Reducing Speed", "low", "🔒",
            "VPN is reducing speeds by >50%. Consider split tunneling "
            "if available, or check VPN server location.",
            vpn_on=round(vpn_on), vpn_off=round(vpn_off),
        )

    channel = averages.get("channel")
    if averages.get("band") == "2.4GHz" and channel and channel not in NON_OVERLAPPING_CHANNELS:
        add(
            "Suboptimal WiFi Channel", "low", "📻",
            f"Channel {channel} overlaps with others. "
            "Switch to channel 1, 6, or 11 for better performance.",
            current_channel=channel, recommended=list(NON_OVERLAPPING_CHANNELS),
        )

    download = averages.get("avg_download")
    if download is not None and download < LOW_DOWNLOAD_MBPS:
        add(
            "Low Download Speed", "high" if download < VERY_LOW_DOWNLOAD_MBPS else "medium", "⬇️",
            "Check your ISP plan limits, try restarting your router, "
            "or test with a wired connection to isolate WiFi issues.",
            speed=round(download),
        )

    return advice


class DiagnosisService:
    """On-demand device diagnosis over the trailing window."""

    def __init__(
        self,
        result_dao: ResultDAO,
        *,
        window_days: int = 7,
        min_records: int = 3,
        max_records: int = 50,
    ) -> None:
        self._dao = result_dao
        self._window_days = window_days
        self._min_records = min_records
        self._max_records = max_records

    async def diagnose(self, device_id: str) -> dict[str, Any]:
        """Diagnose a device from its recent successful results.

        Returns:
            Dict with primary_issue, confidence, ranked factors, a summary
            of the averaged metrics, and recommendations. ``diagnosis`` is
            None with an explanatory message when there is too little data.
        """
        since = Time.ago(days=self._window_days)
        async with self._dao.transaction():
            rows = await self._dao.list_recent_successful(
                device_id, limit=self._max_records, since=since,
            )

        if len(rows) < self._min_records:
            return {
                "device_id": device_id,
                "diagnosis": None,
                "message": (
                    "Insufficient data for diagnosis "
                    f"(need at least {self._min_records} tests)"
                ),
            }

        summary = LinkSummary.from_results(rows)
        diagnosis = assess(summary)
        primary = diagnosis.primary
        return {
            "device_id": device_id,
            "generated_at": Time.utcnow().isoformat(),
            "data_points": summary.data_points,
            "primary_issue": primary.factor if primary else "none",
            "confidence": round(diagnosis.confidence, 2),
            "factors": [f.to_dict() for f in diagnosis.factors],
            "summary": {
                "avg_rssi": round(summary.rssi),
                "avg_download": round(summary.download, 1),
                "avg_jitter": round(summary.jitter, 1),
                "avg_packet_loss": round(summary.packet_loss, 2),
                "avg_mcs": round(summary.mcs, 1) if summary.mcs >= 0 else None,
                "expected_mcs": expected_mcs(summary.rssi),
                "avg_error_rate": round(summary.error_rate, 3),
                "roam_count": summary.roam_count,
            },
            "recommendations": diagnosis.recommendations,
        }

    async def troubleshoot(self, device_id: str) -> dict[str, Any]:
        """Rule-based fixes from the device's averages over the window."""
        async with self._dao.transaction():
            averages = await self._dao.device_averages(
                device_id, Time.ago(days=self._window_days),
            )
        advice = troubleshooting(averages)
        return {
            "device_id": device_id,
            "generated_at": Time.utcnow().isoformat(),
            "recommendation_count": len(advice),
            "recommendations": advice,
        }

    async def link_quality(self, device_id: str, hours: int = 24) -> dict[str, Any]:
        """MCS, error-rate, and signal history with a link-level verdict."""
        async with self._dao.transaction():
            rows = await self._dao.list_recent_successful(
                device_id, limit=LINK_QUALITY_MAX_RECORDS, since=Time.ago(hours=hours),
            )

        summary = LinkSummary.from_results(rows)
        expected = expected_mcs(summary.rssi)
        deficit = expected - summary.mcs if summary.mcs >= 0 else 0
        slow_count = sum(
            1 for row in rows
            if (row.rssi_dbm or 0) > GOOD_SIGNAL_DBM
            and (row.download_mbps or 0) < SLOW_DOWNLOAD_MBPS
        )
        link_issue = deficit > MCS_DEFICIT or summary.error_rate > ERROR_RATE_PCT
        slow_despite_signal = slow_count > len(rows) * SLOW_DESPITE_SIGNAL_SHARE

        if deficit > MCS_DEFICIT:
            description = (
                "MCS index lower than expected for signal strength - "
                "possible interference or AP congestion"
            )
        elif summary.error_rate > ERROR_RATE_PCT:
            description = "Elevated packet error rate - check for interference or driver issues"
        elif slow_despite_signal:
            description = "Good signal but slow speeds - likely AP overload or backhaul issue"
        else:
            description = "No significant link quality issues detected"

        return {
            "device_id": device_id,
            "period_hours": hours,
            "data_points": summary.data_points,
            "metrics": [
                {
                    "timestamp_utc": Time.isoformat(row.timestamp_utc),
                    "rssi_dbm": row.rssi_dbm,
                    "mcs_index": row.mcs_index,
                    "spatial_streams": row.spatial_streams,
                    "tx_rate_mbps": row.tx_rate_mbps,
                    "download_mbps": row.download_mbps,
                    "input_error_rate": row.input_error_rate,
                    "output_error_rate": row.output_error_rate,
                    "tcp_retransmits": row.tcp_retransmits,
                    "bssid_changed": row.bssid_changed,
                }
                for row in rows
            ],
            "summary": {
                "avg_rssi": round(summary.rssi),
                "avg_mcs": round(summary.mcs, 1) if summary.mcs >= 0 else None,
                "expected_mcs": expected,
                "mcs_deficit": round(deficit, 1),
                "avg_error_rate": round(summary.error_rate, 4),
                "avg_download": round(summary.download, 1),
                "good_signal_slow_speed_count": slow_count,
                "total_roam_events": summary.roam_count,
            },
            "diagnosis": {
                "has_link_quality_issue": link_issue,
                "has_slow_despite_good_signal": slow_despite_signal,
                "issue_description": description,
            },
        }
