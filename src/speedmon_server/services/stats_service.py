"""Dashboard aggregates: fleet, WiFi, VPN, jitter, device, time-of-day, trends,
channels, and link quality."""

from __future__ import annotations

import statistics
from typing import Any

from speedmon_server.dao.result_dao import ResultDAO
from speedmon_server.dao.stats_dao import JITTER_BUCKETS, Row, StatsDAO
from speedmon_server.services.result_service import ResultService
from speedmon_server.utils.time import Time

PROBLEM_JITTER_MS = 20
PROBLEM_PACKET_LOSS_PCT = 1
PROBLEM_DEVICE_LIMIT = 20
RECENT_TESTS = 20
WORST_CELL_MIN_TESTS = 3
TREND_THRESHOLD_PCT = 2

CHANNEL_WINDOW_DAYS = 7
BAND_24GHZ = "2.4GHz"
BAND_5GHZ = "5GHz"
NON_OVERLAPPING_CHANNELS = (1, 6, 11)
CONGESTED_CHANNEL_DEVICES = 5
WEAK_SIGNAL_DBM = -70
VERY_WEAK_SIGNAL_DBM = -80
WEAK_SIGNAL_MIN_TESTS = 3
WEAK_SIGNAL_LISTED = 10
BAND_UPGRADE_RATIO = 0.5

GOOD_SIGNAL_DBM = -60
SLOW_DOWNLOAD_MBPS = 30
OUTLIER_SAMPLES = 20
SCATTER_SAMPLES = 500


def _round(value: Any, places: int = 2) -> float | None:
    if value is None:
        return None
    return round(float(value), places)


def _rounded(row: Row, places: dict[str, int]) -> Row:
    """Copy a row with the named columns rounded and datetimes serialized."""
    out = dict(row)
    for key, digits in places.items():
        if key in out:
            out[key] = _round(out[key], digits)
    for key in ("last_test", "last_seen", "timestamp_utc"):
        if out.get(key) is not None:
            out[key] = Time.isoformat(out[key])
    return out


_AVERAGES = {
    "avg_download": 2, "avg_upload": 2, "avg_latency": 2, "avg_jitter": 2,
    "avg_packet_loss": 2, "min_download": 2, "max_download": 2, "avg_rssi": 0,
    "avg_speed": 2,
}


class StatsService:
    """Aggregate views for the dashboards.

    Every grouping, including by date and hour, happens in SQL; this layer
    only rounds, reshapes, and derives insights.
    """

    def __init__(self, stats_dao: StatsDAO, result_dao: ResultDAO) -> None:
        self._dao = stats_dao
        self._results = result_dao

    async def overview(self) -> dict[str, object]:
        """Fleet totals, per-device averages, and the last 24 hours by hour."""
        async with self._dao.transaction():
            overall = await self._dao.overall()
            per_device = await self._dao.per_device()
            hours = await self._dao.hourly_since(Time.ago(hours=24))

        hourly = [
            {
                "hour": f"{row['date']} {int(row['hour']):02d}:00",
                "avg_download": _round(row["avg_download"]),
                "avg_upload": _round(row["avg_upload"]),
                "avg_jitter": _round(row["avg_jitter"]),
                "test_count": row["test_count"],
            }
            for row in hours
        ]
        return {
            "overall": _rounded(overall, _AVERAGES),
            "per_device": [_rounded(row, _AVERAGES) for row in per_device],
            "hourly": hourly,
        }

    async def wifi(self) -> dict[str, object]:
        """Access point, SSID, and band breakdowns."""
        async with self._dao.transaction():
            access_points = await self._dao.by_access_point()
            ssids = await self._dao.by_ssid()
            bands = await self._dao.band_distribution()
        return {
            "by_access_point": [_rounded(row, _AVERAGES) for row in access_points],
            "by_ssid": [_rounded(row, _AVERAGES) for row in ssids],
            "band_distribution": [_rounded(row, _AVERAGES) for row in bands],
        }

    async def vpn(self) -> dict[str, object]:
        """VPN client distribution and VPN on/off comparison."""
        async with self._dao.transaction():
            distribution = await self._dao.vpn_distribution()
            comparison = await self._dao.vpn_comparison()
        return {
            "distribution": [_rounded(row, _AVERAGES) for row in distribution],
            "comparison": [_rounded(row, _AVERAGES) for row in comparison],
        }

    async def jitter(self) -> dict[str, object]:
        """Jitter buckets in ascending order plus the worst devices."""
        async with self._dao.transaction():
            buckets = await self._dao.jitter_distribution()
            problems = await self._dao.problem_devices(
                jitter_ms=PROBLEM_JITTER_MS,
                packet_loss_pct=PROBLEM_PACKET_LOSS_PCT,
                limit=PROBLEM_DEVICE_LIMIT,
            )
        buckets.sort(key=lambda row: JITTER_BUCKETS.index(row["bucket"]))
        return {
            "distribution": [_rounded(row, _AVERAGES) for row in buckets],
            "problem_devices": [_rounded(row, _AVERAGES) for row in problems],
        }

    async def channels(self, days: int = CHANNEL_WINDOW_DAYS) -> list[Row]:
        """Per channel and band usage over the trailing window."""
        async with self._dao.transaction():
            rows = await self._dao.channels(Time.ago(days=days))
        return [_rounded(row, _AVERAGES) for row in rows]

    async def wifi_recommendations(self) -> list[dict[str, Any]]:
        """Fleet-wide WiFi advice: channel congestion, weak signal, band choice.

        Looks at the last week of results. Each recommendation carries the
        rows that triggered it; an empty list means nothing stood out.
        """
        since = Time.ago(days=CHANNEL_WINDOW_DAYS)
        async with self._dao.transaction():
            load = await self._dao.channel_load(since)
            weak = await self._dao.weak_signal_devices(
                since, rssi_dbm=WEAK_SIGNAL_DBM, min_tests=WEAK_SIGNAL_MIN_TESTS,
            )
            bands = await self._dao.band_speeds(since, (BAND_24GHZ, BAND_5GHZ))

        recommendations: list[dict[str, Any]] = []

        congested = [
            _rounded(row, _AVERAGES) for row in load
            if row["band"] == BAND_24GHZ and row["devices"] > CONGESTED_CHANNEL_DEVICES
        ]
        if congested:
            busy = {row["channel"] for row in congested}
            best = next(
                (ch for ch in NON_OVERLAPPING_CHANNELS if ch not in busy),
                NON_OVERLAPPING_CHANNELS[-1],
            )
            recommendations.append({
                "type": "channel_congestion",
                "severity": "medium",
                "icon": "📻",
                "message": f"{len(congested)} congested 2.4GHz channel(s) detected",
                "suggestion": f"Consider switching affected devices to channel {best} or 5GHz",
                "data": congested,
            })

        if weak:
            devices = [_rounded(row, _AVERAGES) for row in weak]
            very_weak = any(row["avg_rssi"] < VERY_WEAK_SIGNAL_DBM for row in devices)
            recommendations.append({
                "type": "weak_signal",
                "severity": "high" if very_weak else "medium",
                "icon": "📶",
                "message": f"{len(devices)} device(s) with weak WiFi signal",
                "suggestion": (
                    "Consider repositioning router, adding mesh nodes, "
                    "or using WiFi extenders"
                ),
                "affected_devices": devices[:WEAK_SIGNAL_LISTED],
            })

        by_band = {row["band"]: _rounded(row, _AVERAGES) for row in bands}
        slow, fast = by_band.get(BAND_24GHZ), by_band.get(BAND_5GHZ)
        if slow and fast and slow["avg_download"] < fast["avg_download"] * BAND_UPGRADE_RATIO:
            gain = round(fast["avg_download"] - slow["avg_download"])
            recommendations.append({
                "type": "band_upgrade",
                "severity": "low",
                "icon": "⬆️",
                "message": "2.4GHz significantly slower than 5GHz",
                "suggestion": f"Switch capable devices to 5GHz for ~{gain} Mbps improvement",
                "data": {BAND_24GHZ: slow, BAND_5GHZ: fast},
            })

        return recommendations

    async def device_health(self, device_id: str) -> dict[str, object] | None:
        """Health snapshot, median jitter, and recent tests for a device.

        Returns:
            None when the device has never reported.
        """
        async with self._dao.transaction():
            health = await self._dao.device_health(device_id)
            if not health["total_tests"]:
                return None
            latest = await self._dao.latest_result(device_id)
        async with self._results.transaction():
            jitters = await self._results.list_successful_jitter(device_id)
            recent = await self._results.list_results(
                limit=RECENT_TESTS, device_id=device_id,
            )

        snapshot = _rounded(health, _AVERAGES)
        snapshot["device_id"] = device_id
        snapshot["successful_tests"] = int(snapshot["successful_tests"] or 0)
        snapshot["median_jitter"] = (
            round(jitters[len(jitters) // 2], 2) if jitters else 0
        )
        snapshot["current_vpn_status"] = latest.vpn_status if latest else None
        snapshot["current_vpn_name"] = latest.vpn_name if latest else None
        snapshot["current_ssid"] = latest.ssid if latest else None
        return {
            "health": snapshot,
            "recent_tests": [ResultService.result_to_dict(row) for row in recent],
        }

    async def time_of_day(self, days: int = 30) -> dict[str, object]:
        """Weekday by hour heatmap of successful results.

        Weekdays are numbered from Sunday = 0.
        """
        async with self._dao.transaction():
            cells = await self._dao.weekday_hour_since(Time.ago(days=days))

        heatmap: list[list[dict[str, Any] | None]] = [
            [None] * 24 for _ in range(7)
        ]
        raw: list[dict[str, Any]] = []
        for row in cells:
            cell = _rounded(row, _AVERAGES)
            day, hour = int(cell["day_of_week"]), int(cell["hour"])
            raw.append(cell)
            heatmap[day][hour] = {
                "download": cell["avg_download"],
                "upload": cell["avg_upload"],
                "jitter": cell["avg_jitter"],
                "tests": cell["test_count"],
            }

        peak: dict[str, Any] = {"download": 0, "hour": 0, "day": 0}
        worst: dict[str, Any] | None = None
        for cell in raw:
            download = cell["avg_download"] or 0
            spot = {"download": download, "hour": cell["hour"], "day": cell["day_of_week"]}
            if download > peak["download"]:
                peak = spot
            if cell["test_count"] >= WORST_CELL_MIN_TESTS and (
                worst is None or download < worst["download"]
            ):
                worst = spot

        return {
            "heatmap": heatmap,
            "raw": raw,
            "insights": {"peak_performance": peak, "worst_performance": worst},
        }

    async def trends(self, days: int = 30) -> dict[str, object]:
        """Daily series with the week-over-week change in mean download."""
        async with self._dao.transaction():
            rows = await self._dao.daily_since(Time.ago(days=days))

        daily = []
        for row in rows:
            day = _rounded(row, {**_AVERAGES, "avg_packet_loss": 3})
            day["date"] = str(row["date"])
            day["vpn_on_tests"] = int(row["vpn_on_tests"] or 0)
            day["vpn_off_tests"] = int(row["vpn_off_tests"] or 0)
            daily.append(day)

        change = StatsService.week_over_week(
            [day["avg_download"] or 0 for day in daily],
        )
        if change > TREND_THRESHOLD_PCT:
            direction = "improving"
        elif change < -TREND_THRESHOLD_PCT:
            direction = "declining"
        else:
            direction = "stable"

        return {
            "trends": daily,
            "summary": {
                "days_analyzed": days,
                "total_data_points": len(daily),
                "week_over_week_change": change,
                "trend_direction": direction,
            },
        }

    async def timeline(self, hours: int = 24) -> list[Row]:
        """Every successful result in the trailing window, oldest first."""
        async with self._dao.transaction():
            rows = await self._dao.timeline(Time.ago(hours=hours))
        return [_rounded(row, {}) for row in rows]

    async def link_quality_correlation(self, days: int = 7) -> dict[str, object]:
        """How signal strength relates to speed, MCS, and link errors fleet-wide."""
        since = Time.ago(days=days)
        async with self._dao.transaction():
            total = await self._dao.count_link_samples(since)
            buckets = await self._dao.rssi_buckets(since)
            outliers = await self._dao.link_samples(
                since,
                limit=OUTLIER_SAMPLES,
                min_rssi_dbm=GOOD_SIGNAL_DBM,
                max_download_mbps=SLOW_DOWNLOAD_MBPS,
            )
            scatter = await self._dao.link_samples(since, limit=SCATTER_SAMPLES)

        rssi_buckets = []
        for row in buckets:
            low = -10 * int(row["bucket_index"])
            rssi_buckets.append({
                "rssi_range": f"{low} to {low + 9}",
                "rssi_midpoint": low + 5,
                "sample_count": row["sample_count"],
                "avg_download": _round(row["avg_download"], 1),
                "avg_mcs": _round(row["avg_mcs"], 1),
                "avg_error_rate": _round(row["avg_error_rate"], 4),
            })

        return {
            "period_days": days,
            "total_samples": total,
            "rssi_buckets": rssi_buckets,
            "outliers": {
                "count": len(outliers),
                "description": (
                    f"Devices with good signal (>{GOOD_SIGNAL_DBM}dBm) "
                    f"but slow speeds (<{SLOW_DOWNLOAD_MBPS}Mbps)"
                ),
                "samples": [
                    {
                        "device_id": row["device_id"][:8] + "...",
                        "rssi": row["rssi_dbm"],
                        "speed": row["download_mbps"],
                        "mcs": row["mcs_index"],
                        "error_rate": _round(row["error_rate"], 4),
                    }
                    for row in outliers
                ],
            },
            "scatter_data": [
                {
                    "rssi": row["rssi_dbm"],
                    "download": row["download_mbps"],
                    "mcs": row["mcs_index"],
                    "error_rate": row["error_rate"],
                }
                for row in scatter
            ],
        }

    @staticmethod
    def week_over_week(series: list[float]) -> float:
        """Percent change of the last 7 points' mean over the 7 before.

        Returns 0 when there is no earlier week to compare against.
        """
        current = series[-7:]
        previous = series[-14:-7]
        if not current or not previous:
            return 0.0
        previous_mean = statistics.fmean(previous)
        if previous_mean <= 0:
            return 0.0
        return round(
            (statistics.fmean(current) - previous_mean) / previous_mean * 100, 1,
        )
