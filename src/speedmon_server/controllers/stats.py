"""Stats and recommendation controllers: thin HTTP adapters for StatsResource."""

from __future__ import annotations

from litestar import Controller, get

from speedmon_server.resources.stats import StatsResource

MAX_TIMEOFDAY_DAYS = 365
MAX_TREND_DAYS = 90
MAX_TIMELINE_HOURS = 168
MAX_CORRELATION_DAYS = 30


class StatsController(Controller):
    """HTTP adapter for dashboard aggregates."""

    path = "/api/stats"

    @get()
    async def overview(self, stats_resource: StatsResource) -> dict[str, object]:
        """Fleet totals, per-device averages, and the last 24 hours."""
        return await stats_resource.overview()

    @get("/wifi")
    async def wifi(self, stats_resource: StatsResource) -> dict[str, object]:
        """Breakdowns by access point, SSID, and band."""
        return await stats_resource.wifi()

    @get("/vpn")
    async def vpn(self, stats_resource: StatsResource) -> dict[str, object]:
        """VPN usage and on/off comparison."""
        return await stats_resource.vpn()

    @get("/jitter")
    async def jitter(self, stats_resource: StatsResource) -> dict[str, object]:
        """Jitter buckets and problem devices."""
        return await stats_resource.jitter()

    @get("/timeofday")
    async def time_of_day(
        self, stats_resource: StatsResource, days: int = 30,
    ) -> dict[str, object]:
        """Weekday by hour heatmap."""
        return await stats_resource.time_of_day(max(1, min(days, MAX_TIMEOFDAY_DAYS)))

    @get("/trends")
    async def trends(
        self, stats_resource: StatsResource, days: int = 30,
    ) -> dict[str, object]:
        """Daily series with week-over-week change."""
        return await stats_resource.trends(max(1, min(days, MAX_TREND_DAYS)))

    @get("/channels")
    async def channels(self, stats_resource: StatsResource) -> list[dict[str, object]]:
        """Per channel and band usage over the last week."""
        return await stats_resource.channels()

    @get("/timeline")
    async def timeline(
        self, stats_resource: StatsResource, hours: int = 24,
    ) -> list[dict[str, object]]:
        """Every successful result in the trailing window, oldest first."""
        return await stats_resource.timeline(max(1, min(hours, MAX_TIMELINE_HOURS)))

    @get("/link-quality-correlation")
    async def link_quality_correlation(
        self, stats_resource: StatsResource, days: int = 7,
    ) -> dict[str, object]:
        """Signal strength against speed, MCS, and error rate fleet-wide."""
        return await stats_resource.link_quality_correlation(
            max(1, min(days, MAX_CORRELATION_DAYS)),
        )


class RecommendationController(Controller):
    """HTTP adapter for fleet-wide advice."""

    path = "/api/recommendations"

    @get("/wifi")
    async def wifi(self, stats_resource: StatsResource) -> list[dict[str, object]]:
        """Channel congestion, weak signal, and band upgrade advice."""
        return await stats_resource.wifi_recommendations()
