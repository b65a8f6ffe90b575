"""Stats resource: protocol-agnostic dashboard aggregates."""

from __future__ import annotations

from speedmon_server.services.stats_service import StatsService


class StatsResource:
    """Fleet-wide aggregate views."""

    def __init__(self, *, stats_service: StatsService) -> None:
        self._service = stats_service

    async def overview(self) -> dict[str, object]:
        return await self._service.overview()

    async def wifi(self) -> dict[str, object]:
        return await self._service.wifi()

    async def vpn(self) -> dict[str, object]:
        return await self._service.vpn()

    async def jitter(self) -> dict[str, object]:
        return await self._service.jitter()

    async def time_of_day(self, days: int) -> dict[str, object]:
        return await self._service.time_of_day(days)

    async def trends(self, days: int) -> dict[str, object]:
        return await self._service.trends(days)

    async def channels(self) -> list[dict[str, object]]:
        return await self._service.channels()

    async def wifi_recommendations(self) -> list[dict[str, object]]:
        return await self._service.wifi_recommendations()

    async def timeline(self, hours: int) -> list[dict[str, object]]:
        return await self._service.timeline(hours)

    async def link_quality_correlation(self, days: int) -> dict[str, object]:
        return await self._service.link_quality_correlation(days)
