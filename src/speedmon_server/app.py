"""Litestar application factory and CLI entry point."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from litestar import Litestar, Request, Response
from litestar.datastructures import State
from litestar.di import Provide
from litestar.logging import LoggingConfig
from sqlalchemy.exc import SQLAlchemyError

from speedmon_server.clients.slack_webhook_client import SlackWebhookClient
from speedmon_server.config import ConfigLoader, Settings
from speedmon_server.controllers.alerts import AlertController
from speedmon_server.controllers.devices import DeviceController
from speedmon_server.controllers.health import HealthController
from speedmon_server.controllers.results import ResultController
from speedmon_server.controllers.stats import RecommendationController, StatsController
from speedmon_server.dao.alert_dao import AlertDAO
from speedmon_server.dao.baseline_dao import BaselineDAO
from speedmon_server.dao.result_dao import ResultDAO
from speedmon_server.dao.stats_dao import StatsDAO
from speedmon_server.plugins.alert_evaluation import AlertEvaluationPlugin
from speedmon_server.plugins.baseline_maintenance import BaselineMaintenancePlugin
from speedmon_server.resources.alerts import AlertResource
from speedmon_server.resources.devices import DeviceResource
from speedmon_server.resources.health import HealthResource
from speedmon_server.resources.ingest import IngestResource
from speedmon_server.resources.stats import StatsResource
from speedmon_server.services.alert_service import AlertService
from speedmon_server.services.anomaly_service import AnomalyService
from speedmon_server.services.baseline_service import BaselineService
from speedmon_server.services.diagnosis_service import DiagnosisService
from speedmon_server.services.result_service import ResultService
from speedmon_server.services.stats_service import StatsService
from speedmon_server.utils.db import Database
from speedmon_server.workers.ingest_worker import IngestWorker

logger = logging.getLogger(__name__)


class AppFactory:
    """Builds and configures the Litestar application. All methods are static."""

    @staticmethod
    def _build(settings: Settings) -> State:
        """Construct the full object graph once.

        pool → result_dao → result_service ─────────────┬→ IngestResource
        pool → baseline_dao → baseline_service ─┐        │
                                anomaly_service ┤        │
        webhook_client ─────────→ alert_service ┴→ plugins → worker
        pool → stats_dao → stats_service ──┬→ StatsResource
        diagnosis_service ─────────────────┴→ DeviceResource
        """
        pool = Database.init(settings.database_url)
        result_dao = ResultDAO(pool)
        baseline_dao = BaselineDAO(pool)
        alert_dao = AlertDAO(pool)
        stats_dao = StatsDAO(pool)

        result_service = ResultService(result_dao)
        baseline_service = BaselineService(
            result_dao, baseline_dao,
            window=settings.baseline_window,
            min_records=settings.baseline_min_records,
            interval=settings.baseline_interval,
        )
        anomaly_service = AnomalyService(
            baseline_service,
            min_samples=settings.anomaly_min_samples,
            z_threshold=settings.anomaly_z_threshold,
        )
        webhook_client = SlackWebhookClient(dashboard_url=settings.dashboard_url)
        alert_service = AlertService(
            alert_dao, result_dao, anomaly_service, webhook_client,
            roam_threshold=settings.roam_alert_threshold,
            disconnect_threshold=settings.disconnect_alert_threshold,
        )
        diagnosis_service = DiagnosisService(
            result_dao,
            window_days=settings.diagnosis_window_days,
            min_records=settings.diagnosis_min_records,
            max_records=settings.diagnosis_max_records,
        )
        stats_service = StatsService(stats_dao, result_dao)

        worker = IngestWorker([
            AlertEvaluationPlugin(alert_service),
            BaselineMaintenancePlugin(baseline_service),
        ])
        return State({
            "worker": worker,
            "health": HealthResource(result_service=result_service, worker=worker),
            "ingest": IngestResource(result_service=result_service, worker=worker),
            "alerts": AlertResource(
                alert_service=alert_service, baseline_service=baseline_service,
            ),
            "devices": DeviceResource(
                stats_service=stats_service,
                diagnosis_service=diagnosis_service,
                result_service=result_service,
            ),
            "stats": StatsResource(stats_service=stats_service),
        })

    @staticmethod
    @asynccontextmanager
    async def _lifespan(app: Litestar) -> AsyncIterator[None]:
        """Create tables and start the ingest worker; drain and dispose on shutdown."""
        worker: IngestWorker = app.state.worker
        await Database.create_tables()
        await worker.start()
        try:
            yield
        finally:
            await worker.stop()
            await Database.close()

    @staticmethod
    def handle_storage_error(
        request: Request[Any, Any, Any], error: SQLAlchemyError,
    ) -> Response[dict[str, str]]:
        """Log a database failure and answer with a generic 500."""
        logger.error(
            "Storage error on %s %s", request.method, request.url.path,
            exc_info=error,
        )
        return Response(content={"error": "Storage error"}, status_code=500)

    @staticmethod
    def provide_health(state: State) -> HealthResource:
        """Provide the pre-built HealthResource from app state."""
        health_resource: HealthResource = state.health
        return health_resource

    @staticmethod
    def provide_ingest(state: State) -> IngestResource:
        """Provide the pre-built IngestResource from app state."""
        ingest_resource: IngestResource = state.ingest
        return ingest_resource

    @staticmethod
    def provide_alerts(state: State) -> AlertResource:
        """Provide the pre-built AlertResource from app state."""
        alert_resource: AlertResource = state.alerts
        return alert_resource

    @staticmethod
    def provide_devices(state: State) -> DeviceResource:
        """Provide the pre-built DeviceResource from app state."""
        device_resource: DeviceResource = state.devices
        return device_resource

    @staticmethod
    def provide_stats(state: State) -> StatsResource:
        """Provide the pre-built StatsResource from app state."""
        stats_resource: StatsResource = state.stats
        return stats_resource

    @staticmethod
    def create_app(settings: Settings | None = None) -> Litestar:
        """Create and configure the Litestar application."""
        if settings is None:
            settings = ConfigLoader.load_settings()
        return Litestar(
            route_handlers=[
                HealthController, ResultController, StatsController,
                DeviceController, AlertController, RecommendationController,
            ],
            state=AppFactory._build(settings),
            lifespan=[AppFactory._lifespan],
            dependencies={
                "health_resource": Provide(AppFactory.provide_health, sync_to_thread=False),
                "ingest_resource": Provide(AppFactory.provide_ingest, sync_to_thread=False),
                "alert_resource": Provide(AppFactory.provide_alerts, sync_to_thread=False),
                "device_resource": Provide(AppFactory.provide_devices, sync_to_thread=False),
                "stats_resource": Provide(AppFactory.provide_stats, sync_to_thread=False),
            },
            exception_handlers={SQLAlchemyError: AppFactory.handle_storage_error},
            logging_config=LoggingConfig(
                root={"level": settings.log_level, "handlers": ["queue_listener"]},
                formatters={
                    "standard": {
                        "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
                    },
                },
            ),
        )


# Public alias so conftest / uvicorn can call create_app() without knowing AppFactory.
create_app = AppFactory.create_app


class CLI:
    """Command-line interface for speedmon-server."""

    @staticmethod
    def _build_parser() -> argparse.ArgumentParser:
        """Build the CLI argument parser."""
        parser = argparse.ArgumentParser(
            prog="speedmon-server", description="Speed Monitor Server CLI",
        )
        subparsers = parser.add_subparsers(dest="command")

        run_parser = subparsers.add_parser("run", help="Start the server")
        run_parser.add_argument("--host", default="0.0.0.0")
        run_parser.add_argument("--port", type=int, default=3000)
        run_parser.add_argument("--reload", action="store_true", help="Auto-reload on file changes")

        return parser

    @staticmethod
    def main(argv: list[str] | None = None) -> None:
        """CLI entry point. Catches all exceptions and exits cleanly."""
        parser = CLI._build_parser()
        args = parser.parse_args(argv)

        if args.command is None:
            parser.print_help()
            sys.exit(1)

        try:
            if args.command == "run":
                import uvicorn

                uvicorn.run(
                    "speedmon_server.app:create_app",
                    factory=True,
                    host=args.host,
                    port=args.port,
                    reload=args.reload,
                )
        except KeyboardInterrupt:
            pass
        except Exception as error:
            print(f"Error: {error}", file=sys.stderr)
            sys.exit(1)


if __name__ == "__main__":
    CLI.main()
