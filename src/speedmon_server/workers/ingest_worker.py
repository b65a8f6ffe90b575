"""Background worker that runs ingest plugins off the request path."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from speedmon_server.plugins.contracts.ingest import IngestPlugin
from speedmon_server.schemas.telemetry import TelemetryRecord

logger = logging.getLogger(__name__)


class IngestWorker:
    """Queue of stored records drained by a single background task.

    Records are handled one at a time, in submission order. Every plugin
    sees every record; a failing plugin is logged and does not stop the
    others or the worker.
    """

    def __init__(self, plugins: Sequence[IngestPlugin]) -> None:
        self._plugins = list(plugins)
        self._queue: asyncio.Queue[TelemetryRecord] | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        """True while the background task is alive."""
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Create the queue and start the consumer task on the running loop."""
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._task = asyncio.create_task(
            self._run(self._queue), name="ingest-worker",
        )
        logger.debug("Ingest worker started with %d plugin(s)", len(self._plugins))

    async def stop(self) -> None:
        """Finish queued records, then stop the consumer task."""
        if self._task is None or self._queue is None:
            return
        await self._queue.join()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._queue = None
        logger.debug("Ingest worker stopped")

    def submit(self, record: TelemetryRecord) -> None:
        """Enqueue a stored record without waiting for it to be processed."""
        if self._queue is None:
            logger.warning(
                "Ingest worker not running; skipping post-ingest for %s",
                record.device_id,
            )
            return
        self._queue.put_nowait(record)

    async def join(self) -> None:
        """Wait until every submitted record has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def _run(self, queue: asyncio.Queue[TelemetryRecord]) -> None:
        while True:
            record = await queue.get()
            try:
                await self.process(record)
            finally:
                queue.task_done()

    async def process(self, record: TelemetryRecord) -> None:
        """Run every plugin against one record."""
        for plugin in self._plugins:
            try:
                await plugin.handle(record)
            except Exception:
                logger.exception(
                    "Ingest plugin %s failed for device %s",
                    plugin.name, record.device_id,
                )
