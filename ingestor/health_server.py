from collections.abc import Sequence
import logging
from typing import Any

from aiohttp import web

from ingestor.worker import IngestionWorker

logger = logging.getLogger(__name__)


class HealthServer:
    """Reports ingestion worker liveness and counters over HTTP.

    ``GET /health`` answers 200 while every worker is consuming its source and
    503 once any of them has stopped.
    """

    def __init__(
        self, host: str, port: int, workers: Sequence[IngestionWorker[Any]] = ()
    ) -> None:
        self.host = host
        self.port = port
        self.workers = workers
        self._runner: web.AppRunner | None = None

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get('/health', self._health_handler)
        return app

    async def start(self) -> None:
        if self._runner is not None:
            return
        self._runner = web.AppRunner(self.create_app(), access_log=None)
        await self._runner.setup()
        await web.TCPSite(self._runner, self.host, self.port).start()
        logger.info(
            'Health server listening',
            extra={'host': self.host, 'port': self.port, 'path': '/health'},
        )

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        logger.info('Health server stopped')

    def report(self) -> dict[str, Any]:
        workers = {
            worker.name: {'running': worker.running, **worker.stats.as_dict()}
            for worker in self.workers
        }
        healthy = all(worker.running for worker in self.workers)
        return {'status': 'ok' if healthy else 'degraded', 'workers': workers}

    async def _health_handler(self, _request: web.Request) -> web.Response:
        body = self.report()
        return web.json_response(body, status=200 if body['status'] == 'ok' else 503)
