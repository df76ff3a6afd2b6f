import asyncio
from collections.abc import AsyncGenerator, Callable
from contextlib import AsyncExitStack, asynccontextmanager
import logging
import signal
from typing import Any, TypeVar

from ingestor.config import Settings, settings
from ingestor.converters import envelope_to_point, pdu_frames_to_point
from ingestor.db import TimescaleDB
from ingestor.firehose.schemas import Envelope
from ingestor.health_server import HealthServer
from ingestor.log_config_loader import setup_logging
from ingestor.ports import MessageSource, MetricSink
from ingestor.redis_stream_client import (
    RedisStreamSource,
    parse_envelope,
    parse_pdu_frames,
)
from ingestor.schemas import MetricPoint
from ingestor.worker import IngestionWorker

logger = logging.getLogger(__name__)

T = TypeVar('T')


def build_source(
    config: Settings, stream_name: str, parse: Callable[[bytes | str], T]
) -> RedisStreamSource[T]:
    return RedisStreamSource(
        stream_name=stream_name,
        parse=parse,
        host=config.REDIS_HOST,
        port=config.REDIS_PORT,
        db=config.REDIS_DB,
        group=config.REDIS_CONSUMER_GROUP,
        consumer=config.REDIS_CONSUMER_NAME,
        password=config.REDIS_PASSWORD,
        ssl=config.REDIS_SSL,
        batch_size=config.REDIS_BATCH_SIZE,
        block_ms=config.REDIS_BLOCK_MS,
        retry_delay=config.REDIS_RETRY_DELAY,
        error_buffer_size=config.SOURCE_ERROR_BUFFER_SIZE,
    )


def build_sink(config: Settings) -> TimescaleDB:
    return TimescaleDB(
        host=config.DB_HOST,
        port=config.DB_PORT,
        database=config.POSTGRES_DB,
        user=config.POSTGRES_USER,
        password=config.POSTGRES_PASSWORD,
        table_name=config.DB_TABLE_NAME,
        min_pool_size=config.DB_MIN_POOL_SIZE,
        max_pool_size=config.DB_MAX_POOL_SIZE,
        command_timeout=config.DB_COMMAND_TIMEOUT,
        ssl=config.DB_SSL_MODE,
    )


def build_worker(
    config: Settings,
    name: str,
    source: MessageSource[T],
    translate: Callable[[T], MetricPoint | None],
    sink: MetricSink,
) -> IngestionWorker[T]:
    return IngestionWorker(
        name,
        source,
        translate,
        sink,
        error_drain_timeout=config.WORKER_ERROR_DRAIN_TIMEOUT,
    )


@asynccontextmanager
async def lifespan(config: Settings = settings) -> AsyncGenerator[None, None]:
    pdu_source = build_source(config, config.PDU_STREAM_NAME, parse_pdu_frames)
    firehose_source: RedisStreamSource[Envelope] = build_source(
        config, config.FIREHOSE_STREAM_NAME, parse_envelope
    )
    sink = build_sink(config)

    async with AsyncExitStack() as resources:
        # closed in reverse order, including after a partial start
        await sink.connect()
        resources.push_async_callback(sink.close)
        await sink.ensure_schema()
        for source in (pdu_source, firehose_source):
            resources.push_async_callback(source.close)
            await source.start()

        workers: list[IngestionWorker[Any]] = [
            build_worker(config, 'bolo', pdu_source, pdu_frames_to_point, sink),
            build_worker(
                config, 'firehose', firehose_source, envelope_to_point, sink
            ),
        ]
        worker_tasks = [
            asyncio.create_task(worker.run(), name=f'ingest-{worker.name}')
            for worker in workers
        ]
        logger.info('Ingestion workers started', extra={'workers': len(workers)})

        try:
            health_server = HealthServer(
                config.HEALTH_SERVER_HOST, config.HEALTH_SERVER_PORT, workers=workers
            )
            resources.push_async_callback(health_server.stop)
            await health_server.start()
            yield
        finally:
            logger.info('Shutting down...')
            pdu_source.stop()
            firehose_source.stop()
            await _stop_workers(worker_tasks, config.WORKER_SHUTDOWN_TIMEOUT)
    logger.info('Shutdown complete')


async def _stop_workers(tasks: list[asyncio.Task[Any]], timeout: float) -> None:
    done, pending = await asyncio.wait(tasks, timeout=timeout)
    if pending:
        logger.warning('Workers did not stop in time, cancelling...')
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
    else:
        logger.info('Ingestion workers stopped gracefully')
    for task in done:
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                'Ingestion worker failed',
                exc_info=task.exception(),
                extra={'task': task.get_name()},
            )


async def main() -> None:
    setup_logging(
        service_name=settings.SERVICE_NAME,
        level=settings.LOG_LEVEL,
        log_format=settings.LOG_FORMAT,
        version=settings.SERVICE_VERSION,
    )
    logger.info(
        'Starting up firehose ingestor', extra={'version': settings.SERVICE_VERSION}
    )

    shutdown_event = asyncio.Event()

    for sig in [signal.SIGTERM, signal.SIGINT]:
        asyncio.get_running_loop().add_signal_handler(sig, shutdown_event.set)

    async with lifespan():
        await shutdown_event.wait()


def run() -> None:
    asyncio.run(main())


if __name__ == '__main__':
    run()
