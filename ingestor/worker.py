import asyncio
from collections.abc import Callable
import contextlib
from dataclasses import asdict, dataclass
import logging
from typing import Generic, TypeVar

from ingestor.errors import DecodeError, SinkError
from ingestor.ports import MessageSource, MetricSink
from ingestor.schemas import MetricPoint

logger = logging.getLogger(__name__)

T = TypeVar('T')

ErrorReporter = Callable[[str, Exception], None]


@dataclass
class IngestionStats:
    received: int = 0
    emitted: int = 0
    ignored: int = 0
    decode_errors: int = 0
    sink_errors: int = 0
    source_errors: int = 0
    unexpected_errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def log_error(worker_name: str, error: Exception) -> None:
    extra: dict[str, object] = {
        'worker': worker_name,
        'error_type': type(error).__name__,
        'error': str(error),
    }
    if isinstance(error, DecodeError):
        extra.update(field=error.field, snippet=error.snippet)
        logger.warning('Dropping undecodable message', extra=extra)
    elif isinstance(error, SinkError):
        extra['metric_name'] = error.point_name
        logger.error('Problem submitting metric', extra=extra)
    else:
        logger.error('Source reported an error', extra=extra)


class IngestionWorker(Generic[T]):
    def __init__(
        self,
        name: str,
        source: MessageSource[T],
        translate: Callable[[T], MetricPoint | None],
        sink: MetricSink,
        on_error: ErrorReporter = log_error,
        error_drain_timeout: float = 1.0,
    ) -> None:
        self.name = name
        self.source = source
        self.translate = translate
        self.sink = sink
        self.on_error = on_error
        self.error_drain_timeout = error_drain_timeout
        self.stats = IngestionStats()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def run(self) -> IngestionStats:
        self._running = True
        logger.info('Ingestion worker started', extra={'worker': self.name})
        errors_task = asyncio.create_task(self._drain_errors())
        try:
            async for message in self.source.messages():
                self.stats.received += 1
                await self._process(message)
        finally:
            # the error channel closes alongside the message channel
            await asyncio.wait({errors_task}, timeout=self.error_drain_timeout)
            if not errors_task.done():
                errors_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await errors_task
            self._running = False
            logger.info(
                'Ingestion worker stopped',
                extra={'worker': self.name, **self.stats.as_dict()},
            )
        return self.stats

    async def _process(self, message: T) -> None:
        try:
            point = self.translate(message)
        except DecodeError as e:
            self.stats.decode_errors += 1
            self._report(e)
            return
        except Exception:
            self.stats.unexpected_errors += 1
            logger.exception(
                'Unexpected error translating message', extra={'worker': self.name}
            )
            return

        if point is None:
            self.stats.ignored += 1
            return

        try:
            await self.sink.send(point)
        except SinkError as e:
            self.stats.sink_errors += 1
            self._report(e)
            return
        except Exception:
            self.stats.unexpected_errors += 1
            logger.exception(
                'Unexpected error sending metric',
                extra={'worker': self.name, 'metric_name': point.name},
            )
            return
        self.stats.emitted += 1
        logger.debug(
            'Metric processed', extra={'worker': self.name, 'metric_name': point.name}
        )

    async def _drain_errors(self) -> None:
        try:
            async for error in self.source.errors():
                self.stats.source_errors += 1
                self._report(error)
        except Exception:
            logger.exception(
                'Source error channel failed', extra={'worker': self.name}
            )

    def _report(self, error: Exception) -> None:
        try:
            self.on_error(self.name, error)
        except Exception:
            logger.exception('Error reporter failed', extra={'worker': self.name})
