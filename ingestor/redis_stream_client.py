import asyncio
from collections.abc import AsyncGenerator, AsyncIterator, Callable
import contextlib
import logging
from typing import Any, Generic, TypeVar

import orjson
from redis.asyncio import Redis
from redis.exceptions import RedisError, ResponseError

from ingestor.errors import SourceError
from ingestor.firehose.schemas import Envelope

logger = logging.getLogger(__name__)

T = TypeVar('T')

_ERRORS_CLOSED = object()


def parse_pdu_frames(raw_data: bytes | str) -> list[str]:
    frames = orjson.loads(raw_data)
    if not isinstance(frames, list) or not all(isinstance(f, str) for f in frames):
        raise ValueError('PDU payload must be a JSON array of strings')
    return frames


def parse_envelope(raw_data: bytes | str) -> Envelope:
    return Envelope.model_validate(orjson.loads(raw_data))


def _msg_id_str(msg_id: Any) -> str:
    return msg_id.decode() if isinstance(msg_id, bytes) else str(msg_id)


class RedisStreamSource(Generic[T]):
    def __init__(
        self,
        stream_name: str,
        parse: Callable[[bytes | str], T],
        host: str,
        port: int,
        db: int,
        group: str,
        consumer: str,
        password: str | None,
        ssl: bool = False,
        batch_size: int = 100,
        block_ms: int = 5000,
        retry_delay: float = 1.0,
        error_buffer_size: int = 1000,
        redis: Redis | None = None,
    ):
        self.stream_name = stream_name
        self.parse = parse
        self.host = host
        self.port = port
        self.db = db
        self.group = group
        self.consumer = consumer
        self.password = password
        self.ssl = ssl
        self.batch_size = batch_size
        self.block_ms = block_ms
        self.retry_delay = retry_delay

        self._redis = redis
        self._running = False
        self._errors: asyncio.Queue[object] = asyncio.Queue(error_buffer_size)

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.debug('Redis stream source already started')
            return

        logger.info(
            'Initializing Redis stream source',
            extra={
                'stream_name': self.stream_name,
                'host': self.host,
                'port': self.port,
                'db': self.db,
                'group': self.group,
                'consumer': self.consumer,
            },
        )
        try:
            if self._redis is None:
                self._redis = Redis(
                    host=self.host,
                    port=self.port,
                    db=self.db,
                    password=self.password,
                    ssl=self.ssl,
                    decode_responses=False,
                )
            await self._redis.ping()
            await self.ensure_consumer_group()
            self._running = True
        except Exception:
            logger.exception(
                'Failed to start Redis stream source',
                extra={'stream_name': self.stream_name},
            )
            raise

    def stop(self) -> None:
        if not self._running:
            return
        logger.info(
            'Stopping Redis stream source', extra={'stream_name': self.stream_name}
        )
        self._running = False
        try:
            self._errors.put_nowait(_ERRORS_CLOSED)
        except asyncio.QueueFull:
            self._errors.get_nowait()
            self._errors.put_nowait(_ERRORS_CLOSED)

    async def close(self) -> None:
        self.stop()
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        logger.info(
            'Redis stream source closed', extra={'stream_name': self.stream_name}
        )

    async def ensure_consumer_group(self) -> None:
        if self._redis is None:
            raise RuntimeError('Redis stream source not initialized')
        try:
            await self._redis.xgroup_create(
                self.stream_name, self.group, id='0', mkstream=True
            )
            logger.info(
                'Created consumer group',
                extra={'group': self.group, 'stream_name': self.stream_name},
            )
        except ResponseError as e:
            if 'BUSYGROUP' in str(e):
                logger.debug('Consumer group already exists')
            else:
                raise

    def _report(self, error: SourceError) -> None:
        try:
            self._errors.put_nowait(error)
        except asyncio.QueueFull:
            logger.warning(
                'Error buffer overflow - dropping source error',
                extra={'stream_name': self.stream_name, 'error': str(error)},
            )

    async def read_messages(self) -> AsyncGenerator[tuple[str, T], None]:
        if self._redis is None or not self._running:
            raise RuntimeError('Redis stream source not started')
        messages = await self._redis.xreadgroup(
            groupname=self.group,
            consumername=self.consumer,
            streams={self.stream_name: '>'},
            count=self.batch_size,
            block=self.block_ms,
        )

        if not messages:
            return

        for _, msg_list in messages:
            for raw_id, fields in msg_list:
                msg_id = _msg_id_str(raw_id)
                data = fields.get(b'data') or fields.get('data')
                if not data:
                    logger.warning(
                        "Empty 'data' field in message", extra={'msg_id': msg_id}
                    )
                    self._report(
                        SourceError(self.stream_name, "empty 'data' field", msg_id)
                    )
                    await self.ack(msg_id)
                    continue
                try:
                    payload = self.parse(data)
                except ValueError as e:
                    logger.error(
                        'Failed to parse message',
                        extra={'msg_id': msg_id, 'error': str(e)},
                    )
                    self._report(SourceError(self.stream_name, str(e), msg_id))
                    await self.ack(msg_id)
                    continue
                yield msg_id, payload

    async def ack(self, msg_id: str) -> None:
        if self._redis is None:
            raise RuntimeError('Redis stream source not initialized')
        await self._redis.xack(self.stream_name, self.group, msg_id)

    async def messages(self) -> AsyncIterator[T]:
        while self._running:
            try:
                async for msg_id, payload in self.read_messages():
                    yield payload
                    await self.ack(msg_id)
            except RedisError as e:
                if not self._running:
                    break
                logger.warning(
                    'Redis stream read failed - retrying',
                    extra={
                        'stream_name': self.stream_name,
                        'error': str(e),
                        'retry_delay': self.retry_delay,
                    },
                )
                self._report(SourceError(self.stream_name, str(e)))
                await asyncio.sleep(self.retry_delay)
                if isinstance(e, ResponseError) and 'NOGROUP' in str(e):
                    with contextlib.suppress(RedisError):
                        await self.ensure_consumer_group()

    async def errors(self) -> AsyncIterator[Exception]:
        while True:
            item = await self._errors.get()
            if item is _ERRORS_CLOSED:
                return
            yield item  # type: ignore[misc]
