import logging
import re

import asyncpg
import orjson

from ingestor.errors import SinkError
from ingestor.schemas import MetricPoint

logger = logging.getLogger(__name__)

_TABLE_NAME_RE = re.compile(r'[a-zA-Z_][a-zA-Z0-9_]*')


class TimescaleDB:
    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        table_name: str = 'metric_points',
        min_pool_size: int = 1,
        max_pool_size: int = 10,
        command_timeout: float = 60.0,
        ssl: str | None = None,
    ) -> None:
        if not _TABLE_NAME_RE.fullmatch(table_name):
            raise ValueError(f'Invalid table name: {table_name!r}')
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.table_name = table_name
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout = command_timeout
        self.ssl = ssl
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        if self._pool is not None:
            logger.debug('TimescaleDB pool already exists')
            return
        logger.info(
            'Connecting to TimescaleDB',
            extra={
                'host': self.host,
                'port': self.port,
                'database': self.database,
                'user': self.user,
            },
        )
        try:
            self._pool = await asyncpg.create_pool(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.user,
                password=self.password,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout,
                ssl=self.ssl,
            )
            logger.info('Connected to TimescaleDB')
        except Exception:
            logger.exception('Failed to connect to TimescaleDB')
            raise

    async def ensure_schema(self) -> None:
        if self._pool is None:
            raise RuntimeError('TimescaleDB not connected')
        async with self._pool.acquire() as conn:
            await conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.table_name} (
                    time TIMESTAMPTZ NOT NULL,
                    name TEXT NOT NULL,
                    tags JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                    fields JSONB NOT NULL
                )
                """
            )
            await conn.execute(
                f"SELECT create_hypertable('{self.table_name}', 'time', "
                'if_not_exists => TRUE)'
            )
        logger.info('TimescaleDB schema ready', extra={'table': self.table_name})

    async def send(self, point: MetricPoint) -> None:
        if self._pool is None:
            raise SinkError(point.name, 'TimescaleDB not connected')
        try:
            async with self._pool.acquire() as conn:
                await conn.execute(
                    f"""
                    INSERT INTO {self.table_name} (time, name, tags, fields)
                    VALUES (to_timestamp($1), $2, $3::jsonb, $4::jsonb)
                    """,
                    point.timestamp_seconds,
                    point.name,
                    orjson.dumps(point.tags).decode('utf-8'),
                    orjson.dumps(point.fields).decode('utf-8'),
                )
        except (
            asyncpg.PostgresError,
            asyncpg.InterfaceError,
            orjson.JSONEncodeError,
            OSError,
        ) as e:
            raise SinkError(point.name, str(e)) from e
        logger.debug(
            'Metric point inserted into TimescaleDB',
            extra={'metric_name': point.name, 'tags': point.tags},
        )

    async def close(self) -> None:
        if self._pool is not None:
            logger.info('Closing TimescaleDB connection pool')
            await self._pool.close()
            self._pool = None
            logger.info('TimescaleDB connection pool closed')
