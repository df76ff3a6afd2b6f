from typing import Literal, Self
import uuid

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SSLMode = Literal[
    'disable',
    'allow',
    'prefer',
    'require',
    'verify-ca',
    'verify-full',
]

LogFormat = Literal['json', 'text']


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra='ignore',
        env_file='.env',
        env_file_encoding='utf-8',
    )

    # one consumer group spans both source streams
    REDIS_HOST: str
    REDIS_PORT: int
    REDIS_PASSWORD: str | None = None
    REDIS_DB: int = 0
    REDIS_SSL: bool = False
    REDIS_CONSUMER_GROUP: str = 'firehose-ingestor'
    REDIS_CONSUMER_NAME: str = Field(
        default_factory=lambda: f'ingestor-{uuid.uuid4().hex[:8]}'
    )
    REDIS_BLOCK_MS: int = Field(default=5000, ge=0)
    REDIS_BATCH_SIZE: int = Field(default=100, gt=0)
    REDIS_RETRY_DELAY: float = Field(default=1.0, ge=0)

    PDU_STREAM_NAME: str = 'bolo-pdus'
    FIREHOSE_STREAM_NAME: str = 'firehose-envelopes'
    SOURCE_ERROR_BUFFER_SIZE: int = Field(default=1000, gt=0)

    SERVICE_NAME: str = 'firehose-ingestor'
    SERVICE_VERSION: str = '(development)'
    LOG_LEVEL: str = 'info'
    LOG_FORMAT: LogFormat = 'text'

    WORKER_SHUTDOWN_TIMEOUT: float = 10.0
    WORKER_ERROR_DRAIN_TIMEOUT: float = 1.0

    DB_HOST: str
    DB_PORT: int
    POSTGRES_DB: str
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    DB_TABLE_NAME: str = Field(
        default='metric_points', pattern=r'^[A-Za-z_][A-Za-z0-9_]*$'
    )
    DB_MIN_POOL_SIZE: int = 1
    DB_MAX_POOL_SIZE: int = 10
    DB_COMMAND_TIMEOUT: float = 60.0
    DB_SSL_MODE: SSLMode | None = None

    HEALTH_SERVER_HOST: str = '0.0.0.0'
    HEALTH_SERVER_PORT: int = 8080

    @model_validator(mode='after')
    def _distinct_streams(self) -> Self:
        if self.PDU_STREAM_NAME == self.FIREHOSE_STREAM_NAME:
            raise ValueError(
                'PDU_STREAM_NAME and FIREHOSE_STREAM_NAME must name different streams'
            )
        return self


settings = Settings()  # type: ignore[call-arg]
