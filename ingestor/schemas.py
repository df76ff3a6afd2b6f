from datetime import UTC, datetime
import math

from pydantic import BaseModel, ConfigDict, field_validator

FieldValue = int | float | str | bool

NANOS_PER_SECOND = 1_000_000_000


class MetricPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    tags: dict[str, str] = {}
    fields: dict[str, FieldValue]
    timestamp_nano: int

    @field_validator('name')
    @classmethod
    def _name_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError('point name must not be empty')
        return value

    @field_validator('fields')
    @classmethod
    def _fields_usable(cls, value: dict[str, FieldValue]) -> dict[str, FieldValue]:
        if not value:
            raise ValueError('point must have at least one field')
        for key, item in value.items():
            if not key:
                raise ValueError('field names must not be empty')
            if isinstance(item, float) and not math.isfinite(item):
                raise ValueError(f'field {key!r} has unsupported value {item}')
        return value

    @property
    def timestamp(self) -> datetime:
        seconds, nanos = divmod(self.timestamp_nano, NANOS_PER_SECOND)
        return datetime.fromtimestamp(seconds, tz=UTC).replace(
            microsecond=nanos // 1000
        )

    @property
    def timestamp_seconds(self) -> float:
        return self.timestamp_nano / NANOS_PER_SECOND


def epoch_nanos(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    delta = moment - datetime(1970, 1, 1, tzinfo=UTC)
    return (
        delta.days * 86_400 + delta.seconds
    ) * NANOS_PER_SECOND + delta.microseconds * 1000
