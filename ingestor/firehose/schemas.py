from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class EventType(str, Enum):
    HTTP_START_STOP = 'HttpStartStop'
    LOG_MESSAGE = 'LogMessage'
    VALUE_METRIC = 'ValueMetric'
    COUNTER_EVENT = 'CounterEvent'
    ERROR = 'Error'
    CONTAINER_METRIC = 'ContainerMetric'


# numeric values of the EventType enum on the wire
EVENT_TYPE_NUMBERS: dict[int, EventType] = {
    4: EventType.HTTP_START_STOP,
    5: EventType.LOG_MESSAGE,
    6: EventType.VALUE_METRIC,
    7: EventType.COUNTER_EVENT,
    8: EventType.ERROR,
    9: EventType.CONTAINER_METRIC,
}


class _FirehoseModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra='ignore',
    )


class CounterEvent(_FirehoseModel):
    name: str = ''
    delta: int = 0
    total: int = 0


class ContainerMetric(_FirehoseModel):
    application_id: str = ''
    instance_index: int = 0
    cpu_percentage: float = 0.0
    memory_bytes: int = 0
    disk_bytes: int = 0
    memory_bytes_quota: int = 0
    disk_bytes_quota: int = 0


class ValueMetric(_FirehoseModel):
    name: str = ''
    value: float = 0.0
    unit: str = ''


class Envelope(_FirehoseModel):
    origin: str
    event_type: EventType
    timestamp: int = 0
    deployment: str = ''
    job: str = ''
    index: str = ''
    ip: str = ''
    tags: dict[str, str] | None = None

    counter_event: CounterEvent | None = None
    container_metric: ContainerMetric | None = None
    value_metric: ValueMetric | None = None
    log_message: dict[str, Any] | None = None
    error: dict[str, Any] | None = None
    http_start_stop: dict[str, Any] | None = None

    @field_validator('event_type', mode='before')
    @classmethod
    def _event_type_from_number(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return EVENT_TYPE_NUMBERS[value]
            except KeyError:
                raise ValueError(f'unknown event type number {value}') from None
        return value

    def get_counter_event(self) -> CounterEvent:
        return self.counter_event or CounterEvent()

    def get_container_metric(self) -> ContainerMetric:
        return self.container_metric or ContainerMetric()

    def get_value_metric(self) -> ValueMetric:
        return self.value_metric or ValueMetric()
