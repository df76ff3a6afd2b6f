from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict


class PDUType(str, Enum):
    SAMPLE = 'SAMPLE'
    RATE = 'RATE'
    COUNTER = 'COUNTER'
    SET_KEYS = 'SET.KEYS'
    STATE = 'STATE'
    STATE_TRANSITION = 'TRANSITION'
    EVENT = 'EVENT'


class _BasePDU(BaseModel):
    model_config = ConfigDict(frozen=True)


class SamplePDU(_BasePDU):
    type: Literal[PDUType.SAMPLE] = PDUType.SAMPLE
    timestamp: datetime
    name: str
    sample_size: int
    min: float
    max: float
    sum: float
    mean: float
    variance: float

    def __str__(self) -> str:
        return (
            f'{self.name}: Samples: {self.sample_size}, Min: {self.min:f}, '
            f'Max: {self.max:f}, Sum: {self.sum:f}, Mean: {self.mean:f}, '
            f'Variance: {self.variance:f}'
        )


class RatePDU(_BasePDU):
    type: Literal[PDUType.RATE] = PDUType.RATE
    timestamp: datetime
    name: str
    window: int
    value: float

    def __str__(self) -> str:
        return f'{self.name}: {self.value:f} ({self.window} sec window)'


class CounterPDU(_BasePDU):
    type: Literal[PDUType.COUNTER] = PDUType.COUNTER
    timestamp: datetime
    name: str
    value: float

    def __str__(self) -> str:
        return f'{self.name}: {self.value:f}'


class SetKeysPDU(_BasePDU):
    type: Literal[PDUType.SET_KEYS] = PDUType.SET_KEYS
    keys: dict[str, str] = {}

    def __str__(self) -> str:
        return '\n'.join(f'{key}: {self.keys[key]}' for key in sorted(self.keys))


class StatePDU(_BasePDU):
    type: Literal[PDUType.STATE] = PDUType.STATE
    timestamp: datetime
    name: str
    stale: int
    state_code: int
    summary: str

    def __str__(self) -> str:
        return f'{self.name}: {self.state_code} {self.summary}'


class StateTransitionPDU(_BasePDU):
    type: Literal[PDUType.STATE_TRANSITION] = PDUType.STATE_TRANSITION
    timestamp: datetime
    name: str
    stale: int
    state_code: int
    summary: str

    def __str__(self) -> str:
        return f'{self.name}: {self.state_code} {self.summary}'


class EventPDU(_BasePDU):
    type: Literal[PDUType.EVENT] = PDUType.EVENT
    timestamp: datetime
    name: str
    event: str

    def __str__(self) -> str:
        return f'{self.name}: {self.event}'


PDU = (
    SamplePDU
    | RatePDU
    | CounterPDU
    | SetKeysPDU
    | StatePDU
    | StateTransitionPDU
    | EventPDU
)
