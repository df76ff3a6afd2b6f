"""Decoder for the bolo text wire protocol.

A message arrives as an ordered list of frames. The first frame names the
PDU type; the rest follow a fixed per-type layout:

    SAMPLE      <ts> <name> <n> <min> <max> <sum> <mean> <variance>
    RATE        <ts> <name> <window> <value>
    COUNTER     <ts> <name> <value>
    EVENT       <ts> <name> <extra>
    STATE       <name> <ts> <stale> <code> <summary>
    TRANSITION  <name> <ts> <stale> <code> <summary>
    SET.KEYS    <key 1> <value 1> ... <key N> <value N>

STATE and TRANSITION carry the name before the timestamp on the wire.
Frames coming off the transport may be NUL padded.
"""

from collections.abc import Callable, Sequence
from datetime import UTC, datetime
import math
import re
from typing import ClassVar

from ingestor.errors import InvalidFieldError, MalformedPDUError, UnknownPDUTypeError
from ingestor.pdu.schemas import (
    PDU,
    CounterPDU,
    EventPDU,
    PDUType,
    RatePDU,
    SamplePDU,
    SetKeysPDU,
    StatePDU,
    StateTransitionPDU,
)


class _Frames:
    INT_PATTERN: ClassVar[re.Pattern[str]] = re.compile(r'[+-]?[0-9]+')
    INT_MIN: ClassVar[int] = -(2**63)
    INT_MAX: ClassVar[int] = 2**63 - 1

    def __init__(self, message: Sequence[str]):
        self.raw = message
        self.values = [frame.strip('\x00') for frame in message]

    @property
    def tag(self) -> str:
        return self.values[0]

    def require(self, count: int) -> None:
        if len(self.values) < count:
            raise MalformedPDUError(
                f'Malformed {self.tag} PDU: expected at least {count} fields, '
                f'got {len(self.values)}',
                self.raw,
            )

    def text(self, index: int) -> str:
        return self.values[index]

    def metric_name(self, index: int) -> str:
        value = self.values[index]
        if not value:
            raise InvalidFieldError(
                f'Empty metric name for {self.tag} PDU', self.raw, 'name'
            )
        return value

    def integer(self, index: int, field: str) -> int:
        value = self.values[index]
        if not self.INT_PATTERN.fullmatch(value):
            raise InvalidFieldError(
                f'Invalid {field} {value!r} for {self.tag} PDU', self.raw, field
            )
        parsed = int(value)
        if not self.INT_MIN <= parsed <= self.INT_MAX:
            raise InvalidFieldError(
                f'{field} {value} out of 64-bit range for {self.tag} PDU',
                self.raw,
                field,
            )
        return parsed

    def timestamp(self, index: int) -> datetime:
        seconds = self.integer(index, 'timestamp')
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError) as e:
            raise InvalidFieldError(
                f'Timestamp {seconds} out of range for {self.tag} PDU: {e}',
                self.raw,
                'timestamp',
            ) from e

    def number(self, index: int, field: str) -> float:
        value = self.values[index]
        error = InvalidFieldError(
            f'Invalid {field} {value!r} for {self.tag} PDU', self.raw, field
        )
        if not value.isascii() or value != value.strip() or '_' in value:
            raise error
        try:
            parsed = float(value)
        except ValueError:
            raise error from None
        if not math.isfinite(parsed):
            raise error
        return parsed


def _parse_sample(frames: _Frames) -> SamplePDU:
    frames.require(9)
    return SamplePDU(
        timestamp=frames.timestamp(1),
        name=frames.metric_name(2),
        sample_size=frames.integer(3, 'sample_size'),
        min=frames.number(4, 'min'),
        max=frames.number(5, 'max'),
        sum=frames.number(6, 'sum'),
        mean=frames.number(7, 'mean'),
        variance=frames.number(8, 'variance'),
    )


def _parse_rate(frames: _Frames) -> RatePDU:
    frames.require(5)
    return RatePDU(
        timestamp=frames.timestamp(1),
        name=frames.metric_name(2),
        window=frames.integer(3, 'window'),
        value=frames.number(4, 'value'),
    )


def _parse_counter(frames: _Frames) -> CounterPDU:
    frames.require(4)
    return CounterPDU(
        timestamp=frames.timestamp(1),
        name=frames.metric_name(2),
        value=frames.number(3, 'value'),
    )


def _parse_event(frames: _Frames) -> EventPDU:
    frames.require(4)
    return EventPDU(
        timestamp=frames.timestamp(1),
        name=frames.text(2),
        event=frames.text(3),
    )


def _parse_state(frames: _Frames) -> StatePDU:
    frames.require(6)
    return StatePDU(
        name=frames.text(1),
        timestamp=frames.timestamp(2),
        stale=frames.integer(3, 'stale'),
        state_code=frames.integer(4, 'state_code'),
        summary=frames.text(5),
    )


def _parse_state_transition(frames: _Frames) -> StateTransitionPDU:
    frames.require(6)
    return StateTransitionPDU(
        name=frames.text(1),
        timestamp=frames.timestamp(2),
        stale=frames.integer(3, 'stale'),
        state_code=frames.integer(4, 'state_code'),
        summary=frames.text(5),
    )


def _parse_set_keys(frames: _Frames) -> SetKeysPDU:
    pairs = frames.values[1:]
    if len(pairs) % 2 != 0:
        raise MalformedPDUError(
            'Malformed SET.KEYS PDU: not enough values for all the keys',
            frames.raw,
        )
    return SetKeysPDU(keys=dict(zip(pairs[::2], pairs[1::2], strict=True)))


_PARSERS: dict[str, Callable[[_Frames], PDU]] = {
    PDUType.SAMPLE.value: _parse_sample,
    PDUType.RATE.value: _parse_rate,
    PDUType.COUNTER.value: _parse_counter,
    PDUType.EVENT.value: _parse_event,
    PDUType.STATE.value: _parse_state,
    PDUType.STATE_TRANSITION.value: _parse_state_transition,
    PDUType.SET_KEYS.value: _parse_set_keys,
}


def parse_pdu(message: Sequence[str]) -> PDU:
    if not message:
        raise MalformedPDUError('Malformed PDU: empty message', message)
    frames = _Frames(message)
    parser = _PARSERS.get(frames.tag)
    if parser is None:
        raise UnknownPDUTypeError(f'Invalid PDU type {frames.tag!r}', message)
    return parser(frames)
