"""Tests for PDU and envelope translation into metric points."""

from datetime import UTC, datetime

import pytest

from ingestor.converters import (
    CONTAINER_HEALTH,
    envelope_to_point,
    merge_tags,
    pdu_frames_to_point,
    pdu_to_point,
)
from ingestor.errors import (
    InvalidFieldError,
    MalformedPDUError,
    PointConstructionError,
)
from ingestor.firehose.schemas import (
    ContainerMetric,
    CounterEvent,
    Envelope,
    EventType,
    ValueMetric,
)
from ingestor.pdu.decoder import parse_pdu
from ingestor.pdu.schemas import CounterPDU, SetKeysPDU
from tests.helpers import EPOCH

BASE_TAGS = {
    'origin': 'rep',
    'job': 'diego_cell',
    'index': '0a1b',
    'deployment': 'cf',
    'ip_addr': '10.0.16.5',
}


def _envelope(**overrides: object) -> Envelope:
    data: dict[str, object] = {
        'origin': 'rep',
        'event_type': EventType.VALUE_METRIC,
        'timestamp': 1_500_000_000_123_456_789,
        'deployment': 'cf',
        'job': 'diego_cell',
        'index': '0a1b',
        'ip': '10.0.16.5',
    }
    data.update(overrides)
    return Envelope.model_validate(data)


class TestMergeTags:
    """Base tags are copied, overrides win."""

    def test_override_wins(self) -> None:
        assert merge_tags({'a': '1', 'b': '2'}, {'b': '3'}) == {'a': '1', 'b': '3'}

    def test_missing_base(self) -> None:
        assert merge_tags(None, {'a': '1'}) == {'a': '1'}

    def test_base_is_not_mutated(self) -> None:
        base = {'a': '1'}
        merge_tags(base, {'a': '2'})
        assert base == {'a': '1'}


class TestPDUToPoint:
    """Metric PDUs become points, the rest are skipped."""

    def test_sample(self) -> None:
        pdu = parse_pdu(['SAMPLE', '1700000000', 'cpu', '4', '1.5', '9', '20', '5', '0.25'])
        point = pdu_to_point(pdu)
        assert point is not None
        assert point.name == 'cpu'
        assert point.tags == {}
        assert point.fields == {
            'Min': 1.5,
            'Max': 9.0,
            'Sum': 20.0,
            'Samples': 4,
            'Mean': 5.0,
            'Variance': 0.25,
        }
        assert point.timestamp == datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)

    def test_rate(self) -> None:
        point = pdu_to_point(parse_pdu(['RATE', '0', 'req', '60', '2.5']))
        assert point is not None
        assert point.name == 'req'
        assert point.fields == {'Window': 60, 'Value': 2.5}
        assert point.timestamp_nano == 0

    def test_counter_end_to_end(self) -> None:
        pdu = parse_pdu(['COUNTER', '0', 'testCounter', '1'])
        assert pdu == CounterPDU(timestamp=EPOCH, name='testCounter', value=1.0)
        point = pdu_to_point(pdu)
        assert point is not None
        assert point.name == 'testCounter'
        assert point.fields == {'Value': 1.0}
        assert point.tags == {}
        assert point.timestamp == EPOCH

    @pytest.mark.parametrize(
        'message',
        [
            ['SET.KEYS', 'k', 'v'],
            ['SET.KEYS'],
            ['STATE', 's', '0', '1', '2', 'ok'],
            ['TRANSITION', 's', '0', '1', '2', 'ok'],
            ['EVENT', '0', 'e', 'happened'],
        ],
    )
    def test_non_metric_pdus_yield_none(self, message: list[str]) -> None:
        assert pdu_to_point(parse_pdu(message)) is None

    def test_set_keys_model_yields_none(self) -> None:
        assert pdu_to_point(SetKeysPDU(keys={'a': 'b'})) is None

    def test_frames_to_point(self) -> None:
        point = pdu_frames_to_point(['COUNTER\x00', '0\x00', 'c\x00', '3\x00'])
        assert point is not None
        assert point.fields == {'Value': 3.0}

    def test_frames_to_point_propagates_decode_errors(self) -> None:
        with pytest.raises(MalformedPDUError):
            pdu_frames_to_point(['RATE', '0', 'n', '60'])

    def test_nameless_counter_is_rejected_before_translation(self) -> None:
        with pytest.raises(InvalidFieldError) as exc_info:
            pdu_frames_to_point(['COUNTER', '0', '\x00', '1'])
        assert exc_info.value.field == 'name'


class TestEnvelopeToPoint:
    """Firehose envelopes become tagged points."""

    def test_container_metric(self, envelope_payload: dict[str, object]) -> None:
        point = envelope_to_point(Envelope.model_validate(envelope_payload))
        assert point is not None
        assert point.name == CONTAINER_HEALTH == 'ContainerHealth'
        assert point.tags == {**BASE_TAGS, 'app_guid': 'abc', 'app_instance': '2'}
        assert point.fields == {
            'CPU': 12.5,
            'Memory': 1024,
            'MemoryQuota': 4096,
            'Disk': 2048,
            'DiskQuota': 8192,
        }
        assert point.timestamp_nano == 1_500_000_000_123_456_789

    def test_counter_event(self) -> None:
        envelope = _envelope(
            event_type=EventType.COUNTER_EVENT,
            counter_event=CounterEvent(name='requests', delta=3, total=120),
        )
        point = envelope_to_point(envelope)
        assert point is not None
        assert point.name == 'requests'
        assert point.fields == {'Delta': 3, 'Total': 120}
        assert point.tags == BASE_TAGS

    def test_value_metric(self) -> None:
        envelope = _envelope(value_metric=ValueMetric(name='latency', value=0.42, unit='s'))
        point = envelope_to_point(envelope)
        assert point is not None
        assert point.name == 'latency'
        assert point.fields == {'Value': 0.42}

    def test_nanosecond_precision_is_preserved(self) -> None:
        envelope = _envelope(
            timestamp=1_500_000_000_000_000_001,
            value_metric=ValueMetric(name='m', value=1.0),
        )
        point = envelope_to_point(envelope)
        assert point is not None
        assert point.timestamp_nano == 1_500_000_000_000_000_001

    def test_envelope_tags_are_merged_and_overridden(self) -> None:
        envelope = _envelope(
            tags={'origin': 'spoofed', 'zone': 'z1'},
            value_metric=ValueMetric(name='m', value=1.0),
        )
        point = envelope_to_point(envelope)
        assert point is not None
        assert point.tags == {**BASE_TAGS, 'zone': 'z1'}

    def test_container_tags_override_envelope_tags(self) -> None:
        envelope = _envelope(
            event_type=EventType.CONTAINER_METRIC,
            tags={'app_guid': 'old'},
            container_metric=ContainerMetric(application_id='new', instance_index=0),
        )
        point = envelope_to_point(envelope)
        assert point is not None
        assert point.tags['app_guid'] == 'new'
        assert point.tags['app_instance'] == '0'

    @pytest.mark.parametrize(
        'event_type',
        [EventType.LOG_MESSAGE, EventType.HTTP_START_STOP, EventType.ERROR],
    )
    def test_other_event_types_yield_none(self, event_type: EventType) -> None:
        assert envelope_to_point(_envelope(event_type=event_type)) is None

    def test_missing_counter_payload_cannot_build_point(self) -> None:
        envelope = _envelope(event_type=EventType.COUNTER_EVENT)
        with pytest.raises(PointConstructionError) as exc_info:
            envelope_to_point(envelope)
        assert exc_info.value.snippet == 'CounterEvent'
