from collections.abc import Mapping, Sequence
import logging
from typing import assert_never

from pydantic import ValidationError

from ingestor.errors import PointConstructionError
from ingestor.firehose.schemas import Envelope, EventType
from ingestor.pdu.decoder import parse_pdu
from ingestor.pdu.schemas import (
    PDU,
    CounterPDU,
    EventPDU,
    RatePDU,
    SamplePDU,
    SetKeysPDU,
    StatePDU,
    StateTransitionPDU,
)
from ingestor.schemas import FieldValue, MetricPoint, epoch_nanos

logger = logging.getLogger(__name__)

CONTAINER_HEALTH = 'ContainerHealth'


def merge_tags(
    base: Mapping[str, str] | None, overrides: Mapping[str, str]
) -> dict[str, str]:
    merged = dict(base or {})
    merged.update(overrides)
    return merged


def _build_point(
    name: str,
    tags: dict[str, str],
    fields: dict[str, FieldValue],
    timestamp_nano: int,
    snippet: str,
) -> MetricPoint:
    try:
        return MetricPoint(
            name=name, tags=tags, fields=fields, timestamp_nano=timestamp_nano
        )
    except ValidationError as e:
        raise PointConstructionError(
            f'Unable to build point {name!r}: {e.errors()[0]["msg"]}', snippet
        ) from e


def _envelope_tags(envelope: Envelope) -> dict[str, str]:
    return merge_tags(
        envelope.tags,
        {
            'origin': envelope.origin,
            'job': envelope.job,
            'index': envelope.index,
            'deployment': envelope.deployment,
            'ip_addr': envelope.ip,
        },
    )


def envelope_to_point(envelope: Envelope) -> MetricPoint | None:
    tags = _envelope_tags(envelope)
    ts = envelope.timestamp
    snippet = envelope.event_type.value

    if envelope.event_type == EventType.COUNTER_EVENT:
        evt = envelope.get_counter_event()
        fields: dict[str, FieldValue] = {'Delta': evt.delta, 'Total': evt.total}
        return _build_point(evt.name, tags, fields, ts, snippet)

    if envelope.event_type == EventType.CONTAINER_METRIC:
        metric = envelope.get_container_metric()
        tags = merge_tags(
            tags,
            {
                'app_guid': metric.application_id,
                'app_instance': str(metric.instance_index),
            },
        )
        fields = {
            'CPU': metric.cpu_percentage,
            'Memory': metric.memory_bytes,
            'MemoryQuota': metric.memory_bytes_quota,
            'Disk': metric.disk_bytes,
            'DiskQuota': metric.disk_bytes_quota,
        }
        return _build_point(CONTAINER_HEALTH, tags, fields, ts, snippet)

    if envelope.event_type == EventType.VALUE_METRIC:
        value_metric = envelope.get_value_metric()
        fields = {'Value': value_metric.value}
        return _build_point(value_metric.name, tags, fields, ts, snippet)

    return None


def _pdu_point(
    pdu: SamplePDU | RatePDU | CounterPDU, fields: dict[str, FieldValue]
) -> MetricPoint:
    return _build_point(
        pdu.name, {}, fields, epoch_nanos(pdu.timestamp), pdu.type.value
    )


def pdu_to_point(pdu: PDU) -> MetricPoint | None:
    match pdu:
        case SamplePDU():
            return _pdu_point(
                pdu,
                {
                    'Min': pdu.min,
                    'Max': pdu.max,
                    'Sum': pdu.sum,
                    'Samples': pdu.sample_size,
                    'Mean': pdu.mean,
                    'Variance': pdu.variance,
                },
            )
        case RatePDU():
            return _pdu_point(pdu, {'Window': pdu.window, 'Value': pdu.value})
        case CounterPDU():
            return _pdu_point(pdu, {'Value': pdu.value})
        case SetKeysPDU() | StatePDU() | StateTransitionPDU() | EventPDU():
            logger.debug(
                'Ignoring PDU - not a metric', extra={'pdu_type': pdu.type.value}
            )
            return None
        case _:
            assert_never(pdu)


def pdu_frames_to_point(message: Sequence[str]) -> MetricPoint | None:
    return pdu_to_point(parse_pdu(message))
