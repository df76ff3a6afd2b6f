"""Interfaces between the ingestion core and its collaborators.

Workers depend only on these protocols: a source hands over messages and
transport errors, a sink accepts finished metric points.
"""

from collections.abc import AsyncIterator
from typing import Protocol, TypeVar, runtime_checkable

from ingestor.schemas import MetricPoint

T_co = TypeVar('T_co', covariant=True)


@runtime_checkable
class MessageSource(Protocol[T_co]):
    """Inbound stream of messages plus its error channel.

    ``messages()`` ends when the source is closed; that is the only way a
    worker consuming it stops.
    """

    def messages(self) -> AsyncIterator[T_co]: ...

    def errors(self) -> AsyncIterator[Exception]: ...


@runtime_checkable
class MetricSink(Protocol):
    """Destination for metric points.

    ``send`` may block for backpressure and raises ``SinkError`` on failure.
    """

    async def send(self, point: MetricPoint) -> None: ...
