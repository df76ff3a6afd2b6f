from datetime import UTC, datetime

from ingestor.errors import SinkError
from ingestor.schemas import MetricPoint

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class RecordingSink:
    """Sink that stores every point it receives."""

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.points: list[MetricPoint] = []
        self.fail_for = fail_for or set()

    async def send(self, point: MetricPoint) -> None:
        if point.name in self.fail_for:
            raise SinkError(point.name, 'store unavailable')
        self.points.append(point)
