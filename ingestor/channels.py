import asyncio
from collections.abc import AsyncIterator
from typing import Generic, TypeVar

T = TypeVar('T')

_CLOSED = object()


class QueueSource(Generic[T]):
    """In-memory message source backed by asyncio queues."""

    def __init__(self, maxsize: int = 0) -> None:
        self._messages: asyncio.Queue[object] = asyncio.Queue(maxsize)
        self._errors: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def put(self, message: T) -> None:
        if self._closed:
            raise RuntimeError('Source is closed')
        await self._messages.put(message)

    def put_error(self, error: Exception) -> None:
        if self._closed:
            raise RuntimeError('Source is closed')
        self._errors.put_nowait(error)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._messages.put(_CLOSED)
        self._errors.put_nowait(_CLOSED)

    async def messages(self) -> AsyncIterator[T]:
        while True:
            item = await self._messages.get()
            if item is _CLOSED:
                return
            yield item  # type: ignore[misc]

    async def errors(self) -> AsyncIterator[Exception]:
        while True:
            item = await self._errors.get()
            if item is _CLOSED:
                return
            yield item  # type: ignore[misc]
