"""Single-slot hand-off channel between the driver and the worker."""

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")


class HandoffQueue(Generic[T]):
    """Rendezvous channel holding at most one in-flight item.

    put() returns only once a consumer has taken the item, so a producer
    can never get more than one item ahead of its consumer. With one
    producer and one consumer per queue this enforces strict alternation
    between request and reply.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=1)

    async def put(self, item: T) -> None:
        """Hand an item over, waiting until the consumer has taken it.

        If the wait is cancelled before the item was taken, the item is
        withdrawn from the slot.
        """
        await self._queue.put(item)
        try:
            await self._queue.join()
        except asyncio.CancelledError:
            if not self._queue.empty():
                self._queue.get_nowait()
                self._queue.task_done()
            raise

    async def get(self) -> T:
        """Take the pending item, releasing its producer."""
        item = await self._queue.get()
        self._queue.task_done()
        return item

    def empty(self) -> bool:
        """True when no item is waiting to be taken."""
        return self._queue.empty()
