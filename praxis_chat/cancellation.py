"""
Cooperative cancellation shared by the answer streamer and the client session
"""
import asyncio
from typing import Awaitable, Optional, TypeVar

from praxis_chat.errors import CancellationSignal

T = TypeVar("T")


class CancellationToken:
    """
    Explicit cancellation handle passed into streaming calls.

    Requesting cancellation never stops work synchronously. Code checks the
    token at its suspension points, or races a pending await against it with
    ``race`` so that a blocked read unblocks with ``CancellationSignal``.
    """

    def __init__(self):
        self._event: Optional[asyncio.Event] = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CancellationSignal("Turn cancelled")

    async def wait(self) -> None:
        # Event is created lazily so the token can be built outside a loop
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first"""
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise CancellationSignal("Turn cancelled")

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        if task in done:
            waiter.cancel()
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise CancellationSignal("Turn cancelled")
