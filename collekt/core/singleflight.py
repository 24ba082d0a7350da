"""
Request Coalescing

At most one computation per key is in flight. Concurrent callers for the same
key await the same future and receive the same result, or the same exception.

Flow:
1. First caller for a key creates a future and runs the computation
2. Later callers for that key await the existing future
3. When the computation finishes the future resolves and the slot is released
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight:
    """In-process coalescing of concurrent identical computations."""

    def __init__(self):
        self._in_flight: dict[str, asyncio.Future] = {}
        self._coalesced = 0

    @property
    def in_flight(self) -> int:
        """Number of keys currently being computed."""
        return len(self._in_flight)

    @property
    def coalesced(self) -> int:
        """Total callers that joined an existing computation."""
        return self._coalesced

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``fn`` for ``key`` unless a computation for it is already running.

        Args:
            key: Coalescing key
            fn: Zero-argument coroutine factory

        Returns:
            The result of the single shared computation

        Raises:
            Whatever ``fn`` raised, to every waiter
        """
        existing = self._in_flight.get(key)
        if existing is not None:
            self._coalesced += 1
            logger.debug(f"Joining in-flight computation for {key}")
            # shield so one cancelled waiter does not cancel the shared future
            return await asyncio.shield(existing)

        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        self._in_flight[key] = future

        try:
            result = await fn()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # mark retrieved when nobody else is waiting
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self._in_flight.pop(key, None)
