"""Implementation of the rate gate.

Bounds the number of physical requests in flight against the upstream API
at the same time. A token is taken right before a request is sent and
returned as soon as it completes, so tokens are never held across retries.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 2  # Neynar penalizes more than a couple of parallel requests


class RateGate:
    """Counting token pool of fixed capacity."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        """Initializes the gate.

        Args:
            capacity: Maximum number of concurrent physical requests.
        """
        if capacity <= 0:
            raise ValueError("Rate gate capacity must be positive.")

        self._capacity = capacity
        self._semaphore = asyncio.Semaphore(capacity)
        self._in_flight = 0
        self._peak = 0
        logger.info(f"RateGate initialized: {capacity} concurrent requests.")

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_flight(self) -> int:
        """Number of tokens currently taken."""
        return self._in_flight

    @property
    def peak(self) -> int:
        """Highest number of tokens ever taken at once."""
        return self._peak

    def is_saturated(self) -> bool:
        """True when the next acquire would block."""
        return self._semaphore.locked()

    async def acquire(self) -> None:
        """Waits until a token is free and takes it."""
        await self._semaphore.acquire()
        self._in_flight += 1
        if self._in_flight > self._peak:
            self._peak = self._in_flight
        logger.debug(f"Rate gate token acquired ({self._in_flight}/{self._capacity}).")

    def release(self) -> None:
        """Returns a token to the pool."""
        if self._in_flight <= 0:
            raise RuntimeError("RateGate released more times than acquired.")
        self._in_flight -= 1
        self._semaphore.release()
        logger.debug(f"Rate gate token released ({self._in_flight}/{self._capacity}).")

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Holds one token for the duration of the ``async with`` block."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()
