import asyncio
from contextlib import asynccontextmanager

from config import settings
from exceptions import BackpressureError


class ConversionGate:
    """Controls concurrent conversion jobs with backpressure.

    - Semaphore limits active conversions to CPU count (configurable)
    - Queue depth limit bounds decoded frame buffers held in memory
    - When queue is full, returns 503 immediately with Retry-After
    """

    def __init__(self):
        self._semaphore = asyncio.Semaphore(settings.conversion_semaphore_size)
        self._queue_depth = 0
        self._max_queue = settings.max_queue_depth
        self._lock = asyncio.Lock()

    async def acquire(self):
        """Acquire a conversion slot.

        Raises BackpressureError (503) if queue is full.
        """
        async with self._lock:
            if self._queue_depth >= self._max_queue:
                raise BackpressureError(
                    "Conversion queue full. Try again shortly.",
                    retry_after=5,
                )
            self._queue_depth += 1

        await self._semaphore.acquire()

    def release(self):
        """Release a conversion slot."""
        self._semaphore.release()
        self._queue_depth -= 1

    @asynccontextmanager
    async def slot(self):
        """Hold a conversion slot for the duration of the block."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    @property
    def active_jobs(self) -> int:
        return settings.conversion_semaphore_size - self._semaphore._value

    @property
    def queued_jobs(self) -> int:
        return max(0, self._queue_depth - self.active_jobs)


# Module-level singleton
conversion_gate = ConversionGate()
