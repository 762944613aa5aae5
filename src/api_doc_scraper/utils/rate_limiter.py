"""Spacing between page fetches."""

import asyncio
from time import monotonic

_CEILING_SECONDS = 10.0
_FLOOR_SECONDS = 0.1


class RateLimiter:
    """Keep request starts at least ``delay_seconds`` apart.

    A 429 doubles the gap; each success halves it again until it is back
    at the configured base.
    """

    def __init__(self, delay_seconds: float = 0.5):
        self.base_delay = delay_seconds
        self.delay_seconds = delay_seconds
        self._next_slot = 0.0
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        async with self._lock:
            pause = self._next_slot - monotonic()
            if pause > 0:
                await asyncio.sleep(pause)
            self._next_slot = monotonic() + self.delay_seconds

    def back_off(self) -> None:
        self.delay_seconds = min(max(self.delay_seconds, _FLOOR_SECONDS) * 2, _CEILING_SECONDS)

    def ease_off(self) -> None:
        self.delay_seconds = max(self.delay_seconds / 2, self.base_delay)
