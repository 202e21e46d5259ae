"""Fixed-interval pacing between batches."""

import asyncio


class Pacer:
    """Sleeps a fixed interval each time ``wait`` is called.

    An interval of 0 keeps the call but skips the sleep.
    """

    def __init__(self, interval_seconds: float = 0.1) -> None:
        if interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        self.interval_seconds = interval_seconds

    async def wait(self) -> None:
        if self.interval_seconds > 0:
            await asyncio.sleep(self.interval_seconds)

    def __repr__(self) -> str:
        return f"Pacer(interval_seconds={self.interval_seconds})"
