"""
Listening-time accrual: while the controller is playing, report elapsed
seconds to the server once per interval.
"""

import asyncio
import logging
import time
from typing import Optional

from shared.constants import LISTENING_TIME_UPDATE_INTERVAL
from shared.models import format_listening_time

logger = logging.getLogger(__name__)


class ListeningTimeTracker:
    """
    Periodic flusher of listening time.

    `total` mirrors the server's counter after each successful flush. A failed
    flush is logged and its increment is lost.
    """

    def __init__(self, controller, client, interval: float = LISTENING_TIME_UPDATE_INTERVAL,
                 clock=time.monotonic):
        self.controller = controller
        self.client = client
        self.interval = interval
        self.total = 0
        self._clock = clock
        self._last_tick: Optional[float] = None
        self._carry = 0.0
        self._task: Optional[asyncio.Task] = None

    @property
    def formatted(self) -> str:
        return format_listening_time(self.total)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._last_tick = self._clock()
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.tick()

    async def tick(self) -> int:
        """
        Account for the time since the previous tick.

        Returns:
            Seconds sent to the server (0 when paused or nothing accrued)
        """
        now = self._clock()
        elapsed = now - self._last_tick if self._last_tick is not None else 0.0
        self._last_tick = now

        if not self.controller.state.is_playing:
            return 0
        # Whole seconds only; the fraction rolls into the next tick
        self._carry += elapsed
        seconds = int(self._carry)
        if seconds <= 0:
            return 0
        self._carry -= seconds

        try:
            data = await asyncio.to_thread(self.client.add_listening_time, seconds)
        except Exception as e:
            logger.warning(f"Dropping {seconds}s of listening time: {e}")
            return 0
        self.total = data.get('listeningTime', self.total + seconds)
        return seconds

    async def refresh(self) -> int:
        """Load the authoritative total from the server."""
        data = await asyncio.to_thread(self.client.get_listening_time)
        self.total = data.get('listeningTime', 0)
        return self.total
