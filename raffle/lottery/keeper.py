"""
Upkeep Keeper - polls the raffle and triggers draws when they are due
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Dict, Optional

from raffle.lottery.errors import RaffleError
from raffle.lottery.raffle import Raffle
from raffle.utils.logger import get_logger

logger = get_logger(__name__)


class UpkeepKeeper:
    """Automation loop: check_upkeep, then perform_upkeep when it says yes.

    The raffle re-checks the predicate itself, so a stale or raced trigger
    only produces a logged UpkeepNotNeeded.
    """

    def __init__(self, raffle: Raffle, poll_interval: float = 10.0) -> None:
        self.raffle = raffle
        self.poll_interval = poll_interval
        self.running = False
        self.keeper_task: Optional[asyncio.Task] = None
        self.last_check: Optional[datetime] = None
        self.last_request_id: Optional[int] = None
        self.consecutive_failures = 0

    async def start(self) -> None:
        if self.running:
            logger.warning("Upkeep keeper already running")
            return
        self.running = True
        logger.info("Starting upkeep keeper (poll every %ss)", self.poll_interval)
        self.keeper_task = asyncio.create_task(self._keeper_loop())

    async def stop(self) -> None:
        self.running = False
        if self.keeper_task:
            self.keeper_task.cancel()
            try:
                await self.keeper_task
            except asyncio.CancelledError:
                pass
            self.keeper_task = None
        logger.info("Upkeep keeper stopped")

    async def _keeper_loop(self) -> None:
        while self.running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.consecutive_failures += 1
                logger.error("Error in keeper loop: %s", e)
            await asyncio.sleep(self.poll_interval)

    async def run_once(self) -> Optional[int]:
        """Run one check; returns the request id if a draw was triggered."""
        self.last_check = datetime.utcnow()
        # the raffle lock is held for the length of an outbound request
        needed, perform_data = await asyncio.to_thread(self.raffle.check_upkeep, b"")
        if not needed:
            return None

        logger.info("Upkeep needed, requesting randomness")
        try:
            request_id = await asyncio.to_thread(self.raffle.perform_upkeep, perform_data)
        except RaffleError as e:
            logger.warning("perform_upkeep rejected: %s", e)
            return None

        self.last_request_id = request_id
        self.consecutive_failures = 0
        return request_id

    def get_status(self) -> Dict[str, Any]:
        return {
            "status": "running" if self.running else "stopped",
            "pollInterval": self.poll_interval,
            "lastCheck": self.last_check.isoformat() if self.last_check else None,
            "lastRequestId": self.last_request_id,
            "consecutiveFailures": self.consecutive_failures,
        }
