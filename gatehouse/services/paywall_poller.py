from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..application.services.paywall_service import PaywallService

logger = logging.getLogger(__name__)


class PaywallPoller:
    """Background task that checks open paywall windows on an interval."""

    def __init__(self, paywall: PaywallService, *, interval_seconds: int = 60) -> None:
        self._paywall = paywall
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task[None]] = None
        self._shutdown = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._task is not None:
            return
        if not self._paywall.enabled or self._interval <= 0:
            logger.info("Paywall poller disabled.")
            return
        logger.info("Starting paywall poller every %s seconds.", self._interval)
        self._shutdown.clear()
        self._task = asyncio.get_running_loop().create_task(self._run(), name="paywall-poller")

    async def stop(self) -> None:
        if self._task is None:
            return
        logger.info("Stopping paywall poller.")
        self._shutdown.set()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    async def poll_once(self) -> int:
        # Store and lookup calls block; keep them off the event loop.
        return await asyncio.to_thread(self._paywall.poll_once)

    async def _run(self) -> None:
        while not self._shutdown.is_set():
            try:
                paid = await self.poll_once()
                if paid:
                    logger.info("Paywall poll confirmed %s payment(s).", paid)
            except Exception:
                logger.exception("Paywall poll failed.")
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue
