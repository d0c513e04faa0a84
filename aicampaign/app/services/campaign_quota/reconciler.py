"""Periodic slot counter reconciliation.

Expired reservations are never released, so their slots stay out of the
counter until something recomputes it. When enabled, this task calls
CampaignQuotaService.reconcile_slot_counter on a fixed interval.
"""

import asyncio
from typing import Optional

from aicampaign.app.core.config import settings
from aicampaign.app.core.logging import get_logger

from .service import CampaignQuotaService

logger = get_logger(__name__)


class SlotReconciler:
    """Background task that keeps the slot counter in line with the store."""

    def __init__(
        self,
        service: CampaignQuotaService,
        interval_seconds: Optional[float] = None,
        enabled: Optional[bool] = None,
    ) -> None:
        self._service = service
        self._interval = interval_seconds or settings.campaign_reconcile_interval_seconds
        self._enabled = settings.campaign_reconcile_enabled if enabled is None else enabled
        self._task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        """Start the reconcile loop unless disabled or already running."""
        if not self._enabled or self._task is not None:
            return
        self._shutdown_event.clear()
        self._task = asyncio.create_task(self._reconcile_loop())
        logger.info(f"Started slot reconciler (interval={self._interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._shutdown_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Stopped slot reconciler")

    async def _reconcile_loop(self) -> None:
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self._interval,
                )
            except asyncio.TimeoutError:
                pass
            if self._shutdown_event.is_set():
                break
            try:
                await self._service.reconcile_slot_counter()
            except Exception as e:
                logger.error(f"Error during slot reconciliation: {e}")
