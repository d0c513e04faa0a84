"""Tests for the periodic slot reconciler."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from aicampaign.app.services.campaign_quota import ReconcileResult, SlotReconciler


def mock_service():
    service = MagicMock()
    service.reconcile_slot_counter = AsyncMock(return_value=ReconcileResult(5, 5, 0, "campaign-1"))
    return service


class TestSlotReconciler:

    @pytest.mark.asyncio
    async def test_runs_periodically(self):
        service = mock_service()
        reconciler = SlotReconciler(service, interval_seconds=0.01, enabled=True)

        await reconciler.start()
        assert reconciler.running
        await asyncio.sleep(0.1)
        await reconciler.stop()

        assert not reconciler.running
        assert service.reconcile_slot_counter.await_count >= 2

    @pytest.mark.asyncio
    async def test_disabled_does_not_start(self):
        service = mock_service()
        reconciler = SlotReconciler(service, interval_seconds=0.01, enabled=False)

        await reconciler.start()
        await asyncio.sleep(0.05)

        assert not reconciler.running
        service.reconcile_slot_counter.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_the_loop(self):
        service = mock_service()
        service.reconcile_slot_counter.side_effect = RuntimeError("redis down")
        reconciler = SlotReconciler(service, interval_seconds=0.01, enabled=True)

        await reconciler.start()
        await asyncio.sleep(0.1)
        await reconciler.stop()

        assert service.reconcile_slot_counter.await_count >= 2

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        reconciler = SlotReconciler(mock_service(), interval_seconds=60, enabled=True)

        await reconciler.start()
        task = reconciler._task
        await reconciler.start()

        assert reconciler._task is task
        await reconciler.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        reconciler = SlotReconciler(mock_service(), interval_seconds=60, enabled=True)
        await reconciler.stop()
        assert not reconciler.running
