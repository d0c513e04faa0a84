"""Campaign quota engine.

Tracks the shared AI campaign slot budget across service instances. The
slot counter lives in the shared cache and is rebuilt lazily from the
durable campaign store; reservations are TTL-bound cache leases; the public
status view is a short-lived read-through cache entry.
"""

import json
from typing import Optional

from aicampaign.app.core.cache import CacheBackend, get_cache
from aicampaign.app.core.config import settings
from aicampaign.app.core.logging import get_log_context, get_logger
from aicampaign.app.db.models import AiCampaign
from aicampaign.app.db.repository import CampaignRepository
from aicampaign.app.exceptions import (
    AtomicReserveFailedError,
    CampaignNotFoundError,
    InvalidInputError,
)

from .calculations import (
    build_status_view,
    calculate_slots_remaining,
    round_half_up,
)
from .counter import QuotaCounterStore
from .models import (
    CampaignMetrics,
    CampaignStatusView,
    ReconcileResult,
    ReservationReason,
    ReservationStrategy,
    SlotReservationResult,
)
from .policies import best_effort, wraps_errors

logger = get_logger(__name__)


def require_id(value: object, name: str) -> str:
    if not value or not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{name} is required and must be a non-empty string")
    return value


def require_positive_tokens(value: object, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidInputError(f"{name} must be a positive integer")
    return value


class CampaignQuotaService:
    """Service for AI campaign slot quota management.

    Provides:
    - Read-through cached campaign status view (fail-open on cache errors)
    - Atomic slot reservation against the shared counter (fail-closed)
    - Token-denominated reservation and post-hoc token deduction against
      the durable store
    - Explicit reconciliation of the counter with live reservations

    Cache key format:
    - ai_campaign:status - Status view JSON (5 minute TTL)
    - ai:campaign:slots:available - Slot counter (no TTL)
    - ai:campaign:slot:{request_id} - Reservation lease (30 minute TTL)
    """

    CAMPAIGN_STATUS_KEY = "ai_campaign:status"
    SLOTS_KEY = "ai:campaign:slots:available"
    RESERVATION_KEY_PREFIX = "ai:campaign:slot"

    def __init__(
        self,
        cache: Optional[CacheBackend] = None,
        repository: Optional[CampaignRepository] = None,
        status_ttl_seconds: Optional[int] = None,
        reservation_ttl_seconds: Optional[int] = None,
    ) -> None:
        """Initialize the quota service.

        Args:
            cache: Shared cache backend. If None, uses the global cache instance.
            repository: Durable campaign store. If None, uses the global session maker.
            status_ttl_seconds: Status view TTL. Defaults to settings.
            reservation_ttl_seconds: Reservation lease TTL. Defaults to settings.
        """
        self._cache = cache or get_cache()
        self._repository = repository or CampaignRepository()
        self._counter = QuotaCounterStore(self._cache, self.SLOTS_KEY)
        self.status_ttl_seconds = status_ttl_seconds or settings.campaign_status_ttl_seconds
        self.reservation_ttl_seconds = (
            reservation_ttl_seconds or settings.slot_reservation_ttl_seconds
        )

    @property
    def cache(self) -> CacheBackend:
        return self._cache

    @property
    def repository(self) -> CampaignRepository:
        return self._repository

    @property
    def counter(self) -> QuotaCounterStore:
        return self._counter

    def _make_reservation_key(self, request_id: str) -> str:
        return f"{self.RESERVATION_KEY_PREFIX}:{request_id}"

    # ------------------------------------------------------------------
    # Status view
    # ------------------------------------------------------------------

    async def _read_cached_status(self) -> CampaignStatusView | None:
        data = await self._cache.get(self.CAMPAIGN_STATUS_KEY)
        if data is None:
            return None
        return CampaignStatusView.from_dict(json.loads(data))

    async def invalidate_status_cache(self) -> None:
        await self._cache.delete(self.CAMPAIGN_STATUS_KEY)
        logger.debug("Invalidated campaign status cache")

    @wraps_errors("GET_STATUS_FAILED", "Failed to get campaign status")
    async def get_campaign_status(self) -> CampaignStatusView | None:
        """Get campaign availability, served from cache when possible.

        Cache errors (including an unreadable cached value) are treated as a
        miss. The absence of an active campaign is not cached, so a newly
        created campaign shows up immediately.

        Returns:
            The status view, or None if no campaign is active
        """
        cached = await best_effort("read campaign status", self._read_cached_status())
        if cached is not None:
            logger.debug("Returning cached campaign status")
            return cached

        campaign = await self._repository.get_active_campaign()
        if campaign is None:
            logger.info("No active campaign found")
            return None

        status = build_status_view(campaign)
        await best_effort(
            "cache campaign status",
            self._cache.set(
                self.CAMPAIGN_STATUS_KEY,
                json.dumps(status.to_dict()).encode("utf-8"),
                ttl=self.status_ttl_seconds,
            ),
        )
        logger.info(
            f"Campaign status - active={status.active}, "
            f"slots={status.slots_remaining}, urgency={status.urgency_level.value}",
            extra=get_log_context(campaign_id=campaign.id),
        )
        return status

    # ------------------------------------------------------------------
    # Atomic slot reservation (cache counter)
    # ------------------------------------------------------------------

    async def _initialize_slot_counter(self) -> int | None:
        """Create the counter from the active campaign.

        Several callers may see the counter missing at once. Only the first
        write lands; later ones never overwrite a counter that others have
        already decremented.

        Returns:
            Slots computed from the store, or None if no campaign is active
        """
        campaign = await self._repository.get_active_campaign()
        if campaign is None:
            logger.info("No active campaign found, cannot initialize slot counter")
            return None

        slots_remaining = calculate_slots_remaining(campaign)
        if await self._counter.initialize(slots_remaining):
            logger.info(
                f"Initialized slot counter - campaign={campaign.name}, slots={slots_remaining}",
                extra=get_log_context(campaign_id=campaign.id),
            )
        return slots_remaining

    @wraps_errors(
        "ATOMIC_RESERVE_FAILED",
        "Failed to reserve campaign slot atomically",
        error_cls=AtomicReserveFailedError,
        passthrough=(InvalidInputError,),
    )
    async def check_and_reserve_slot_atomic(self, request_id: str) -> SlotReservationResult:
        """Claim one slot for ``request_id`` from the shared counter.

        The decrement and the lease write are one server-side script call,
        so for a counter of N at most N concurrent callers are granted, and a
        granted slot always has a lease that expires after the reservation TTL.

        Raises:
            InvalidInputError: request_id is empty
            AtomicReserveFailedError: any cache or store failure on this path
        """
        require_id(request_id, "Request ID")

        if not await self._counter.exists():
            logger.info("Slot counter not found, initializing from database")
            initialized = await self._initialize_slot_counter()
            if initialized is None or initialized <= 0:
                return SlotReservationResult(
                    reserved=False,
                    slots_remaining=0,
                    reason=ReservationReason.CAMPAIGN_INACTIVE,
                    strategy=ReservationStrategy.ATOMIC_SLOT,
                )

        granted, remaining = await self._counter.try_decrement(
            self._make_reservation_key(request_id), self.reservation_ttl_seconds
        )

        if not granted:
            logger.warning(
                "Slot reservation failed, quota depleted",
                extra=get_log_context(request_id=request_id),
            )
            return SlotReservationResult(
                reserved=False,
                slots_remaining=0,
                reason=ReservationReason.QUOTA_DEPLETED,
                strategy=ReservationStrategy.ATOMIC_SLOT,
            )

        logger.info(
            f"Reserved slot atomically, remaining={remaining}",
            extra=get_log_context(request_id=request_id),
        )
        return SlotReservationResult(
            reserved=True,
            slots_remaining=remaining,
            reason=ReservationReason.SUCCESS,
            strategy=ReservationStrategy.ATOMIC_SLOT,
        )

    @wraps_errors("RELEASE_SLOT_FAILED", "Failed to release campaign slot")
    async def release_slot(self, request_id: str) -> bool:
        """Return the slot reserved for ``request_id`` to the counter.

        Idempotent: a second call, or a call for a request that never held
        a reservation, returns False and leaves the counter untouched. A
        counter that was dropped (paused or ended campaign) is not recreated.

        Returns:
            True if a reservation was released
        """
        require_id(request_id, "Request ID")

        # Only the caller that actually deletes the lease returns the slot
        released, new_count = await self._counter.release(
            self._make_reservation_key(request_id)
        )
        if not released:
            logger.info(
                "No reservation found", extra=get_log_context(request_id=request_id)
            )
            return False

        if new_count is None:
            logger.info(
                "Released slot, counter absent and left to be rebuilt",
                extra=get_log_context(request_id=request_id),
            )
        else:
            logger.info(
                f"Released slot, new_count={new_count}",
                extra=get_log_context(request_id=request_id),
            )

        await best_effort("invalidate campaign status", self.invalidate_status_cache())
        return True

    # ------------------------------------------------------------------
    # Token budget (durable store)
    # ------------------------------------------------------------------

    @wraps_errors("RESERVE_SLOT_FAILED", "Failed to reserve campaign slot")
    async def reserve_slot(self, tokens_to_reserve: int) -> SlotReservationResult:
        """Reserve ``tokens_to_reserve`` tokens of the campaign budget.

        See ReservationStrategy.TOKEN_BUDGET for the consistency guarantee.
        """
        require_positive_tokens(tokens_to_reserve, "Tokens to reserve")

        campaign = await self._repository.get_active_campaign()
        if campaign is None:
            return SlotReservationResult(
                reserved=False,
                slots_remaining=0,
                reason=ReservationReason.CAMPAIGN_INACTIVE,
                strategy=ReservationStrategy.TOKEN_BUDGET,
            )

        remaining_tokens = campaign.total_token_budget - campaign.used_tokens
        if remaining_tokens < tokens_to_reserve:
            logger.warning(
                f"Quota depleted - remaining={remaining_tokens}, required={tokens_to_reserve}",
                extra=get_log_context(campaign_id=campaign.id),
            )
            return SlotReservationResult(
                reserved=False,
                slots_remaining=calculate_slots_remaining(campaign),
                reason=ReservationReason.QUOTA_DEPLETED,
                strategy=ReservationStrategy.TOKEN_BUDGET,
            )

        updated = await self._repository.update_campaign_tokens(campaign.id, tokens_to_reserve)
        slots_remaining = calculate_slots_remaining(updated)

        await best_effort("invalidate campaign status", self.invalidate_status_cache())

        logger.info(
            f"Reserved tokens={tokens_to_reserve}, remaining slots={slots_remaining}",
            extra=get_log_context(campaign_id=campaign.id),
        )
        return SlotReservationResult(
            reserved=True,
            slots_remaining=slots_remaining,
            reason=ReservationReason.SUCCESS,
            strategy=ReservationStrategy.TOKEN_BUDGET,
        )

    async def reserve(
        self,
        strategy: ReservationStrategy,
        request_id: Optional[str] = None,
        tokens: Optional[int] = None,
    ) -> SlotReservationResult:
        """Reserve through the given strategy.

        ATOMIC_SLOT needs ``request_id``; TOKEN_BUDGET needs ``tokens``.
        """
        if strategy is ReservationStrategy.ATOMIC_SLOT:
            return await self.check_and_reserve_slot_atomic(request_id)
        if strategy is ReservationStrategy.TOKEN_BUDGET:
            return await self.reserve_slot(tokens)
        raise InvalidInputError(f"Unknown reservation strategy: {strategy!r}")

    async def _resync_counter_if_present(self, campaign: AiCampaign) -> None:
        if await self._counter.exists():
            slots_remaining = calculate_slots_remaining(campaign)
            await self._counter.resync(slots_remaining)
            logger.info(f"Resynced slot counter to {slots_remaining} slots")

    @wraps_errors("DEDUCT_TOKENS_FAILED", "Failed to deduct tokens from campaign")
    async def deduct_tokens(self, request_id: str, tokens_used: int) -> AiCampaign:
        """Charge actual token consumption to the active campaign.

        Called once real usage is known. The counter, if present, is reset
        from the updated record rather than adjusted, which also corrects
        any drift.

        Raises:
            InvalidInputError: empty request_id or non-positive tokens_used
            CampaignNotFoundError: no active campaign
        """
        require_id(request_id, "Request ID")
        require_positive_tokens(tokens_used, "Tokens used")

        campaign = await self._repository.get_active_campaign()
        if campaign is None:
            raise CampaignNotFoundError("No active campaign found to deduct tokens from")

        updated = await self._repository.update_campaign_tokens(campaign.id, tokens_used)

        await best_effort("invalidate campaign status", self.invalidate_status_cache())
        await best_effort("resync slot counter", self._resync_counter_if_present(updated))

        logger.info(
            f"Deducted tokens={tokens_used}, remaining tokens={updated.remaining_tokens}",
            extra=get_log_context(request_id=request_id, campaign_id=updated.id),
        )
        return updated

    # ------------------------------------------------------------------
    # Admin views and maintenance
    # ------------------------------------------------------------------

    async def count_live_reservations(self) -> int:
        return await self._cache.count_keys(f"{self.RESERVATION_KEY_PREFIX}:*")

    @wraps_errors("GET_METRICS_FAILED", "Failed to get campaign metrics")
    async def get_campaign_metrics(self) -> CampaignMetrics | None:
        """Aggregate budget usage and reservation figures for the active campaign."""
        campaign = await self._repository.get_active_campaign()
        if campaign is None:
            logger.info("No active campaign found for metrics")
            return None

        percent_used = (
            round_half_up(campaign.used_tokens / campaign.total_token_budget * 100)
            if campaign.total_token_budget > 0
            else 0
        )
        reserved_slots = await best_effort(
            "count live reservations", self.count_live_reservations(), default=0
        )
        counter_value = await best_effort("read slot counter", self._counter.get())

        return CampaignMetrics(
            campaign_id=campaign.id,
            total_token_budget=campaign.total_token_budget,
            used_tokens=campaign.used_tokens,
            remaining_tokens=campaign.remaining_tokens,
            percent_used=percent_used,
            avg_tokens_per_scan=campaign.avg_tokens_per_scan,
            projected_slots_remaining=calculate_slots_remaining(campaign),
            reserved_slots=reserved_slots,
            counter_value=counter_value,
            campaign_status=str(getattr(campaign.status, "value", campaign.status)),
            starts_at=campaign.starts_at,
            ends_at=campaign.ends_at,
        )

    @wraps_errors("RECONCILE_FAILED", "Failed to reconcile slot counter")
    async def reconcile_slot_counter(self) -> ReconcileResult:
        """Recompute the counter from the store minus live reservations.

        Reservations that expired without being released stop being
        counted, so their slots return to circulation. Counting the leases
        and writing the counter is one cache step, and grants write their
        lease in the same step as their decrement, so a grant racing the
        sweep is always counted. With no active campaign the counter is
        dropped and rebuilt lazily later.
        """
        campaign = await self._repository.get_active_campaign()
        if campaign is None:
            previous = await self._counter.get()
            live_reservations = await self.count_live_reservations()
            await self._counter.invalidate()
            await best_effort("invalidate campaign status", self.invalidate_status_cache())
            logger.info("No active campaign, cleared slot counter")
            return ReconcileResult(previous, None, live_reservations)

        previous, target, live_reservations = await self._counter.reset_from_leases(
            f"{self.RESERVATION_KEY_PREFIX}:*", calculate_slots_remaining(campaign)
        )
        await best_effort("invalidate campaign status", self.invalidate_status_cache())

        result = ReconcileResult(previous, target, live_reservations, campaign.id)
        if result.drift:
            logger.warning(
                f"Slot counter drift corrected: {previous} -> {target} "
                f"({live_reservations} live reservations)",
                extra=get_log_context(campaign_id=campaign.id),
            )
        return result


_campaign_quota_service: Optional[CampaignQuotaService] = None


def get_campaign_quota_service(
    cache: Optional[CacheBackend] = None,
    repository: Optional[CampaignRepository] = None,
) -> CampaignQuotaService:
    """Get the global campaign quota service instance."""
    global _campaign_quota_service
    if _campaign_quota_service is None:
        _campaign_quota_service = CampaignQuotaService(cache=cache, repository=repository)
    return _campaign_quota_service


def reset_campaign_quota_service() -> None:
    """Reset the global campaign quota service instance."""
    global _campaign_quota_service
    _campaign_quota_service = None
