"""Data models for campaign quota management."""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class UrgencyLevel(str, enum.Enum):
    """Five-way bucketing of the remaining slot percentage."""

    NORMAL = "normal"
    LIMITED = "limited"
    ALMOST_GONE = "almost_gone"
    FINAL = "final"
    DEPLETED = "depleted"


class ReservationReason(str, enum.Enum):
    SUCCESS = "success"
    QUOTA_DEPLETED = "quota_depleted"
    CAMPAIGN_INACTIVE = "campaign_inactive"


class ReservationStrategy(str, enum.Enum):
    """How a slot is claimed. The two variants give different guarantees.

    ATOMIC_SLOT:
        Claims one slot from the shared cache counter with a single
        server-side compare-and-decrement. For a counter of N, at most N
        concurrent callers succeed and the counter never goes negative.
        The claim is a lease: it expires after the reservation TTL unless
        released.

    TOKEN_BUDGET:
        Checks the durable campaign record and adds the requested tokens to
        ``used_tokens``. The increment itself is a single atomic statement,
        but the budget check happens on a previously read record, so
        concurrent callers may together overshoot the budget by at most one
        request each.
    """

    ATOMIC_SLOT = "atomic_slot"
    TOKEN_BUDGET = "token_budget"


@dataclass
class SlotReservationResult:
    """Outcome of a reservation attempt.

    Attributes:
        reserved: Whether a slot (or token amount) was granted
        slots_remaining: Slots left after the attempt
        reason: Why the attempt ended the way it did
        strategy: Which reservation path produced the result
    """
    reserved: bool
    slots_remaining: int
    reason: ReservationReason
    strategy: ReservationStrategy = field(default=ReservationStrategy.ATOMIC_SLOT)

    def to_dict(self) -> dict:
        return {
            "reserved": self.reserved,
            "slotsRemaining": self.slots_remaining,
            "reason": self.reason.value,
            "strategy": self.strategy.value,
        }


@dataclass
class CampaignStatusView:
    """Public, read-through cached summary of campaign availability.

    Serialized with camelCase keys; the same JSON lives under the status
    cache key.
    """
    active: bool
    slots_remaining: int
    total_slots: int
    percent_remaining: int
    urgency_level: UrgencyLevel
    message: str

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "active": self.active,
            "slotsRemaining": self.slots_remaining,
            "totalSlots": self.total_slots,
            "percentRemaining": self.percent_remaining,
            "urgencyLevel": self.urgency_level.value,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CampaignStatusView":
        """Create from dictionary."""
        return cls(
            active=bool(data["active"]),
            slots_remaining=int(data["slotsRemaining"]),
            total_slots=int(data["totalSlots"]),
            percent_remaining=int(data["percentRemaining"]),
            urgency_level=UrgencyLevel(data["urgencyLevel"]),
            message=str(data["message"]),
        )


@dataclass
class CampaignMetrics:
    """Admin dashboard metrics for the active campaign."""
    campaign_id: str
    total_token_budget: int
    used_tokens: int
    remaining_tokens: int
    percent_used: int
    avg_tokens_per_scan: int
    projected_slots_remaining: int
    reserved_slots: int
    counter_value: int | None
    campaign_status: str
    starts_at: datetime | None
    ends_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "campaignId": self.campaign_id,
            "totalTokenBudget": self.total_token_budget,
            "usedTokens": self.used_tokens,
            "remainingTokens": self.remaining_tokens,
            "percentUsed": self.percent_used,
            "avgTokensPerScan": self.avg_tokens_per_scan,
            "projectedSlotsRemaining": self.projected_slots_remaining,
            "reservedSlots": self.reserved_slots,
            "counterValue": self.counter_value,
            "campaignStatus": self.campaign_status,
            "startsAt": self.starts_at.isoformat() if self.starts_at else None,
            "endsAt": self.ends_at.isoformat() if self.ends_at else None,
        }


@dataclass
class ReconcileResult:
    """Outcome of a slot counter reconciliation sweep.

    Attributes:
        previous_value: Counter value before the sweep (None if absent)
        new_value: Counter value written (None when the counter was cleared)
        live_reservations: Unexpired reservation keys found
        campaign_id: Active campaign the counter was derived from
    """
    previous_value: int | None
    new_value: int | None
    live_reservations: int
    campaign_id: str | None = None

    @property
    def drift(self) -> int:
        if self.previous_value is None or self.new_value is None:
            return 0
        return self.new_value - self.previous_value

    def to_dict(self) -> dict:
        return {
            "previousValue": self.previous_value,
            "newValue": self.new_value,
            "liveReservations": self.live_reservations,
            "campaignId": self.campaign_id,
            "drift": self.drift,
        }
