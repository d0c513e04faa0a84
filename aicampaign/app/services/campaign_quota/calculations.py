"""Pure slot and urgency computations derived from a campaign record."""

import math
from typing import Any

from aicampaign.app.core.logging import get_logger
from aicampaign.app.db.models import CampaignStatus
from .models import CampaignStatusView, UrgencyLevel

logger = get_logger(__name__)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (0.5 -> 1, 2.5 -> 3)."""
    return math.floor(value + 0.5)


def calculate_slots_remaining(campaign: Any) -> int:
    """Slots still grantable for a campaign.

    ``max(0, floor((budget - used) / avg_tokens_per_scan))``. A non-positive
    average yields 0 with a warning instead of a division error.

    Example:
        budget=100000, used=45000, avg=100 -> 550
    """
    if campaign.avg_tokens_per_scan <= 0:
        logger.warning("avg_tokens_per_scan is zero or negative, returning 0 slots")
        return 0
    remaining_tokens = campaign.total_token_budget - campaign.used_tokens
    return max(0, remaining_tokens // campaign.avg_tokens_per_scan)


def calculate_total_slots(campaign: Any) -> int:
    if campaign.avg_tokens_per_scan <= 0:
        return 0
    return max(0, campaign.total_token_budget // campaign.avg_tokens_per_scan)


def calculate_percent_remaining(slots_remaining: int, total_slots: int) -> int:
    if total_slots <= 0:
        return 0
    return round_half_up(slots_remaining / total_slots * 100)


def calculate_urgency_level(percent_remaining: float) -> UrgencyLevel:
    """Bucket a remaining percentage into an urgency level.

    >>> calculate_urgency_level(25)
    <UrgencyLevel.NORMAL: 'normal'>
    >>> calculate_urgency_level(0)
    <UrgencyLevel.DEPLETED: 'depleted'>
    """
    if percent_remaining <= 0:
        return UrgencyLevel.DEPLETED
    elif percent_remaining < 5:
        return UrgencyLevel.FINAL
    elif percent_remaining < 10:
        return UrgencyLevel.ALMOST_GONE
    elif percent_remaining < 20:
        return UrgencyLevel.LIMITED
    else:
        return UrgencyLevel.NORMAL


def generate_status_message(urgency_level: UrgencyLevel, slots_remaining: int) -> str:
    if urgency_level is UrgencyLevel.DEPLETED:
        return "Campaign ended"
    if urgency_level is UrgencyLevel.FINAL:
        return "Final slots available!"
    if urgency_level is UrgencyLevel.ALMOST_GONE:
        return f"Almost gone! Only {slots_remaining} left"
    if urgency_level is UrgencyLevel.LIMITED:
        return f"Limited slots! {slots_remaining} remaining"
    return f"{slots_remaining} slots remaining"


def build_status_view(campaign: Any) -> CampaignStatusView:
    """Derive the public status view from a campaign record."""
    slots_remaining = calculate_slots_remaining(campaign)
    total_slots = calculate_total_slots(campaign)
    percent_remaining = calculate_percent_remaining(slots_remaining, total_slots)
    urgency_level = calculate_urgency_level(percent_remaining)

    return CampaignStatusView(
        active=campaign.status == CampaignStatus.ACTIVE and slots_remaining > 0,
        slots_remaining=slots_remaining,
        total_slots=total_slots,
        percent_remaining=percent_remaining,
        urgency_level=urgency_level,
        message=generate_status_message(urgency_level, slots_remaining),
    )
