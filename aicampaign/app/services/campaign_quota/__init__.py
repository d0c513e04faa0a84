"""AI campaign slot quota management.

This package provides:
- CampaignQuotaService: status view, atomic slot reservation, token deduction
- QuotaCounterStore: the shared slot counter
- SlotReconciler: optional periodic counter reconciliation
- Pure slot and urgency calculations
"""

from .calculations import (
    build_status_view,
    calculate_percent_remaining,
    calculate_slots_remaining,
    calculate_total_slots,
    calculate_urgency_level,
    generate_status_message,
)
from .counter import QuotaCounterStore
from .models import (
    CampaignMetrics,
    CampaignStatusView,
    ReconcileResult,
    ReservationReason,
    ReservationStrategy,
    SlotReservationResult,
    UrgencyLevel,
)
from .reconciler import SlotReconciler
from .service import (
    CampaignQuotaService,
    get_campaign_quota_service,
    reset_campaign_quota_service,
)

__all__ = [
    "CampaignQuotaService",
    "get_campaign_quota_service",
    "reset_campaign_quota_service",
    "QuotaCounterStore",
    "SlotReconciler",
    "CampaignMetrics",
    "CampaignStatusView",
    "ReconcileResult",
    "ReservationReason",
    "ReservationStrategy",
    "SlotReservationResult",
    "UrgencyLevel",
    "build_status_view",
    "calculate_percent_remaining",
    "calculate_slots_remaining",
    "calculate_total_slots",
    "calculate_urgency_level",
    "generate_status_message",
]
