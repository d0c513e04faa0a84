"""Services package for the campaign service.

This package provides:
- Campaign slot quota management (status view, atomic reservations, tokens)
- Audited campaign admin operations
"""

from aicampaign.app.services.campaign_quota import (
    CampaignQuotaService,
    ReservationStrategy,
    SlotReconciler,
    get_campaign_quota_service,
    reset_campaign_quota_service,
)
from aicampaign.app.services.campaign_admin import (
    CampaignAdminService,
    get_campaign_admin_service,
    reset_campaign_admin_service,
)

__all__ = [
    "CampaignQuotaService",
    "ReservationStrategy",
    "SlotReconciler",
    "get_campaign_quota_service",
    "reset_campaign_quota_service",
    "CampaignAdminService",
    "get_campaign_admin_service",
    "reset_campaign_admin_service",
]
