"""API endpoints package for the campaign service."""

from aicampaign.app.api.campaign import router as campaign_router

__all__ = [
    "campaign_router",
]
