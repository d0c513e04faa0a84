"""Database package for the campaign service.

This package provides:
- Database models (AiCampaign, AiCampaignAudit)
- Asynchronous session management
- CRUD operations and the CampaignRepository store
"""

from aicampaign.app.db.base import Base
from aicampaign.app.db.models import AiCampaign, AiCampaignAudit, CampaignStatus
from aicampaign.app.db.async_session import (
    close_async_engine,
    get_async_engine,
    get_async_session_maker,
    init_async_db,
    make_session_maker,
)
from aicampaign.app.db.repository import CampaignRepository

__all__ = [
    "Base",
    "AiCampaign",
    "AiCampaignAudit",
    "CampaignStatus",
    "close_async_engine",
    "get_async_engine",
    "get_async_session_maker",
    "init_async_db",
    "make_session_maker",
    "CampaignRepository",
]
