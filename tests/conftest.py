"""Shared fixtures: in-memory SQLite store, in-memory cache, wired services."""

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from aicampaign.app.core.cache import InMemoryCache, reset_cache
from aicampaign.app.db import models  # noqa: F401 - import to register models
from aicampaign.app.db.async_session import make_session_maker
from aicampaign.app.db.base import Base
from aicampaign.app.db.crud import create_campaign
from aicampaign.app.db.models import CampaignStatus, utcnow
from aicampaign.app.db.repository import CampaignRepository
from aicampaign.app.services.campaign_admin import (
    CampaignAdminService,
    reset_campaign_admin_service,
)
from aicampaign.app.services.campaign_quota import (
    CampaignQuotaService,
    reset_campaign_quota_service,
)


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset global singletons before and after each test."""
    reset_campaign_quota_service()
    reset_campaign_admin_service()
    reset_cache()
    yield
    reset_campaign_quota_service()
    reset_campaign_admin_service()
    reset_cache()


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return make_session_maker(engine)


@pytest.fixture
def repository(session_maker):
    return CampaignRepository(session_maker)


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def quota_service(cache, repository):
    return CampaignQuotaService(cache=cache, repository=repository)


@pytest.fixture
def admin_service(quota_service):
    return CampaignAdminService(quota_service)


@pytest.fixture
def make_campaign(session_maker):
    """Factory inserting a campaign that started an hour ago."""

    async def _make(
        total_token_budget: int = 100000,
        used_tokens: int = 0,
        avg_tokens_per_scan: int = 100,
        status: CampaignStatus = CampaignStatus.ACTIVE,
        name: str = "Launch campaign",
        **kwargs,
    ):
        kwargs.setdefault("starts_at", utcnow() - timedelta(hours=1))
        async with session_maker() as session:
            return await create_campaign(
                session,
                name=name,
                total_token_budget=total_token_budget,
                avg_tokens_per_scan=avg_tokens_per_scan,
                status=status,
                used_tokens=used_tokens,
                **kwargs,
            )

    return _make
