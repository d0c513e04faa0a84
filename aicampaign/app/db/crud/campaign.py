"""Campaign CRUD operations."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from aicampaign.app.db.models import AiCampaign, AiCampaignAudit, CampaignStatus, utcnow


async def get_active_campaign(
    session: AsyncSession,
    now: datetime | None = None,
) -> AiCampaign | None:
    """Get the campaign currently granting slots.

    A campaign is active when its status is ACTIVE and ``now`` falls inside
    its window. A null ``ends_at`` means the window is open-ended. When
    several campaigns qualify, the most recently started one wins.

    Args:
        session: Database session
        now: Reference time. Defaults to the current UTC time.

    Returns:
        The active campaign, or None
    """
    now = now or utcnow()
    result = await session.execute(
        select(AiCampaign)
        .where(
            AiCampaign.status == CampaignStatus.ACTIVE,
            AiCampaign.starts_at <= now,
            or_(AiCampaign.ends_at.is_(None), AiCampaign.ends_at >= now),
        )
        .order_by(AiCampaign.starts_at.desc())
        .limit(1)
    )
    return result.scalars().first()


async def get_campaign_by_id(
    session: AsyncSession,
    campaign_id: str,
) -> AiCampaign | None:
    result = await session.execute(
        select(AiCampaign).where(AiCampaign.id == campaign_id)
    )
    return result.scalars().first()


async def increment_used_tokens(
    session: AsyncSession,
    campaign_id: str,
    delta: int,
    auto_commit: bool = True,
) -> AiCampaign | None:
    """Atomically add ``delta`` to a campaign's used tokens.

    Performs a single ``UPDATE ... SET used_tokens = used_tokens + :delta
    RETURNING *`` so concurrent increments can never overwrite each other.

    Args:
        session: Database session
        campaign_id: The campaign ID
        delta: Tokens to add
        auto_commit: Whether to commit the transaction. Set to False
                     if you want to control transaction boundaries manually.

    Returns:
        The updated campaign, or None when the campaign does not exist
    """
    result = await session.execute(
        update(AiCampaign)
        .where(AiCampaign.id == campaign_id)
        .values(used_tokens=AiCampaign.used_tokens + delta, updated_at=utcnow())
        .returning(AiCampaign)
        .execution_options(populate_existing=True)
    )
    campaign = result.scalars().first()
    if auto_commit:
        await session.commit()
    return campaign


async def update_campaign_fields(
    session: AsyncSession,
    campaign_id: str,
    fields: dict[str, Any],
    auto_commit: bool = True,
) -> AiCampaign | None:
    """Write the given column values to a campaign.

    Args:
        session: Database session
        campaign_id: The campaign ID
        fields: Column name to new value
        auto_commit: Whether to commit the transaction

    Returns:
        The updated campaign, or None when the campaign does not exist
    """
    result = await session.execute(
        update(AiCampaign)
        .where(AiCampaign.id == campaign_id)
        .values(**fields, updated_at=utcnow())
        .returning(AiCampaign)
        .execution_options(populate_existing=True)
    )
    campaign = result.scalars().first()
    if auto_commit:
        await session.commit()
    return campaign


async def create_campaign(
    session: AsyncSession,
    name: str,
    total_token_budget: int,
    avg_tokens_per_scan: int,
    starts_at: datetime | None = None,
    ends_at: datetime | None = None,
    status: CampaignStatus = CampaignStatus.ACTIVE,
    used_tokens: int = 0,
    auto_commit: bool = True,
) -> AiCampaign:
    campaign = AiCampaign(
        name=name,
        total_token_budget=total_token_budget,
        used_tokens=used_tokens,
        avg_tokens_per_scan=avg_tokens_per_scan,
        status=status,
        starts_at=starts_at or utcnow(),
        ends_at=ends_at,
    )
    session.add(campaign)
    if auto_commit:
        await session.commit()
        await session.refresh(campaign)
    return campaign


async def create_audit_log(
    session: AsyncSession,
    campaign_id: str,
    action: str,
    admin_id: str,
    details: dict[str, Any] | None = None,
    auto_commit: bool = True,
) -> AiCampaignAudit:
    entry = AiCampaignAudit(
        campaign_id=campaign_id,
        action=action,
        details=details,
        admin_id=admin_id,
    )
    session.add(entry)
    if auto_commit:
        await session.commit()
        await session.refresh(entry)
    return entry


async def get_audit_logs_by_campaign(
    session: AsyncSession,
    campaign_id: str,
) -> list[AiCampaignAudit]:
    """Get audit entries for a campaign, newest first."""
    result = await session.execute(
        select(AiCampaignAudit)
        .where(AiCampaignAudit.campaign_id == campaign_id)
        .order_by(AiCampaignAudit.created_at.desc())
    )
    return list(result.scalars().all())
