"""Durable campaign store used by the quota engine.

Each method runs in its own session and transaction. Database failures are
wrapped into CampaignRepositoryError with a stable code so the service layer
can re-surface them without leaking driver exceptions.
"""

from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aicampaign.app.core.logging import get_log_context, get_logger
from aicampaign.app.db import crud
from aicampaign.app.db.models import AiCampaign, AiCampaignAudit
from aicampaign.app.exceptions import CampaignRepositoryError

logger = get_logger(__name__)


class CampaignRepository:
    """Durable store for campaign records and their audit log.

    Provides the read/write contract the quota engine depends on:
    - get_active_campaign / get_campaign_by_id
    - update_campaign_tokens (single-statement atomic increment)
    - write_campaign_fields / write_campaign_fields_with_audit
    - create_audit_log_entry / list_audit_logs
    """

    WRITABLE_FIELDS = frozenset({
        "name",
        "total_token_budget",
        "used_tokens",
        "avg_tokens_per_scan",
        "status",
        "starts_at",
        "ends_at",
    })

    def __init__(
        self, session_maker: async_sessionmaker[AsyncSession] | None = None
    ) -> None:
        """Initialize the repository.

        Args:
            session_maker: Session factory. If None, uses the global one.
        """
        self._session_maker = session_maker

    def _get_session_maker(self) -> async_sessionmaker[AsyncSession]:
        if self._session_maker is None:
            from aicampaign.app.db.async_session import get_async_session_maker
            self._session_maker = get_async_session_maker()
        return self._session_maker

    async def get_active_campaign(self) -> AiCampaign | None:
        try:
            async with self._get_session_maker()() as session:
                campaign = await crud.get_active_campaign(session)
        except SQLAlchemyError as e:
            logger.error(f"Failed to get active campaign: {e}")
            raise CampaignRepositoryError(
                "Failed to get active campaign", "GET_ACTIVE_FAILED", e
            ) from e
        if campaign is not None:
            logger.debug(
                f"Found active campaign {campaign.name}",
                extra=get_log_context(campaign_id=campaign.id),
            )
        return campaign

    async def get_campaign_by_id(self, campaign_id: str) -> AiCampaign | None:
        if not campaign_id:
            return None
        try:
            async with self._get_session_maker()() as session:
                return await crud.get_campaign_by_id(session, campaign_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to get campaign {campaign_id}: {e}")
            raise CampaignRepositoryError(
                f"Failed to get campaign {campaign_id}", "GET_FAILED", e
            ) from e

    async def update_campaign_tokens(self, campaign_id: str, delta: int) -> AiCampaign:
        """Atomically add ``delta`` tokens to a campaign's usage.

        Raises:
            CampaignRepositoryError: INVALID_INPUT for a non-positive delta,
                NOT_FOUND for an unknown campaign, UPDATE_FAILED otherwise.
        """
        if not campaign_id:
            raise CampaignRepositoryError("Campaign ID is required", "INVALID_INPUT")
        if isinstance(delta, bool) or not isinstance(delta, int) or delta <= 0:
            raise CampaignRepositoryError(
                "Tokens used must be a positive integer", "INVALID_INPUT"
            )
        try:
            async with self._get_session_maker()() as session:
                campaign = await crud.increment_used_tokens(session, campaign_id, delta)
        except SQLAlchemyError as e:
            logger.error(f"Failed to update tokens for campaign {campaign_id}: {e}")
            raise CampaignRepositoryError(
                f"Failed to update campaign tokens for {campaign_id}", "UPDATE_FAILED", e
            ) from e
        if campaign is None:
            raise CampaignRepositoryError(f"Campaign not found: {campaign_id}", "NOT_FOUND")

        logger.info(
            f"Updated campaign {campaign.name} tokens to {campaign.used_tokens} (+{delta})",
            extra=get_log_context(campaign_id=campaign_id),
        )
        if campaign.used_tokens >= campaign.total_token_budget:
            logger.warning(
                f"Campaign {campaign.name} has used its whole token budget",
                extra=get_log_context(campaign_id=campaign_id),
            )
        return campaign

    async def write_campaign_fields(
        self, campaign_id: str, fields: dict[str, Any]
    ) -> AiCampaign:
        unknown = set(fields) - self.WRITABLE_FIELDS
        if unknown:
            raise CampaignRepositoryError(
                f"Unknown campaign fields: {', '.join(sorted(unknown))}", "INVALID_INPUT"
            )
        try:
            async with self._get_session_maker()() as session:
                campaign = await crud.update_campaign_fields(session, campaign_id, fields)
        except SQLAlchemyError as e:
            logger.error(f"Failed to write fields for campaign {campaign_id}: {e}")
            raise CampaignRepositoryError(
                f"Failed to update campaign {campaign_id}", "UPDATE_FAILED", e
            ) from e
        if campaign is None:
            raise CampaignRepositoryError(f"Campaign not found: {campaign_id}", "NOT_FOUND")
        return campaign

    async def write_campaign_fields_with_audit(
        self,
        campaign_id: str,
        fields: dict[str, Any],
        action: str,
        admin_id: str,
        details: dict[str, Any] | None = None,
    ) -> AiCampaign:
        """Write ``fields`` and one audit entry in a single transaction.

        Either both land or neither does.

        Raises:
            CampaignRepositoryError: INVALID_INPUT, NOT_FOUND, or UPDATE_FAILED
                when the write or the audit insert fails.
        """
        unknown = set(fields) - self.WRITABLE_FIELDS
        if unknown:
            raise CampaignRepositoryError(
                f"Unknown campaign fields: {', '.join(sorted(unknown))}", "INVALID_INPUT"
            )
        if not action or not admin_id:
            raise CampaignRepositoryError("Action and admin ID are required", "INVALID_INPUT")
        try:
            async with self._get_session_maker()() as session:
                campaign = await crud.update_campaign_fields(
                    session, campaign_id, fields, auto_commit=False
                )
                if campaign is None:
                    raise CampaignRepositoryError(
                        f"Campaign not found: {campaign_id}", "NOT_FOUND"
                    )
                await crud.create_audit_log(
                    session, campaign_id, action, admin_id, details, auto_commit=False
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to update campaign {campaign_id} with audit: {e}")
            raise CampaignRepositoryError(
                f"Failed to update campaign {campaign_id}", "UPDATE_FAILED", e
            ) from e
        logger.info(
            f"Updated campaign and created audit log (action: {action})",
            extra=get_log_context(campaign_id=campaign_id, admin_id=admin_id),
        )
        return campaign

    async def create_audit_log_entry(
        self,
        campaign_id: str,
        action: str,
        admin_id: str,
        details: dict[str, Any] | None = None,
    ) -> AiCampaignAudit:
        if not campaign_id or not action or not admin_id:
            raise CampaignRepositoryError(
                "Campaign ID, action and admin ID are required", "INVALID_INPUT"
            )
        try:
            async with self._get_session_maker()() as session:
                entry = await crud.create_audit_log(
                    session, campaign_id, action, admin_id, details
                )
        except SQLAlchemyError as e:
            logger.error(f"Failed to create audit log for campaign {campaign_id}: {e}")
            raise CampaignRepositoryError(
                "Failed to create audit log", "AUDIT_LOG_FAILED", e
            ) from e
        logger.info(
            f"Created audit log (action: {action})",
            extra=get_log_context(campaign_id=campaign_id, admin_id=admin_id),
        )
        return entry

    async def list_audit_logs(self, campaign_id: str) -> list[AiCampaignAudit]:
        try:
            async with self._get_session_maker()() as session:
                return await crud.get_audit_logs_by_campaign(session, campaign_id)
        except SQLAlchemyError as e:
            raise CampaignRepositoryError(
                f"Failed to list audit logs for {campaign_id}", "GET_FAILED", e
            ) from e
