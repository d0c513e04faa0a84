"""Admin operations on AI campaigns.

Every effective change is written to the durable store together with one
audit entry, after which the cached status view and slot counter are brought
in line with the new record.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from aicampaign.app.core.logging import get_log_context, get_logger
from aicampaign.app.db.models import AiCampaign, CampaignStatus
from aicampaign.app.db.repository import CampaignRepository
from aicampaign.app.exceptions import (
    CampaignDepletedError,
    CampaignEndedError,
    CampaignNotFoundError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from aicampaign.app.services.campaign_quota import (
    CampaignQuotaService,
    calculate_slots_remaining,
    get_campaign_quota_service,
)
from aicampaign.app.services.campaign_quota.policies import best_effort, wraps_errors
from aicampaign.app.services.campaign_quota.service import require_id

logger = get_logger(__name__)

CAMPAIGN_UPDATED = "CAMPAIGN_UPDATED"

# Fields whose change alters the slot count or which campaign grants slots
COUNTER_FIELDS = frozenset({
    "total_token_budget",
    "avg_tokens_per_scan",
    "used_tokens",
    "status",
    "starts_at",
    "ends_at",
})


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _normalize(field: str, value: Any) -> Any:
    if value is None:
        return None
    if field == "status":
        return CampaignStatus(value)
    if field in ("starts_at", "ends_at"):
        return _as_utc(value)
    return value


def _json_safe(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, CampaignStatus):
        return value.value
    return value


def _terminal_error(status: CampaignStatus, message: str) -> InvalidStateError:
    if status is CampaignStatus.DEPLETED:
        return CampaignDepletedError(message)
    return CampaignEndedError(message)


def validate_patch(patch: dict[str, Any]) -> dict[str, Any]:
    """Check a field patch and return it with normalized values.

    Raises:
        InvalidInputError: unknown field or out-of-range value
    """
    if not isinstance(patch, dict):
        raise InvalidInputError("Update data must be a mapping of field names to values")

    unknown = set(patch) - CampaignRepository.WRITABLE_FIELDS
    if unknown:
        raise InvalidInputError(f"Unknown campaign fields: {', '.join(sorted(unknown))}")

    if "name" in patch and (not isinstance(patch["name"], str) or not patch["name"].strip()):
        raise InvalidInputError("Campaign name must be a non-empty string")
    if "total_token_budget" in patch:
        value = patch["total_token_budget"]
        if not _is_int(value) or value < 0:
            raise InvalidInputError("Total token budget must be a non-negative integer")
    if "used_tokens" in patch:
        value = patch["used_tokens"]
        if not _is_int(value) or value < 0:
            raise InvalidInputError("Used tokens must be a non-negative integer")
    if "avg_tokens_per_scan" in patch:
        value = patch["avg_tokens_per_scan"]
        if not _is_int(value) or value <= 0:
            raise InvalidInputError("Average tokens per scan must be a positive integer")
    if "status" in patch:
        try:
            CampaignStatus(patch["status"])
        except ValueError as e:
            raise InvalidInputError(f"Invalid campaign status: {patch['status']}") from e
    if "starts_at" in patch and not isinstance(patch["starts_at"], datetime):
        raise InvalidInputError("starts_at must be a datetime")
    if "ends_at" in patch and patch["ends_at"] is not None and not isinstance(
        patch["ends_at"], datetime
    ):
        raise InvalidInputError("ends_at must be a datetime or null")

    return {field: _normalize(field, value) for field, value in patch.items()}


class CampaignAdminService:
    """Audited campaign updates and lifecycle transitions.

    Status transitions:
    - ACTIVE <-> PAUSED freely
    - any non-ENDED status -> ENDED
    - DEPLETED and ENDED never return to ACTIVE
    """

    def __init__(self, quota_service: Optional[CampaignQuotaService] = None) -> None:
        self._quota = quota_service or get_campaign_quota_service()
        self._repository = self._quota.repository

    async def _load(self, campaign_id: str) -> AiCampaign:
        campaign = await self._repository.get_campaign_by_id(campaign_id)
        if campaign is None:
            raise NotFoundError(f"Campaign not found: {campaign_id}")
        return campaign

    async def _sync_counter(self, updated: AiCampaign, was_active: bool) -> None:
        """Bring the slot counter in line after ``updated`` changed.

        The counter belongs to whichever campaign is active. It is resynced
        when that is ``updated``, dropped when ``updated`` held it before or
        nothing is active now, and otherwise left to the campaign it
        belongs to.
        """
        active = await self._repository.get_active_campaign()
        if active is not None and active.id == updated.id:
            slots_remaining = calculate_slots_remaining(active)
            await self._quota.counter.resync(slots_remaining)
            logger.info(
                f"Resynced slot counter to {slots_remaining} slots",
                extra=get_log_context(campaign_id=updated.id),
            )
        elif was_active or active is None:
            # Rebuilt lazily from whichever campaign is active next
            await self._quota.counter.invalidate()

    @wraps_errors("UPDATE_CAMPAIGN_FAILED", "Failed to update campaign")
    async def update_campaign(
        self, campaign_id: str, patch: dict[str, Any], admin_id: str
    ) -> AiCampaign:
        """Apply ``patch`` to a campaign.

        Only fields whose value actually differs are written. An empty diff
        returns the stored record without writing, auditing or touching the
        cache.

        Args:
            campaign_id: Campaign to update
            patch: snake_case field names mapped to new values
            admin_id: Acting admin, recorded in the audit entry

        Returns:
            The updated (or unchanged) campaign

        Raises:
            InvalidInputError: empty ids or an invalid patch
            NotFoundError: unknown campaign
            CampaignDepletedError / CampaignEndedError: reactivating a
                terminal campaign
        """
        require_id(campaign_id, "Campaign ID")
        require_id(admin_id, "Admin ID")
        normalized = validate_patch(patch)

        existing = await self._load(campaign_id)

        changes: dict[str, dict[str, Any]] = {}
        for field, new_value in normalized.items():
            old_value = _normalize(field, getattr(existing, field))
            if old_value != new_value:
                changes[field] = {"from": old_value, "to": new_value}

        if not changes:
            logger.info(
                "No changes to apply", extra=get_log_context(campaign_id=campaign_id)
            )
            return existing

        current_status = CampaignStatus(existing.status)
        if (
            "status" in changes
            and changes["status"]["to"] is CampaignStatus.ACTIVE
            and current_status.is_terminal
        ):
            raise _terminal_error(
                current_status,
                f"Cannot reactivate a campaign that is {current_status.value.lower()}",
            )

        touches_counter = bool(COUNTER_FIELDS & changes.keys())
        was_active = False
        if touches_counter:
            active = await self._repository.get_active_campaign()
            was_active = active is not None and active.id == existing.id

        updated = await self._repository.write_campaign_fields_with_audit(
            campaign_id,
            {field: change["to"] for field, change in changes.items()},
            CAMPAIGN_UPDATED,
            admin_id,
            {
                "changes": {
                    field: {"from": _json_safe(c["from"]), "to": _json_safe(c["to"])}
                    for field, c in changes.items()
                },
                "updatedFields": list(changes),
            },
        )

        await best_effort("invalidate campaign status", self._quota.invalidate_status_cache())
        if touches_counter:
            await best_effort("sync slot counter", self._sync_counter(updated, was_active))

        logger.info(
            f"Campaign updated, fields={', '.join(changes)}",
            extra=get_log_context(campaign_id=campaign_id, admin_id=admin_id),
        )
        return updated

    async def pause_campaign(
        self, admin_id: str, campaign_id: Optional[str] = None
    ) -> AiCampaign:
        """Pause the given campaign, or the active one when no id is given."""
        require_id(admin_id, "Admin ID")
        if campaign_id is None:
            campaign = await self._repository.get_active_campaign()
            if campaign is None:
                raise CampaignNotFoundError("No active campaign to pause")
        else:
            campaign = await self._load(require_id(campaign_id, "Campaign ID"))

        status = CampaignStatus(campaign.status)
        if status is CampaignStatus.PAUSED:
            raise InvalidStateError("Campaign is already paused", "ALREADY_PAUSED")
        if status.is_terminal:
            raise _terminal_error(status, f"Cannot pause a {status.value.lower()} campaign")

        return await self.update_campaign(
            campaign.id, {"status": CampaignStatus.PAUSED}, admin_id
        )

    async def resume_campaign(self, admin_id: str, campaign_id: str) -> AiCampaign:
        require_id(admin_id, "Admin ID")
        campaign = await self._load(require_id(campaign_id, "Campaign ID"))

        status = CampaignStatus(campaign.status)
        if status is CampaignStatus.ACTIVE:
            raise InvalidStateError("Campaign is already active", "ALREADY_ACTIVE")
        if status.is_terminal:
            raise _terminal_error(status, f"Cannot resume a {status.value.lower()} campaign")

        return await self.update_campaign(
            campaign.id, {"status": CampaignStatus.ACTIVE}, admin_id
        )

    async def end_campaign(self, admin_id: str, campaign_id: str) -> AiCampaign:
        require_id(admin_id, "Admin ID")
        campaign = await self._load(require_id(campaign_id, "Campaign ID"))

        if CampaignStatus(campaign.status) is CampaignStatus.ENDED:
            raise InvalidStateError("Campaign has already ended", "ALREADY_ENDED")

        return await self.update_campaign(
            campaign.id, {"status": CampaignStatus.ENDED}, admin_id
        )

    async def get_campaign(
        self, campaign_id: str, include_audit_logs: bool = False
    ) -> dict[str, Any]:
        """Admin view of one campaign, newest audit entries first when requested."""
        campaign = await self._load(require_id(campaign_id, "Campaign ID"))
        data = campaign.to_dict()
        if include_audit_logs:
            logs = await self._repository.list_audit_logs(campaign_id)
            data["auditLogs"] = [entry.to_dict() for entry in logs]
        return data


_campaign_admin_service: Optional[CampaignAdminService] = None


def get_campaign_admin_service() -> CampaignAdminService:
    """Get the global campaign admin service instance."""
    global _campaign_admin_service
    if _campaign_admin_service is None:
        _campaign_admin_service = CampaignAdminService()
    return _campaign_admin_service


def reset_campaign_admin_service() -> None:
    """Reset the global campaign admin service instance."""
    global _campaign_admin_service
    _campaign_admin_service = None
