"""CRUD operations for campaign records and audit entries."""

from aicampaign.app.db.crud.campaign import (
    create_audit_log,
    create_campaign,
    get_active_campaign,
    get_audit_logs_by_campaign,
    get_campaign_by_id,
    increment_used_tokens,
    update_campaign_fields,
)

__all__ = [
    "create_audit_log",
    "create_campaign",
    "get_active_campaign",
    "get_audit_logs_by_campaign",
    "get_campaign_by_id",
    "increment_used_tokens",
    "update_campaign_fields",
]
