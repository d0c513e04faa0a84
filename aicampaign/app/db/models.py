import enum
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from aicampaign.app.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class CampaignStatus(str, enum.Enum):
    """Lifecycle status of an AI campaign.

    Only ACTIVE campaigns grant slots. DEPLETED and ENDED are terminal:
    neither can transition back to ACTIVE.
    """

    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    DEPLETED = "DEPLETED"
    ENDED = "ENDED"

    @property
    def is_terminal(self) -> bool:
        return self in (CampaignStatus.DEPLETED, CampaignStatus.ENDED)


class AiCampaign(Base):
    __tablename__ = "ai_campaigns"
    __table_args__ = (
        Index("idx_ai_campaigns_status_starts", "status", "starts_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255))
    total_token_budget: Mapped[int] = mapped_column(Integer, default=0)
    used_tokens: Mapped[int] = mapped_column(Integer, default=0)
    # Divisor turning a token budget into a slot count; must stay positive
    avg_tokens_per_scan: Mapped[int] = mapped_column(Integer, default=100)
    status: Mapped[CampaignStatus] = mapped_column(
        Enum(CampaignStatus, native_enum=False, length=20),
        default=CampaignStatus.ACTIVE,
    )
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return (
            f"<AiCampaign(id={self.id}, name={self.name!r}, status={self.status}, "
            f"used={self.used_tokens}/{self.total_token_budget})>"
        )

    @property
    def remaining_tokens(self) -> int:
        return self.total_token_budget - self.used_tokens

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary (camelCase keys)."""
        return {
            "id": self.id,
            "name": self.name,
            "totalTokenBudget": self.total_token_budget,
            "usedTokens": self.used_tokens,
            "avgTokensPerScan": self.avg_tokens_per_scan,
            "status": CampaignStatus(self.status).value,
            "startsAt": self.starts_at.isoformat() if self.starts_at else None,
            "endsAt": self.ends_at.isoformat() if self.ends_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class AiCampaignAudit(Base):
    __tablename__ = "ai_campaign_audits"
    __table_args__ = (
        Index("idx_ai_campaign_audits_campaign_created", "campaign_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    campaign_id: Mapped[str] = mapped_column(ForeignKey("ai_campaigns.id"))
    action: Mapped[str] = mapped_column(String(100))
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    admin_id: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "campaignId": self.campaign_id,
            "action": self.action,
            "details": self.details,
            "adminId": self.admin_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
