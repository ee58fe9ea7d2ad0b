"""
Outreach tracking models: link tokens, email events, outreach campaigns
and their per-recipient state.

email_events and donations hold the facts. outreach_campaign_recipients
mirrors them per recipient for fast aggregate reads and can be rebuilt
from them at any time.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from fundflow.db.postgres import Base


class LinkTokenType(str, Enum):
    """Message type a link token was created for."""
    INVITE = "invite"
    UPDATE = "update"
    THANKS = "thanks"
    SHARE = "share"


class EmailEventType(str, Enum):
    SENT = "sent"
    OPEN = "open"
    CLICK = "click"


class OutreachCampaignStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class RecipientStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class LinkToken(Base):
    """Per-recipient, per-send tracking token."""

    __tablename__ = "link_tokens"
    __table_args__ = (
        CheckConstraint(
            "contact_id IS NOT NULL OR segment_id IS NOT NULL OR type = 'share'",
            name="chk_link_tokens_target",
        ),
        CheckConstraint(
            "type IN ('invite', 'update', 'thanks', 'share')",
            name="chk_link_tokens_type",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    contact_id = Column(UUID(as_uuid=True), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=True, index=True)
    segment_id = Column(UUID(as_uuid=True), ForeignKey("segments.id", ondelete="CASCADE"), nullable=True, index=True)
    outreach_campaign_id = Column(
        UUID(as_uuid=True),
        ForeignKey("outreach_campaigns.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    type = Column(String(20), nullable=False, index=True)

    # Landing page personalisation
    prefill_amount = Column(Numeric(12, 2), nullable=True)
    personalized_message = Column(Text, nullable=True)

    # UTM attribution
    utm_source = Column(String(100), nullable=True)
    utm_medium = Column(String(100), nullable=True)
    utm_campaign = Column(String(100), nullable=True)
    utm_content = Column(String(100), nullable=True)

    # Click metrics
    clicks_count = Column(Integer, nullable=False, default=0)
    last_clicked_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    contact = relationship("Contact", lazy="raise")
    segment = relationship("Segment", lazy="raise")


class EmailEvent(Base):
    """Append-only sent/open/click fact."""

    __tablename__ = "email_events"
    __table_args__ = (
        Index("idx_email_events_link_token_type", "link_token_id", "type"),
        CheckConstraint("type IN ('sent', 'open', 'click')", name="chk_email_events_type"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    link_token_id = Column(UUID(as_uuid=True), ForeignKey("link_tokens.id", ondelete="CASCADE"), nullable=False, index=True)
    contact_id = Column(UUID(as_uuid=True), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=True, index=True)
    type = Column(String(20), nullable=False, index=True)
    user_agent = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class OutreachCampaign(Base):
    """Named batch of sends scoped to one fundraising campaign."""

    __tablename__ = "outreach_campaigns"
    __table_args__ = (
        UniqueConstraint("campaign_id", "name", name="uq_outreach_campaigns_campaign_name"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=OutreachCampaignStatus.ACTIVE.value, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    recipients = relationship(
        "OutreachCampaignRecipient",
        back_populates="outreach_campaign",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )


class OutreachCampaignRecipient(Base):
    """Denormalized send/engagement state of one contact in an outreach campaign."""

    __tablename__ = "outreach_campaign_recipients"
    __table_args__ = (
        UniqueConstraint("outreach_campaign_id", "contact_id", name="uq_outreach_recipients_campaign_contact"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    outreach_campaign_id = Column(
        UUID(as_uuid=True),
        ForeignKey("outreach_campaigns.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    contact_id = Column(UUID(as_uuid=True), ForeignKey("contacts.id", ondelete="RESTRICT"), nullable=False)
    email = Column(String(255), nullable=False)

    status = Column(String(20), nullable=False, default=RecipientStatus.PENDING.value, index=True)
    last_send_at = Column(DateTime, nullable=True)
    failure_reason = Column(Text, nullable=True)

    # Engagement mirror
    opened = Column(Boolean, nullable=False, default=False)
    clicked = Column(Boolean, nullable=False, default=False)
    donated = Column(Boolean, nullable=False, default=False)
    donated_amount = Column(Numeric(12, 2), nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    outreach_campaign = relationship("OutreachCampaign", back_populates="recipients")
