"""
Fundraising campaign and donation models.

Both tables are owned by the campaign and payment services; outreach
reads campaigns for ownership and share links, and reads donations for
attribution (link_token_id / contact_id are captured at checkout).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from fundflow.db.postgres import Base


class DonationStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class Campaign(Base):
    """Fundraising campaign owned by an organizer."""

    __tablename__ = "campaigns"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    organizer_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    share_link = Column(String(64), unique=True, nullable=False)
    status = Column(String(50), default="draft")  # draft, active, completed, cancelled

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    organizer = relationship("User", lazy="joined")


class Donation(Base):
    """Donation with optional outreach attribution."""

    __tablename__ = "donations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    donor_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(50), nullable=False, default=DonationStatus.PENDING.value)
    is_anonymous = Column(Boolean, default=False)
    donation_date = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Attribution
    link_token_id = Column(UUID(as_uuid=True), ForeignKey("link_tokens.id", ondelete="SET NULL"), nullable=True, index=True)
    contact_id = Column(UUID(as_uuid=True), ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True, index=True)
