"""
Organizer address book: segments (named contact lists) and contacts.
"""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from fundflow.db.postgres import Base


class Segment(Base):
    """Named contact list owned by an organizer."""

    __tablename__ = "segments"
    __table_args__ = (
        UniqueConstraint("organizer_id", "name", name="uq_segments_organizer_name"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    organizer_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    contacts = relationship("Contact", back_populates="segment", cascade="all, delete-orphan", passive_deletes=True)


class Contact(Base):
    """A person in a segment. Email is unique within the segment only."""

    __tablename__ = "contacts"
    __table_args__ = (
        UniqueConstraint("segment_id", "email", name="uq_contacts_segment_email"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    segment_id = Column(UUID(as_uuid=True), ForeignKey("segments.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    emails_opened = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    segment = relationship("Segment", back_populates="contacts")
