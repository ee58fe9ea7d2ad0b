"""
Organizer account, as stored by the platform's user service.

Only the columns outreach needs are mapped here (sender name and email).
"""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID

from fundflow.db.postgres import Base


class User(Base):
    """Platform user; organizers own campaigns and segments."""

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(50), default="organizer")  # organizer, donor, admin

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def display_name(self) -> str:
        """Name used as email sender; falls back to the address."""
        return self.full_name or self.email
