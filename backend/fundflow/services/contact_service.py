"""
Organizer address book: segments and their contacts.

Contacts are owned through their segment. Emails are stored lowercase
and are unique within a segment; the same person may appear in several
segments.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fundflow.core.errors import ValidationError, integrity_error
from fundflow.models import Contact, Segment
from fundflow.schemas.contacts import (
    BulkContactRow,
    ContactCreate,
    ContactPatch,
    SegmentCreate,
    SegmentPatch,
)
from fundflow.services.ownership import get_owned_contact, get_owned_segment

logger = logging.getLogger(__name__)

BULK_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NAME_MAX_LENGTH = 100

SEGMENT_NAME_TAKEN = "Segment name already exists for this organizer"
CONTACT_EMAIL_TAKEN = "A contact with this email already exists in this segment"


class ContactService:
    """Segment and contact management."""

    # ------------------------------------------------------------------
    # Segments
    # ------------------------------------------------------------------

    async def create_segment(self, session: AsyncSession, organizer_id: UUID, data: SegmentCreate) -> Dict[str, Any]:
        segment = Segment(organizer_id=organizer_id, name=data.name.strip(), description=data.description)
        try:
            async with session.begin_nested():
                session.add(segment)
                await session.flush()
        except IntegrityError as e:
            raise integrity_error(e, SEGMENT_NAME_TAKEN) from e

        logger.info("Segment %s created for organizer %s", segment.id, organizer_id)
        return self._segment_to_dict(segment, contact_count=0)

    async def list_segments(self, session: AsyncSession, organizer_id: UUID) -> List[Dict[str, Any]]:
        """Organizer's segments with their contact counts, newest first."""
        result = await session.execute(
            select(Segment, func.count(Contact.id))
            .outerjoin(Contact, Contact.segment_id == Segment.id)
            .where(Segment.organizer_id == organizer_id)
            .group_by(Segment.id)
            .order_by(Segment.created_at.desc())
        )
        return [self._segment_to_dict(segment, contact_count=count) for segment, count in result.all()]

    async def get_segment(self, session: AsyncSession, segment_id: UUID, organizer_id: UUID) -> Segment:
        return await get_owned_segment(session, segment_id, organizer_id)

    async def get_segment_details(self, session: AsyncSession, segment_id: UUID, organizer_id: UUID) -> Dict[str, Any]:
        segment = await get_owned_segment(session, segment_id, organizer_id)
        count = await session.scalar(select(func.count(Contact.id)).where(Contact.segment_id == segment_id))
        return self._segment_to_dict(segment, contact_count=count or 0)

    async def update_segment(
        self,
        session: AsyncSession,
        segment_id: UUID,
        organizer_id: UUID,
        patch: SegmentPatch,
    ) -> Dict[str, Any]:
        await get_owned_segment(session, segment_id, organizer_id)
        values = patch.model_dump(exclude_unset=True)
        if "name" in values and values["name"] is not None:
            values["name"] = values["name"].strip()

        if values:
            values["updated_at"] = datetime.utcnow()
            try:
                async with session.begin_nested():
                    await session.execute(update(Segment).where(Segment.id == segment_id).values(**values))
            except IntegrityError as e:
                raise integrity_error(e, SEGMENT_NAME_TAKEN) from e

        return await self.get_segment_details(session, segment_id, organizer_id)

    async def delete_segment(self, session: AsyncSession, segment_id: UUID, organizer_id: UUID) -> None:
        """Delete a segment and, by cascade, its contacts."""
        await get_owned_segment(session, segment_id, organizer_id)
        await session.execute(delete(Segment).where(Segment.id == segment_id))
        logger.info("Segment %s deleted by organizer %s", segment_id, organizer_id)

    # ------------------------------------------------------------------
    # Contacts
    # ------------------------------------------------------------------

    async def create_contact(
        self,
        session: AsyncSession,
        segment_id: UUID,
        organizer_id: UUID,
        data: ContactCreate,
    ) -> Dict[str, Any]:
        await get_owned_segment(session, segment_id, organizer_id)
        contact = Contact(
            segment_id=segment_id,
            name=data.name.strip(),
            email=str(data.email).lower(),
            description=data.description,
        )
        try:
            async with session.begin_nested():
                session.add(contact)
                await session.flush()
        except IntegrityError as e:
            raise integrity_error(e, CONTACT_EMAIL_TAKEN) from e

        logger.info("Contact %s created in segment %s", contact.id, segment_id)
        return self._contact_to_dict(contact)

    async def get_segment_contacts(
        self,
        session: AsyncSession,
        segment_id: UUID,
        organizer_id: UUID,
    ) -> List[Contact]:
        await get_owned_segment(session, segment_id, organizer_id)
        result = await session.execute(
            select(Contact).where(Contact.segment_id == segment_id).order_by(Contact.created_at.asc())
        )
        return list(result.scalars().all())

    async def list_contacts(self, session: AsyncSession, segment_id: UUID, organizer_id: UUID) -> List[Dict[str, Any]]:
        contacts = await self.get_segment_contacts(session, segment_id, organizer_id)
        return [self._contact_to_dict(c) for c in contacts]

    async def get_all_contacts(
        self,
        session: AsyncSession,
        organizer_id: UUID,
        unique_emails: bool = False,
    ) -> List[Contact]:
        """Every contact across the organizer's segments.

        With ``unique_emails`` only the oldest contact per email is kept.
        """
        result = await session.execute(
            select(Contact)
            .join(Segment, Contact.segment_id == Segment.id)
            .where(Segment.organizer_id == organizer_id)
            .order_by(Contact.created_at.asc(), Contact.id.asc())
        )
        contacts = list(result.scalars().all())
        if not unique_emails:
            return contacts

        seen = set()
        unique = []
        for contact in contacts:
            key = contact.email.strip().lower()
            if key in seen:
                continue
            seen.add(key)
            unique.append(contact)
        return unique

    async def get_contact(self, session: AsyncSession, contact_id: UUID, organizer_id: UUID) -> Dict[str, Any]:
        contact = await get_owned_contact(session, contact_id, organizer_id)
        return self._contact_to_dict(contact)

    async def update_contact(
        self,
        session: AsyncSession,
        contact_id: UUID,
        organizer_id: UUID,
        patch: ContactPatch,
    ) -> Dict[str, Any]:
        await get_owned_contact(session, contact_id, organizer_id)
        values = patch.model_dump(exclude_unset=True)
        if values.get("email") is not None:
            values["email"] = str(values["email"]).lower()
        if values.get("name") is not None:
            values["name"] = values["name"].strip()

        if values:
            values["updated_at"] = datetime.utcnow()
            try:
                async with session.begin_nested():
                    await session.execute(update(Contact).where(Contact.id == contact_id).values(**values))
            except IntegrityError as e:
                raise integrity_error(e, CONTACT_EMAIL_TAKEN) from e

        result = await session.execute(
            select(Contact).where(Contact.id == contact_id).execution_options(populate_existing=True)
        )
        return self._contact_to_dict(result.scalar_one())

    async def delete_contact(self, session: AsyncSession, contact_id: UUID, organizer_id: UUID) -> None:
        await get_owned_contact(session, contact_id, organizer_id)
        await session.execute(delete(Contact).where(Contact.id == contact_id))
        logger.info("Contact %s deleted by organizer %s", contact_id, organizer_id)

    async def bulk_create_contacts(
        self,
        session: AsyncSession,
        segment_id: UUID,
        organizer_id: UUID,
        rows: List[BulkContactRow],
    ) -> Dict[str, Any]:
        """Create many contacts in one segment.

        Rows are validated one by one. Invalid rows and emails repeated
        within the payload are reported in ``errors``; emails already in the
        segment are counted in ``skipped_existing``.

        Returns
        -------
        dict
            ``created_count``, ``skipped_existing``, ``created`` and
            ``errors`` (``{index, email, reason}`` per rejected row).

        Raises
        ------
        ValidationError
            If no row is valid.
        """
        await get_owned_segment(session, segment_id, organizer_id)

        errors = []
        valid = []
        seen = set()
        for index, row in enumerate(rows):
            name = (row.name or "").strip()
            email = (row.email or "").strip()
            reason = self._bulk_row_error(name, email)
            if reason is None and email.lower() in seen:
                reason = "Duplicate email in payload"
            if reason is not None:
                errors.append({"index": index, "email": email, "reason": reason})
                continue
            seen.add(email.lower())
            valid.append({"name": name, "email": email.lower(), "description": row.description or ""})

        if not valid:
            raise ValidationError("No valid contacts to add", field="contacts")

        existing = await session.execute(select(Contact.email).where(Contact.segment_id == segment_id))
        existing_emails = {email.lower() for email in existing.scalars().all()}

        created = []
        skipped = 0
        for item in valid:
            if item["email"] in existing_emails:
                skipped += 1
                continue
            contact = Contact(segment_id=segment_id, **item)
            session.add(contact)
            created.append(contact)
            existing_emails.add(item["email"])

        if created:
            await session.flush()

        logger.info(
            "Bulk contacts for segment %s: %d created, %d existing skipped, %d rejected",
            segment_id, len(created), skipped, len(errors),
        )
        return {
            "created_count": len(created),
            "skipped_existing": skipped,
            "created": [self._contact_to_dict(c) for c in created],
            "errors": errors,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _bulk_row_error(self, name: str, email: str) -> Optional[str]:
        if not name:
            return "Name is required"
        if len(name) > NAME_MAX_LENGTH:
            return f"Name must be at most {NAME_MAX_LENGTH} characters"
        if not email:
            return "Email is required"
        if not BULK_EMAIL_PATTERN.match(email.lower()):
            return "Invalid email"
        return None

    def _segment_to_dict(self, segment: Segment, contact_count: int = 0) -> Dict[str, Any]:
        return {
            "id": str(segment.id),
            "organizer_id": str(segment.organizer_id),
            "name": segment.name,
            "description": segment.description,
            "contact_count": contact_count,
            "created_at": segment.created_at.isoformat() if segment.created_at else None,
            "updated_at": segment.updated_at.isoformat() if segment.updated_at else None,
        }

    def _contact_to_dict(self, contact: Contact) -> Dict[str, Any]:
        return {
            "id": str(contact.id),
            "segment_id": str(contact.segment_id),
            "name": contact.name,
            "email": contact.email,
            "description": contact.description,
            "emails_opened": contact.emails_opened or 0,
            "created_at": contact.created_at.isoformat() if contact.created_at else None,
            "updated_at": contact.updated_at.isoformat() if contact.updated_at else None,
        }


# Singleton instance
contact_service = ContactService()
