"""
Segment endpoints: an organizer's address book is a set of named
segments, each holding contacts.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fundflow.core.security import TokenData, require_auth
from fundflow.db.postgres import get_db_session
from fundflow.schemas.contacts import BulkContactsRequest, ContactCreate, SegmentCreate, SegmentPatch
from fundflow.services.contact_service import contact_service

router = APIRouter(prefix="/segments", tags=["Segments"])


# ============================================================================
# Segments
# ============================================================================


@router.post("", status_code=201)
async def create_segment(
    request: SegmentCreate,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    segment = await contact_service.create_segment(session, user.organizer_id, request)
    return {"success": True, "data": segment}


@router.get("")
async def list_segments(
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    segments = await contact_service.list_segments(session, user.organizer_id)
    return {"success": True, "data": segments, "count": len(segments)}


@router.get("/{segment_id}")
async def get_segment(
    segment_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    segment = await contact_service.get_segment_details(session, segment_id, user.organizer_id)
    return {"success": True, "data": segment}


@router.put("/{segment_id}")
async def update_segment(
    segment_id: UUID,
    request: SegmentPatch,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    segment = await contact_service.update_segment(session, segment_id, user.organizer_id, request)
    return {"success": True, "data": segment}


@router.delete("/{segment_id}")
async def delete_segment(
    segment_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete a segment together with its contacts."""
    await contact_service.delete_segment(session, segment_id, user.organizer_id)
    return {"success": True, "message": "Segment deleted"}


# ============================================================================
# Segment Contacts
# ============================================================================


@router.post("/{segment_id}/contacts", status_code=201)
async def create_contact(
    segment_id: UUID,
    request: ContactCreate,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    contact = await contact_service.create_contact(session, segment_id, user.organizer_id, request)
    return {"success": True, "data": contact}


@router.get("/{segment_id}/contacts")
async def list_contacts(
    segment_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    contacts = await contact_service.list_contacts(session, segment_id, user.organizer_id)
    return {"success": True, "data": contacts, "count": len(contacts)}


@router.post("/{segment_id}/contacts/bulk", status_code=201)
async def bulk_create_contacts(
    segment_id: UUID,
    request: BulkContactsRequest,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    """Add many contacts at once; bad rows are reported, not fatal."""
    result = await contact_service.bulk_create_contacts(session, segment_id, user.organizer_id, request.contacts)
    return {"success": True, "data": result}
