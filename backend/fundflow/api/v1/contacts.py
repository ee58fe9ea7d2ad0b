"""
Contact endpoints addressed by contact id.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fundflow.core.security import TokenData, require_auth
from fundflow.db.postgres import get_db_session
from fundflow.schemas.contacts import ContactPatch
from fundflow.services.contact_service import contact_service

router = APIRouter(prefix="/contacts", tags=["Contacts"])


@router.get("/{contact_id}")
async def get_contact(
    contact_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    contact = await contact_service.get_contact(session, contact_id, user.organizer_id)
    return {"success": True, "data": contact}


@router.put("/{contact_id}")
async def update_contact(
    contact_id: UUID,
    request: ContactPatch,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    contact = await contact_service.update_contact(session, contact_id, user.organizer_id, request)
    return {"success": True, "data": contact}


@router.delete("/{contact_id}")
async def delete_contact(
    contact_id: UUID,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    await contact_service.delete_contact(session, contact_id, user.organizer_id)
    return {"success": True, "message": "Contact deleted"}
