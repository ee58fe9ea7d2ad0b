"""
Pydantic schemas for segments and contacts.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class SegmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)


class SegmentPatch(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)

    @field_validator("name")
    @classmethod
    def _name_not_null(cls, value):
        if value is None:
            raise ValueError("name cannot be null")
        return value


class ContactCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    description: Optional[str] = Field(None, max_length=1000)


class ContactPatch(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    description: Optional[str] = Field(None, max_length=1000)

    @field_validator("name", "email")
    @classmethod
    def _not_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


class BulkContactRow(BaseModel):
    """Loosely typed row; each row is validated on its own so one bad row
    does not reject the whole upload."""
    name: Optional[str] = None
    email: Optional[str] = None
    description: Optional[str] = None


class BulkContactsRequest(BaseModel):
    contacts: list[BulkContactRow] = Field(..., min_length=1, max_length=5000)
