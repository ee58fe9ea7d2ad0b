"""
Pydantic schemas for outreach operations.

Recipient targets are a tagged union: a request addresses one contact, one
segment, or all of the organizer's contacts, selected by ``kind``.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from fundflow.models.outreach import LinkTokenType, OutreachCampaignStatus


class ContactTarget(BaseModel):
    """A single contact."""
    kind: Literal["contact"] = "contact"
    contact_id: UUID


class SegmentTarget(BaseModel):
    """Every contact in one segment."""
    kind: Literal["segment"] = "segment"
    segment_id: UUID


class AllContactsTarget(BaseModel):
    """Every contact across the organizer's segments."""
    kind: Literal["all"] = "all"


RecipientTarget = Annotated[
    Union[ContactTarget, SegmentTarget, AllContactsTarget],
    Field(discriminator="kind"),
]


class UTMParams(BaseModel):
    """UTM parameters carried on a link token."""
    utm_source: Optional[str] = Field(None, max_length=100)
    utm_medium: Optional[str] = Field(None, max_length=100)
    utm_campaign: Optional[str] = Field(None, max_length=100)
    utm_content: Optional[str] = Field(None, max_length=100)

    def as_query(self) -> dict[str, str]:
        """Non-empty values keyed by their query-string names."""
        return {k: v for k, v in self.model_dump().items() if v}


class LinkTokenCreate(BaseModel):
    """Request to create a tracking link token."""
    campaign_id: UUID
    type: LinkTokenType
    target: Optional[RecipientTarget] = None
    outreach_campaign_id: Optional[UUID] = None
    prefill_amount: Optional[Decimal] = Field(None, gt=0)
    personalized_message: Optional[str] = Field(None, max_length=1000)
    utm: UTMParams = Field(default_factory=UTMParams)


class SendEmailRequest(BaseModel):
    """Direct outreach send to a contact, a segment or all contacts."""
    campaign_id: UUID
    type: LinkTokenType
    target: RecipientTarget
    personalized_message: Optional[str] = Field(None, max_length=1000)
    prefill_amount: Optional[Decimal] = Field(None, gt=0)
    utm: Optional[UTMParams] = None


class LinkTokenFilters(BaseModel):
    """Filters for listing a campaign's link tokens."""
    type: Optional[LinkTokenType] = None
    contact_id: Optional[UUID] = None
    segment_id: Optional[UUID] = None
    has_clicks: Optional[bool] = None


# ============================================================================
# Outreach campaigns
# ============================================================================


class OutreachCampaignCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=120)
    description: Optional[str] = Field(None, max_length=1000)
    status: OutreachCampaignStatus = OutreachCampaignStatus.ACTIVE


class OutreachCampaignPatch(BaseModel):
    """Partial update; only fields present in the request are written."""
    name: Optional[str] = Field(None, min_length=2, max_length=120)
    description: Optional[str] = Field(None, max_length=1000)
    status: Optional[OutreachCampaignStatus] = None

    @field_validator("name", "status")
    @classmethod
    def _not_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


class RecipientInput(BaseModel):
    contact_id: UUID
    email: Optional[str] = None


class SendInvitationsRequest(BaseModel):
    """Invitations go to the listed recipients, or to every pending/failed
    recipient row of the outreach campaign when the list is omitted."""
    recipients: Optional[list[RecipientInput]] = Field(None, min_length=1)
    personalized_message: Optional[str] = Field(None, max_length=1000)
    prefill_amount: Optional[Decimal] = Field(None, gt=0)
    utm: Optional[UTMParams] = None


class AddRecipientsRequest(BaseModel):
    """Add recipients from segments, or from all contacts when ``all`` is set."""
    segment_ids: list[UUID] = Field(default_factory=list)
    all: bool = False


class UpdateAudience(str, Enum):
    """Engagement filter for campaign updates."""
    ALL = "all"
    OPENED_NOT_CLICKED = "opened_not_clicked"
    CLICKED_NOT_DONATED = "clicked_not_donated"
    DONATED = "donated"


class SendUpdatesRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=1000)
    target_audience: UpdateAudience = UpdateAudience.ALL
    utm: Optional[UTMParams] = None


class SendThanksRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=1000)
    utm: Optional[UTMParams] = None


# ============================================================================
# Social sharing
# ============================================================================


class SocialPlatform(str, Enum):
    WHATSAPP = "whatsapp"
    FACEBOOK = "facebook"
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    TELEGRAM = "telegram"


class SocialLinksRequest(BaseModel):
    platform: Optional[SocialPlatform] = None  # None means every platform
    custom_message: Optional[str] = Field(None, max_length=500)
    utm_source: str = Field("social_media", max_length=100)
    utm_medium: str = Field("social", max_length=100)


class PublicShareRequest(BaseModel):
    campaign_id: UUID
    platform: SocialPlatform
