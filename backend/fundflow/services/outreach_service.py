"""
Outreach sending.

Every flow resolves its audience to individual contacts and then, one
recipient at a time:

1. creates a link token for the contact,
2. renders the email with the token's tracking pixel and click URL,
3. sends it through the injected EmailProvider,
4. records a ``sent`` event.

A failure at any step is recorded as a failed result for that recipient
and the token created for it is deleted again; the batch carries on.
Outreach-campaign flows additionally keep the recipient rows' send status
current and publish a stats refresh when they finish.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fundflow.core.errors import AppError, EmailDeliveryError, NotFoundError, ValidationError
from fundflow.models import (
    Campaign,
    Contact,
    EmailEventType,
    LinkTokenType,
    OutreachCampaign,
    RecipientStatus,
    Segment,
    User,
)
from fundflow.schemas.outreach import (
    AllContactsTarget,
    ContactTarget,
    LinkTokenCreate,
    SegmentTarget,
    SendEmailRequest,
    SendInvitationsRequest,
    SendThanksRequest,
    SendUpdatesRequest,
    UpdateAudience,
    UTMParams,
)
from fundflow.services import email_templates
from fundflow.services.contact_service import contact_service
from fundflow.services.email_event_service import email_event_service
from fundflow.services.email_provider import EmailMessage, EmailProvider, SendResult, get_email_provider
from fundflow.services.link_token_service import link_token_service
from fundflow.services.ownership import (
    get_organizer,
    get_owned_campaign,
    get_owned_contact,
    get_owned_outreach_campaign,
)
from fundflow.services.recipient_service import recipient_service
from fundflow.services.stats_refresh import StatsRefreshQueue, stats_refresh_queue
from fundflow.services.tracking_links import campaign_public_url, generate_tracking_link

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r".+@.+\..+")

# Renders the HTML body from (tracked_link, link_token_id)
Renderer = Callable[[str, str], str]


@dataclass
class Recipient:
    contact_id: UUID
    email: str
    name: Optional[str] = None
    donated_amount: Optional[Decimal] = None


class OutreachService:
    """Link-token creation and email sending for organizers."""

    def __init__(
        self,
        email_provider: Optional[EmailProvider] = None,
        refresh_queue: Optional[StatsRefreshQueue] = None,
    ):
        self._email_provider = email_provider
        self.refresh_queue = refresh_queue or stats_refresh_queue

    @property
    def email_provider(self) -> EmailProvider:
        if self._email_provider is None:
            self._email_provider = get_email_provider()
        return self._email_provider

    # ------------------------------------------------------------------
    # Link tokens
    # ------------------------------------------------------------------

    async def create_link_token(
        self,
        session: AsyncSession,
        data: LinkTokenCreate,
        organizer_id: UUID,
    ) -> Dict[str, Any]:
        """Create a token and return it with its click-tracking URL."""
        if data.target is None and data.type != LinkTokenType.SHARE:
            raise ValidationError("Either a contact or a segment target must be provided", field="target")

        campaign = await get_owned_campaign(session, data.campaign_id, organizer_id)
        token = await link_token_service.create_link_token(session, data, organizer_id)
        token["tracking_url"] = generate_tracking_link(
            campaign_public_url(campaign.share_link, campaign.name),
            token["id"],
            data.utm.as_query(),
        )
        return token

    # ------------------------------------------------------------------
    # Direct sends
    # ------------------------------------------------------------------

    async def send_outreach_email(
        self,
        session: AsyncSession,
        organizer_id: UUID,
        request: SendEmailRequest,
    ) -> Dict[str, Any]:
        """Send one message type to a contact, a segment or all contacts.

        Parameters
        ----------
        session : AsyncSession
            Request session.
        organizer_id : UUID
            Sender; must own the campaign and the target.
        request : SendEmailRequest
            Campaign, message type, recipient target and personalisation.

        Returns
        -------
        dict
            ``campaign_id``, ``type``, ``total_recipients``,
            ``successful_sends``, ``failed_sends`` and per-recipient
            ``results``.
        """
        if request.type == LinkTokenType.SHARE:
            raise ValidationError("Share links are not sent by email", field="type")

        campaign = await get_owned_campaign(session, request.campaign_id, organizer_id)
        organizer_name = await self._organizer_name(session, organizer_id)
        recipients = await self._resolve_target(session, request.target, organizer_id)

        if not recipients:
            return {
                "campaign_id": str(campaign.id),
                "type": request.type.value,
                "total_recipients": 0,
                "successful_sends": 0,
                "failed_sends": 0,
                "results": [],
                "message": "No contacts found for the selected target",
            }

        utm = request.utm or UTMParams()
        subject = email_templates.direct_subject(request.type.value, organizer_name, campaign.name)
        results = []

        for recipient in recipients:
            token_data = LinkTokenCreate(
                campaign_id=campaign.id,
                type=request.type,
                target=ContactTarget(contact_id=recipient.contact_id),
                personalized_message=request.personalized_message,
                prefill_amount=request.prefill_amount,
                utm=utm,
            )
            render = self._renderer(
                request.type,
                organizer_name,
                campaign,
                recipient,
                message=request.personalized_message,
                prefill_amount=request.prefill_amount,
            )
            results.append(
                await self._send_one(session, organizer_id, campaign, recipient, token_data, subject, render)
            )

        await session.commit()

        successful = sum(1 for r in results if r["status"] == RecipientStatus.SENT.value)
        logger.info(
            "Outreach %s email for campaign %s: %d sent, %d failed",
            request.type.value, campaign.id, successful, len(results) - successful,
        )
        return {
            "campaign_id": str(campaign.id),
            "type": request.type.value,
            "total_recipients": len(recipients),
            "successful_sends": successful,
            "failed_sends": len(results) - successful,
            "results": results,
        }

    # ------------------------------------------------------------------
    # Outreach campaign flows
    # ------------------------------------------------------------------

    async def add_recipients(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
        organizer_id: UUID,
        segment_ids: Optional[List[UUID]] = None,
    ) -> Dict[str, int]:
        """Add segment contacts (or all contacts when ``segment_ids`` is None)."""
        await get_owned_outreach_campaign(session, outreach_campaign_id, organizer_id)
        if segment_ids:
            for segment_id in segment_ids:
                await contact_service.get_segment(session, segment_id, organizer_id)
        return await recipient_service.add_recipients(session, outreach_campaign_id, organizer_id, segment_ids)

    async def send_invitations(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
        organizer_id: UUID,
        request: SendInvitationsRequest,
    ) -> Dict[str, Any]:
        """Send invitations to the listed recipients, or to every recipient
        row that is still pending or failed."""
        outreach_campaign, campaign = await get_owned_outreach_campaign(session, outreach_campaign_id, organizer_id)

        if request.recipients is not None:
            recipients = await self._explicit_recipients(session, organizer_id, request.recipients)
        else:
            rows = await recipient_service.list_recipients(
                session, outreach_campaign_id, [RecipientStatus.PENDING, RecipientStatus.FAILED]
            )
            recipients = [Recipient(contact_id=r.contact_id, email=r.email) for r in rows]

        return await self._send_campaign_batch(
            session,
            outreach_campaign,
            campaign,
            organizer_id,
            LinkTokenType.INVITE,
            recipients,
            message=request.personalized_message,
            prefill_amount=request.prefill_amount,
            utm=request.utm,
            empty_message="No recipients to invite for this outreach campaign",
        )

    async def resend_failed(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
        organizer_id: UUID,
    ) -> Dict[str, int]:
        """Re-send invitations to recipients whose last send failed."""
        outreach_campaign, campaign = await get_owned_outreach_campaign(session, outreach_campaign_id, organizer_id)
        failed = await recipient_service.get_failed_recipients(session, outreach_campaign_id)
        recipients = [Recipient(contact_id=r.contact_id, email=r.email) for r in failed]

        result = await self._send_campaign_batch(
            session, outreach_campaign, campaign, organizer_id, LinkTokenType.INVITE, recipients
        )
        return {"successful": result["successful"], "failed": result["failed"]}

    async def send_updates(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
        organizer_id: UUID,
        request: SendUpdatesRequest,
    ) -> Dict[str, Any]:
        """Send an update to the recipients matching ``target_audience``."""
        outreach_campaign, campaign = await get_owned_outreach_campaign(session, outreach_campaign_id, organizer_id)
        recipients = await self._update_audience(session, outreach_campaign_id, request.target_audience)

        return await self._send_campaign_batch(
            session,
            outreach_campaign,
            campaign,
            organizer_id,
            LinkTokenType.UPDATE,
            recipients,
            message=request.message,
            utm=request.utm,
            empty_message="No recipients found for the selected target audience",
        )

    async def send_thanks(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
        organizer_id: UUID,
        request: SendThanksRequest,
    ) -> Dict[str, Any]:
        """Thank every contact with a completed donation attributed to this
        outreach campaign."""
        outreach_campaign, campaign = await get_owned_outreach_campaign(session, outreach_campaign_id, organizer_id)
        donors = await recipient_service.get_donors(session, outreach_campaign_id)
        recipients = [
            Recipient(
                contact_id=d["contact_id"],
                email=d["email"],
                name=d["name"],
                donated_amount=d["donated_amount"],
            )
            for d in donors
        ]

        return await self._send_campaign_batch(
            session,
            outreach_campaign,
            campaign,
            organizer_id,
            LinkTokenType.THANKS,
            recipients,
            message=request.message,
            utm=request.utm,
            empty_message="No donors found for this outreach campaign",
        )

    async def _send_campaign_batch(
        self,
        session: AsyncSession,
        outreach_campaign: OutreachCampaign,
        campaign: Campaign,
        organizer_id: UUID,
        message_type: LinkTokenType,
        recipients: List[Recipient],
        message: Optional[str] = None,
        prefill_amount: Optional[Decimal] = None,
        utm: Optional[UTMParams] = None,
        empty_message: str = "No recipients found",
    ) -> Dict[str, Any]:
        summary = {
            "outreach_campaign_id": str(outreach_campaign.id),
            "campaign_id": str(campaign.id),
            "total_recipients": len(recipients),
        }
        if not recipients:
            return {**summary, "successful": 0, "failed": 0, "results": [], "message": empty_message}

        organizer_name = await self._organizer_name(session, organizer_id)
        subject = email_templates.outreach_subject(message_type.value, organizer_name, campaign.name)
        utm = self._default_utm(utm, outreach_campaign, message_type)

        results = []
        for recipient in recipients:
            token_data = LinkTokenCreate(
                campaign_id=campaign.id,
                type=message_type,
                target=ContactTarget(contact_id=recipient.contact_id),
                outreach_campaign_id=outreach_campaign.id,
                personalized_message=message,
                prefill_amount=prefill_amount,
                utm=utm,
            )
            render = self._renderer(
                message_type, organizer_name, campaign, recipient, message=message, prefill_amount=prefill_amount
            )
            result = await self._send_one(session, organizer_id, campaign, recipient, token_data, subject, render)
            await self._mark_recipient(session, outreach_campaign.id, recipient, result)
            results.append(result)

        await session.commit()
        self.refresh_queue.publish(outreach_campaign.id)

        successful = sum(1 for r in results if r["status"] == RecipientStatus.SENT.value)
        logger.info(
            "Outreach campaign %s %s batch: %d sent, %d failed",
            outreach_campaign.id, message_type.value, successful, len(results) - successful,
        )
        return {**summary, "successful": successful, "failed": len(results) - successful, "results": results}

    # ------------------------------------------------------------------
    # Per-recipient send
    # ------------------------------------------------------------------

    async def _send_one(
        self,
        session: AsyncSession,
        organizer_id: UUID,
        campaign: Campaign,
        recipient: Recipient,
        token_data: LinkTokenCreate,
        subject: str,
        render: Renderer,
    ) -> Dict[str, Any]:
        """Create token, render, send, record ``sent``; compensate on failure."""
        token: Optional[Dict[str, Any]] = None
        email = (recipient.email or "").strip()
        try:
            if not EMAIL_PATTERN.match(email):
                raise ValidationError("Invalid or missing recipient email", field="email")

            async with session.begin_nested():
                token = await link_token_service.create_link_token(session, token_data, organizer_id)

            tracked_link = generate_tracking_link(
                campaign_public_url(campaign.share_link, campaign.name),
                token["id"],
                token_data.utm.as_query(),
            )
            sent = await self._deliver(
                EmailMessage(
                    to=email,
                    subject=subject,
                    html_body=render(tracked_link, token["id"]),
                    tracking_id=token["id"],
                    headers={"X-FundFlow-Contact": str(recipient.contact_id)},
                )
            )
            if not sent.success:
                raise EmailDeliveryError(sent.error or "Send failed")

            async with session.begin_nested():
                await email_event_service.record_event(
                    session, UUID(token["id"]), recipient.contact_id, EmailEventType.SENT
                )
        except (AppError, SQLAlchemyError) as e:
            reason = e.message if isinstance(e, AppError) else "Database error while sending"
            logger.warning("Outreach send to contact %s failed: %s", recipient.contact_id, reason)
            if token is not None:
                await self._compensate(session, token["id"])
            return {
                "contact_id": str(recipient.contact_id),
                "email": recipient.email,
                "link_token_id": None,
                "status": RecipientStatus.FAILED.value,
                "error": reason,
            }

        logger.info(
            "Outreach %s sent to contact %s (link token %s)",
            token_data.type.value, recipient.contact_id, token["id"],
        )
        return {
            "contact_id": str(recipient.contact_id),
            "email": email,
            "link_token_id": token["id"],
            "status": RecipientStatus.SENT.value,
            "message_id": sent.message_id,
        }

    async def _deliver(self, message: EmailMessage) -> SendResult:
        """Hand one message to the provider; any provider exception is a failed send."""
        try:
            return await self.email_provider.send_email(message)
        except Exception as e:
            logger.error("Email provider raised for %s: %s", message.to, e, exc_info=True)
            raise EmailDeliveryError(str(e) or type(e).__name__) from e

    async def _compensate(self, session: AsyncSession, link_token_id: str) -> None:
        """Delete a token whose email never went out."""
        try:
            async with session.begin_nested():
                await link_token_service.delete_link_token_unsafe(session, UUID(link_token_id))
        except SQLAlchemyError as e:
            logger.error("Compensating delete of link token %s failed: %s", link_token_id, e)

    async def _mark_recipient(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
        recipient: Recipient,
        result: Dict[str, Any],
    ) -> None:
        try:
            async with session.begin_nested():
                await recipient_service.mark_send_result(
                    session,
                    outreach_campaign_id,
                    recipient.contact_id,
                    (recipient.email or "").strip(),
                    RecipientStatus(result["status"]),
                    failure_reason=result.get("error"),
                )
        except SQLAlchemyError as e:
            logger.error(
                "Failed to mark recipient %s as %s: %s", recipient.contact_id, result["status"], e
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _organizer_name(self, session: AsyncSession, organizer_id: UUID) -> str:
        organizer: Optional[User] = await get_organizer(session, organizer_id)
        if organizer is None:
            raise NotFoundError("Organizer")
        return organizer.display_name

    async def _resolve_target(self, session: AsyncSession, target, organizer_id: UUID) -> List[Recipient]:
        if isinstance(target, ContactTarget):
            contact = await get_owned_contact(session, target.contact_id, organizer_id)
            contacts = [contact]
        elif isinstance(target, SegmentTarget):
            contacts = await contact_service.get_segment_contacts(session, target.segment_id, organizer_id)
        elif isinstance(target, AllContactsTarget):
            contacts = await contact_service.get_all_contacts(session, organizer_id, unique_emails=True)
        else:
            raise ValidationError("Either a contact or a segment target must be provided", field="target")
        return [Recipient(contact_id=c.id, email=c.email, name=c.name) for c in contacts]

    async def _explicit_recipients(self, session: AsyncSession, organizer_id: UUID, inputs) -> List[Recipient]:
        """Fill in emails for listed recipients from the organizer's contacts."""
        ids = [r.contact_id for r in inputs]
        result = await session.execute(
            select(Contact.id, Contact.email, Contact.name)
            .join(Segment, Contact.segment_id == Segment.id)
            .where(Contact.id.in_(ids), Segment.organizer_id == organizer_id)
        )
        known = {cid: (email, name) for cid, email, name in result.all()}

        recipients = []
        for item in inputs:
            email, name = known.get(item.contact_id, (None, None))
            recipients.append(Recipient(contact_id=item.contact_id, email=item.email or email or "", name=name))
        return recipients

    async def _update_audience(
        self,
        session: AsyncSession,
        outreach_campaign_id: UUID,
        audience: UpdateAudience,
    ) -> List[Recipient]:
        rows = await recipient_service.list_recipients(session, outreach_campaign_id, [RecipientStatus.SENT])
        if audience == UpdateAudience.ALL:
            return [Recipient(contact_id=r.contact_id, email=r.email) for r in rows]

        opened = await recipient_service.contacts_with_event(session, outreach_campaign_id, EmailEventType.OPEN)
        clicked = await recipient_service.contacts_with_event(session, outreach_campaign_id, EmailEventType.CLICK)
        donated = set(await recipient_service.donations_by_contact(session, outreach_campaign_id))

        def matches(contact_id: UUID) -> bool:
            if audience == UpdateAudience.OPENED_NOT_CLICKED:
                return contact_id in opened and contact_id not in clicked
            if audience == UpdateAudience.CLICKED_NOT_DONATED:
                return contact_id in clicked and contact_id not in donated
            return contact_id in donated

        return [Recipient(contact_id=r.contact_id, email=r.email) for r in rows if matches(r.contact_id)]

    def _default_utm(
        self,
        utm: Optional[UTMParams],
        outreach_campaign: OutreachCampaign,
        message_type: LinkTokenType,
    ) -> UTMParams:
        utm = utm or UTMParams()
        return UTMParams(
            utm_source=utm.utm_source or "outreach",
            utm_medium=utm.utm_medium or "email",
            utm_campaign=utm.utm_campaign or outreach_campaign.name[:100],
            utm_content=utm.utm_content or message_type.value,
        )

    def _renderer(
        self,
        message_type: LinkTokenType,
        organizer_name: str,
        campaign: Campaign,
        recipient: Recipient,
        message: Optional[str] = None,
        prefill_amount: Optional[Decimal] = None,
    ) -> Renderer:
        if message_type == LinkTokenType.UPDATE:
            return lambda link, token_id: email_templates.render_update(
                organizer_name, campaign.name, message or "", link, token_id
            )
        if message_type == LinkTokenType.THANKS:
            return lambda link, token_id: email_templates.render_thank_you(
                organizer_name,
                campaign.name,
                recipient.name or "Friend",
                message or "",
                link,
                token_id,
                donation_amount=recipient.donated_amount,
            )
        return lambda link, token_id: email_templates.render_invitation(
            organizer_name, campaign.name, campaign.description, link, token_id, message, prefill_amount
        )


# Singleton instance
outreach_service = OutreachService()
