"""
HTML templates for outreach emails.

Every template is wrapped in the same layout, which embeds the open
tracking pixel for the link token. Values coming from organizers and
contacts are HTML-escaped.
"""

from __future__ import annotations

from decimal import Decimal
from html import escape
from typing import Optional, Union

from fundflow.core.config import settings
from fundflow.services.tracking_links import tracking_pixel_url

Amount = Union[Decimal, float, int]


def _amount(value: Amount) -> str:
    return f"{Decimal(str(value)).quantize(Decimal('0.01'))}"


def _base_template(content: str, link_token_id: Optional[str]) -> str:
    app_name = escape(settings.app_name)
    pixel = ""
    if link_token_id:
        pixel = (
            f'<img src="{tracking_pixel_url(link_token_id)}" alt="" width="1" height="1" '
            'style="display:none" />'
        )

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{app_name}</title>
</head>
<body style="margin:0;padding:0;background-color:#f4f4f4;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;color:#333;line-height:1.6;">
    <div style="max-width:600px;margin:0 auto;background-color:#ffffff;">
        <div style="background:linear-gradient(135deg,#667eea 0%,#764ba2 100%);color:#ffffff;padding:30px 20px;text-align:center;">
            <h1 style="margin:0;font-size:28px;font-weight:600;">{app_name}</h1>
        </div>
        <div style="padding:30px 20px;">
            {content}
        </div>
        <div style="background-color:#f8f9fa;padding:20px;text-align:center;font-size:14px;color:#666;">
            <p>This email was sent from {app_name}</p>
            <p>If you have any questions, please contact us</p>
        </div>
    </div>
    {pixel}
</body>
</html>"""


def _cta(href: str, label: str) -> str:
    return (
        f'<a href="{escape(href)}" style="display:inline-block;background:#667eea;color:#ffffff;'
        f'text-decoration:none;padding:15px 30px;border-radius:8px;font-weight:600;margin:20px 0;">{label}</a>'
    )


def _quote(heading: str, body: str) -> str:
    return (
        '<div style="background-color:#f8f9fa;border-left:4px solid #667eea;padding:15px;margin:20px 0;">'
        f"<p><strong>{heading}</strong></p><p>{body}</p></div>"
    )


def render_invitation(
    organizer_name: str,
    campaign_name: str,
    campaign_description: Optional[str],
    tracked_link: str,
    link_token_id: str,
    personalized_message: Optional[str] = None,
    prefill_amount: Optional[Amount] = None,
) -> str:
    organizer = escape(organizer_name)
    parts = [
        f"<p>Hello!</p><p>{organizer} has invited you to support their fundraising campaign.</p>",
        f"<h2>{escape(campaign_name)}</h2><p>{escape(campaign_description or '')}</p>",
    ]
    if personalized_message:
        parts.append(_quote(f"Personal message from {organizer}:", f"&quot;{escape(personalized_message)}&quot;"))
    if prefill_amount:
        parts.append(f"<p>Suggested donation amount: <strong>${_amount(prefill_amount)}</strong></p>")
    parts.append("<p>Please click the button below to view the campaign and make a donation:</p>")
    parts.append(_cta(tracked_link, "View Campaign &amp; Donate"))
    parts.append(f"<p>Thank you for your support!</p><p>Best regards,<br>The {escape(settings.app_name)} Team</p>")
    return _base_template("\n".join(parts), link_token_id)


def render_update(
    organizer_name: str,
    campaign_name: str,
    update_message: str,
    tracked_link: str,
    link_token_id: str,
) -> str:
    organizer = escape(organizer_name)
    content = "\n".join([
        f"<p>Hello!</p><p>{organizer} has an update about their fundraising campaign.</p>",
        f"<h2>{escape(campaign_name)}</h2>",
        _quote(f"Update from {organizer}:", escape(update_message)),
        "<p>Click below to see the latest progress and continue supporting this campaign:</p>",
        _cta(tracked_link, "View Campaign Updates"),
        f"<p>Thank you for your continued support!</p><p>Best regards,<br>The {escape(settings.app_name)} Team</p>",
    ])
    return _base_template(content, link_token_id)


def render_thank_you(
    organizer_name: str,
    campaign_name: str,
    donor_name: str,
    thank_you_message: str,
    tracked_link: str,
    link_token_id: str,
    donation_amount: Optional[Amount] = None,
) -> str:
    organizer = escape(organizer_name)
    received = ""
    if donation_amount:
        received = f"<p>Your donation of <strong>${_amount(donation_amount)}</strong> has been received.</p>"
    content = "\n".join([
        f"<p>Dear {escape(donor_name)},</p><p>Thank you so much for your generous donation!</p>",
        f"<h2>{escape(campaign_name)}</h2>{received}",
        _quote(f"Message from {organizer}:", escape(thank_you_message)),
        "<p>You can track the campaign's progress and share it with others:</p>",
        _cta(tracked_link, "View Campaign Progress"),
        f"<p>Your support makes a real difference. Thank you!</p>"
        f"<p>Best regards,<br>{organizer} and the {escape(settings.app_name)} Team</p>",
    ])
    return _base_template(content, link_token_id)


# Subjects for direct sends
def direct_subject(message_type: str, organizer_name: str, campaign_name: str) -> str:
    if message_type == "update":
        return f"Update from {organizer_name}: {campaign_name}"
    if message_type == "thanks":
        return f"Thank you from {organizer_name}"
    return f"{organizer_name} invites you to support: {campaign_name}"


# Subjects for outreach-campaign sends
def outreach_subject(message_type: str, organizer_name: str, campaign_name: str) -> str:
    if message_type == "update":
        return f"Update on {campaign_name} - {organizer_name}"
    if message_type == "thanks":
        return f"Thank you for supporting {campaign_name}!"
    return f"{organizer_name} invites you to support: {campaign_name}"
