"""Outreach tables: address book, link tokens, events, outreach campaigns

Revision ID: 001_outreach
Revises:
Create Date: 2026-10-18

users, campaigns and donations belong to the platform schema; this
revision adds the outreach tables and the attribution columns on
donations.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_outreach"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "segments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("organizer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("organizer_id", "name", name="uq_segments_organizer_name"),
    )
    op.create_index("ix_segments_organizer_id", "segments", ["organizer_id"])

    op.create_table(
        "contacts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("segment_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("segments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("emails_opened", sa.Integer(), server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("segment_id", "email", name="uq_contacts_segment_email"),
    )
    op.create_index("ix_contacts_segment_id", "contacts", ["segment_id"])
    op.create_index("ix_contacts_email", "contacts", ["email"])

    # Created before link_tokens, which reference it
    op.create_table(
        "outreach_campaigns",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("campaign_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("campaign_id", "name", name="uq_outreach_campaigns_campaign_name"),
    )
    op.create_index("ix_outreach_campaigns_campaign_id", "outreach_campaigns", ["campaign_id"])
    op.create_index("ix_outreach_campaigns_status", "outreach_campaigns", ["status"])
    op.create_index("ix_outreach_campaigns_created_at", "outreach_campaigns", ["created_at"])

    op.create_table(
        "link_tokens",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("campaign_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False),
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("contacts.id", ondelete="CASCADE"), nullable=True),
        sa.Column("segment_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("segments.id", ondelete="CASCADE"), nullable=True),
        sa.Column(
            "outreach_campaign_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("outreach_campaigns.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("prefill_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("personalized_message", sa.Text(), nullable=True),
        sa.Column("utm_source", sa.String(100), nullable=True),
        sa.Column("utm_medium", sa.String(100), nullable=True),
        sa.Column("utm_campaign", sa.String(100), nullable=True),
        sa.Column("utm_content", sa.String(100), nullable=True),
        sa.Column("clicks_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_clicked_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint(
            "contact_id IS NOT NULL OR segment_id IS NOT NULL OR type = 'share'",
            name="chk_link_tokens_target",
        ),
        sa.CheckConstraint("type IN ('invite', 'update', 'thanks', 'share')", name="chk_link_tokens_type"),
    )
    op.create_index("ix_link_tokens_campaign_id", "link_tokens", ["campaign_id"])
    op.create_index("ix_link_tokens_contact_id", "link_tokens", ["contact_id"])
    op.create_index("ix_link_tokens_segment_id", "link_tokens", ["segment_id"])
    op.create_index("ix_link_tokens_outreach_campaign_id", "link_tokens", ["outreach_campaign_id"])
    op.create_index("ix_link_tokens_type", "link_tokens", ["type"])
    op.create_index("ix_link_tokens_created_at", "link_tokens", ["created_at"])

    op.create_table(
        "email_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("link_token_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("link_tokens.id", ondelete="CASCADE"), nullable=False),
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("contacts.id", ondelete="CASCADE"), nullable=True),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint("type IN ('sent', 'open', 'click')", name="chk_email_events_type"),
    )
    op.create_index("ix_email_events_link_token_id", "email_events", ["link_token_id"])
    op.create_index("ix_email_events_contact_id", "email_events", ["contact_id"])
    op.create_index("ix_email_events_type", "email_events", ["type"])
    op.create_index("ix_email_events_created_at", "email_events", ["created_at"])
    op.create_index("idx_email_events_link_token_type", "email_events", ["link_token_id", "type"])

    op.create_table(
        "outreach_campaign_recipients",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "outreach_campaign_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("outreach_campaigns.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("contacts.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("last_send_at", sa.DateTime(), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("opened", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("clicked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("donated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("donated_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("outreach_campaign_id", "contact_id", name="uq_outreach_recipients_campaign_contact"),
    )
    op.create_index(
        "ix_outreach_campaign_recipients_outreach_campaign_id",
        "outreach_campaign_recipients",
        ["outreach_campaign_id"],
    )
    op.create_index("ix_outreach_campaign_recipients_status", "outreach_campaign_recipients", ["status"])

    # Donation attribution captured at checkout
    op.add_column(
        "donations",
        sa.Column("link_token_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("link_tokens.id", ondelete="SET NULL"), nullable=True),
    )
    op.add_column(
        "donations",
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True),
    )
    op.create_index("ix_donations_link_token_id", "donations", ["link_token_id"])
    op.create_index("ix_donations_contact_id", "donations", ["contact_id"])


def downgrade() -> None:
    op.drop_index("ix_donations_contact_id", table_name="donations")
    op.drop_index("ix_donations_link_token_id", table_name="donations")
    op.drop_column("donations", "contact_id")
    op.drop_column("donations", "link_token_id")
    op.drop_table("outreach_campaign_recipients")
    op.drop_table("email_events")
    op.drop_table("link_tokens")
    op.drop_table("outreach_campaigns")
    op.drop_table("contacts")
    op.drop_table("segments")
