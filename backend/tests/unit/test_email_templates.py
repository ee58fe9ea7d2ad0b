"""
Tests for outreach email templates.
"""

from decimal import Decimal

from fundflow.services import email_templates


class TestTemplates:

    def test_invitation_embeds_pixel_and_link(self):
        html = email_templates.render_invitation(
            "Dana",
            "Spring Drive",
            "Help us",
            "https://api.fundflow.test/t/click/tok-1?redirect=x",
            "tok-1",
            personalized_message="Would love your help",
            prefill_amount=Decimal("25"),
        )

        assert "https://api.fundflow.test/t/pixel/tok-1.png" in html
        assert "https://api.fundflow.test/t/click/tok-1?redirect=x" in html
        assert "Would love your help" in html
        assert "$25.00" in html

    def test_values_are_escaped(self):
        html = email_templates.render_update(
            "<b>Dana</b>", "Spring <Drive>", "<script>alert(1)</script>", "https://x.test", "tok-1"
        )

        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert "&lt;b&gt;Dana&lt;/b&gt;" in html

    def test_thank_you_mentions_amount_only_when_given(self):
        with_amount = email_templates.render_thank_you(
            "Dana", "Spring Drive", "Sam", "Thanks!", "https://x.test", "tok-1", donation_amount=40
        )
        without_amount = email_templates.render_thank_you(
            "Dana", "Spring Drive", "Sam", "Thanks!", "https://x.test", "tok-1"
        )

        assert "$40.00" in with_amount
        assert "has been received" not in without_amount
        assert "Dear Sam" in with_amount


class TestSubjects:

    def test_direct_subjects(self):
        assert email_templates.direct_subject("invite", "Dana", "Spring") == "Dana invites you to support: Spring"
        assert email_templates.direct_subject("update", "Dana", "Spring") == "Update from Dana: Spring"
        assert email_templates.direct_subject("thanks", "Dana", "Spring") == "Thank you from Dana"

    def test_outreach_subjects(self):
        assert email_templates.outreach_subject("update", "Dana", "Spring") == "Update on Spring - Dana"
        assert email_templates.outreach_subject("thanks", "Dana", "Spring") == "Thank you for supporting Spring!"
