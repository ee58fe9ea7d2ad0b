"""
Tests for analytics rollups and social share statistics.
"""

from urllib.parse import parse_qs, urlparse
from uuid import uuid4

from fundflow.schemas.outreach import SocialPlatform


def _row(name, sent, opens, clicks, donations=0, revenue=0.0, by_segment=None, by_contact=None):
    return {
        "campaign_id": str(uuid4()),
        "campaign_name": name,
        "emails_sent": sent,
        "opens": opens,
        "clicks": clicks,
        "donations": donations,
        "revenue": revenue,
        "outreach_campaigns": 1 if sent else 0,
        "by_segment": by_segment or {},
        "by_contact": by_contact or {},
    }


class TestOrganizerRollup:

    def test_totals_and_rates(self):
        from fundflow.services.analytics_service import analytics_service

        summary = analytics_service.aggregate_organizer([
            _row("Spring", 30, 12, 5, donations=2, revenue=75.5),
            _row("Autumn", 10, 5, 1, donations=1, revenue=20.0),
        ])

        assert summary["emails_sent"] == 40
        assert summary["opens"] == 17
        assert summary["donations"] == 3
        assert summary["revenue"] == 95.5
        assert summary["open_rate"] == "42.5%"
        assert summary["click_rate"] == "15.0%"

    def test_breakdown_skips_campaigns_without_sends(self):
        from fundflow.services.analytics_service import analytics_service

        summary = analytics_service.aggregate_organizer([
            _row("Quiet", 0, 0, 0),
            _row("Small", 5, 1, 0),
            _row("Big", 50, 20, 8),
        ])

        assert [r["campaign_name"] for r in summary["campaign_breakdown"]] == ["Big", "Small"]
        assert "by_segment" not in summary["campaign_breakdown"][0]

    def test_top_segments_merge_across_campaigns(self):
        from fundflow.services.analytics_service import analytics_service

        segment_id = str(uuid4())
        other_id = str(uuid4())
        summary = analytics_service.aggregate_organizer([
            _row("A", 5, 2, 1, by_segment={segment_id: {"segment_name": "Donors", "clicks": 1, "opens": 2}}),
            _row("B", 5, 3, 2, by_segment={
                segment_id: {"segment_name": "Donors", "clicks": 2, "opens": 1},
                other_id: {"segment_name": "Friends", "clicks": 0, "opens": 1},
            }),
        ])

        top = summary["top_segments"]
        assert top[0] == {"segment_id": segment_id, "name": "Donors", "clicks": 3, "opens": 3}
        assert top[1]["name"] == "Friends"

    def test_no_campaigns(self):
        from fundflow.services.analytics_service import analytics_service

        summary = analytics_service.aggregate_organizer([])

        assert summary["emails_sent"] == 0
        assert summary["open_rate"] == "0.0%"
        assert summary["campaign_breakdown"] == []


class TestSocialStats:

    def test_summarize_by_platform(self):
        from fundflow.services.social_media_service import social_media_service

        campaign_id = uuid4()
        summary = social_media_service.summarize(campaign_id, [
            ("social_facebook", 4),
            ("social_facebook", 0),
            ("social_twitter", 3),
            ("social_linkedin", None),
        ])

        assert summary["total_social_shares"] == 4
        assert summary["total_social_clicks"] == 7
        assert summary["by_platform"]["facebook"] == {"shares": 2, "clicks": 4, "click_rate": 200.0}
        assert summary["by_platform"]["linkedin"]["click_rate"] == 0.0
        assert [p["platform"] for p in summary["top_performing_platforms"]] == ["twitter", "facebook", "linkedin"]

    def test_share_url_wraps_tracking_url(self):
        from fundflow.services.social_media_service import platform_share_url

        tracking_url = "https://api.fundflow.test/t/click/tok-1?utm_source=social_media&redirect=x"

        facebook = platform_share_url(SocialPlatform.FACEBOOK, tracking_url, "Spring Drive")
        whatsapp = platform_share_url(SocialPlatform.WHATSAPP, tracking_url, "Spring Drive", "Please help")

        assert parse_qs(urlparse(facebook).query)["u"] == [tracking_url]
        text = parse_qs(urlparse(whatsapp).query)["text"][0]
        assert text.startswith("Please help")
        assert tracking_url in text

    def test_social_utm(self):
        from fundflow.services.social_media_service import social_utm

        utm = social_utm(SocialPlatform.TELEGRAM)

        assert utm.utm_source == "social_media"
        assert utm.utm_medium == "social"
        assert utm.utm_campaign == "social_telegram"
        assert utm.utm_content == "telegram_share"
