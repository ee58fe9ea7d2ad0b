"""
API tests for the tracking, outreach and address book endpoints.
"""

import pytest
from unittest.mock import AsyncMock, patch
from uuid import uuid4

from fastapi.testclient import TestClient

from fundflow.core.errors import NotFoundError

from tests.conftest import make_session


@pytest.fixture
def app():
    from fundflow.db.postgres import get_db_session
    from fundflow.main import app
    from fundflow.middleware.rate_limit import limiter

    async def fake_session():
        yield make_session()

    limiter.enabled = False
    app.dependency_overrides[get_db_session] = fake_session
    yield app
    app.dependency_overrides.clear()
    limiter.enabled = True


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def organizer_id():
    return uuid4()


@pytest.fixture
def auth_headers(organizer_id):
    from fundflow.core.security import create_access_token

    token = create_access_token({"user_id": str(organizer_id), "email": "dana@example.com"})
    return {"Authorization": f"Bearer {token}"}


class TestRootEndpoints:

    def test_root_endpoint(self, client):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "FundFlow"
        assert data["health"] == "/health"

    def test_liveness(self, client):
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"


class TestTrackingEndpoints:

    def test_pixel_records_open(self, client):
        from fundflow.services.tracking_service import TRACKING_PIXEL

        link_token_id = uuid4()
        with patch("fundflow.api.v1.tracking.tracking_service") as service:
            service.record_open = AsyncMock(return_value={})
            response = client.get(f"/t/pixel/{link_token_id}.png", headers={"User-Agent": "Mail/1.0"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"
        assert response.headers["pragma"] == "no-cache"
        assert response.headers["expires"] == "0"
        assert response.content == TRACKING_PIXEL
        assert service.record_open.await_args.args[0] == link_token_id
        assert service.record_open.await_args.kwargs["user_agent"] == "Mail/1.0"

    def test_pixel_identical_for_unknown_token(self, client):
        with patch("fundflow.api.v1.tracking.tracking_service") as service:
            service.record_open = AsyncMock(return_value={})
            known = client.get(f"/t/pixel/{uuid4()}.png")
            service.record_open = AsyncMock(side_effect=NotFoundError("Link token"))
            unknown = client.get(f"/t/pixel/{uuid4()}.png")
            malformed = client.get("/t/pixel/not-a-uuid.png")

        assert unknown.status_code == 200
        assert malformed.status_code == 200
        assert known.content == unknown.content == malformed.content

    def test_click_redirects(self, client):
        with patch("fundflow.api.v1.tracking.tracking_service") as service:
            service.record_click = AsyncMock(return_value="https://app.fundflow.test/campaigns/1?lt=abc")
            response = client.get(
                f"/t/click/{uuid4()}",
                params={"redirect": "https://app.fundflow.test/campaign/x"},
                follow_redirects=False,
            )

        assert response.status_code == 302
        assert response.headers["location"] == "https://app.fundflow.test/campaigns/1?lt=abc"
        assert service.record_click.await_args.args[1] == "https://app.fundflow.test/campaign/x"

    def test_click_failure_falls_back_to_redirect(self, client):
        with patch("fundflow.api.v1.tracking.tracking_service") as service:
            service.record_click = AsyncMock(side_effect=NotFoundError("Link token"))
            with_redirect = client.get(
                f"/t/click/{uuid4()}",
                params={"redirect": "https://app.fundflow.test/campaign/x"},
                follow_redirects=False,
            )
            without_redirect = client.get(f"/t/click/{uuid4()}", follow_redirects=False)

        assert with_redirect.status_code == 302
        assert with_redirect.headers["location"] == "https://app.fundflow.test/campaign/x"
        assert without_redirect.headers["location"] == "https://app.fundflow.test"


class TestOutreachEndpoints:

    def test_requires_auth(self, client):
        response = client.get(f"/api/v1/outreach/analytics/{uuid4()}")

        assert response.status_code == 401

    def test_send_email(self, client, auth_headers, organizer_id):
        campaign_id = uuid4()
        summary = {
            "campaign_id": str(campaign_id),
            "type": "invite",
            "total_recipients": 2,
            "successful_sends": 1,
            "failed_sends": 1,
            "results": [],
        }
        with patch("fundflow.api.v1.outreach.outreach_service") as service:
            service.send_outreach_email = AsyncMock(return_value=summary)
            response = client.post(
                "/api/v1/outreach/send-email",
                headers=auth_headers,
                json={
                    "campaign_id": str(campaign_id),
                    "type": "invite",
                    "target": {"kind": "segment", "segment_id": str(uuid4())},
                },
            )

        assert response.status_code == 200
        assert response.json()["data"]["failed_sends"] == 1
        assert service.send_outreach_email.await_args.args[1] == organizer_id

    def test_send_email_rejects_unknown_target(self, client, auth_headers):
        response = client.post(
            "/api/v1/outreach/send-email",
            headers=auth_headers,
            json={"campaign_id": str(uuid4()), "type": "invite", "target": {"kind": "everyone"}},
        )

        assert response.status_code == 422

    def test_not_found_renders_error_body(self, client, auth_headers):
        with patch("fundflow.api.v1.outreach.analytics_service") as service:
            service.campaign_analytics = AsyncMock(side_effect=NotFoundError("Campaign"))
            response = client.get(f"/api/v1/outreach/analytics/{uuid4()}", headers=auth_headers)

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["status"] == "fail"
        assert body["message"] == "Campaign not found"

    def test_unexpected_error_renders_json_500(self, app, auth_headers):
        client = TestClient(app, raise_server_exceptions=False)
        with patch("fundflow.api.v1.outreach.analytics_service") as service:
            service.campaign_analytics = AsyncMock(side_effect=RuntimeError("boom"))
            response = client.get(f"/api/v1/outreach/analytics/{uuid4()}", headers=auth_headers)

        assert response.status_code == 500
        assert response.headers["content-type"].startswith("application/json")
        body = response.json()
        assert body["success"] is False
        assert body["status"] == "error"
        assert body["error_code"] == "INTERNAL_SERVER_ERROR"
        assert body["message"] == "boom"

    def test_organizer_analytics_route_is_not_a_campaign_id(self, client, auth_headers):
        with patch("fundflow.api.v1.outreach.analytics_service") as service:
            service.organizer_analytics = AsyncMock(return_value={"emails_sent": 0})
            response = client.get("/api/v1/outreach/analytics/organizer", headers=auth_headers)

        assert response.status_code == 200
        service.organizer_analytics.assert_awaited_once()

    def test_contact_events_check_token_ownership(self, client, auth_headers):
        with patch("fundflow.api.v1.outreach.link_token_service") as tokens, \
             patch("fundflow.api.v1.outreach.email_event_service") as events:
            tokens.get_link_token = AsyncMock(side_effect=NotFoundError("Link token"))
            events.events_by_link_token_and_contact = AsyncMock(return_value=[])
            response = client.get(
                f"/api/v1/outreach/link-tokens/{uuid4()}/contacts/{uuid4()}/events",
                headers=auth_headers,
            )

        assert response.status_code == 404
        events.events_by_link_token_and_contact.assert_not_awaited()

    def test_campaign_events(self, client, auth_headers):
        with patch("fundflow.api.v1.outreach.email_event_service") as events:
            events.events_by_campaign = AsyncMock(return_value=[{"type": "sent"}, {"type": "open"}])
            response = client.get(f"/api/v1/outreach/campaigns/{uuid4()}/events", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["count"] == 2

    def test_public_share_link_needs_no_auth(self, client):
        link = {"platform": "facebook", "type": "share", "link_token_id": "t", "url": "u", "tracking_url": "v"}
        with patch("fundflow.api.v1.outreach.social_media_service") as service:
            service.create_public_share = AsyncMock(return_value=link)
            response = client.post(
                "/api/v1/outreach/public/share-links",
                json={"campaign_id": str(uuid4()), "platform": "facebook"},
            )

        assert response.status_code == 201
        assert response.json()["data"]["platform"] == "facebook"


class TestOutreachCampaignEndpoints:

    def test_add_all_recipients(self, client, auth_headers, organizer_id):
        outreach_campaign_id = uuid4()
        with patch("fundflow.api.v1.outreach_campaigns.outreach_service") as service:
            service.add_recipients = AsyncMock(return_value={"added": 3, "skipped": 1})
            response = client.post(
                f"/api/v1/outreach/outreach-campaigns/{outreach_campaign_id}/recipients",
                headers=auth_headers,
                json={"all": True, "segment_ids": [str(uuid4())]},
            )

        assert response.status_code == 200
        service.add_recipients.assert_awaited_once()
        assert service.add_recipients.await_args.args[1:] == (outreach_campaign_id, organizer_id, None)

    def test_list_outreach_link_tokens(self, client, auth_headers):
        token = {"id": str(uuid4()), "type": "invite", "clicks_count": 2}
        with patch("fundflow.api.v1.outreach_campaigns.get_owned_outreach_campaign", new=AsyncMock()), \
             patch("fundflow.api.v1.outreach_campaigns.link_token_service") as tokens:
            tokens.list_by_outreach_campaign = AsyncMock(return_value=[token])
            response = client.get(
                f"/api/v1/outreach/outreach-campaigns/{uuid4()}/link-tokens",
                headers=auth_headers,
            )

        assert response.status_code == 200
        assert response.json()["data"] == [token]

    def test_events_limit_is_capped(self, client, auth_headers):
        response = client.get(
            f"/api/v1/outreach/outreach-campaigns/{uuid4()}/events",
            headers=auth_headers,
            params={"limit": 500},
        )

        assert response.status_code == 422

    def test_reconcile_checks_ownership_first(self, client, auth_headers):
        with patch("fundflow.api.v1.outreach_campaigns.get_owned_outreach_campaign",
                   new=AsyncMock(side_effect=NotFoundError("Outreach campaign"))), \
             patch("fundflow.api.v1.outreach_campaigns.outreach_stats_service") as stats:
            stats.reconcile_recipients = AsyncMock()
            response = client.post(
                f"/api/v1/outreach/outreach-campaigns/{uuid4()}/reconcile",
                headers=auth_headers,
            )

        assert response.status_code == 404
        stats.reconcile_recipients.assert_not_awaited()


class TestAddressBookEndpoints:

    def test_create_segment(self, client, auth_headers):
        segment = {"id": str(uuid4()), "name": "Donors", "contact_count": 0}
        with patch("fundflow.api.v1.segments.contact_service") as service:
            service.create_segment = AsyncMock(return_value=segment)
            response = client.post("/api/v1/segments", headers=auth_headers, json={"name": "Donors"})

        assert response.status_code == 201
        assert response.json()["data"]["name"] == "Donors"

    def test_create_contact_validates_email(self, client, auth_headers):
        response = client.post(
            f"/api/v1/segments/{uuid4()}/contacts",
            headers=auth_headers,
            json={"name": "Sam", "email": "not-an-email"},
        )

        assert response.status_code == 422

    def test_delete_contact(self, client, auth_headers):
        with patch("fundflow.api.v1.contacts.contact_service") as service:
            service.delete_contact = AsyncMock(return_value=None)
            response = client.delete(f"/api/v1/contacts/{uuid4()}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["success"] is True
