from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from cleanup_api import dependencies
from cleanup_api.auth.firebase import FirebaseAuthError, VerifiedUser
from cleanup_api.db.dynamodb.errors import DdbInternal
from cleanup_api.domain.cleanup.errors import StoreUnavailable
from cleanup_api.domain.cleanup.models import Participant
from cleanup_api.domain.cleanup.pricing import PricingEngine
from cleanup_api.main import create_app
from cleanup_api.settings import get_settings

from fakes import FailingGateway, InMemoryCampaignStore, make_campaign

CREATE_BODY = {
    "title": "Beach cleanup",
    "description": "Bring gloves",
    "location": {"lat": 19.076, "lng": 72.8777, "address": "Juhu Beach"},
    "scheduledDate": "2099-01-01T09:00:00Z",
}


def _fake_verify(token: str) -> VerifiedUser:
    if not token.startswith("uid:"):
        raise FirebaseAuthError("Invalid token")
    uid = token.split(":", 1)[1]
    return VerifiedUser(uid=uid, email=f"{uid}@example.com", claims={"user_id": uid})


def _auth(uid: str) -> dict[str, str]:
    return {"Authorization": f"Bearer uid:{uid}"}


@pytest.fixture
def state(store, gateway) -> dict:
    # Mutable so a test can swap collaborators after the client is built.
    return {"payments_enabled": True, "gateway": gateway, "store": store}


@pytest.fixture
def api(monkeypatch, state):
    monkeypatch.setattr("cleanup_api.middleware.auth.verify_bearer_token", _fake_verify)

    app = create_app()
    app.dependency_overrides[dependencies.get_campaign_store] = lambda: state["store"]
    app.dependency_overrides[dependencies.get_payment_gateway] = lambda: state["gateway"]
    app.dependency_overrides[dependencies.get_pricing_engine] = lambda: PricingEngine()
    app.dependency_overrides[dependencies.get_app_settings] = lambda: get_settings().model_copy(
        update={"payments_enabled": state["payments_enabled"], "cleanup_transaction_max_attempts": 3}
    )

    return TestClient(app)


def test_create_campaign(api, store, gateway):
    r = api.post("/api/cleanup/create", json=CREATE_BODY, headers=_auth("user_a"))

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["ok"] is True
    assert body["campaignId"].startswith("camp_")
    assert body["paymentIntentId"].startswith("pi_")
    assert body["orderId"] == "order_test_1"

    campaign = store.get_campaign(body["campaignId"])
    assert campaign.created_by == "user_a"
    assert campaign.participant_count == 1
    assert campaign.current_price == 649
    assert gateway.requests[0].amount_minor_units == 64900


def test_create_requires_auth(api, store):
    r = api.post("/api/cleanup/create", json=CREATE_BODY)

    assert r.status_code == 401
    assert r.headers.get("content-type", "").startswith("application/problem+json")
    assert r.json()["detail"] == "Authorization token required"
    assert store.commits == 0


def test_invalid_token_is_rejected(api):
    r = api.post("/api/cleanup/join", json={"campaignId": "camp_1"}, headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401
    assert r.json()["status"] == 401


@pytest.mark.parametrize(
    ("patch", "message"),
    [
        ({"title": None}, "Title is required"),
        ({"location": None}, "Location (lat/lng) is required"),
        ({"location": {"lat": 95, "lng": 10}}, "Invalid latitude: must be a number between -90 and 90"),
        ({"location": {"lat": True, "lng": 10}}, "Invalid latitude: must be a number between -90 and 90"),
        ({"location": {"lat": "abc", "lng": 10}}, "Invalid latitude: must be a number between -90 and 90"),
        ({"location": {"lat": 19.0, "lng": None}}, "Location (lat/lng) is required"),
        ({"location": "Juhu Beach"}, "Location must be an object with lat/lng"),
        ({"title": 123}, "Title must be a string"),
        ({"scheduledDate": 20990101}, "Scheduled date must be an ISO-8601 date/time"),
        ({"scheduledDate": "2000-01-01T00:00:00Z"}, "Scheduled date must be in the future"),
    ],
)
def test_create_validation_errors(api, store, gateway, patch, message):
    r = api.post("/api/cleanup/create", json={**CREATE_BODY, **patch}, headers=_auth("user_a"))

    assert r.status_code == 400
    body = r.json()
    assert body["ok"] is False
    assert body["error"] == message
    assert body["requestId"] == r.headers["X-Request-Id"]
    assert store.commits == 0
    assert gateway.requests == []


def test_join_campaign(api, store, gateway):
    store.seed_campaign(make_campaign("camp_1"))

    r = api.post("/api/cleanup/join", json={"campaignId": "camp_1", "paymentMethod": "razorpay"}, headers=_auth("user_b"))

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["ok"] is True
    assert body["participantId"] == "user_b"
    assert body["orderId"] == "order_test_1"
    assert body["paymentIntentId"].startswith("pi_")
    assert store.get_campaign("camp_1").participant_count == 2
    assert gateway.requests[0].amount_minor_units == 62000


def test_join_with_payments_disabled(api, state, store, gateway):
    state["payments_enabled"] = False
    store.seed_campaign(make_campaign("camp_1"))

    r = api.post("/api/cleanup/join", json={"campaignId": "camp_1"}, headers=_auth("user_b"))

    assert r.status_code == 200
    body = r.json()
    assert body["orderId"] == f"placeholder_order_{body['paymentIntentId']}"
    assert gateway.requests == []


def test_join_twice_is_rejected(api, store):
    store.seed_campaign(make_campaign("camp_1"))

    first = api.post("/api/cleanup/join", json={"campaignId": "camp_1"}, headers=_auth("user_b"))
    second = api.post("/api/cleanup/join", json={"campaignId": "camp_1"}, headers=_auth("user_b"))

    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json()["error"] == "User has already joined this campaign"
    assert store.get_campaign("camp_1").participant_count == 2


def test_join_missing_campaign_id(api):
    r = api.post("/api/cleanup/join", json={}, headers=_auth("user_b"))
    assert r.status_code == 400
    assert r.json() == {"ok": False, "error": "Campaign ID is required", "requestId": r.headers["X-Request-Id"]}


def test_join_rejects_non_string_campaign_id(api, store):
    r = api.post("/api/cleanup/join", json={"campaignId": 5}, headers=_auth("user_b"))
    assert r.status_code == 400
    assert r.json()["error"] == "Campaign ID must be a string"
    assert store.commits == 0


def test_join_unknown_campaign(api):
    r = api.post("/api/cleanup/join", json={"campaignId": "camp_missing"}, headers=_auth("user_b"))
    assert r.status_code == 404
    assert r.json()["error"] == "Campaign not found"


def test_join_locked_campaign(api, store):
    store.seed_campaign(make_campaign("camp_1", campaign_state="locked"))

    r = api.post("/api/cleanup/join", json={"campaignId": "camp_1"}, headers=_auth("user_b"))

    assert r.status_code == 400
    assert r.json()["error"] == "Campaign is not accepting new participants. Current state: locked"


def test_join_payment_failure_is_bad_gateway(api, state, store):
    state["gateway"] = FailingGateway("gateway down")
    store.seed_campaign(make_campaign("camp_1"))

    r = api.post("/api/cleanup/join", json={"campaignId": "camp_1"}, headers=_auth("user_b"))

    assert r.status_code == 502
    assert r.json()["error"].startswith("Failed to create payment order")
    assert store.get_participant("camp_1", "user_b") is None


def test_join_busy_campaign_after_retries(api, store):
    store.seed_campaign(make_campaign("camp_1"))
    store.inject_conflicts = 10

    r = api.post("/api/cleanup/join", json={"campaignId": "camp_1"}, headers=_auth("user_b"))

    assert r.status_code == 500
    assert r.json()["error"] == "Campaign is busy, please retry"
    assert store.conflicts == 3


def test_store_outage_is_service_unavailable(api, state):
    class _DownStore(InMemoryCampaignStore):
        def run_transaction(self, fn):
            raise StoreUnavailable(message="Campaign store unavailable: throttled")

    state["store"] = _DownStore()

    r = api.post("/api/cleanup/join", json={"campaignId": "camp_1"}, headers=_auth("user_b"))

    assert r.status_code == 503
    assert r.json()["ok"] is False


class _BrokenStore(InMemoryCampaignStore):
    def __init__(self, error: Exception):
        super().__init__()
        self.error = error

    def run_transaction(self, fn):
        raise self.error


def test_unexpected_failure_keeps_error_payload(api, state):
    state["store"] = _BrokenStore(RuntimeError("kaboom"))
    client = TestClient(api.app, raise_server_exceptions=False)

    r = client.post("/api/cleanup/join", json={"campaignId": "camp_1"}, headers=_auth("user_b"))

    assert r.status_code == 500
    assert not r.headers.get("content-type", "").startswith("application/problem+json")
    assert r.json() == {"ok": False, "error": "kaboom", "requestId": r.headers["X-Request-Id"]}


def test_unexpected_failure_message_is_generic_in_production(api, state, monkeypatch):
    production = get_settings().model_copy(update={"environment": "production"})
    monkeypatch.setattr("cleanup_api.errors.get_settings", lambda: production)
    state["store"] = _BrokenStore(RuntimeError("kaboom"))
    client = TestClient(api.app, raise_server_exceptions=False)

    r = client.post("/api/cleanup/create", json=CREATE_BODY, headers=_auth("user_a"))

    assert r.status_code == 500
    assert r.json()["ok"] is False
    assert r.json()["error"] == "Internal server error"


def test_leaked_storage_error_keeps_error_payload(api, state):
    state["store"] = _BrokenStore(DdbInternal(message="DDB_TABLE_NAME is not set", operation="Config"))

    r = api.post("/api/cleanup/join", json={"campaignId": "camp_1"}, headers=_auth("user_b"))

    assert r.status_code == 500
    assert r.json() == {
        "ok": False,
        "error": "DDB_TABLE_NAME is not set",
        "requestId": r.headers["X-Request-Id"],
    }


def test_get_campaign_is_public(api, store):
    store.seed_campaign(make_campaign("camp_1", participant_count=2, current_price=620))

    r = api.get("/api/cleanup/camp_1")

    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["campaign"]["id"] == "camp_1"
    assert body["campaign"]["location"] == {"lat": 19.076, "lng": 72.8777, "address": "Juhu Beach"}
    assert body["participantCount"] == 2
    assert body["currentPrice"] == 620
    assert body["nextPrice"] == 591
    assert "isParticipant" not in body


def test_get_campaign_personalizes_for_signed_in_user(api, store):
    store.seed_campaign(make_campaign("camp_1"))
    store.seed_participant(
        Participant(campaign_id="camp_1", user_id="creator", payment_intent_id="pi_1", amount_paid=649)
    )

    mine = api.get("/api/cleanup/camp_1", headers=_auth("creator")).json()
    theirs = api.get("/api/cleanup/camp_1", headers=_auth("someone_else")).json()
    bad_token = api.get("/api/cleanup/camp_1", headers={"Authorization": "Bearer garbage"})

    assert mine["isParticipant"] is True
    assert theirs["isParticipant"] is False
    assert bad_token.status_code == 200
    assert "isParticipant" not in bad_token.json()


def test_get_campaign_hides_next_price_once_locked(api, store):
    store.seed_campaign(make_campaign("camp_1", participant_count=20, current_price=99, campaign_state="locked"))

    body = api.get("/api/cleanup/camp_1").json()

    assert body["campaign"]["campaignState"] == "locked"
    assert body["nextPrice"] is None


def test_get_unknown_campaign(api):
    r = api.get("/api/cleanup/camp_missing")
    assert r.status_code == 404
    assert r.json()["ok"] is False
    assert r.json()["error"] == "Campaign not found"


def test_end_to_end_create_join_read(api, store):
    created = api.post("/api/cleanup/create", json=CREATE_BODY, headers=_auth("user_a")).json()
    cid = created["campaignId"]

    for uid in ("user_b", "user_c"):
        assert api.post("/api/cleanup/join", json={"campaignId": cid}, headers=_auth(uid)).status_code == 200

    body = api.get(f"/api/cleanup/{cid}", headers=_auth("user_c")).json()
    assert body["participantCount"] == 3
    assert body["currentPrice"] == 591
    assert body["nextPrice"] == 562
    assert body["isParticipant"] is True
    assert {p.amount_paid for p in store.participants(cid)} == {649, 620, 591}
