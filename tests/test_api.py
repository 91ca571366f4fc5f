import pytest
from fastapi.testclient import TestClient

from cansend import crud, main
from cansend.database import db_session
from cansend.lookup import TransferCheckError


@pytest.fixture
def client(seeded, monkeypatch, make_insight):
    async def insight(from_name, to_name, currency_code):
        return make_insight(is_supported=False, confidence=20, fee=2.0, hours=6)

    monkeypatch.setattr(main.lookup, "insight_fn", insight)
    with TestClient(main.app) as c:
        yield c


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_ready_reports_db(client):
    body = client.get("/ready").json()

    assert body["status"] == "ok"
    assert any(c["name"] == "db:select1" and c["ok"] for c in body["checks"])


def test_selftest_counts_reference_data(client):
    body = client.get("/selftest").json()

    ref = next(c for c in body["checks"] if c["name"] == "db:reference_data")
    assert ref["extra"] == {"psps": 3, "currencies": 2, "routes": 2}


def test_reference_lists_only_active_and_sorted(client):
    providers = client.get("/api/providers").json()
    currencies = client.get("/api/currencies").json()

    assert [p["display_name"] for p in providers] == ["PayPal", "Revolut", "Wise"]
    assert [c["code"] for c in currencies] == ["EUR", "USD"]


def test_reference_refresh_picks_up_new_rows(client):
    assert len(client.get("/api/providers").json()) == 3
    with db_session() as db:
        crud.upsert_provider(db, name="n26", display_name="N26")

    # still cached
    assert len(client.get("/api/providers").json()) == 3

    assert client.post("/api/reference/refresh").json() == {"ok": True}
    assert len(client.get("/api/providers").json()) == 4


def test_check_supported_route(client, seeded):
    resp = client.post(
        "/api/transfers/check",
        json={"from_psp_id": seeded["wise"], "to_psp_id": seeded["revolut"], "currency_id": seeded["eur"]},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "yes"
    assert body["status_color"] == "hsl(var(--success))"
    # (90 + 20) / 2
    assert body["confidence_level"] == 55
    assert body["estimated_fee_percentage"] == 2.0
    assert body["affiliate_url"] == "https://revolut.com/referral/?referral-code=canisenddotapp"
    assert body["notes"] == "SEPA transfer.\n\nAI Analysis: model notes"


def test_check_unknown_route_uses_ai(client, seeded):
    resp = client.post(
        "/api/transfers/check",
        json={"from_psp_id": seeded["revolut"], "to_psp_id": seeded["paypal"], "currency_id": seeded["usd"]},
    )

    body = resp.json()
    assert body["source"] == "ai"
    assert body["status"] == "no"
    assert body["affiliate_url"] is None


def test_check_same_provider_is_422(client, seeded):
    resp = client.post(
        "/api/transfers/check",
        json={"from_psp_id": seeded["wise"], "to_psp_id": seeded["wise"], "currency_id": seeded["eur"]},
    )

    assert resp.status_code == 422


def test_check_missing_field_is_422(client, seeded):
    resp = client.post("/api/transfers/check", json={"from_psp_id": seeded["wise"], "currency_id": seeded["eur"]})

    assert resp.status_code == 422


def test_check_unknown_currency_is_422(client, seeded):
    resp = client.post(
        "/api/transfers/check",
        json={"from_psp_id": seeded["wise"], "to_psp_id": seeded["revolut"], "currency_id": "XXX"},
    )

    assert resp.status_code == 422
    assert resp.json()["error"] == "invalid_query"


def test_check_collaborator_failure_is_503(client, seeded, monkeypatch):
    async def failing_check(query):
        raise TransferCheckError("route store unavailable")

    monkeypatch.setattr(main.lookup, "check", failing_check)

    resp = client.post(
        "/api/transfers/check",
        json={"from_psp_id": seeded["wise"], "to_psp_id": seeded["revolut"], "currency_id": seeded["eur"]},
    )

    assert resp.status_code == 503
    body = resp.json()
    assert body["error"] == "lookup_failed"
    assert body["retryable"] is True
    assert "status" not in body


def test_click_endpoint_records_click(client, seeded):
    resp = client.post(f"/api/routes/{seeded['supported_route']}/clicks", headers={"user-agent": "pytest-agent"})

    assert resp.status_code == 202
    with db_session() as db:
        assert crud.count_clicks(db, seeded["supported_route"]) == 1


def test_click_endpoint_never_fails(client):
    resp = client.post("/api/routes/does-not-exist/clicks")

    assert resp.status_code == 202


def test_affiliate_redirect(client, seeded):
    resp = client.get(f"/go/{seeded['supported_route']}", follow_redirects=False)

    assert resp.status_code == 307
    assert resp.headers["location"] == "https://revolut.com/referral/?referral-code=canisenddotapp"
    with db_session() as db:
        assert crud.count_clicks(db, seeded["supported_route"]) == 1


def test_affiliate_redirect_404_for_unsupported_route(client, seeded):
    resp = client.get(f"/go/{seeded['unsupported_route']}", follow_redirects=False)

    assert resp.status_code == 404


def test_telegram_webhook_always_200(client):
    resp = client.post("/webhook/telegram", content=b"not json", headers={"content-type": "application/json"})

    assert resp.status_code == 200
    assert resp.json()["ok"] is False
