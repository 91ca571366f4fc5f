import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from cansend import crud, insights
from cansend.database import db_session
from cansend.insights import FALLBACK_INSIGHT, get_insight
from cansend.lookup import InvalidQueryError, TransferCheckError, TransferLookup, track_click
from cansend.reconciler import AffiliatePolicy
from cansend.reference_cache import ReferenceCache
from cansend.schemas import TransferQuery


def _insight_stub(insight, calls=None):
    async def _fn(from_name, to_name, currency_code):
        if calls is not None:
            calls.append((from_name, to_name, currency_code))
        return insight

    return _fn


def _lookup(insight_fn, **kwargs):
    return TransferLookup(
        cache=ReferenceCache(ttl_seconds=60),
        insight_fn=insight_fn,
        affiliate=AffiliatePolicy(referral_code="ref123"),
        **kwargs,
    )


async def test_supported_route_blended_with_insight(seeded, make_insight):
    calls = []
    lookup = _lookup(_insight_stub(make_insight(confidence=70, fee=0.9), calls))
    query = TransferQuery(from_psp_id=seeded["wise"], to_psp_id=seeded["revolut"], currency_id=seeded["eur"])

    result = await lookup.check(query)

    assert calls == [("Wise", "Revolut", "EUR")]
    assert result.status == "yes"
    assert result.source == "route"
    assert result.route_id == seeded["supported_route"]
    assert result.confidence_level == 80
    assert result.estimated_fee_percentage == 0.9
    assert result.estimated_time_hours == 1
    assert result.kyc_required is True
    assert result.affiliate_url == "https://revolut.com/referral/?referral-code=ref123"
    assert result.from_psp.display_name == "Wise"
    assert result.currency.code == "EUR"


async def test_unsupported_route_with_fallback_insight(seeded):
    lookup = _lookup(_insight_stub(FALLBACK_INSIGHT))
    query = TransferQuery(from_psp_id=seeded["paypal"], to_psp_id=seeded["wise"], currency_id=seeded["usd"])

    result = await lookup.check(query)

    # (50 + 40) / 2
    assert result.confidence_level == 45
    assert result.status == "maybe"
    assert result.affiliate_url is None


async def test_missing_route_uses_insight_only(seeded, make_insight):
    lookup = _lookup(_insight_stub(make_insight(is_supported=False, confidence=20)))
    query = TransferQuery(from_psp_id=seeded["revolut"], to_psp_id=seeded["paypal"], currency_id=seeded["eur"])

    result = await lookup.check(query)

    assert result.source == "ai"
    assert result.status == "no"


async def test_missing_route_and_insight_falls_back(seeded):
    lookup = _lookup(_insight_stub(None))
    query = TransferQuery(from_psp_id=seeded["revolut"], to_psp_id=seeded["paypal"], currency_id=seeded["eur"])

    result = await lookup.check(query)

    assert result.source == "fallback"
    assert result.status == "maybe"
    assert result.confidence_level == 40


async def test_unknown_provider_is_rejected_before_lookups(seeded, make_insight):
    calls = []
    lookup = _lookup(_insight_stub(make_insight(), calls))
    query = TransferQuery(from_psp_id="nope", to_psp_id=seeded["revolut"], currency_id=seeded["eur"])

    with pytest.raises(InvalidQueryError):
        await lookup.check(query)
    assert calls == []


async def test_inactive_provider_is_rejected(seeded, make_insight):
    with db_session() as db:
        legacy = db.query(crud.models.PSP).filter_by(name="legacybank").one()
        legacy_id = legacy.id

    lookup = _lookup(_insight_stub(make_insight()))
    query = TransferQuery(from_psp_id=legacy_id, to_psp_id=seeded["revolut"], currency_id=seeded["eur"])

    with pytest.raises(InvalidQueryError):
        await lookup.check(query)


async def test_route_store_failure_is_query_level_error(seeded, make_insight):
    def broken_route(*args):
        raise OperationalError("SELECT", {}, Exception("connection refused"))

    lookup = _lookup(_insight_stub(make_insight()), route_fn=broken_route)
    query = TransferQuery(from_psp_id=seeded["wise"], to_psp_id=seeded["revolut"], currency_id=seeded["eur"])

    with pytest.raises(TransferCheckError):
        await lookup.check(query)


async def test_insight_failure_is_query_level_error(seeded):
    async def broken_insight(*args):
        raise RuntimeError("boom")

    lookup = _lookup(broken_insight)
    query = TransferQuery(from_psp_id=seeded["wise"], to_psp_id=seeded["revolut"], currency_id=seeded["eur"])

    with pytest.raises(TransferCheckError):
        await lookup.check(query)


async def test_lookups_run_concurrently(seeded, make_insight):
    started = asyncio.Event()

    async def waits_for_route(*args):
        await asyncio.wait_for(started.wait(), timeout=2)
        return make_insight(confidence=60)

    def route_fn(from_id, to_id, currency_id):
        started_loop.call_soon_threadsafe(started.set)
        return None

    started_loop = asyncio.get_running_loop()
    lookup = _lookup(waits_for_route, route_fn=route_fn)
    query = TransferQuery(from_psp_id=seeded["wise"], to_psp_id=seeded["revolut"], currency_id=seeded["eur"])

    result = await lookup.check(query)

    assert result.source == "ai"


def test_track_click_records_row(seeded):
    assert track_click(seeded["supported_route"], user_agent="pytest") is True

    with db_session() as db:
        assert crud.count_clicks(db, seeded["supported_route"]) == 1


def test_track_click_swallows_failures(db_ready, monkeypatch):
    def explode(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("db down"))

    monkeypatch.setattr(crud, "record_click", explode)

    assert track_click("route-x") is False


def test_affiliate_url_for_route(seeded):
    lookup = _lookup(_insight_stub(None))

    assert lookup.affiliate_url_for_route(seeded["supported_route"]) == (
        "https://revolut.com/referral/?referral-code=ref123"
    )
    assert lookup.affiliate_url_for_route(seeded["unsupported_route"]) is None
    assert lookup.affiliate_url_for_route("missing") is None


async def test_ai_switched_off_leaves_route_untouched(seeded, monkeypatch):
    monkeypatch.setattr(insights.settings, "AI_INSIGHTS_ENABLED", False)
    lookup = _lookup(get_insight)
    query = TransferQuery(from_psp_id=seeded["wise"], to_psp_id=seeded["revolut"], currency_id=seeded["eur"])

    result = await lookup.check(query)

    assert result.status == "yes"
    assert result.confidence_level == 90
    assert result.estimated_fee_percentage == 0.5
    assert result.estimated_time_hours == 1
    assert result.notes == "SEPA transfer."


async def test_ai_switched_off_without_route_is_fallback(seeded, monkeypatch):
    monkeypatch.setattr(insights.settings, "AI_INSIGHTS_ENABLED", False)
    lookup = _lookup(get_insight)
    query = TransferQuery(from_psp_id=seeded["revolut"], to_psp_id=seeded["paypal"], currency_id=seeded["eur"])

    result = await lookup.check(query)

    assert result.source == "fallback"
    assert result.confidence_level == 40
