"""Pytest configuration and fixtures."""
import os
import tempfile
from pathlib import Path

# settings are read at import time
_DB_FILE = Path(tempfile.gettempdir()) / f"cansend_test_{os.getpid()}.db"
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_FILE}"
os.environ["GEMINI_API_KEY"] = ""
os.environ["BOT_TOKEN"] = ""
os.environ["PUBLIC_BASE_URL"] = ""

import pytest

from cansend import crud
from cansend.database import db_session, dispose_engine, get_engine, init_db
from cansend.models import Base
from cansend.reference_cache import reference_cache
from cansend.schemas import AIInsight


@pytest.fixture
def db_ready():
    """Fresh schema per test."""
    init_db()
    reference_cache.invalidate()
    yield
    reference_cache.invalidate()
    Base.metadata.drop_all(bind=get_engine())


@pytest.fixture
def seeded(db_ready):
    """Revolut / Wise / PayPal, EUR / USD, one supported and one unsupported route."""
    with db_session() as db:
        revolut = crud.upsert_provider(
            db,
            name="revolut",
            display_name="Revolut",
            affiliate_template="https://revolut.com/referral/?referral-code={{referral_code}}",
        )
        wise = crud.upsert_provider(db, name="wise", display_name="Wise")
        paypal = crud.upsert_provider(db, name="paypal", display_name="PayPal")
        crud.upsert_provider(db, name="legacybank", display_name="Legacy Bank", is_active=False)
        eur = crud.upsert_currency(db, code="eur", name="Euro", symbol="€")
        usd = crud.upsert_currency(db, code="USD", name="US Dollar", symbol="$")

        supported = crud.upsert_route(
            db,
            from_psp_id=wise.id,
            to_psp_id=revolut.id,
            currency_id=eur.id,
            is_supported=True,
            confidence_level=90,
            estimated_fee_percentage=0.5,
            estimated_time_hours=1,
            kyc_required=True,
            notes="SEPA transfer.",
        )
        unsupported = crud.upsert_route(
            db,
            from_psp_id=paypal.id,
            to_psp_id=wise.id,
            currency_id=usd.id,
            is_supported=False,
            confidence_level=50,
        )

        return {
            "revolut": revolut.id,
            "wise": wise.id,
            "paypal": paypal.id,
            "eur": eur.id,
            "usd": usd.id,
            "supported_route": supported.id,
            "unsupported_route": unsupported.id,
        }


@pytest.fixture
def make_insight():
    def _make(is_supported=False, confidence=20, fee=None, hours=None, notes="model notes", source="model source"):
        return AIInsight(
            is_supported=is_supported,
            confidence=confidence,
            estimated_fee=fee,
            estimated_time=hours,
            notes=notes,
            source_info=source,
        )

    return _make


def pytest_sessionfinish(session, exitstatus):
    dispose_engine()
    if _DB_FILE.exists():
        _DB_FILE.unlink()
