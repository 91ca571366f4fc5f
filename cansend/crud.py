# cansend/crud.py
from __future__ import annotations

from decimal import Decimal
from typing import Optional, List

from sqlalchemy.orm import Session

from cansend import models


def _d(x) -> Decimal | None:
    if x is None:
        return None
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


# -------- Providers / currencies (reference lists) --------

def list_active_providers(db: Session) -> List[models.PSP]:
    return (
        db.query(models.PSP)
        .filter(models.PSP.is_active.is_(True))
        .order_by(models.PSP.display_name.asc())
        .all()
    )


def list_active_currencies(db: Session) -> List[models.Currency]:
    return (
        db.query(models.Currency)
        .filter(models.Currency.is_active.is_(True))
        .order_by(models.Currency.code.asc())
        .all()
    )


# -------- Routes --------

def find_route(db: Session, from_psp_id: str, to_psp_id: str, currency_id: str) -> models.TransferRoute | None:
    """
    At most one row per (from, to, currency).
    "No row" is a normal outcome (None); DB errors propagate.
    """
    return (
        db.query(models.TransferRoute)
        .filter(
            models.TransferRoute.from_psp_id == from_psp_id,
            models.TransferRoute.to_psp_id == to_psp_id,
            models.TransferRoute.currency_id == currency_id,
        )
        .one_or_none()
    )


def get_route(db: Session, route_id: str) -> models.TransferRoute | None:
    return db.query(models.TransferRoute).filter(models.TransferRoute.id == route_id).first()


# -------- Affiliate clicks --------

def record_click(
    db: Session,
    route_id: str,
    *,
    user_ip: str | None = None,
    user_agent: str | None = None,
    referrer: str | None = None,
) -> models.AffiliateClick:
    row = models.AffiliateClick(
        route_id=route_id,
        user_ip=user_ip,
        user_agent=user_agent,
        referrer=referrer,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def count_clicks(db: Session, route_id: str) -> int:
    return db.query(models.AffiliateClick).filter(models.AffiliateClick.route_id == route_id).count()


# -------- Upserts (seed) --------

def upsert_provider(
    db: Session,
    *,
    name: str,
    display_name: str,
    affiliate_template: Optional[str] = None,
    website_url: Optional[str] = None,
    logo_url: Optional[str] = None,
    description: Optional[str] = None,
    is_active: bool = True,
) -> models.PSP:
    name = name.strip()
    psp = db.query(models.PSP).filter(models.PSP.name == name).first()
    if psp is None:
        psp = models.PSP(name=name)

    psp.display_name = display_name
    psp.affiliate_template = affiliate_template
    psp.website_url = website_url
    psp.logo_url = logo_url
    psp.description = description
    psp.is_active = bool(is_active)

    db.add(psp)
    db.commit()
    db.refresh(psp)
    return psp


def upsert_currency(
    db: Session,
    *,
    code: str,
    name: str,
    symbol: Optional[str] = None,
    flag_url: Optional[str] = None,
    is_active: bool = True,
) -> models.Currency:
    code = code.upper().strip()
    cur = db.query(models.Currency).filter(models.Currency.code == code).first()
    if cur is None:
        cur = models.Currency(code=code)

    cur.name = name
    cur.symbol = symbol
    cur.flag_url = flag_url
    cur.is_active = bool(is_active)

    db.add(cur)
    db.commit()
    db.refresh(cur)
    return cur


def upsert_route(
    db: Session,
    *,
    from_psp_id: str,
    to_psp_id: str,
    currency_id: str,
    is_supported: bool,
    confidence_level: Optional[int] = None,
    estimated_fee_percentage=None,
    estimated_time_hours=None,
    kyc_required: Optional[bool] = None,
    notes: Optional[str] = None,
) -> models.TransferRoute:
    if from_psp_id == to_psp_id:
        raise ValueError("route endpoints must be different providers")
    if confidence_level is not None and not 0 <= int(confidence_level) <= 100:
        raise ValueError("confidence_level must be within 0..100")

    fee = _d(estimated_fee_percentage)
    hours = _d(estimated_time_hours)
    if fee is not None and fee < 0:
        raise ValueError("estimated_fee_percentage must be >= 0")
    if hours is not None and hours < 0:
        raise ValueError("estimated_time_hours must be >= 0")

    route = find_route(db, from_psp_id, to_psp_id, currency_id)
    if route is None:
        route = models.TransferRoute(
            from_psp_id=from_psp_id,
            to_psp_id=to_psp_id,
            currency_id=currency_id,
        )

    route.is_supported = bool(is_supported)
    route.confidence_level = None if confidence_level is None else int(confidence_level)
    route.estimated_fee_percentage = fee
    route.estimated_time_hours = hours
    route.kyc_required = kyc_required
    route.notes = notes

    db.add(route)
    db.commit()
    db.refresh(route)
    return route
