# cansend/lookup.py
"""
Per-query orchestration: validate, fetch route + AI insight in parallel,
reconcile. Shared by the HTTP API and the Telegram bot.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from cansend import crud
from cansend.core.config import settings
from cansend.database import db_session
from cansend.insights import get_insight
from cansend.reconciler import AffiliatePolicy, reconcile
from cansend.reference_cache import ReferenceCache, find_currency, find_provider, reference_cache
from cansend.schemas import AIInsight, RouteRecord, TransferDisplay, TransferQuery

logger = logging.getLogger(__name__)

InsightFn = Callable[..., Awaitable[Optional[AIInsight]]]


class InvalidQueryError(ValueError):
    """Query rejected before any lookup was issued."""


class TransferCheckError(RuntimeError):
    """A collaborator failed; no partial result may be shown."""


def load_route(from_psp_id: str, to_psp_id: str, currency_id: str) -> Optional[RouteRecord]:
    with db_session() as db:
        row = crud.find_route(db, from_psp_id, to_psp_id, currency_id)
        return RouteRecord.model_validate(row) if row else None


def track_click(
    route_id: str,
    *,
    user_ip: str | None = None,
    user_agent: str | None = None,
    referrer: str | None = None,
) -> bool:
    """Record an affiliate click. Failures are logged, never raised."""
    try:
        with db_session() as db:
            crud.record_click(db, route_id, user_ip=user_ip, user_agent=user_agent, referrer=referrer)
        return True
    except Exception:
        logger.exception("Failed to track affiliate click for route %s", route_id)
        return False


class TransferLookup:
    def __init__(
        self,
        *,
        cache: ReferenceCache | None = None,
        insight_fn: InsightFn = get_insight,
        route_fn: Callable[[str, str, str], Optional[RouteRecord]] = load_route,
        affiliate: AffiliatePolicy | None = None,
    ):
        self.cache = cache or reference_cache
        self.insight_fn = insight_fn
        self.route_fn = route_fn
        self.affiliate = affiliate or AffiliatePolicy(
            referral_code=settings.REFERRAL_CODE,
            provider_filter=settings.AFFILIATE_PROVIDER_FILTER,
        )

    def _resolve(self, query: TransferQuery):
        from_psp = find_provider(query.from_psp_id, self.cache)
        to_psp = find_provider(query.to_psp_id, self.cache)
        currency = find_currency(query.currency_id, self.cache)

        missing = [
            name
            for name, value in (("from_psp_id", from_psp), ("to_psp_id", to_psp), ("currency_id", currency))
            if value is None
        ]
        if missing:
            raise InvalidQueryError(f"Unknown or inactive: {', '.join(missing)}")
        return from_psp, to_psp, currency

    async def check(self, query: TransferQuery) -> TransferDisplay:
        try:
            from_psp, to_psp, currency = await asyncio.to_thread(self._resolve, query)
        except SQLAlchemyError as e:
            logger.error("Reference lookup failed: %s", e)
            raise TransferCheckError("reference data unavailable") from e

        route_res, insight_res = await asyncio.gather(
            asyncio.to_thread(self.route_fn, query.from_psp_id, query.to_psp_id, query.currency_id),
            self.insight_fn(from_psp.display_name, to_psp.display_name, currency.code),
            return_exceptions=True,
        )

        if isinstance(route_res, BaseException):
            logger.error("Route lookup failed: %r", route_res)
            raise TransferCheckError("route store unavailable") from route_res
        if isinstance(insight_res, BaseException):
            logger.error("AI insight failed: %r", insight_res)
            raise TransferCheckError("AI insight unavailable") from insight_res

        logger.info(
            "Transfer check %s -> %s (%s): route=%s ai_confidence=%s",
            from_psp.name,
            to_psp.name,
            currency.code,
            route_res.id if route_res else None,
            insight_res.confidence if insight_res else None,
        )

        return reconcile(
            route_res,
            insight_res,
            query,
            from_psp=from_psp,
            to_psp=to_psp,
            currency=currency,
            affiliate=self.affiliate,
        )

    def affiliate_url_for_route(self, route_id: str) -> Optional[str]:
        """Affiliate link of a stored, supported route (used by the redirect)."""
        with db_session() as db:
            row = crud.get_route(db, route_id)
            if row is None or not row.is_supported:
                return None
            to_psp = find_provider(row.to_psp_id, self.cache)
        return self.affiliate.url_for(to_psp)


lookup = TransferLookup()
