# cansend/reconciler.py
"""
Merge a stored route and an AI insight into one transfer decision.

reconcile() picks a variant (RouteBacked / AIOnly / Fallback) from what is
present and maps it to the display shape with to_display(). Pure: no I/O.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Union

from cansend.schemas import AIInsight, CurrencyOut, PSPOut, RouteRecord, TransferDisplay, TransferQuery

MAYBE_THRESHOLD = 30
FALLBACK_CONFIDENCE = 40
FALLBACK_NOTES = (
    "Limited information available. "
    "This route may be possible through intermediary services."
)
REFERRAL_PLACEHOLDER = "{{referral_code}}"

STATUS_COLORS = {
    "yes": "hsl(var(--success))",
    "no": "hsl(var(--destructive))",
    "maybe": "hsl(var(--warning))",
}


@dataclass(frozen=True)
class RouteBacked:
    route: RouteRecord
    insight: Optional[AIInsight] = None


@dataclass(frozen=True)
class AIOnly:
    insight: AIInsight


@dataclass(frozen=True)
class Fallback:
    pass


TransferResult = Union[RouteBacked, AIOnly, Fallback]


@dataclass(frozen=True)
class AffiliatePolicy:
    referral_code: str = "canisenddotapp"
    # optional case-insensitive substring the destination provider name must contain
    provider_filter: str = ""

    def url_for(self, psp: Optional[PSPOut]) -> Optional[str]:
        if psp is None or not psp.affiliate_template:
            return None
        if self.provider_filter and self.provider_filter.lower() not in psp.name.lower():
            return None
        return psp.affiliate_template.replace(REFERRAL_PLACEHOLDER, self.referral_code)


def status_color(status: str) -> str:
    return STATUS_COLORS[status]


def blend_confidence(route_confidence: Optional[int], ai_confidence: Optional[int]) -> Optional[int]:
    """Average rounded half-up; either side alone when the other is missing."""
    if route_confidence is None:
        return ai_confidence
    if ai_confidence is None:
        return route_confidence
    return int(math.floor((route_confidence + ai_confidence) / 2 + 0.5))


def _status_from_confidence(confidence: Optional[int]) -> str:
    if confidence is not None and confidence > MAYBE_THRESHOLD:
        return "maybe"
    return "no"


def _prefer_ai(ai_value: Optional[float], route_value: Optional[float]) -> Optional[float]:
    return ai_value if ai_value is not None else route_value


def classify(route: Optional[RouteRecord], insight: Optional[AIInsight]) -> TransferResult:
    if route is not None:
        return RouteBacked(route=route, insight=insight)
    if insight is not None:
        return AIOnly(insight=insight)
    return Fallback()


def to_display(
    result: TransferResult,
    *,
    from_psp: Optional[PSPOut] = None,
    to_psp: Optional[PSPOut] = None,
    currency: Optional[CurrencyOut] = None,
    affiliate: AffiliatePolicy = AffiliatePolicy(),
) -> TransferDisplay:
    refs = {"from_psp": from_psp, "to_psp": to_psp, "currency": currency}

    if isinstance(result, RouteBacked):
        route, ai = result.route, result.insight
        confidence = blend_confidence(route.confidence_level, ai.confidence if ai else None)
        status = "yes" if route.is_supported else _status_from_confidence(confidence)

        notes = route.notes
        if ai is not None:
            notes = f"{route.notes or ''}\n\nAI Analysis: {ai.notes}".strip()

        return TransferDisplay(
            status=status,
            status_color=status_color(status),
            source="route",
            route_id=route.id,
            is_supported=route.is_supported,
            confidence_level=confidence,
            estimated_fee_percentage=_prefer_ai(ai.estimated_fee if ai else None, route.estimated_fee_percentage),
            estimated_time_hours=_prefer_ai(ai.estimated_time if ai else None, route.estimated_time_hours),
            kyc_required=route.kyc_required,
            notes=notes,
            affiliate_url=affiliate.url_for(to_psp) if status == "yes" else None,
            **refs,
        )

    if isinstance(result, AIOnly):
        ai = result.insight
        status = "yes" if ai.is_supported else _status_from_confidence(ai.confidence)

        return TransferDisplay(
            status=status,
            status_color=status_color(status),
            source="ai",
            is_supported=ai.is_supported,
            confidence_level=ai.confidence,
            estimated_fee_percentage=ai.estimated_fee,
            estimated_time_hours=ai.estimated_time,
            notes=f"Google Gemini Powered Analysis: {ai.notes}\n\nSource: {ai.source_info}",
            affiliate_url=affiliate.url_for(to_psp) if status == "yes" else None,
            **refs,
        )

    return TransferDisplay(
        status="maybe",
        status_color=status_color("maybe"),
        source="fallback",
        is_supported=False,
        confidence_level=FALLBACK_CONFIDENCE,
        notes=FALLBACK_NOTES,
        **refs,
    )


def reconcile(
    route: Optional[RouteRecord],
    insight: Optional[AIInsight],
    query: TransferQuery,
    *,
    from_psp: Optional[PSPOut] = None,
    to_psp: Optional[PSPOut] = None,
    currency: Optional[CurrencyOut] = None,
    affiliate: AffiliatePolicy = AffiliatePolicy(),
) -> TransferDisplay:
    """Single decision for one query. Total over the presence matrix; never raises."""
    # a route from another key would be a caller bug; treat it as absent
    if route is not None and (
        route.from_psp_id != query.from_psp_id
        or route.to_psp_id != query.to_psp_id
        or route.currency_id != query.currency_id
    ):
        route = None

    return to_display(
        classify(route, insight),
        from_psp=from_psp,
        to_psp=to_psp,
        currency=currency,
        affiliate=affiliate,
    )
