# cansend/insights.py
"""
AI insight collaborator.

Asks Gemini for an opinion on a (from, to, currency) transfer and turns the
answer into an AIInsight. Never raises: any upstream problem degrades to
FALLBACK_INSIGHT.
"""
from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Dict, Optional

import httpx

from cansend.core.config import settings
from cansend.schemas import AIInsight

logger = logging.getLogger(__name__)

FALLBACK_INSIGHT = AIInsight(
    is_supported=False,
    confidence=40,
    estimated_fee=3.0,
    estimated_time=24,
    notes="Unable to get real-time data. This is a fallback estimate.",
    source_info="Fallback analysis due to API unavailability",
)

# strict-decode defaults for fields the model left out
JSON_DEFAULTS: Dict[str, Any] = {
    "confidence": 50,
    "estimatedFeePercentage": 3.0,
    "estimatedTimeHours": 24,
    "isSupported": False,
    "notes": "AI analysis based on current market data",
    "sourceInfo": "Gemini AI analysis of current PSP capabilities",
}

SUPPORT_KEYWORDS = ("yes", "supported", "possible")
API_KEYWORDS = ("api", "integration")
HEURISTIC_NOTES_CHARS = 200

_JSON_SPAN = re.compile(r"\{[\s\S]*\}")

PROMPT_TEMPLATE = """
As a financial technology expert, analyze the current money transfer capabilities between payment service providers.

Query: Can I send {currency} {amount} from {from_psp} to {to_psp}?

Please provide a detailed analysis covering:
1. Current direct integration status between these PSPs
2. Estimated transfer fees (as percentage)
3. Typical processing time in hours
4. Required KYC/verification levels
5. Geographic restrictions if any
6. Alternative routing options if direct transfer isn't possible
7. Recent changes or updates to their APIs/partnerships

Focus on factual, current information. Consider:
- Official API documentation and partnerships
- Industry reports and fintech news
- Regulatory compliance requirements
- Technical limitations and capabilities

Format your response as JSON with these exact fields:
{{
  "isSupported": boolean,
  "confidence": number (0-100),
  "estimatedFeePercentage": number,
  "estimatedTimeHours": number,
  "kycRequired": boolean,
  "notes": "detailed explanation",
  "alternativeRoutes": ["option1", "option2"],
  "lastUpdated": "YYYY-MM-DD",
  "sourceInfo": "summary of information sources"
}}
"""


class InsightUnavailable(Exception):
    """Upstream returned nothing usable. Internal to this module."""


def build_prompt(from_psp: str, to_psp: str, currency: str, amount: int) -> str:
    return PROMPT_TEMPLATE.format(from_psp=from_psp, to_psp=to_psp, currency=currency, amount=amount)


def build_payload(prompt: str) -> Dict[str, Any]:
    return {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": {
            "temperature": 0.3,
            "topK": 1,
            "topP": 1,
            "maxOutputTokens": 2048,
        },
        "safetySettings": [
            {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
            {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
        ],
    }


def _finite(value: Any) -> float:
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"non-finite number: {value!r}")
    return number


def _clamp_confidence(value: Any) -> int:
    return max(0, min(100, int(round(_finite(value)))))


def _non_negative(value: Any) -> float:
    return max(0.0, _finite(value))


def _pick(data: Dict[str, Any], key: str) -> Any:
    value = data.get(key)
    return JSON_DEFAULTS[key] if value is None else value


def _parse_strict(text: str) -> AIInsight:
    match = _JSON_SPAN.search(text)
    if not match:
        raise ValueError("no JSON object in response")

    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("JSON response is not an object")

    is_supported = _pick(data, "isSupported")
    if not isinstance(is_supported, bool):
        raise ValueError(f"isSupported is not a boolean: {is_supported!r}")

    return AIInsight(
        is_supported=is_supported,
        confidence=_clamp_confidence(_pick(data, "confidence")),
        estimated_fee=_non_negative(_pick(data, "estimatedFeePercentage")),
        estimated_time=_non_negative(_pick(data, "estimatedTimeHours")),
        notes=str(_pick(data, "notes")),
        source_info=str(_pick(data, "sourceInfo")),
    )


def _parse_heuristic(text: str) -> AIInsight:
    lowered = text.lower()
    is_supported = any(k in lowered for k in SUPPORT_KEYWORDS)
    has_api = any(k in lowered for k in API_KEYWORDS)

    if is_supported:
        confidence = 75 if has_api else 60
    else:
        confidence = 35

    if "low fee" in lowered:
        fee = 1.5
    elif "high fee" in lowered:
        fee = 4.0
    else:
        fee = 2.5

    if "instant" in lowered:
        hours = 1.0
    elif "days" in lowered:
        hours = 48.0
    else:
        hours = 12.0

    return AIInsight(
        is_supported=is_supported,
        confidence=confidence,
        estimated_fee=fee,
        estimated_time=hours,
        notes=text[:HEURISTIC_NOTES_CHARS] + "...",
        source_info="AI analysis of current market information",
    )


def parse_insight_text(text: str) -> AIInsight:
    """Strict JSON decode first, keyword heuristic second. Never raises."""
    try:
        return _parse_strict(text)
    except (ValueError, TypeError, OverflowError) as e:
        # json.JSONDecodeError is a ValueError
        logger.warning("AI response not valid JSON, using keyword analysis: %s", e)
        return _parse_heuristic(text)


def extract_text(data: Dict[str, Any]) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        raise InsightUnavailable("no candidates in Gemini response")
    try:
        return candidates[0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise InsightUnavailable(f"malformed Gemini candidate: {e}") from e


async def _generate(prompt: str) -> str:
    url = f"{settings.GEMINI_API_BASE.rstrip('/')}/models/{settings.GEMINI_MODEL}:generateContent"

    async with httpx.AsyncClient(timeout=settings.GEMINI_TIMEOUT_SECONDS) as client:
        resp = await client.post(
            url,
            params={"key": settings.GEMINI_API_KEY},
            json=build_payload(prompt),
        )
        if resp.status_code >= 400:
            logger.error("Gemini API error %s: %s", resp.status_code, resp.text)
            raise InsightUnavailable(f"Gemini API error: {resp.status_code}")
        data = resp.json()

    return extract_text(data)


async def get_insight(
    from_psp: str,
    to_psp: str,
    currency: str,
    *,
    amount: Optional[int] = None,
) -> Optional[AIInsight]:
    """None when AI insights are switched off; the fallback insight on any failure."""
    if not settings.AI_INSIGHTS_ENABLED:
        return None

    if not settings.GEMINI_API_KEY:
        logger.info("GEMINI_API_KEY missing, using fallback")
        return FALLBACK_INSIGHT

    if amount is None:
        amount = settings.DEFAULT_TRANSFER_AMOUNT

    logger.info("Analyzing transfer route: %s -> %s (%s)", from_psp, to_psp, currency)

    try:
        text = await _generate(build_prompt(from_psp, to_psp, currency, amount))
    except (httpx.HTTPError, InsightUnavailable, ValueError) as e:
        logger.error("AI insight request failed, using fallback: %s", e)
        return FALLBACK_INSIGHT
    except Exception:
        logger.exception("Unexpected AI insight failure, using fallback")
        return FALLBACK_INSIGHT

    logger.debug("Raw Gemini text: %s", text)
    insight = parse_insight_text(text)
    logger.info("AI insight: supported=%s confidence=%s", insight.is_supported, insight.confidence)
    return insight
