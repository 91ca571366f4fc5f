# cansend/main.py
from __future__ import annotations

import asyncio
import logging
from typing import List

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError

from cansend.bot.transfer_bot import initialize_bot, process_webhook, shutdown_bot
from cansend.core.config import settings
from cansend.database import init_db
from cansend.lookup import InvalidQueryError, TransferCheckError, lookup, track_click
from cansend.monitoring import run_selftest
from cansend.reference_cache import get_currencies, get_providers, reference_cache
from cansend.schemas import CurrencyOut, PSPOut, TransferDisplay, TransferQuery

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Can I Send?")


@app.on_event("startup")
async def startup_event():
    # DB first, then the bot
    try:
        init_db()
        logger.info("DB initialized")
    except Exception:
        logger.exception("DB init failed (startup). Continuing to boot app.")

    try:
        await initialize_bot()
    except Exception:
        logger.exception("Bot init failed (startup). Continuing to boot app.")


@app.on_event("shutdown")
async def shutdown_event():
    try:
        await shutdown_bot()
    except Exception:
        logger.exception("Bot shutdown failed")


def _client_meta(request: Request) -> dict:
    return {
        "user_ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
        "referrer": request.headers.get("referer"),
    }


@app.get("/")
async def root():
    return {"message": "Can I Send? is running"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/ready")
async def ready():
    result = run_selftest(quick=True)
    return {"status": result.get("status", "unknown"), "checks": result.get("checks", [])}


@app.get("/selftest")
async def selftest():
    return run_selftest(quick=False)


# --------- Reference lists ---------

@app.get("/api/providers", response_model=List[PSPOut])
async def list_providers():
    try:
        return await asyncio.to_thread(get_providers)
    except SQLAlchemyError:
        logger.exception("Provider list failed")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="providers unavailable")


@app.get("/api/currencies", response_model=List[CurrencyOut])
async def list_currencies():
    try:
        return await asyncio.to_thread(get_currencies)
    except SQLAlchemyError:
        logger.exception("Currency list failed")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="currencies unavailable")


@app.post("/api/reference/refresh")
async def refresh_reference():
    reference_cache.invalidate()
    return {"ok": True}


# --------- Transfer check ---------

@app.post("/api/transfers/check", response_model=TransferDisplay)
async def check_transfer(query: TransferQuery):
    try:
        return await lookup.check(query)
    except InvalidQueryError as e:
        return JSONResponse(
            {"ok": False, "error": "invalid_query", "detail": str(e)},
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )
    except TransferCheckError:
        logger.exception("Transfer check failed")
        return JSONResponse(
            {
                "ok": False,
                "error": "lookup_failed",
                "detail": "Failed to check transfer route. Please try again.",
                "retryable": True,
            },
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


# --------- Affiliate clicks ---------

@app.post("/api/routes/{route_id}/clicks", status_code=status.HTTP_202_ACCEPTED)
async def record_affiliate_click(route_id: str, request: Request, background_tasks: BackgroundTasks):
    background_tasks.add_task(track_click, route_id, **_client_meta(request))
    return {"ok": True}


@app.get("/go/{route_id}")
async def affiliate_redirect(route_id: str, request: Request, background_tasks: BackgroundTasks):
    try:
        url = await asyncio.to_thread(lookup.affiliate_url_for_route, route_id)
    except SQLAlchemyError:
        logger.exception("Affiliate redirect lookup failed")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="route store unavailable")

    if not url:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no affiliate link for this route")

    background_tasks.add_task(track_click, route_id, **_client_meta(request))
    return RedirectResponse(url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


# --------- Telegram ---------

@app.post("/webhook/telegram")
async def telegram_webhook(request: Request):
    """
    Telegram expects fast 200 responses.
    Even if we hit an internal exception, we return 200 to avoid retries storms.
    """
    try:
        update_dict = await request.json()
    except Exception:
        logger.warning("Webhook received invalid JSON")
        return JSONResponse({"ok": False, "error": "invalid_json"}, status_code=status.HTTP_200_OK)

    try:
        await process_webhook(update_dict)
        return JSONResponse({"ok": True}, status_code=status.HTTP_200_OK)
    except Exception:
        logger.exception("Webhook processing failed")
        return JSONResponse({"ok": False}, status_code=status.HTTP_200_OK)
