# cansend/monitoring.py
from __future__ import annotations

import time
from typing import Any, Dict, List

from sqlalchemy import text

from cansend import models
from cansend.core.config import settings
from cansend.database import get_sessionmaker


def _check(name: str, ok: bool, detail: str = "", extra: Dict[str, Any] | None = None) -> Dict[str, Any]:
    row: Dict[str, Any] = {"name": name, "ok": bool(ok)}
    if detail:
        row["detail"] = detail
    if extra:
        row["extra"] = extra
    return row


def run_selftest(quick: bool = True) -> dict:
    checks: List[Dict[str, Any]] = []

    # --- ENV sanity ---
    checks.append(_check("env:DATABASE_URL", bool(settings.DATABASE_URL)))
    checks.append(_check("env:GEMINI_API_KEY", True, detail=(
        "set" if settings.GEMINI_API_KEY else "optional (fallback insights only)"
    )))
    checks.append(_check("env:BOT_TOKEN", True, detail=(
        "set" if settings.BOT_TOKEN else "optional (bot disabled)"
    )))

    # --- DB ---
    db_ok = False
    db_err = ""
    t0 = time.time()
    try:
        db = get_sessionmaker()()
        try:
            db.execute(text("SELECT 1"))
            db_ok = True
        finally:
            db.close()
    except Exception as e:
        db_err = repr(e)

    checks.append(_check("db:select1", db_ok, detail=db_err, extra={"ms": int((time.time() - t0) * 1000)}))

    # --- Reference data (non-blocking for quick) ---
    if not quick and db_ok:
        counts: Dict[str, int] = {}
        err = ""
        try:
            db = get_sessionmaker()()
            try:
                counts["psps"] = db.query(models.PSP).filter(models.PSP.is_active.is_(True)).count()
                counts["currencies"] = db.query(models.Currency).filter(models.Currency.is_active.is_(True)).count()
                counts["routes"] = db.query(models.TransferRoute).count()
            finally:
                db.close()
        except Exception as e:
            err = repr(e)

        ok = not err and counts.get("psps", 0) >= 2 and counts.get("currencies", 0) >= 1
        checks.append(_check("db:reference_data", ok, detail=err or "needs >= 2 providers and >= 1 currency", extra=counts))

    status = "ok" if all(c.get("ok") for c in checks) else "degraded"
    return {"status": status, "checks": checks}
