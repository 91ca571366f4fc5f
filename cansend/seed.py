# cansend/seed.py
"""
Load providers, currencies and routes from a JSON file.

    python -m cansend.seed data/seed.json

{
  "psps": [{"name": "revolut", "display_name": "Revolut", "affiliate_template": "..."}],
  "currencies": [{"code": "EUR", "name": "Euro", "symbol": "€"}],
  "routes": [{"from": "revolut", "to": "wise", "currency": "EUR", "is_supported": true, ...}]
}
"""
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict

from sqlalchemy.orm import Session

from cansend import crud
from cansend.database import db_session, init_db

logger = logging.getLogger(__name__)

ROUTE_FIELDS = (
    "is_supported",
    "confidence_level",
    "estimated_fee_percentage",
    "estimated_time_hours",
    "kyc_required",
    "notes",
)
PSP_FIELDS = ("display_name", "affiliate_template", "website_url", "logo_url", "description", "is_active")
CURRENCY_FIELDS = ("name", "symbol", "flag_url", "is_active")


def load_seed(db: Session, data: Dict[str, Any]) -> Dict[str, int]:
    psp_ids: Dict[str, str] = {}
    for row in data.get("psps", []):
        psp = crud.upsert_provider(db, name=row["name"], **{k: row[k] for k in PSP_FIELDS if k in row})
        psp_ids[psp.name] = psp.id

    currency_ids: Dict[str, str] = {}
    for row in data.get("currencies", []):
        cur = crud.upsert_currency(db, code=row["code"], **{k: row[k] for k in CURRENCY_FIELDS if k in row})
        currency_ids[cur.code] = cur.id

    routes = 0
    for row in data.get("routes", []):
        try:
            from_id = psp_ids[row["from"]]
            to_id = psp_ids[row["to"]]
            currency_id = currency_ids[row["currency"].upper()]
        except KeyError as e:
            raise ValueError(f"route {row!r} references unknown provider/currency {e}") from e

        crud.upsert_route(
            db,
            from_psp_id=from_id,
            to_psp_id=to_id,
            currency_id=currency_id,
            **{k: row[k] for k in ROUTE_FIELDS if k in row},
        )
        routes += 1

    return {"psps": len(psp_ids), "currencies": len(currency_ids), "routes": routes}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Seed providers, currencies and transfer routes.")
    parser.add_argument("path", type=Path, help="JSON seed file")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)

    data = json.loads(args.path.read_text(encoding="utf-8"))
    init_db()
    with db_session() as db:
        counts = load_seed(db, data)

    logger.info("Seeded %s", counts)
    print(f"psps={counts['psps']} currencies={counts['currencies']} routes={counts['routes']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
