import json
from pathlib import Path

import pytest

from cansend import crud, seed
from cansend.database import db_session

SEED_FILE = Path(__file__).resolve().parent.parent / "data" / "seed.json"


def test_load_seed_file(db_ready):
    data = json.loads(SEED_FILE.read_text(encoding="utf-8"))

    with db_session() as db:
        counts = seed.load_seed(db, data)

    assert counts == {"psps": 4, "currencies": 3, "routes": 3}
    with db_session() as db:
        names = [p.name for p in crud.list_active_providers(db)]
        assert sorted(names) == ["n26", "paypal", "revolut", "wise"]


def test_load_seed_is_idempotent(db_ready):
    data = {
        "psps": [{"name": "wise", "display_name": "Wise"}, {"name": "revolut", "display_name": "Revolut"}],
        "currencies": [{"code": "eur", "name": "Euro"}],
        "routes": [{"from": "wise", "to": "revolut", "currency": "EUR", "is_supported": True, "confidence_level": 80}],
    }

    with db_session() as db:
        seed.load_seed(db, data)
    data["routes"][0]["confidence_level"] = 60
    with db_session() as db:
        seed.load_seed(db, data)

    with db_session() as db:
        routes = db.query(crud.models.TransferRoute).all()
        assert len(routes) == 1
        assert routes[0].confidence_level == 60


def test_load_seed_rejects_unknown_reference(db_ready):
    data = {
        "psps": [{"name": "wise", "display_name": "Wise"}],
        "currencies": [{"code": "EUR", "name": "Euro"}],
        "routes": [{"from": "wise", "to": "ghost", "currency": "EUR", "is_supported": True}],
    }

    with pytest.raises(ValueError):
        with db_session() as db:
            seed.load_seed(db, data)


def test_upsert_route_rejects_same_provider(seeded):
    with pytest.raises(ValueError):
        with db_session() as db:
            crud.upsert_route(
                db,
                from_psp_id=seeded["wise"],
                to_psp_id=seeded["wise"],
                currency_id=seeded["eur"],
                is_supported=True,
            )


def test_seed_cli(db_ready, tmp_path, capsys):
    path = tmp_path / "seed.json"
    path.write_text(json.dumps({"psps": [{"name": "wise", "display_name": "Wise"}]}), encoding="utf-8")

    assert seed.main([str(path)]) == 0
    assert "psps=1" in capsys.readouterr().out
