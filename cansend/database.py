# cansend/database.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session

from cansend.core.config import settings
from cansend.models import Base

logger = logging.getLogger(__name__)

_engine = None
_SessionLocal = None


def get_engine():
    global _engine, _SessionLocal
    if _engine is None:
        url = settings.database_url
        if not url:
            raise RuntimeError("DATABASE_URL is not set")

        connect_args = {}
        if url.startswith("sqlite"):
            # route lookups run in worker threads
            connect_args["check_same_thread"] = False

        _engine = create_engine(
            url,
            pool_pre_ping=True,
            future=True,
            connect_args=connect_args,
        )
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=_engine,
            future=True,
        )
    return _engine


def get_sessionmaker():
    if _SessionLocal is None:
        get_engine()
    return _SessionLocal


def dispose_engine() -> None:
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


@contextmanager
def db_session() -> Generator[Session, None, None]:
    SessionLocal = get_sessionmaker()
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# Plain SQL so the statements stay valid on both Postgres and SQLite.
_INDEX_DDL = [
    """CREATE INDEX IF NOT EXISTS ix_psps_active ON psps (is_active);""",
    """CREATE INDEX IF NOT EXISTS ix_currencies_active ON currencies (is_active);""",
    """CREATE INDEX IF NOT EXISTS ix_affiliate_clicks_clicked_at ON affiliate_clicks (clicked_at);""",
]


def _ensure_indexes(engine) -> None:
    """Create missing indexes (idempotent, never drops anything)."""
    with engine.begin() as conn:
        for stmt in _INDEX_DDL:
            conn.execute(text(stmt))


def init_db() -> None:
    engine = get_engine()

    Base.metadata.create_all(bind=engine, checkfirst=True)

    try:
        _ensure_indexes(engine)
    except Exception as e:
        logger.warning("Index creation skipped/failed (non-fatal): %s", e)
