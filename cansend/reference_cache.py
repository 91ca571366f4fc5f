# cansend/reference_cache.py
"""Read-through cache for the provider / currency reference lists."""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from cansend import crud
from cansend.core.config import settings
from cansend.database import db_session
from cansend.schemas import CurrencyOut, PSPOut

logger = logging.getLogger(__name__)

PROVIDERS_KEY = "psps"
CURRENCIES_KEY = "currencies"


class ReferenceCache:
    """Thread-safe TTL cache keyed by a static resource identifier.

    Values are whatever the loader returns; callers store detached
    pydantic objects, never live ORM rows.
    """

    def __init__(self, ttl_seconds: int = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._items: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str, loader: Callable[[], Any]) -> Any:
        with self._lock:
            item = self._items.get(key)
            if item is not None and self._clock() < item["expires_at"]:
                return item["value"]

        # load outside the lock; a concurrent miss just loads twice
        value = loader()
        with self._lock:
            self._items[key] = {"value": value, "expires_at": self._clock() + self.ttl_seconds}
        logger.debug("Reference cache refreshed: %s", key)
        return value

    def invalidate(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._items.clear()
            else:
                self._items.pop(key, None)


def _load_providers() -> List[PSPOut]:
    with db_session() as db:
        return [PSPOut.model_validate(p) for p in crud.list_active_providers(db)]


def _load_currencies() -> List[CurrencyOut]:
    with db_session() as db:
        return [CurrencyOut.model_validate(c) for c in crud.list_active_currencies(db)]


reference_cache = ReferenceCache(ttl_seconds=settings.REFERENCE_CACHE_TTL_SECONDS)


def get_providers(cache: ReferenceCache | None = None) -> List[PSPOut]:
    return (cache or reference_cache).get(PROVIDERS_KEY, _load_providers)


def get_currencies(cache: ReferenceCache | None = None) -> List[CurrencyOut]:
    return (cache or reference_cache).get(CURRENCIES_KEY, _load_currencies)


def find_provider(psp_id: str, cache: ReferenceCache | None = None) -> PSPOut | None:
    for p in get_providers(cache):
        if p.id == psp_id:
            return p
    return None


def find_currency(currency_id: str, cache: ReferenceCache | None = None) -> CurrencyOut | None:
    for c in get_currencies(cache):
        if c.id == currency_id:
            return c
    return None
