"""
Adapters: Valuation cache backends.

SqlValuationCache keeps entries in the ledger database's valuation_cache
table, so every API worker sharing the database shares one cache and a
purchase handled by one worker invalidates the entry for all of them.
InMemoryValuationCache is the process-local fallback used when no shared
backend is configured, and in tests.
"""

import logging
import threading
import time
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.engine import Engine

from fracart.domain.marketplace.entities import Valuation
from fracart.domain.marketplace.ports import ValuationCache
from fracart.infrastructure.marketplace.sql_ledger_store import _parse_ts, _ts

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class SqlValuationCache(ValuationCache):
    """Valuation cache stored in the ledger database.

    Expiry is checked against wall-clock time because the entries are
    shared between processes.

    Args:
        engine: SQLAlchemy engine whose schema includes valuation_cache.
        clock: Wall clock in epoch seconds, injectable for tests.
    """

    def __init__(self, engine: Engine, clock: Callable[[], float] = time.time) -> None:
        self._engine = engine
        self._clock = clock

    def get(self, artwork_id: UUID) -> Optional[Valuation]:
        with self._engine.connect() as conn:
            row = conn.execute(
                text(
                    "SELECT valuation, as_of FROM valuation_cache "
                    "WHERE artwork_id = :artwork_id AND cached_at + ttl_seconds > :now"
                ),
                {"artwork_id": str(artwork_id), "now": self._clock()},
            ).first()
        if row is None:
            return None
        return Valuation(
            artwork_id=artwork_id,
            value=Decimal(str(row.valuation)).quantize(CENT),
            as_of=_parse_ts(row.as_of),
        )

    def set(self, artwork_id: UUID, valuation: Valuation, ttl_seconds: float) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                text(
                    "INSERT INTO valuation_cache "
                    "(artwork_id, valuation, as_of, cached_at, ttl_seconds) "
                    "VALUES (:artwork_id, :valuation, :as_of, :cached_at, :ttl_seconds) "
                    "ON CONFLICT (artwork_id) DO UPDATE SET "
                    "valuation = excluded.valuation, as_of = excluded.as_of, "
                    "cached_at = excluded.cached_at, ttl_seconds = excluded.ttl_seconds"
                ),
                {
                    "artwork_id": str(artwork_id),
                    "valuation": str(valuation.value),
                    "as_of": _ts(valuation.as_of),
                    "cached_at": self._clock(),
                    "ttl_seconds": float(ttl_seconds),
                },
            )

    def delete(self, artwork_id: Optional[UUID] = None) -> int:
        with self._engine.begin() as conn:
            if artwork_id is None:
                result = conn.execute(text("DELETE FROM valuation_cache"))
            else:
                result = conn.execute(
                    text("DELETE FROM valuation_cache WHERE artwork_id = :artwork_id"),
                    {"artwork_id": str(artwork_id)},
                )
            dropped = result.rowcount
        if dropped:
            logger.debug("Invalidated %d cached valuation(s)", dropped)
        return dropped


class InMemoryValuationCache(ValuationCache):
    """Process-local valuation cache.

    Args:
        clock: Monotonic clock in seconds, injectable for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._memory_cache: dict[UUID, tuple[float, Valuation]] = {}
        self._lock = threading.Lock()

    def get(self, artwork_id: UUID) -> Optional[Valuation]:
        with self._lock:
            entry = self._memory_cache.get(artwork_id)
            if entry is None:
                return None
            expires_at, valuation = entry
            if self._clock() >= expires_at:
                del self._memory_cache[artwork_id]
                return None
            return valuation

    def set(self, artwork_id: UUID, valuation: Valuation, ttl_seconds: float) -> None:
        with self._lock:
            self._memory_cache[artwork_id] = (self._clock() + ttl_seconds, valuation)

    def delete(self, artwork_id: Optional[UUID] = None) -> int:
        with self._lock:
            if artwork_id is None:
                dropped = len(self._memory_cache)
                self._memory_cache.clear()
                return dropped
            return 1 if self._memory_cache.pop(artwork_id, None) is not None else 0
