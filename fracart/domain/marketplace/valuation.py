"""
Valuation estimator: the one authorized source of current-value numbers.

Implements:
- MarketDriftPolicy: last implied purchase price (or list price) times a
  bounded market-index factor. Deterministic and auditable, never random.
- ValuationEstimator: per-artwork TTL cache in front of the policy.
  Store or index failures surface as UpstreamUnavailable.
"""

import logging
import threading
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import UUID

from fracart.domain.marketplace.entities import (
    HUNDRED,
    Artwork,
    Transaction,
    TransactionKind,
    TransactionStatus,
    Valuation,
)
from fracart.domain.marketplace.errors import (
    ArtworkNotFoundError,
    MarketplaceDomainError,
    UpstreamUnavailable,
    ValidationError,
)
from fracart.domain.marketplace.filters import TransactionFilter
from fracart.domain.marketplace.ports import (
    LedgerStore,
    MarketIndexPort,
    ValuationCache,
    ValuationPort,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
HALF_CENT = CENT / 2

# Largest share of the implied price that cent rounding may account for.
PRICE_TOLERANCE = Decimal("0.005")


class MarketDriftPolicy:
    """Reference valuation policy.

    value = base * clamp(factor, 1 - max_drift, 1 + max_drift)

    where base is the whole-artwork price implied by the most recent
    completed purchase that carries a price signal
    (amount * 100 / ownership_percentage), or the list price when there
    is none.

    A purchase carries a price signal when its charge is positive and
    cent rounding of that charge moves the implied price by at most
    PRICE_TOLERANCE of it. Very small stakes cost a cent or two and would
    otherwise drag the whole artwork's value toward zero.

    Args:
        market_index: Source of the market-index factor.
        max_drift: Largest allowed relative move away from base (0.0-1.0).
    """

    def __init__(self, market_index: MarketIndexPort, max_drift: Decimal = Decimal("0.30")) -> None:
        max_drift = Decimal(str(max_drift))
        if not Decimal("0") <= max_drift < Decimal("1"):
            raise ValidationError(f"max_drift must be in [0, 1), got {max_drift}")
        self._market_index = market_index
        self._lower = Decimal("1") - max_drift
        self._upper = Decimal("1") + max_drift

    @staticmethod
    def is_price_signal(purchase: Transaction) -> bool:
        pct = purchase.ownership_percentage
        if purchase.amount <= 0 or pct <= 0:
            return False
        implied = purchase.amount * HUNDRED / pct
        rounding_error = HALF_CENT * HUNDRED / pct
        return rounding_error <= implied * PRICE_TOLERANCE

    @classmethod
    def base_value(cls, artwork: Artwork, last_purchase: Optional[Transaction]) -> Decimal:
        if last_purchase is not None and cls.is_price_signal(last_purchase):
            return last_purchase.amount * HUNDRED / last_purchase.ownership_percentage
        return artwork.price_amount

    def bounded_factor(self, artwork: Artwork) -> Decimal:
        factor = Decimal(str(self._market_index.factor_for(artwork)))
        return min(max(factor, self._lower), self._upper)

    def value(self, artwork: Artwork, last_purchase: Optional[Transaction]) -> Valuation:
        if last_purchase is not None and not self.is_price_signal(last_purchase):
            last_purchase = None
        base = self.base_value(artwork, last_purchase)
        value = (base * self.bounded_factor(artwork)).quantize(CENT, rounding=ROUND_HALF_UP)
        as_of = last_purchase.created_at if last_purchase is not None else artwork.created_at
        return Valuation(artwork_id=artwork.id, value=value, as_of=as_of)


class ValuationEstimator(ValuationPort):
    """Caches policy output per artwork for a bounded time-to-live.

    A failing cache backend degrades to recomputation; it never fails
    the estimate.

    Args:
        store: Ledger store used to read the artwork and its purchases.
        policy: Valuation policy.
        cache: Valuation cache backend. None disables caching.
        ttl_seconds: Lifetime of a cache entry. 0 disables caching.
    """

    def __init__(
        self,
        store: LedgerStore,
        policy: MarketDriftPolicy,
        cache: Optional[ValuationCache] = None,
        ttl_seconds: float = 300.0,
    ) -> None:
        self._store = store
        self._policy = policy
        self._cache = cache if ttl_seconds > 0 else None
        self._ttl = ttl_seconds
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "errors": 0}

    @property
    def stats(self) -> dict:
        with self._lock:
            return dict(self._stats)

    def _count(self, key: str) -> None:
        with self._lock:
            self._stats[key] += 1

    def estimate(self, artwork_id: UUID) -> Valuation:
        """Return the current valuation of an artwork.

        Raises:
            ArtworkNotFoundError: If the artwork does not exist.
            UpstreamUnavailable: If the store or market index failed.
        """
        cached = self._get(artwork_id)
        if cached is not None:
            self._count("hits")
            return cached
        self._count("misses")

        try:
            artwork = self._store.get_artwork(artwork_id)
            if artwork is None:
                raise ArtworkNotFoundError(str(artwork_id))
            valuation = self._policy.value(artwork, self._last_priced_purchase(artwork_id))
        except MarketplaceDomainError:
            raise
        except Exception as exc:
            self._count("errors")
            logger.warning("Valuation failed for artwork=%s: %s", artwork_id, exc)
            raise UpstreamUnavailable("valuation", str(exc)) from exc

        self._set(artwork_id, valuation)
        return valuation

    def invalidate(self, artwork_id: Optional[UUID] = None) -> int:
        """Drop one cached valuation, or all of them when no id is given."""
        if self._cache is None:
            return 0
        try:
            return self._cache.delete(artwork_id)
        except Exception:
            logger.warning("Valuation cache DELETE failed for artwork=%s", artwork_id)
            return 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _last_priced_purchase(self, artwork_id: UUID) -> Optional[Transaction]:
        purchases = TransactionFilter(
            artwork_id=artwork_id,
            kind=TransactionKind.FRACTION_PURCHASE,
            status=TransactionStatus.COMPLETED,
        )
        priced = (
            t for t in self._store.query_transactions(purchases) if self._policy.is_price_signal(t)
        )
        return next(priced, None)

    def _get(self, artwork_id: UUID) -> Optional[Valuation]:
        if self._cache is None:
            return None
        try:
            return self._cache.get(artwork_id)
        except Exception:
            logger.warning("Valuation cache GET failed for artwork=%s", artwork_id)
            return None

    def _set(self, artwork_id: UUID, valuation: Valuation) -> None:
        if self._cache is None:
            return
        try:
            self._cache.set(artwork_id, valuation, self._ttl)
        except Exception:
            logger.warning("Valuation cache SET failed for artwork=%s", artwork_id)
