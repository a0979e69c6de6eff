"""
Portfolio service.

Composes the ownership aggregator with the valuation port to produce
per-user portfolio statistics and a ranked list of holdings.

Valuation failures never fail the portfolio: an artwork whose estimate
times out or is unavailable is valued flat at its cost basis and
reported as degraded.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from fracart.domain.marketplace.entities import (
    HUNDRED,
    Holding,
    PortfolioStats,
    TransactionKind,
    TransactionStatus,
    Valuation,
)
from fracart.domain.marketplace.errors import ConsistencyWarning, MarketplaceDomainError
from fracart.domain.marketplace.filters import TransactionFilter
from fracart.domain.marketplace.ownership_aggregator import OwnershipAggregator
from fracart.domain.marketplace.ports import LedgerStore, ValuationPort

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")


@dataclass(frozen=True)
class AllocationSlice:
    """Share of total portfolio value held in one artwork."""

    artwork_id: UUID
    artwork_title: str
    current_value: Decimal
    percentage: Decimal


@dataclass(frozen=True)
class PortfolioResult:
    """Portfolio view for one user.

    ``degraded_artworks`` lists holdings valued at cost basis because
    their valuation was unavailable.
    """

    user_id: UUID
    stats: PortfolioStats
    holdings: list[Holding] = field(default_factory=list)
    allocation: list[AllocationSlice] = field(default_factory=list)
    consistency_warnings: list[ConsistencyWarning] = field(default_factory=list)
    degraded_artworks: list[UUID] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.degraded_artworks)

    @property
    def warnings(self) -> list[str]:
        messages = [w.message for w in self.consistency_warnings]
        messages.extend(
            f"Valuation unavailable for artwork {artwork_id}; using cost basis"
            for artwork_id in self.degraded_artworks
        )
        return messages


class PortfolioService:
    """Builds portfolio views from the ledger.

    Args:
        store: Ledger store, used for titles and pending counts.
        aggregator: Ownership aggregator over the same store.
        valuation: Source of current artwork values.
        valuation_timeout: Bounded wait in seconds for all estimates.
        top_holdings: Number of holdings reported in the allocation.
        max_workers: Parallel valuation calls.
    """

    def __init__(
        self,
        store: LedgerStore,
        aggregator: OwnershipAggregator,
        valuation: ValuationPort,
        valuation_timeout: float = 2.0,
        top_holdings: int = 5,
        max_workers: int = 8,
    ) -> None:
        self._store = store
        self._aggregator = aggregator
        self._valuation = valuation
        self._valuation_timeout = valuation_timeout
        self._top_holdings = top_holdings
        self._max_workers = max_workers

    def compute_portfolio(self, user_id: UUID) -> PortfolioResult:
        """Compute stats, ranked holdings and allocation for a user.

        Pure over the ledger snapshot: an unchanged ledger and healthy
        valuations always yield identical output.
        """
        aggregation = self._aggregator.holdings_for_user(user_id)
        skeletons = aggregation.holdings
        valuations = self._estimate_all([h.artwork_id for h in skeletons])

        holdings: list[Holding] = []
        degraded: list[UUID] = []
        for skeleton in skeletons:
            valuation = valuations.get(skeleton.artwork_id)
            if valuation is None:
                degraded.append(skeleton.artwork_id)
                current_value = skeleton.purchase_price
                as_of = None
            else:
                current_value = (skeleton.shares_owned * valuation.unit_value).quantize(
                    CENT, rounding=ROUND_HALF_UP
                )
                as_of = valuation.as_of
            holdings.append(
                replace(
                    skeleton,
                    artwork_title=self._title(skeleton.artwork_id),
                    current_value=current_value,
                    valuation_as_of=as_of,
                    degraded=valuation is None,
                )
            )

        holdings.sort(key=lambda h: (-h.current_value, str(h.artwork_id)))
        stats = self._stats(user_id, holdings)

        if degraded:
            logger.warning(
                "Partial portfolio for user=%s: %d of %d holdings valued at cost basis",
                user_id,
                len(degraded),
                len(holdings),
            )

        return PortfolioResult(
            user_id=user_id,
            stats=stats,
            holdings=holdings,
            allocation=self._allocation(holdings, stats.total_value),
            consistency_warnings=list(aggregation.warnings),
            degraded_artworks=sorted(degraded, key=str),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _estimate_all(self, artwork_ids: list[UUID]) -> dict[UUID, Valuation]:
        """Run estimates in parallel and keep those that finish in time."""
        if not artwork_ids:
            return {}

        results: dict[UUID, Valuation] = {}
        executor = ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(artwork_ids)),
            thread_name_prefix="valuation",
        )
        try:
            futures: dict[UUID, Future] = {
                artwork_id: executor.submit(self._valuation.estimate, artwork_id)
                for artwork_id in artwork_ids
            }
            deadline = time.monotonic() + self._valuation_timeout
            for artwork_id, future in futures.items():
                remaining = max(0.0, deadline - time.monotonic())
                try:
                    results[artwork_id] = future.result(timeout=remaining)
                except FutureTimeoutError:
                    logger.warning("Valuation timed out for artwork=%s", artwork_id)
                except MarketplaceDomainError as exc:
                    logger.warning(
                        "Valuation unavailable for artwork=%s: %s", artwork_id, exc.message
                    )
        finally:
            # Do not wait on stragglers; their results are discarded.
            executor.shutdown(wait=False, cancel_futures=True)
        return results

    def _title(self, artwork_id: UUID) -> str:
        artwork = self._store.get_artwork(artwork_id)
        return artwork.title if artwork is not None else ""

    def _stats(self, user_id: UUID, holdings: list[Holding]) -> PortfolioStats:
        total_value = sum((h.current_value for h in holdings), ZERO)
        total_invested = sum((h.purchase_price for h in holdings), ZERO)
        total_gains = total_value - total_invested
        gains_percentage = total_gains / total_invested * HUNDRED if total_invested > 0 else ZERO

        pending = TransactionFilter(
            buyer_id=user_id,
            kind=TransactionKind.FRACTION_PURCHASE,
            status=TransactionStatus.PENDING,
        )
        return PortfolioStats(
            total_value=total_value,
            total_invested=total_invested,
            total_gains=total_gains,
            gains_percentage=gains_percentage,
            artworks_owned=sum(1 for h in holdings if h.shares_owned > 0),
            active_transactions=sum(h.transaction_count for h in holdings),
            pending_transactions=sum(1 for _ in self._store.query_transactions(pending)),
        )

    def _allocation(self, holdings: list[Holding], total_value: Decimal) -> list[AllocationSlice]:
        slices = []
        for holding in holdings[: self._top_holdings]:
            if total_value > 0:
                percentage = (holding.current_value / total_value * HUNDRED).quantize(
                    CENT, rounding=ROUND_HALF_UP
                )
            else:
                percentage = ZERO
            slices.append(
                AllocationSlice(
                    artwork_id=holding.artwork_id,
                    artwork_title=holding.artwork_title,
                    current_value=holding.current_value,
                    percentage=percentage,
                )
            )
        return slices
