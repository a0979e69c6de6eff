"""
Ownership aggregation over the transaction ledger.

Folds completed fraction purchases into per-artwork holding skeletons
(shares owned and cost basis) without valuation. The fold is a pure
function of the transaction set: the same ledger snapshot always
yields the same holdings, in the same order.

Totals above 100% are reported as ConsistencyWarning and never clamped.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from fracart.domain.marketplace.entities import (
    HUNDRED,
    Holding,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from fracart.domain.marketplace.errors import ConsistencyWarning
from fracart.domain.marketplace.filters import TransactionFilter
from fracart.domain.marketplace.ports import LedgerStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggregationResult:
    """Holding skeletons for one user plus any anomalies found."""

    user_id: UUID
    holdings: list[Holding] = field(default_factory=list)
    warnings: list[ConsistencyWarning] = field(default_factory=list)


@dataclass(frozen=True)
class OwnershipSummary:
    """A user's cumulative ownership of a single artwork."""

    user_id: UUID
    artwork_id: UUID
    shares_owned: Decimal
    purchase_price: Decimal
    transactions: list[Transaction] = field(default_factory=list)


@dataclass(frozen=True)
class CapTable:
    """Ownership of one artwork across all buyers."""

    artwork_id: UUID
    shares_by_user: dict[UUID, Decimal] = field(default_factory=dict)
    total_percentage: Decimal = Decimal("0")
    warnings: list[ConsistencyWarning] = field(default_factory=list)

    @property
    def unowned_percentage(self) -> Decimal:
        return HUNDRED - self.total_percentage


def _over_allocation(artwork_id: UUID, total: Decimal, scope: str) -> ConsistencyWarning:
    warning = ConsistencyWarning(
        f"{scope} ownership of artwork {artwork_id} totals {total}%, above 100%",
        artwork_id=str(artwork_id),
        total_percentage=str(total),
    )
    logger.warning("Consistency anomaly: %s", warning.message)
    return warning


def aggregate_holdings(user_id: UUID, transactions: Iterable[Transaction]) -> AggregationResult:
    """Group a user's completed purchases by artwork.

    Transactions not bought by ``user_id`` or not completed fraction
    purchases are ignored, so any superset of the ledger can be passed in.

    Args:
        user_id: The owning user.
        transactions: Ledger snapshot to fold.

    Returns:
        Holdings ordered by artwork id, with warnings for totals above 100%.
    """
    shares: dict[UUID, Decimal] = defaultdict(Decimal)
    cost: dict[UUID, Decimal] = defaultdict(Decimal)
    counts: dict[UUID, int] = defaultdict(int)

    for txn in transactions:
        if txn.buyer_user_id != user_id or not txn.is_completed_purchase:
            continue
        shares[txn.artwork_id] += txn.ownership_percentage
        cost[txn.artwork_id] += txn.amount
        counts[txn.artwork_id] += 1

    holdings: list[Holding] = []
    warnings: list[ConsistencyWarning] = []
    for artwork_id in sorted(shares, key=str):
        total = shares[artwork_id]
        if total > HUNDRED:
            warnings.append(_over_allocation(artwork_id, total, "User"))
        holdings.append(
            Holding(
                artwork_id=artwork_id,
                user_id=user_id,
                shares_owned=total,
                purchase_price=cost[artwork_id],
                transaction_count=counts[artwork_id],
            )
        )

    return AggregationResult(user_id=user_id, holdings=holdings, warnings=warnings)


class OwnershipAggregator:
    """Reads the ledger and derives ownership views.

    Holds no state of its own. Every call materializes one snapshot of
    the relevant transactions and folds it.
    """

    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    def _completed_purchases(self, **criteria) -> list[Transaction]:
        txn_filter = TransactionFilter(
            kind=TransactionKind.FRACTION_PURCHASE,
            status=TransactionStatus.COMPLETED,
            **criteria,
        )
        return list(self._store.query_transactions(txn_filter))

    def holdings_for_user(self, user_id: UUID) -> AggregationResult:
        """Return holding skeletons for every artwork the user owns a share of."""
        snapshot = self._completed_purchases(buyer_id=user_id)
        logger.debug(
            "Aggregating %d completed purchases for user=%s", len(snapshot), user_id
        )
        return aggregate_holdings(user_id, snapshot)

    def ownership_of(self, user_id: UUID, artwork_id: UUID) -> OwnershipSummary:
        """Return the user's cumulative ownership of one artwork."""
        snapshot = self._completed_purchases(buyer_id=user_id, artwork_id=artwork_id)
        return OwnershipSummary(
            user_id=user_id,
            artwork_id=artwork_id,
            shares_owned=sum((t.ownership_percentage for t in snapshot), Decimal("0")),
            purchase_price=sum((t.amount for t in snapshot), Decimal("0")),
            transactions=snapshot,
        )

    def cap_table(self, artwork_id: UUID) -> CapTable:
        """Return per-buyer ownership of an artwork and the overall total."""
        snapshot = self._completed_purchases(artwork_id=artwork_id)
        shares_by_user: dict[UUID, Decimal] = defaultdict(Decimal)
        for txn in snapshot:
            shares_by_user[txn.buyer_user_id] += txn.ownership_percentage

        total = sum(shares_by_user.values(), Decimal("0"))
        warnings = []
        if total > HUNDRED:
            warnings.append(_over_allocation(artwork_id, total, "Aggregate"))

        return CapTable(
            artwork_id=artwork_id,
            shares_by_user=dict(sorted(shares_by_user.items(), key=lambda kv: str(kv[0]))),
            total_percentage=total,
            warnings=warnings,
        )
