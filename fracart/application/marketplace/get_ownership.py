"""
Use cases: Ownership of a single artwork.

GetOwnershipUseCase
    Input: GetOwnershipQuery (user_id, artwork_id)
    Output: OwnershipResult
GetCapTableUseCase
    Input: artwork id
    Output: CapTableResult

Side effects: None (read-only queries).
Failure cases: ArtworkNotFoundError.
"""

import logging
from uuid import UUID

from fracart.application.marketplace.dtos import (
    CapTableEntry,
    CapTableResult,
    GetOwnershipQuery,
    OwnershipResult,
)
from fracart.domain.marketplace.errors import ArtworkNotFoundError
from fracart.domain.marketplace.ownership_aggregator import OwnershipAggregator
from fracart.domain.marketplace.ports import LedgerStore

logger = logging.getLogger(__name__)


def _require_artwork(store: LedgerStore, artwork_id: UUID) -> None:
    if store.get_artwork(artwork_id) is None:
        raise ArtworkNotFoundError(str(artwork_id))


class GetOwnershipUseCase:
    """Returns a user's cumulative stake in one artwork."""

    def __init__(self, store: LedgerStore, aggregator: OwnershipAggregator) -> None:
        self._store = store
        self._aggregator = aggregator

    def execute(self, query: GetOwnershipQuery) -> OwnershipResult:
        logger.info("Ownership lookup: user=%s artwork=%s", query.user_id, query.artwork_id)
        _require_artwork(self._store, query.artwork_id)

        summary = self._aggregator.ownership_of(query.user_id, query.artwork_id)
        return OwnershipResult(
            user_id=summary.user_id,
            artwork_id=summary.artwork_id,
            shares_owned=summary.shares_owned,
            purchase_price=summary.purchase_price,
            transaction_ids=[t.id for t in summary.transactions],
        )


class GetCapTableUseCase:
    """Returns every buyer's stake in an artwork and the aggregate total."""

    def __init__(self, store: LedgerStore, aggregator: OwnershipAggregator) -> None:
        self._store = store
        self._aggregator = aggregator

    def execute(self, artwork_id: UUID) -> CapTableResult:
        logger.info("Cap table lookup: artwork=%s", artwork_id)
        _require_artwork(self._store, artwork_id)

        table = self._aggregator.cap_table(artwork_id)
        return CapTableResult(
            artwork_id=table.artwork_id,
            total_percentage=table.total_percentage,
            unowned_percentage=table.unowned_percentage,
            owners=[
                CapTableEntry(user_id=user_id, shares_owned=shares)
                for user_id, shares in table.shares_by_user.items()
            ],
            warnings=[w.message for w in table.warnings],
        )
