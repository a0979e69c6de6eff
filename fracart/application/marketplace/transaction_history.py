"""
Use cases: Transaction history and CSV export.

GetTransactionHistoryUseCase
    Input: TransactionHistoryQuery (direction, search, ordering)
    Output: TransactionHistoryResult with totals bought, sold and pending
ExportTransactionsUseCase
    Input: TransactionHistoryQuery
    Output: ExportResult (CSV text)

Side effects: None (read-only queries).
Failure cases: ValidationError (unknown direction or sort column).
"""

import csv
import io
import logging
from datetime import date
from decimal import Decimal
from uuid import UUID

from fracart.application.marketplace.choices import HISTORY_DIRECTIONS, parse_choice
from fracart.application.marketplace.dtos import (
    ExportResult,
    TransactionHistoryQuery,
    TransactionHistoryResult,
    TransactionResult,
)
from fracart.domain.marketplace.entities import Transaction, TransactionStatus
from fracart.domain.marketplace.errors import ValidationError
from fracart.domain.marketplace.filters import TransactionFilter, TransactionOrder
from fracart.domain.marketplace.ports import LedgerStore

logger = logging.getLogger(__name__)

CSV_HEADER = ["Date", "Type", "Artwork", "Amount", "Currency", "Status", "Transaction ID"]


class GetTransactionHistoryUseCase:
    """Lists the transactions a user took part in, as buyer or seller."""

    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    def execute(self, query: TransactionHistoryQuery) -> TransactionHistoryResult:
        logger.info(
            "Transaction history: user=%s direction=%s order=%s",
            query.user_id,
            query.direction,
            query.order_by,
        )
        txn_filter = self._build_filter(query)
        titles: dict[UUID, str] = {}

        rows: list[TransactionResult] = []
        for txn in self._store.query_transactions(txn_filter):
            title = self._title(titles, txn.artwork_id)
            if not self._matches_search(query.search, txn, title):
                continue
            rows.append(self._to_result(txn, title))

        return TransactionHistoryResult(
            transactions=rows,
            total_bought=sum(
                (r.amount for r in rows if r.buyer_user_id == query.user_id), Decimal("0")
            ),
            total_sold=sum(
                (r.amount for r in rows if r.seller_user_id == query.user_id), Decimal("0")
            ),
            pending_count=sum(1 for r in rows if r.status == TransactionStatus.PENDING.value),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _build_filter(query: TransactionHistoryQuery) -> TransactionFilter:
        if query.direction not in HISTORY_DIRECTIONS:
            raise ValidationError(
                f"Invalid direction '{query.direction}'; expected one of: "
                + ", ".join(HISTORY_DIRECTIONS)
            )
        order_by = (
            parse_choice(TransactionOrder, query.order_by, "order_by")
            or TransactionOrder.CREATED_AT
        )

        criteria: dict = {"participant_id": query.user_id}
        if query.direction == "buy":
            criteria = {"buyer_id": query.user_id}
        elif query.direction == "sell":
            criteria = {"seller_id": query.user_id}
        elif query.direction in ("pending", "completed"):
            criteria["status"] = TransactionStatus(query.direction)

        return TransactionFilter(order_by=order_by, descending=query.descending, **criteria)

    def _title(self, cache: dict[UUID, str], artwork_id: UUID) -> str:
        if artwork_id not in cache:
            artwork = self._store.get_artwork(artwork_id)
            cache[artwork_id] = artwork.title if artwork is not None else "Unknown"
        return cache[artwork_id]

    @staticmethod
    def _matches_search(search: str | None, txn: Transaction, title: str) -> bool:
        if not search:
            return True
        needle = search.strip().lower()
        return needle in title.lower() or needle in txn.kind.value

    @staticmethod
    def _to_result(txn: Transaction, title: str) -> TransactionResult:
        return TransactionResult(
            id=txn.id,
            artwork_id=txn.artwork_id,
            artwork_title=title,
            buyer_user_id=txn.buyer_user_id,
            seller_user_id=txn.seller_user_id,
            kind=txn.kind.value,
            status=txn.status.value,
            amount=txn.amount,
            currency=txn.currency,
            ownership_percentage=txn.ownership_percentage,
            created_at=txn.created_at,
        )


class ExportTransactionsUseCase:
    """Renders a user's filtered transaction history as CSV."""

    def __init__(self, history: GetTransactionHistoryUseCase) -> None:
        self._history = history

    def execute(self, query: TransactionHistoryQuery, today: date | None = None) -> ExportResult:
        result = self._history.execute(query)

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for row in result.transactions:
            writer.writerow(
                [
                    row.created_at.date().isoformat(),
                    row.kind,
                    row.artwork_title,
                    str(row.amount),
                    row.currency,
                    row.status,
                    str(row.id),
                ]
            )

        stamp = (today or date.today()).isoformat()
        logger.info("Exported %d transactions for user=%s", len(result.transactions), query.user_id)
        return ExportResult(
            filename=f"transactions_{stamp}.csv",
            content=buffer.getvalue(),
            row_count=len(result.transactions),
        )
