"""
Use case: Buy an ownership stake in an artwork.

Input: RequestContext, PurchaseFractionsCommand
Output: PurchaseResult
Side effects: Appends a completed fraction_purchase transaction and
    decrements the artwork's availability in the same atomic write.
    Invalidates the artwork's cached valuation and emits
    TransactionCompleted.
Failure cases: ArtworkNotFoundError, ValidationError, ConflictError
    (insufficient fractions or artwork not purchasable).
"""

import logging
import math
from decimal import ROUND_HALF_UP, Decimal

from fracart.application.marketplace.dtos import PurchaseFractionsCommand, PurchaseResult
from fracart.domain.marketplace.entities import (
    HUNDRED,
    RequestContext,
    Transaction,
    TransactionKind,
    TransactionStatus,
    utcnow,
)
from fracart.domain.marketplace.errors import ArtworkNotFoundError, ValidationError
from fracart.domain.marketplace.events import TransactionCompleted
from fracart.domain.marketplace.ports import EventPublisher, LedgerStore, ValuationPort

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def units_for(ownership_percentage: Decimal, fractions_total: int) -> int:
    """Availability units consumed by a stake: ceil(pct * total / 100), at least 1."""
    exact = ownership_percentage * fractions_total / HUNDRED
    return max(1, math.ceil(exact))


class PurchaseFractionsUseCase:
    """Orchestrates a primary-issuance fraction purchase.

    The stake is priced at the artwork's list price per ownership point
    and sold by the artwork's owner. The buyer is always the caller.
    """

    def __init__(
        self,
        store: LedgerStore,
        valuation: ValuationPort,
        publisher: EventPublisher,
    ) -> None:
        self._store = store
        self._valuation = valuation
        self._publisher = publisher

    def execute(self, ctx: RequestContext, command: PurchaseFractionsCommand) -> PurchaseResult:
        logger.info(
            "Purchase request: user=%s artwork=%s pct=%s",
            ctx.user_id,
            command.artwork_id,
            command.ownership_percentage,
        )

        percentage = Decimal(str(command.ownership_percentage))
        if percentage <= 0 or percentage > HUNDRED:
            raise ValidationError("Ownership percentage must be in (0, 100]")

        artwork = self._store.get_artwork(command.artwork_id)
        if artwork is None:
            raise ArtworkNotFoundError(str(command.artwork_id))
        if artwork.owner_user_id == ctx.user_id:
            raise ValidationError("Owners cannot buy fractions of their own artwork")

        units = units_for(percentage, artwork.fractions_total)
        amount = (artwork.price_per_percent * percentage).quantize(CENT, rounding=ROUND_HALF_UP)
        if amount <= 0:
            raise ValidationError(
                f"Stake of {percentage}% is too small to price; the minimum charge is {CENT}"
            )
        per_fraction = (amount / units).quantize(CENT, rounding=ROUND_HALF_UP)

        txn = Transaction(
            buyer_user_id=ctx.user_id,
            seller_user_id=artwork.owner_user_id,
            artwork_id=artwork.id,
            amount=amount,
            currency=artwork.price_denom,
            kind=TransactionKind.FRACTION_PURCHASE,
            status=TransactionStatus.COMPLETED,
            fraction_units=units,
            metadata={
                "ownership_percentage": str(percentage),
                "fraction_count": units,
                "purchase_price_per_fraction": str(per_fraction),
            },
            created_at=utcnow(),
        )
        recorded = self._store.record_transaction(txn)

        # The implied price moved; drop the stale estimate.
        self._valuation.invalidate(artwork.id)

        remaining = self._store.get_artwork(artwork.id)
        logger.info(
            "Purchase %s completed: %s%% of artwork=%s for %s %s",
            recorded.id,
            percentage,
            artwork.id,
            amount,
            recorded.currency,
        )
        self._publisher.publish(
            TransactionCompleted(
                transaction_id=recorded.id,
                artwork_id=artwork.id,
                buyer_user_id=ctx.user_id,
                amount=amount,
                ownership_percentage=percentage,
            )
        )

        return PurchaseResult(
            transaction_id=recorded.id,
            artwork_id=artwork.id,
            buyer_user_id=ctx.user_id,
            ownership_percentage=percentage,
            amount=amount,
            currency=recorded.currency,
            fraction_units=units,
            price_per_fraction=per_fraction,
            fractions_remaining=remaining.fractions_available if remaining else 0,
            created_at=recorded.created_at,
        )
