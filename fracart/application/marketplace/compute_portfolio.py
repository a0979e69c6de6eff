"""
Use case: Compute the calling user's portfolio.

Input: RequestContext
Output: PortfolioView
Side effects: None (read-only; may populate the valuation cache).
Failure cases: None for valuation problems. Holdings whose valuation is
    unavailable are valued at cost basis and flagged as partial.
"""

import logging

from fracart.application.marketplace.dtos import (
    AllocationResult,
    HoldingResult,
    PortfolioStatsResult,
    PortfolioView,
)
from fracart.domain.marketplace.entities import RequestContext
from fracart.domain.marketplace.portfolio_service import PortfolioService

logger = logging.getLogger(__name__)


class ComputePortfolioUseCase:
    """Maps the portfolio service's result onto application DTOs."""

    def __init__(self, portfolio_service: PortfolioService) -> None:
        self._portfolio_service = portfolio_service

    def execute(self, ctx: RequestContext) -> PortfolioView:
        logger.info("Computing portfolio for user=%s", ctx.user_id)

        result = self._portfolio_service.compute_portfolio(ctx.user_id)
        stats = result.stats

        return PortfolioView(
            user_id=result.user_id,
            stats=PortfolioStatsResult(
                total_value=stats.total_value,
                total_invested=stats.total_invested,
                total_gains=stats.total_gains,
                gains_percentage=stats.gains_percentage,
                artworks_owned=stats.artworks_owned,
                active_transactions=stats.active_transactions,
                pending_transactions=stats.pending_transactions,
            ),
            holdings=[
                HoldingResult(
                    artwork_id=h.artwork_id,
                    artwork_title=h.artwork_title,
                    shares_owned=h.shares_owned,
                    purchase_price=h.purchase_price,
                    current_value=h.current_value,
                    gains=h.gains,
                    gains_percentage=h.gains_percentage,
                    transaction_count=h.transaction_count,
                    valuation_as_of=h.valuation_as_of,
                    degraded=h.degraded,
                )
                for h in result.holdings
            ],
            allocation=[
                AllocationResult(
                    artwork_id=s.artwork_id,
                    artwork_title=s.artwork_title,
                    current_value=s.current_value,
                    percentage=s.percentage,
                )
                for s in result.allocation
            ],
            warnings=result.warnings,
            partial=result.is_partial,
        )
