"""
FastAPI router for the marketplace bounded context.

All routes delegate to use cases. No business logic here.
Input validation is handled by Pydantic schemas.
Error mapping is handled by centralized error handlers.
The caller is always taken from the auth-provider headers, never from
the request body.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status

from fracart.application.marketplace.auctions import (
    CancelAuctionUseCase,
    CloseAuctionUseCase,
    CreateAuctionUseCase,
    GetAuctionUseCase,
    ListAuctionsUseCase,
    PlaceBidUseCase,
)
from fracart.application.marketplace.compute_portfolio import ComputePortfolioUseCase
from fracart.application.marketplace.create_artwork import CreateArtworkUseCase
from fracart.application.marketplace.dtos import (
    AuctionCommand,
    CreateArtworkCommand,
    CreateAuctionCommand,
    GetOwnershipQuery,
    ListArtworksQuery,
    ListAuctionsQuery,
    PlaceBidCommand,
    PurchaseFractionsCommand,
    TransactionHistoryQuery,
)
from fracart.application.marketplace.get_ownership import GetCapTableUseCase, GetOwnershipUseCase
from fracart.application.marketplace.list_artworks import ListArtworksUseCase
from fracart.application.marketplace.purchase_fractions import PurchaseFractionsUseCase
from fracart.application.marketplace.transaction_history import (
    ExportTransactionsUseCase,
    GetTransactionHistoryUseCase,
)
from fracart.core.config import settings
from fracart.domain.marketplace.entities import RequestContext
from fracart.interfaces.marketplace.dependencies import (
    get_auction_use_case,
    get_cancel_auction_use_case,
    get_cap_table_use_case,
    get_close_auction_use_case,
    get_compute_portfolio_use_case,
    get_create_artwork_use_case,
    get_create_auction_use_case,
    get_export_transactions_use_case,
    get_list_artworks_use_case,
    get_list_auctions_use_case,
    get_ownership_use_case,
    get_place_bid_use_case,
    get_purchase_fractions_use_case,
    get_request_context,
    get_transaction_history_use_case,
)
from fracart.interfaces.marketplace.schemas import (
    ArtworkListResponse,
    ArtworkResponse,
    ArtworkSortParam,
    ArtworkStatusParam,
    AuctionDetailResponse,
    AuctionListResponse,
    AuctionResponse,
    AuctionStatusParam,
    CapTableResponse,
    CreateArtworkRequest,
    CreateAuctionRequest,
    DirectionParam,
    ErrorResponse,
    OwnershipResponse,
    PlaceBidRequest,
    PlaceBidResponse,
    PortfolioResponse,
    PurchaseFractionsRequest,
    PurchaseResponse,
    SortOrderParam,
    TransactionHistoryResponse,
    TransactionSortParam,
)
from fracart.shared.security.rate_limiting import HEAVY_RATE_LIMIT, limiter

router = APIRouter(prefix="/marketplace", tags=["marketplace"])

NOT_FOUND = {404: {"model": ErrorResponse}}
WRITE_ERRORS = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


# ------------------------------------------------------------------
# Artworks
# ------------------------------------------------------------------


@router.post(
    "/artworks",
    response_model=ArtworkResponse,
    status_code=status.HTTP_201_CREATED,
    responses=WRITE_ERRORS,
    summary="List an artwork",
    description="List a new artwork for fractional ownership. Artists only.",
)
def create_artwork(
    request: CreateArtworkRequest,
    ctx: RequestContext = Depends(get_request_context),
    use_case: CreateArtworkUseCase = Depends(get_create_artwork_use_case),
) -> ArtworkResponse:
    command = CreateArtworkCommand(
        title=request.title,
        description=request.description,
        price_amount=request.price_amount,
        fractions_total=request.fractions_total,
        price_denom=request.price_denom or settings.default_currency,
    )
    return ArtworkResponse.model_validate(use_case.execute(ctx, command))


@router.get(
    "/artworks",
    response_model=ArtworkListResponse,
    summary="Browse artworks",
    description="Search, filter and sort the artwork catalogue.",
)
def list_artworks(
    search: Optional[str] = Query(default=None, max_length=200),
    artwork_status: Optional[ArtworkStatusParam] = Query(default=None, alias="status"),
    min_price: Optional[Decimal] = Query(default=None, ge=0),
    max_price: Optional[Decimal] = Query(default=None, ge=0),
    sort: ArtworkSortParam = Query(default="newest"),
    use_case: ListArtworksUseCase = Depends(get_list_artworks_use_case),
) -> ArtworkListResponse:
    query = ListArtworksQuery(
        search=search,
        status=artwork_status,
        min_price=min_price,
        max_price=max_price,
        sort=sort,
    )
    results = use_case.execute(query)
    return ArtworkListResponse(
        artworks=[ArtworkResponse.model_validate(r) for r in results],
        count=len(results),
    )


@router.get(
    "/artworks/{artwork_id}",
    response_model=ArtworkResponse,
    responses=NOT_FOUND,
    summary="Get an artwork",
)
def get_artwork(
    artwork_id: UUID,
    use_case: ListArtworksUseCase = Depends(get_list_artworks_use_case),
) -> ArtworkResponse:
    return ArtworkResponse.model_validate(use_case.get(artwork_id))


@router.post(
    "/artworks/{artwork_id}/purchases",
    response_model=PurchaseResponse,
    status_code=status.HTTP_201_CREATED,
    responses=WRITE_ERRORS,
    summary="Buy fractions",
    description=(
        "Buy an ownership percentage of an artwork. Fails with 409 when too "
        "few fractions remain; refresh the artwork and retry."
    ),
)
def purchase_fractions(
    artwork_id: UUID,
    request: PurchaseFractionsRequest,
    ctx: RequestContext = Depends(get_request_context),
    use_case: PurchaseFractionsUseCase = Depends(get_purchase_fractions_use_case),
) -> PurchaseResponse:
    command = PurchaseFractionsCommand(
        artwork_id=artwork_id,
        ownership_percentage=request.ownership_percentage,
    )
    return PurchaseResponse.model_validate(use_case.execute(ctx, command))


@router.get(
    "/artworks/{artwork_id}/ownership",
    response_model=OwnershipResponse,
    responses=NOT_FOUND,
    summary="Caller's ownership of an artwork",
)
def get_ownership(
    artwork_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    use_case: GetOwnershipUseCase = Depends(get_ownership_use_case),
) -> OwnershipResponse:
    query = GetOwnershipQuery(user_id=ctx.user_id, artwork_id=artwork_id)
    return OwnershipResponse.model_validate(use_case.execute(query))


@router.get(
    "/artworks/{artwork_id}/cap-table",
    response_model=CapTableResponse,
    responses=NOT_FOUND,
    summary="Ownership across all buyers",
)
def get_cap_table(
    artwork_id: UUID,
    use_case: GetCapTableUseCase = Depends(get_cap_table_use_case),
) -> CapTableResponse:
    return CapTableResponse.model_validate(use_case.execute(artwork_id))


# ------------------------------------------------------------------
# Portfolio and transactions
# ------------------------------------------------------------------


@router.get(
    "/portfolio",
    response_model=PortfolioResponse,
    summary="Caller's portfolio",
    description=(
        "Holdings, gains and allocation for the caller. Holdings whose "
        "valuation is unavailable are valued at cost and the response is "
        "marked partial."
    ),
)
def get_portfolio(
    ctx: RequestContext = Depends(get_request_context),
    use_case: ComputePortfolioUseCase = Depends(get_compute_portfolio_use_case),
) -> PortfolioResponse:
    return PortfolioResponse.model_validate(use_case.execute(ctx))


@router.get(
    "/transactions",
    response_model=TransactionHistoryResponse,
    summary="Caller's transaction history",
)
def get_transactions(
    direction: DirectionParam = Query(default="all"),
    search: Optional[str] = Query(default=None, max_length=200),
    sort_by: TransactionSortParam = Query(default="created_at"),
    order: SortOrderParam = Query(default="desc"),
    ctx: RequestContext = Depends(get_request_context),
    use_case: GetTransactionHistoryUseCase = Depends(get_transaction_history_use_case),
) -> TransactionHistoryResponse:
    query = TransactionHistoryQuery(
        user_id=ctx.user_id,
        direction=direction,
        search=search,
        order_by=sort_by,
        descending=order == "desc",
    )
    return TransactionHistoryResponse.model_validate(use_case.execute(query))


@router.get(
    "/transactions/export",
    summary="Export transaction history as CSV",
    response_class=Response,
    responses={200: {"content": {"text/csv": {}}}},
)
@limiter.limit(HEAVY_RATE_LIMIT)
def export_transactions(
    request: Request,
    direction: DirectionParam = Query(default="all"),
    search: Optional[str] = Query(default=None, max_length=200),
    sort_by: TransactionSortParam = Query(default="created_at"),
    order: SortOrderParam = Query(default="desc"),
    ctx: RequestContext = Depends(get_request_context),
    use_case: ExportTransactionsUseCase = Depends(get_export_transactions_use_case),
) -> Response:
    query = TransactionHistoryQuery(
        user_id=ctx.user_id,
        direction=direction,
        search=search,
        order_by=sort_by,
        descending=order == "desc",
    )
    export = use_case.execute(query)
    return Response(
        content=export.content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


# ------------------------------------------------------------------
# Auctions
# ------------------------------------------------------------------


@router.post(
    "/auctions",
    response_model=AuctionResponse,
    status_code=status.HTTP_201_CREATED,
    responses=WRITE_ERRORS,
    summary="Open an auction",
    description="Open an auction on an artwork owned by the caller.",
)
def create_auction(
    request: CreateAuctionRequest,
    ctx: RequestContext = Depends(get_request_context),
    use_case: CreateAuctionUseCase = Depends(get_create_auction_use_case),
) -> AuctionResponse:
    command = CreateAuctionCommand(
        artwork_id=request.artwork_id,
        start_price=request.start_price,
        reserve_price=request.reserve_price,
        starts_at=request.starts_at,
        ends_at=request.ends_at,
    )
    return AuctionResponse.model_validate(use_case.execute(ctx, command))


@router.get(
    "/auctions",
    response_model=AuctionListResponse,
    summary="List auctions",
)
def list_auctions(
    auction_status: Optional[AuctionStatusParam] = Query(default=None, alias="status"),
    use_case: ListAuctionsUseCase = Depends(get_list_auctions_use_case),
) -> AuctionListResponse:
    results = use_case.execute(ListAuctionsQuery(status=auction_status))
    return AuctionListResponse(
        auctions=[AuctionResponse.model_validate(r) for r in results],
        count=len(results),
    )


@router.get(
    "/auctions/{auction_id}",
    response_model=AuctionDetailResponse,
    responses=NOT_FOUND,
    summary="Get an auction with its bids",
    description=(
        "Authoritative auction state. Event subscribers reconcile "
        "duplicate or out-of-order notifications against this view."
    ),
)
def get_auction(
    auction_id: UUID,
    use_case: GetAuctionUseCase = Depends(get_auction_use_case),
) -> AuctionDetailResponse:
    return AuctionDetailResponse.model_validate(use_case.execute(auction_id))


@router.post(
    "/auctions/{auction_id}/bids",
    response_model=PlaceBidResponse,
    status_code=status.HTTP_201_CREATED,
    responses=WRITE_ERRORS,
    summary="Place a bid",
    description=(
        "Bids must clear the highest bid (or start price) by the minimum "
        "increment. A 409 means another bid won the race."
    ),
)
def place_bid(
    auction_id: UUID,
    request: PlaceBidRequest,
    ctx: RequestContext = Depends(get_request_context),
    use_case: PlaceBidUseCase = Depends(get_place_bid_use_case),
) -> PlaceBidResponse:
    command = PlaceBidCommand(auction_id=auction_id, amount=request.amount)
    return PlaceBidResponse.model_validate(use_case.execute(ctx, command))


@router.post(
    "/auctions/{auction_id}/cancel",
    response_model=AuctionResponse,
    responses=WRITE_ERRORS,
    summary="Cancel an auction",
)
def cancel_auction(
    auction_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    use_case: CancelAuctionUseCase = Depends(get_cancel_auction_use_case),
) -> AuctionResponse:
    return AuctionResponse.model_validate(
        use_case.execute(ctx, AuctionCommand(auction_id=auction_id))
    )


@router.post(
    "/auctions/{auction_id}/close",
    response_model=AuctionResponse,
    responses=WRITE_ERRORS,
    summary="Close an auction",
    description="Resolve an auction past its end time, or an open-ended one by its seller.",
)
def close_auction(
    auction_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    use_case: CloseAuctionUseCase = Depends(get_close_auction_use_case),
) -> AuctionResponse:
    return AuctionResponse.model_validate(
        use_case.execute(ctx, AuctionCommand(auction_id=auction_id))
    )
