"""
Centralized error handlers for FastAPI.

Maps marketplace domain errors to HTTP responses.
No stack traces or internal details are exposed to clients.
All error responses use the {"error": ..., "detail": ...} shape.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fracart.domain.marketplace.errors import (
    ArtworkNotFoundError,
    AuctionNotFoundError,
    AuthorizationError,
    ConflictError,
    InsufficientFractionsError,
    MarketplaceDomainError,
    UpstreamUnavailable,
    ValidationError,
)

logger = logging.getLogger(__name__)

HTTP_403 = 403
HTTP_404 = 404
HTTP_409 = 409
HTTP_422 = 422
HTTP_500 = 500
HTTP_503 = 503


def _error_response(status_code: int, error: str, detail: str | None = None) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: dict[str, str | None] = {"error": error}
    if detail:
        body["detail"] = detail
    return JSONResponse(status_code=status_code, content=body)


def register_error_handlers(app: FastAPI) -> None:
    """Register all domain error handlers on the FastAPI application.

    Args:
        app: The FastAPI application instance.
    """

    @app.exception_handler(ArtworkNotFoundError)
    async def handle_artwork_not_found(
        _request: Request, exc: ArtworkNotFoundError
    ) -> JSONResponse:
        logger.warning("Artwork not found: %s", exc.artwork_id)
        return _error_response(HTTP_404, "Artwork not found", exc.message)

    @app.exception_handler(AuctionNotFoundError)
    async def handle_auction_not_found(
        _request: Request, exc: AuctionNotFoundError
    ) -> JSONResponse:
        logger.warning("Auction not found: %s", exc.auction_id)
        return _error_response(HTTP_404, "Auction not found", exc.message)

    @app.exception_handler(ValidationError)
    async def handle_validation(_request: Request, exc: ValidationError) -> JSONResponse:
        """Policy violations are reported to the caller verbatim."""
        logger.info("Rejected request: %s", exc.message)
        return _error_response(HTTP_422, "Validation failed", exc.message)

    @app.exception_handler(InsufficientFractionsError)
    async def handle_insufficient_fractions(
        _request: Request, exc: InsufficientFractionsError
    ) -> JSONResponse:
        logger.warning(
            "Insufficient fractions: artwork=%s requested=%d available=%d",
            exc.artwork_id,
            exc.requested,
            exc.available,
        )
        return _error_response(HTTP_409, "Insufficient fractions", exc.message)

    @app.exception_handler(ConflictError)
    async def handle_conflict(_request: Request, exc: ConflictError) -> JSONResponse:
        """Concurrent-write contention. The client should refresh and retry."""
        logger.warning("Write conflict: %s", exc.message)
        return _error_response(HTTP_409, "Conflict", exc.message)

    @app.exception_handler(AuthorizationError)
    async def handle_authorization(_request: Request, exc: AuthorizationError) -> JSONResponse:
        logger.warning("Forbidden: %s", exc.message)
        return _error_response(HTTP_403, "Forbidden", exc.message)

    @app.exception_handler(UpstreamUnavailable)
    async def handle_upstream(_request: Request, exc: UpstreamUnavailable) -> JSONResponse:
        logger.error("Upstream unavailable: %s (%s)", exc.source, exc.reason)
        return _error_response(HTTP_503, "Service unavailable", f"{exc.source} is unavailable")

    @app.exception_handler(MarketplaceDomainError)
    async def handle_marketplace_domain(
        _request: Request, exc: MarketplaceDomainError
    ) -> JSONResponse:
        """Catch-all for unhandled marketplace domain errors."""
        logger.error("Unhandled marketplace domain error: %s", exc.message)
        return _error_response(HTTP_500, "Internal server error")

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unexpected errors. Never exposes internals."""
        logger.exception("Unexpected error: %s", type(exc).__name__)
        return _error_response(HTTP_500, "Internal server error")
