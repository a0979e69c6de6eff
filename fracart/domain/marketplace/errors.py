"""
Domain-specific errors for the marketplace bounded context.

All errors raised from the domain layer must be defined here.
These are mapped to HTTP responses at the interface layer.
No framework imports allowed.
"""


class MarketplaceDomainError(Exception):
    """Base error for all marketplace domain errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)


class ValidationError(MarketplaceDomainError):
    """Raised for malformed or policy-violating input.

    Always raised before any mutation; the message is safe to return
    to the caller verbatim.
    """


class ConflictError(MarketplaceDomainError):
    """Raised when a concurrent write invalidated the caller's view.

    The caller should refresh its state and retry. The core never
    retries on its own.
    """


class AuthorizationError(MarketplaceDomainError):
    """Raised when the caller's identity or role does not permit an action."""


class ArtworkNotFoundError(MarketplaceDomainError):
    """Raised when an artwork cannot be found."""

    def __init__(self, artwork_id: str) -> None:
        super().__init__(f"Artwork not found: {artwork_id}")
        self.artwork_id = artwork_id


class AuctionNotFoundError(MarketplaceDomainError):
    """Raised when an auction cannot be found."""

    def __init__(self, auction_id: str) -> None:
        super().__init__(f"Auction not found: {auction_id}")
        self.auction_id = auction_id


class InsufficientFractionsError(ConflictError):
    """Raised when an artwork has fewer units left than a purchase needs."""

    def __init__(self, artwork_id: str, requested: int, available: int) -> None:
        super().__init__(
            f"Insufficient fractions for artwork {artwork_id}: "
            f"requested {requested}, available {available}"
        )
        self.artwork_id = artwork_id
        self.requested = requested
        self.available = available


class UpstreamUnavailable(MarketplaceDomainError):
    """Raised when the data store or valuation source cannot answer in time."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source} unavailable: {reason}")
        self.source = source
        self.reason = reason


class ConsistencyWarning(UserWarning):
    """Derived-data anomaly, such as more than 100% aggregate ownership.

    Not raised. Logged and returned alongside a best-effort result.
    """

    def __init__(self, message: str, artwork_id: str, total_percentage: str) -> None:
        super().__init__(message)
        self.message = message
        self.artwork_id = artwork_id
        self.total_percentage = total_percentage
