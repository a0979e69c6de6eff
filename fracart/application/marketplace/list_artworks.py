"""
Use case: Browse and retrieve artworks.

Input: ListArtworksQuery, or an artwork id
Output: list[ArtworkResult] / ArtworkResult
Side effects: None (read-only query).
Failure cases: ValidationError (bad status or sort), ArtworkNotFoundError.
"""

import logging
from uuid import UUID

from fracart.application.marketplace.choices import parse_choice
from fracart.application.marketplace.dtos import ArtworkResult, ListArtworksQuery
from fracart.domain.marketplace.entities import ArtworkStatus
from fracart.domain.marketplace.errors import ArtworkNotFoundError, ValidationError
from fracart.domain.marketplace.filters import ArtworkFilter, ArtworkSort
from fracart.domain.marketplace.ports import LedgerStore

logger = logging.getLogger(__name__)


class ListArtworksUseCase:
    """Read-only access to the artwork catalogue."""

    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    def execute(self, query: ListArtworksQuery) -> list[ArtworkResult]:
        logger.info("Listing artworks: search=%r, sort=%s", query.search, query.sort)

        if (
            query.min_price is not None
            and query.max_price is not None
            and query.min_price > query.max_price
        ):
            raise ValidationError("min_price cannot exceed max_price")

        artwork_filter = ArtworkFilter(
            search=query.search.strip() if query.search else None,
            status=parse_choice(ArtworkStatus, query.status, "status"),
            min_price=query.min_price,
            max_price=query.max_price,
            sort=parse_choice(ArtworkSort, query.sort, "sort") or ArtworkSort.NEWEST,
        )
        return [ArtworkResult.from_entity(a) for a in self._store.list_artworks(artwork_filter)]

    def get(self, artwork_id: UUID) -> ArtworkResult:
        artwork = self._store.get_artwork(artwork_id)
        if artwork is None:
            raise ArtworkNotFoundError(str(artwork_id))
        return ArtworkResult.from_entity(artwork)
