"""
Use case: List a new artwork for fractional ownership.

Input: RequestContext, CreateArtworkCommand
Output: ArtworkResult
Side effects: Inserts an artwork with all fractions available.
Failure cases: AuthorizationError (caller is not an artist), ValidationError.
"""

import logging
from uuid import uuid4

from fracart.application.marketplace.dtos import ArtworkResult, CreateArtworkCommand
from fracart.domain.marketplace.entities import Artwork, ArtworkStatus, RequestContext, Role
from fracart.domain.marketplace.errors import AuthorizationError
from fracart.domain.marketplace.ports import LedgerStore

logger = logging.getLogger(__name__)


class CreateArtworkUseCase:
    """Orchestrates listing a new artwork owned by the calling artist."""

    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    def execute(self, ctx: RequestContext, command: CreateArtworkCommand) -> ArtworkResult:
        logger.info("Creating artwork for user=%s", ctx.user_id)

        if ctx.role is not Role.ARTIST:
            raise AuthorizationError("Only artists can list artworks")

        artwork = self._store.create_artwork(
            Artwork(
                id=uuid4(),
                title=command.title.strip(),
                description=command.description,
                owner_user_id=ctx.user_id,
                price_amount=command.price_amount,
                price_denom=command.price_denom,
                fractions_total=command.fractions_total,
                fractions_available=command.fractions_total,
                status=ArtworkStatus.AVAILABLE,
            )
        )
        logger.info("Artwork %s listed with %d fractions", artwork.id, artwork.fractions_total)
        return ArtworkResult.from_entity(artwork)
