"""Daily rotation selection for studios."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Sequence

from studiodesk.db.models import Listing, ListingStatus, Studio
from studiodesk.db.store import ListingStore

logger = logging.getLogger(__name__)


class RotationAction(str, Enum):
    REMOVE = "remove"
    ADD = "add"


class PoolScope(str, Enum):
    STUDIO = "studio"
    GLOBAL = "global"


class PoolOrdering(str, Enum):
    HIGHEST_SCORE = "highest-score-first"
    NEWEST = "newest-first"


@dataclass(frozen=True, slots=True)
class RotationPolicy:
    """Where replacement candidates come from and how they are ranked.

    ``STUDIO`` limits the pool to AVAILABLE listings assigned to the rotating
    studio. ``GLOBAL`` offers every AVAILABLE listing in the catalog to every
    studio, so two studios can be offered the same candidate.
    """

    pool_scope: PoolScope = PoolScope.STUDIO
    ordering: PoolOrdering = PoolOrdering.HIGHEST_SCORE

    @classmethod
    def from_env(cls) -> "RotationPolicy":
        return cls(
            pool_scope=PoolScope(os.environ.get("ROTATION_POOL_SCOPE", PoolScope.STUDIO.value)),
            ordering=PoolOrdering(os.environ.get("ROTATION_POOL_ORDERING", PoolOrdering.HIGHEST_SCORE.value)),
        )


@dataclass(slots=True)
class RotationItem:
    listing: Listing
    action: RotationAction
    marked_complete: bool = False


@dataclass(slots=True)
class StudioRotation:
    studio: Studio
    to_remove: list[RotationItem]
    to_add: list[RotationItem]

    @property
    def items(self) -> list[RotationItem]:
        return [*self.to_remove, *self.to_add]


def worst_live(studio: Studio, listings: Sequence[Listing]) -> list[Listing]:
    live = [
        listing
        for listing in listings
        if listing.studio_id == studio.id and listing.status is ListingStatus.LIVE
    ]
    return sorted(live, key=lambda listing: listing.score)


def candidate_pool(studio: Studio, listings: Sequence[Listing], policy: RotationPolicy) -> list[Listing]:
    available = [
        listing
        for listing in listings
        if listing.status is ListingStatus.AVAILABLE
        and (policy.pool_scope is PoolScope.GLOBAL or listing.studio_id == studio.id)
    ]
    if policy.ordering is PoolOrdering.NEWEST:
        return sorted(available, key=lambda listing: (listing.created_at or datetime.min, listing.id), reverse=True)
    return sorted(available, key=lambda listing: listing.score, reverse=True)


def select_rotation(
    studio: Studio,
    listings: Sequence[Listing],
    policy: RotationPolicy | None = None,
    *,
    limit: int | None = None,
) -> StudioRotation:
    """Worst LIVE listings to pull and best candidates to put up for ``studio``.

    Both sides are truncated to ``limit`` (the studio's ``daily_rotation`` by
    default) and may be shorter, or empty, when there are not enough listings.
    The inputs are never modified.
    """
    policy = policy or RotationPolicy()
    count = max(studio.daily_rotation if limit is None else limit, 0)
    to_remove = worst_live(studio, listings)[:count]
    to_add = candidate_pool(studio, listings, policy)[:count]
    return StudioRotation(
        studio=studio,
        to_remove=[RotationItem(listing=listing, action=RotationAction.REMOVE) for listing in to_remove],
        to_add=[RotationItem(listing=listing, action=RotationAction.ADD) for listing in to_add],
    )


def compute_rotations(store: ListingStore, policy: RotationPolicy | None = None) -> list[StudioRotation]:
    policy = policy or RotationPolicy.from_env()
    studios = store.fetch_studios()
    listings = store.fetch_listings()
    rotations = [select_rotation(studio, listings, policy) for studio in studios]
    logger.info(
        "Computed rotations for %s studios (%s pool, %s)",
        len(rotations),
        policy.pool_scope.value,
        policy.ordering.value,
    )
    return rotations
