"""Listing status transitions driven by the rotation workflow."""

from __future__ import annotations

import logging
import os
from datetime import datetime

from studiodesk.db.models import Listing, ListingStatus
from studiodesk.db.store import ListingStore
from studiodesk.utils.dates import cooldown_deadline

logger = logging.getLogger(__name__)

COOLDOWN_DAYS = int(os.environ.get("COOLDOWN_DAYS", 14))


def mark_removed(store: ListingStore, listing_id: int, now: datetime, cooldown_days: int = COOLDOWN_DAYS) -> Listing:
    """LIVE -> COOLDOWN, blocked from the pool until ``now + cooldown_days``.

    Raises ``ListingStateError`` when the listing is no longer LIVE.
    """
    listing = store.update_listing(
        listing_id,
        expected_status=ListingStatus.LIVE,
        now=now,
        status=ListingStatus.COOLDOWN,
        cooldown_until=cooldown_deadline(now, cooldown_days),
        live_since=None,
    )
    logger.info("Listing %s pulled from studio %s until %s", listing_id, listing.studio_id, listing.cooldown_until)
    return listing


def mark_added(store: ListingStore, listing_id: int, studio_id: int, now: datetime) -> Listing:
    """AVAILABLE -> LIVE in ``studio_id``; ``ListingStateError`` otherwise."""
    listing = store.update_listing(
        listing_id,
        expected_status=ListingStatus.AVAILABLE,
        now=now,
        status=ListingStatus.LIVE,
        studio_id=studio_id,
        cooldown_until=None,
        live_since=now,
    )
    logger.info("Listing %s live in studio %s", listing_id, studio_id)
    return listing


def release_cooldowns(store: ListingStore, now: datetime) -> int:
    return store.release_expired_cooldowns(now)
