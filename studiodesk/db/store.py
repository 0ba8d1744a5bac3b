"""Catalog persistence."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import delete, insert, select, update
from sqlalchemy.engine import Connection, Engine

from studiodesk.db.models import Listing, ListingStatus, NewListing, Studio
from studiodesk.db.tables import products, studios
from studiodesk.logic.scoring import ScoreWeights, compute_score
from studiodesk.utils.dates import to_utc_naive, utc_now

logger = logging.getLogger(__name__)

LISTING_PATCH_FIELDS = frozenset(
    {
        "studio_id",
        "name",
        "affiliate_link",
        "original_url",
        "category",
        "status",
        "gmv",
        "clicks",
        "cooldown_until",
        "live_since",
    }
)
STUDIO_PATCH_FIELDS = frozenset({"name", "category", "capacity", "daily_rotation", "color"})
URL_LOOKUP_CHUNK = 500


class ListingStateError(ValueError):
    """The listing is no longer in the status a transition expects."""


class ListingStore:
    """Reads and writes studios and their product listings.

    Scores are never accepted from callers: every write that touches ``gmv``
    or ``clicks`` re-derives ``score`` with the store's weights.
    """

    def __init__(self, engine: Engine, *, weights: ScoreWeights | None = None) -> None:
        self.engine = engine
        self.weights = weights or ScoreWeights.from_env()

    # Studios

    def fetch_studios(self) -> list[Studio]:
        stmt = select(studios).order_by(studios.c.created_at, studios.c.id)
        with self.engine.connect() as conn:
            return [Studio.from_row(row) for row in conn.execute(stmt).mappings()]

    def get_studio(self, studio_id: int) -> Studio | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(studios).where(studios.c.id == studio_id)).mappings().one_or_none()
        return Studio.from_row(row) if row else None

    def create_studio(
        self,
        name: str,
        category: str,
        *,
        capacity: int = 100,
        daily_rotation: int = 2,
        color: str | None = None,
    ) -> Studio:
        _check_studio_numbers({"capacity": capacity, "daily_rotation": daily_rotation})
        now = utc_now()
        with self.engine.begin() as conn:
            result = conn.execute(
                insert(studios).values(
                    name=name,
                    category=category,
                    capacity=capacity,
                    daily_rotation=daily_rotation,
                    color=color,
                    created_at=now,
                    updated_at=now,
                )
            )
            studio_id = result.inserted_primary_key[0]
            row = conn.execute(select(studios).where(studios.c.id == studio_id)).mappings().one()
        logger.info("Created studio %s (%s)", name, studio_id)
        return Studio.from_row(row)

    def update_studio(self, studio_id: int, **patch: Any) -> Studio:
        unknown = set(patch) - STUDIO_PATCH_FIELDS
        if unknown:
            raise ValueError(f"Cannot update studio fields: {', '.join(sorted(unknown))}")
        _check_studio_numbers(patch)
        with self.engine.begin() as conn:
            result = conn.execute(
                update(studios).where(studios.c.id == studio_id).values(**patch, updated_at=utc_now())
            )
            if result.rowcount == 0:
                raise LookupError(f"Studio {studio_id} not found")
            row = conn.execute(select(studios).where(studios.c.id == studio_id)).mappings().one()
        return Studio.from_row(row)

    def delete_studio(self, studio_id: int) -> None:
        with self.engine.begin() as conn:
            removed = conn.execute(delete(products).where(products.c.studio_id == studio_id)).rowcount
            result = conn.execute(delete(studios).where(studios.c.id == studio_id))
            if result.rowcount == 0:
                raise LookupError(f"Studio {studio_id} not found")
        logger.info("Deleted studio %s and %s listings", studio_id, removed)

    # Listings

    def fetch_listings(
        self,
        *,
        studio_id: int | None = None,
        status: ListingStatus | str | None = None,
        unassigned: bool = False,
    ) -> list[Listing]:
        """Listings in insertion order, optionally filtered.

        ``unassigned`` restricts to the global pool (no studio) and is ignored
        when ``studio_id`` is given.
        """
        stmt = select(products)
        if studio_id is not None:
            stmt = stmt.where(products.c.studio_id == studio_id)
        elif unassigned:
            stmt = stmt.where(products.c.studio_id.is_(None))
        if status is not None:
            stmt = stmt.where(products.c.status == ListingStatus(status).value)
        stmt = stmt.order_by(products.c.id)
        with self.engine.connect() as conn:
            return [Listing.from_row(row) for row in conn.execute(stmt).mappings()]

    def get_listing(self, listing_id: int) -> Listing | None:
        with self.engine.connect() as conn:
            row = _select_listing(conn, listing_id)
        return Listing.from_row(row) if row else None

    def create_listing(self, new: NewListing) -> Listing:
        return self.bulk_insert_listings([new])[0]

    def bulk_insert_listings(self, rows: Sequence[NewListing]) -> list[Listing]:
        if not rows:
            return []
        now = utc_now()
        ids: list[int] = []
        with self.engine.begin() as conn:
            for row in rows:
                values = self._insert_values(row, now)
                ids.append(conn.execute(insert(products).values(**values)).inserted_primary_key[0])
            inserted = conn.execute(select(products).where(products.c.id.in_(ids)).order_by(products.c.id))
            listings = [Listing.from_row(item) for item in inserted.mappings()]
        logger.info("Inserted %s listings", len(listings))
        return listings

    def update_listing(
        self,
        listing_id: int,
        *,
        expected_status: ListingStatus | str | None = None,
        now: datetime | None = None,
        **patch: Any,
    ) -> Listing:
        """Apply ``patch`` to one listing and return the stored result.

        With ``expected_status`` the write only happens while the listing is
        still in that status; otherwise ``ListingStateError`` is raised and
        nothing changes. ``now`` is the reference time for the cooldown
        deadline check and the timestamps (current UTC time by default).
        """
        if "score" in patch:
            raise ValueError("score is derived from gmv and clicks and cannot be set")
        unknown = set(patch) - LISTING_PATCH_FIELDS
        if unknown:
            raise ValueError(f"Cannot update listing fields: {', '.join(sorted(unknown))}")
        now = now or utc_now()
        with self.engine.begin() as conn:
            current = _select_listing(conn, listing_id)
            if current is None:
                raise LookupError(f"Listing {listing_id} not found")
            stmt = update(products).where(products.c.id == listing_id)
            if expected_status is not None:
                expected = ListingStatus(expected_status).value
                if current["status"] != expected:
                    raise ListingStateError(f"Listing {listing_id} is {current['status']}, expected {expected}")
                stmt = stmt.where(products.c.status == expected)
            values = dict(patch)
            if "status" in values:
                values["status"] = ListingStatus(values["status"]).value
            status = ListingStatus(values.get("status", current["status"]))
            if status is ListingStatus.LIVE and values.get("studio_id", current["studio_id"]) is None:
                raise ValueError("LIVE listings must belong to a studio")
            entering = status.value != current["status"]
            values.update(_lifecycle_values(status, values, current, now, entering))
            if "gmv" in values or "clicks" in values:
                values["score"] = compute_score(
                    values.get("gmv", current["gmv"]),
                    values.get("clicks", current["clicks"]),
                    self.weights,
                )
            values["updated_at"] = now
            if conn.execute(stmt.values(**values)).rowcount == 0:
                raise ListingStateError(f"Listing {listing_id} changed status during the update")
            row = _select_listing(conn, listing_id)
        return Listing.from_row(row)

    def update_metrics(self, metrics: Sequence[tuple[int, float, int]]) -> list[Listing]:
        """Write ``(listing_id, gmv, clicks)`` triples in one transaction."""
        if not metrics:
            return []
        now = utc_now()
        with self.engine.begin() as conn:
            for listing_id, gmv, clicks in metrics:
                result = conn.execute(
                    update(products)
                    .where(products.c.id == listing_id)
                    .values(
                        gmv=gmv,
                        clicks=clicks,
                        score=compute_score(gmv, clicks, self.weights),
                        updated_at=now,
                    )
                )
                if result.rowcount == 0:
                    raise LookupError(f"Listing {listing_id} not found")
            ids = sorted({listing_id for listing_id, _, _ in metrics})
            rows = conn.execute(select(products).where(products.c.id.in_(ids)).order_by(products.c.id))
            listings = [Listing.from_row(row) for row in rows.mappings()]
        logger.info("Updated performance metrics for %s listings", len(listings))
        return listings

    def existing_original_urls(self, urls: Iterable[str]) -> set[str]:
        wanted = sorted({url for url in urls if url})
        found: set[str] = set()
        if not wanted:
            return found
        with self.engine.connect() as conn:
            for start in range(0, len(wanted), URL_LOOKUP_CHUNK):
                chunk = wanted[start : start + URL_LOOKUP_CHUNK]
                stmt = select(products.c.original_url).where(products.c.original_url.in_(chunk))
                found.update(value for (value,) in conn.execute(stmt))
        return found

    def release_expired_cooldowns(self, now: datetime) -> int:
        stmt = (
            update(products)
            .where(products.c.status == ListingStatus.COOLDOWN.value)
            .where(products.c.cooldown_until <= now)
            .values(status=ListingStatus.AVAILABLE.value, cooldown_until=None, updated_at=now)
        )
        with self.engine.begin() as conn:
            released = conn.execute(stmt).rowcount
        if released:
            logger.info("Released %s listings from cooldown", released)
        return released

    def _insert_values(self, row: NewListing, now: datetime) -> dict[str, Any]:
        status = ListingStatus(row.status)
        if status is ListingStatus.LIVE and row.studio_id is None:
            raise ValueError(f"LIVE listing {row.name!r} must belong to a studio")
        cooldown_until = None
        if status is ListingStatus.COOLDOWN:
            cooldown_until = _cooldown_deadline(row.cooldown_until, now)
        return {
            "studio_id": row.studio_id,
            "name": row.name,
            "affiliate_link": row.affiliate_link,
            "original_url": row.original_url or None,
            "category": row.category or None,
            "status": status.value,
            "gmv": row.gmv,
            "clicks": row.clicks,
            "score": compute_score(row.gmv, row.clicks, self.weights),
            "cooldown_until": cooldown_until,
            "live_since": now if status is ListingStatus.LIVE else None,
            "created_at": now,
            "updated_at": now,
        }


def _select_listing(conn: Connection, listing_id: int):
    return conn.execute(select(products).where(products.c.id == listing_id)).mappings().one_or_none()


def _check_studio_numbers(values: dict[str, Any]) -> None:
    for key in ("capacity", "daily_rotation"):
        if key in values and values[key] < 0:
            raise ValueError(f"{key} must be non-negative")


def _cooldown_deadline(deadline: datetime | None, now: datetime) -> datetime:
    if deadline is None:
        raise ValueError("COOLDOWN listings need a cooldown_until deadline")
    deadline = to_utc_naive(deadline)
    if deadline <= now:
        raise ValueError("cooldown_until must be in the future")
    return deadline


def _lifecycle_values(
    status: ListingStatus,
    values: dict[str, Any],
    current: Any,
    now: datetime,
    entering: bool,
) -> dict[str, Any]:
    """``cooldown_until`` and ``live_since`` implied by the resulting status."""
    implied: dict[str, Any] = {}
    if status is ListingStatus.COOLDOWN:
        if entering or "cooldown_until" in values:
            implied["cooldown_until"] = _cooldown_deadline(values.get("cooldown_until"), now)
    else:
        implied["cooldown_until"] = None
    if status is ListingStatus.LIVE:
        if entering and values.get("live_since") is None:
            implied["live_since"] = now
    else:
        implied["live_since"] = None
    return implied
