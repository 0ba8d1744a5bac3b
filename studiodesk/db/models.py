"""Catalog data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping


class ListingStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    LIVE = "LIVE"
    COOLDOWN = "COOLDOWN"
    BLACKLIST = "BLACKLIST"


@dataclass(slots=True)
class Studio:
    id: int
    name: str
    category: str
    capacity: int = 100
    daily_rotation: int = 2
    color: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Studio":
        return cls(
            id=row["id"],
            name=row["name"],
            category=row["category"],
            capacity=row["capacity"],
            daily_rotation=row["daily_rotation"],
            color=row["color"],
            created_at=row["created_at"],
        )


@dataclass(slots=True)
class Listing:
    id: int
    studio_id: int | None
    name: str
    affiliate_link: str
    original_url: str | None
    category: str | None
    status: ListingStatus
    gmv: float
    clicks: int
    score: float
    cooldown_until: datetime | None = None
    live_since: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Listing":
        return cls(
            id=row["id"],
            studio_id=row["studio_id"],
            name=row["name"],
            affiliate_link=row["affiliate_link"],
            original_url=row["original_url"],
            category=row["category"],
            status=ListingStatus(row["status"]),
            gmv=float(row["gmv"] or 0),
            clicks=int(row["clicks"] or 0),
            score=float(row["score"] or 0),
            cooldown_until=row["cooldown_until"],
            live_since=row["live_since"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass(slots=True)
class NewListing:
    name: str
    affiliate_link: str
    studio_id: int | None = None
    original_url: str | None = None
    category: str | None = None
    status: ListingStatus = ListingStatus.AVAILABLE
    gmv: float = 0.0
    clicks: int = 0
    cooldown_until: datetime | None = None
