"""CSV import data models."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class ParsedPerformanceRow:
    name: str
    gmv: float
    clicks: int


@dataclass(slots=True)
class MatchedProduct:
    csv_name: str
    listing_id: int | None
    matched_name: str | None
    gmv: float
    clicks: int
    score: float

    @property
    def display_name(self) -> str:
        return self.matched_name or self.csv_name


@dataclass(slots=True)
class ParsedCatalogRow:
    name: str
    affiliate_link: str
    original_url: str | None
    category: str | None
    gmv: float
    clicks: int


@dataclass(slots=True)
class StudioSeed:
    name: str
    category: str
    capacity: int = 100
    daily_rotation: int = 2
    color: str | None = None
