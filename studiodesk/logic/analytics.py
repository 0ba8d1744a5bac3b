"""Catalog and studio performance summaries."""

from __future__ import annotations

import os
from collections import Counter
from datetime import datetime
from typing import Sequence

import pandas as pd

from studiodesk.db.models import Listing, ListingStatus, Studio
from studiodesk.utils.dates import days_between

DEAD_STOCK_MIN_DAYS = int(os.environ.get("DEAD_STOCK_MIN_DAYS", 7))
DEAD_STOCK_GMV = float(os.environ.get("DEAD_STOCK_GMV", 500000))

SUMMARY_COLUMNS = [
    "studio_id",
    "studio",
    "category",
    "capacity",
    "daily_rotation",
    "live_count",
    "total_gmv",
    "mean_score",
    "utilization",
]


def catalog_stats(listings: Sequence[Listing]) -> dict[str, int]:
    counts = Counter(listing.status for listing in listings)
    stats = {"total": len(listings)}
    for status in ListingStatus:
        stats[status.value.lower()] = counts.get(status, 0)
    return stats


def top_performers(listings: Sequence[Listing], limit: int = 10) -> list[Listing]:
    live = [listing for listing in listings if listing.status is ListingStatus.LIVE]
    live.sort(key=lambda listing: listing.gmv, reverse=True)
    return live[:limit]


def dead_stock(
    listings: Sequence[Listing],
    now: datetime,
    *,
    min_days_live: int = DEAD_STOCK_MIN_DAYS,
    gmv_threshold: float = DEAD_STOCK_GMV,
) -> list[Listing]:
    """LIVE listings up for longer than ``min_days_live`` that still sell little."""
    return [
        listing
        for listing in listings
        if listing.status is ListingStatus.LIVE
        and listing.live_since is not None
        and days_between(listing.live_since, now) > min_days_live
        and listing.gmv < gmv_threshold
    ]


def studio_summary(studios: Sequence[Studio], listings: Sequence[Listing]) -> pd.DataFrame:
    if not studios:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)
    studio_frame = pd.DataFrame(
        [
            {
                "studio_id": studio.id,
                "studio": studio.name,
                "category": studio.category,
                "capacity": studio.capacity,
                "daily_rotation": studio.daily_rotation,
            }
            for studio in studios
        ]
    )
    live_frame = pd.DataFrame(
        [
            {"studio_id": listing.studio_id, "gmv": listing.gmv, "score": listing.score}
            for listing in listings
            if listing.status is ListingStatus.LIVE
        ],
        columns=["studio_id", "gmv", "score"],
    ).astype({"studio_id": "int64", "gmv": "float64", "score": "float64"})
    grouped = (
        live_frame.groupby("studio_id")
        .agg(live_count=("gmv", "size"), total_gmv=("gmv", "sum"), mean_score=("score", "mean"))
        .reset_index()
    )
    summary = studio_frame.merge(grouped, on="studio_id", how="left")
    summary["live_count"] = summary["live_count"].fillna(0).astype(int)
    summary["total_gmv"] = summary["total_gmv"].fillna(0.0).astype(float)
    summary["mean_score"] = summary["mean_score"].fillna(0.0).astype(float)
    summary["utilization"] = [
        round(live / capacity, 4) if capacity else 0.0
        for live, capacity in zip(summary["live_count"], summary["capacity"])
    ]
    return summary[SUMMARY_COLUMNS]
