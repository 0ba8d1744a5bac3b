from dataclasses import dataclass

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from studiodesk.db.migrate import run_migrations
from studiodesk.db.models import ListingStatus, NewListing, Studio
from studiodesk.db.session import enable_sqlite_foreign_keys
from studiodesk.db.store import ListingStore
from studiodesk.logic.scoring import ScoreWeights


@pytest.fixture()
def engine():
    # one shared connection so executor threads see the same in-memory database
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    enable_sqlite_foreign_keys(engine)
    run_migrations(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def store(engine):
    return ListingStore(engine, weights=ScoreWeights())


@pytest.fixture()
def studio(store) -> Studio:
    return store.create_studio("Fashion", "Fashion", capacity=10, daily_rotation=2, color="hsl(330 80% 60%)")


@dataclass
class Seeded:
    studio: Studio
    other: Studio
    ids: dict[str, int]


@pytest.fixture()
def seeded(store, studio) -> Seeded:
    """Fashion studio with three LIVE listings and a small AVAILABLE pool.

    Scores with the default weights: Wireless Mouse 155000, Phone Case 38000,
    Desk Lamp 666000.
    """
    other = store.create_studio("Electronics", "Electronics", daily_rotation=1)
    rows = [
        NewListing("Wireless Mouse", "https://s.shopee.co.id/mouse", studio.id, "https://shopee.co.id/mouse", "Fashion", ListingStatus.LIVE, 200000, 50),
        NewListing("Phone Case", "https://s.shopee.co.id/case", studio.id, "https://shopee.co.id/case", "Fashion", ListingStatus.LIVE, 50000, 10),
        NewListing("Desk Lamp", "https://s.shopee.co.id/lamp", studio.id, "https://shopee.co.id/lamp", "Fashion", ListingStatus.LIVE, 900000, 120),
        NewListing("Canvas Tote", "https://s.shopee.co.id/tote", studio.id, "https://shopee.co.id/tote", "Fashion", ListingStatus.AVAILABLE, 300000, 40),
        NewListing("Silk Scarf", "https://s.shopee.co.id/scarf", studio.id, "https://shopee.co.id/scarf", "Fashion", ListingStatus.AVAILABLE, 100000, 5),
        NewListing("USB Hub", "https://s.shopee.co.id/hub", other.id, "https://shopee.co.id/hub", "Electronics", ListingStatus.AVAILABLE, 5000000, 500),
    ]
    listings = store.bulk_insert_listings(rows)
    return Seeded(studio=studio, other=other, ids={listing.name: listing.id for listing in listings})
