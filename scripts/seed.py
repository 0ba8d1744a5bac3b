"""Seed database with the default studios."""

from __future__ import annotations

from dotenv import load_dotenv

from studiodesk.db.migrate import run_migrations
from studiodesk.db.session import create_engine_from_env
from studiodesk.db.store import ListingStore
from studiodesk.ingest import load_studios


def main() -> None:
    load_dotenv()
    engine = create_engine_from_env()
    run_migrations(engine)
    store = ListingStore(engine)
    existing = {studio.name for studio in store.fetch_studios()}
    created = 0
    for seed in load_studios():
        if seed.name in existing:
            continue
        store.create_studio(
            seed.name,
            seed.category,
            capacity=seed.capacity,
            daily_rotation=seed.daily_rotation,
            color=seed.color,
        )
        created += 1
    print(f"Seed complete: {created} studios created")


if __name__ == "__main__":
    main()
