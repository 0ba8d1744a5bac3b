import asyncio
from datetime import datetime, timedelta

import pytest

from studiodesk.db.models import ListingStatus
from studiodesk.db.store import ListingStateError
from studiodesk.logic.lifecycle import release_cooldowns
from studiodesk.logic.rotation import RotationAction, RotationItem, RotationPolicy, compute_rotations
from studiodesk.logic.tracker import RotationSession

NOW = datetime(2024, 5, 1, 9, 0)


class CountingStore:
    def __init__(self, store):
        self.store = store
        self.calls = []

    def update_listing(self, listing_id, **patch):
        self.calls.append(listing_id)
        return self.store.update_listing(listing_id, **patch)


def fashion_session(store, tracked_store=None):
    rotations = compute_rotations(store, RotationPolicy())
    rotation = next(rotation for rotation in rotations if rotation.studio.name == "Fashion")
    return RotationSession(rotation, tracked_store or store, cooldown_days=14, clock=lambda: NOW)


@pytest.mark.asyncio
async def test_remove_puts_listing_in_cooldown(store, seeded):
    session = fashion_session(store)
    item = session.find_item(seeded.ids["Phone Case"], "remove")
    assert await session.mark_complete(item)
    listing = store.get_listing(seeded.ids["Phone Case"])
    assert listing.status is ListingStatus.COOLDOWN
    assert listing.cooldown_until == NOW + timedelta(days=14)
    assert listing.live_since is None
    assert item.marked_complete
    assert item.listing.status is ListingStatus.COOLDOWN


@pytest.mark.asyncio
async def test_add_puts_listing_live_in_studio(store, seeded):
    session = fashion_session(store)
    item = session.find_item(seeded.ids["Canvas Tote"], RotationAction.ADD)
    assert await session.mark_complete(item)
    listing = store.get_listing(seeded.ids["Canvas Tote"])
    assert listing.status is ListingStatus.LIVE
    assert listing.studio_id == seeded.studio.id
    assert listing.live_since == NOW


@pytest.mark.asyncio
async def test_mark_complete_is_idempotent(store, seeded):
    counting = CountingStore(store)
    session = fashion_session(store, counting)
    item = session.find_item(seeded.ids["Phone Case"], RotationAction.REMOVE)
    assert await session.mark_complete(item)
    progress = session.progress()
    assert progress == (1, 4)
    assert not await session.mark_complete(item)
    assert counting.calls == [seeded.ids["Phone Case"]]
    assert session.progress() == progress
    assert not session.is_rotation_complete()


@pytest.mark.asyncio
async def test_concurrent_marks_write_once(store, seeded):
    counting = CountingStore(store)
    session = fashion_session(store, counting)
    item = session.find_item(seeded.ids["Silk Scarf"], RotationAction.ADD)
    results = await asyncio.gather(session.mark_complete(item), session.mark_complete(item))
    assert sorted(results) == [False, True]
    assert counting.calls == [seeded.ids["Silk Scarf"]]


@pytest.mark.asyncio
async def test_progress_and_completion(store, seeded):
    session = fashion_session(store)
    assert session.progress() == (0, 4)
    assert not session.is_rotation_complete()
    for item in session.rotation.items:
        await session.mark_complete(item)
    assert session.progress() == (4, 4)
    assert session.is_rotation_complete()


@pytest.mark.asyncio
async def test_foreign_item_rejected(store, seeded):
    session = fashion_session(store)
    stray = RotationItem(listing=store.get_listing(seeded.ids["USB Hub"]), action=RotationAction.ADD)
    with pytest.raises(ValueError):
        await session.mark_complete(stray)


@pytest.mark.asyncio
async def test_store_failure_leaves_item_open(store, seeded):
    class FailingStore:
        def update_listing(self, listing_id, **patch):
            raise LookupError(f"Listing {listing_id} not found")

    session = fashion_session(store, FailingStore())
    item = session.rotation.to_remove[0]
    with pytest.raises(LookupError):
        await session.mark_complete(item)
    assert not item.marked_complete


@pytest.mark.asyncio
async def test_remove_skips_listing_that_left_live(store, seeded):
    session = fashion_session(store)
    item = session.find_item(seeded.ids["Phone Case"], RotationAction.REMOVE)
    store.update_listing(seeded.ids["Phone Case"], status=ListingStatus.BLACKLIST)
    with pytest.raises(ListingStateError):
        await session.mark_complete(item)
    assert not item.marked_complete
    assert session.progress() == (0, 4)
    listing = store.get_listing(seeded.ids["Phone Case"])
    assert listing.status is ListingStatus.BLACKLIST
    assert listing.cooldown_until is None
    assert release_cooldowns(store, NOW + timedelta(days=365)) == 0
    assert store.get_listing(seeded.ids["Phone Case"]).status is ListingStatus.BLACKLIST


@pytest.mark.asyncio
async def test_add_skips_listing_that_went_live_elsewhere(store, seeded):
    session = fashion_session(store)
    item = session.find_item(seeded.ids["Canvas Tote"], RotationAction.ADD)
    store.update_listing(seeded.ids["Canvas Tote"], status=ListingStatus.LIVE, studio_id=seeded.other.id)
    with pytest.raises(ListingStateError):
        await session.mark_complete(item)
    assert not item.marked_complete
    assert store.get_listing(seeded.ids["Canvas Tote"]).studio_id == seeded.other.id
