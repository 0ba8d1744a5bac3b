"""Operator confirmation of a studio's rotation tasks."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from studiodesk.db.models import Listing
from studiodesk.db.store import ListingStore
from studiodesk.logic.lifecycle import COOLDOWN_DAYS, mark_added, mark_removed
from studiodesk.logic.rotation import RotationAction, RotationItem, StudioRotation
from studiodesk.utils.dates import utc_now

logger = logging.getLogger(__name__)


class RotationSession:
    """Tracks which tasks of one ``StudioRotation`` have been carried out.

    Only the ``marked_complete`` flags live here. The listing status itself
    is written through the store, so re-reading the catalog always tells the
    real state.
    """

    def __init__(
        self,
        rotation: StudioRotation,
        store: ListingStore,
        *,
        cooldown_days: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.rotation = rotation
        self.store = store
        self.cooldown_days = COOLDOWN_DAYS if cooldown_days is None else cooldown_days
        self._clock = clock or utc_now
        self._pending: set[tuple[RotationAction, int]] = set()

    @property
    def studio_id(self) -> int:
        return self.rotation.studio.id

    def find_item(self, listing_id: int, action: RotationAction | str) -> RotationItem | None:
        action = RotationAction(action)
        return next(
            (item for item in self.rotation.items if item.action is action and item.listing.id == listing_id),
            None,
        )

    async def mark_complete(self, item: RotationItem) -> bool:
        """Apply the item's status change once; repeat calls are no-ops.

        Returns ``True`` when the transition was written, ``False`` when the
        item was already complete or its write is still in flight. Store
        errors propagate and leave the item open.
        """
        if not any(candidate is item for candidate in self.rotation.items):
            raise ValueError(f"Listing {item.listing.id} is not part of this rotation")
        key = (item.action, item.listing.id)
        if item.marked_complete or key in self._pending:
            return False
        self._pending.add(key)
        try:
            updated = await asyncio.get_running_loop().run_in_executor(None, self._apply, item)
        finally:
            self._pending.discard(key)
        item.listing = updated
        item.marked_complete = True
        return True

    def _apply(self, item: RotationItem) -> Listing:
        now = self._clock()
        if item.action is RotationAction.REMOVE:
            return mark_removed(self.store, item.listing.id, now, self.cooldown_days)
        return mark_added(self.store, item.listing.id, self.studio_id, now)

    def progress(self) -> tuple[int, int]:
        items = self.rotation.items
        return sum(1 for item in items if item.marked_complete), len(items)

    def is_rotation_complete(self) -> bool:
        return all(item.marked_complete for item in self.rotation.items)
