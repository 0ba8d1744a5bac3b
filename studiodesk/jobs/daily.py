"""Daily rotation job."""

from __future__ import annotations

import logging
import os
from datetime import date
from pathlib import Path

from dotenv import load_dotenv

from studiodesk.db.session import create_engine_from_env
from studiodesk.db.store import ListingStore
from studiodesk.logic.export_csv import generate_rotation_csv
from studiodesk.logic.lifecycle import release_cooldowns
from studiodesk.logic.rotation import compute_rotations
from studiodesk.utils.dates import today_in_tz, utc_now

logger = logging.getLogger(__name__)


def run_daily(as_of: date | None = None) -> Path:
    """Release expired cooldowns, then export every studio's rotation worklist."""
    load_dotenv()
    store = ListingStore(create_engine_from_env())
    target_date = as_of or today_in_tz()

    released = release_cooldowns(store, utc_now())
    rotations = compute_rotations(store)
    upload = bool(os.environ.get("AWS_S3_BUCKET"))
    csv_path = generate_rotation_csv(rotations, target_date, upload=upload)

    tasks = sum(len(rotation.items) for rotation in rotations)
    logger.info(
        "Daily rotation for %s: %s studios, %s tasks, %s released from cooldown, worklist %s",
        target_date,
        len(rotations),
        tasks,
        released,
        csv_path,
    )
    return csv_path


def run_cooldown_release() -> int:
    load_dotenv()
    store = ListingStore(create_engine_from_env())
    return release_cooldowns(store, utc_now())


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_daily()
