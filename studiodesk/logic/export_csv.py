"""CSV export helpers."""

from __future__ import annotations

import csv
import os
from datetime import date
from pathlib import Path
from typing import Iterable, Sequence

import boto3

from studiodesk.logic.rotation import StudioRotation
from studiodesk.utils.dates import format_date

OUTPUT_DIR = Path(os.environ.get("CSV_OUTPUT_DIR", "artifacts/csv"))

CSV_COLUMNS = [
    "date",
    "studio",
    "action",
    "position",
    "listing_id",
    "name",
    "affiliate_link",
    "gmv",
    "clicks",
    "score",
    "done",
]


def generate_rotation_csv(rotations: Sequence[StudioRotation], as_of: date, *, upload: bool = False) -> Path:
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    file_path = OUTPUT_DIR / f"rotation-{format_date(as_of)}.csv"
    with file_path.open("w", newline="") as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        writer.writerows(_rows(rotations, as_of))
    if upload:
        _upload_to_s3(file_path)
    return file_path


def _rows(rotations: Sequence[StudioRotation], as_of: date) -> Iterable[dict[str, object]]:
    for rotation in rotations:
        for items in (rotation.to_remove, rotation.to_add):
            for position, item in enumerate(items, start=1):
                listing = item.listing
                yield {
                    "date": format_date(as_of),
                    "studio": rotation.studio.name,
                    "action": item.action.value,
                    "position": position,
                    "listing_id": listing.id,
                    "name": listing.name,
                    "affiliate_link": listing.affiliate_link,
                    "gmv": round(listing.gmv, 2),
                    "clicks": listing.clicks,
                    "score": round(listing.score, 2),
                    "done": item.marked_complete,
                }


def _upload_to_s3(path: Path) -> None:
    bucket = os.environ.get("AWS_S3_BUCKET")
    if not bucket:
        return
    endpoint = os.environ.get("AWS_S3_ENDPOINT")
    session = boto3.session.Session()
    client = session.client(
        "s3",
        endpoint_url=endpoint,
        aws_access_key_id=os.environ.get("AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY"),
    )
    client.upload_file(str(path), bucket, path.name)
