"""Ingestion helpers."""

from __future__ import annotations

import pathlib

import yaml

from studiodesk.ingest.models import StudioSeed

STUDIOS_PATH = pathlib.Path(__file__).with_name("studios.yml")


def load_studios(limit: int | None = None, path: pathlib.Path = STUDIOS_PATH) -> list[StudioSeed]:
    data = yaml.safe_load(path.read_text()) or []
    studios = [StudioSeed(**item) for item in data]
    if limit:
        return studios[:limit]
    return studios
