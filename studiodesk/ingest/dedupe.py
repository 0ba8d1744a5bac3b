"""Duplicate detection for catalog imports."""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection, Sequence
from dataclasses import dataclass, field

from studiodesk.ingest.models import ParsedCatalogRow

logger = logging.getLogger(__name__)

UrlLookup = Callable[[Collection[str]], set[str]]


@dataclass(slots=True)
class DuplicateReport:
    to_import: list[ParsedCatalogRow] = field(default_factory=list)
    duplicates: list[ParsedCatalogRow] = field(default_factory=list)

    @property
    def duplicate_names(self) -> list[str]:
        return [row.name for row in self.duplicates]


def _url_key(row: ParsedCatalogRow) -> str:
    return (row.original_url or "").strip()


def detect_duplicates(rows: Sequence[ParsedCatalogRow], lookup: UrlLookup) -> DuplicateReport:
    """Split ``rows`` into rows to import and rows already in the catalog.

    ``lookup`` receives the distinct original urls of the batch and returns
    the subset already stored. It is not called when no row carries a url.
    A url repeated inside the batch is imported once; later repeats are
    reported as duplicates.
    """
    urls = {_url_key(row) for row in rows} - {""}
    existing = lookup(urls) if urls else set()
    report = DuplicateReport()
    claimed: set[str] = set()
    for row in rows:
        url = _url_key(row)
        if not url:
            report.to_import.append(row)
        elif url in existing or url in claimed:
            report.duplicates.append(row)
        else:
            claimed.add(url)
            report.to_import.append(row)
    if report.duplicates:
        logger.info("Skipping %s duplicate catalog rows", len(report.duplicates))
    return report
