"""CSV import sessions: parse, match or de-duplicate, preview, confirm."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Union

from sqlalchemy.exc import SQLAlchemyError

from studiodesk.db.models import Listing, ListingStatus, NewListing, Studio
from studiodesk.db.store import ListingStore
from studiodesk.ingest.csv_parser import (
    parse_catalog_rows,
    parse_csv_line,
    parse_performance_rows,
    split_lines,
)
from studiodesk.ingest.dedupe import detect_duplicates
from studiodesk.ingest.errors import CsvValidationError, ImportCommitError, ImportStateError
from studiodesk.ingest.headers import HeaderMap, resolve_headers
from studiodesk.ingest.matching import match_performance, worst_first
from studiodesk.ingest.models import MatchedProduct, ParsedCatalogRow
from studiodesk.logic.rotation import (
    PoolScope,
    RotationAction,
    RotationItem,
    RotationPolicy,
    StudioRotation,
    candidate_pool,
)
from studiodesk.logic.scoring import ScoreWeights

logger = logging.getLogger(__name__)

DEFAULT_ROTATION_COUNT = int(os.environ.get("ROTATION_COUNT", 5))


class ImportMode(str, Enum):
    PERFORMANCE = "performance"
    CATALOG = "catalog"
    ROTATION = "rotation"


class ImportState(str, Enum):
    IDLE = "idle"
    MATCHING = "matching"
    VALIDATING = "validating"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


WORKING_STATES = {
    ImportMode.PERFORMANCE: ImportState.MATCHING,
    ImportMode.CATALOG: ImportState.VALIDATING,
    ImportMode.ROTATION: ImportState.PROCESSING,
}


@dataclass(slots=True)
class PerformancePreview:
    rows: list[MatchedProduct]
    not_found: list[str]
    skipped_rows: int = 0

    @property
    def matched(self) -> list[MatchedProduct]:
        return [row for row in self.rows if row.listing_id is not None]


@dataclass(slots=True)
class CatalogPreview:
    to_import: list[ParsedCatalogRow]
    duplicates: list[ParsedCatalogRow]
    studio_id: int | None = None
    skipped_rows: int = 0

    @property
    def duplicate_names(self) -> list[str]:
        return [row.name for row in self.duplicates]


@dataclass(slots=True)
class RotationAnalysis:
    studio: Studio
    rows: list[MatchedProduct]
    not_found: list[str]
    replacements: list[Listing]
    rotation_count: int
    skipped_rows: int = 0
    live: dict[int, Listing] = field(default_factory=dict)

    @property
    def lowest_performers(self) -> list[MatchedProduct]:
        return self.rows[: self.rotation_count]

    @property
    def top_replacements(self) -> list[Listing]:
        return self.replacements[: self.rotation_count]

    def to_rotation(self) -> StudioRotation:
        """Worklist from the matched lowest performers and top replacements.

        Rows without a catalog match are shown in the analysis but cannot be
        tracked, so they are left out.
        """
        removals: list[RotationItem] = []
        seen: set[int] = set()
        for row in self.lowest_performers:
            if row.listing_id is None or row.listing_id in seen:
                continue
            seen.add(row.listing_id)
            removals.append(RotationItem(listing=self.live[row.listing_id], action=RotationAction.REMOVE))
        additions = [RotationItem(listing=listing, action=RotationAction.ADD) for listing in self.top_replacements]
        return StudioRotation(studio=self.studio, to_remove=removals, to_add=additions)


Preview = Union[PerformancePreview, CatalogPreview, RotationAnalysis]
CsvSource = Union[str, bytes, os.PathLike]


def _check_rotation_count(count: int) -> int:
    if count < 1:
        raise ValueError("Rotation count must be at least 1")
    return count


class CsvImportSession:
    """One operator's CSV upload, from file submission to confirmation.

    Nothing is written to the catalog until ``confirm``. A failed read or
    validation leaves the session in ``ERROR`` with a message; submitting a
    new file or calling ``reset`` recovers.
    """

    def __init__(
        self,
        store: ListingStore,
        mode: ImportMode | str,
        *,
        studio_id: int | None = None,
        rotation_count: int = DEFAULT_ROTATION_COUNT,
        weights: ScoreWeights | None = None,
        policy: RotationPolicy | None = None,
    ) -> None:
        self.store = store
        self.mode = ImportMode(mode)
        self.studio_id = studio_id
        self.rotation_count = _check_rotation_count(rotation_count)
        self.weights = weights or store.weights
        self.policy = policy or RotationPolicy.from_env()
        self.state = ImportState.IDLE
        self.error_message: str | None = None
        self.preview: Preview | None = None
        self._committing = False

    @property
    def studio_required(self) -> bool:
        return self.mode is not ImportMode.CATALOG

    @property
    def busy(self) -> bool:
        return self.state in WORKING_STATES.values() or self._committing

    def select_studio(self, studio_id: int | None) -> None:
        if self.state not in (ImportState.IDLE, ImportState.ERROR):
            raise ImportStateError("Reset the import before changing the studio")
        self.studio_id = studio_id

    def set_rotation_count(self, count: int) -> None:
        self.rotation_count = _check_rotation_count(count)
        if isinstance(self.preview, RotationAnalysis):
            self.preview.rotation_count = self.rotation_count

    def reset(self) -> None:
        if self.busy:
            raise ImportStateError("Cannot reset while an import step is running")
        self.state = ImportState.IDLE
        self.preview = None
        self.error_message = None
        self.studio_id = None

    async def submit(self, source: CsvSource) -> ImportState:
        """Read and analyse a CSV file.

        ``str`` sources are CSV text, ``bytes`` are raw file content and
        path-like objects are read from disk.
        """
        if self.busy:
            raise ImportStateError("An import step is already running")
        if self.state is ImportState.READY:
            raise ImportStateError("Reset the import before uploading another file")
        if self.studio_required and self.studio_id is None:
            raise ImportStateError("Select a studio before uploading a file")
        self.preview = None
        self.error_message = None
        self.state = WORKING_STATES[self.mode]
        loop = asyncio.get_running_loop()
        try:
            text = await self._read(source, loop)
            preview = await loop.run_in_executor(None, self._process, text)
        except (CsvValidationError, LookupError) as exc:
            return self._fail(str(exc))
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read CSV upload: %s", exc)
            return self._fail("Unable to read the CSV file")
        except SQLAlchemyError as exc:
            logger.warning("Catalog lookup failed during %s import: %s", self.mode.value, exc)
            return self._fail("Operation failed while reading the catalog, please try again")
        self.preview = preview
        self.state = ImportState.READY
        return self.state

    async def confirm(self) -> list[Listing]:
        """Write the previewed changes and return the affected listings."""
        if self.state is not ImportState.READY or self.preview is None:
            raise ImportStateError("There is no preview to confirm")
        if self._committing:
            raise ImportStateError("The import is already being saved")
        if self.mode is ImportMode.ROTATION:
            raise ImportStateError("Rotation analysis has nothing to save")
        self._committing = True
        try:
            written = await asyncio.get_running_loop().run_in_executor(None, self._commit, self.preview)
        except (SQLAlchemyError, LookupError) as exc:
            logger.warning("Saving %s import failed: %s", self.mode.value, exc)
            self.error_message = "Operation failed, please try again"
            raise ImportCommitError(self.error_message) from exc
        finally:
            self._committing = False
        logger.info("Saved %s import: %s listings", self.mode.value, len(written))
        self.reset()
        return written

    def to_rotation(self) -> StudioRotation:
        if self.state is not ImportState.READY or not isinstance(self.preview, RotationAnalysis):
            raise ImportStateError("No rotation analysis is ready")
        return self.preview.to_rotation()

    def _fail(self, message: str) -> ImportState:
        self.preview = None
        self.error_message = message
        self.state = ImportState.ERROR
        return self.state

    async def _read(self, source: CsvSource, loop: asyncio.AbstractEventLoop) -> str:
        if isinstance(source, str):
            return source.lstrip("\ufeff")
        if isinstance(source, bytes):
            return source.decode("utf-8-sig")
        data = await loop.run_in_executor(None, Path(source).read_bytes)
        return data.decode("utf-8-sig")

    def _process(self, text: str) -> Preview:
        lines = split_lines(text)
        headers = resolve_headers(parse_csv_line(lines[0]))
        body = lines[1:]
        if self.mode is ImportMode.CATALOG:
            headers.require("name", "link")
            return self._process_catalog(body, headers)
        headers.require("name")
        if self.mode is ImportMode.PERFORMANCE:
            return self._process_performance(body, headers)
        return self._process_rotation(body, headers)

    def _require_studio(self) -> Studio:
        studio = self.store.get_studio(self.studio_id)
        if studio is None:
            raise LookupError(f"Studio {self.studio_id} not found")
        return studio

    def _process_performance(self, body: list[str], headers: HeaderMap) -> PerformancePreview:
        self._require_studio()
        rows, skipped = parse_performance_rows(body, headers)
        live = self.store.fetch_listings(studio_id=self.studio_id, status=ListingStatus.LIVE)
        matched, not_found = match_performance(rows, live, self.weights)
        logger.info("Matched %s of %s performance rows", len(matched) - len(not_found), len(matched))
        return PerformancePreview(rows=matched, not_found=not_found, skipped_rows=skipped)

    def _process_catalog(self, body: list[str], headers: HeaderMap) -> CatalogPreview:
        if self.studio_id is not None:
            self._require_studio()
        rows, skipped = parse_catalog_rows(body, headers)
        report = detect_duplicates(rows, self.store.existing_original_urls)
        return CatalogPreview(
            to_import=report.to_import,
            duplicates=report.duplicates,
            studio_id=self.studio_id,
            skipped_rows=skipped,
        )

    def _process_rotation(self, body: list[str], headers: HeaderMap) -> RotationAnalysis:
        studio = self._require_studio()
        rows, skipped = parse_performance_rows(body, headers)
        live = self.store.fetch_listings(studio_id=studio.id, status=ListingStatus.LIVE)
        matched, not_found = match_performance(rows, live, self.weights)
        if self.policy.pool_scope is PoolScope.GLOBAL:
            available = self.store.fetch_listings(status=ListingStatus.AVAILABLE)
        else:
            available = self.store.fetch_listings(studio_id=studio.id, status=ListingStatus.AVAILABLE)
        return RotationAnalysis(
            studio=studio,
            rows=worst_first(matched),
            not_found=not_found,
            replacements=candidate_pool(studio, available, self.policy),
            rotation_count=self.rotation_count,
            skipped_rows=skipped,
            live={listing.id: listing for listing in live},
        )

    def _commit(self, preview: Preview) -> list[Listing]:
        if isinstance(preview, PerformancePreview):
            return self.store.update_metrics(
                [(row.listing_id, row.gmv, row.clicks) for row in preview.matched]
            )
        if isinstance(preview, CatalogPreview):
            return self.store.bulk_insert_listings(
                [
                    NewListing(
                        name=row.name,
                        affiliate_link=row.affiliate_link,
                        studio_id=preview.studio_id,
                        original_url=row.original_url,
                        category=row.category,
                        status=ListingStatus.AVAILABLE,
                        gmv=row.gmv,
                        clicks=row.clicks,
                    )
                    for row in preview.to_import
                ]
            )
        raise ImportStateError("Rotation analysis has nothing to save")
