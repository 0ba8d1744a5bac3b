"""FastAPI application for studio rotation and catalog management."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict
from datetime import datetime
from functools import lru_cache
from typing import Any
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.engine import Engine

from studiodesk.db.models import Listing, ListingStatus, NewListing, Studio
from studiodesk.db.session import create_engine_from_env
from studiodesk.db.store import ListingStateError, ListingStore
from studiodesk.ingest.errors import ImportCommitError, ImportStateError
from studiodesk.ingest.importer import (
    DEFAULT_ROTATION_COUNT,
    CatalogPreview,
    CsvImportSession,
    ImportMode,
    ImportState,
    PerformancePreview,
    RotationAnalysis,
)
from studiodesk.logic.analytics import catalog_stats, dead_stock, studio_summary, top_performers
from studiodesk.logic.rotation import RotationAction, RotationItem, compute_rotations
from studiodesk.logic.tracker import RotationSession
from studiodesk.utils.dates import utc_now

logger = logging.getLogger(__name__)

app = FastAPI(title="Studiodesk API")

MAX_IMPORT_SESSIONS = int(os.environ.get("IMPORT_SESSION_LIMIT", 50))


class StudioIn(BaseModel):
    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    capacity: int = Field(100, ge=0)
    daily_rotation: int = Field(2, ge=0)
    color: str | None = None


class StudioPatch(BaseModel):
    name: str | None = Field(None, min_length=1)
    category: str | None = Field(None, min_length=1)
    capacity: int | None = Field(None, ge=0)
    daily_rotation: int | None = Field(None, ge=0)
    color: str | None = None


class StudioOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category: str
    capacity: int
    daily_rotation: int
    color: str | None = None


class ListingIn(BaseModel):
    name: str = Field(min_length=1)
    affiliate_link: str = Field(min_length=1)
    studio_id: int | None = None
    original_url: str | None = None
    category: str | None = None
    status: ListingStatus = ListingStatus.AVAILABLE
    gmv: float = Field(0.0, ge=0)
    clicks: int = Field(0, ge=0)
    cooldown_until: datetime | None = None


class ListingPatch(BaseModel):
    studio_id: int | None = None
    name: str | None = Field(None, min_length=1)
    affiliate_link: str | None = Field(None, min_length=1)
    original_url: str | None = None
    category: str | None = None
    status: ListingStatus | None = None
    gmv: float | None = Field(None, ge=0)
    clicks: int | None = Field(None, ge=0)
    cooldown_until: datetime | None = None


class ListingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    studio_id: int | None
    name: str
    affiliate_link: str
    original_url: str | None
    category: str | None
    status: ListingStatus
    gmv: float
    clicks: int
    score: float
    cooldown_until: datetime | None = None
    live_since: datetime | None = None


class StudioSummaryOut(BaseModel):
    studio_id: int
    studio: str
    category: str
    capacity: int
    daily_rotation: int
    live_count: int
    total_gmv: float
    mean_score: float
    utilization: float


class AnalyticsResponse(BaseModel):
    stats: dict[str, int]
    studios: list[StudioSummaryOut]
    top_performers: list[ListingOut]
    dead_stock: list[ListingOut]


class RotationItemOut(BaseModel):
    action: RotationAction
    marked_complete: bool
    listing: ListingOut


class RotationOut(BaseModel):
    studio_id: int
    studio: str
    to_remove: list[RotationItemOut]
    to_add: list[RotationItemOut]
    done: int
    total: int
    complete: bool


class CompleteRequest(BaseModel):
    listing_id: int
    action: RotationAction


class CompleteResponse(BaseModel):
    applied: bool
    rotation: RotationOut


class ImportRequest(BaseModel):
    mode: ImportMode
    csv: str
    studio_id: int | None = None
    rotation_count: int = Field(DEFAULT_ROTATION_COUNT, ge=1)


class ImportPatch(BaseModel):
    rotation_count: int = Field(ge=1)


class ImportOut(BaseModel):
    token: str | None
    mode: ImportMode
    state: ImportState
    studio_id: int | None
    rotation_count: int
    error: str | None = None
    preview: dict[str, Any] | None = None


class ConfirmResponse(BaseModel):
    listings: list[ListingOut]


class SessionRegistry:
    """In-memory import sessions by token and rotation sessions by studio.

    At most ``max_imports`` import sessions are kept; the oldest is dropped
    to make room for a new one.
    """

    def __init__(self, max_imports: int = MAX_IMPORT_SESSIONS) -> None:
        self.max_imports = max_imports
        self.imports: dict[str, CsvImportSession] = {}
        self.rotations: dict[int, RotationSession] = {}

    def add_import(self, session: CsvImportSession) -> str:
        while self.imports and len(self.imports) >= self.max_imports:
            evicted = next(iter(self.imports))
            del self.imports[evicted]
            logger.info("Dropped stale import session %s", evicted)
        token = uuid4().hex
        self.imports[token] = session
        return token

    def clear(self) -> None:
        self.imports.clear()
        self.rotations.clear()


SESSIONS = SessionRegistry()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_engine_from_env()


def get_store(engine: Engine = Depends(get_engine)) -> ListingStore:
    return ListingStore(engine)


def get_sessions() -> SessionRegistry:
    return SESSIONS


@app.exception_handler(LookupError)
async def not_found_handler(request: Request, exc: LookupError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def invalid_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ImportStateError)
async def import_state_handler(request: Request, exc: ImportStateError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ListingStateError)
async def listing_state_handler(request: Request, exc: ListingStateError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ImportCommitError)
async def import_commit_handler(request: Request, exc: ImportCommitError) -> JSONResponse:
    return JSONResponse(status_code=502, content={"detail": str(exc)})


# Studios


@app.get("/studios", response_model=list[StudioOut])
async def list_studios(store: ListingStore = Depends(get_store)) -> list[Studio]:
    return store.fetch_studios()


@app.post("/studios", response_model=StudioOut, status_code=status.HTTP_201_CREATED)
async def create_studio(payload: StudioIn, store: ListingStore = Depends(get_store)) -> Studio:
    return store.create_studio(**payload.model_dump())


@app.patch("/studios/{studio_id}", response_model=StudioOut)
async def update_studio(studio_id: int, payload: StudioPatch, store: ListingStore = Depends(get_store)) -> Studio:
    return store.update_studio(studio_id, **payload.model_dump(exclude_unset=True))


@app.delete("/studios/{studio_id}")
async def delete_studio(
    studio_id: int,
    store: ListingStore = Depends(get_store),
    sessions: SessionRegistry = Depends(get_sessions),
) -> JSONResponse:
    store.delete_studio(studio_id)
    sessions.rotations.pop(studio_id, None)
    return JSONResponse({"status": "deleted"})


# Listings


@app.get("/listings", response_model=list[ListingOut])
async def list_listings(
    studio_id: int | None = None,
    listing_status: ListingStatus | None = Query(None, alias="status"),
    unassigned: bool = False,
    store: ListingStore = Depends(get_store),
) -> list[Listing]:
    return store.fetch_listings(studio_id=studio_id, status=listing_status, unassigned=unassigned)


@app.get("/listings/stats")
async def listing_stats(studio_id: int | None = None, store: ListingStore = Depends(get_store)) -> dict[str, int]:
    return catalog_stats(store.fetch_listings(studio_id=studio_id))


@app.post("/listings", response_model=ListingOut, status_code=status.HTTP_201_CREATED)
async def create_listing(payload: ListingIn, store: ListingStore = Depends(get_store)) -> Listing:
    if payload.studio_id is not None and store.get_studio(payload.studio_id) is None:
        raise HTTPException(status_code=404, detail=f"Studio {payload.studio_id} not found")
    return store.create_listing(NewListing(**payload.model_dump()))


@app.patch("/listings/{listing_id}", response_model=ListingOut)
async def update_listing(listing_id: int, payload: ListingPatch, store: ListingStore = Depends(get_store)) -> Listing:
    return store.update_listing(listing_id, **payload.model_dump(exclude_unset=True))


# Analytics


@app.get("/analytics/summary", response_model=AnalyticsResponse)
async def analytics_summary(
    limit: int = Query(10, ge=1, le=100),
    store: ListingStore = Depends(get_store),
) -> AnalyticsResponse:
    studios = store.fetch_studios()
    listings = store.fetch_listings()
    summary = studio_summary(studios, listings)
    rows = [
        StudioSummaryOut(
            studio_id=int(row.studio_id),
            studio=row.studio,
            category=row.category,
            capacity=int(row.capacity),
            daily_rotation=int(row.daily_rotation),
            live_count=int(row.live_count),
            total_gmv=float(row.total_gmv),
            mean_score=float(row.mean_score),
            utilization=float(row.utilization),
        )
        for row in summary.itertuples(index=False)
    ]
    return AnalyticsResponse(
        stats=catalog_stats(listings),
        studios=rows,
        top_performers=[ListingOut.model_validate(listing) for listing in top_performers(listings, limit)],
        dead_stock=[ListingOut.model_validate(listing) for listing in dead_stock(listings, utc_now())],
    )


# Rotations


def _item_out(item: RotationItem) -> RotationItemOut:
    return RotationItemOut(
        action=item.action,
        marked_complete=item.marked_complete,
        listing=ListingOut.model_validate(item.listing),
    )


def _rotation_out(session: RotationSession) -> RotationOut:
    rotation = session.rotation
    done, total = session.progress()
    return RotationOut(
        studio_id=rotation.studio.id,
        studio=rotation.studio.name,
        to_remove=[_item_out(item) for item in rotation.to_remove],
        to_add=[_item_out(item) for item in rotation.to_add],
        done=done,
        total=total,
        complete=session.is_rotation_complete(),
    )


def _refresh_rotations(store: ListingStore, sessions: SessionRegistry) -> None:
    sessions.rotations = {
        rotation.studio.id: RotationSession(rotation, store) for rotation in compute_rotations(store)
    }


@app.get("/rotations", response_model=list[RotationOut])
async def list_rotations(
    store: ListingStore = Depends(get_store),
    sessions: SessionRegistry = Depends(get_sessions),
) -> list[RotationOut]:
    if not sessions.rotations:
        _refresh_rotations(store, sessions)
    return [_rotation_out(session) for session in sessions.rotations.values()]


@app.post("/rotations/refresh", response_model=list[RotationOut])
async def refresh_rotations(
    store: ListingStore = Depends(get_store),
    sessions: SessionRegistry = Depends(get_sessions),
) -> list[RotationOut]:
    _refresh_rotations(store, sessions)
    return [_rotation_out(session) for session in sessions.rotations.values()]


@app.post("/rotations/{studio_id}/complete", response_model=CompleteResponse)
async def complete_rotation_item(
    studio_id: int,
    payload: CompleteRequest,
    sessions: SessionRegistry = Depends(get_sessions),
) -> CompleteResponse:
    session = sessions.rotations.get(studio_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"No rotation for studio {studio_id}")
    item = session.find_item(payload.listing_id, payload.action)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Listing {payload.listing_id} is not in this rotation")
    applied = await session.mark_complete(item)
    return CompleteResponse(applied=applied, rotation=_rotation_out(session))


# CSV imports


def _preview_payload(preview: PerformancePreview | CatalogPreview | RotationAnalysis | None) -> dict[str, Any] | None:
    if preview is None:
        return None
    if isinstance(preview, PerformancePreview):
        return {
            "rows": [asdict(row) for row in preview.rows],
            "not_found": preview.not_found,
            "skipped_rows": preview.skipped_rows,
        }
    if isinstance(preview, CatalogPreview):
        return {
            "to_import": [asdict(row) for row in preview.to_import],
            "duplicates": preview.duplicate_names,
            "skipped_rows": preview.skipped_rows,
        }
    return {
        "lowest_performers": [asdict(row) for row in preview.lowest_performers],
        "replacements": [
            ListingOut.model_validate(listing).model_dump(mode="json") for listing in preview.top_replacements
        ],
        "not_found": preview.not_found,
        "skipped_rows": preview.skipped_rows,
    }


def _import_out(token: str | None, session: CsvImportSession) -> ImportOut:
    return ImportOut(
        token=token,
        mode=session.mode,
        state=session.state,
        studio_id=session.studio_id,
        rotation_count=session.rotation_count,
        error=session.error_message,
        preview=_preview_payload(session.preview),
    )


def _get_import(token: str, sessions: SessionRegistry) -> CsvImportSession:
    session = sessions.imports.get(token)
    if session is None:
        raise HTTPException(status_code=404, detail="Unknown import")
    return session


@app.post("/imports", response_model=ImportOut, status_code=status.HTTP_201_CREATED)
async def create_import(
    payload: ImportRequest,
    store: ListingStore = Depends(get_store),
    sessions: SessionRegistry = Depends(get_sessions),
) -> ImportOut:
    session = CsvImportSession(
        store,
        payload.mode,
        studio_id=payload.studio_id,
        rotation_count=payload.rotation_count,
    )
    await session.submit(payload.csv)
    if session.state is ImportState.ERROR:
        logger.info("CSV %s import failed: %s", payload.mode.value, session.error_message)
        return _import_out(None, session)
    return _import_out(sessions.add_import(session), session)


@app.get("/imports/{token}", response_model=ImportOut)
async def get_import(token: str, sessions: SessionRegistry = Depends(get_sessions)) -> ImportOut:
    return _import_out(token, _get_import(token, sessions))


@app.patch("/imports/{token}", response_model=ImportOut)
async def update_import(token: str, payload: ImportPatch, sessions: SessionRegistry = Depends(get_sessions)) -> ImportOut:
    session = _get_import(token, sessions)
    session.set_rotation_count(payload.rotation_count)
    return _import_out(token, session)


@app.post("/imports/{token}/confirm", response_model=ConfirmResponse)
async def confirm_import(token: str, sessions: SessionRegistry = Depends(get_sessions)) -> ConfirmResponse:
    session = _get_import(token, sessions)
    written = await session.confirm()
    sessions.imports.pop(token, None)
    return ConfirmResponse(listings=[ListingOut.model_validate(listing) for listing in written])


@app.post("/imports/{token}/rotation", response_model=RotationOut)
async def start_import_rotation(
    token: str,
    store: ListingStore = Depends(get_store),
    sessions: SessionRegistry = Depends(get_sessions),
) -> RotationOut:
    session = _get_import(token, sessions)
    rotation = session.to_rotation()
    tracker = RotationSession(rotation, store)
    sessions.rotations[rotation.studio.id] = tracker
    sessions.imports.pop(token, None)
    return _rotation_out(tracker)


@app.delete("/imports/{token}")
async def discard_import(token: str, sessions: SessionRegistry = Depends(get_sessions)) -> JSONResponse:
    session = _get_import(token, sessions)
    session.reset()
    sessions.imports.pop(token, None)
    return JSONResponse({"status": "discarded"})
