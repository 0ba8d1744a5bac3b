import pytest
from sqlalchemy.exc import SQLAlchemyError

from studiodesk.db.models import ListingStatus, NewListing
from studiodesk.ingest.errors import ImportCommitError, ImportStateError
from studiodesk.ingest.importer import CsvImportSession, ImportMode, ImportState, RotationAnalysis
from studiodesk.logic.rotation import PoolScope, RotationAction, RotationPolicy

PERFORMANCE_CSV = "\ufeffNama Produk,GMV,Klik\nWireless Mouse,200000,50\nPhone Case,50000,10\nDesk Lamp,900000,120\n"

CATALOG_CSV = """Nama Produk,Link Affiliate,Link Original,Kategori
Linen Shirt,https://s.shopee.co.id/linen,https://shopee.co.id/linen,Fashion
Wireless Mouse v2,https://s.shopee.co.id/mouse2,https://shopee.co.id/mouse,Fashion
Linen Shirt Copy,https://s.shopee.co.id/linen2,https://shopee.co.id/linen,Fashion
,https://s.shopee.co.id/anon,https://shopee.co.id/anon,Fashion
"""


@pytest.mark.asyncio
async def test_rotation_analysis_lowest_performer(store, seeded):
    session = CsvImportSession(store, "rotation", studio_id=seeded.studio.id, rotation_count=1, policy=RotationPolicy())
    assert await session.submit(PERFORMANCE_CSV) is ImportState.READY
    analysis = session.preview
    assert isinstance(analysis, RotationAnalysis)
    [lowest] = analysis.lowest_performers
    assert lowest.csv_name == "Phone Case"
    assert lowest.score == pytest.approx(38000)
    assert [listing.name for listing in analysis.top_replacements] == ["Canvas Tote"]

    session.set_rotation_count(2)
    assert [row.csv_name for row in analysis.lowest_performers] == ["Phone Case", "Wireless Mouse"]

    rotation = session.to_rotation()
    assert [item.listing.name for item in rotation.to_remove] == ["Phone Case", "Wireless Mouse"]
    assert [item.listing.name for item in rotation.to_add] == ["Canvas Tote", "Silk Scarf"]
    assert {item.action for item in rotation.to_add} == {RotationAction.ADD}


@pytest.mark.asyncio
async def test_rotation_analysis_reports_unknown_names(store, seeded):
    csv = "Nama Produk,GMV,Klik\nMystery Box,1,1\nDesk Lamp,900000,120\n"
    session = CsvImportSession(store, ImportMode.ROTATION, studio_id=seeded.studio.id, rotation_count=2)
    await session.submit(csv)
    assert session.preview.not_found == ["Mystery Box"]
    rotation = session.to_rotation()
    assert [item.listing.name for item in rotation.to_remove] == ["Desk Lamp"]


@pytest.mark.asyncio
async def test_performance_import_updates_metrics(store, seeded):
    session = CsvImportSession(store, "performance", studio_id=seeded.studio.id)
    csv = "Product Name,Revenue,Clicks\nphone case,Rp 75000,20\nUnknown,1,1\n"
    assert await session.submit(csv.encode("utf-8-sig")) is ImportState.READY
    assert session.preview.not_found == ["Unknown"]
    written = await session.confirm()
    assert [listing.name for listing in written] == ["Phone Case"]
    listing = store.get_listing(seeded.ids["Phone Case"])
    assert listing.gmv == 75000
    assert listing.clicks == 20
    assert listing.score == pytest.approx(75000 * 0.7 + 20 * 1000 * 0.3)
    assert session.state is ImportState.IDLE
    assert session.preview is None
    assert session.studio_id is None


@pytest.mark.asyncio
async def test_catalog_import_skips_duplicates(store, seeded):
    session = CsvImportSession(store, "catalog", studio_id=seeded.studio.id)
    assert await session.submit(CATALOG_CSV) is ImportState.READY
    preview = session.preview
    assert [row.name for row in preview.to_import] == ["Linen Shirt"]
    assert preview.duplicate_names == ["Wireless Mouse v2", "Linen Shirt Copy"]
    assert preview.skipped_rows == 1
    [created] = await session.confirm()
    assert created.name == "Linen Shirt"
    assert created.status is ListingStatus.AVAILABLE
    assert created.studio_id == seeded.studio.id
    assert created.category == "Fashion"


@pytest.mark.asyncio
async def test_catalog_import_without_studio_goes_to_pool(store, tmp_path):
    path = tmp_path / "catalog.csv"
    path.write_text("Name,URL\nPool Lamp,https://s.shopee.co.id/pl\n")
    session = CsvImportSession(store, "catalog")
    await session.submit(path)
    [created] = await session.confirm()
    assert created.studio_id is None
    assert created.original_url == "https://s.shopee.co.id/pl"


@pytest.mark.asyncio
async def test_validation_errors_put_session_in_error(store, seeded):
    session = CsvImportSession(store, "performance", studio_id=seeded.studio.id)
    assert await session.submit("GMV,Klik\n100,1\n") is ImportState.ERROR
    assert session.error_message == 'CSV file must have a "Nama Produk" column'
    assert await session.submit("Nama Produk,GMV\n") is ImportState.ERROR
    assert session.error_message == "CSV file must have a header row and at least one data row"
    assert await session.submit(PERFORMANCE_CSV) is ImportState.READY
    assert session.error_message is None


@pytest.mark.asyncio
async def test_catalog_requires_link_column(store):
    session = CsvImportSession(store, "catalog")
    await session.submit("Nama Produk,Kategori\nShirt,Fashion\n")
    assert session.state is ImportState.ERROR
    assert '"Link Affiliate"' in session.error_message


@pytest.mark.asyncio
async def test_unknown_studio_and_unreadable_file(store, tmp_path):
    session = CsvImportSession(store, "rotation", studio_id=999)
    await session.submit(PERFORMANCE_CSV)
    assert session.state is ImportState.ERROR
    assert session.error_message == "Studio 999 not found"
    await session.submit(tmp_path / "missing.csv")
    assert session.error_message == "Unable to read the CSV file"


@pytest.mark.asyncio
async def test_state_guards(store, seeded):
    session = CsvImportSession(store, "performance")
    with pytest.raises(ImportStateError):
        await session.submit(PERFORMANCE_CSV)
    with pytest.raises(ImportStateError):
        await session.confirm()
    session.select_studio(seeded.studio.id)
    await session.submit(PERFORMANCE_CSV)
    with pytest.raises(ImportStateError):
        await session.submit(PERFORMANCE_CSV)
    with pytest.raises(ImportStateError):
        session.select_studio(seeded.other.id)
    with pytest.raises(ImportStateError):
        session.to_rotation()
    with pytest.raises(ValueError):
        session.set_rotation_count(0)
    session.reset()
    assert session.state is ImportState.IDLE


@pytest.mark.asyncio
async def test_rotation_has_nothing_to_confirm(store, seeded):
    session = CsvImportSession(store, "rotation", studio_id=seeded.studio.id)
    await session.submit(PERFORMANCE_CSV)
    with pytest.raises(ImportStateError):
        await session.confirm()


@pytest.mark.asyncio
async def test_commit_failure_keeps_preview(store, seeded, monkeypatch):
    def boom(rows):
        raise SQLAlchemyError("database is locked")

    monkeypatch.setattr(store, "bulk_insert_listings", boom)
    session = CsvImportSession(store, "catalog", studio_id=seeded.studio.id)
    await session.submit(CATALOG_CSV)
    with pytest.raises(ImportCommitError):
        await session.confirm()
    assert session.state is ImportState.READY
    assert session.error_message == "Operation failed, please try again"
    assert [row.name for row in session.preview.to_import] == ["Linen Shirt"]


@pytest.mark.asyncio
async def test_catalog_lookup_failure(store, monkeypatch):
    def boom(urls):
        raise SQLAlchemyError("connection reset")

    monkeypatch.setattr(store, "existing_original_urls", boom)
    session = CsvImportSession(store, "catalog")
    await session.submit(CATALOG_CSV)
    assert session.state is ImportState.ERROR
    assert session.error_message == "Operation failed while reading the catalog, please try again"


@pytest.mark.asyncio
async def test_global_pool_offers_other_studio_listings(store, seeded):
    store.create_listing(NewListing("Pool Lamp", "https://s.shopee.co.id/pl", gmv=10))
    policy = RotationPolicy(pool_scope=PoolScope.GLOBAL)
    session = CsvImportSession(store, "rotation", studio_id=seeded.studio.id, rotation_count=5, policy=policy)
    await session.submit(PERFORMANCE_CSV)
    names = [listing.name for listing in session.preview.top_replacements]
    assert names == ["USB Hub", "Canvas Tote", "Silk Scarf", "Pool Lamp"]
