import pytest

from studiodesk.ingest.errors import CsvValidationError
from studiodesk.ingest.headers import NOT_FOUND, HeaderMap, find_column, resolve_headers


def test_resolve_performance_headers():
    headers = resolve_headers(["  NAMA PRODUK ", "GMV (Rp)", "Jumlah Klik"])
    assert headers == HeaderMap(name=0, gmv=1, clicks=2)
    assert not headers.has("link")


def test_affiliate_column_beats_plain_link():
    headers = resolve_headers(["Link Original", "Product Name", "Link Affiliate"])
    assert headers.link == 2
    assert headers.original == 0
    assert headers.name == 1


def test_link_falls_back_to_url_column():
    headers = resolve_headers(["Name", "URL"])
    assert headers.link == 1


def test_resolve_headers_is_idempotent():
    cells = ["Nama Produk", "Link Affiliate", "Kategori", "Penjualan", "Clicks"]
    assert resolve_headers(cells) == resolve_headers(cells)


def test_find_column_first_match_wins():
    assert find_column(["total revenue", "gmv"], ("gmv", "revenue")) == 0
    assert find_column(["a", "b"], ("gmv",)) == NOT_FOUND


def test_require_names_missing_columns():
    headers = resolve_headers(["GMV", "Klik"])
    with pytest.raises(CsvValidationError, match='"Nama Produk"'):
        headers.require("name")
    resolve_headers(["Nama", "Link"]).require("name", "link")
