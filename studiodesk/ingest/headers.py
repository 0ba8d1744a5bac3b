"""Map CSV header cells to the columns the importer understands."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from studiodesk.ingest.errors import CsvValidationError

NOT_FOUND = -1

NAME_KEYWORDS = ("nama", "name", "produk")
AFFILIATE_KEYWORDS = ("affiliate", "link affiliate")
LINK_FALLBACK_KEYWORDS = ("link", "url")
ORIGINAL_KEYWORDS = ("original", "link original", "shopee")
CATEGORY_KEYWORDS = ("kategori", "category")
GMV_KEYWORDS = ("gmv", "revenue", "penjualan")
CLICKS_KEYWORDS = ("klik", "click")

COLUMN_LABELS = {
    "name": "Nama Produk",
    "link": "Link Affiliate",
    "original": "Link Original",
    "category": "Kategori",
    "gmv": "GMV",
    "clicks": "Klik",
}


@dataclass(frozen=True, slots=True)
class HeaderMap:
    name: int = NOT_FOUND
    link: int = NOT_FOUND
    original: int = NOT_FOUND
    category: int = NOT_FOUND
    gmv: int = NOT_FOUND
    clicks: int = NOT_FOUND

    def has(self, role: str) -> bool:
        return getattr(self, role) != NOT_FOUND

    def require(self, *roles: str) -> None:
        missing = [COLUMN_LABELS[role] for role in roles if not self.has(role)]
        if missing:
            quoted = ", ".join(f'"{label}"' for label in missing)
            raise CsvValidationError(f"CSV file must have a {quoted} column")


def find_column(headers: Sequence[str], keywords: Sequence[str]) -> int:
    """Index of the first header containing any keyword, or ``NOT_FOUND``."""
    for index, header in enumerate(headers):
        if any(keyword in header for keyword in keywords):
            return index
    return NOT_FOUND


def resolve_headers(cells: Sequence[str]) -> HeaderMap:
    headers = [cell.strip().lower() for cell in cells]
    link = find_column(headers, AFFILIATE_KEYWORDS)
    if link == NOT_FOUND:
        link = find_column(headers, LINK_FALLBACK_KEYWORDS)
    return HeaderMap(
        name=find_column(headers, NAME_KEYWORDS),
        link=link,
        original=find_column(headers, ORIGINAL_KEYWORDS),
        category=find_column(headers, CATEGORY_KEYWORDS),
        gmv=find_column(headers, GMV_KEYWORDS),
        clicks=find_column(headers, CLICKS_KEYWORDS),
    )
