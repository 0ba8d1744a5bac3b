"""Match CSV product names against a studio's catalog."""

from __future__ import annotations

from typing import Iterable, Protocol, Sequence, TypeVar

from studiodesk.ingest.models import MatchedProduct, ParsedPerformanceRow
from studiodesk.logic.scoring import ScoreWeights, compute_score


class Named(Protocol):
    id: int
    name: str


CandidateT = TypeVar("CandidateT", bound=Named)


def match_product(csv_name: str, candidates: Iterable[CandidateT]) -> CandidateT | None:
    """First candidate whose name contains ``csv_name`` or is contained by it.

    Comparison is case-insensitive and candidate order decides ties, so
    ``"shirt"`` against ``["Red Shirt", "Shirt"]`` returns ``"Red Shirt"``.
    Candidates with blank names are ignored.
    """
    needle = csv_name.strip().lower()
    if not needle:
        return None
    for candidate in candidates:
        name = (candidate.name or "").strip().lower()
        if not name:
            continue
        if needle in name or name in needle:
            return candidate
    return None


def match_performance(
    rows: Sequence[ParsedPerformanceRow],
    candidates: Sequence[Named],
    weights: ScoreWeights | None = None,
) -> tuple[list[MatchedProduct], list[str]]:
    """Score every row and attach its catalog match when there is one.

    Unmatched rows stay in the result with ``listing_id=None``; their names
    are also returned separately so callers can warn about them.
    """
    matched: list[MatchedProduct] = []
    not_found: list[str] = []
    for row in rows:
        candidate = match_product(row.name, candidates)
        if candidate is None:
            not_found.append(row.name)
        matched.append(
            MatchedProduct(
                csv_name=row.name,
                listing_id=candidate.id if candidate else None,
                matched_name=candidate.name if candidate else None,
                gmv=row.gmv,
                clicks=row.clicks,
                score=compute_score(row.gmv, row.clicks, weights),
            )
        )
    return matched, not_found


def worst_first(rows: Sequence[MatchedProduct]) -> list[MatchedProduct]:
    return sorted(rows, key=lambda row: row.score)
