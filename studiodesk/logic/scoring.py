"""Listing performance score."""

from __future__ import annotations

import os
from dataclasses import dataclass

CLICK_SCALE = 1000

GMV_WEIGHT = float(os.environ.get("SCORE_GMV_WEIGHT", 0.7))
CLICKS_WEIGHT = float(os.environ.get("SCORE_CLICKS_WEIGHT", 0.3))


@dataclass(frozen=True, slots=True)
class ScoreWeights:
    gmv_weight: float = 0.7
    clicks_weight: float = 0.3

    def __post_init__(self) -> None:
        if self.gmv_weight < 0 or self.clicks_weight < 0:
            raise ValueError("Score weights must be non-negative")

    @classmethod
    def from_env(cls) -> "ScoreWeights":
        return cls(
            gmv_weight=float(os.environ.get("SCORE_GMV_WEIGHT", GMV_WEIGHT)),
            clicks_weight=float(os.environ.get("SCORE_CLICKS_WEIGHT", CLICKS_WEIGHT)),
        )


DEFAULT_WEIGHTS = ScoreWeights()


def compute_score(gmv: float, clicks: int, weights: ScoreWeights | None = None) -> float:
    """Rank value for a listing.

    Clicks are scaled by ``CLICK_SCALE`` before weighting so that click counts
    (tens to hundreds) and GMV (hundreds of thousands to millions) land in
    comparable ranges under the default 0.7/0.3 split.
    """
    if gmv < 0 or clicks < 0:
        raise ValueError("GMV and clicks must be non-negative")
    w = weights or DEFAULT_WEIGHTS
    return gmv * w.gmv_weight + clicks * CLICK_SCALE * w.clicks_weight
