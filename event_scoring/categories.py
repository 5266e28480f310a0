"""Competition categories and the criteria judged in each of them."""
from __future__ import annotations

from typing import Dict, Tuple

CATEGORY_LABELS: Dict[str, str] = {
    "anime-comic": "Anime & Comic",
    "blackwork": "Blackwork",
    "color": "Color",
    "lettering": "Lettering",
    "tribute": "Tribute",
    "freestyle": "Freestyle",
    "neo-traditional": "Neo-Traditional",
    "new-artist": "New Artist",
    "realism-color": "Realism Color",
    "realism-black-grey": "Realism Black & Grey",
    "black-grey": "Black & Grey",
    "traditional": "Traditional",
}

DEFAULT_CRITERIA: Tuple[str, ...] = ("technique", "creativity", "composition", "color", "difficulty")

# Every category is judged on the same criteria for now.
CRITERIA_BY_CATEGORY: Dict[str, Tuple[str, ...]] = {slug: DEFAULT_CRITERIA for slug in CATEGORY_LABELS}

MIN_SCORE = 0.0
MAX_SCORE = 10.0
SCORE_STEP = 0.1


def category_label(slug: str) -> str:
    return CATEGORY_LABELS.get(slug, slug)


def is_known_category(slug: str) -> bool:
    return slug in CATEGORY_LABELS


def criteria_for(category: str) -> Tuple[str, ...]:
    return CRITERIA_BY_CATEGORY.get(category, DEFAULT_CRITERIA)
