"""Muscle-group categories for strength exercises, in display order."""
from typing import Dict, List, Optional, Tuple

CATEGORY_ORDER: List[str] = [
    "chest",
    "back",
    "shoulders",
    "biceps",
    "triceps",
    "quads",
    "hamstrings",
    "calves",
    "forearms",
    "abs",
]

CATEGORY_LABELS: Dict[str, str] = {category: category.title() for category in CATEGORY_ORDER}

UNKNOWN_CATEGORY = "unknown"
UNKNOWN_LABEL = "Unknown"


def resolve_category(category: Optional[str]) -> Tuple[str, str]:
    """(category, label) for a stored category; missing or unrecognised maps to unknown."""
    if category and category in CATEGORY_LABELS:
        return category, CATEGORY_LABELS[category]
    return UNKNOWN_CATEGORY, UNKNOWN_LABEL
