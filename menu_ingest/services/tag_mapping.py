"""
Mapping from AI-parsed tags to stored allergen/dietary tags.
"""
import math
import re
from typing import Any, Optional

from menu_ingest.schemas.menu_upload import IdentifiedTag, ParsedMenuTag

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """'Dairy Free!' -> 'dairy-free'"""
    slug = _NON_ALNUM.sub("-", value.lower())
    slug = re.sub(r"-{2,}", "-", slug)
    return slug.strip("-")


def clamp_confidence(value: Any) -> Optional[float]:
    """
    Clamp a confidence score into [0, 1].

    Returns None for missing, NaN or non-numeric values.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return max(0.0, min(1.0, number))


def map_tag_to_identified_tag(tag: ParsedMenuTag) -> IdentifiedTag:
    """Convert a parsed tag into an AI-sourced IdentifiedTag."""
    return IdentifiedTag(
        code=tag.code,
        label=tag.label,
        confidence=clamp_confidence(tag.confidence),
        source="ai",
    )
