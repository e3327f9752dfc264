"""Rejection categories and note-based categorization."""

from __future__ import annotations

import re
from enum import Enum

from src.core.errors import InvalidInput


class RejectionCategory(str, Enum):
    """Why generated content was rejected."""

    INCORRECT_MATCH = "incorrect-match"  # Wrong term / translation pairing
    INCORRECT_FEATURE = "incorrect-feature"  # Describes the wrong feature or part
    POOR_LOCALIZATION = "poor-localization"  # Wrong position or placement
    FALSE_POSITIVE = "false-positive"  # Refers to something that isn't there
    DUPLICATE = "duplicate"
    LOW_QUALITY = "low-quality"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | RejectionCategory) -> RejectionCategory:
        """Parse 'incorrect-feature', 'incorrect_feature' or 'INCORRECT_FEATURE'."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("_", "-")
        try:
            return cls(normalized)
        except ValueError:
            allowed = ", ".join(c.value for c in cls)
            raise InvalidInput("category", f"unknown category {value!r} (expected one of: {allowed})") from None


# Guidance appended to hints, phrased as what the generator should do
CATEGORY_GUIDANCE = {
    RejectionCategory.INCORRECT_MATCH: "double-check that each term is paired with its correct meaning",
    RejectionCategory.INCORRECT_FEATURE: "make sure the described feature really belongs to the term",
    RejectionCategory.POOR_LOCALIZATION: "place the term where it naturally belongs in context",
    RejectionCategory.FALSE_POSITIVE: "only reference things that are actually present",
    RejectionCategory.DUPLICATE: "vary sentences and distractors instead of repeating earlier items",
    RejectionCategory.LOW_QUALITY: "keep wording clear, grammatical and unambiguous",
    RejectionCategory.OTHER: "review reviewer notes for this concept",
}

_EXPLICIT = re.compile(r"^\s*\[([A-Za-z_\-]+)\]")

# Checked in order; the first rule with a matching keyword wins
_KEYWORD_RULES: list[tuple[RejectionCategory, tuple[str, ...]]] = [
    (RejectionCategory.INCORRECT_MATCH, ("match", "wrong term", "wrong translation", "mistranslat")),
    (RejectionCategory.INCORRECT_FEATURE, ("feature", "part")),
    (RejectionCategory.POOR_LOCALIZATION, ("position", "box", "locali", "placement")),
    (RejectionCategory.FALSE_POSITIVE, ("false", "not found", "not present")),
    (RejectionCategory.DUPLICATE, ("duplicate", "repeated")),
    (RejectionCategory.LOW_QUALITY, ("quality", "blurry", "unclear", "typo")),
]


def categorize_note(note: str | None) -> RejectionCategory:
    """
    Infer a rejection category from a reviewer's free-text note.

    An explicit ``[CATEGORY]`` prefix wins; otherwise keyword rules apply and
    anything unrecognised is OTHER.
    """
    if not note:
        return RejectionCategory.OTHER

    match = _EXPLICIT.match(note)
    if match:
        try:
            return RejectionCategory.parse(match.group(1))
        except InvalidInput:
            return RejectionCategory.OTHER

    lowered = note.lower()
    for category, keywords in _KEYWORD_RULES:
        if any(keyword in lowered for keyword in keywords):
            return category
    return RejectionCategory.OTHER
