import re
from typing import Dict, List, Optional

from exambank.core.config import get_settings
from exambank.core.errors import ValidationError

CANONICAL_EXAM_KEYS = ("JEE", "NEET")

# Single synonym table for every call site; keys are in cleaned form.
EXAM_TYPE_SYNONYMS: Dict[str, str] = {
    "JEE": "JEE",
    "JEEM": "JEE",
    "JEE MAIN": "JEE",
    "JEE MAINS": "JEE",
    "JEEMAIN": "JEE",
    "JEEMAINS": "JEE",
    "JEE ADVANCED": "JEE",
    "JEEADV": "JEE",
    "JEEADVANCED": "JEE",
    "NEET": "NEET",
    "NEET UG": "NEET",
    "NEETUG": "NEET",
}

_SEPARATORS = re.compile(r"[\s\-_]+")


def clean_exam_type(raw: str) -> str:
    """Trim, upper-case and collapse whitespace/hyphen/underscore runs to one space."""

    return _SEPARATORS.sub(" ", raw.strip().upper()).strip()


def normalize_exam_type(raw: Optional[str]) -> Optional[str]:
    """Map a free-text exam identifier to its canonical key, or None when unrecognized."""

    if not raw or not isinstance(raw, str):
        return None
    cleaned = clean_exam_type(raw)
    if cleaned in EXAM_TYPE_SYNONYMS:
        return EXAM_TYPE_SYNONYMS[cleaned]
    return EXAM_TYPE_SYNONYMS.get(cleaned.replace(" ", ""))


def resolve_exam_key(raw: Optional[str], allow_unrecognized: Optional[bool] = None) -> str:
    """
    Normalize ``raw`` for routing.

    Unrecognized identifiers are rejected unless pass-through is enabled, in which
    case the cleaned upper-case string is used as the key and the router decides
    whether a store exists for it.
    """

    if not raw or not isinstance(raw, str) or not raw.strip():
        raise ValidationError("examType is required")
    key = normalize_exam_type(raw)
    if key:
        return key
    if allow_unrecognized is None:
        allow_unrecognized = get_settings().allow_unrecognized_exam_types
    if allow_unrecognized:
        return clean_exam_type(raw)
    raise ValidationError(
        f"Unrecognized exam type: {raw!r}",
        supported=sorted(EXAM_TYPE_SYNONYMS),
    )


def supported_exam_types() -> List[Dict[str, object]]:
    return [
        {"key": key, "synonyms": sorted(s for s, target in EXAM_TYPE_SYNONYMS.items() if target == key)}
        for key in CANONICAL_EXAM_KEYS
    ]
