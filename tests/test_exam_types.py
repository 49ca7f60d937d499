import pytest

from exambank.core.errors import ValidationError
from exambank.core.exam_types import (
    CANONICAL_EXAM_KEYS,
    EXAM_TYPE_SYNONYMS,
    clean_exam_type,
    normalize_exam_type,
    resolve_exam_key,
    supported_exam_types,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("JEE", "JEE"),
        ("jee main", "JEE"),
        ("JEE-MAINS", "JEE"),
        ("  Jee_Main ", "JEE"),
        ("JEE   Advanced", "JEE"),
        ("jeemains", "JEE"),
        ("neet", "NEET"),
        ("NEET-UG", "NEET"),
        ("neet ug", "NEET"),
    ],
)
def test_normalize_synonyms(raw, expected):
    assert normalize_exam_type(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", None, "GATE", "CAT 2024"])
def test_normalize_unrecognized_returns_none(raw):
    assert normalize_exam_type(raw) is None


def test_normalize_is_idempotent():
    for synonym in EXAM_TYPE_SYNONYMS:
        key = normalize_exam_type(synonym)
        assert normalize_exam_type(key) == key
    for key in CANONICAL_EXAM_KEYS:
        assert normalize_exam_type(key) == key


def test_clean_collapses_separators():
    assert clean_exam_type(" jee -_ main ") == "JEE MAIN"


def test_resolve_requires_value():
    with pytest.raises(ValidationError):
        resolve_exam_key("")
    with pytest.raises(ValidationError):
        resolve_exam_key(None)


def test_resolve_rejects_unrecognized_by_default():
    with pytest.raises(ValidationError) as exc_info:
        resolve_exam_key("GATE")
    assert "JEE" in exc_info.value.context["supported"]
    assert exc_info.value.status_code == 400


def test_resolve_pass_through_when_allowed():
    assert resolve_exam_key("gate-cse", allow_unrecognized=True) == "GATE CSE"


def test_resolve_pass_through_from_settings(monkeypatch):
    monkeypatch.setenv("EXAMBANK_ALLOW_UNRECOGNIZED_EXAM_TYPES", "true")
    assert resolve_exam_key("gate") == "GATE"


def test_supported_exam_types_lists_synonyms():
    listed = {entry["key"]: entry["synonyms"] for entry in supported_exam_types()}
    assert set(listed) == {"JEE", "NEET"}
    assert "JEE MAINS" in listed["JEE"]
    assert "NEET UG" in listed["NEET"]
