import asyncio
from collections import Counter

import pytest
from conftest import make_batch

from exambank.core.errors import ValidationError
from exambank.db.models import QUESTIONS
from exambank.db.router import InMemoryRouter
from exambank.schemas.question import Difficulty
from exambank.schemas.selection import (
    AssembleRequest,
    DifficultyPercentages,
    DifficultySelectionRequest,
    LockFilter,
    RandomSelectionRequest,
)
from exambank.services.ingestion_service import ingest_questions
from exambank.services.selection_service import (
    assemble_paper,
    difficulty_cells,
    select_by_difficulty,
    select_random,
    split_by_difficulty,
)

KINEMATICS_DIFFICULTIES = ["Easy"] * 5 + ["Medium"] * 3 + ["Hard"] * 2


@pytest.fixture
def seeded(router: InMemoryRouter) -> InMemoryRouter:
    """10 MCQ physics questions (5 Easy, 3 Medium, 2 Hard) plus 4 integer maths questions."""

    asyncio.run(ingest_questions(make_batch(10, difficulties=KINEMATICS_DIFFICULTIES), router))
    asyncio.run(
        ingest_questions(
            make_batch(4, subject_id="maths", topic_id="calculus", question_type="Integer", difficulties=["Easy"]),
            router,
        )
    )
    return router


def _lock(router: InMemoryRouter, count: int, **match) -> None:
    locked = 0
    for doc in router.repos["JEE"].storage[QUESTIONS]:
        if locked < count and all(doc.get(key) == value for key, value in match.items()):
            doc["locked"] = True
            locked += 1


def _percentages(easy, medium, hard) -> DifficultyPercentages:
    return DifficultyPercentages(easy=easy, medium=medium, hard=hard)


@pytest.mark.parametrize("total", [0, 1, 3, 4, 7, 10, 33])
@pytest.mark.parametrize(
    "pct",
    [(50, 25, 25), (33.3, 33.3, 33.4), (0, 0, 100), (100, 0, 0), (10, 20, 70)],
)
def test_split_sums_to_total(total, pct):
    parts = split_by_difficulty(total, _percentages(*pct))
    assert sum(parts.values()) == total
    assert all(count >= 0 for count in parts.values())


def test_split_hard_takes_remainder():
    parts = split_by_difficulty(4, _percentages(50, 25, 25))
    assert parts == {Difficulty.easy: 2, Difficulty.medium: 1, Difficulty.hard: 1}

    parts = split_by_difficulty(3, _percentages(33.3, 33.3, 33.4))
    assert parts == {Difficulty.easy: 0, Difficulty.medium: 0, Difficulty.hard: 3}


def test_difficulty_cells_skip_empty_parts():
    selections = {"physics": {"mcq": 2, "integer": 0}}
    request = DifficultySelectionRequest.model_validate({"subjectSelections": selections})
    cells = difficulty_cells(request.subject_selections, _percentages(100, 0, 0))
    assert [(cell.difficulty, cell.requested) for cell in cells] == [(Difficulty.easy, 2)]


def test_difficulty_selection_matches_split(seeded: InMemoryRouter):
    request = DifficultySelectionRequest.model_validate(
        {
            "examType": "jee main",
            "subjectSelections": {"physics": {"mcq": 4}},
            "difficultyPercentages": {"easy": 50, "medium": 25, "hard": 25},
        }
    )

    result = asyncio.run(select_by_difficulty(request, seeded))

    assert result.total == 4
    assert result.requested == 4
    assert Counter(q.difficulty for q in result.questions) == {"Easy": 2, "Medium": 1, "Hard": 1}
    assert all(q.subject_id == "physics" and q.question_type == "mcq" for q in result.questions)
    assert len({q.id for q in result.questions}) == 4
    assert result.lock_filter is LockFilter.any


def test_difficulty_selection_under_fills_without_error(seeded: InMemoryRouter):
    request = DifficultySelectionRequest.model_validate(
        {
            "examType": "JEE",
            "subjectSelections": {"physics": {"mcq": 10}},
            "difficultyPercentages": {"easy": 0, "medium": 0, "hard": 100},
        }
    )

    result = asyncio.run(select_by_difficulty(request, seeded))

    assert result.requested == 10
    assert result.total == 2
    assert result.breakdown[0].requested == 10
    assert result.breakdown[0].selected == 2


def test_difficulty_selection_includes_locked_by_default(seeded: InMemoryRouter):
    _lock(seeded, 10, subjectId="physics")
    request = DifficultySelectionRequest.model_validate(
        {
            "examType": "JEE",
            "subjectSelections": {"physics": {"mcq": 4}},
            "difficultyPercentages": {"easy": 50, "medium": 25, "hard": 25},
        }
    )

    assert asyncio.run(select_by_difficulty(request, seeded)).total == 4

    request.lock_filter = LockFilter.unlocked
    assert asyncio.run(select_by_difficulty(request, seeded)).total == 0


@pytest.mark.parametrize("pct", [(50, 25, 20), (60, 30, 30), (0, 0, 0)])
def test_percentages_must_sum_to_hundred(seeded: InMemoryRouter, pct):
    request = DifficultySelectionRequest.model_validate(
        {
            "examType": "JEE",
            "subjectSelections": {"physics": {"mcq": 4}},
            "difficultyPercentages": dict(zip(("easy", "medium", "hard"), pct)),
        }
    )

    with pytest.raises(ValidationError):
        asyncio.run(select_by_difficulty(request, seeded))


def test_difficulty_selection_requires_percentages(seeded: InMemoryRouter):
    request = DifficultySelectionRequest.model_validate(
        {"examType": "JEE", "subjectSelections": {"physics": {"mcq": 4}}}
    )
    with pytest.raises(ValidationError):
        asyncio.run(select_by_difficulty(request, seeded))


def test_random_selection_excludes_locked(seeded: InMemoryRouter):
    _lock(seeded, 6, subjectId="physics")
    request = RandomSelectionRequest.model_validate(
        {"examType": "JEE", "subjectSelections": {"physics": {"mcq": 10}, "maths": {"integer": 2}}}
    )

    result = asyncio.run(select_random(request, seeded))

    assert result.lock_filter is LockFilter.unlocked
    assert all(not q.locked for q in result.questions)
    assert result.requested == 12
    assert result.total == 6
    by_subject = Counter(q.subject_id for q in result.questions)
    assert by_subject == {"physics": 4, "maths": 2}


def test_random_selection_respects_type_counts(seeded: InMemoryRouter):
    request = RandomSelectionRequest.model_validate(
        {"examType": "JEE", "subjectSelections": {"physics": {"mcq": 3, "integer": 2}}}
    )

    result = asyncio.run(select_random(request, seeded))

    assert result.total == 3
    assert {q.question_type for q in result.questions} == {"mcq"}
    assert [(cell.question_type, cell.selected) for cell in result.breakdown] == [("mcq", 3), ("integer", 0)]


def test_random_selection_requires_subjects(seeded: InMemoryRouter):
    with pytest.raises(ValidationError):
        asyncio.run(select_random(RandomSelectionRequest(exam_type="JEE"), seeded))


def test_assemble_claims_drawn_questions(seeded: InMemoryRouter):
    request = AssembleRequest.model_validate(
        {"examType": "JEE", "mode": "random", "subjectSelections": {"physics": {"mcq": 5}}}
    )

    first = asyncio.run(assemble_paper(request, seeded))
    second = asyncio.run(assemble_paper(request, seeded))

    assert first.claimed == 5
    assert first.conflicts == []
    assert all(q.locked for q in first.questions)
    assert second.claimed == 5
    assert not {q.id for q in first.questions} & {q.id for q in second.questions}
    stored = seeded.repos["JEE"].storage[QUESTIONS]
    assert sum(1 for doc in stored if doc["locked"]) == 10


def test_assemble_reports_already_locked_as_conflicts(seeded: InMemoryRouter):
    _lock(seeded, 3, subjectId="physics")
    request = AssembleRequest.model_validate(
        {
            "examType": "JEE",
            "mode": "difficulty",
            "subjectSelections": {"physics": {"mcq": 10}},
            "difficultyPercentages": {"easy": 50, "medium": 30, "hard": 20},
            "lockFilter": "any",
        }
    )

    result = asyncio.run(assemble_paper(request, seeded))

    assert result.requested == 10
    assert result.claimed == 7
    assert len(result.conflicts) == 3
    assert result.total == 7
