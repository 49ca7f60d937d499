import asyncio
from datetime import datetime, timezone

import pytest
from conftest import make_batch

from exambank.core.errors import DuplicateQuestionError, ValidationError
from exambank.db.models import QUESTIONS, SUBJECTS, SUBTOPICS, TOPICS
from exambank.db.router import InMemoryRouter
from exambank.schemas.question import IngestRequest
from exambank.services.ingestion_service import (
    _index_by_question_no,
    build_question_doc,
    group_by_subtopic,
    ingest_questions,
)


def _totals(repo, collection):
    return {doc.get("name"): doc["totalQuestions"] for doc in repo.storage[collection]}


def test_ingest_updates_counters_and_inserts(router: InMemoryRouter):
    payload = make_batch(6, subtopics=["Projectile", "Relative Motion", ""])

    result = asyncio.run(ingest_questions(payload, router))
    repo = router.repos["JEE"]

    assert result.exam_type == "JEE"
    assert result.count == 6
    assert result.subtopics_count == 3
    assert result.message == "Successfully uploaded questions to JEE database"
    assert len(repo.storage[QUESTIONS]) == 6
    assert _totals(repo, SUBJECTS) == {"Physics": 6}
    assert _totals(repo, TOPICS) == {"Kinematics": 6}
    subtopics = _totals(repo, SUBTOPICS)
    assert subtopics == {"Projectile": 2, "Relative Motion": 2, "General": 2}
    assert sum(subtopics.values()) == 6
    assert repo.committed_transactions == 1
    created = repo.storage[QUESTIONS][0]["createdAt"]
    assert created.tzinfo is not None
    assert repo.storage[SUBJECTS][0]["updatedAt"] == created


def test_repeated_batches_accumulate_counters(router: InMemoryRouter):
    asyncio.run(ingest_questions(make_batch(3), router))
    asyncio.run(ingest_questions(make_batch(4, exam_type="jee-mains", start=10), router))
    repo = router.repos["JEE"]

    assert _totals(repo, SUBJECTS) == {"Physics": 7}
    assert _totals(repo, TOPICS) == {"Kinematics": 7}
    assert _totals(repo, SUBTOPICS) == {"General": 7}
    assert len(repo.storage[SUBJECTS]) == 1
    assert {doc["examType"] for doc in repo.storage[QUESTIONS]} == {"JEE"}


def test_exam_types_route_to_separate_stores(router: InMemoryRouter):
    asyncio.run(ingest_questions(make_batch(2, exam_type="NEET UG", subject_id="biology"), router))

    assert "JEE" not in router.repos
    assert len(router.repos["NEET"].storage[QUESTIONS]) == 2


def test_defaults_applied_to_sparse_questions(router: InMemoryRouter):
    payload = IngestRequest.model_validate(
        {
            "examType": "JEE",
            "subjectId": "maths",
            "topicId": "limits",
            "questions": [{"question_no": 1, "question_description": "Evaluate the limit"}],
        }
    )

    asyncio.run(ingest_questions(payload, router))
    doc = router.repos["JEE"].storage[QUESTIONS][0]

    assert doc["questionType"] == "mcq"
    assert doc["difficulty"] == "Medium"
    assert doc["subtopicName"] == "General"
    assert doc["locked"] is False
    assert doc["solution"] == ""
    assert doc["answerKey"] == ""
    assert doc["subjectName"] == "maths"
    assert doc["topicName"] == "limits"
    assert doc["options"] == {"A": "", "B": "", "C": "", "D": ""}


def test_solutions_and_answers_matched_by_question_number():
    payload = IngestRequest.model_validate(
        {
            "examType": "JEE",
            "subjectId": "physics",
            "topicId": "optics",
            "questions": [
                {"question_no": 4, "question_type": "Integer", "difficulty": "hard"},
                {"question_no": "5", "question_type": "MCQ", "option1": "x"},
            ],
            "solutions": [{"question_no": "4", "solution": "Use Snell's law"}],
            "answerKey": [{"question_no": 5, "answer": "B"}, {"question_no": 5, "answer": "C"}],
        }
    )
    solutions = _index_by_question_no(payload.solutions, "solution")
    answers = _index_by_question_no(payload.answer_key, "answer")
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    integer_doc = build_question_doc(payload.questions[0], "JEE", payload, solutions, answers, now)
    mcq_doc = build_question_doc(payload.questions[1], "JEE", payload, solutions, answers, now)

    assert integer_doc["questionType"] == "integer"
    assert integer_doc["difficulty"] == "Hard"
    assert integer_doc["solution"] == "Use Snell's law"
    assert integer_doc["answerKey"] == ""
    assert "options" not in integer_doc
    assert mcq_doc["answerKey"] == "B"
    assert mcq_doc["options"]["A"] == "x"


def test_group_by_subtopic_keeps_first_seen_order():
    payload = make_batch(4, subtopics=["B", "A", "  ", "B"])

    groups = group_by_subtopic(payload.questions)
    assert list(groups) == ["B", "A", "General"]
    assert [len(members) for members in groups.values()] == [2, 1, 1]


@pytest.mark.parametrize(
    "overrides, missing",
    [
        ({"examType": None}, "examType"),
        ({"subjectId": ""}, "subjectId"),
        ({"topicId": "  "}, "topicId"),
        ({"questions": []}, "questions"),
    ],
)
def test_missing_required_fields(router: InMemoryRouter, overrides, missing):
    data = make_batch(1).model_dump(by_alias=True)
    data.update(overrides)

    with pytest.raises(ValidationError) as exc_info:
        asyncio.run(ingest_questions(IngestRequest.model_validate(data), router))
    assert missing in exc_info.value.context["missing"]
    assert router.repos == {}


def test_unrecognized_exam_type_rejected(router: InMemoryRouter):
    with pytest.raises(ValidationError):
        asyncio.run(ingest_questions(make_batch(1, exam_type="GATE"), router))


def test_duplicate_aborts_whole_batch():
    router = InMemoryRouter()

    async def run():
        repo = await router.get_repo("JEE")
        repo.unique_question_fields = ("subjectId", "topicId", "questionNo")
        await ingest_questions(make_batch(3), router)
        with pytest.raises(DuplicateQuestionError) as exc_info:
            await ingest_questions(make_batch(3, start=3), router)
        return repo, exc_info.value

    repo, error = asyncio.run(run())
    assert error.status_code == 409
    assert error.duplicate_indexes == [0]
    assert len(repo.storage[QUESTIONS]) == 3
    assert _totals(repo, SUBJECTS) == {"Physics": 3}
    assert _totals(repo, SUBTOPICS) == {"General": 3}
    assert repo.aborted_transactions == 1


def test_failure_mid_transaction_rolls_back(router: InMemoryRouter, monkeypatch):
    asyncio.run(ingest_questions(make_batch(2), router))
    repo = router.repos["JEE"]

    async def broken_insert(docs, session=None):
        raise RuntimeError("disk full")

    monkeypatch.setattr(repo, "insert_questions", broken_insert)
    with pytest.raises(RuntimeError):
        asyncio.run(ingest_questions(make_batch(5, start=10, subtopics=["New"]), router))

    assert len(repo.storage[QUESTIONS]) == 2
    assert _totals(repo, SUBJECTS) == {"Physics": 2}
    assert "New" not in _totals(repo, SUBTOPICS)
