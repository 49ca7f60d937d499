from typing import Generator, List, Optional

import pytest

from exambank.core.config import get_settings
from exambank.db.router import InMemoryRouter
from exambank.schemas.question import IngestRequest


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch) -> Generator[None, None, None]:
    """Clear cached settings so env overrides in a test are re-read."""

    for name in ("EXAMBANK_ALLOW_UNRECOGNIZED_EXAM_TYPES", "ALLOW_UNRECOGNIZED_EXAM_TYPES"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def router() -> InMemoryRouter:
    return InMemoryRouter()


def make_batch(
    count: int,
    exam_type: str = "JEE Main",
    subject_id: str = "physics",
    topic_id: str = "kinematics",
    difficulties: Optional[List[str]] = None,
    question_type: str = "MCQ",
    subtopics: Optional[List[str]] = None,
    start: int = 1,
) -> IngestRequest:
    """Build an extraction batch; ``difficulties``/``subtopics`` cycle over the questions."""

    questions = []
    for offset in range(count):
        number = start + offset
        question = {
            "question_no": number,
            "question_type": question_type,
            "question_description": f"Question {number}",
            "option1": "a",
            "option2": "b",
            "option3": "c",
            "option4": "d",
            "correct_answer": "A",
        }
        if difficulties:
            question["difficulty"] = difficulties[offset % len(difficulties)]
        if subtopics:
            question["subtopic"] = subtopics[offset % len(subtopics)]
        questions.append(question)
    return IngestRequest.model_validate(
        {
            "examType": exam_type,
            "subjectId": subject_id,
            "subjectName": subject_id.title(),
            "topicId": topic_id,
            "topicName": topic_id.title(),
            "questions": questions,
            "solutions": [{"question_no": q["question_no"], "solution": f"Solution {q['question_no']}"} for q in questions],
            "answerKey": [{"question_no": q["question_no"], "answer": "A"} for q in questions],
        }
    )
