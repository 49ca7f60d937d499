import asyncio
from datetime import datetime, timezone

import pytest
from conftest import make_batch

from exambank.core.errors import ValidationError
from exambank.db.models import TOPICS
from exambank.db.router import InMemoryRouter
from exambank.services.ingestion_service import ingest_questions
from exambank.services.stats_service import difficulty_label, get_stats


@pytest.mark.parametrize(
    "average, label",
    [
        (None, "Medium"),
        (1.0, "Easy"),
        (1.49, "Easy"),
        (1.5, "Medium"),
        (2.5, "Hard"),
        (3.0, "Hard"),
        (0.2, "Medium"),
        (7, "Medium"),
    ],
)
def test_difficulty_label(average, label):
    assert difficulty_label(average) == label


def test_stats_on_empty_store(router: InMemoryRouter):
    stats = asyncio.run(get_stats("NEET", router))

    assert stats.topics == []
    assert stats.subjects == []
    assert stats.summary.total_questions == 0
    assert stats.summary.total_topics == 0
    assert stats.summary.average_questions_per_topic == 0
    assert stats.summary.exam_type == "NEET"


def test_stats_aggregates_topics_and_subjects(router: InMemoryRouter):
    asyncio.run(ingest_questions(make_batch(4, difficulties=["Easy", "Hard"]), router))
    asyncio.run(ingest_questions(make_batch(2, topic_id="optics", difficulties=["Hard"]), router))
    asyncio.run(
        ingest_questions(make_batch(3, subject_id="maths", topic_id="limits", question_type="Integer"), router)
    )

    stats = asyncio.run(get_stats("jee main", router))

    assert [topic.topic_name for topic in stats.topics] == ["Kinematics", "Limits", "Optics"]
    assert [topic.rank for topic in stats.topics] == [1, 2, 3]
    kinematics, limits, optics = stats.topics
    assert kinematics.total_questions == 4
    assert kinematics.difficulty == "Medium"
    assert optics.difficulty == "Hard"
    assert limits.question_types == ["integer"]

    subjects = {subject.subject_id: subject for subject in stats.subjects}
    assert subjects["physics"].total_questions == 6
    assert subjects["physics"].topic_count == 2
    assert subjects["maths"].avg_difficulty == "Medium"

    difficulty = {item.value: item.count for item in stats.difficulty_distribution}
    assert difficulty == {"Easy": 2, "Hard": 4, "Medium": 3}
    types = {item.value: item.count for item in stats.question_type_distribution}
    assert types == {"mcq": 6, "integer": 3}

    assert stats.summary.total_questions == 9
    assert stats.summary.total_topics == 3
    assert stats.summary.total_subjects == 2
    assert stats.summary.average_questions_per_topic == 3
    assert sum(day.count for day in stats.recent_activity) == 9
    breakdown = {row.topic_name: row.total_questions for row in stats.topic_difficulty_breakdown}
    assert breakdown == {"Kinematics": 4, "Optics": 2, "Limits": 3}


def test_stats_include_topics_without_questions(router: InMemoryRouter):
    asyncio.run(ingest_questions(make_batch(2), router))
    repo = router.repos["JEE"]
    repo.storage[TOPICS].append(
        {
            "topicId": "waves",
            "subjectId": "physics",
            "examType": "JEE",
            "name": "Waves",
            "subjectName": "Physics",
            "totalQuestions": 0,
            "updatedAt": datetime(2024, 1, 1, tzinfo=timezone.utc),
        }
    )

    stats = asyncio.run(get_stats("JEE", router))

    waves = [topic for topic in stats.topics if topic.topic_id == "waves"]
    assert len(waves) == 1
    assert waves[0].total_questions == 0
    assert waves[0].difficulty == "Medium"
    assert stats.summary.total_topics == 2
    assert stats.summary.average_questions_per_topic == 1


def test_stats_requires_exam_type(router: InMemoryRouter):
    with pytest.raises(ValidationError):
        asyncio.run(get_stats(None, router))
