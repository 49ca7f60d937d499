import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from pymongo import ASCENDING, IndexModel
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.asynchronous.database import AsyncDatabase

logger = logging.getLogger(__name__)

SUBJECTS = "subjects"
TOPICS = "topics"
SUBTOPICS = "subtopics"
QUESTIONS = "questions"

# Unique keys of the counter collections double as their upsert filters.
SUBJECT_KEY = ("subjectId", "examType")
TOPIC_KEY = ("topicId", "subjectId", "examType")
SUBTOPIC_KEY = ("name", "topicId", "subjectId", "examType")


def _index(fields: Tuple[str, ...], **options: Any) -> IndexModel:
    return IndexModel([(field, ASCENDING) for field in fields], **options)


INDEXES: Dict[str, List[IndexModel]] = {
    SUBJECTS: [_index(SUBJECT_KEY, unique=True)],
    TOPICS: [_index(TOPIC_KEY, unique=True)],
    SUBTOPICS: [_index(SUBTOPIC_KEY, unique=True)],
    QUESTIONS: [
        _index(("examType", "subjectId", "topicId", "subtopicName")),
        _index(("examType", "subjectId", "topicId")),
        _index(("difficulty", "questionType")),
        _index(("locked",)),
        # sampling cells: (subject, type, difficulty) with optional lock filter
        _index(("examType", "subjectId", "questionType", "difficulty", "locked")),
        _index(("examType", "subjectId", "topicName", "locked")),
        _index(("createdAt",)),
    ],
}


@dataclass(frozen=True)
class ExamModels:
    """Collection handles for one exam database."""

    subjects: AsyncCollection
    topics: AsyncCollection
    subtopics: AsyncCollection
    questions: AsyncCollection


async def register_indexes(database: AsyncDatabase) -> None:
    """Create every index; re-running with identical specs is a no-op on the server."""

    for collection_name, indexes in INDEXES.items():
        names = await database[collection_name].create_indexes(indexes)
        logger.debug("Indexes ready on %s.%s: %s", database.name, collection_name, names)


async def get_models(database: AsyncDatabase, ensure_indexes: bool = True) -> ExamModels:
    """Bind the four entity collections to ``database``."""

    if ensure_indexes:
        await register_indexes(database)
    return ExamModels(
        subjects=database[SUBJECTS],
        topics=database[TOPICS],
        subtopics=database[SUBTOPICS],
        questions=database[QUESTIONS],
    )
