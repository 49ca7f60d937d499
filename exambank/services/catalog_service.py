import re
from typing import Any, Dict, Optional

from exambank.core.errors import NotFoundError, ValidationError
from exambank.core.exam_types import resolve_exam_key
from exambank.db.models import SUBJECTS, SUBTOPICS, TOPICS
from exambank.db.router import DatabaseRouter
from exambank.schemas.catalog import CounterList, CounterResponse, QuestionIdsRequest, QuestionSearchRequest
from exambank.schemas.question import Difficulty, QuestionList, QuestionType, QuestionView
from exambank.services.lock_service import parse_object_ids

MAX_SEARCH_LIMIT = 500


async def _list_counters(collection_name: str, exam_type: Optional[str], router: DatabaseRouter, **filters) -> CounterList:
    exam_key = resolve_exam_key(exam_type)
    repo = await router.get_repo(exam_key)
    query: Dict[str, Any] = {"examType": exam_key}
    query.update({key: value for key, value in filters.items() if value})
    docs = await repo.find_counters(collection_name, query)
    items = [CounterResponse.from_doc(doc) for doc in docs]
    return CounterList(items=items, total=len(items))


async def list_subjects(exam_type: Optional[str], router: DatabaseRouter) -> CounterList:
    return await _list_counters(SUBJECTS, exam_type, router)


async def list_topics(exam_type: Optional[str], router: DatabaseRouter, subject_id: Optional[str] = None) -> CounterList:
    return await _list_counters(TOPICS, exam_type, router, subjectId=subject_id)


async def list_subtopics(
    exam_type: Optional[str],
    router: DatabaseRouter,
    topic_id: Optional[str] = None,
    subject_id: Optional[str] = None,
) -> CounterList:
    return await _list_counters(SUBTOPICS, exam_type, router, topicId=topic_id, subjectId=subject_id)


def _exact_ci(value: str) -> Dict[str, str]:
    return {"$regex": f"^{re.escape(value.strip())}$", "$options": "i"}


def build_search_filters(exam_key: str, query: QuestionSearchRequest) -> Dict[str, Any]:
    filters: Dict[str, Any] = {"examType": exam_key}
    if query.subject_id:
        filters["subjectId"] = query.subject_id
    elif query.subject_name:
        filters["subjectName"] = _exact_ci(query.subject_name)
    if query.topic_id:
        filters["topicId"] = query.topic_id
    elif query.topic_name:
        filters["topicName"] = _exact_ci(query.topic_name)
    if query.subtopic_name:
        filters["subtopicName"] = query.subtopic_name
    if query.difficulty:
        difficulty = Difficulty.parse(query.difficulty)
        if difficulty is None:
            raise ValidationError(f"Unknown difficulty: {query.difficulty!r}")
        filters["difficulty"] = difficulty.value
    if query.question_type:
        question_type = QuestionType.parse(query.question_type)
        if question_type is None:
            raise ValidationError(f"Unknown question type: {query.question_type!r}")
        filters["questionType"] = question_type.value
    if query.locked is not None:
        filters["locked"] = query.locked
    return filters


async def find_questions(query: QuestionSearchRequest, router: DatabaseRouter) -> QuestionList:
    """Questions matching the filters, ordered by question number."""

    exam_key = resolve_exam_key(query.exam_type)
    if not (query.subject_id or query.subject_name):
        raise ValidationError("subjectId or subjectName is required")
    filters = build_search_filters(exam_key, query)
    limit = min(query.limit or MAX_SEARCH_LIMIT, MAX_SEARCH_LIMIT)
    repo = await router.get_repo(exam_key)
    docs = await repo.find(filters, sort=[("questionNo", 1), ("_id", 1)], limit=limit)
    questions = [QuestionView.from_doc(doc) for doc in docs]
    return QuestionList(questions=questions, count=len(questions))


async def get_questions_by_ids(request: QuestionIdsRequest, router: DatabaseRouter) -> QuestionList:
    exam_key = resolve_exam_key(request.exam_type)
    if not request.ids:
        raise ValidationError("ids must be a non-empty list")
    object_ids = parse_object_ids(request.ids)
    repo = await router.get_repo(exam_key)
    docs = await repo.find({"_id": {"$in": object_ids}, "examType": exam_key})
    if not docs:
        raise NotFoundError("None of the requested questions exist", examType=exam_key, ids=request.ids)
    order = {oid: index for index, oid in enumerate(object_ids)}
    docs.sort(key=lambda doc: order.get(doc["_id"], len(order)))
    questions = [QuestionView.from_doc(doc) for doc in docs]
    return QuestionList(questions=questions, count=len(questions))
