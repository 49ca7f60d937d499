from typing import Optional

from fastapi import APIRouter, Depends, Query

from exambank.api.deps import get_db_router
from exambank.db.router import DatabaseRouter
from exambank.schemas.catalog import CounterList, QuestionIdsRequest, QuestionSearchRequest
from exambank.schemas.question import QuestionList
from exambank.services.catalog_service import (
    find_questions,
    get_questions_by_ids,
    list_subjects,
    list_subtopics,
    list_topics,
)

router = APIRouter(prefix="/catalog")


@router.get("/subjects", response_model=CounterList)
async def list_subjects_endpoint(
    exam_type: Optional[str] = Query(default=None, alias="examType"),
    db_router: DatabaseRouter = Depends(get_db_router),
) -> CounterList:
    return await list_subjects(exam_type, db_router)


@router.get("/topics", response_model=CounterList)
async def list_topics_endpoint(
    exam_type: Optional[str] = Query(default=None, alias="examType"),
    subject_id: Optional[str] = Query(default=None, alias="subjectId"),
    db_router: DatabaseRouter = Depends(get_db_router),
) -> CounterList:
    return await list_topics(exam_type, db_router, subject_id=subject_id)


@router.get("/subtopics", response_model=CounterList)
async def list_subtopics_endpoint(
    exam_type: Optional[str] = Query(default=None, alias="examType"),
    topic_id: Optional[str] = Query(default=None, alias="topicId"),
    subject_id: Optional[str] = Query(default=None, alias="subjectId"),
    db_router: DatabaseRouter = Depends(get_db_router),
) -> CounterList:
    return await list_subtopics(exam_type, db_router, topic_id=topic_id, subject_id=subject_id)


@router.post("/questions/search", response_model=QuestionList)
async def find_questions_endpoint(
    payload: QuestionSearchRequest, db_router: DatabaseRouter = Depends(get_db_router)
) -> QuestionList:
    return await find_questions(payload, db_router)


@router.post("/questions/by-ids", response_model=QuestionList)
async def get_questions_by_ids_endpoint(
    payload: QuestionIdsRequest, db_router: DatabaseRouter = Depends(get_db_router)
) -> QuestionList:
    return await get_questions_by_ids(payload, db_router)
