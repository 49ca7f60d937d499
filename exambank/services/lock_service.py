import asyncio
import logging
from typing import Dict, Iterable, List, Set

from bson import ObjectId

from exambank.core.errors import ValidationError
from exambank.core.exam_types import resolve_exam_key
from exambank.db.questions_repo import QuestionBankRepo
from exambank.db.router import DatabaseRouter
from exambank.schemas.lock import (
    LockAllRequest,
    LockCounts,
    LockScope,
    LockScopeRequest,
    LockSetRequest,
    LockUpdateResult,
)

logger = logging.getLogger(__name__)


def parse_object_ids(ids: Iterable[str]) -> List[ObjectId]:
    parsed: List[ObjectId] = []
    invalid: List[str] = []
    for raw in ids:
        if isinstance(raw, str) and ObjectId.is_valid(raw):
            parsed.append(ObjectId(raw))
        else:
            invalid.append(str(raw))
    if invalid:
        raise ValidationError(f"Invalid question ids: {', '.join(invalid)}", invalidIds=invalid)
    return parsed


def _scope_filter(scope: LockScope) -> Dict[str, str]:
    missing = [
        name
        for name, value in (
            ("examType", scope.exam_type),
            ("subjectId", scope.subject_id),
            ("topicName", scope.topic_name),
        )
        if not value
    ]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing=missing)
    return {
        "examType": resolve_exam_key(scope.exam_type),
        "subjectId": scope.subject_id,
        "topicName": scope.topic_name,
    }


async def count_lock_state(scope: LockScope, router: DatabaseRouter) -> LockCounts:
    filters = _scope_filter(scope)
    repo = await router.get_repo(filters["examType"])
    locked_count, total_count = await asyncio.gather(
        repo.count({**filters, "locked": True}),
        repo.count(filters),
    )
    return LockCounts(locked_count=locked_count, total_count=total_count, unlocked_count=total_count - locked_count)


async def lock_scope(request: LockScopeRequest, router: DatabaseRouter) -> LockUpdateResult:
    """Set ``locked`` on every question of one subject/topic, reserving or releasing its pool."""

    filters = _scope_filter(request)
    exam_key = filters["examType"]
    repo = await router.get_repo(exam_key)
    matched, modified = await repo.update_many(filters, {"locked": request.lock})
    logger.info(
        "Set locked=%s on %s subject=%s topic=%s: matched=%s modified=%s",
        request.lock,
        exam_key,
        request.subject_id,
        request.topic_name,
        matched,
        modified,
    )
    return LockUpdateResult(exam_type=exam_key, matched=matched, modified=modified)


async def lock_set(request: LockSetRequest, router: DatabaseRouter) -> LockUpdateResult:
    """
    Lock exactly the given questions.

    With ``onlyUnlocked`` the update is conditional on ``locked=false`` so
    ``modified`` counts the questions this call actually claimed.
    """

    exam_key = resolve_exam_key(request.exam_type)
    if not request.ids:
        raise ValidationError("ids must be a non-empty list")
    object_ids = parse_object_ids(request.ids)
    filters: Dict = {"_id": {"$in": object_ids}}
    if request.only_unlocked:
        filters["locked"] = False
    repo = await router.get_repo(exam_key)
    matched, modified = await repo.update_many(filters, {"locked": True})
    logger.info("Locked %s of %s selected questions on %s", modified, len(object_ids), exam_key)
    return LockUpdateResult(exam_type=exam_key, matched=matched, modified=modified)


async def lock_all(request: LockAllRequest, router: DatabaseRouter) -> LockUpdateResult:
    exam_key = resolve_exam_key(request.exam_type)
    repo = await router.get_repo(exam_key)
    matched, modified = await repo.update_many({"examType": exam_key}, {"locked": request.lock})
    logger.warning("Set locked=%s on every %s question: modified=%s", request.lock, exam_key, modified)
    return LockUpdateResult(exam_type=exam_key, matched=matched, modified=modified)


async def claim_questions(repo: QuestionBankRepo, exam_key: str, ids: List[str]) -> Set[str]:
    """Lock each id only if it is still unlocked; returns the ids this call claimed."""

    object_ids = parse_object_ids(ids)
    outcomes = await asyncio.gather(
        *(repo.update_one({"_id": oid, "examType": exam_key, "locked": False}, {"locked": True}) for oid in object_ids)
    )
    return {str(oid) for oid, claimed in zip(object_ids, outcomes) if claimed}
