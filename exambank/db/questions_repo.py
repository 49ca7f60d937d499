import asyncio
import copy
import functools
import logging
import random
import re
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from pymongo.asynchronous.client_session import AsyncClientSession
from pymongo.asynchronous.mongo_client import AsyncMongoClient
from pymongo.errors import (
    BulkWriteError,
    ConnectionFailure,
    ExecutionTimeout,
    PyMongoError,
    WTimeoutError,
)

from exambank.core.errors import TransientError
from exambank.db.models import QUESTIONS, SUBJECTS, SUBTOPICS, TOPICS, ExamModels

logger = logging.getLogger(__name__)

DIFFICULTY_SCORES = {"Easy": 1, "Medium": 2, "Hard": 3}
DEFAULT_DIFFICULTY_SCORE = 2
TRANSIENT_ERROR_LABELS = ("TransientTransactionError", "UnknownTransactionCommitResult")


def _is_transient(exc: PyMongoError) -> bool:
    if any(exc.has_error_label(label) for label in TRANSIENT_ERROR_LABELS):
        return True
    if isinstance(exc, (ConnectionFailure, ExecutionTimeout, WTimeoutError)):
        return True
    return bool(getattr(exc, "timeout", False))


def store_call(func):
    """Bound a repository call by the configured timeout and translate driver failures."""

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await asyncio.wait_for(func(self, *args, **kwargs), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise TransientError(
                f"{func.__name__} timed out after {self.timeout}s", examType=self.exam_key
            ) from exc
        except PyMongoError as exc:
            if _is_transient(exc):
                raise TransientError(f"{func.__name__} failed: {exc}", examType=self.exam_key) from exc
            raise

    return wrapper


def _difficulty_score_expr() -> Dict[str, Any]:
    return {
        "$switch": {
            "branches": [
                {"case": {"$eq": ["$difficulty", label]}, "then": score} for label, score in DIFFICULTY_SCORES.items()
            ],
            "default": DEFAULT_DIFFICULTY_SCORE,
        }
    }


class QuestionBankRepo:
    """Mongo-backed repository over the four collections of one exam database."""

    def __init__(
        self,
        exam_key: str,
        models: ExamModels,
        client: Optional[AsyncMongoClient] = None,
        timeout: float = 15.0,
    ) -> None:
        self.exam_key = exam_key
        self.models = models
        self.client = client
        self.timeout = timeout

    def _collection(self, name: str):
        return getattr(self.models, name)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Optional[AsyncClientSession]]:
        """Run the body in one multi-document transaction; any exception aborts it."""

        try:
            async with self.client.start_session() as session:
                async with await session.start_transaction():
                    yield session
        except PyMongoError as exc:
            if _is_transient(exc):
                raise TransientError(f"transaction failed: {exc}", examType=self.exam_key) from exc
            raise

    @store_call
    async def upsert_counter(
        self,
        collection_name: str,
        key: Dict[str, Any],
        fields: Dict[str, Any],
        increment: int,
        now: datetime,
        session: Optional[AsyncClientSession] = None,
    ) -> None:
        await self._collection(collection_name).update_one(
            key,
            {
                "$set": {**fields, "updatedAt": now},
                "$inc": {"totalQuestions": increment},
                "$setOnInsert": {"createdAt": now},
            },
            upsert=True,
            session=session,
        )

    @store_call
    async def insert_questions(
        self, docs: List[Dict[str, Any]], session: Optional[AsyncClientSession] = None
    ) -> int:
        result = await self.models.questions.insert_many(docs, ordered=False, session=session)
        return len(result.inserted_ids)

    @store_call
    async def sample(self, filters: Dict[str, Any], size: int) -> List[Dict[str, Any]]:
        if size <= 0:
            return []
        pipeline: List[Dict[str, Any]] = [{"$match": filters}, {"$sample": {"size": size}}]
        cursor = await self.models.questions.aggregate(pipeline)
        return await cursor.to_list()

    @store_call
    async def count(self, filters: Dict[str, Any]) -> int:
        return await self.models.questions.count_documents(filters)

    @store_call
    async def update_many(self, filters: Dict[str, Any], patch: Dict[str, Any]) -> Tuple[int, int]:
        result = await self.models.questions.update_many(filters, {"$set": patch})
        return result.matched_count, result.modified_count

    @store_call
    async def update_one(self, filters: Dict[str, Any], patch: Dict[str, Any]) -> bool:
        """Apply ``patch`` to the first match; True only when a document actually changed."""

        result = await self.models.questions.update_one(filters, {"$set": patch})
        return result.modified_count == 1

    @store_call
    async def find(
        self,
        filters: Dict[str, Any],
        sort: Optional[List[Tuple[str, int]]] = None,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        cursor = self.models.questions.find(filters)
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(max(0, limit))
        return await cursor.to_list()

    @store_call
    async def find_counters(self, collection_name: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        cursor = self._collection(collection_name).find(filters).sort([("name", ASCENDING)])
        return await cursor.to_list()

    async def _aggregate(self, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        cursor = await self.models.questions.aggregate([{"$match": {"examType": self.exam_key}}, *pipeline])
        return await cursor.to_list()

    @store_call
    async def topic_stats(self) -> List[Dict[str, Any]]:
        return await self._aggregate(
            [
                {
                    "$group": {
                        "_id": {"subjectId": "$subjectId", "topicId": "$topicId"},
                        "topicName": {"$first": "$topicName"},
                        "subjectName": {"$first": "$subjectName"},
                        "totalQuestions": {"$sum": 1},
                        "avgDifficulty": {"$avg": _difficulty_score_expr()},
                        "lastUpdated": {"$max": "$updatedAt"},
                        "questionTypes": {"$addToSet": "$questionType"},
                        "difficulties": {"$addToSet": "$difficulty"},
                    }
                },
                {
                    "$project": {
                        "_id": 0,
                        "subjectId": "$_id.subjectId",
                        "topicId": "$_id.topicId",
                        "topicName": 1,
                        "subjectName": 1,
                        "totalQuestions": 1,
                        "avgDifficulty": 1,
                        "lastUpdated": 1,
                        "questionTypes": 1,
                        "difficulties": 1,
                    }
                },
                {"$sort": {"totalQuestions": DESCENDING, "topicName": ASCENDING}},
            ]
        )

    @store_call
    async def subject_stats(self) -> List[Dict[str, Any]]:
        return await self._aggregate(
            [
                {
                    "$group": {
                        "_id": "$subjectId",
                        "subjectName": {"$first": "$subjectName"},
                        "totalQuestions": {"$sum": 1},
                        "topics": {"$addToSet": "$topicName"},
                        "avgDifficulty": {"$avg": _difficulty_score_expr()},
                    }
                },
                {
                    "$project": {
                        "_id": 0,
                        "subjectId": "$_id",
                        "subjectName": 1,
                        "totalQuestions": 1,
                        "topics": 1,
                        "topicCount": {"$size": "$topics"},
                        "avgDifficulty": 1,
                    }
                },
                {"$sort": {"totalQuestions": DESCENDING, "subjectName": ASCENDING}},
            ]
        )

    @store_call
    async def distribution(self, field: str) -> List[Dict[str, Any]]:
        return await self._aggregate(
            [
                {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
                {"$project": {"_id": 0, "value": "$_id", "count": 1}},
                {"$sort": {"count": DESCENDING, "value": ASCENDING}},
            ]
        )

    @store_call
    async def daily_counts(self, since: datetime) -> List[Dict[str, Any]]:
        return await self._aggregate(
            [
                {"$match": {"createdAt": {"$gte": since}}},
                {
                    "$group": {
                        "_id": {"$dateToString": {"format": "%Y-%m-%d", "date": "$createdAt"}},
                        "count": {"$sum": 1},
                    }
                },
                {"$project": {"_id": 0, "date": "$_id", "count": 1}},
                {"$sort": {"date": ASCENDING}},
            ]
        )

    @store_call
    async def topic_difficulty_breakdown(self) -> List[Dict[str, Any]]:
        return await self._aggregate(
            [
                {
                    "$group": {
                        "_id": {"topicName": "$topicName", "difficulty": "$difficulty"},
                        "count": {"$sum": 1},
                    }
                },
                {
                    "$group": {
                        "_id": "$_id.topicName",
                        "difficulties": {"$push": {"difficulty": "$_id.difficulty", "count": "$count"}},
                        "totalQuestions": {"$sum": "$count"},
                    }
                },
                {"$project": {"_id": 0, "topicName": "$_id", "difficulties": 1, "totalQuestions": 1}},
                {"$sort": {"totalQuestions": DESCENDING, "topicName": ASCENDING}},
            ]
        )


class InMemoryQuestionBankRepo(QuestionBankRepo):
    """Simple in-memory repo for unit tests; transactions snapshot and restore storage."""

    def __init__(self, exam_key: str = "JEE", unique_question_fields: Optional[Tuple[str, ...]] = None) -> None:
        self.exam_key = exam_key
        self.timeout = 0
        self.unique_question_fields = unique_question_fields
        self.storage: Dict[str, List[Dict[str, Any]]] = {SUBJECTS: [], TOPICS: [], SUBTOPICS: [], QUESTIONS: []}
        self.committed_transactions = 0
        self.aborted_transactions = 0

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Optional[AsyncClientSession]]:
        snapshot = copy.deepcopy(self.storage)
        try:
            yield None
        except BaseException:
            self.storage = snapshot
            self.aborted_transactions += 1
            raise
        self.committed_transactions += 1

    async def upsert_counter(
        self,
        collection_name: str,
        key: Dict[str, Any],
        fields: Dict[str, Any],
        increment: int,
        now: datetime,
        session: Optional[AsyncClientSession] = None,
    ) -> None:
        docs = self.storage[collection_name]
        for doc in docs:
            if self._match(doc, key):
                doc.update(fields)
                doc["updatedAt"] = now
                doc["totalQuestions"] = doc.get("totalQuestions", 0) + increment
                return
        docs.append(
            {"_id": ObjectId(), **key, **fields, "totalQuestions": increment, "createdAt": now, "updatedAt": now}
        )

    async def insert_questions(
        self, docs: List[Dict[str, Any]], session: Optional[AsyncClientSession] = None
    ) -> int:
        stored = self.storage[QUESTIONS]
        write_errors: List[Dict[str, Any]] = []
        inserted = 0
        for index, doc in enumerate(docs):
            doc.setdefault("_id", ObjectId())
            if self._is_duplicate(doc):
                write_errors.append({"index": index, "code": 11000, "errmsg": "E11000 duplicate key error"})
                continue
            stored.append(copy.deepcopy(doc))
            inserted += 1
        if write_errors:
            raise BulkWriteError(
                {
                    "writeErrors": write_errors,
                    "writeConcernErrors": [],
                    "nInserted": inserted,
                    "nUpserted": 0,
                    "nMatched": 0,
                    "nModified": 0,
                    "nRemoved": 0,
                    "upserted": [],
                }
            )
        return inserted

    def _is_duplicate(self, doc: Dict[str, Any]) -> bool:
        for existing in self.storage[QUESTIONS]:
            if existing["_id"] == doc["_id"]:
                return True
            if self.unique_question_fields and all(
                existing.get(field) == doc.get(field) for field in self.unique_question_fields
            ):
                return True
        return False

    async def sample(self, filters: Dict[str, Any], size: int) -> List[Dict[str, Any]]:
        docs = [copy.deepcopy(doc) for doc in self.storage[QUESTIONS] if self._match(doc, filters)]
        return random.sample(docs, min(max(0, size), len(docs)))

    async def count(self, filters: Dict[str, Any]) -> int:
        return len([1 for doc in self.storage[QUESTIONS] if self._match(doc, filters)])

    async def update_many(self, filters: Dict[str, Any], patch: Dict[str, Any]) -> Tuple[int, int]:
        matched = modified = 0
        for doc in self.storage[QUESTIONS]:
            if not self._match(doc, filters):
                continue
            matched += 1
            if any(doc.get(key) != value for key, value in patch.items()):
                doc.update(patch)
                modified += 1
        return matched, modified

    async def update_one(self, filters: Dict[str, Any], patch: Dict[str, Any]) -> bool:
        for doc in self.storage[QUESTIONS]:
            if self._match(doc, filters):
                if all(doc.get(key) == value for key, value in patch.items()):
                    return False
                doc.update(patch)
                return True
        return False

    async def find(
        self,
        filters: Dict[str, Any],
        sort: Optional[List[Tuple[str, int]]] = None,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        docs = [copy.deepcopy(doc) for doc in self.storage[QUESTIONS] if self._match(doc, filters)]
        for field, direction in reversed(sort or []):
            docs.sort(key=lambda x, f=field: self._sort_key(x.get(f)), reverse=direction == DESCENDING)
        if limit:
            docs = docs[:limit]
        return docs

    @staticmethod
    def _sort_key(value: Any) -> Tuple[int, Any]:
        # BSON order: null < numbers < strings/other
        if value is None:
            return (0, 0)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return (1, value)
        return (2, str(value))

    async def find_counters(self, collection_name: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        docs = [copy.deepcopy(doc) for doc in self.storage[collection_name] if self._match(doc, filters)]
        return sorted(docs, key=lambda x: x.get("name", ""))

    def _questions(self) -> List[Dict[str, Any]]:
        return [doc for doc in self.storage[QUESTIONS] if doc.get("examType") == self.exam_key]

    @staticmethod
    def _avg_score(docs: List[Dict[str, Any]]) -> Optional[float]:
        if not docs:
            return None
        scores = [DIFFICULTY_SCORES.get(doc.get("difficulty"), DEFAULT_DIFFICULTY_SCORE) for doc in docs]
        return sum(scores) / len(scores)

    async def topic_stats(self) -> List[Dict[str, Any]]:
        groups: Dict[Tuple[Any, Any], List[Dict[str, Any]]] = defaultdict(list)
        for doc in self._questions():
            groups[(doc.get("subjectId"), doc.get("topicId"))].append(doc)
        rows = []
        for (subject_id, topic_id), docs in groups.items():
            rows.append(
                {
                    "subjectId": subject_id,
                    "topicId": topic_id,
                    "topicName": docs[0].get("topicName"),
                    "subjectName": docs[0].get("subjectName"),
                    "totalQuestions": len(docs),
                    "avgDifficulty": self._avg_score(docs),
                    "lastUpdated": max(doc.get("updatedAt") for doc in docs),
                    "questionTypes": sorted({doc.get("questionType") for doc in docs}),
                    "difficulties": sorted({doc.get("difficulty") for doc in docs}),
                }
            )
        return sorted(rows, key=lambda x: (-x["totalQuestions"], x["topicName"] or ""))

    async def subject_stats(self) -> List[Dict[str, Any]]:
        groups: Dict[Any, List[Dict[str, Any]]] = defaultdict(list)
        for doc in self._questions():
            groups[doc.get("subjectId")].append(doc)
        rows = []
        for subject_id, docs in groups.items():
            topics = sorted({doc.get("topicName") for doc in docs})
            rows.append(
                {
                    "subjectId": subject_id,
                    "subjectName": docs[0].get("subjectName"),
                    "totalQuestions": len(docs),
                    "topics": topics,
                    "topicCount": len(topics),
                    "avgDifficulty": self._avg_score(docs),
                }
            )
        return sorted(rows, key=lambda x: (-x["totalQuestions"], x["subjectName"] or ""))

    async def distribution(self, field: str) -> List[Dict[str, Any]]:
        counts: Dict[Any, int] = defaultdict(int)
        for doc in self._questions():
            counts[doc.get(field)] += 1
        rows = [{"value": value, "count": count} for value, count in counts.items()]
        return sorted(rows, key=lambda x: (-x["count"], str(x["value"])))

    async def daily_counts(self, since: datetime) -> List[Dict[str, Any]]:
        counts: Dict[str, int] = defaultdict(int)
        for doc in self._questions():
            created = doc.get("createdAt")
            if created and created >= since:
                counts[created.strftime("%Y-%m-%d")] += 1
        return [{"date": day, "count": counts[day]} for day in sorted(counts)]

    async def topic_difficulty_breakdown(self) -> List[Dict[str, Any]]:
        groups: Dict[Any, Dict[Any, int]] = defaultdict(lambda: defaultdict(int))
        for doc in self._questions():
            groups[doc.get("topicName")][doc.get("difficulty")] += 1
        rows = [
            {
                "topicName": topic,
                "difficulties": [{"difficulty": d, "count": c} for d, c in sorted(diffs.items())],
                "totalQuestions": sum(diffs.values()),
            }
            for topic, diffs in groups.items()
        ]
        return sorted(rows, key=lambda x: (-x["totalQuestions"], x["topicName"] or ""))

    @staticmethod
    def _match_operator(value: Any, expected: Dict[str, Any]) -> bool:
        if "$in" in expected and value not in expected["$in"]:
            return False
        if "$ne" in expected and value == expected["$ne"]:
            return False
        if "$gte" in expected and (value is None or value < expected["$gte"]):
            return False
        if "$regex" in expected:
            flags = re.IGNORECASE if "i" in expected.get("$options", "") else 0
            if value is None or not re.search(expected["$regex"], str(value), flags):
                return False
        return True

    @classmethod
    def _match(cls, doc: Dict[str, Any], filters: Dict[str, Any]) -> bool:
        for key, expected in filters.items():
            if key == "$or":
                if not any(cls._match(doc, clause) for clause in expected):
                    return False
                continue
            value = doc.get(key)
            if isinstance(expected, dict):
                if not cls._match_operator(value, expected):
                    return False
            elif value != expected:
                return False
        return True
