import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo.errors import BulkWriteError

from exambank.core.errors import DuplicateQuestionError, ExamBankError, ValidationError
from exambank.core.exam_types import resolve_exam_key
from exambank.db.models import SUBJECTS, SUBTOPICS, TOPICS
from exambank.db.router import DatabaseRouter
from exambank.schemas.question import (
    Difficulty,
    ExtractedQuestion,
    IngestRequest,
    IngestResult,
    QuestionType,
)

logger = logging.getLogger(__name__)

DUPLICATE_KEY_CODE = 11000


@dataclass(frozen=True)
class IngestionDefaults:
    """Values stamped on a question when the extraction left the field out."""

    question_type: QuestionType = QuestionType.mcq
    difficulty: Difficulty = Difficulty.medium
    subtopic: str = "General"
    locked: bool = False


INGESTION_DEFAULTS = IngestionDefaults()

OPTION_FIELDS = (("A", "option1"), ("B", "option2"), ("C", "option3"), ("D", "option4"))


def _key(question_no: Any) -> Optional[str]:
    return None if question_no is None else str(question_no).strip()


def _validate(payload: IngestRequest) -> None:
    missing = [
        name
        for name, value in (
            ("examType", payload.exam_type),
            ("subjectId", payload.subject_id),
            ("topicId", payload.topic_id),
        )
        if not value or not str(value).strip()
    ]
    if not payload.questions:
        missing.append("questions")
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing=missing)


def subtopic_of(question: ExtractedQuestion, defaults: IngestionDefaults = INGESTION_DEFAULTS) -> str:
    subtopic = (question.subtopic or "").strip()
    return subtopic or defaults.subtopic


def group_by_subtopic(questions: List[ExtractedQuestion]) -> "OrderedDict[str, List[ExtractedQuestion]]":
    groups: "OrderedDict[str, List[ExtractedQuestion]]" = OrderedDict()
    for question in questions:
        groups.setdefault(subtopic_of(question), []).append(question)
    return groups


def build_question_doc(
    question: ExtractedQuestion,
    exam_key: str,
    payload: IngestRequest,
    solutions: Dict[str, str],
    answers: Dict[str, str],
    now: datetime,
    defaults: IngestionDefaults = INGESTION_DEFAULTS,
) -> Dict[str, Any]:
    """Build the stored document; unmatched solutions/answers become empty strings."""

    question_type = QuestionType.parse(question.question_type) or defaults.question_type
    difficulty = Difficulty.parse(question.difficulty) or defaults.difficulty
    number = _key(question.question_no)
    doc: Dict[str, Any] = {
        "_id": ObjectId(),
        "questionNo": question.question_no,
        "questionType": question_type.value,
        "difficulty": difficulty.value,
        "questionDescription": question.question_description or "",
        "correctAnswer": question.correct_answer or "",
        "solution": solutions.get(number, "") if number is not None else "",
        "answerKey": answers.get(number, "") if number is not None else "",
        "locked": defaults.locked,
        "examType": exam_key,
        "subjectId": payload.subject_id,
        "subjectName": payload.subject_name or payload.subject_id,
        "topicId": payload.topic_id,
        "topicName": payload.topic_name or payload.topic_id,
        "subtopicName": subtopic_of(question, defaults),
        "createdAt": now,
        "updatedAt": now,
    }
    if question_type is QuestionType.mcq:
        doc["options"] = {letter: getattr(question, field) or "" for letter, field in OPTION_FIELDS}
    return doc


def _index_by_question_no(items, attr: str) -> Dict[str, str]:
    """First entry wins when the extraction repeats a question number."""

    indexed: Dict[str, str] = {}
    for item in items:
        number = _key(item.question_no)
        if number is not None and number not in indexed:
            indexed[number] = getattr(item, attr) or ""
    return indexed


def _duplicate_error(exc: BulkWriteError) -> Optional[DuplicateQuestionError]:
    errors = exc.details.get("writeErrors", [])
    duplicates = [error.get("index") for error in errors if error.get("code") == DUPLICATE_KEY_CODE]
    if not duplicates:
        return None
    return DuplicateQuestionError(
        f"Duplicate question found ({len(duplicates)} of the batch); nothing was ingested",
        duplicate_indexes=duplicates,
    )


async def ingest_questions(payload: IngestRequest, router: DatabaseRouter) -> IngestResult:
    """
    Ingest one extraction batch atomically.

    Subject, topic and per-subtopic counters are upserted first and the question
    documents bulk-inserted unordered, all inside one transaction. Any failure
    aborts the transaction, so counters never drift from the inserted questions.
    """

    _validate(payload)
    exam_key = resolve_exam_key(payload.exam_type)
    repo = await router.get_repo(exam_key)

    subject_id = payload.subject_id
    topic_id = payload.topic_id
    subject_name = payload.subject_name or subject_id
    topic_name = payload.topic_name or topic_id
    total = len(payload.questions)
    groups = group_by_subtopic(payload.questions)
    solutions = _index_by_question_no(payload.solutions, "solution")
    answers = _index_by_question_no(payload.answer_key, "answer")
    now = datetime.now(timezone.utc)

    logger.info(
        "Ingesting %s questions into %s subject=%s topic=%s subtopics=%s",
        total,
        exam_key,
        subject_id,
        topic_id,
        list(groups),
    )
    try:
        async with repo.transaction() as session:
            await repo.upsert_counter(
                SUBJECTS,
                {"subjectId": subject_id, "examType": exam_key},
                {"name": subject_name},
                total,
                now,
                session=session,
            )
            await repo.upsert_counter(
                TOPICS,
                {"topicId": topic_id, "subjectId": subject_id, "examType": exam_key},
                {"name": topic_name, "subjectName": subject_name},
                total,
                now,
                session=session,
            )
            for subtopic, members in groups.items():
                await repo.upsert_counter(
                    SUBTOPICS,
                    {"name": subtopic, "topicId": topic_id, "subjectId": subject_id, "examType": exam_key},
                    {"topicName": topic_name},
                    len(members),
                    now,
                    session=session,
                )
            docs = [
                build_question_doc(question, exam_key, payload, solutions, answers, now)
                for question in payload.questions
            ]
            await repo.insert_questions(docs, session=session)
    except BulkWriteError as exc:
        logger.warning("Ingestion into %s aborted: %s", exam_key, exc)
        duplicate = _duplicate_error(exc)
        if duplicate:
            raise duplicate from exc
        raise ExamBankError(f"Bulk insert failed: {exc}", examType=exam_key) from exc
    except Exception:
        logger.exception("Ingestion into %s aborted", exam_key)
        raise

    logger.info("Ingestion into %s committed: %s questions", exam_key, total)
    return IngestResult(
        message=f"Successfully uploaded questions to {exam_key} database",
        exam_type=exam_key,
        count=total,
        subtopics_count=len(groups),
    )
