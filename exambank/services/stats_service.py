import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from exambank.core.exam_types import resolve_exam_key
from exambank.db.models import SUBJECTS, TOPICS
from exambank.db.router import DatabaseRouter
from exambank.schemas.stats import (
    DailyCount,
    DistributionItem,
    StatsResponse,
    StatsSummary,
    SubjectStat,
    TopicDifficultyBreakdown,
    TopicStat,
)

logger = logging.getLogger(__name__)

DIFFICULTY_LABELS = ["Easy", "Medium", "Hard"]
DEFAULT_DIFFICULTY_LABEL = "Medium"
RECENT_ACTIVITY_DAYS = 30


def round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def difficulty_label(average: Optional[float]) -> str:
    """Map a mean difficulty score (Easy=1, Medium=2, Hard=3) back to a label."""

    if average is None:
        return DEFAULT_DIFFICULTY_LABEL
    rounded = round_half_up(average)
    if 1 <= rounded <= len(DIFFICULTY_LABELS):
        return DIFFICULTY_LABELS[rounded - 1]
    return DEFAULT_DIFFICULTY_LABEL


def _merge_topics(rows: List[Dict[str, Any]], counters: List[Dict[str, Any]]) -> List[TopicStat]:
    """Question aggregates plus counter-only topics, which appear with zero questions."""

    seen = {(row["subjectId"], row["topicId"]) for row in rows}
    merged = list(rows)
    for counter in counters:
        key = (counter.get("subjectId"), counter.get("topicId"))
        if key in seen:
            continue
        merged.append(
            {
                "subjectId": counter.get("subjectId"),
                "topicId": counter.get("topicId"),
                "topicName": counter.get("name"),
                "subjectName": counter.get("subjectName"),
                "totalQuestions": 0,
                "avgDifficulty": None,
                "lastUpdated": counter.get("updatedAt"),
            }
        )
    topics = []
    for rank, row in enumerate(merged, start=1):
        topics.append(
            TopicStat(
                topic_id=row.get("topicId"),
                topic_name=row.get("topicName"),
                subject_id=row.get("subjectId"),
                subject_name=row.get("subjectName"),
                total_questions=row.get("totalQuestions", 0),
                difficulty=difficulty_label(row.get("avgDifficulty")),
                last_updated=row.get("lastUpdated"),
                question_types=row.get("questionTypes", []),
                difficulties=row.get("difficulties", []),
                rank=rank,
            )
        )
    return topics


def _merge_subjects(rows: List[Dict[str, Any]], counters: List[Dict[str, Any]]) -> List[SubjectStat]:
    seen = {row["subjectId"] for row in rows}
    merged = list(rows) + [
        {"subjectId": counter.get("subjectId"), "subjectName": counter.get("name"), "totalQuestions": 0}
        for counter in counters
        if counter.get("subjectId") not in seen
    ]
    return [
        SubjectStat(
            subject_id=row.get("subjectId"),
            subject_name=row.get("subjectName"),
            total_questions=row.get("totalQuestions", 0),
            topics=row.get("topics", []),
            topic_count=row.get("topicCount", 0),
            avg_difficulty=difficulty_label(row.get("avgDifficulty")),
        )
        for row in merged
    ]


async def get_stats(exam_type: Optional[str], router: DatabaseRouter) -> StatsResponse:
    """Dashboard aggregates over one exam's questions; read-only."""

    exam_key = resolve_exam_key(exam_type)
    repo = await router.get_repo(exam_key)
    since = datetime.now(timezone.utc) - timedelta(days=RECENT_ACTIVITY_DAYS)
    (
        topic_rows,
        topic_counters,
        subject_rows,
        subject_counters,
        difficulty_rows,
        type_rows,
        daily_rows,
        breakdown_rows,
        total_questions,
    ) = await asyncio.gather(
        repo.topic_stats(),
        repo.find_counters(TOPICS, {"examType": exam_key}),
        repo.subject_stats(),
        repo.find_counters(SUBJECTS, {"examType": exam_key}),
        repo.distribution("difficulty"),
        repo.distribution("questionType"),
        repo.daily_counts(since),
        repo.topic_difficulty_breakdown(),
        repo.count({"examType": exam_key}),
    )

    topics = _merge_topics(topic_rows, topic_counters)
    subjects = _merge_subjects(subject_rows, subject_counters)
    total_topics = len(topics)
    summary = StatsSummary(
        total_questions=total_questions,
        total_topics=total_topics,
        total_subjects=len(subjects),
        average_questions_per_topic=round_half_up(total_questions / total_topics) if total_topics else 0,
        exam_type=exam_key,
    )
    logger.debug("Stats for %s: %s questions over %s topics", exam_key, total_questions, total_topics)
    return StatsResponse(
        topics=topics,
        subjects=subjects,
        difficulty_distribution=[DistributionItem(**row) for row in difficulty_rows],
        question_type_distribution=[DistributionItem(**row) for row in type_rows],
        recent_activity=[DailyCount(**row) for row in daily_rows],
        topic_difficulty_breakdown=[TopicDifficultyBreakdown.model_validate(row) for row in breakdown_rows],
        summary=summary,
    )
