from datetime import datetime
from typing import Any, List, Optional

from pydantic import Field

from exambank.schemas.base import CamelModel


class TopicStat(CamelModel):
    topic_id: Optional[str] = None
    topic_name: Optional[str] = None
    subject_id: Optional[str] = None
    subject_name: Optional[str] = None
    total_questions: int = 0
    difficulty: str = "Medium"
    last_updated: Optional[datetime] = None
    question_types: List[Optional[str]] = Field(default_factory=list)
    difficulties: List[Optional[str]] = Field(default_factory=list)
    rank: int = 0


class SubjectStat(CamelModel):
    subject_id: Optional[str] = None
    subject_name: Optional[str] = None
    total_questions: int = 0
    topics: List[Optional[str]] = Field(default_factory=list)
    topic_count: int = 0
    avg_difficulty: str = "Medium"


class DistributionItem(CamelModel):
    value: Any = None
    count: int


class DailyCount(CamelModel):
    date: str
    count: int


class DifficultyCount(CamelModel):
    difficulty: Optional[str] = None
    count: int


class TopicDifficultyBreakdown(CamelModel):
    topic_name: Optional[str] = None
    difficulties: List[DifficultyCount] = Field(default_factory=list)
    total_questions: int = 0


class StatsSummary(CamelModel):
    total_questions: int
    total_topics: int
    total_subjects: int
    average_questions_per_topic: int
    exam_type: str


class StatsResponse(CamelModel):
    topics: List[TopicStat]
    subjects: List[SubjectStat]
    difficulty_distribution: List[DistributionItem]
    question_type_distribution: List[DistributionItem]
    recent_activity: List[DailyCount]
    topic_difficulty_breakdown: List[TopicDifficultyBreakdown]
    summary: StatsSummary
