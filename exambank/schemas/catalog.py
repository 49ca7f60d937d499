from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ConfigDict, Field

from exambank.schemas.base import CamelModel


class CounterResponse(CamelModel):
    """Subject, topic or subtopic counter record."""

    id: str
    name: Optional[str] = None
    exam_type: Optional[str] = None
    subject_id: Optional[str] = None
    subject_name: Optional[str] = None
    topic_id: Optional[str] = None
    topic_name: Optional[str] = None
    total_questions: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "CounterResponse":
        data = {key: value for key, value in doc.items() if key != "_id"}
        return cls.model_validate({**data, "id": str(doc["_id"])})


class CounterList(CamelModel):
    items: List[CounterResponse]
    total: int


class QuestionSearchRequest(CamelModel):
    exam_type: Optional[str] = None
    subject_id: Optional[str] = None
    subject_name: Optional[str] = None
    topic_id: Optional[str] = None
    topic_name: Optional[str] = None
    subtopic_name: Optional[str] = None
    difficulty: Optional[str] = None
    question_type: Optional[str] = None
    locked: Optional[bool] = None
    limit: int = Field(default=100, ge=0)


class QuestionIdsRequest(CamelModel):
    exam_type: Optional[str] = None
    ids: List[str] = Field(default_factory=list)
