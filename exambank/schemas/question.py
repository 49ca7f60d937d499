from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from exambank.schemas.base import CamelModel


class QuestionType(str, Enum):
    mcq = "mcq"
    integer = "integer"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["QuestionType"]:
        """Accept the casing/spelling variants produced by extraction (``MCQ``, ``Integer``, ``INT``)."""

        if raw is None:
            return None
        value = str(raw).strip().lower()
        if value in ("mcq", "single_choice", "single correct"):
            return cls.mcq
        if value in ("integer", "int", "numerical", "numeric", "nat"):
            return cls.integer
        return None


class Difficulty(str, Enum):
    easy = "Easy"
    medium = "Medium"
    hard = "Hard"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["Difficulty"]:
        if raw is None:
            return None
        value = str(raw).strip().lower()
        for member in cls:
            if member.name == value:
                return member
        return None


class ExtractedQuestion(BaseModel):
    """One question as emitted by the extraction step (snake_case keys)."""

    question_no: Union[int, str, None] = None
    question_type: Optional[str] = None
    difficulty: Optional[str] = None
    question_description: Optional[str] = None
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None
    option4: Optional[str] = None
    correct_answer: Optional[str] = None
    subtopic: Optional[str] = None

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)


class ExtractedSolution(BaseModel):
    question_no: Union[int, str, None] = None
    solution: Optional[str] = None

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)


class ExtractedAnswer(BaseModel):
    question_no: Union[int, str, None] = None
    answer: Optional[str] = None

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)


class IngestRequest(CamelModel):
    """A validated extraction batch for one subject/topic of one exam."""

    exam_type: Optional[str] = None
    subject_id: Optional[str] = None
    subject_name: Optional[str] = None
    topic_id: Optional[str] = None
    topic_name: Optional[str] = None
    questions: List[ExtractedQuestion] = Field(default_factory=list)
    solutions: List[ExtractedSolution] = Field(default_factory=list)
    answer_key: List[ExtractedAnswer] = Field(default_factory=list)


class IngestResult(CamelModel):
    message: str
    exam_type: str
    count: int
    subtopics_count: int


class QuestionView(CamelModel):
    """A stored question as returned to callers."""

    id: str
    question_no: Union[int, str, None] = None
    question_type: Optional[str] = None
    difficulty: Optional[str] = None
    question_description: Optional[str] = None
    options: Optional[Dict[str, Optional[str]]] = None
    correct_answer: Optional[str] = None
    solution: Optional[str] = None
    answer_key: Optional[str] = None
    locked: bool = False
    exam_type: Optional[str] = None
    subject_id: Optional[str] = None
    subject_name: Optional[str] = None
    topic_id: Optional[str] = None
    topic_name: Optional[str] = None
    subtopic_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "QuestionView":
        data = {key: value for key, value in doc.items() if key != "_id"}
        return cls.model_validate({**data, "id": str(doc["_id"])})


class QuestionList(CamelModel):
    questions: List[QuestionView]
    count: int
