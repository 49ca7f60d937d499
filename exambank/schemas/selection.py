from enum import Enum
from typing import Dict, List, Optional

from pydantic import Field

from exambank.schemas.base import CamelModel
from exambank.schemas.question import QuestionView


class LockFilter(str, Enum):
    """Which questions a draw may return, by lock state."""

    unlocked = "unlocked"
    locked = "locked"
    any = "any"

    def as_filter(self) -> Dict[str, bool]:
        if self is LockFilter.unlocked:
            return {"locked": False}
        if self is LockFilter.locked:
            return {"locked": True}
        return {}


class SelectionMode(str, Enum):
    random = "random"
    difficulty = "difficulty"


class TypeCounts(CamelModel):
    mcq: int = Field(default=0, ge=0)
    integer: int = Field(default=0, ge=0)


class DifficultyPercentages(CamelModel):
    easy: float = Field(..., ge=0, le=100)
    medium: float = Field(..., ge=0, le=100)
    hard: float = Field(..., ge=0, le=100)


class RandomSelectionRequest(CamelModel):
    exam_type: Optional[str] = None
    subject_selections: Optional[Dict[str, TypeCounts]] = None
    lock_filter: Optional[LockFilter] = None


class DifficultySelectionRequest(RandomSelectionRequest):
    difficulty_percentages: Optional[DifficultyPercentages] = None


class AssembleRequest(DifficultySelectionRequest):
    """Select then claim; ``difficultyPercentages`` is required when ``mode`` is ``difficulty``."""

    mode: SelectionMode = SelectionMode.random


class CellBreakdown(CamelModel):
    subject_id: str
    question_type: str
    difficulty: Optional[str] = None
    requested: int
    selected: int


class SelectionResult(CamelModel):
    questions: List[QuestionView]
    total: int
    requested: int
    lock_filter: LockFilter
    breakdown: List[CellBreakdown] = Field(default_factory=list)


class AssembleResult(SelectionResult):
    claimed: int
    conflicts: List[str] = Field(default_factory=list)
