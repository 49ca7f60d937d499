from typing import List, Optional

from pydantic import Field

from exambank.schemas.base import CamelModel


class LockScope(CamelModel):
    exam_type: Optional[str] = None
    subject_id: Optional[str] = None
    topic_name: Optional[str] = None


class LockScopeRequest(LockScope):
    lock: bool = False


class LockSetRequest(CamelModel):
    exam_type: Optional[str] = None
    ids: List[str] = Field(default_factory=list)
    only_unlocked: bool = False


class LockAllRequest(CamelModel):
    exam_type: Optional[str] = None
    lock: bool = True


class LockCounts(CamelModel):
    locked_count: int
    total_count: int
    unlocked_count: int


class LockUpdateResult(CamelModel):
    exam_type: str
    matched: int
    modified: int
