from typing import List, Optional

from fastapi import APIRouter

from exambank.core.exam_types import clean_exam_type, normalize_exam_type, supported_exam_types

router = APIRouter()


@router.get("/exam-types")
def list_exam_types_endpoint() -> List[dict]:
    return supported_exam_types()


@router.get("/exam-types/normalize")
def normalize_exam_type_endpoint(value: str) -> dict:
    key: Optional[str] = normalize_exam_type(value)
    return {"input": value, "cleaned": clean_exam_type(value), "key": key, "recognized": key is not None}
