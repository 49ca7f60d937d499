from typing import Optional

from fastapi import APIRouter, Depends, Query

from exambank.api.deps import get_db_router
from exambank.db.router import DatabaseRouter
from exambank.schemas.stats import StatsResponse
from exambank.services.stats_service import get_stats

router = APIRouter()


@router.get("/stats", response_model=StatsResponse)
async def get_stats_endpoint(
    exam_type: Optional[str] = Query(default=None, alias="examType"),
    db_router: DatabaseRouter = Depends(get_db_router),
) -> StatsResponse:
    return await get_stats(exam_type, db_router)
