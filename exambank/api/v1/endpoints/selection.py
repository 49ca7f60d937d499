from fastapi import APIRouter, Depends

from exambank.api.deps import get_db_router
from exambank.db.router import DatabaseRouter
from exambank.schemas.selection import (
    AssembleRequest,
    AssembleResult,
    DifficultySelectionRequest,
    RandomSelectionRequest,
    SelectionResult,
)
from exambank.services.selection_service import assemble_paper, select_by_difficulty, select_random

router = APIRouter()


@router.post("/selection/random", response_model=SelectionResult)
async def select_random_endpoint(
    payload: RandomSelectionRequest, db_router: DatabaseRouter = Depends(get_db_router)
) -> SelectionResult:
    return await select_random(payload, db_router)


@router.post("/selection/difficulty", response_model=SelectionResult)
async def select_by_difficulty_endpoint(
    payload: DifficultySelectionRequest, db_router: DatabaseRouter = Depends(get_db_router)
) -> SelectionResult:
    return await select_by_difficulty(payload, db_router)


@router.post("/selection/assemble", response_model=AssembleResult)
async def assemble_paper_endpoint(
    payload: AssembleRequest, db_router: DatabaseRouter = Depends(get_db_router)
) -> AssembleResult:
    """Select and immediately claim the drawn questions (locked=true)."""

    return await assemble_paper(payload, db_router)
