from fastapi import APIRouter, Depends

from exambank.api.deps import get_db_router
from exambank.db.router import DatabaseRouter
from exambank.schemas.lock import (
    LockAllRequest,
    LockCounts,
    LockScope,
    LockScopeRequest,
    LockSetRequest,
    LockUpdateResult,
)
from exambank.services.lock_service import count_lock_state, lock_all, lock_scope, lock_set

router = APIRouter()


@router.post("/locks/count", response_model=LockCounts)
async def count_lock_state_endpoint(
    payload: LockScope, db_router: DatabaseRouter = Depends(get_db_router)
) -> LockCounts:
    return await count_lock_state(payload, db_router)


@router.post("/locks/scope", response_model=LockUpdateResult)
async def lock_scope_endpoint(
    payload: LockScopeRequest, db_router: DatabaseRouter = Depends(get_db_router)
) -> LockUpdateResult:
    return await lock_scope(payload, db_router)


@router.post("/locks/set", response_model=LockUpdateResult)
async def lock_set_endpoint(
    payload: LockSetRequest, db_router: DatabaseRouter = Depends(get_db_router)
) -> LockUpdateResult:
    return await lock_set(payload, db_router)


@router.post("/locks/all", response_model=LockUpdateResult)
async def lock_all_endpoint(
    payload: LockAllRequest, db_router: DatabaseRouter = Depends(get_db_router)
) -> LockUpdateResult:
    return await lock_all(payload, db_router)
