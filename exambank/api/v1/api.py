from fastapi import APIRouter

from exambank.api.v1.endpoints import catalog, exams, locks, questions, selection, stats

api_router = APIRouter()
api_router.include_router(exams.router, tags=["exam-types"])
api_router.include_router(questions.router, tags=["ingestion"])
api_router.include_router(selection.router, tags=["selection"])
api_router.include_router(locks.router, tags=["locks"])
api_router.include_router(stats.router, tags=["stats"])
api_router.include_router(catalog.router, tags=["catalog"])
