from fastapi import APIRouter, Depends

from exambank.api.deps import get_db_router
from exambank.db.router import DatabaseRouter
from exambank.schemas.question import IngestRequest, IngestResult
from exambank.services.ingestion_service import ingest_questions

router = APIRouter()


@router.post("/questions/ingest", response_model=IngestResult, status_code=201)
async def ingest_questions_endpoint(
    payload: IngestRequest, db_router: DatabaseRouter = Depends(get_db_router)
) -> IngestResult:
    return await ingest_questions(payload, db_router)
