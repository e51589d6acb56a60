import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .database import get_db

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/healthz")
def healthz() -> dict[str, bool]:
    return {"ok": True}


@router.get("/readyz", response_model=None)
async def readyz(db: AsyncSession = Depends(get_db)) -> dict[str, bool] | JSONResponse:
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("readyz.db_unavailable", extra={"error": str(e)})
        return JSONResponse(status_code=503, content={"ready": False})
    return {"ready": True}
