from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from common.core.telemetry import get_logger
from common.db.scoped import get_session
from common.db.session import get_session_factory

logger = get_logger(__name__)

router = APIRouter()


@router.get("/")
async def health_check():
    # No logging - probes hit this every few seconds
    return {"status": "healthy", "service": "bedtime-stories-api"}


@router.get("/db")
async def db_check(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    try:
        async with get_session(session_factory) as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {"status": "unhealthy", "database": "disconnected"}
