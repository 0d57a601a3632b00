# haatbazaar/api/v1/endpoints/system.py
import os
from typing import Annotated, Optional
from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel

from haatbazaar.core.config import settings
from haatbazaar.core.logging_setup import logger
from haatbazaar.core.redis_client import get_redis_client
from haatbazaar.db.mongo_client import get_database

router = APIRouter()

APP_VERSION = os.getenv("APP_VERSION", "N/A")
BUILD_TIMESTAMP = os.getenv("BUILD_TIMESTAMP", "N/A")


class StatusResponse(BaseModel):
    project_name: str
    version: Optional[str]
    build_timestamp: Optional[str]
    status: str = "operational"
    database_status: str
    redis_status: str
    outbox_enabled: bool


@router.get("/health", summary="Basic Health Check")
async def health_check():
    return {"status": "ok", "service": settings.APP_NAME}


@router.get("/status", response_model=StatusResponse, summary="Detailed Service Status")
async def get_system_status(db: Annotated[AsyncIOMotorDatabase, Depends(get_database)]):
    db_status = "unknown"
    try:
        await db.command("ping")
        db_status = "connected"
    except Exception as e:
        logger.error(f"Status Check: DB ping failed: {e}")
        db_status = "error"

    if not settings.REDIS_URL:
        redis_status = "not_configured"
    else:
        try:
            await get_redis_client().ping()
            redis_status = "connected"
        except Exception as e:
            logger.error(f"Status Check: Redis ping failed: {e}")
            redis_status = "error"

    return StatusResponse(
        project_name=settings.APP_NAME,
        version=APP_VERSION,
        build_timestamp=BUILD_TIMESTAMP,
        status="operational" if db_status == "connected" else "degraded",
        database_status=db_status,
        redis_status=redis_status,
        outbox_enabled=settings.OUTBOX_ENABLED,
    )
