"""
Health check endpoint for deployment monitoring.
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_db, get_services
from app.core.privilege_defaults import PRIVILEGE_SCHEMA_VERSION

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
def health_check(db: Session = Depends(get_db), services=Depends(get_services)):
    """
    Returns 200 with status "healthy" when the database is reachable,
    "degraded" otherwise.
    """
    status = "healthy"
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError as e:
        logger.error(f"Health check database error: {e}")
        db_status = "error"
        status = "degraded"

    return {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": db_status,
        "privilege_schema_version": PRIVILEGE_SCHEMA_VERSION,
        "privilege_cache_ttl_seconds": services.resolver.ttl_seconds,
        "version": "0.1.0",
    }
