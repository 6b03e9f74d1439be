"""
Database health endpoints for the journey store
"""

import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse

from journeyline.db.session import db_manager, database_health_check, get_database_stats

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health",
    responses={
        200: {"description": "Database is healthy"},
        503: {"description": "Database is unhealthy"}
    },
    summary="Database health check",
    description="Check database connectivity and connection pool status"
)
async def get_database_health():
    """Connectivity check; 503 when the store is unreachable"""
    try:
        health_info = await database_health_check()
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "error": "Health check failed", "details": str(e)}
        )

    code = status.HTTP_200_OK if health_info["status"] == "healthy" else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=health_info)


@router.get("/stats",
    responses={
        200: {"description": "Database connection statistics"},
        500: {"description": "Failed to retrieve statistics"}
    },
    summary="Database statistics",
    description="Connection counters and derived error rate"
)
async def get_database_statistics():
    try:
        stats = get_database_stats()
        pool_size = max(db_manager.settings.DB_POOL_SIZE, 1)
        stats["computed_metrics"] = {
            "connection_utilization": stats["active_connections"] / pool_size * 100,
            "error_rate": (
                stats["failed_connections"] / stats["total_connections"] * 100
                if stats["total_connections"] > 0 else 0
            )
        }
        return stats
    except Exception as e:
        logger.error(f"Failed to retrieve database statistics: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve database statistics"
        )
