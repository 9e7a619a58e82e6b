"""Statistics API endpoints."""
import logging
import os
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from folder_search_server.dependencies import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("/", response_model=Dict[str, Any])
async def get_stats(services: Services = Depends(get_services)):
    """Get database statistics."""
    stats = services.db.get_stats()

    # Recent files (last 5)
    stats["recent_files"] = [
        {"path": file.path, "index_date": file.index_date}
        for file in services.db.get_all_files()[:5]
    ]

    # Database file size and location
    db_path = str(services.db.db_path)
    stats["db_path"] = db_path
    if os.path.exists(db_path):
        stats["db_size_bytes"] = os.path.getsize(db_path)
        stats["db_size_mb"] = round(stats["db_size_bytes"] / (1024 * 1024), 2)
    else:
        stats["db_size_bytes"] = 0
        stats["db_size_mb"] = 0

    return stats


@router.get("/logs", response_model=Dict[str, Any])
async def get_logs(limit: int = 100, services: Services = Depends(get_services)):
    """Most recent diagnostic log entries, newest first."""
    logs = services.db.get_logs(limit)
    return {"logs": logs, "count": len(logs)}


@router.post("/optimize", response_model=Dict[str, Any])
async def optimize(services: Services = Depends(get_services)):
    """Refresh query planner statistics after bulk indexing."""
    services.db.optimize()
    return {"status": "success"}


@router.post("/vacuum", response_model=Dict[str, Any])
async def vacuum(services: Services = Depends(get_services)):
    """Rebuild the database file to reclaim space left by deleted rows."""
    if services.indexing.is_indexing:
        raise HTTPException(status_code=409, detail="Indexing already in progress")
    services.db.vacuum()
    return {"status": "success"}


@router.delete("/clear-index", response_model=Dict[str, Any])
async def clear_index(services: Services = Depends(get_services)):
    """Remove every indexed file and stop all watchers.

    WARNING: This is destructive and cannot be undone!
    Folders have to be indexed again afterwards.
    """
    if services.indexing.is_indexing:
        raise HTTPException(status_code=409, detail="Indexing already in progress")

    try:
        await services.indexing.stop_watching()
        deleted = services.db.clear_files()
        logger.info(f"Cleared index ({deleted} files)")
        return {
            "status": "success",
            "message": "Index cleared successfully",
            "deleted_count": deleted
        }
    except Exception as e:
        logger.error(f"Error clearing index: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to clear index: {str(e)}")
