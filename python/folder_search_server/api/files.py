"""Open indexed files with the platform's default application."""
import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException

from folder_search_server.models.schemas import FilePathRequest
from folder_search_server.services import shell

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])


@router.post("/open")
async def open_file(request: FilePathRequest) -> Dict[str, Any]:
    try:
        shell.open_path(request.path)
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OSError as e:
        logger.error(f"Could not open {request.path}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"status": "opened", "path": request.path}


@router.post("/reveal")
async def reveal_file(request: FilePathRequest) -> Dict[str, Any]:
    """Show the file in the system file manager."""
    try:
        shell.reveal_path(request.path)
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OSError as e:
        logger.error(f"Could not reveal {request.path}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"status": "revealed", "path": request.path}
