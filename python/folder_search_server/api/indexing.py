"""Indexing API endpoints."""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException

from folder_search_server.dependencies import Services, get_services
from folder_search_server.models.schemas import FilePathRequest, IndexFolderRequest, IndexFolderResponse
from folder_search_server.services.indexing_service import IndexingBusyError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["indexing"])


@router.post("/folders/index", response_model=IndexFolderResponse)
async def index_folder(request: IndexFolderRequest, services: Services = Depends(get_services)):
    """Scan a folder into the index and start watching it."""
    try:
        result = await services.indexing.index_folder(request.folder_path)
    except IndexingBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except (FileNotFoundError, NotADirectoryError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error indexing folder {request.folder_path}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    return IndexFolderResponse(
        folder_path=result["folder_path"],
        status="indexed",
        total=result["total"],
        indexed=result["indexed"]
    )


@router.delete("/folders")
async def remove_folder(folder_path: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Stop watching a folder and remove its files from the index."""
    try:
        deleted_count = await services.indexing.remove_folder(folder_path)
    except Exception as e:
        logger.error(f"Error removing folder {folder_path}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "status": "removed",
        "folder_path": folder_path,
        "deleted_count": deleted_count
    }


@router.get("/folders")
async def get_folders(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """List indexed folders with their indexing state."""
    states = services.indexing.get_folder_states()
    folders = services.config.get_indexed_folders()
    folders += [folder for folder in states if folder not in folders]
    return {
        "folders": [{"folder_path": folder, "state": states.get(folder, "idle")} for folder in folders],
        "last_indexed_folder": services.config.get_last_indexed_folder()
    }


@router.get("/indexing/status")
async def get_indexing_status(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Whether a scan is running, and the state of every known folder."""
    status = services.indexing.get_indexing_status()
    status.update(services.indexing.get_index_stats())
    return status


@router.get("/files")
async def get_files(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Get list of all files in the index, most recently modified first."""
    try:
        files = [
            file.model_dump(exclude={"content", "ocr_content"})
            for file in services.db.get_all_files()
        ]
        return {"files": files, "count": len(files)}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/file")
async def delete_file(path: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Delete a file from the index."""
    try:
        existed = services.db.delete_file(path)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

    if not existed:
        raise HTTPException(status_code=404, detail=f"File not found: {path}")

    return {
        "status": "deleted",
        "path": path,
        "message": f"Successfully deleted {path} from the index"
    }


@router.post("/file/reindex")
async def reindex_file(request: FilePathRequest, services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Force re-extraction of a single file."""
    try:
        outcome = await services.indexing.reindex_file(request.path)
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error reindexing {request.path}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    return {"status": outcome, "path": request.path}


@router.get("/events")
async def get_events(since: int = 0, limit: Optional[int] = None,
                     services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Indexing events published after sequence number `since`."""
    events = services.events.events_since(since, limit)
    return {
        "events": [event.model_dump() for event in events],
        "last_seq": services.events.last_seq
    }
