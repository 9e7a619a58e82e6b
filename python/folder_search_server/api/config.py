"""Configuration API endpoints."""
import asyncio
import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import ValidationError

from folder_search_server.dependencies import Services, get_services
from folder_search_server.models.schemas import AppConfig

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/config", tags=["config"])


@router.get("", response_model=AppConfig)
async def get_config(services: Services = Depends(get_services)):
    """Get the full application config."""
    return services.config.get_config()


@router.put("", response_model=AppConfig)
async def set_config(partial: Dict[str, Any] = Body(...), services: Services = Depends(get_services)):
    """Merge a partial config and apply it to the running indexer."""
    try:
        config = services.config.update_config(partial)
    except ValidationError as e:
        raise HTTPException(status_code=422,
                            detail=e.errors(include_url=False, include_context=False, include_input=False))

    try:
        await services.indexing.apply_config(config.indexing)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return config


@router.post("/reset", response_model=AppConfig)
async def reset_config(services: Services = Depends(get_services)):
    """Restore the default config."""
    config = services.config.reset_to_defaults()
    await services.indexing.apply_config(config.indexing)
    return config


@router.get("/ocr-languages")
async def get_ocr_languages(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Configured OCR languages and the ones Tesseract can use."""
    ocr = services.indexing.ocr_service
    supported = await asyncio.to_thread(ocr.get_supported_languages)
    return {"languages": ocr.get_languages(), "supported": supported}
