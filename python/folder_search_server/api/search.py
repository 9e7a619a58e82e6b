"""Search API endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException

from folder_search_server.dependencies import Services, get_services
from folder_search_server.models.schemas import (AIRequest, AIResponse, SearchQuery, SearchResponse,
                                                 SuggestionsResponse)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/search", tags=["search"])


@router.post("", response_model=SearchResponse)
async def search(query: SearchQuery, services: Services = Depends(get_services)):
    """Full-text search with filters, bm25 ranking (lower score is better) and snippets."""
    results = services.search.search(query)

    try:
        services.search.add_to_search_history(query.text)
    except Exception as e:
        logger.warning(f"Could not record search history: {e}")

    return SearchResponse(results=results, query=query.text, count=len(results))


@router.get("/suggestions", response_model=SuggestionsResponse)
async def suggestions(partial: str, services: Services = Depends(get_services)):
    """File names containing the partial query."""
    try:
        return SuggestionsResponse(partial=partial, suggestions=services.search.get_suggestions(partial))
    except Exception as e:
        logger.error(f"Suggestion error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/ai", response_model=AIResponse)
async def search_with_ai(request: AIRequest, services: Services = Depends(get_services)):
    """Answer a question from search results (placeholder answer)."""
    return services.search.search_with_ai(request.query, request.context)
