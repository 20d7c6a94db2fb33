from fastapi import APIRouter, Depends, Query, HTTPException, Response, status
from typing import List
from parcel_search.api.dependencies import get_saved_search_manager
from parcel_search.api.errors import to_http_exception
from parcel_search.core.auth import get_current_user_id
from parcel_search.core.config import settings
from parcel_search.core.exceptions import ParcelSearchError
from parcel_search.models.saved_search import (
    SavedSearch, SavedSearchCreate, SavedSearchMatchCount, SavedSearchUpdate
)
from parcel_search.models.search import SearchResult
from parcel_search.modules.saved_searches.service import SavedSearchManager
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


def _failed(operation: str, error: Exception) -> HTTPException:
    logger.error(f"Failed to {operation}: {error}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {operation}"
    )


@router.post("/", response_model=SavedSearch, status_code=status.HTTP_201_CREATED)
async def create_saved_search(
    payload: SavedSearchCreate,
    user_id: str = Depends(get_current_user_id),
    manager: SavedSearchManager = Depends(get_saved_search_manager)
):
    try:
        return await manager.create(user_id, payload)
    except ParcelSearchError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _failed("save search", e)


@router.get("/", response_model=List[SavedSearch])
async def list_saved_searches(
    user_id: str = Depends(get_current_user_id),
    manager: SavedSearchManager = Depends(get_saved_search_manager)
):
    try:
        return await manager.list_for_user(user_id)
    except ParcelSearchError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _failed("retrieve saved searches", e)


@router.get("/{saved_search_id}", response_model=SavedSearch)
async def get_saved_search(
    saved_search_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: SavedSearchManager = Depends(get_saved_search_manager)
):
    try:
        return await manager.get(saved_search_id, user_id)
    except ParcelSearchError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _failed("retrieve saved search", e)


@router.patch("/{saved_search_id}", response_model=SavedSearch)
async def update_saved_search(
    saved_search_id: str,
    patch: SavedSearchUpdate,
    user_id: str = Depends(get_current_user_id),
    manager: SavedSearchManager = Depends(get_saved_search_manager)
):
    """Merge update: only fields present in the body change"""
    try:
        return await manager.update(saved_search_id, user_id, patch)
    except ParcelSearchError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _failed("update saved search", e)


@router.delete("/{saved_search_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_saved_search(
    saved_search_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: SavedSearchManager = Depends(get_saved_search_manager)
):
    try:
        await manager.delete(saved_search_id, user_id)
    except ParcelSearchError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _failed("delete saved search", e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{saved_search_id}/execute", response_model=SearchResult)
async def execute_saved_search(
    saved_search_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.SEARCH_DEFAULT_LIMIT, ge=1, le=settings.SEARCH_MAX_LIMIT),
    user_id: str = Depends(get_current_user_id),
    manager: SavedSearchManager = Depends(get_saved_search_manager)
):
    """Re-run against current listings; never cached"""
    try:
        return await manager.execute(saved_search_id, user_id, page, limit)
    except ParcelSearchError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _failed("execute saved search", e)


@router.get("/{saved_search_id}/count", response_model=SavedSearchMatchCount)
async def count_saved_search_matches(
    saved_search_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: SavedSearchManager = Depends(get_saved_search_manager)
):
    try:
        return await manager.match_count(saved_search_id, user_id)
    except ParcelSearchError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _failed("count saved search matches", e)


@router.post("/{saved_search_id}/toggle-notification", response_model=SavedSearch)
async def toggle_saved_search_notification(
    saved_search_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: SavedSearchManager = Depends(get_saved_search_manager)
):
    try:
        return await manager.toggle_notification(saved_search_id, user_id)
    except ParcelSearchError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _failed("toggle notification", e)
