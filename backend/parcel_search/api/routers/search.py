from fastapi import APIRouter, Depends, Query, HTTPException, status
from typing import List, Optional
from pydantic import ValidationError as PydanticValidationError
from parcel_search.api.dependencies import get_search_service
from parcel_search.api.errors import to_http_exception
from parcel_search.core.auth import get_current_user_id
from parcel_search.core.cache import SearchCache, generate_cache_key, get_search_cache
from parcel_search.core.config import settings
from parcel_search.core.exceptions import ParcelSearchError, ValidationError
from parcel_search.models.property import ListingStatus, PropertyCategory
from parcel_search.models.search import (
    BoundingBoxFilter, FeatureCombinator, GeoPoint, RadiusFilter, SearchCriteria, SearchResult,
    SortField, SortOrder
)
from parcel_search.modules.search.service import SearchService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


def criteria_from_query(
    term: Optional[str] = Query(None, max_length=200, description="Substring of title, description or address"),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    min_area: Optional[float] = Query(None, ge=0),
    max_area: Optional[float] = Query(None, ge=0),
    min_rooms: Optional[int] = Query(None, ge=0),
    max_rooms: Optional[int] = Query(None, ge=0),
    min_bathrooms: Optional[int] = Query(None, ge=0),
    max_bathrooms: Optional[int] = Query(None, ge=0),
    min_floor: Optional[int] = None,
    max_floor: Optional[int] = None,
    min_build_year: Optional[int] = Query(None, ge=1900, le=2030),
    max_build_year: Optional[int] = Query(None, ge=1900, le=2030),
    min_price_per_area: Optional[float] = Query(None, ge=0),
    max_price_per_area: Optional[float] = Query(None, ge=0),
    category: Optional[PropertyCategory] = None,
    listing_status: Optional[ListingStatus] = Query(None, alias="status"),
    region_id: Optional[str] = None,
    district_id: Optional[str] = None,
    sub_district_id: Optional[str] = None,
    location_id: Optional[str] = None,
    feature_ids: Optional[List[str]] = Query(None),
    feature_combinator: FeatureCombinator = FeatureCombinator.ANY,
    lat: Optional[float] = Query(None, description="Radius center latitude"),
    lng: Optional[float] = Query(None, description="Radius center longitude"),
    radius_km: Optional[float] = None,
    ne_lat: Optional[float] = None,
    ne_lng: Optional[float] = None,
    sw_lat: Optional[float] = None,
    sw_lng: Optional[float] = None,
    has_balcony: Optional[bool] = None,
    has_parking: Optional[bool] = None,
    is_furnished: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.SEARCH_DEFAULT_LIMIT, ge=1, le=settings.SEARCH_MAX_LIMIT),
    sort_by: SortField = SortField.CREATED_AT,
    sort_order: SortOrder = SortOrder.DESC,
) -> SearchCriteria:
    """Map query parameters one-to-one onto search criteria"""
    radius = None
    radius_parts = (lat, lng, radius_km)
    if any(p is not None for p in radius_parts):
        if any(p is None for p in radius_parts):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                                detail="Radius search needs lat, lng and radius_km")
        radius = RadiusFilter(center=GeoPoint(lat=lat, lng=lng), radius_km=radius_km)

    bounding_box = None
    box_parts = (ne_lat, ne_lng, sw_lat, sw_lng)
    if any(p is not None for p in box_parts):
        if any(p is None for p in box_parts):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                                detail="Bounding box needs ne_lat, ne_lng, sw_lat and sw_lng")
        bounding_box = BoundingBoxFilter(
            north_east=GeoPoint(lat=ne_lat, lng=ne_lng),
            south_west=GeoPoint(lat=sw_lat, lng=sw_lng),
        )

    try:
        return SearchCriteria(
            term=term,
            min_price=min_price, max_price=max_price,
            min_area=min_area, max_area=max_area,
            min_rooms=min_rooms, max_rooms=max_rooms,
            min_bathrooms=min_bathrooms, max_bathrooms=max_bathrooms,
            min_floor=min_floor, max_floor=max_floor,
            min_build_year=min_build_year, max_build_year=max_build_year,
            min_price_per_area=min_price_per_area, max_price_per_area=max_price_per_area,
            category=category,
            status=listing_status,
            region_id=region_id, district_id=district_id,
            sub_district_id=sub_district_id, location_id=location_id,
            feature_ids=feature_ids,
            feature_combinator=feature_combinator,
            radius=radius,
            bounding_box=bounding_box,
            has_balcony=has_balcony, has_parking=has_parking, is_furnished=is_furnished,
            page=page, limit=limit, sort_by=sort_by, sort_order=sort_order,
        )
    except PydanticValidationError as e:
        messages = [err["msg"] for err in e.errors()]
        raise to_http_exception(ValidationError(
            f"Invalid search criteria: {messages[0]}", field="filters", details={"errors": messages}
        ))


async def _search(criteria: SearchCriteria, suggest: bool, use_cache: bool,
                  search_service: SearchService, cache: SearchCache) -> SearchResult:
    cache_key = generate_cache_key(f"search:{int(suggest)}", criteria)
    if use_cache:
        cached_result = await cache.get(cache_key)
        if cached_result is not None:
            return cached_result

    try:
        result = await search_service.search(criteria, suggest=suggest)
    except ParcelSearchError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Search failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Search service temporarily unavailable"
        )

    if use_cache:
        await cache.set(cache_key, result)
    return result


@router.get("/", response_model=SearchResult)
async def search_listings(
    criteria: SearchCriteria = Depends(criteria_from_query),
    suggest: bool = Query(False, description="Suggest relaxed criteria when nothing matches"),
    use_cache: bool = Query(True, description="Whether to use cached results"),
    search_service: SearchService = Depends(get_search_service),
    cache: SearchCache = Depends(get_search_cache),
):
    """
    Search published listings.

    Supports:
    - Price, area, room, bathroom, floor, build year and price per area ranges
    - Category, location hierarchy and amenity flags
    - Feature sets matched with ALL or ANY
    - Radius or bounding box geography
    - Pagination and sorting
    """
    return await _search(criteria, suggest, use_cache, search_service, cache)


@router.post("/", response_model=SearchResult)
async def search_listings_body(
    criteria: SearchCriteria,
    suggest: bool = Query(False),
    use_cache: bool = Query(True),
    search_service: SearchService = Depends(get_search_service),
    cache: SearchCache = Depends(get_search_cache),
):
    """Same as GET, with the criteria as a JSON body"""
    if criteria.limit > settings.SEARCH_MAX_LIMIT:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail=f"Limit must be at most {settings.SEARCH_MAX_LIMIT}")
    return await _search(criteria, suggest, use_cache, search_service, cache)


@router.get("/mine", response_model=SearchResult)
async def search_my_listings(
    criteria: SearchCriteria = Depends(criteria_from_query),
    user_id: str = Depends(get_current_user_id),
    search_service: SearchService = Depends(get_search_service),
):
    """Caller's own listings in any status; ``status`` narrows to one"""
    try:
        return await search_service.search_owner_inventory(user_id, criteria)
    except ParcelSearchError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Owner inventory search failed for {user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Search service temporarily unavailable"
        )
