from fastapi import APIRouter, Depends, Query, HTTPException, status
from typing import List
from parcel_search.api.dependencies import get_geospatial_service
from parcel_search.api.errors import to_http_exception
from parcel_search.core.config import settings
from parcel_search.core.exceptions import ParcelSearchError
from parcel_search.models.geospatial import (
    ClusterPoint, DistanceResult, GeoStatistics, RouteSearchRequest, RouteSearchResult
)
from parcel_search.models.search import SearchResult
from parcel_search.modules.geospatial.coordinates import Point
from parcel_search.modules.geospatial.service import GeospatialService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


def _unavailable(operation: str, error: Exception) -> HTTPException:
    logger.error(f"Geo {operation} failed: {error}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to run {operation}"
    )


@router.get("/nearby", response_model=SearchResult)
async def nearby_listings(
    lat: float = Query(..., description="Center latitude"),
    lng: float = Query(..., description="Center longitude"),
    radius_km: float = Query(10, description="Search radius in kilometers (max 100)"),
    page: int = Query(1),
    limit: int = Query(settings.RADIUS_DEFAULT_LIMIT),
    geo_service: GeospatialService = Depends(get_geospatial_service)
):
    """Published listings within the radius, nearest first, each with ``distance_km``"""
    try:
        return await geo_service.search_radius(Point(lat, lng), radius_km, page, limit)
    except ParcelSearchError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _unavailable("radius search", e)


@router.get("/bounds", response_model=SearchResult)
async def listings_in_bounds(
    ne_lat: float = Query(...),
    ne_lng: float = Query(...),
    sw_lat: float = Query(...),
    sw_lng: float = Query(...),
    page: int = Query(1),
    limit: int = Query(settings.BOUNDS_DEFAULT_LIMIT),
    geo_service: GeospatialService = Depends(get_geospatial_service)
):
    try:
        return await geo_service.search_bounding_box(Point(ne_lat, ne_lng), Point(sw_lat, sw_lng), page, limit)
    except ParcelSearchError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _unavailable("bounding box search", e)


@router.get("/clusters", response_model=List[ClusterPoint])
async def listing_clusters(
    ne_lat: float = Query(...),
    ne_lng: float = Query(...),
    sw_lat: float = Query(...),
    sw_lng: float = Query(...),
    zoom: int = Query(10, description="Map zoom level 0-22"),
    geo_service: GeospatialService = Depends(get_geospatial_service)
):
    try:
        return await geo_service.cluster(Point(ne_lat, ne_lng), Point(sw_lat, sw_lng), zoom)
    except ParcelSearchError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _unavailable("clustering", e)


@router.get("/distance", response_model=DistanceResult)
async def distance_between(
    from_lat: float = Query(...),
    from_lng: float = Query(...),
    to_lat: float = Query(...),
    to_lng: float = Query(...),
    precise: bool = Query(False, description="Use ellipsoidal (geodesic) distance"),
    geo_service: GeospatialService = Depends(get_geospatial_service)
):
    try:
        return geo_service.distance_between(Point(from_lat, from_lng), Point(to_lat, to_lng), precise)
    except ParcelSearchError as e:
        raise to_http_exception(e)


@router.post("/route", response_model=RouteSearchResult)
async def listings_along_route(
    request: RouteSearchRequest,
    geo_service: GeospatialService = Depends(get_geospatial_service)
):
    """Listings within ``buffer_km`` of any waypoint (default 2 km)"""
    try:
        waypoints = [Point(p.lat, p.lng) for p in request.waypoints]
        return await geo_service.search_along_route(waypoints, request.buffer_km)
    except ParcelSearchError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _unavailable("route search", e)


@router.get("/stats", response_model=GeoStatistics)
async def geo_statistics(geo_service: GeospatialService = Depends(get_geospatial_service)):
    try:
        return await geo_service.statistics()
    except ParcelSearchError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _unavailable("statistics", e)
