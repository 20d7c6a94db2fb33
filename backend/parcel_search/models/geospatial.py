from pydantic import BaseModel, Field
from typing import Optional, List
from parcel_search.models.property import PropertySummary
from parcel_search.models.search import GeoPoint


class ClusterPoint(BaseModel):
    latitude: float
    longitude: float
    count: int
    avg_price: float
    min_price: float
    max_price: float
    member_ids: List[str]


class DistanceResult(BaseModel):
    origin: GeoPoint
    destination: GeoPoint
    distance_km: float
    method: str  # "haversine" or "geodesic"


class RouteSearchRequest(BaseModel):
    waypoints: List[GeoPoint]
    buffer_km: Optional[float] = Field(None, description="Search radius around each waypoint")


class RouteSearchResult(BaseModel):
    items: List[PropertySummary]
    total: int
    waypoint_count: int
    buffer_km: float


class GeoStatistics(BaseModel):
    total: int
    min_latitude: Optional[float] = None
    max_latitude: Optional[float] = None
    min_longitude: Optional[float] = None
    max_longitude: Optional[float] = None
    center: Optional[GeoPoint] = None
