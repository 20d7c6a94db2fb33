"""
Coordinate math on WGS84 latitude/longitude pairs.

Haversine (spherical, R = 6371 km) is the ground-truth distance for radius
searches. ``degree_delta_for_km`` is a flat-earth approximation that is only
good enough for a bounding-box pre-filter ahead of an exact distance check.
"""
import math
from dataclasses import dataclass
from typing import List, Tuple
from geopy.distance import geodesic
from parcel_search.core.exceptions import ValidationError

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 111.0


@dataclass(frozen=True)
class Point:
    lat: float
    lng: float


@dataclass(frozen=True)
class BoundingBox:
    north_east: Point
    south_west: Point


def haversine_km(a: Point, b: Point) -> float:
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def geodesic_km(a: Point, b: Point) -> float:
    """Ellipsoidal distance, slower but more precise than haversine"""
    return geodesic((a.lat, a.lng), (b.lat, b.lng)).kilometers


def degree_delta_for_km(km: float, at_latitude: float) -> Tuple[float, float]:
    """Return (lat_delta, lng_delta) in degrees covering ``km`` around ``at_latitude``"""
    lat_delta = km / KM_PER_DEGREE
    cos_lat = math.cos(math.radians(at_latitude))
    if cos_lat < 1e-9:
        # Meridians converge at the poles
        return lat_delta, 180.0
    return lat_delta, km / (KM_PER_DEGREE * cos_lat)


def boxes_around(center: Point, km: float) -> List[BoundingBox]:
    """
    Pre-filter boxes covering ``km`` around ``center``.

    A circle that crosses the antimeridian yields one box on each side of it;
    one that reaches a pole spans every longitude.
    """
    lat_delta, lng_delta = degree_delta_for_km(km, center.lat)
    north, south = center.lat + lat_delta, center.lat - lat_delta
    if north >= 90.0 or south <= -90.0 or lng_delta >= 180.0:
        return [BoundingBox(Point(min(90.0, north), 180.0), Point(max(-90.0, south), -180.0))]

    east, west = center.lng + lng_delta, center.lng - lng_delta
    if east > 180.0:
        return [
            BoundingBox(Point(north, 180.0), Point(south, west)),
            BoundingBox(Point(north, east - 360.0), Point(south, -180.0)),
        ]
    if west < -180.0:
        return [
            BoundingBox(Point(north, east), Point(south, -180.0)),
            BoundingBox(Point(north, 180.0), Point(south, west + 360.0)),
        ]
    return [BoundingBox(Point(north, east), Point(south, west))]


def contains_box(box: BoundingBox, point: Point) -> bool:
    return (
        box.south_west.lat <= point.lat <= box.north_east.lat
        and box.south_west.lng <= point.lng <= box.north_east.lng
    )


def validate_point(point: Point, field: str = "center") -> None:
    if not -90 <= point.lat <= 90:
        raise ValidationError(f"Latitude must be between -90 and 90, got {point.lat}", field=f"{field}.lat")
    if not -180 <= point.lng <= 180:
        raise ValidationError(f"Longitude must be between -180 and 180, got {point.lng}", field=f"{field}.lng")


def validate_radius(radius_km: float, max_km: float, field: str = "radius_km") -> None:
    if not 0 < radius_km <= max_km:
        raise ValidationError(f"Radius must be greater than 0 and at most {max_km} km, got {radius_km}", field=field)


def validate_box(box: BoundingBox) -> None:
    validate_point(box.north_east, "north_east")
    validate_point(box.south_west, "south_west")
    if box.north_east.lat <= box.south_west.lat:
        raise ValidationError("North-east latitude must be greater than south-west latitude", field="north_east.lat")
    if box.north_east.lng <= box.south_west.lng:
        raise ValidationError("North-east longitude must be greater than south-west longitude", field="north_east.lng")
