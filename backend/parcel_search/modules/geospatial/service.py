from typing import Awaitable, Callable, Dict, List, Optional, Tuple
import asyncio
import math
from parcel_search.core.config import settings
from parcel_search.core.exceptions import ValidationError
from parcel_search.models.geospatial import (
    ClusterPoint, DistanceResult, GeoStatistics, RouteSearchResult
)
from parcel_search.models.property import ListingStatus, PropertySummary
from parcel_search.models.search import GeoPoint, SearchResult, SortField, SortOrder
from parcel_search.modules.search.executor import QueryExecutor, build_pagination, with_price_per_area
from parcel_search.modules.search.predicates import Equals, GeoBox, GeoRadius, ListingField, PredicateTree
from parcel_search.modules.stores.base import PropertyStore, SortKey, call_store
from .coordinates import (
    BoundingBox, Point, geodesic_km, haversine_km, validate_box, validate_point, validate_radius
)
import logging

logger = logging.getLogger(__name__)


def published_tree() -> PredicateTree:
    return PredicateTree((Equals(ListingField.STATUS, ListingStatus.PUBLISHED.value),))


class GeospatialService:
    """Service for radius, bounding-box, cluster and route queries over published listings"""

    def __init__(self, store: PropertyStore, executor: Optional[QueryExecutor] = None):
        self.store = store
        self.executor = executor or QueryExecutor(store)

    async def search_radius(self, center: Point, radius_km: float, page: int = 1,
                            limit: Optional[int] = None) -> SearchResult:
        """
        Listings within ``radius_km`` of ``center``, nearest first.

        Distances keep full float precision; ties are broken newest first.
        """
        validate_point(center)
        validate_radius(radius_km, settings.MAX_RADIUS_KM)
        limit = limit or settings.RADIUS_DEFAULT_LIMIT
        self._validate_page(page, limit, settings.RADIUS_MAX_LIMIT)

        tree = published_tree()
        radius_tree = tree.with_node(GeoRadius(center, radius_km))

        total, matches = await asyncio.gather(
            call_store("count", self.store.count(radius_tree), radius_tree),
            call_store(
                "find_within_radius",
                self.store.find_within_radius(tree, center, radius_km * 1000, (page - 1) * limit, limit),
                radius_tree,
            ),
        )

        items = [
            with_price_per_area(listing).model_copy(update={"distance_km": distance_km})
            for listing, distance_km in matches
        ]
        return SearchResult(
            items=items,
            total=total,
            pagination=build_pagination(page, limit, total),
            effective_sort_by=SortField.DISTANCE,
            effective_sort_order=SortOrder.ASC,
            applied_filters=radius_tree.describe(),
        )

    async def search_bounding_box(self, north_east: Point, south_west: Point, page: int = 1,
                                  limit: Optional[int] = None) -> SearchResult:
        box = BoundingBox(north_east, south_west)
        validate_box(box)
        limit = limit or settings.BOUNDS_DEFAULT_LIMIT
        self._validate_page(page, limit, settings.BOUNDS_MAX_LIMIT)

        tree = published_tree().with_node(GeoBox(north_east, south_west))
        return await self.executor.execute(tree, [], page, limit, SortField.CREATED_AT, SortOrder.DESC)

    async def cluster(self, north_east: Point, south_west: Point, zoom: int) -> List[ClusterPoint]:
        """
        Grid clusters of the listings inside the box.

        Cell size halves with each zoom level; at CLUSTER_MAX_ZOOM and above
        every listing is its own cluster. Listings are read page by page, so
        every matching listing lands in exactly one cluster.
        """
        box = BoundingBox(north_east, south_west)
        validate_box(box)
        if not 0 <= zoom <= 22:
            raise ValidationError(f"Zoom must be between 0 and 22, got {zoom}", field="zoom")

        tree = published_tree().with_node(GeoBox(north_east, south_west))
        sort = [SortKey(SortField.CREATED_AT, True)]
        listings = await self._fetch_all(
            "find_many",
            lambda skip, take: self.store.find_many(tree, sort, skip, take),
            tree,
            settings.CLUSTER_PAGE_SIZE,
        )

        groups: Dict[Tuple, List[PropertySummary]] = {}
        if zoom >= settings.CLUSTER_MAX_ZOOM:
            for listing in listings:
                groups[(listing.id,)] = [listing]
        else:
            cell = 360.0 / (2 ** zoom) / settings.CLUSTER_GRID_DIVISIONS
            for listing in listings:
                key = (
                    math.floor((listing.latitude - south_west.lat) / cell),
                    math.floor((listing.longitude - south_west.lng) / cell),
                )
                groups.setdefault(key, []).append(listing)

        return [self._cluster_point(members) for members in groups.values()]

    def _cluster_point(self, members: List[PropertySummary]) -> ClusterPoint:
        prices = [m.price for m in members]
        return ClusterPoint(
            latitude=sum(m.latitude for m in members) / len(members),
            longitude=sum(m.longitude for m in members) / len(members),
            count=len(members),
            avg_price=sum(prices) / len(prices),
            min_price=min(prices),
            max_price=max(prices),
            member_ids=[m.id for m in members],
        )

    def distance_between(self, origin: Point, destination: Point, precise: bool = False) -> DistanceResult:
        validate_point(origin, "origin")
        validate_point(destination, "destination")
        distance = geodesic_km(origin, destination) if precise else haversine_km(origin, destination)
        return DistanceResult(
            origin=GeoPoint(lat=origin.lat, lng=origin.lng),
            destination=GeoPoint(lat=destination.lat, lng=destination.lng),
            distance_km=distance,
            method="geodesic" if precise else "haversine",
        )

    async def search_along_route(self, waypoints: List[Point],
                                 buffer_km: Optional[float] = None) -> RouteSearchResult:
        """
        Listings within ``buffer_km`` of any waypoint.

        Distance is measured to each waypoint, not to the polyline between
        them. Results keep first-seen order across waypoints.
        """
        if len(waypoints) < 2:
            raise ValidationError("A route needs at least 2 waypoints", field="waypoints")
        for index, point in enumerate(waypoints):
            validate_point(point, f"waypoints[{index}]")
        buffer_km = settings.ROUTE_DEFAULT_BUFFER_KM if buffer_km is None else buffer_km
        validate_radius(buffer_km, settings.MAX_RADIUS_KM, "buffer_km")

        tree = published_tree()
        per_waypoint = await asyncio.gather(*[
            self._fetch_all(
                "find_within_radius",
                lambda skip, take, point=point: self.store.find_within_radius(
                    tree, point, buffer_km * 1000, skip, take
                ),
                tree,
                settings.ROUTE_PAGE_SIZE,
                waypoint=index,
            )
            for index, point in enumerate(waypoints)
        ])

        seen = set()
        items = []
        for matches in per_waypoint:
            for listing, distance_km in matches:
                if listing.id in seen:
                    continue
                seen.add(listing.id)
                items.append(with_price_per_area(listing).model_copy(update={"distance_km": distance_km}))

        return RouteSearchResult(items=items, total=len(items), waypoint_count=len(waypoints), buffer_km=buffer_km)

    async def statistics(self) -> GeoStatistics:
        tree = published_tree()
        return await call_store("geo_statistics", self.store.geo_statistics(tree), tree)

    async def _fetch_all(self, operation: str, fetch: Callable[[int, int], Awaitable[list]],
                         tree: PredicateTree, page_size: int, **context) -> list:
        """Read a store query page by page until a short page comes back"""
        results = []
        skip = 0
        while True:
            page = await call_store(operation, fetch(skip, page_size), tree, skip=skip, **context)
            results.extend(page)
            if len(page) < page_size:
                return results
            skip += page_size

    def _validate_page(self, page: int, limit: int, max_limit: int):
        if page < 1:
            raise ValidationError("Page must be at least 1", field="page")
        if not 1 <= limit <= max_limit:
            raise ValidationError(f"Limit must be between 1 and {max_limit}", field="limit")
