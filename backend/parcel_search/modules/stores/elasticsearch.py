"""
Elasticsearch property store.

Predicate trees become a ``bool`` filter query. Text predicates use
case-insensitive wildcards on ``wildcard`` sub-fields so substring semantics
match the SQL store. Radius distances come from the ``_geo_distance`` sort.
"""
import logging
from typing import Any, Dict, Iterable, List, Sequence, Tuple
from elasticsearch import AsyncElasticsearch, ApiError, ConnectionTimeout, TransportError
from elasticsearch import ConnectionError as ESConnectionError
from elasticsearch.helpers import async_bulk
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential
from parcel_search.core.config import settings
from parcel_search.core.exceptions import InfrastructureError
from parcel_search.models.geospatial import GeoStatistics
from parcel_search.models.property import PropertySummary
from parcel_search.models.search import AvailableFilters, CategoryCount, GeoPoint, SortField
from parcel_search.modules.geospatial.coordinates import Point
from parcel_search.modules.search.predicates import (
    AllOf, BooleanFlag, Equals, GeoBox, GeoRadius, ListingField, MembershipMode,
    Predicate, PredicateTree, Range, SetMembership, TextSearch
)
from .base import PropertyStore, SortKey

logger = logging.getLogger(__name__)

INDEX_MAPPING = {
    "properties": {
        "id": {"type": "keyword"},
        "title": {
            "type": "text",
            "fields": {"raw": {"type": "wildcard"}, "sort": {"type": "keyword"}},
        },
        "description": {"type": "text", "fields": {"raw": {"type": "wildcard"}}},
        "address": {"type": "text", "fields": {"raw": {"type": "wildcard"}}},
        "price": {"type": "double"},
        "currency": {"type": "keyword"},
        "category": {"type": "keyword"},
        "status": {"type": "keyword"},
        "owner_id": {"type": "keyword"},
        "location_id": {"type": "keyword"},
        "location": {"type": "object", "enabled": False},
        "features": {"type": "object", "enabled": False},
        "feature_ids": {"type": "keyword"},
        "image_url": {"type": "keyword", "index": False},
        "coordinates": {"type": "geo_point"},
        "latitude": {"type": "double"},
        "longitude": {"type": "double"},
        "area": {"type": "double"},
        "rooms": {"type": "integer"},
        "bathrooms": {"type": "integer"},
        "floor": {"type": "integer"},
        "build_year": {"type": "integer"},
        "has_balcony": {"type": "boolean"},
        "has_parking": {"type": "boolean"},
        "is_furnished": {"type": "boolean"},
        "created_at": {"type": "date"},
        "updated_at": {"type": "date"},
    }
}

FIELDS = {
    ListingField.FEATURES: "feature_ids",
    ListingField.TITLE: "title.raw",
    ListingField.DESCRIPTION: "description.raw",
    ListingField.ADDRESS: "address.raw",
}

SORT_FIELDS = {
    SortField.PRICE: "price",
    SortField.CREATED_AT: "created_at",
    SortField.UPDATED_AT: "updated_at",
    SortField.TITLE: "title.sort",
    SortField.AREA: "area",
    SortField.ROOMS: "rooms",
    SortField.BUILD_YEAR: "build_year",
}

TRANSIENT_ERRORS = (ESConnectionError, ConnectionTimeout)


def _field(listing_field: ListingField) -> str:
    return FIELDS.get(listing_field, listing_field.value)


def _escape_wildcard(term: str) -> str:
    return term.replace("\\", "\\\\").replace("*", "\\*").replace("?", "\\?")


def to_document(listing: PropertySummary) -> Dict[str, Any]:
    doc = listing.model_dump(mode="json", exclude={"price_per_area", "distance_km"})
    doc["coordinates"] = {"lat": listing.latitude, "lon": listing.longitude}
    doc["feature_ids"] = listing.feature_ids
    doc["location_id"] = listing.location.id if listing.location else None
    return doc


def from_document(source: Dict[str, Any]) -> PropertySummary:
    return PropertySummary.model_validate(source)


class ElasticsearchPropertyStore(PropertyStore):
    sortable_fields = frozenset(SORT_FIELDS)

    def __init__(self, client: AsyncElasticsearch, index_name: str = None):
        self.client = client
        self.index_name = index_name or settings.ELASTICSEARCH_INDEX

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, max=2),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        reraise=True,
    )
    async def _request(self, method: str, **kwargs) -> Dict[str, Any]:
        return await getattr(self.client, method)(index=self.index_name, **kwargs)

    async def _call(self, method: str, **kwargs) -> Dict[str, Any]:
        try:
            return await self._request(method, **kwargs)
        except (ApiError, TransportError) as e:
            logger.error(f"Elasticsearch {method} on {self.index_name} failed: {e}")
            raise InfrastructureError(
                f"Elasticsearch {method} failed: {e}",
                {"operation": method, "index": self.index_name},
            ) from e

    async def find_many(self, tree: PredicateTree, sort: Sequence[SortKey],
                        skip: int, take: int) -> List[PropertySummary]:
        sort_clause = [
            {SORT_FIELDS[key.field]: {"order": "desc" if key.descending else "asc"}}
            for key in sort
        ]
        sort_clause.append({"id": {"order": "asc"}})

        response = await self._call(
            "search", query=self.build_query(tree), sort=sort_clause, from_=skip, size=take
        )
        return [from_document(hit["_source"]) for hit in response["hits"]["hits"]]

    async def count(self, tree: PredicateTree) -> int:
        response = await self._call("count", query=self.build_query(tree))
        return response["count"]

    async def find_within_radius(self, tree: PredicateTree, center: Point, radius_meters: float,
                                 skip: int, take: int) -> List[Tuple[PropertySummary, float]]:
        radius_tree = tree.without(GeoRadius).with_node(GeoRadius(center, radius_meters / 1000))
        sort_clause = [
            {"_geo_distance": {
                "coordinates": {"lat": center.lat, "lon": center.lng},
                "order": "asc",
                "unit": "km",
                "distance_type": "arc",
            }},
            {"created_at": {"order": "desc"}},
            {"id": {"order": "asc"}},
        ]

        response = await self._call(
            "search", query=self.build_query(radius_tree), sort=sort_clause, from_=skip, size=take
        )
        results = []
        for hit in response["hits"]["hits"]:
            distance_km = float(hit["sort"][0])
            listing = from_document(hit["_source"]).model_copy(update={"distance_km": distance_km})
            results.append((listing, distance_km))
        return results

    async def available_filters(self, tree: PredicateTree) -> AvailableFilters:
        response = await self._call(
            "search",
            query=self.build_query(tree),
            size=0,
            aggs={
                "min_price": {"min": {"field": "price"}},
                "max_price": {"max": {"field": "price"}},
                "categories": {"terms": {"field": "category", "size": 50, "order": {"_key": "asc"}}},
                "locations": {"terms": {"field": "location_id", "size": 1000, "order": {"_key": "asc"}}},
            },
        )
        aggs = response["aggregations"]
        return AvailableFilters(
            min_price=aggs["min_price"]["value"],
            max_price=aggs["max_price"]["value"],
            categories=[
                CategoryCount(category=b["key"], count=b["doc_count"]) for b in aggs["categories"]["buckets"]
            ],
            location_ids=[b["key"] for b in aggs["locations"]["buckets"]],
        )

    async def geo_statistics(self, tree: PredicateTree) -> GeoStatistics:
        response = await self._call(
            "search",
            query=self.build_query(tree),
            size=0,
            aggs={
                "lat": {"stats": {"field": "latitude"}},
                "lng": {"stats": {"field": "longitude"}},
            },
        )
        lat, lng = response["aggregations"]["lat"], response["aggregations"]["lng"]
        total = lat["count"]
        return GeoStatistics(
            total=total,
            min_latitude=lat["min"],
            max_latitude=lat["max"],
            min_longitude=lng["min"],
            max_longitude=lng["max"],
            center=GeoPoint(lat=lat["avg"], lng=lng["avg"]) if total else None,
        )

    def build_query(self, tree: PredicateTree) -> Dict[str, Any]:
        clauses = [self._clause(node) for node in tree]
        if not clauses:
            return {"match_all": {}}
        return {"bool": {"filter": clauses}}

    def _clause(self, node: Predicate) -> Dict[str, Any]:
        if isinstance(node, AllOf):
            return {"bool": {"filter": [self._clause(child) for child in node.children]}}

        if isinstance(node, Equals):
            return {"term": {_field(node.field): node.value}}

        if isinstance(node, BooleanFlag):
            return {"term": {_field(node.field): node.expected}}

        if isinstance(node, Range):
            bounds = {}
            if node.min is not None:
                bounds["gte"] = node.min
            if node.max is not None:
                bounds["lte"] = node.max
            return {"range": {_field(node.field): bounds}}

        if isinstance(node, SetMembership):
            if node.mode == MembershipMode.ALL:
                return {"bool": {"filter": [{"term": {_field(node.field): v}} for v in node.values]}}
            return {"terms": {_field(node.field): list(node.values)}}

        if isinstance(node, GeoRadius):
            return {"geo_distance": {
                "distance": f"{node.radius_km}km",
                "distance_type": "arc",
                "coordinates": {"lat": node.center.lat, "lon": node.center.lng},
            }}

        if isinstance(node, GeoBox):
            return {"geo_bounding_box": {"coordinates": {
                "top_right": {"lat": node.north_east.lat, "lon": node.north_east.lng},
                "bottom_left": {"lat": node.south_west.lat, "lon": node.south_west.lng},
            }}}

        if isinstance(node, TextSearch):
            pattern = f"*{_escape_wildcard(node.term)}*"
            return {"bool": {
                "should": [
                    {"wildcard": {_field(f): {"value": pattern, "case_insensitive": True}}}
                    for f in node.fields
                ],
                "minimum_should_match": 1,
            }}

        raise ValueError(f"Unsupported predicate: {node!r}")


class PropertyIndexer:
    """Maintains the listings index the Elasticsearch store reads from"""

    def __init__(self, client: AsyncElasticsearch, index_name: str = None):
        self.client = client
        self.index_name = index_name or settings.ELASTICSEARCH_INDEX

    async def ensure_index(self) -> bool:
        """Create the index with its mapping if missing; True when created"""
        if await self.client.indices.exists(index=self.index_name):
            return False
        await self.client.indices.create(index=self.index_name, mappings=INDEX_MAPPING)
        logger.info(f"Created Elasticsearch index {self.index_name}")
        return True

    async def bulk_index(self, listings: Iterable[PropertySummary]) -> Dict[str, int]:
        actions = [
            {"_index": self.index_name, "_id": listing.id, "_source": to_document(listing)}
            for listing in listings
        ]
        if not actions:
            return {"indexed": 0, "failed": 0}

        success_count, errors = await async_bulk(self.client, actions, chunk_size=500, raise_on_error=False)
        failed_count = len(errors) if errors else 0
        if failed_count:
            logger.error(f"Failed to index {failed_count} listings into {self.index_name}")
        logger.info(f"Bulk indexed {success_count} listings, {failed_count} failed")
        return {"indexed": success_count, "failed": failed_count}
