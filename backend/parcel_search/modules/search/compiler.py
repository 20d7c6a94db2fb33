from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union
from parcel_search.core.exceptions import NotFoundError, ValidationError
from parcel_search.models.property import ListingStatus
from parcel_search.models.search import FeatureCombinator, SearchFilters
from parcel_search.core.config import settings
from parcel_search.modules.geospatial.coordinates import BoundingBox, Point, validate_box, validate_point, validate_radius
from parcel_search.modules.stores.base import LocationStore
from parcel_search.modules.search.predicates import (
    AllOf, BooleanFlag, Equals, GeoBox, GeoRadius, ListingField, MembershipMode,
    PostFilter, Predicate, PredicateTree, PricePerAreaFilter, Range, SetMembership, TextSearch
)
import logging

logger = logging.getLogger(__name__)

# (field, criteria min attribute, criteria max attribute)
RANGE_FIELDS = [
    (ListingField.PRICE, "min_price", "max_price"),
    (ListingField.AREA, "min_area", "max_area"),
    (ListingField.ROOMS, "min_rooms", "max_rooms"),
    (ListingField.BATHROOMS, "min_bathrooms", "max_bathrooms"),
    (ListingField.FLOOR, "min_floor", "max_floor"),
    (ListingField.BUILD_YEAR, "min_build_year", "max_build_year"),
]

BOOLEAN_FIELDS = [
    (ListingField.HAS_BALCONY, "has_balcony"),
    (ListingField.HAS_PARKING, "has_parking"),
    (ListingField.IS_FURNISHED, "is_furnished"),
]


@dataclass
class CompiledQuery:
    tree: PredicateTree
    post_filters: List[PostFilter] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class FilterCompiler:
    """Compiles search filters into a predicate tree plus post-filters"""

    def __init__(self, location_store: LocationStore):
        self.location_store = location_store

    async def compile(self, criteria: SearchFilters,
                      base_status: Union[ListingStatus, Sequence[ListingStatus]] = ListingStatus.PUBLISHED,
                      privileged: bool = False) -> CompiledQuery:
        """
        Build the predicate tree for ``criteria``.

        Predicates are ordered cheapest first: status, category and location,
        boolean flags, ranges, features, geo, then text. ``base_status`` may be
        a collection when a privileged caller wants every lifecycle status.
        """
        if criteria.radius is not None and criteria.bounding_box is not None:
            raise ValidationError("Radius and bounding box filters are mutually exclusive", field="radius")

        nodes: List[Predicate] = []
        warnings: List[str] = []

        self._add_status(nodes, warnings, criteria, base_status, privileged)
        if criteria.category is not None:
            nodes.append(Equals(ListingField.CATEGORY, criteria.category.value))
        await self._add_location(nodes, criteria)
        self._add_boolean_flags(nodes, criteria)
        self._add_ranges(nodes, warnings, criteria)
        self._add_features(nodes, criteria)
        self._add_geo(nodes, criteria)
        self._add_text(nodes, criteria)

        post_filters = self._post_filters(warnings, criteria)

        for warning in warnings:
            logger.warning(f"Filter compiler: {warning}")

        return CompiledQuery(tree=PredicateTree(tuple(nodes)), post_filters=post_filters, warnings=warnings)

    def _add_status(self, nodes: List[Predicate], warnings: List[str], criteria: SearchFilters,
                    base_status, privileged: bool):
        if criteria.status is not None:
            if privileged:
                nodes.append(Equals(ListingField.STATUS, criteria.status.value))
                return
            warnings.append(f"Status override '{criteria.status.value}' ignored for public search")

        if isinstance(base_status, ListingStatus):
            nodes.append(Equals(ListingField.STATUS, base_status.value))
        else:
            nodes.append(SetMembership(ListingField.STATUS, tuple(s.value for s in base_status)))

    async def _add_location(self, nodes: List[Predicate], criteria: SearchFilters):
        """Most specific level wins; districts and regions include everything below them"""
        if criteria.sub_district_id:
            await self._require_location(criteria.sub_district_id)
            nodes.append(Equals(ListingField.LOCATION, criteria.sub_district_id))
        elif criteria.district_id:
            nodes.append(await self._location_subtree(criteria.district_id))
        elif criteria.region_id:
            nodes.append(await self._location_subtree(criteria.region_id))

        if criteria.location_id:
            nodes.append(Equals(ListingField.LOCATION, criteria.location_id))

    async def _require_location(self, location_id: str):
        location = await self.location_store.get_by_id(location_id)
        if location is None:
            raise NotFoundError(f"Location {location_id} not found", {"location_id": location_id})
        return location

    async def _location_subtree(self, location_id: str) -> SetMembership:
        await self._require_location(location_id)
        descendants = await self.location_store.get_descendants(location_id)
        ids = [location_id] + [d.id for d in descendants if d.id != location_id]
        return SetMembership(ListingField.LOCATION, tuple(ids), MembershipMode.ANY)

    def _add_boolean_flags(self, nodes: List[Predicate], criteria: SearchFilters):
        for listing_field, attr in BOOLEAN_FIELDS:
            value = getattr(criteria, attr)
            if value is not None:
                nodes.append(BooleanFlag(listing_field, value))

    def _add_ranges(self, nodes: List[Predicate], warnings: List[str], criteria: SearchFilters):
        for listing_field, min_attr, max_attr in RANGE_FIELDS:
            predicate = self._range(warnings, listing_field.value, getattr(criteria, min_attr),
                                    getattr(criteria, max_attr))
            if predicate is not None:
                nodes.append(Range(listing_field, *predicate))

    def _range(self, warnings: List[str], name: str, low, high) -> Optional[tuple]:
        if low is None and high is None:
            return None
        if low is not None and high is not None and low > high:
            warnings.append(f"Dropped inverted {name} range: min {low} > max {high}")
            return None
        return low, high

    def _add_features(self, nodes: List[Predicate], criteria: SearchFilters):
        if not criteria.feature_ids:
            return

        if criteria.feature_combinator == FeatureCombinator.ALL:
            # One membership check per id; extra features on a listing still match
            nodes.append(AllOf(tuple(
                SetMembership(ListingField.FEATURES, (feature_id,), MembershipMode.ANY)
                for feature_id in criteria.feature_ids
            )))
        else:
            nodes.append(SetMembership(ListingField.FEATURES, tuple(criteria.feature_ids), MembershipMode.ANY))

    def _add_geo(self, nodes: List[Predicate], criteria: SearchFilters):
        if criteria.radius is not None:
            center = Point(criteria.radius.center.lat, criteria.radius.center.lng)
            validate_point(center, "radius.center")
            validate_radius(criteria.radius.radius_km, settings.MAX_RADIUS_KM, "radius.radius_km")
            nodes.append(GeoRadius(center, criteria.radius.radius_km))
        elif criteria.bounding_box is not None:
            ne, sw = criteria.bounding_box.north_east, criteria.bounding_box.south_west
            box = BoundingBox(Point(ne.lat, ne.lng), Point(sw.lat, sw.lng))
            validate_box(box)
            nodes.append(GeoBox(box.north_east, box.south_west))

    def _add_text(self, nodes: List[Predicate], criteria: SearchFilters):
        term = (criteria.term or "").strip()
        if term:
            nodes.append(TextSearch(term))

    def _post_filters(self, warnings: List[str], criteria: SearchFilters) -> List[PostFilter]:
        bounds = self._range(warnings, "price_per_area", criteria.min_price_per_area, criteria.max_price_per_area)
        if bounds is None:
            return []
        return [PricePerAreaFilter(*bounds)]
