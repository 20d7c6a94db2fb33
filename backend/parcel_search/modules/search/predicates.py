"""
Store-independent predicates and the trees compiled from search criteria.

A PredicateTree is a conjunction of its nodes. Feature filters with the ALL
combinator become an ``AllOf`` of single-id membership checks so a listing
with extra features still matches. Post-filters run in the executor against
fetched rows because no store can push them down.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union
from parcel_search.modules.geospatial.coordinates import Point
from parcel_search.models.property import PropertySummary


class ListingField(str, Enum):
    STATUS = "status"
    CATEGORY = "category"
    OWNER = "owner_id"
    LOCATION = "location_id"
    PRICE = "price"
    AREA = "area"
    ROOMS = "rooms"
    BATHROOMS = "bathrooms"
    FLOOR = "floor"
    BUILD_YEAR = "build_year"
    HAS_BALCONY = "has_balcony"
    HAS_PARKING = "has_parking"
    IS_FURNISHED = "is_furnished"
    FEATURES = "features"
    TITLE = "title"
    DESCRIPTION = "description"
    ADDRESS = "address"


class MembershipMode(str, Enum):
    ANY = "ANY"
    ALL = "ALL"


@dataclass(frozen=True)
class Range:
    field: ListingField
    min: Optional[float] = None
    max: Optional[float] = None
    kind: ClassVar[str] = "range"

    def describe(self) -> List[Dict[str, Any]]:
        described = []
        if self.min is not None:
            described.append({"field": self.field.value, "operator": "gte", "value": self.min})
        if self.max is not None:
            described.append({"field": self.field.value, "operator": "lte", "value": self.max})
        return described


@dataclass(frozen=True)
class Equals:
    field: ListingField
    value: Any
    kind: ClassVar[str] = "equals"

    def describe(self) -> List[Dict[str, Any]]:
        return [{"field": self.field.value, "operator": "eq", "value": self.value}]


@dataclass(frozen=True)
class BooleanFlag:
    field: ListingField
    expected: bool
    kind: ClassVar[str] = "boolean"

    def describe(self) -> List[Dict[str, Any]]:
        return [{"field": self.field.value, "operator": "is", "value": self.expected}]


@dataclass(frozen=True)
class SetMembership:
    field: ListingField
    values: Tuple[Any, ...]
    mode: MembershipMode = MembershipMode.ANY
    kind: ClassVar[str] = "membership"

    def describe(self) -> List[Dict[str, Any]]:
        operator = "in" if self.mode == MembershipMode.ANY else "contains_all"
        return [{"field": self.field.value, "operator": operator, "value": list(self.values)}]


@dataclass(frozen=True)
class GeoRadius:
    center: Point
    radius_km: float
    kind: ClassVar[str] = "geo_radius"

    def describe(self) -> List[Dict[str, Any]]:
        return [{
            "field": "coordinates",
            "operator": "within_km",
            "value": {"lat": self.center.lat, "lng": self.center.lng, "radius_km": self.radius_km},
        }]


@dataclass(frozen=True)
class GeoBox:
    north_east: Point
    south_west: Point
    kind: ClassVar[str] = "geo_box"

    def describe(self) -> List[Dict[str, Any]]:
        return [{
            "field": "coordinates",
            "operator": "within_box",
            "value": {
                "north_east": {"lat": self.north_east.lat, "lng": self.north_east.lng},
                "south_west": {"lat": self.south_west.lat, "lng": self.south_west.lng},
            },
        }]


@dataclass(frozen=True)
class TextSearch:
    term: str
    fields: Tuple[ListingField, ...] = (ListingField.TITLE, ListingField.DESCRIPTION, ListingField.ADDRESS)
    kind: ClassVar[str] = "text"

    def describe(self) -> List[Dict[str, Any]]:
        return [{"field": "text", "operator": "contains", "value": self.term}]


@dataclass(frozen=True)
class AllOf:
    children: Tuple["Predicate", ...]
    kind: ClassVar[str] = "all_of"

    def describe(self) -> List[Dict[str, Any]]:
        if all(isinstance(child, SetMembership) and len(child.values) == 1 for child in self.children):
            field_name = self.children[0].field.value if self.children else ListingField.FEATURES.value
            return [{
                "field": field_name,
                "operator": "contains_all",
                "value": [child.values[0] for child in self.children],
            }]
        return [entry for child in self.children for entry in child.describe()]


Predicate = Union[Range, Equals, BooleanFlag, SetMembership, GeoRadius, GeoBox, TextSearch, AllOf]


@dataclass(frozen=True)
class PredicateTree:
    """Conjunction of predicates, kept in compile order"""
    nodes: Tuple[Predicate, ...] = field(default_factory=tuple)

    def __iter__(self):
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def kinds(self) -> List[str]:
        return [node.kind for node in self.nodes]

    def find(self, node_type) -> List[Predicate]:
        return [node for node in self.nodes if isinstance(node, node_type)]

    def with_node(self, node: Predicate) -> "PredicateTree":
        return replace(self, nodes=self.nodes + (node,))

    def without(self, node_type) -> "PredicateTree":
        return replace(self, nodes=tuple(n for n in self.nodes if not isinstance(n, node_type)))

    def describe(self) -> List[Dict[str, Any]]:
        return [entry for node in self.nodes for entry in node.describe()]


def price_per_area(price: Optional[float], area: Optional[float]) -> Optional[float]:
    if price is None or area is None or area <= 0:
        return None
    return price / area


@dataclass(frozen=True)
class PricePerAreaFilter:
    """Post-filter on the derived price/area ratio; listings without a positive area never match"""
    min: Optional[float] = None
    max: Optional[float] = None
    kind: ClassVar[str] = "price_per_area"

    def apply(self, listing: PropertySummary) -> bool:
        ratio = price_per_area(listing.price, listing.area)
        if ratio is None:
            return False
        if self.min is not None and ratio < self.min:
            return False
        if self.max is not None and ratio > self.max:
            return False
        return True

    def describe(self) -> List[Dict[str, Any]]:
        described = []
        if self.min is not None:
            described.append({"field": "price_per_area", "operator": "gte", "value": self.min})
        if self.max is not None:
            described.append({"field": "price_per_area", "operator": "lte", "value": self.max})
        return described


PostFilter = PricePerAreaFilter
