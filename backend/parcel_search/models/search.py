from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, List, Any
from enum import Enum
from parcel_search.models.property import PropertyCategory, ListingStatus, PropertySummary


class FeatureCombinator(str, Enum):
    ALL = "ALL"
    ANY = "ANY"


class SortField(str, Enum):
    PRICE = "price"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    TITLE = "title"
    AREA = "area"
    ROOMS = "rooms"
    BUILD_YEAR = "build_year"
    PRICE_PER_AREA = "price_per_area"
    DISTANCE = "distance"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class GeoPoint(BaseModel):
    """Latitude/longitude pair; range checks happen in the geospatial layer"""
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class RadiusFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    center: GeoPoint
    radius_km: float


class BoundingBoxFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    north_east: GeoPoint
    south_west: GeoPoint


class SearchFilters(BaseModel):
    """
    Every optional search condition, without pagination or sort.

    Inverted min/max pairs are accepted here; the filter compiler drops them
    with a warning. Radius and bounding box are mutually exclusive.
    """
    model_config = ConfigDict(frozen=True)

    term: Optional[str] = Field(None, max_length=200)

    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    min_area: Optional[float] = Field(None, ge=0)
    max_area: Optional[float] = Field(None, ge=0)
    min_rooms: Optional[int] = Field(None, ge=0)
    max_rooms: Optional[int] = Field(None, ge=0)
    min_bathrooms: Optional[int] = Field(None, ge=0)
    max_bathrooms: Optional[int] = Field(None, ge=0)
    min_floor: Optional[int] = None
    max_floor: Optional[int] = None
    min_build_year: Optional[int] = Field(None, ge=1900, le=2030)
    max_build_year: Optional[int] = Field(None, ge=1900, le=2030)
    min_price_per_area: Optional[float] = Field(None, ge=0)
    max_price_per_area: Optional[float] = Field(None, ge=0)

    category: Optional[PropertyCategory] = None
    status: Optional[ListingStatus] = None

    # Location hierarchy; the most specific level given wins
    region_id: Optional[str] = None
    district_id: Optional[str] = None
    sub_district_id: Optional[str] = None
    location_id: Optional[str] = None

    feature_ids: Optional[List[str]] = None
    feature_combinator: FeatureCombinator = FeatureCombinator.ANY

    radius: Optional[RadiusFilter] = None
    bounding_box: Optional[BoundingBoxFilter] = None

    has_balcony: Optional[bool] = None
    has_parking: Optional[bool] = None
    is_furnished: Optional[bool] = None

    @field_validator("feature_ids")
    @classmethod
    def dedupe_feature_ids(cls, v):
        if v is None:
            return v
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def single_geo_filter(self):
        if self.radius is not None and self.bounding_box is not None:
            raise ValueError("Radius and bounding box filters are mutually exclusive")
        return self


class SearchFiltersPatch(SearchFilters):
    """
    Partial filters for merge updates.

    Only fields present in ``model_fields_set`` overwrite stored values; an
    explicit null clears the stored value.
    """
    feature_combinator: Optional[FeatureCombinator] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class SearchCriteria(SearchFilters):
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=200)
    sort_by: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC

    def to_filters(self) -> SearchFilters:
        return SearchFilters.model_validate(
            self.model_dump(include=set(SearchFilters.model_fields))
        )

    @classmethod
    def from_filters(cls, filters: SearchFilters, **pagination: Any) -> "SearchCriteria":
        return cls.model_validate({**filters.model_dump(), **pagination})


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class AppliedFilter(BaseModel):
    field: str
    operator: str
    value: Any


class CategoryCount(BaseModel):
    category: str
    count: int


class AvailableFilters(BaseModel):
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    categories: List[CategoryCount] = []
    location_ids: List[str] = []


class RelaxationSuggestion(BaseModel):
    kind: str  # "price" or "location"
    description: str
    filters: SearchFilters
    result_count: int


class SearchResult(BaseModel):
    items: List[PropertySummary]
    total: int
    pagination: Pagination
    effective_sort_by: SortField
    effective_sort_order: SortOrder
    sort_fallback: bool = False
    applied_filters: List[AppliedFilter] = []
    available_filters: Optional[AvailableFilters] = None
    warnings: List[str] = []
    suggestions: List[RelaxationSuggestion] = []
    search_time_ms: Optional[float] = None
