# Pydantic models for API contracts

from .property import (
    ListingStatus, PropertyCategory, LocationLevel,
    LocationSummary, FeatureSummary, PropertySummary
)
from .search import (
    # Enums
    FeatureCombinator, SortField, SortOrder,

    # Filter models
    GeoPoint, RadiusFilter, BoundingBoxFilter, SearchFilters, SearchFiltersPatch, SearchCriteria,

    # Response models
    Pagination, AppliedFilter, CategoryCount, AvailableFilters, RelaxationSuggestion, SearchResult
)
from .geospatial import ClusterPoint, DistanceResult, RouteSearchRequest, RouteSearchResult, GeoStatistics
from .saved_search import SavedSearch, SavedSearchCreate, SavedSearchUpdate, SavedSearchMatchCount

__all__ = [
    # Property models
    "ListingStatus", "PropertyCategory", "LocationLevel",
    "LocationSummary", "FeatureSummary", "PropertySummary",

    # Search enums
    "FeatureCombinator", "SortField", "SortOrder",

    # Filter models
    "GeoPoint", "RadiusFilter", "BoundingBoxFilter", "SearchFilters", "SearchFiltersPatch",
    "SearchCriteria",

    # Response models
    "Pagination", "AppliedFilter", "CategoryCount", "AvailableFilters", "RelaxationSuggestion",
    "SearchResult",

    # Geospatial models
    "ClusterPoint", "DistanceResult", "RouteSearchRequest", "RouteSearchResult", "GeoStatistics",

    # Saved searches
    "SavedSearch", "SavedSearchCreate", "SavedSearchUpdate", "SavedSearchMatchCount",
]
