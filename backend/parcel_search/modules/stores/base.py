"""
Ports the search core reads from and writes to.

Concrete stores live beside this module: SQLAlchemy (sql.py) and
Elasticsearch (elasticsearch.py, property reads only).
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Dict, FrozenSet, List, Optional, Sequence, Tuple
from parcel_search.core.config import settings
from parcel_search.core.exceptions import InfrastructureError, ParcelSearchError
from parcel_search.models.property import LocationLevel, PropertySummary
from parcel_search.models.search import AvailableFilters, SortField
from parcel_search.models.geospatial import GeoStatistics
from parcel_search.modules.geospatial.coordinates import Point
from parcel_search.modules.search.predicates import PredicateTree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SortKey:
    field: SortField
    descending: bool = True


@dataclass(frozen=True)
class LocationNode:
    id: str
    name: str
    level: LocationLevel
    parent_id: Optional[str] = None


@dataclass
class SavedSearchRecord:
    id: str
    user_id: str
    name: str
    criteria: Dict[str, Any]
    is_active: bool
    created_at: datetime
    updated_at: datetime


class PropertyStore(ABC):
    """Queryable listing store. Every ordering ends with ``id`` ascending so pages are stable."""

    sortable_fields: FrozenSet[SortField] = frozenset()

    @abstractmethod
    async def find_many(self, tree: PredicateTree, sort: Sequence[SortKey],
                        skip: int, take: int) -> List[PropertySummary]:
        pass

    @abstractmethod
    async def count(self, tree: PredicateTree) -> int:
        pass

    @abstractmethod
    async def find_within_radius(self, tree: PredicateTree, center: Point, radius_meters: float,
                                 skip: int, take: int) -> List[Tuple[PropertySummary, float]]:
        """Listings within the radius, nearest first, ties by newest; distance in km"""

    @abstractmethod
    async def available_filters(self, tree: PredicateTree) -> AvailableFilters:
        pass

    @abstractmethod
    async def geo_statistics(self, tree: PredicateTree) -> GeoStatistics:
        pass


class LocationStore(ABC):
    @abstractmethod
    async def get_by_id(self, location_id: str) -> Optional[LocationNode]:
        pass

    @abstractmethod
    async def get_ancestors(self, location_id: str) -> List[LocationNode]:
        """Parent chain, nearest first"""

    @abstractmethod
    async def get_descendants(self, location_id: str) -> List[LocationNode]:
        """All levels below the location"""


class FeatureStore(ABC):
    @abstractmethod
    async def missing_ids(self, feature_ids: Sequence[str]) -> List[str]:
        pass


class SavedSearchStore(ABC):
    @abstractmethod
    async def create(self, user_id: str, name: str, criteria: Dict[str, Any],
                     is_active: bool) -> SavedSearchRecord:
        pass

    @abstractmethod
    async def get(self, saved_search_id: str) -> Optional[SavedSearchRecord]:
        pass

    @abstractmethod
    async def update(self, saved_search_id: str, **changes: Any) -> SavedSearchRecord:
        pass

    @abstractmethod
    async def delete(self, saved_search_id: str) -> None:
        pass

    @abstractmethod
    async def list_by_user(self, user_id: str) -> List[SavedSearchRecord]:
        pass

    @abstractmethod
    async def find_all_active(self) -> List[SavedSearchRecord]:
        pass


async def call_store(operation: str, awaitable: Awaitable, tree: Optional[PredicateTree] = None,
                     timeout: Optional[float] = None, **context: Any):
    """
    Await a store round-trip under a timeout.

    The timeout only interrupts stores that yield to the event loop; the SQL
    stores are bounded by the PostgreSQL ``statement_timeout`` set on the
    engine. Store failures are logged and re-raised as InfrastructureError carrying
    the operation and predicate kinds; core errors pass through untouched.
    """
    timeout = settings.STORE_TIMEOUT_SECONDS if timeout is None else timeout
    details = {"operation": operation, **context}
    if tree is not None:
        details["predicates"] = tree.kinds()

    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.error(f"Store operation {operation} timed out after {timeout}s")
        raise InfrastructureError(f"{operation} timed out after {timeout}s", details) from e
    except ParcelSearchError:
        raise
    except Exception as e:
        logger.error(f"Store operation {operation} failed: {e}")
        raise InfrastructureError(f"{operation} failed: {e}", details) from e
