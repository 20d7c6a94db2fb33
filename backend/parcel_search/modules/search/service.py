import asyncio
import math
from typing import List, Optional, Tuple
from parcel_search.core.exceptions import ValidationError
from parcel_search.models.property import ListingStatus, LocationLevel
from parcel_search.models.search import (
    RelaxationSuggestion, SearchCriteria, SearchFilters, SearchResult
)
from parcel_search.modules.search.compiler import CompiledQuery, FilterCompiler
from parcel_search.modules.search.executor import QueryExecutor
from parcel_search.modules.search.predicates import Equals, ListingField
from parcel_search.modules.stores.base import FeatureStore, LocationStore, call_store
import logging

logger = logging.getLogger(__name__)

LOCATION_FIELDS = {
    LocationLevel.REGION: "region_id",
    LocationLevel.DISTRICT: "district_id",
    LocationLevel.SUB_DISTRICT: "sub_district_id",
}

PRICE_RELAXATION = 0.2


class SearchService:
    """Service for handling property search operations"""

    def __init__(self, compiler: FilterCompiler, executor: QueryExecutor,
                 feature_store: FeatureStore, location_store: LocationStore):
        self.compiler = compiler
        self.executor = executor
        self.feature_store = feature_store
        self.location_store = location_store

    async def compile(self, filters: SearchFilters, privileged: bool = False, **kwargs) -> CompiledQuery:
        """Validate feature ids, then compile"""
        if filters.feature_ids:
            missing = await call_store("missing_feature_ids", self.feature_store.missing_ids(filters.feature_ids))
            if missing:
                raise ValidationError(
                    f"Unknown feature ids: {', '.join(missing)}",
                    field="feature_ids",
                    details={"missing": missing},
                )
        return await self.compiler.compile(filters, privileged=privileged, **kwargs)

    async def search(self, criteria: SearchCriteria, suggest: bool = False,
                     include_available: bool = True) -> SearchResult:
        """
        Public listing search.

        With ``suggest`` and zero matches, relaxed variants of the criteria are
        re-run and those that find anything are attached as suggestions.
        """
        compiled = await self.compile(criteria)
        result = await self._run(compiled, criteria, include_available)

        if suggest and result.total == 0:
            result.suggestions = await self.relaxation_suggestions(criteria)
        return result

    async def search_owner_inventory(self, owner_id: str, criteria: SearchCriteria) -> SearchResult:
        """Owner's own listings in every status unless the criteria pick one"""
        compiled = await self.compile(criteria, privileged=True, base_status=tuple(ListingStatus))
        compiled.tree = compiled.tree.with_node(Equals(ListingField.OWNER, owner_id))
        return await self._run(compiled, criteria, include_available=False)

    async def _run(self, compiled: CompiledQuery, criteria: SearchCriteria,
                   include_available: bool) -> SearchResult:
        result = await self.executor.execute(
            compiled.tree,
            compiled.post_filters,
            criteria.page,
            criteria.limit,
            criteria.sort_by,
            criteria.sort_order,
            include_available=include_available,
        )
        result.warnings = compiled.warnings + result.warnings
        return result

    async def relaxation_suggestions(self, criteria: SearchCriteria) -> List[RelaxationSuggestion]:
        """Failures while building or counting a candidate only drop that candidate"""
        candidates = []
        try:
            candidates.extend(self._price_relaxations(criteria))
        except Exception as e:
            logger.warning(f"Relaxation suggestion 'price' failed: {e}")
        try:
            candidates.extend(await self._location_relaxations(criteria))
        except Exception as e:
            logger.warning(f"Relaxation suggestion 'location' failed: {e}")
        if not candidates:
            return []

        outcomes = await asyncio.gather(
            *[self._count_relaxed(criteria, filters) for _, _, filters in candidates],
            return_exceptions=True,
        )

        suggestions = []
        for (kind, description, filters), outcome in zip(candidates, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"Relaxation suggestion '{kind}' failed: {outcome}")
                continue
            if outcome > 0:
                suggestions.append(RelaxationSuggestion(
                    kind=kind, description=description, filters=filters, result_count=outcome
                ))
        return suggestions

    async def _count_relaxed(self, criteria: SearchCriteria, filters: SearchFilters) -> int:
        relaxed = SearchCriteria.from_filters(
            filters, page=1, limit=criteria.limit, sort_by=criteria.sort_by, sort_order=criteria.sort_order
        )
        compiled = await self.compile(relaxed)
        result = await self._run(compiled, relaxed, include_available=False)
        return result.total

    def _price_relaxations(self, criteria: SearchCriteria) -> List[Tuple[str, str, SearchFilters]]:
        if criteria.min_price is None and criteria.max_price is None:
            return []

        changes = {}
        if criteria.min_price is not None:
            changes["min_price"] = math.floor(criteria.min_price * (1 - PRICE_RELAXATION))
        if criteria.max_price is not None:
            changes["max_price"] = math.ceil(criteria.max_price * (1 + PRICE_RELAXATION))

        filters = criteria.to_filters().model_copy(update=changes)
        return [("price", f"Widen price range to {changes.get('min_price', '-')} - {changes.get('max_price', '-')}",
                 filters)]

    async def _location_relaxations(self, criteria: SearchCriteria) -> List[Tuple[str, str, SearchFilters]]:
        location_id = (criteria.sub_district_id or criteria.district_id
                       or criteria.region_id or criteria.location_id)
        if not location_id:
            return []

        ancestors = await call_store("location_ancestors", self.location_store.get_ancestors(location_id))
        if not ancestors:
            return []
        parent = ancestors[0]

        changes = {"region_id": None, "district_id": None, "sub_district_id": None, "location_id": None}
        changes[LOCATION_FIELDS[parent.level]] = parent.id
        filters = criteria.to_filters().model_copy(update=changes)
        return [("location", f"Search all of {parent.name}", filters)]
