import asyncio
import math
import time
from typing import List, Optional, Sequence
from parcel_search.models.property import PropertySummary
from parcel_search.models.search import (
    AppliedFilter, Pagination, SearchResult, SortField, SortOrder
)
from parcel_search.modules.search.predicates import PostFilter, PredicateTree, price_per_area
from parcel_search.modules.stores.base import PropertyStore, SortKey, call_store
import logging

logger = logging.getLogger(__name__)


def build_pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit) if limit else 0)


def with_price_per_area(listing: PropertySummary) -> PropertySummary:
    ratio = price_per_area(listing.price, listing.area)
    return listing.model_copy(update={"price_per_area": round(ratio, 2) if ratio is not None else None})


class QueryExecutor:
    """Runs compiled predicate trees against a property store"""

    def __init__(self, store: PropertyStore, timeout: Optional[float] = None):
        self.store = store
        self.timeout = timeout

    def resolve_sort(self, sort_by: SortField, sort_order: SortOrder):
        """Return (sort keys, effective field, effective order, fell back)"""
        fallback = sort_by not in self.store.sortable_fields
        if fallback:
            logger.info(f"Sort field {sort_by.value} not supported by store, using created_at desc")
            sort_by, sort_order = SortField.CREATED_AT, SortOrder.DESC

        keys = [SortKey(sort_by, sort_order == SortOrder.DESC)]
        if sort_by != SortField.CREATED_AT:
            keys.append(SortKey(SortField.CREATED_AT, True))
        return keys, sort_by, sort_order, fallback

    async def execute(self, tree: PredicateTree, post_filters: Sequence[PostFilter],
                      page: int, limit: int,
                      sort_by: SortField = SortField.CREATED_AT,
                      sort_order: SortOrder = SortOrder.DESC,
                      include_available: bool = False) -> SearchResult:
        """
        Fetch one page and the total match count concurrently.

        When post-filters are present they run against the fetched page only
        and ``total`` becomes the filtered page size.
        """
        start_time = time.perf_counter()
        keys, effective_by, effective_order, fallback = self.resolve_sort(sort_by, sort_order)
        skip = (page - 1) * limit

        lookups = [
            call_store("count", self.store.count(tree), tree, self.timeout),
            call_store("find_many", self.store.find_many(tree, keys, skip, limit), tree, self.timeout),
        ]
        if include_available:
            lookups.append(
                call_store("available_filters", self.store.available_filters(tree), tree, self.timeout)
            )
        results = await asyncio.gather(*lookups)
        total, items = results[0], results[1]
        available = results[2] if include_available else None

        items = [with_price_per_area(item) for item in items]
        if post_filters:
            items = [item for item in items if all(f.apply(item) for f in post_filters)]
            total = len(items)

        applied = tree.describe() + [entry for f in post_filters for entry in f.describe()]
        warnings = []
        if fallback:
            warnings.append(f"Sorting by {sort_by.value} is not supported; sorted by created_at desc")

        return SearchResult(
            items=items,
            total=total,
            pagination=build_pagination(page, limit, total),
            effective_sort_by=effective_by,
            effective_sort_order=effective_order,
            sort_fallback=fallback,
            applied_filters=[AppliedFilter(**entry) for entry in applied],
            available_filters=available,
            warnings=warnings,
            search_time_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )

    async def count(self, tree: PredicateTree) -> int:
        """Store-side count only; post-filters are not applied"""
        return await call_store("count", self.store.count(tree), tree, self.timeout)
