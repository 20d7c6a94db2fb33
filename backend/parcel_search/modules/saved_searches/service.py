from typing import Dict, List, Optional
from parcel_search.core.config import settings
from parcel_search.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from parcel_search.models.saved_search import (
    SavedSearch, SavedSearchCreate, SavedSearchMatchCount, SavedSearchUpdate,
    dump_filters, load_filters, merge_filters
)
from parcel_search.models.search import SearchCriteria, SearchFilters, SearchResult
from parcel_search.modules.search.service import SearchService
from parcel_search.modules.stores.base import SavedSearchRecord, SavedSearchStore, call_store
import logging

logger = logging.getLogger(__name__)

# Same message for "missing" and "not yours" so responses do not reveal which ids exist
ACCESS_DENIED = "Saved search not found or not owned by caller"


def to_saved_search(record: SavedSearchRecord) -> SavedSearch:
    return SavedSearch(
        id=record.id,
        user_id=record.user_id,
        name=record.name,
        filters=load_filters(record.criteria),
        is_active=record.is_active,
        schema_version=record.criteria.get("schema_version", 1),
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class SavedSearchManager:
    """Owner-scoped CRUD over saved searches plus match execution and counting"""

    def __init__(self, store: SavedSearchStore, search_service: SearchService):
        self.store = store
        self.search_service = search_service

    async def create(self, user_id: str, payload: SavedSearchCreate) -> SavedSearch:
        await self._check_compiles(payload.filters)
        record = await call_store(
            "create_saved_search",
            self.store.create(user_id, payload.name, dump_filters(payload.filters), payload.notify_on_match),
            user_id=user_id,
        )
        logger.info(f"Created saved search {record.id} for user {user_id}")
        return to_saved_search(record)

    async def list_for_user(self, user_id: str) -> List[SavedSearch]:
        records = await call_store("list_saved_searches", self.store.list_by_user(user_id), user_id=user_id)
        return [to_saved_search(record) for record in records]

    async def get(self, saved_search_id: str, user_id: str) -> SavedSearch:
        return to_saved_search(await self._owned(saved_search_id, user_id))

    async def update(self, saved_search_id: str, user_id: str, patch: SavedSearchUpdate) -> SavedSearch:
        """Merge ``patch`` into the stored search; fields the patch does not set are kept"""
        record = await self._owned(saved_search_id, user_id)

        changes = {}
        if patch.name is not None:
            changes["name"] = patch.name
        if patch.notify_on_match is not None:
            changes["is_active"] = patch.notify_on_match
        if patch.filters is not None:
            merged = merge_filters(load_filters(record.criteria), patch.filters)
            await self._check_compiles(merged)
            changes["criteria"] = dump_filters(merged)

        if not changes:
            return to_saved_search(record)

        updated = await call_store(
            "update_saved_search", self.store.update(saved_search_id, **changes),
            saved_search_id=saved_search_id,
        )
        return to_saved_search(updated)

    async def delete(self, saved_search_id: str, user_id: str) -> None:
        await self._owned(saved_search_id, user_id)
        await call_store("delete_saved_search", self.store.delete(saved_search_id), saved_search_id=saved_search_id)
        logger.info(f"Deleted saved search {saved_search_id}")

    async def execute(self, saved_search_id: str, user_id: str, page: int = 1,
                      limit: Optional[int] = None) -> SearchResult:
        """Re-run the stored filters against current data, exactly like a live search"""
        record = await self._owned(saved_search_id, user_id)
        criteria = SearchCriteria.from_filters(
            load_filters(record.criteria), page=page, limit=limit or settings.SEARCH_DEFAULT_LIMIT
        )
        return await self.search_service.search(criteria, include_available=False)

    async def match_count(self, saved_search_id: str, user_id: str) -> SavedSearchMatchCount:
        """
        Count using only store-side predicates.

        Post-filters are skipped, so when the filters include a price per
        area range this may overcount relative to ``execute``.
        """
        record = await self._owned(saved_search_id, user_id)
        return await self._count(record.id, load_filters(record.criteria))

    async def _count(self, saved_search_id: str, filters: SearchFilters) -> SavedSearchMatchCount:
        compiled = await self.search_service.compile(filters)
        count = await self.search_service.executor.count(compiled.tree)
        return SavedSearchMatchCount(
            saved_search_id=saved_search_id, count=count, approximate=bool(compiled.post_filters)
        )

    async def toggle_notification(self, saved_search_id: str, user_id: str) -> SavedSearch:
        record = await self._owned(saved_search_id, user_id)
        updated = await call_store(
            "update_saved_search", self.store.update(saved_search_id, is_active=not record.is_active),
            saved_search_id=saved_search_id,
        )
        return to_saved_search(updated)

    async def list_active_for_notification_sweep(self) -> List[SavedSearch]:
        records = await call_store("find_active_saved_searches", self.store.find_all_active())
        return [to_saved_search(record) for record in records]

    async def sweep_match_counts(self) -> Dict[str, object]:
        """Count matches for every active search; per-search failures are recorded, not raised"""
        searches = await self.list_active_for_notification_sweep()
        matches: Dict[str, int] = {}
        failed: Dict[str, str] = {}

        for saved_search in searches:
            try:
                matches[saved_search.id] = (await self._count(saved_search.id, saved_search.filters)).count
            except Exception as e:
                logger.error(f"Match count failed for saved search {saved_search.id}: {e}")
                failed[saved_search.id] = str(e)

        return {"checked": len(searches), "matches": matches, "failed": failed}

    async def _owned(self, saved_search_id: str, user_id: str) -> SavedSearchRecord:
        record = await call_store("get_saved_search", self.store.get(saved_search_id),
                                  saved_search_id=saved_search_id)
        if record is None or record.user_id != user_id:
            raise AuthorizationError(ACCESS_DENIED, {"saved_search_id": saved_search_id})
        return record

    async def _check_compiles(self, filters: SearchFilters) -> None:
        """Reject filters that could never execute, before they are stored"""
        try:
            await self.search_service.compile(filters)
        except NotFoundError as e:
            raise ValidationError(e.message, field="filters", details=e.details) from e
