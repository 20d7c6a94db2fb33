"""
Periodic evaluation of saved searches flagged for notification.

Only match counting happens here; diffing against previously seen results
and delivering notifications belong to the notification service.
"""
import asyncio
import logging
from typing import Any, Dict
from sqlalchemy.orm import Session
from parcel_search.core.celery_app import DatabaseTask, celery_app
from parcel_search.core.exceptions import InfrastructureError
from parcel_search.modules.search.compiler import FilterCompiler
from parcel_search.modules.search.executor import QueryExecutor
from parcel_search.modules.search.service import SearchService
from parcel_search.modules.stores.sql import (
    SqlFeatureStore, SqlLocationStore, SqlPropertyStore, SqlSavedSearchStore
)
from .service import SavedSearchManager

logger = logging.getLogger(__name__)


def build_manager(db: Session) -> SavedSearchManager:
    location_store = SqlLocationStore(db)
    search_service = SearchService(
        FilterCompiler(location_store),
        QueryExecutor(SqlPropertyStore(db)),
        SqlFeatureStore(db),
        location_store,
    )
    return SavedSearchManager(SqlSavedSearchStore(db), search_service)


@celery_app.task(bind=True, base=DatabaseTask, max_retries=3, default_retry_delay=60)
def sweep_saved_search_matches(self, db: Session) -> Dict[str, Any]:
    """Count current matches for every active saved search"""
    try:
        result = asyncio.run(build_manager(db).sweep_match_counts())
    except InfrastructureError as e:
        logger.error(f"Saved search sweep failed: {e}")
        raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries))

    logger.info(
        f"Saved search sweep checked {result['checked']} searches, {len(result['failed'])} failed"
    )
    return result
