"""
Celery tasks keeping the Elasticsearch listings index in sync with the database
"""
import asyncio
import logging
from typing import Dict
from elasticsearch import AsyncElasticsearch
from sqlalchemy.orm import Session
from parcel_search.core.celery_app import DatabaseTask, celery_app
from parcel_search.core.config import settings
from parcel_search.models.search import SortField
from parcel_search.modules.geospatial.service import published_tree
from parcel_search.modules.stores.base import SortKey
from parcel_search.modules.stores.elasticsearch import PropertyIndexer
from parcel_search.modules.stores.sql import SqlPropertyStore

logger = logging.getLogger(__name__)


async def reindex(db: Session, client: AsyncElasticsearch, batch_size: int = 500) -> Dict[str, int]:
    store = SqlPropertyStore(db)
    indexer = PropertyIndexer(client)
    await indexer.ensure_index()

    tree = published_tree()
    totals = {"indexed": 0, "failed": 0}
    skip = 0
    while True:
        batch = await store.find_many(tree, [SortKey(SortField.CREATED_AT, False)], skip, batch_size)
        if not batch:
            break
        stats = await indexer.bulk_index(batch)
        totals["indexed"] += stats["indexed"]
        totals["failed"] += stats["failed"]
        skip += batch_size
    return totals


@celery_app.task(bind=True, base=DatabaseTask, max_retries=3, default_retry_delay=300)
def reindex_published_listings(self, db: Session, batch_size: int = 500) -> Dict[str, int]:
    """Push every published listing into the search index"""

    async def _run():
        # Fresh client per run; the task owns its event loop
        client = AsyncElasticsearch([settings.ELASTICSEARCH_URL], verify_certs=False, ssl_show_warn=False)
        try:
            return await reindex(db, client, batch_size)
        finally:
            await client.close()

    try:
        result = asyncio.run(_run())
    except Exception as e:
        logger.error(f"Error reindexing listings: {e}")
        raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries))

    logger.info(f"Reindexed listings: {result}")
    return result
