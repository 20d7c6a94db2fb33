"""
Redis-backed cache for public search results.

Cache problems never fail a search: errors are logged and the caller falls
through to the store.
"""
import hashlib
import json
import logging
from typing import Optional
import redis.asyncio as redis
from pydantic import BaseModel
from parcel_search.core.config import settings
from parcel_search.models.search import SearchResult

logger = logging.getLogger(__name__)


def generate_cache_key(namespace: str, criteria: BaseModel) -> str:
    criteria_str = json.dumps(criteria.model_dump(mode="json"), sort_keys=True)
    return f"{namespace}:{hashlib.md5(criteria_str.encode()).hexdigest()}"


class SearchCache:
    def __init__(self, url: Optional[str] = None, ttl_seconds: Optional[int] = None):
        self.url = url or settings.REDIS_URL
        self.ttl_seconds = ttl_seconds or settings.SEARCH_CACHE_TTL_SECONDS
        self._client: Optional[redis.Redis] = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self.url, decode_responses=True)
        return self._client

    async def get(self, key: str) -> Optional[SearchResult]:
        try:
            cached = await self.client.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None
        if cached is None:
            return None
        logger.info(f"Returning cached search results for key: {key}")
        return SearchResult.model_validate_json(cached)

    async def set(self, key: str, result: SearchResult) -> None:
        try:
            await self.client.setex(key, self.ttl_seconds, result.model_dump_json())
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


search_cache = SearchCache()


def get_search_cache() -> SearchCache:
    return search_cache
