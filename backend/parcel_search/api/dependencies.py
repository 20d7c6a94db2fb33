"""
FastAPI dependency wiring for the search core.

Each request gets stores bound to its own database session. With
SEARCH_BACKEND=elasticsearch, listing reads go to the index while locations,
features and saved searches stay in the database.
"""
from fastapi import Depends
from sqlalchemy.orm import Session
from parcel_search.core.config import settings
from parcel_search.core.database import get_db
from parcel_search.core.elasticsearch import get_elasticsearch
from parcel_search.modules.geospatial.service import GeospatialService
from parcel_search.modules.saved_searches.service import SavedSearchManager
from parcel_search.modules.search.compiler import FilterCompiler
from parcel_search.modules.search.executor import QueryExecutor
from parcel_search.modules.search.service import SearchService
from parcel_search.modules.stores.base import PropertyStore
from parcel_search.modules.stores.elasticsearch import ElasticsearchPropertyStore
from parcel_search.modules.stores.sql import (
    SqlFeatureStore, SqlLocationStore, SqlPropertyStore, SqlSavedSearchStore
)


async def get_property_store(db: Session = Depends(get_db)) -> PropertyStore:
    if settings.SEARCH_BACKEND == "elasticsearch":
        return ElasticsearchPropertyStore(await get_elasticsearch())
    return SqlPropertyStore(db)


def get_search_service(
    db: Session = Depends(get_db),
    store: PropertyStore = Depends(get_property_store),
) -> SearchService:
    location_store = SqlLocationStore(db)
    return SearchService(
        FilterCompiler(location_store),
        QueryExecutor(store),
        SqlFeatureStore(db),
        location_store,
    )


def get_geospatial_service(store: PropertyStore = Depends(get_property_store)) -> GeospatialService:
    return GeospatialService(store)


def get_saved_search_manager(
    db: Session = Depends(get_db),
    search_service: SearchService = Depends(get_search_service),
) -> SavedSearchManager:
    return SavedSearchManager(SqlSavedSearchStore(db), search_service)
