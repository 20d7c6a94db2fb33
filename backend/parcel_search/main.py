from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from parcel_search.api.routers import geo, saved_searches, search
from parcel_search.core.cache import search_cache
from parcel_search.core.config import settings
from parcel_search.core.elasticsearch import es_client
from parcel_search.modules.stores.elasticsearch import PropertyIndexer
import logging

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Parcel Search API",
    description="Geospatial land listing search with saved-search matching",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(search.router, prefix="/api/v1/search", tags=["search"])
app.include_router(geo.router, prefix="/api/v1/geo", tags=["geo"])
app.include_router(saved_searches.router, prefix="/api/v1/saved-searches", tags=["saved-searches"])


@app.on_event("startup")
async def startup_event():
    """Connect the search index when it backs listing reads"""
    if settings.SEARCH_BACKEND != "elasticsearch":
        return
    try:
        await es_client.connect()
        await PropertyIndexer(es_client.client).ensure_index()
        logger.info("Application startup completed successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}")
        raise


@app.on_event("shutdown")
async def shutdown_event():
    try:
        await es_client.disconnect()
        await search_cache.close()
        logger.info("Application shutdown completed successfully")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


@app.get("/")
async def root():
    return {"message": "Parcel Search API"}


@app.get("/health")
async def health_check():
    health_status = {
        "status": "healthy",
        "search_backend": settings.SEARCH_BACKEND,
        "services": {}
    }

    if settings.SEARCH_BACKEND == "elasticsearch":
        es_healthy = await es_client.health_check()
        health_status["services"]["elasticsearch"] = "healthy" if es_healthy else "unhealthy"
        if not es_healthy:
            health_status["status"] = "degraded"

    return health_status
