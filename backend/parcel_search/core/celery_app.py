"""
Celery configuration for background tasks
"""
import logging
from celery import Celery, Task
from parcel_search.core.config import settings
from parcel_search.core.database import SessionLocal

logger = logging.getLogger(__name__)

celery_app = Celery(
    "parcel_search",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "parcel_search.modules.saved_searches.tasks",
        "parcel_search.modules.search.tasks",
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    beat_schedule={
        "sweep-saved-search-matches": {
            "task": "parcel_search.modules.saved_searches.tasks.sweep_saved_search_matches",
            "schedule": settings.SAVED_SEARCH_SWEEP_INTERVAL_SECONDS,
        },
        "reindex-published-listings": {
            "task": "parcel_search.modules.search.tasks.reindex_published_listings",
            "schedule": 24 * 3600.0,  # Daily
        },
    },
)


class DatabaseTask(Task):
    """Base task class that hands a database session to the task body"""

    def __call__(self, *args, **kwargs):
        with SessionLocal() as db:
            try:
                return self.run(db, *args, **kwargs)
            except Exception as e:
                db.rollback()
                logger.error(f"Task {self.name} failed: {e}")
                raise
