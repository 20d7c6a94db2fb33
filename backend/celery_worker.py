#!/usr/bin/env python3
"""
Celery worker entry point for saved-search sweeps and index maintenance
"""
from parcel_search.core.celery_app import celery_app

if __name__ == '__main__':
    celery_app.start()
