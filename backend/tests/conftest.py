import pytest
from datetime import datetime, timedelta, timezone
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from parcel_search.core.database import Base
from parcel_search.db.models import Feature, Location, Property, PropertyImage
from parcel_search.modules.geospatial.service import GeospatialService
from parcel_search.modules.saved_searches.service import SavedSearchManager
from parcel_search.modules.search.compiler import FilterCompiler
from parcel_search.modules.search.executor import QueryExecutor
from parcel_search.modules.search.service import SearchService
from parcel_search.modules.stores.sql import (
    SqlFeatureStore, SqlLocationStore, SqlPropertyStore, SqlSavedSearchStore
)

# In-memory SQLite; radius queries use the bounding box + haversine path
TEST_DATABASE_URL = "sqlite:///:memory:"

BASE_TIME = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine"""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    return engine


@pytest.fixture(scope="function")
def test_db_session(test_engine):
    """Create a test database session"""
    Base.metadata.create_all(bind=test_engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def override_get_db(test_db_session):
    """Override the get_db dependency for testing"""
    def _override_get_db():
        try:
            yield test_db_session
        finally:
            pass
    return _override_get_db


@pytest.fixture
def locations(test_db_session):
    """istanbul > (sile > sile-merkez, catalca); izmir > urla"""
    rows = [
        Location(id="istanbul", name="Istanbul", level="REGION"),
        Location(id="izmir", name="Izmir", level="REGION"),
        Location(id="sile", name="Sile", level="DISTRICT", parent_id="istanbul"),
        Location(id="catalca", name="Catalca", level="DISTRICT", parent_id="istanbul"),
        Location(id="urla", name="Urla", level="DISTRICT", parent_id="izmir"),
        Location(id="sile-merkez", name="Sile Merkez", level="SUB_DISTRICT", parent_id="sile"),
    ]
    test_db_session.add_all(rows)
    test_db_session.commit()
    return {row.id: row for row in rows}


@pytest.fixture
def features(test_db_session):
    rows = [
        Feature(id="paved-road", name="Paved road"),
        Feature(id="water", name="Water"),
        Feature(id="electricity", name="Electricity"),
    ]
    test_db_session.add_all(rows)
    test_db_session.commit()
    return {row.id: row for row in rows}


@pytest.fixture
def make_property(test_db_session, locations, features):
    """Factory inserting a listing; ``feature_ids`` and ``image_urls`` are attached after insert"""
    counter = {"n": 0}

    def _make(feature_ids=(), image_urls=(), **overrides):
        counter["n"] += 1
        n = counter["n"]
        values = {
            "id": f"prop-{n:03d}",
            "title": f"Land parcel {n}",
            "description": "Quiet parcel with open views",
            "price": 250000.0,
            "category": "LAND",
            "status": "PUBLISHED",
            "address": f"{n} Orchard Lane",
            "latitude": 41.0,
            "longitude": 29.0,
            "location_id": "sile-merkez",
            "area": 1000.0,
            "owner_id": "owner-1",
            "created_at": BASE_TIME - timedelta(hours=n),
            "updated_at": BASE_TIME - timedelta(hours=n),
        }
        values.update(overrides)
        listing = Property(**values)
        listing.features = [features[f] for f in feature_ids]
        listing.images = [PropertyImage(url=url, position=i) for i, url in enumerate(image_urls)]
        test_db_session.add(listing)
        test_db_session.commit()
        return listing

    return _make


@pytest.fixture
def land_listings(make_property):
    """
    25 published LAND listings; exactly 7 are priced 100k-500k and have a
    paved road. Two drafts that would otherwise match are added as noise.
    """
    listings = []
    for i in range(25):
        if i < 7:
            price, feature_ids = 100000 + i * 50000, ["paved-road", "water"]
        elif i < 14:
            price, feature_ids = 150000 + i * 10000, ["water"]
        elif i < 20:
            price, feature_ids = 600000 + i * 10000, ["paved-road"]
        else:
            price, feature_ids = 50000 + i * 1000, ["paved-road", "electricity"]
        listings.append(make_property(
            price=float(price),
            feature_ids=feature_ids,
            latitude=41.0 + i * 0.01,
            longitude=29.0 + i * 0.01,
        ))

    make_property(price=200000.0, status="DRAFT", feature_ids=["paved-road"])
    make_property(price=300000.0, status="DRAFT", feature_ids=["paved-road"])
    return listings


@pytest.fixture
def property_store(test_db_session):
    return SqlPropertyStore(test_db_session, use_postgis=False)


@pytest.fixture
def location_store(test_db_session):
    return SqlLocationStore(test_db_session)


@pytest.fixture
def feature_store(test_db_session):
    return SqlFeatureStore(test_db_session)


@pytest.fixture
def saved_search_store(test_db_session):
    return SqlSavedSearchStore(test_db_session)


@pytest.fixture
def compiler(location_store):
    return FilterCompiler(location_store)


@pytest.fixture
def executor(property_store):
    return QueryExecutor(property_store)


@pytest.fixture
def search_service(compiler, executor, feature_store, location_store):
    return SearchService(compiler, executor, feature_store, location_store)


@pytest.fixture
def geo_service(property_store):
    return GeospatialService(property_store)


@pytest.fixture
def saved_search_manager(saved_search_store, search_service, locations, features):
    """Saved search filters are validated against the seeded locations and features"""
    return SavedSearchManager(saved_search_store, search_service)
