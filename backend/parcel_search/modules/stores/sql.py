"""
SQLAlchemy implementations of the store ports.

On PostgreSQL with PostGIS, radius predicates use ST_DWithin/ST_Distance over
a geography built from the latitude/longitude columns. Elsewhere (SQLite in
tests) a radius is narrowed with a degree bounding box in SQL and then
checked exactly with haversine in Python.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple
from sqlalchemy import and_, cast, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload
from geoalchemy2 import Geography
from geoalchemy2.functions import ST_DWithin, ST_Distance, ST_MakePoint, ST_SetSRID
from parcel_search.core.config import settings
from parcel_search.db.models import (
    Feature as FeatureDB, Location as LocationDB, Property as PropertyDB, SavedSearch as SavedSearchDB
)
from parcel_search.models.geospatial import GeoStatistics
from parcel_search.models.property import (
    FeatureSummary, LocationLevel, LocationSummary, PropertySummary
)
from parcel_search.models.search import AvailableFilters, CategoryCount, GeoPoint, SortField
from parcel_search.modules.geospatial.coordinates import (
    BoundingBox, Point, boxes_around, haversine_km
)
from parcel_search.modules.search.predicates import (
    AllOf, BooleanFlag, Equals, GeoBox, GeoRadius, ListingField, MembershipMode,
    Predicate, PredicateTree, Range, SetMembership, TextSearch
)
from .base import (
    FeatureStore, LocationNode, LocationStore, PropertyStore, SavedSearchRecord,
    SavedSearchStore, SortKey
)

logger = logging.getLogger(__name__)

COLUMNS = {
    ListingField.STATUS: PropertyDB.status,
    ListingField.CATEGORY: PropertyDB.category,
    ListingField.OWNER: PropertyDB.owner_id,
    ListingField.LOCATION: PropertyDB.location_id,
    ListingField.PRICE: PropertyDB.price,
    ListingField.AREA: PropertyDB.area,
    ListingField.ROOMS: PropertyDB.rooms,
    ListingField.BATHROOMS: PropertyDB.bathrooms,
    ListingField.FLOOR: PropertyDB.floor,
    ListingField.BUILD_YEAR: PropertyDB.build_year,
    ListingField.HAS_BALCONY: PropertyDB.has_balcony,
    ListingField.HAS_PARKING: PropertyDB.has_parking,
    ListingField.IS_FURNISHED: PropertyDB.is_furnished,
    ListingField.TITLE: PropertyDB.title,
    ListingField.DESCRIPTION: PropertyDB.description,
    ListingField.ADDRESS: PropertyDB.address,
}

SORT_COLUMNS = {
    SortField.PRICE: PropertyDB.price,
    SortField.CREATED_AT: PropertyDB.created_at,
    SortField.UPDATED_AT: PropertyDB.updated_at,
    SortField.TITLE: PropertyDB.title,
    SortField.AREA: PropertyDB.area,
    SortField.ROOMS: PropertyDB.rooms,
    SortField.BUILD_YEAR: PropertyDB.build_year,
}


def to_summary(row: PropertyDB, distance_km: Optional[float] = None) -> PropertySummary:
    location = None
    if row.location is not None:
        location = LocationSummary(
            id=row.location.id,
            name=row.location.name,
            level=LocationLevel(row.location.level),
            parent_id=row.location.parent_id,
        )

    return PropertySummary(
        id=row.id,
        title=row.title,
        description=row.description,
        price=row.price,
        currency=row.currency,
        category=row.category,
        status=row.status,
        latitude=row.latitude,
        longitude=row.longitude,
        address=row.address,
        location=location,
        features=[FeatureSummary(id=f.id, name=f.name) for f in sorted(row.features, key=lambda f: f.id)],
        image_url=row.images[0].url if row.images else None,
        area=row.area,
        rooms=row.rooms,
        bathrooms=row.bathrooms,
        floor=row.floor,
        build_year=row.build_year,
        has_balcony=row.has_balcony,
        has_parking=row.has_parking,
        is_furnished=row.is_furnished,
        owner_id=row.owner_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        distance_km=distance_km,
    )


def _geography(lng, lat):
    return cast(ST_SetSRID(ST_MakePoint(lng, lat), 4326), Geography(geometry_type="POINT", srid=4326))


class SqlPropertyStore(PropertyStore):
    """Property store backed by the relational database"""

    sortable_fields = frozenset(SORT_COLUMNS)

    def __init__(self, db: Session, use_postgis: Optional[bool] = None):
        self.db = db
        if use_postgis is None:
            bind = db.get_bind()
            use_postgis = settings.POSTGIS_ENABLED and bind.dialect.name == "postgresql"
        self.use_postgis = use_postgis

    async def find_many(self, tree: PredicateTree, sort: Sequence[SortKey],
                        skip: int, take: int) -> List[PropertySummary]:
        order_by = []
        for key in sort:
            column = SORT_COLUMNS[key.field]
            order_by.append(column.desc() if key.descending else column.asc())
        order_by.append(PropertyDB.id.asc())

        rows = (
            self._listing_query()
            .filter(*self._conditions(tree))
            .order_by(*order_by)
            .offset(skip)
            .limit(take)
            .all()
        )
        return [to_summary(row) for row in rows]

    async def count(self, tree: PredicateTree) -> int:
        return self.db.query(func.count(PropertyDB.id)).filter(*self._conditions(tree)).scalar() or 0

    async def find_within_radius(self, tree: PredicateTree, center: Point, radius_meters: float,
                                 skip: int, take: int) -> List[Tuple[PropertySummary, float]]:
        conditions = self._conditions(tree.without(GeoRadius))

        if self.use_postgis:
            geog = _geography(PropertyDB.longitude, PropertyDB.latitude)
            origin = _geography(center.lng, center.lat)
            distance = ST_Distance(geog, origin)
            rows = (
                self._listing_query()
                .add_columns(distance.label("distance_m"))
                .filter(*conditions, ST_DWithin(geog, origin, radius_meters))
                .order_by(distance.asc(), PropertyDB.created_at.desc(), PropertyDB.id.asc())
                .offset(skip)
                .limit(take)
                .all()
            )
            return [(to_summary(row, meters / 1000), meters / 1000) for row, meters in rows]

        radius_km = radius_meters / 1000
        rows = (
            self._listing_query()
            .filter(*conditions, self._around_condition(center, radius_km))
            .order_by(PropertyDB.created_at.desc(), PropertyDB.id.asc())
            .all()
        )
        matches = []
        for row in rows:
            distance_km = haversine_km(center, Point(row.latitude, row.longitude))
            if distance_km <= radius_km:
                matches.append((row, distance_km))
        # Stable sort keeps the newest-first order among equal distances
        matches.sort(key=lambda match: match[1])
        return [(to_summary(row, d), d) for row, d in matches[skip:skip + take]]

    async def available_filters(self, tree: PredicateTree) -> AvailableFilters:
        conditions = self._conditions(tree)

        min_price, max_price = (
            self.db.query(func.min(PropertyDB.price), func.max(PropertyDB.price))
            .filter(*conditions)
            .one()
        )
        categories = (
            self.db.query(PropertyDB.category, func.count(PropertyDB.id))
            .filter(*conditions)
            .group_by(PropertyDB.category)
            .order_by(PropertyDB.category)
            .all()
        )
        location_ids = (
            self.db.query(PropertyDB.location_id)
            .filter(*conditions, PropertyDB.location_id.isnot(None))
            .distinct()
            .order_by(PropertyDB.location_id)
            .all()
        )

        return AvailableFilters(
            min_price=min_price,
            max_price=max_price,
            categories=[CategoryCount(category=c, count=n) for c, n in categories],
            location_ids=[row[0] for row in location_ids],
        )

    async def geo_statistics(self, tree: PredicateTree) -> GeoStatistics:
        total, min_lat, max_lat, min_lng, max_lng, avg_lat, avg_lng = (
            self.db.query(
                func.count(PropertyDB.id),
                func.min(PropertyDB.latitude),
                func.max(PropertyDB.latitude),
                func.min(PropertyDB.longitude),
                func.max(PropertyDB.longitude),
                func.avg(PropertyDB.latitude),
                func.avg(PropertyDB.longitude),
            )
            .filter(*self._conditions(tree))
            .one()
        )
        center = GeoPoint(lat=avg_lat, lng=avg_lng) if total else None
        return GeoStatistics(
            total=total or 0,
            min_latitude=min_lat,
            max_latitude=max_lat,
            min_longitude=min_lng,
            max_longitude=max_lng,
            center=center,
        )

    def _listing_query(self):
        return self.db.query(PropertyDB).options(
            joinedload(PropertyDB.location),
            selectinload(PropertyDB.features),
            selectinload(PropertyDB.images),
        )

    def _conditions(self, tree: PredicateTree) -> list:
        conditions = []
        radius: Optional[GeoRadius] = None
        for node in tree:
            if isinstance(node, GeoRadius) and not self.use_postgis:
                radius = node
            else:
                conditions.append(self._condition(node))

        if radius is not None:
            conditions.append(PropertyDB.id.in_(self._ids_within(radius, conditions)))
        return conditions

    def _ids_within(self, radius: GeoRadius, conditions: list) -> List[str]:
        rows = (
            self.db.query(PropertyDB.id, PropertyDB.latitude, PropertyDB.longitude)
            .filter(*conditions, self._around_condition(radius.center, radius.radius_km))
            .all()
        )
        return [
            row.id for row in rows
            if haversine_km(radius.center, Point(row.latitude, row.longitude)) <= radius.radius_km
        ]

    def _condition(self, node: Predicate):
        if isinstance(node, AllOf):
            return and_(*[self._condition(child) for child in node.children])

        if isinstance(node, Equals):
            return COLUMNS[node.field] == node.value

        if isinstance(node, Range):
            column = COLUMNS[node.field]
            bounds = []
            if node.min is not None:
                bounds.append(column >= node.min)
            if node.max is not None:
                bounds.append(column <= node.max)
            return and_(*bounds)

        if isinstance(node, BooleanFlag):
            return COLUMNS[node.field].is_(node.expected)

        if isinstance(node, SetMembership):
            return self._membership(node)

        if isinstance(node, GeoBox):
            return self._box_condition(BoundingBox(node.north_east, node.south_west))

        if isinstance(node, GeoRadius):
            return ST_DWithin(
                _geography(PropertyDB.longitude, PropertyDB.latitude),
                _geography(node.center.lng, node.center.lat),
                node.radius_km * 1000,
            )

        if isinstance(node, TextSearch):
            return or_(*[COLUMNS[f].icontains(node.term, autoescape=True) for f in node.fields])

        raise ValueError(f"Unsupported predicate: {node!r}")

    def _membership(self, node: SetMembership):
        if node.field == ListingField.FEATURES:
            if node.mode == MembershipMode.ALL:
                return and_(*[PropertyDB.features.any(FeatureDB.id == v) for v in node.values])
            return PropertyDB.features.any(FeatureDB.id.in_(node.values))

        if node.mode == MembershipMode.ALL:
            raise ValueError(f"ALL membership is not defined for scalar field {node.field.value}")
        return COLUMNS[node.field].in_(node.values)

    def _around_condition(self, center: Point, km: float):
        return or_(*[self._box_condition(box) for box in boxes_around(center, km)])

    @staticmethod
    def _box_condition(box: BoundingBox):
        return and_(
            PropertyDB.latitude.between(box.south_west.lat, box.north_east.lat),
            PropertyDB.longitude.between(box.south_west.lng, box.north_east.lng),
        )


def _location_node(row: LocationDB) -> LocationNode:
    return LocationNode(id=row.id, name=row.name, level=LocationLevel(row.level), parent_id=row.parent_id)


class SqlLocationStore(LocationStore):
    def __init__(self, db: Session):
        self.db = db

    async def get_by_id(self, location_id: str) -> Optional[LocationNode]:
        row = self.db.get(LocationDB, location_id)
        return _location_node(row) if row is not None else None

    async def get_ancestors(self, location_id: str) -> List[LocationNode]:
        ancestors = []
        seen = {location_id}
        row = self.db.get(LocationDB, location_id)
        while row is not None and row.parent_id and row.parent_id not in seen:
            seen.add(row.parent_id)
            row = self.db.get(LocationDB, row.parent_id)
            if row is not None:
                ancestors.append(_location_node(row))
        return ancestors

    async def get_descendants(self, location_id: str) -> List[LocationNode]:
        descendants = []
        seen = {location_id}
        frontier = [location_id]
        while frontier:
            children = (
                self.db.query(LocationDB)
                .filter(LocationDB.parent_id.in_(frontier))
                .order_by(LocationDB.id)
                .all()
            )
            frontier = []
            for child in children:
                if child.id not in seen:
                    seen.add(child.id)
                    frontier.append(child.id)
                    descendants.append(_location_node(child))
        return descendants


class SqlFeatureStore(FeatureStore):
    def __init__(self, db: Session):
        self.db = db

    async def missing_ids(self, feature_ids: Sequence[str]) -> List[str]:
        if not feature_ids:
            return []
        existing = {row[0] for row in self.db.query(FeatureDB.id).filter(FeatureDB.id.in_(feature_ids))}
        return [feature_id for feature_id in feature_ids if feature_id not in existing]


def _saved_search_record(row: SavedSearchDB) -> SavedSearchRecord:
    return SavedSearchRecord(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        criteria=dict(row.criteria or {}),
        is_active=row.is_active,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlSavedSearchStore(SavedSearchStore):
    def __init__(self, db: Session):
        self.db = db

    async def create(self, user_id: str, name: str, criteria: Dict[str, Any],
                     is_active: bool) -> SavedSearchRecord:
        row = SavedSearchDB(user_id=user_id, name=name, criteria=criteria, is_active=is_active)
        self.db.add(row)
        self._commit()
        self.db.refresh(row)
        return _saved_search_record(row)

    async def get(self, saved_search_id: str) -> Optional[SavedSearchRecord]:
        row = self.db.get(SavedSearchDB, saved_search_id)
        return _saved_search_record(row) if row is not None else None

    async def update(self, saved_search_id: str, **changes: Any) -> SavedSearchRecord:
        row = self.db.get(SavedSearchDB, saved_search_id)
        if row is None:
            raise LookupError(f"Saved search {saved_search_id} disappeared during update")
        for key, value in changes.items():
            setattr(row, key, value)
        self._commit()
        self.db.refresh(row)
        return _saved_search_record(row)

    async def delete(self, saved_search_id: str) -> None:
        row = self.db.get(SavedSearchDB, saved_search_id)
        if row is not None:
            self.db.delete(row)
            self._commit()

    async def list_by_user(self, user_id: str) -> List[SavedSearchRecord]:
        rows = (
            self.db.query(SavedSearchDB)
            .filter(SavedSearchDB.user_id == user_id)
            .order_by(SavedSearchDB.created_at.desc(), SavedSearchDB.id.asc())
            .all()
        )
        return [_saved_search_record(row) for row in rows]

    async def find_all_active(self) -> List[SavedSearchRecord]:
        rows = (
            self.db.query(SavedSearchDB)
            .filter(SavedSearchDB.is_active.is_(True))
            .order_by(SavedSearchDB.created_at.asc(), SavedSearchDB.id.asc())
            .all()
        )
        return [_saved_search_record(row) for row in rows]

    def _commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error saving saved search: {e}")
            raise
