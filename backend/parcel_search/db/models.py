from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, Text, JSON, ForeignKey, Index, Table
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from parcel_search.core.database import Base
import uuid


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


property_features = Table(
    "property_features",
    Base.metadata,
    Column("property_id", String(36), ForeignKey("properties.id", ondelete="CASCADE"), primary_key=True),
    Column("feature_id", String(64), ForeignKey("features.id", ondelete="CASCADE"), primary_key=True),
    Index("idx_property_features_feature_id", "feature_id"),
)


class Location(Base):
    """Administrative area: region > district > sub-district"""
    __tablename__ = "locations"

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)
    level = Column(String(20), nullable=False)  # REGION, DISTRICT, SUB_DISTRICT
    parent_id = Column(String(64), ForeignKey("locations.id"), nullable=True)

    parent = relationship("Location", remote_side=[id], back_populates="children")
    children = relationship("Location", back_populates="parent")

    __table_args__ = (
        Index('idx_locations_parent_id', 'parent_id'),
    )


class Feature(Base):
    __tablename__ = "features"

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)


class Property(Base):
    """Land listing with typed details and WGS84 coordinates"""
    __tablename__ = "properties"

    id = Column(String(36), primary_key=True, default=_uuid)

    title = Column(String(500), nullable=False)
    description = Column(Text)
    price = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="TRY")
    category = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default="DRAFT")

    address = Column(String(500))
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    location_id = Column(String(64), ForeignKey("locations.id"), nullable=True)

    # Listing details
    area = Column(Float)  # square meters
    rooms = Column(Integer)
    bathrooms = Column(Integer)
    floor = Column(Integer)
    build_year = Column(Integer)
    has_balcony = Column(Boolean)
    has_parking = Column(Boolean)
    is_furnished = Column(Boolean)

    owner_id = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    location = relationship("Location")
    features = relationship("Feature", secondary=property_features)
    images = relationship("PropertyImage", order_by="PropertyImage.position", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_properties_status_created', 'status', 'created_at'),
        Index('idx_properties_price', 'price'),
        Index('idx_properties_category', 'category'),
        Index('idx_properties_location_id', 'location_id'),
        Index('idx_properties_coordinates', 'latitude', 'longitude'),
        Index('idx_properties_owner_id', 'owner_id'),
    )


class PropertyImage(Base):
    __tablename__ = "property_images"

    id = Column(String(36), primary_key=True, default=_uuid)
    property_id = Column(String(36), ForeignKey("properties.id", ondelete="CASCADE"), nullable=False)
    url = Column(String(1000), nullable=False)
    position = Column(Integer, nullable=False, default=0)


class SavedSearch(Base):
    """Named criteria set owned by one user"""
    __tablename__ = "saved_searches"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False)
    name = Column(String(200), nullable=False)
    criteria = Column(JSON, nullable=False)  # versioned filters blob
    is_active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index('idx_saved_searches_user_id', 'user_id'),
        Index('idx_saved_searches_active', 'is_active'),
    )
