from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from enum import Enum


class ListingStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    SOLD = "SOLD"
    INACTIVE = "INACTIVE"


class PropertyCategory(str, Enum):
    LAND = "LAND"
    FIELD = "FIELD"
    GARDEN = "GARDEN"
    OLIVE_GROVE = "OLIVE_GROVE"
    VINEYARD = "VINEYARD"
    INDUSTRIAL = "INDUSTRIAL"
    RESIDENTIAL = "RESIDENTIAL"
    COMMERCIAL = "COMMERCIAL"


class LocationLevel(str, Enum):
    REGION = "REGION"
    DISTRICT = "DISTRICT"
    SUB_DISTRICT = "SUB_DISTRICT"


class LocationSummary(BaseModel):
    id: str
    name: str
    level: LocationLevel
    parent_id: Optional[str] = None


class FeatureSummary(BaseModel):
    id: str
    name: str


class PropertySummary(BaseModel):
    """Listing projection returned by searches, with denormalized location, features and first image"""
    id: str
    title: str
    description: Optional[str] = None
    price: float
    currency: str = "TRY"
    category: PropertyCategory
    status: ListingStatus
    latitude: float
    longitude: float
    address: Optional[str] = None
    location: Optional[LocationSummary] = None
    features: List[FeatureSummary] = []
    image_url: Optional[str] = None

    # Typed listing details
    area: Optional[float] = None  # square meters
    rooms: Optional[int] = None
    bathrooms: Optional[int] = None
    floor: Optional[int] = None
    build_year: Optional[int] = None
    has_balcony: Optional[bool] = None
    has_parking: Optional[bool] = None
    is_furnished: Optional[bool] = None

    owner_id: str
    created_at: datetime
    updated_at: datetime

    # Calculated per request
    price_per_area: Optional[float] = None
    distance_km: Optional[float] = None

    @property
    def feature_ids(self) -> List[str]:
        return [feature.id for feature in self.features]
