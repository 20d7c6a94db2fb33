from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from typing import Optional, Dict, Any
from datetime import datetime
from parcel_search.core.exceptions import ValidationError
from parcel_search.models.search import SearchFilters, SearchFiltersPatch

# Bump when the persisted filters shape changes
CRITERIA_SCHEMA_VERSION = 1


class SavedSearchCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    filters: SearchFilters = SearchFilters()
    notify_on_match: bool = False


class SavedSearchUpdate(BaseModel):
    """Merge patch; unset fields keep their stored value"""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    filters: Optional[SearchFiltersPatch] = None
    notify_on_match: Optional[bool] = None


class SavedSearch(BaseModel):
    id: str
    user_id: str
    name: str
    filters: SearchFilters
    is_active: bool
    schema_version: int = CRITERIA_SCHEMA_VERSION
    created_at: datetime
    updated_at: datetime


class SavedSearchMatchCount(BaseModel):
    saved_search_id: str
    count: int
    approximate: bool


def dump_filters(filters: SearchFilters) -> Dict[str, Any]:
    """Serialize filters into the versioned blob stored with a saved search"""
    data = filters.model_dump(mode="json", exclude_none=True)
    data["schema_version"] = CRITERIA_SCHEMA_VERSION
    return data


def load_filters(blob: Dict[str, Any]) -> SearchFilters:
    data = dict(blob or {})
    version = data.pop("schema_version", 1)
    if version > CRITERIA_SCHEMA_VERSION:
        raise ValidationError(
            f"Saved criteria schema version {version} is newer than supported version {CRITERIA_SCHEMA_VERSION}",
            field="schema_version",
        )
    return _validate_filters(data, "Stored filters are invalid")


def merge_filters(stored: SearchFilters, patch: SearchFiltersPatch) -> SearchFilters:
    merged = stored.model_dump()
    merged.update(patch.changes())
    if merged.get("feature_combinator") is None:
        merged.pop("feature_combinator", None)
    # A patch can add a radius to stored filters that hold a bounding box
    return _validate_filters(merged, "Merged filters are invalid")


def _validate_filters(data: Dict[str, Any], summary: str) -> SearchFilters:
    try:
        return SearchFilters.model_validate(data)
    except PydanticValidationError as e:
        messages = [err["msg"] for err in e.errors()]
        raise ValidationError(f"{summary}: {messages[0]}", field="filters", details={"errors": messages}) from e
