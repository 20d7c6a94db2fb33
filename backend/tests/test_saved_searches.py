import pytest
from parcel_search.core.exceptions import AuthorizationError, ValidationError
from parcel_search.models.property import PropertyCategory
from parcel_search.models.saved_search import SavedSearchCreate, SavedSearchUpdate, dump_filters
from parcel_search.models.search import (
    BoundingBoxFilter, FeatureCombinator, GeoPoint, RadiusFilter, SearchFilters, SearchFiltersPatch
)
from parcel_search.modules.saved_searches.service import ACCESS_DENIED


@pytest.fixture
def land_filters():
    return SearchFilters(
        category=PropertyCategory.LAND,
        min_price=100000,
        max_price=500000,
        feature_ids=["paved-road"],
    )


class TestSavedSearchCrud:
    """Test cases for owner-scoped saved search management"""

    @pytest.mark.asyncio
    async def test_create_and_get(self, saved_search_manager, land_filters):
        created = await saved_search_manager.create(
            "user-1", SavedSearchCreate(name="Cheap land", filters=land_filters)
        )
        assert created.user_id == "user-1"
        assert created.is_active is False
        assert created.schema_version == 1

        fetched = await saved_search_manager.get(created.id, "user-1")
        assert fetched.filters == land_filters

    @pytest.mark.asyncio
    async def test_stored_blob_is_versioned(self, saved_search_manager, saved_search_store, land_filters):
        created = await saved_search_manager.create("user-1", SavedSearchCreate(name="Land", filters=land_filters))
        record = await saved_search_store.get(created.id)
        assert record.criteria["schema_version"] == 1
        assert "max_area" not in record.criteria

    @pytest.mark.asyncio
    async def test_list_only_own(self, saved_search_manager):
        await saved_search_manager.create("user-1", SavedSearchCreate(name="First"))
        await saved_search_manager.create("user-1", SavedSearchCreate(name="Second"))
        await saved_search_manager.create("user-2", SavedSearchCreate(name="Theirs"))

        searches = await saved_search_manager.list_for_user("user-1")
        assert {s.name for s in searches} == {"First", "Second"}

    @pytest.mark.asyncio
    async def test_other_user_denied(self, saved_search_manager):
        created = await saved_search_manager.create("user-1", SavedSearchCreate(name="Mine"))
        with pytest.raises(AuthorizationError) as exc_info:
            await saved_search_manager.get(created.id, "user-2")
        assert exc_info.value.message == ACCESS_DENIED

    @pytest.mark.asyncio
    async def test_missing_indistinguishable_from_foreign(self, saved_search_manager):
        with pytest.raises(AuthorizationError) as exc_info:
            await saved_search_manager.get("does-not-exist", "user-1")
        assert exc_info.value.message == ACCESS_DENIED

    @pytest.mark.asyncio
    async def test_other_user_cannot_mutate(self, saved_search_manager):
        created = await saved_search_manager.create("user-1", SavedSearchCreate(name="Mine"))
        with pytest.raises(AuthorizationError):
            await saved_search_manager.update(created.id, "user-2", SavedSearchUpdate(name="Hijacked"))
        with pytest.raises(AuthorizationError):
            await saved_search_manager.delete(created.id, "user-2")
        with pytest.raises(AuthorizationError):
            await saved_search_manager.toggle_notification(created.id, "user-2")

        assert (await saved_search_manager.get(created.id, "user-1")).name == "Mine"

    @pytest.mark.asyncio
    async def test_delete(self, saved_search_manager):
        created = await saved_search_manager.create("user-1", SavedSearchCreate(name="Mine"))
        await saved_search_manager.delete(created.id, "user-1")
        with pytest.raises(AuthorizationError):
            await saved_search_manager.get(created.id, "user-1")


class TestSavedSearchUpdate:
    """Test cases for merge updates"""

    @pytest.mark.asyncio
    async def test_unset_fields_kept(self, saved_search_manager, land_filters):
        created = await saved_search_manager.create("user-1", SavedSearchCreate(name="Land", filters=land_filters))
        updated = await saved_search_manager.update(
            created.id, "user-1", SavedSearchUpdate(filters=SearchFiltersPatch(max_price=750000))
        )
        assert updated.filters.max_price == 750000
        assert updated.filters.min_price == 100000
        assert updated.filters.feature_ids == ["paved-road"]
        assert updated.name == "Land"

    @pytest.mark.asyncio
    async def test_explicit_null_clears(self, saved_search_manager, land_filters):
        created = await saved_search_manager.create("user-1", SavedSearchCreate(name="Land", filters=land_filters))
        updated = await saved_search_manager.update(
            created.id, "user-1", SavedSearchUpdate(filters=SearchFiltersPatch(min_price=None))
        )
        assert updated.filters.min_price is None
        assert updated.filters.max_price == 500000

    @pytest.mark.asyncio
    async def test_combinator_kept_when_not_patched(self, saved_search_manager):
        filters = SearchFilters(feature_ids=["water"], feature_combinator=FeatureCombinator.ALL)
        created = await saved_search_manager.create("user-1", SavedSearchCreate(name="All", filters=filters))
        updated = await saved_search_manager.update(
            created.id, "user-1", SavedSearchUpdate(filters=SearchFiltersPatch(term="road"))
        )
        assert updated.filters.feature_combinator == FeatureCombinator.ALL
        assert updated.filters.term == "road"

    @pytest.mark.asyncio
    async def test_rename_only(self, saved_search_manager, land_filters):
        created = await saved_search_manager.create("user-1", SavedSearchCreate(name="Land", filters=land_filters))
        updated = await saved_search_manager.update(created.id, "user-1", SavedSearchUpdate(name="Renamed"))
        assert updated.name == "Renamed"
        assert updated.filters == land_filters

    @pytest.mark.asyncio
    async def test_toggle_twice_restores(self, saved_search_manager):
        created = await saved_search_manager.create("user-1", SavedSearchCreate(name="Mine"))
        toggled = await saved_search_manager.toggle_notification(created.id, "user-1")
        assert toggled.is_active is True
        restored = await saved_search_manager.toggle_notification(created.id, "user-1")
        assert restored.is_active is False


class TestSavedSearchValidation:
    """Filters that could never execute are rejected before they are stored"""

    @pytest.mark.asyncio
    async def test_unknown_feature_rejected_on_create(self, saved_search_manager):
        with pytest.raises(ValidationError) as exc_info:
            await saved_search_manager.create(
                "user-1", SavedSearchCreate(name="Helipad", filters=SearchFilters(feature_ids=["helipad"]))
            )
        assert exc_info.value.field == "feature_ids"
        assert await saved_search_manager.list_for_user("user-1") == []

    @pytest.mark.asyncio
    async def test_unknown_location_rejected_on_create(self, saved_search_manager):
        with pytest.raises(ValidationError) as exc_info:
            await saved_search_manager.create(
                "user-1", SavedSearchCreate(name="Nowhere", filters=SearchFilters(district_id="atlantis"))
            )
        assert exc_info.value.field == "filters"

    @pytest.mark.asyncio
    async def test_patch_adding_radius_to_box_rejected(self, saved_search_manager):
        box = BoundingBoxFilter(north_east=GeoPoint(lat=42, lng=30), south_west=GeoPoint(lat=40, lng=28))
        created = await saved_search_manager.create(
            "user-1", SavedSearchCreate(name="Box", filters=SearchFilters(bounding_box=box))
        )
        radius = RadiusFilter(center=GeoPoint(lat=41, lng=29), radius_km=5)

        with pytest.raises(ValidationError) as exc_info:
            await saved_search_manager.update(
                created.id, "user-1", SavedSearchUpdate(filters=SearchFiltersPatch(radius=radius))
            )

        assert "mutually exclusive" in exc_info.value.message
        stored = await saved_search_manager.get(created.id, "user-1")
        assert stored.filters.radius is None
        assert stored.filters.bounding_box == box

    @pytest.mark.asyncio
    async def test_patch_swapping_box_for_radius(self, saved_search_manager):
        box = BoundingBoxFilter(north_east=GeoPoint(lat=42, lng=30), south_west=GeoPoint(lat=40, lng=28))
        created = await saved_search_manager.create(
            "user-1", SavedSearchCreate(name="Box", filters=SearchFilters(bounding_box=box))
        )
        radius = RadiusFilter(center=GeoPoint(lat=41, lng=29), radius_km=5)

        updated = await saved_search_manager.update(
            created.id, "user-1",
            SavedSearchUpdate(filters=SearchFiltersPatch(radius=radius, bounding_box=None)),
        )
        assert updated.filters.radius == radius
        assert updated.filters.bounding_box is None

    @pytest.mark.asyncio
    async def test_patch_with_unknown_feature_rejected(self, saved_search_manager, land_filters):
        created = await saved_search_manager.create("user-1", SavedSearchCreate(name="Land", filters=land_filters))
        with pytest.raises(ValidationError):
            await saved_search_manager.update(
                created.id, "user-1", SavedSearchUpdate(filters=SearchFiltersPatch(feature_ids=["helipad"]))
            )
        stored = await saved_search_manager.get(created.id, "user-1")
        assert stored.filters.feature_ids == ["paved-road"]


class TestSavedSearchMatching:
    """Test cases for executing and counting saved searches"""

    @pytest.mark.asyncio
    async def test_execute_matches_live_search(self, saved_search_manager, land_listings, land_filters):
        created = await saved_search_manager.create("user-1", SavedSearchCreate(name="Land", filters=land_filters))
        result = await saved_search_manager.execute(created.id, "user-1")
        assert result.total == 7
        assert result.available_filters is None

    @pytest.mark.asyncio
    async def test_execute_sees_new_listings(self, saved_search_manager, land_listings, land_filters, make_property):
        created = await saved_search_manager.create("user-1", SavedSearchCreate(name="Land", filters=land_filters))
        make_property(price=250000.0, feature_ids=["paved-road"])
        result = await saved_search_manager.execute(created.id, "user-1")
        assert result.total == 8

    @pytest.mark.asyncio
    async def test_match_count(self, saved_search_manager, land_listings, land_filters):
        created = await saved_search_manager.create("user-1", SavedSearchCreate(name="Land", filters=land_filters))
        count = await saved_search_manager.match_count(created.id, "user-1")
        assert count.count == 7
        assert count.approximate is False

    @pytest.mark.asyncio
    async def test_match_count_with_post_filter_is_upper_bound(self, saved_search_manager, make_property):
        make_property(price=100000.0, area=1000.0)
        make_property(price=500000.0, area=1000.0)
        filters = SearchFilters(max_price_per_area=200)
        created = await saved_search_manager.create("user-1", SavedSearchCreate(name="Cheap", filters=filters))

        count = await saved_search_manager.match_count(created.id, "user-1")
        executed = await saved_search_manager.execute(created.id, "user-1")
        assert count.approximate is True
        assert count.count == 2
        assert executed.total == 1
        assert count.count >= executed.total

    @pytest.mark.asyncio
    async def test_match_count_denied_for_other_user(self, saved_search_manager):
        created = await saved_search_manager.create("user-1", SavedSearchCreate(name="Mine"))
        with pytest.raises(AuthorizationError):
            await saved_search_manager.match_count(created.id, "user-2")


class TestNotificationSweep:
    """Test cases for the active saved search sweep"""

    @pytest.mark.asyncio
    async def test_only_active_searches(self, saved_search_manager):
        await saved_search_manager.create("user-1", SavedSearchCreate(name="On", notify_on_match=True))
        await saved_search_manager.create("user-2", SavedSearchCreate(name="Also on", notify_on_match=True))
        await saved_search_manager.create("user-1", SavedSearchCreate(name="Off"))

        active = await saved_search_manager.list_active_for_notification_sweep()
        assert {s.name for s in active} == {"On", "Also on"}

    @pytest.mark.asyncio
    async def test_sweep_counts_matches(self, saved_search_manager, land_listings, land_filters):
        created = await saved_search_manager.create(
            "user-1", SavedSearchCreate(name="Land", filters=land_filters, notify_on_match=True)
        )
        result = await saved_search_manager.sweep_match_counts()
        assert result["checked"] == 1
        assert result["matches"] == {created.id: 7}
        assert result["failed"] == {}

    @pytest.mark.asyncio
    async def test_sweep_records_failures(self, saved_search_manager, saved_search_store, land_listings):
        """A search referencing a since-deleted feature fails alone"""
        broken = await saved_search_store.create(
            "user-1", "Broken", dump_filters(SearchFilters(feature_ids=["helipad"])), True
        )
        healthy = await saved_search_manager.create(
            "user-1", SavedSearchCreate(name="Everything", notify_on_match=True)
        )

        result = await saved_search_manager.sweep_match_counts()
        assert result["checked"] == 2
        assert result["matches"] == {healthy.id: 25}
        assert list(result["failed"]) == [broken.id]
