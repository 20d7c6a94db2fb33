import pytest
from parcel_search.core.exceptions import NotFoundError, ValidationError
from parcel_search.models.property import ListingStatus, PropertyCategory, PropertySummary
from parcel_search.models.search import (
    BoundingBoxFilter, FeatureCombinator, GeoPoint, RadiusFilter, SearchFilters
)
from parcel_search.modules.geospatial.coordinates import Point
from parcel_search.modules.search.predicates import (
    AllOf, BooleanFlag, Equals, GeoBox, GeoRadius, ListingField, MembershipMode, PredicateTree,
    PricePerAreaFilter, Range, SetMembership, TextSearch, price_per_area
)
from conftest import BASE_TIME


def _listing(price, area):
    return PropertySummary(
        id="p", title="Parcel", price=price, category=PropertyCategory.LAND,
        status=ListingStatus.PUBLISHED, latitude=41.0, longitude=29.0, area=area,
        owner_id="owner-1", created_at=BASE_TIME, updated_at=BASE_TIME,
    )


class TestPredicates:
    """Test cases for predicate trees and post-filters"""

    def test_tree_is_immutable(self):
        tree = PredicateTree((Equals(ListingField.STATUS, "PUBLISHED"),))
        extended = tree.with_node(Range(ListingField.PRICE, 1, 2))
        assert len(tree) == 1
        assert extended.kinds() == ["equals", "range"]

    def test_without_removes_node_type(self):
        tree = PredicateTree((
            Equals(ListingField.STATUS, "PUBLISHED"),
            GeoRadius(Point(41.0, 29.0), 5),
        ))
        assert tree.without(GeoRadius).kinds() == ["equals"]

    def test_describe_all_of_features(self):
        node = AllOf((
            SetMembership(ListingField.FEATURES, ("water",)),
            SetMembership(ListingField.FEATURES, ("paved-road",)),
        ))
        assert node.describe() == [
            {"field": "features", "operator": "contains_all", "value": ["water", "paved-road"]}
        ]

    def test_describe_open_range(self):
        assert Range(ListingField.PRICE, min=100).describe() == [
            {"field": "price", "operator": "gte", "value": 100}
        ]

    def test_price_per_area_needs_positive_area(self):
        assert price_per_area(1000, 10) == 100
        assert price_per_area(1000, 0) is None
        assert price_per_area(1000, None) is None

    def test_price_per_area_filter(self):
        post_filter = PricePerAreaFilter(min=50, max=150)
        assert post_filter.apply(_listing(100000, 1000))
        assert not post_filter.apply(_listing(200000, 1000))
        assert not post_filter.apply(_listing(100000, None))


class TestFilterCompiler:
    """Test cases for compiling search filters into predicate trees"""

    @pytest.mark.asyncio
    async def test_empty_filters_only_restrict_status(self, compiler):
        compiled = await compiler.compile(SearchFilters())
        assert list(compiled.tree) == [Equals(ListingField.STATUS, "PUBLISHED")]
        assert compiled.post_filters == []
        assert compiled.warnings == []

    @pytest.mark.asyncio
    async def test_predicates_ordered_cheapest_first(self, compiler, locations):
        filters = SearchFilters(
            term="olive",
            min_price=1000,
            category=PropertyCategory.LAND,
            sub_district_id="sile-merkez",
            has_parking=True,
            feature_ids=["water"],
            bounding_box=BoundingBoxFilter(
                north_east=GeoPoint(lat=42, lng=30), south_west=GeoPoint(lat=40, lng=28)
            ),
        )
        compiled = await compiler.compile(filters)
        assert compiled.tree.kinds() == [
            "equals", "equals", "equals", "boolean", "range", "membership", "geo_box", "text"
        ]

    @pytest.mark.asyncio
    async def test_inverted_range_dropped_with_warning(self, compiler):
        compiled = await compiler.compile(SearchFilters(min_price=500, max_price=100, min_area=10))
        ranges = compiled.tree.find(Range)
        assert ranges == [Range(ListingField.AREA, 10, None)]
        assert len(compiled.warnings) == 1
        assert "price" in compiled.warnings[0]

    @pytest.mark.asyncio
    async def test_equal_bounds_kept(self, compiler):
        compiled = await compiler.compile(SearchFilters(min_rooms=3, max_rooms=3))
        assert compiled.tree.find(Range) == [Range(ListingField.ROOMS, 3, 3)]

    @pytest.mark.asyncio
    async def test_status_override_ignored_for_public_search(self, compiler):
        compiled = await compiler.compile(SearchFilters(status=ListingStatus.DRAFT))
        assert compiled.tree.find(Equals) == [Equals(ListingField.STATUS, "PUBLISHED")]
        assert any("DRAFT" in w for w in compiled.warnings)

    @pytest.mark.asyncio
    async def test_status_override_honored_when_privileged(self, compiler):
        compiled = await compiler.compile(SearchFilters(status=ListingStatus.SOLD), privileged=True)
        assert compiled.tree.find(Equals) == [Equals(ListingField.STATUS, "SOLD")]
        assert compiled.warnings == []

    @pytest.mark.asyncio
    async def test_base_status_collection(self, compiler):
        compiled = await compiler.compile(SearchFilters(), base_status=tuple(ListingStatus), privileged=True)
        membership = compiled.tree.find(SetMembership)[0]
        assert set(membership.values) == {"DRAFT", "PUBLISHED", "SOLD", "INACTIVE"}

    @pytest.mark.asyncio
    async def test_features_any(self, compiler):
        compiled = await compiler.compile(SearchFilters(feature_ids=["water", "paved-road", "water"]))
        assert compiled.tree.find(SetMembership) == [
            SetMembership(ListingField.FEATURES, ("water", "paved-road"), MembershipMode.ANY)
        ]

    @pytest.mark.asyncio
    async def test_features_all(self, compiler):
        compiled = await compiler.compile(SearchFilters(
            feature_ids=["water", "paved-road"], feature_combinator=FeatureCombinator.ALL
        ))
        all_of = compiled.tree.find(AllOf)[0]
        assert [child.values for child in all_of.children] == [("water",), ("paved-road",)]

    @pytest.mark.asyncio
    async def test_radius_and_box_conflict(self, compiler):
        # Unvalidated filters still cannot carry both geo shapes through compilation
        filters = SearchFilters.model_construct(
            radius=RadiusFilter(center=GeoPoint(lat=41, lng=29), radius_km=5),
            bounding_box=BoundingBoxFilter(
                north_east=GeoPoint(lat=42, lng=30), south_west=GeoPoint(lat=40, lng=28)
            ),
        )
        with pytest.raises(ValidationError):
            await compiler.compile(filters)

    @pytest.mark.asyncio
    async def test_radius_over_maximum(self, compiler):
        filters = SearchFilters(radius=RadiusFilter(center=GeoPoint(lat=41, lng=29), radius_km=150))
        with pytest.raises(ValidationError):
            await compiler.compile(filters)

    @pytest.mark.asyncio
    async def test_radius_center_out_of_range(self, compiler):
        filters = SearchFilters(radius=RadiusFilter(center=GeoPoint(lat=95, lng=29), radius_km=5))
        with pytest.raises(ValidationError):
            await compiler.compile(filters)

    @pytest.mark.asyncio
    async def test_radius_predicate(self, compiler):
        filters = SearchFilters(radius=RadiusFilter(center=GeoPoint(lat=41, lng=29), radius_km=5))
        compiled = await compiler.compile(filters)
        assert compiled.tree.find(GeoRadius) == [GeoRadius(Point(41, 29), 5)]

    @pytest.mark.asyncio
    async def test_district_expands_to_subtree(self, compiler, locations):
        compiled = await compiler.compile(SearchFilters(district_id="sile"))
        membership = compiled.tree.find(SetMembership)[0]
        assert membership.field == ListingField.LOCATION
        assert membership.values == ("sile", "sile-merkez")

    @pytest.mark.asyncio
    async def test_region_expands_all_levels(self, compiler, locations):
        compiled = await compiler.compile(SearchFilters(region_id="istanbul"))
        membership = compiled.tree.find(SetMembership)[0]
        assert set(membership.values) == {"istanbul", "sile", "catalca", "sile-merkez"}
        assert membership.values[0] == "istanbul"

    @pytest.mark.asyncio
    async def test_most_specific_location_wins(self, compiler, locations):
        compiled = await compiler.compile(SearchFilters(region_id="izmir", sub_district_id="sile-merkez"))
        assert compiled.tree.find(SetMembership) == []
        assert Equals(ListingField.LOCATION, "sile-merkez") in compiled.tree.find(Equals)

    @pytest.mark.asyncio
    async def test_unknown_location(self, compiler, locations):
        with pytest.raises(NotFoundError):
            await compiler.compile(SearchFilters(district_id="atlantis"))

    @pytest.mark.asyncio
    async def test_blank_term_skipped(self, compiler):
        compiled = await compiler.compile(SearchFilters(term="   "))
        assert compiled.tree.find(TextSearch) == []

    @pytest.mark.asyncio
    async def test_boolean_flags(self, compiler):
        compiled = await compiler.compile(SearchFilters(has_balcony=False, is_furnished=True))
        assert compiled.tree.find(BooleanFlag) == [
            BooleanFlag(ListingField.HAS_BALCONY, False),
            BooleanFlag(ListingField.IS_FURNISHED, True),
        ]

    @pytest.mark.asyncio
    async def test_price_per_area_becomes_post_filter(self, compiler):
        compiled = await compiler.compile(SearchFilters(min_price_per_area=100))
        assert compiled.post_filters == [PricePerAreaFilter(min=100, max=None)]
        assert compiled.tree.find(Range) == []

    @pytest.mark.asyncio
    async def test_inverted_price_per_area_dropped(self, compiler):
        compiled = await compiler.compile(SearchFilters(min_price_per_area=500, max_price_per_area=100))
        assert compiled.post_filters == []
        assert len(compiled.warnings) == 1
