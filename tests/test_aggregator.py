"""Unit tests for aggregator.py: category priorities and composite score."""

import pytest

from parcel_priority.scoring import (
    Category,
    CompositeScoreAggregator,
    CriterionMetadata,
    CriterionOutcome,
    PriorityLevel,
    ScoringResult,
)


def _outcome(category: Category, earned: float, name: str = "criterion", max_score: float = 1):
    metadata = CriterionMetadata(
        id=f"{name}-{category.order}",
        name=name,
        category=category,
        max_score=max_score,
    )
    return CriterionOutcome.from_result(metadata, ScoringResult(earned_score=earned))


@pytest.fixture
def aggregator(tmp_path):
    # Point at a missing file so the built-in defaults are used
    return CompositeScoreAggregator(config_path=tmp_path / "missing.yaml")


# =========================================================================
# Priority mapping
# =========================================================================

class TestMapToPriority:
    def test_forests_three_is_medium(self, aggregator):
        assert aggregator.map_to_priority("Forests and Woodlands", 3) == (PriorityLevel.MEDIUM, 2)

    @pytest.mark.parametrize("raw", [6, 7, 8, 9])
    def test_wildlife_six_to_nine_is_high(self, aggregator, raw):
        assert aggregator.map_to_priority(Category.WILDLIFE_HABITAT, raw) == (PriorityLevel.HIGH, 3)

    def test_zero_is_none(self, aggregator):
        for category in ("Drinking Water", "Wildlife Habitat", "Forests and Woodlands", "Agricultural"):
            assert aggregator.map_to_priority(category, 0) == (PriorityLevel.NONE, 0)

    def test_unweighted_category_is_none(self, aggregator):
        assert aggregator.map_to_priority(Category.SCENIC_AREAS, 5) == (PriorityLevel.NONE, 0)
        assert not aggregator.is_weighted(Category.HISTORIC_AND_CULTURAL)

    def test_below_medium_is_low(self, aggregator):
        assert aggregator.map_to_priority(Category.AGRICULTURAL, 1) == (PriorityLevel.LOW, 1)


class TestClassifyOverall:
    @pytest.mark.parametrize(
        "score,label",
        [(12, "Highest"), (10, "Highest"), (9, "Higher"), (6, "High"), (4, "Medium"), (2, "Low"), (0, "Low")],
    )
    def test_tiers(self, aggregator, score, label):
        assert aggregator.classify_overall(score) == label


# =========================================================================
# Configuration
# =========================================================================

class TestConfig:
    def test_yaml_thresholds_override_defaults(self, tmp_path):
        config_path = tmp_path / "scoring_thresholds.yaml"
        config_path.write_text(
            "priority_thresholds:\n"
            "  Scenic Areas:\n"
            "    high: 2\n"
            "    medium: 1\n"
            "overall_tiers:\n"
            "  - {min: 3, label: Top}\n"
            "  - {min: 0, label: Rest}\n"
        )

        aggregator = CompositeScoreAggregator(config_path=config_path)

        assert aggregator.map_to_priority(Category.SCENIC_AREAS, 2) == (PriorityLevel.HIGH, 3)
        assert not aggregator.is_weighted(Category.WILDLIFE_HABITAT)
        assert aggregator.classify_overall(3) == "Top"

    def test_project_config_matches_defaults(self):
        aggregator = CompositeScoreAggregator()
        assert aggregator.thresholds == CompositeScoreAggregator._get_default_config()["priority_thresholds"]


# =========================================================================
# Aggregation
# =========================================================================

class TestAggregate:
    def test_composite_is_sum_of_category_points(self, aggregator):
        breakdown = [
            _outcome(Category.WILDLIFE_HABITAT, 1, "a"),
            _outcome(Category.WILDLIFE_HABITAT, 1, "b"),
            _outcome(Category.WILDLIFE_HABITAT, 1, "c"),
            _outcome(Category.WILDLIFE_HABITAT, 1, "d"),
            _outcome(Category.FORESTS_AND_WOODLANDS, 1, "e"),
            _outcome(Category.DRINKING_WATER, 1, "f"),
        ]

        result = aggregator.aggregate("p1", breakdown)

        assert result.composite_score == sum(c.priority_score for c in result.categories)
        assert result.composite_score == 3 + 1 + 2
        for category_score in result.categories:
            assert category_score.raw_score == sum(c.earned_score for c in category_score.criteria)

    def test_zero_and_unweighted_categories_are_omitted(self, aggregator):
        breakdown = [
            _outcome(Category.DRINKING_WATER, 0, "a"),
            _outcome(Category.HISTORIC_AND_CULTURAL, 1, "b"),
            _outcome(Category.AGRICULTURAL, 1, "c"),
        ]

        result = aggregator.aggregate("p1", breakdown)

        assert [c.category for c in result.categories] == [Category.AGRICULTURAL]
        assert len(result.breakdown) == 3
        assert result.total_score == 2

    def test_only_matched_criteria_listed(self, aggregator):
        breakdown = [
            _outcome(Category.FORESTS_AND_WOODLANDS, 1, "met"),
            _outcome(Category.FORESTS_AND_WOODLANDS, 0, "unmet"),
        ]

        result = aggregator.aggregate(None, breakdown)

        assert [c.name for c in result.categories[0].criteria] == ["met"]

    def test_categories_in_display_order(self, aggregator):
        breakdown = [
            _outcome(Category.AGRICULTURAL, 1, "a"),
            _outcome(Category.DRINKING_WATER, 1, "b"),
        ]

        result = aggregator.aggregate("p1", breakdown)

        assert [c.category for c in result.categories] == [Category.DRINKING_WATER, Category.AGRICULTURAL]

    def test_composite_bounded_by_weighted_categories(self, aggregator):
        breakdown = [
            _outcome(category, 10, "all", max_score=10)
            for category in Category
        ]

        result = aggregator.aggregate("p1", breakdown)

        assert result.composite_score == 12
        assert result.overall_priority == "Highest"

    def test_empty_breakdown(self, aggregator):
        result = aggregator.aggregate("p1", [])

        assert result.composite_score == 0
        assert result.categories == []
        assert result.overall_priority == "Low"
