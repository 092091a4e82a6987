"""
Composite conservation priority aggregation.

Rolls per-criterion results up into category raw scores, maps each weighted
category to a priority level, and sums the level points into a composite:

    raw >= high    -> High   (3)
    raw >= medium  -> Medium (2)
    raw > 0        -> Low    (1)
    raw == 0       -> None   (0)

Thresholds and overall tiers are configurable via
config/scoring_thresholds.yaml.
"""

import logging
from collections import OrderedDict
from pathlib import Path
from typing import Any, Optional, Sequence

import yaml

from .models import (
    PRIORITY_POINTS,
    Category,
    CategoryScore,
    CompositeScoreResult,
    CriterionOutcome,
    CriterionScore,
    PriorityLevel,
)

logger = logging.getLogger(__name__)


class CompositeScoreAggregator:
    """
    Category priority mapping and composite score calculation.

    Usage:
        aggregator = CompositeScoreAggregator()

        level, points = aggregator.map_to_priority("Wildlife Habitat", 7)
        result = aggregator.aggregate(parcel_id, breakdown)

    Attributes:
        config: Threshold configuration loaded from YAML.
        thresholds: Category name -> {"high": x, "medium": y}.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        project_root: Optional[Path] = None,
        config: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize the aggregator.

        Args:
            config_path: Path to scoring_thresholds.yaml. Auto-detected if not provided.
            project_root: Project root directory for config lookup.
            config: Explicit configuration dict; skips file loading.
        """
        if config_path is None:
            if project_root is None:
                project_root = Path(__file__).resolve().parents[3]
            config_path = project_root / "config" / "scoring_thresholds.yaml"

        self.config_path = Path(config_path)
        self.config = config if config is not None else self._load_config()
        self.thresholds: dict[str, dict[str, float]] = self.config.get("priority_thresholds", {})
        self.tiers: list[dict[str, Any]] = sorted(
            self.config.get("overall_tiers", []),
            key=lambda tier: tier.get("min", 0),
            reverse=True,
        )

        logger.debug("Initialized CompositeScoreAggregator (config: %s)", self.config_path)

    def _load_config(self) -> dict[str, Any]:
        """Load threshold configuration from YAML file."""
        if not self.config_path.exists():
            logger.warning("Config not found at %s, using defaults", self.config_path)
            return self._get_default_config()

        with open(self.config_path, "r") as f:
            config = yaml.safe_load(f) or {}

        logger.info("Loaded scoring thresholds from %s", self.config_path)
        return config

    @staticmethod
    def _get_default_config() -> dict[str, Any]:
        """Return default configuration if YAML not found."""
        return {
            "priority_thresholds": {
                Category.DRINKING_WATER.value: {"high": 2, "medium": 1},
                Category.WILDLIFE_HABITAT.value: {"high": 4, "medium": 2},
                Category.FORESTS_AND_WOODLANDS.value: {"high": 4, "medium": 2},
                Category.AGRICULTURAL.value: {"high": 3, "medium": 2},
            },
            "overall_tiers": [
                {"min": 10, "label": "Highest"},
                {"min": 8, "label": "Higher"},
                {"min": 6, "label": "High"},
                {"min": 3, "label": "Medium"},
                {"min": 0, "label": "Low"},
            ],
        }

    def is_weighted(self, category: Category | str) -> bool:
        return Category(category).value in self.thresholds

    def map_to_priority(self, category: Category | str, raw_score: float) -> tuple[PriorityLevel, int]:
        """
        Map a category raw score to a priority level.

        Args:
            category: Category the raw score belongs to.
            raw_score: Sum of earned criterion scores in the category.

        Returns:
            Tuple of (priority level, priority points). Unweighted categories
            always map to None.
        """
        bands = self.thresholds.get(Category(category).value)

        if not bands or raw_score <= 0:
            level = PriorityLevel.NONE
        elif raw_score >= bands.get("high", float("inf")):
            level = PriorityLevel.HIGH
        elif raw_score >= bands.get("medium", float("inf")):
            level = PriorityLevel.MEDIUM
        else:
            level = PriorityLevel.LOW

        return level, PRIORITY_POINTS[level]

    def classify_overall(self, composite_score: float) -> str:
        """
        Classify a composite score into an overall priority tier.

        Args:
            composite_score: Sum of category priority points.

        Returns:
            Tier label.
        """
        for tier in self.tiers:
            if composite_score >= tier.get("min", 0):
                return tier.get("label", "Unknown")
        return "Low"

    def aggregate(
        self,
        parcel_id: Optional[str],
        breakdown: Sequence[CriterionOutcome],
    ) -> CompositeScoreResult:
        """
        Build the composite result for a parcel.

        Only weighted categories with a positive raw score appear in
        ``categories``, each listing its matched criteria. The breakdown is
        kept as given.
        """
        grouped: OrderedDict[Category, list[CriterionOutcome]] = OrderedDict()
        for item in sorted(breakdown, key=lambda o: o.category.order):
            grouped.setdefault(item.category, []).append(item)

        categories: list[CategoryScore] = []
        for category, items in grouped.items():
            if not self.is_weighted(category):
                continue

            raw_score = sum(item.earned_score for item in items)
            if raw_score <= 0:
                continue

            level, points = self.map_to_priority(category, raw_score)
            categories.append(
                CategoryScore(
                    category=category,
                    raw_score=raw_score,
                    priority_level=level,
                    priority_score=points,
                    criteria=[
                        CriterionScore(name=item.name, earned_score=item.earned_score)
                        for item in items
                        if item.matched
                    ],
                )
            )

        composite = sum(c.priority_score for c in categories)
        overall = self.classify_overall(composite)

        logger.info(
            "Parcel %s: composite %d (%s) from %d categories",
            parcel_id,
            composite,
            overall,
            len(categories),
        )

        return CompositeScoreResult(
            parcel_id=parcel_id,
            composite_score=composite,
            overall_priority=overall,
            categories=categories,
            breakdown=list(breakdown),
        )
