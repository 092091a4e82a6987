"""
Conservation Priority Scoring Module.

This module scores parcels against conservation criteria grouped into
eight categories and rolls the results up into a composite priority.
"""

from .aggregator import CompositeScoreAggregator
from .criteria import (
    AdjacentProtectedLands,
    Criterion,
    FeatureServiceCriterion,
    HamletProximity,
    MultiLayerCriterion,
    UnavailableCriterion,
    WfsCriterion,
)
from .engine import ParcelScoringEngine
from .models import (
    PRIORITY_POINTS,
    Category,
    CategoryScore,
    CompositeScoreResult,
    CriterionMetadata,
    CriterionOutcome,
    CriterionScore,
    PriorityLevel,
    ScoringResult,
)
from .reference_data import HUDSONIA_SOURCES, ReferenceScoreTable, ReferenceSource, TabularIndicator
from .registry import CRITERIA_CATALOG, CriterionRegistry, CriterionSpec

__all__ = [
    # Models
    "Category",
    "CategoryScore",
    "CompositeScoreResult",
    "CriterionMetadata",
    "CriterionOutcome",
    "CriterionScore",
    "PRIORITY_POINTS",
    "PriorityLevel",
    "ScoringResult",
    # Criteria
    "AdjacentProtectedLands",
    "Criterion",
    "FeatureServiceCriterion",
    "HamletProximity",
    "MultiLayerCriterion",
    "UnavailableCriterion",
    "WfsCriterion",
    "CRITERIA_CATALOG",
    "CriterionRegistry",
    "CriterionSpec",
    # Tabular reference data
    "HUDSONIA_SOURCES",
    "ReferenceScoreTable",
    "ReferenceSource",
    "TabularIndicator",
    # Scoring
    "CompositeScoreAggregator",
    "ParcelScoringEngine",
]
