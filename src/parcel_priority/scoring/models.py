"""
Data models for conservation priority scoring.

CriterionMetadata is static, validated configuration (pydantic). The
per-evaluation results are plain dataclasses: ScoringResult for one
criterion, CategoryScore for a category roll-up and CompositeScoreResult
for the whole parcel.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Category(str, Enum):
    """Conservation categories, in display order."""

    DRINKING_WATER = "Drinking Water"
    WILDLIFE_HABITAT = "Wildlife Habitat"
    FORESTS_AND_WOODLANDS = "Forests and Woodlands"
    STREAMS_AND_WETLANDS = "Streams and Wetlands"
    RECREATION_AND_TRAILS = "Recreation and Trails"
    HISTORIC_AND_CULTURAL = "Historic and Cultural"
    AGRICULTURAL = "Agricultural"
    SCENIC_AREAS = "Scenic Areas"

    @property
    def order(self) -> int:
        return list(Category).index(self)


class PriorityLevel(str, Enum):
    """Category priority level."""

    NONE = "None"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


# Fixed for every category, independent of the raw-score thresholds
PRIORITY_POINTS = {
    PriorityLevel.NONE: 0,
    PriorityLevel.LOW: 1,
    PriorityLevel.MEDIUM: 2,
    PriorityLevel.HIGH: 3,
}


class CriterionMetadata(BaseModel):
    """Static description of one scoreable conservation indicator."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Stable unique key")
    name: str = Field(..., min_length=1, description="Human-readable label")
    category: Category = Field(..., description="Category the criterion scores into")
    max_score: float = Field(..., gt=0, description="Points earned when met")
    service_url: Optional[str] = Field(
        default=None,
        description="Feature service, map service layer or WFS endpoint",
    )
    data_source: Optional[str] = Field(default=None, description="Publishing agency or dataset")
    implemented: bool = Field(default=True, description="False for documented but unavailable criteria")
    notes: Optional[str] = Field(default=None, description="Free-text notes")


@dataclass(frozen=True)
class ScoringResult:
    """
    Outcome of evaluating one criterion.

    The earned score is explicit; ``met`` is derived from it, so tabular
    indicators can report multi-point values (Pools = 2) without a
    separate code path.
    """

    earned_score: float = 0
    notes: Optional[str] = None
    debug_info: Optional[dict[str, Any]] = None

    @property
    def met(self) -> bool:
        return self.earned_score > 0


@dataclass(frozen=True)
class CriterionOutcome:
    """One line of the full breakdown: a criterion and what it earned."""

    criterion_id: str
    name: str
    category: Category
    max_score: float
    earned_score: float
    implemented: bool = True
    notes: Optional[str] = None
    debug_info: Optional[dict[str, Any]] = None

    @property
    def matched(self) -> bool:
        return self.earned_score > 0

    @classmethod
    def from_result(cls, metadata: CriterionMetadata, result: ScoringResult) -> "CriterionOutcome":
        return cls(
            criterion_id=metadata.id,
            name=metadata.name,
            category=metadata.category,
            max_score=metadata.max_score,
            earned_score=result.earned_score,
            implemented=metadata.implemented,
            notes=result.notes,
            debug_info=result.debug_info,
        )

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.criterion_id,
            "category": self.category.value,
            "name": self.name,
            "maxScore": self.max_score,
            "earnedScore": self.earned_score,
            "matched": self.matched,
            "implemented": self.implemented,
        }
        if self.notes:
            data["notes"] = self.notes
        if self.debug_info:
            data["debugInfo"] = self.debug_info
        return data


@dataclass(frozen=True)
class CriterionScore:
    """A matched criterion inside a category roll-up."""

    name: str
    earned_score: float


@dataclass
class CategoryScore:
    """Roll-up of one category's matched criteria."""

    category: Category
    raw_score: float
    priority_level: PriorityLevel
    priority_score: int
    criteria: list[CriterionScore] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "rawScore": self.raw_score,
            "priorityLevel": self.priority_level.value,
            "priorityScore": self.priority_score,
            "criteria": [
                {"name": c.name, "earnedScore": c.earned_score} for c in self.criteria
            ],
        }


@dataclass
class CompositeScoreResult:
    """Composite conservation priority of a parcel."""

    parcel_id: Optional[str]
    composite_score: int
    overall_priority: str
    categories: list[CategoryScore] = field(default_factory=list)
    breakdown: list[CriterionOutcome] = field(default_factory=list)

    @property
    def total_score(self) -> float:
        """Sum of every earned score, weighted category or not."""
        return sum(item.earned_score for item in self.breakdown)

    @property
    def max_possible_score(self) -> float:
        return sum(item.max_score for item in self.breakdown)

    @property
    def criteria_matched(self) -> list[str]:
        return [item.name for item in self.breakdown if item.matched]

    def get_category(self, category: Category | str) -> Optional[CategoryScore]:
        """Return the roll-up for a category, or None if it has no matches."""
        category = Category(category)
        for category_score in self.categories:
            if category_score.category == category:
                return category_score
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-ready dict for API responses."""
        return {
            "parcelId": self.parcel_id,
            "compositeScore": self.composite_score,
            "overallPriority": self.overall_priority,
            "totalScore": self.total_score,
            "maxPossibleScore": self.max_possible_score,
            "categories": [c.to_dict() for c in self.categories],
            "criteriaMatched": self.criteria_matched,
            "breakdown": [item.to_dict() for item in self.breakdown],
        }
