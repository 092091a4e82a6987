"""
Parcel conservation scoring engine.

Two ways to score a parcel:

- Live (``score_geometry``): every implemented criterion is evaluated
  concurrently against the remote layers for the parcel boundary.
- Tabular (``score_parcel_id``): indicator values are looked up in the
  precomputed Hudsonia reference tables.

Both paths produce a breakdown of CriterionOutcome items which the
CompositeScoreAggregator rolls up into category priorities and a
composite score.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx

from ..acquisition import ConfigurationError, GeoServiceError, GeometryEnvelope, ParcelLocator
from .aggregator import CompositeScoreAggregator
from .criteria import Criterion
from .models import CompositeScoreResult, CriterionMetadata, CriterionOutcome, ScoringResult
from .reference_data import ReferenceScoreTable
from .registry import CriterionRegistry

logger = logging.getLogger(__name__)


class ParcelScoringEngine:
    """
    Orchestrates criterion evaluation and aggregation for one parcel.

    Usage:
        async with SpatialQueryClient() as query_client:
            engine = ParcelScoringEngine(CriterionRegistry.default(query_client))
            result = await engine.score_geometry(parcel_geometry, parcel_id="56.200-3-14")

        # Tabular mode needs no network access
        engine = ParcelScoringEngine(reference_table=ReferenceScoreTable())
        result = engine.score_parcel_id("56.200-3-14")

    Attributes:
        registry: Criteria evaluated in live mode.
        aggregator: Category and composite roll-up.
        reference_table: Precomputed scores for tabular mode.
    """

    def __init__(
        self,
        registry: Optional[CriterionRegistry] = None,
        aggregator: Optional[CompositeScoreAggregator] = None,
        reference_table: Optional[ReferenceScoreTable] = None,
    ) -> None:
        self.registry = registry
        self.aggregator = aggregator or CompositeScoreAggregator()
        self.reference_table = reference_table

    async def _evaluate_one(self, criterion: Criterion, geometry: GeometryEnvelope) -> CriterionOutcome:
        metadata = criterion.get_metadata()
        try:
            result = await criterion.evaluate(geometry)
        except ConfigurationError as e:
            logger.error("Criterion %s is misconfigured: %s", metadata.id, e)
            result = ScoringResult(earned_score=0, notes=metadata.notes, debug_info={"error": str(e)})
        except (GeoServiceError, httpx.HTTPError, ValueError) as e:
            logger.warning("Criterion %s failed, counted as unmatched: %s", metadata.id, e)
            result = ScoringResult(earned_score=0, notes=metadata.notes, debug_info={"error": str(e)})
        return CriterionOutcome.from_result(metadata, result)

    async def evaluate_criteria(self, geometry: GeometryEnvelope) -> list[CriterionOutcome]:
        """
        Evaluate every criterion in the registry.

        Implemented criteria run concurrently; unimplemented ones are listed
        as unmatched without any network call. The result is ordered by
        category, then catalog order.
        """
        if self.registry is None:
            raise ConfigurationError("Live scoring requires a criterion registry")

        criteria = self.registry.all()
        live = [c for c in criteria if c.get_metadata().implemented]

        logger.info("Evaluating %d of %d criteria", len(live), len(criteria))
        live_outcomes = await asyncio.gather(*(self._evaluate_one(c, geometry) for c in live))
        by_id = {outcome.criterion_id: outcome for outcome in live_outcomes}

        breakdown = []
        for criterion in criteria:
            outcome = by_id.get(criterion.id)
            if outcome is None:
                metadata = criterion.get_metadata()
                outcome = CriterionOutcome.from_result(
                    metadata,
                    ScoringResult(earned_score=0, notes=metadata.notes),
                )
            breakdown.append(outcome)

        # sorted() is stable, so catalog order survives within a category
        return sorted(breakdown, key=lambda o: o.category.order)

    async def score_geometry(
        self,
        geometry: GeometryEnvelope | dict[str, Any],
        parcel_id: Optional[str] = None,
    ) -> CompositeScoreResult:
        """
        Score a parcel boundary against the live criteria.

        Args:
            geometry: GeometryEnvelope or Esri JSON geometry dict.
            parcel_id: Optional identifier echoed in the result.

        Returns:
            CompositeScoreResult.

        Raises:
            GeometryError: If a geometry dict is malformed.
        """
        if not isinstance(geometry, GeometryEnvelope):
            geometry = GeometryEnvelope.from_esri(geometry)

        breakdown = await self.evaluate_criteria(geometry)
        return self.aggregator.aggregate(parcel_id, breakdown)

    def score_parcel_id(self, parcel_id: str) -> CompositeScoreResult:
        """
        Score a parcel from the precomputed reference tables.

        Args:
            parcel_id: Parcel identifier from the reference tables.

        Returns:
            CompositeScoreResult; all-zero with an empty breakdown when the
            parcel is not in the tables.
        """
        if self.reference_table is None:
            raise ConfigurationError("Tabular scoring requires a reference table")

        values = self.reference_table.get_scores(parcel_id)
        if values is None:
            logger.info("Parcel %s not found in reference tables", parcel_id)
            return self.aggregator.aggregate(parcel_id, [])

        breakdown = []
        for indicator in self.reference_table.indicators:
            value = values.get(indicator.column, 0)
            metadata = CriterionMetadata(
                id=indicator.id,
                name=indicator.name,
                category=indicator.category,
                max_score=indicator.max_score,
                data_source="Hudsonia parcel scores",
            )
            result = ScoringResult(earned_score=indicator.earned_score(value))
            breakdown.append(CriterionOutcome.from_result(metadata, result))

        breakdown.sort(key=lambda o: o.category.order)
        return self.aggregator.aggregate(parcel_id, breakdown)

    async def score_location(
        self,
        latitude: float,
        longitude: float,
        locator: Optional[ParcelLocator] = None,
    ) -> tuple[dict[str, Any], CompositeScoreResult]:
        """
        Find the tax parcel at a location and score its boundary.

        Args:
            latitude: WGS84 latitude.
            longitude: WGS84 longitude.
            locator: Open ParcelLocator; one is created if omitted.

        Returns:
            Tuple of (parcel info dict, CompositeScoreResult).

        Raises:
            ParcelNotFoundError: If no parcel is found at the location.
        """
        if locator is None:
            async with ParcelLocator() as own_locator:
                parcel = await own_locator.find_parcel(latitude, longitude)
        else:
            parcel = await locator.find_parcel(latitude, longitude)

        result = await self.score_geometry(parcel.geometry, parcel_id=parcel.parcel_id)
        return parcel.to_dict(), result
