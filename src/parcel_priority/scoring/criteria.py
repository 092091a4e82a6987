"""
Conservation criteria.

Each criterion scores one conservation indicator for a parcel by asking a
remote layer whether anything intersects the parcel (optionally within a
buffer distance). Most criteria differ only in configuration and are built
from the catalog table in ``registry.py``; the classes here cover the
control-flow variants:

- FeatureServiceCriterion: one ArcGIS layer, optional where clause and buffer.
- MultiLayerCriterion: several layers of one map service, met if any matches.
- WfsCriterion: a WFS 2.0 feature type.
- AdjacentProtectedLands / HamletProximity: fixed pipelines reused across
  categories.
- UnavailableCriterion: documented indicators with no live data source.

A criterion never raises for a remote failure. It reports the indicator as
not met and puts the reason in ``debug_info``.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from ..acquisition import ConfigurationError, GeometryEnvelope, QueryOutcome, SpatialQueryClient
from .models import Category, CriterionMetadata, ScoringResult

logger = logging.getLogger(__name__)

PAD_US_URL = (
    "https://services1.arcgis.com/ERdCHt0GP5kZ89ro/arcgis/rest/services/"
    "PAD_US3_0Combined/FeatureServer/0"
)
NYS_PLACE_POINTS_URL = (
    "https://gisservices.its.ny.gov/arcgis/rest/services/NYS_Place_Points/MapServer/0"
)

ONE_MILE_FEET = 5280


class Criterion(ABC):
    """
    Base class for all conservation criteria.

    Attributes:
        metadata: Static CriterionMetadata, immutable after construction.
    """

    def __init__(self, metadata: CriterionMetadata) -> None:
        self.metadata = metadata

    @property
    def id(self) -> str:
        return self.metadata.id

    def get_metadata(self) -> CriterionMetadata:
        return self.metadata

    @abstractmethod
    async def evaluate(self, geometry: GeometryEnvelope) -> ScoringResult:
        """
        Score the criterion for a parcel geometry.

        Args:
            geometry: Parcel boundary (or point).

        Returns:
            ScoringResult; never raises for remote service failures.
        """
        pass

    def _result_from(self, outcome: QueryOutcome) -> ScoringResult:
        earned = self.metadata.max_score if outcome.matched else 0
        return ScoringResult(
            earned_score=earned,
            notes=self.metadata.notes,
            debug_info=outcome.to_debug_info(),
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, category={self.metadata.category.value!r})"


class FeatureServiceCriterion(Criterion):
    """
    Criterion met when an ArcGIS layer intersects the parcel.

    Args:
        metadata: Criterion metadata; ``service_url`` is required.
        query_client: Open SpatialQueryClient shared by all criteria.
        where_clause: Optional attribute filter applied by the service.
        buffer_feet: Optional buffer; 0 means "touching" and skips buffering.
        layer_id: Layer index when ``service_url`` names a service, not a layer.
    """

    def __init__(
        self,
        metadata: CriterionMetadata,
        query_client: SpatialQueryClient,
        where_clause: Optional[str] = None,
        buffer_feet: Optional[float] = None,
        layer_id: Optional[int] = None,
    ) -> None:
        super().__init__(metadata)
        if not metadata.service_url:
            raise ConfigurationError(
                f"Criterion {metadata.id} has no service URL",
                criterion_id=metadata.id,
            )
        self.query_client = query_client
        self.where_clause = where_clause
        self.buffer_feet = buffer_feet
        self.layer_id = layer_id

    async def check_intersection(
        self,
        geometry: GeometryEnvelope,
        service_url: Optional[str] = None,
        layer_id: Optional[int] = None,
        where_clause: Optional[str] = None,
        buffer_feet: Optional[float] = None,
    ) -> QueryOutcome:
        """Query a layer, defaulting to this criterion's service URL."""
        url = service_url or self.metadata.service_url
        if not url:
            logger.error("No service URL provided for criterion %s", self.id)
            return QueryOutcome(url="", error="no service URL configured")

        return await self.query_client.query_outcome(
            url,
            geometry,
            layer_id=layer_id,
            where_clause=where_clause,
            buffer_feet=buffer_feet,
        )

    async def default_evaluation(
        self,
        geometry: GeometryEnvelope,
        where_clause: Optional[str] = None,
        buffer_feet: Optional[float] = None,
        layer_id: Optional[int] = None,
        service_url: Optional[str] = None,
    ) -> ScoringResult:
        """Full max score when the layer intersects, otherwise 0."""
        outcome = await self.check_intersection(
            geometry,
            service_url=service_url,
            layer_id=layer_id,
            where_clause=where_clause,
            buffer_feet=buffer_feet,
        )
        return self._result_from(outcome)

    async def evaluate(self, geometry: GeometryEnvelope) -> ScoringResult:
        return await self.default_evaluation(
            geometry,
            where_clause=self.where_clause,
            buffer_feet=self.buffer_feet,
            layer_id=self.layer_id,
        )


class MultiLayerCriterion(FeatureServiceCriterion):
    """
    Criterion spread over several layers of one map service.

    Layers are queried in order and evaluation stops at the first match.
    The criterion is unmatched only when no layer matched.
    """

    def __init__(
        self,
        metadata: CriterionMetadata,
        query_client: SpatialQueryClient,
        layer_ids: Sequence[int],
        where_clause: Optional[str] = None,
        buffer_feet: Optional[float] = None,
    ) -> None:
        super().__init__(metadata, query_client, where_clause=where_clause, buffer_feet=buffer_feet)
        if not layer_ids:
            raise ConfigurationError(
                f"Criterion {metadata.id} has no layers to query",
                criterion_id=metadata.id,
            )
        self.layer_ids = tuple(layer_ids)

    @property
    def map_service_url(self) -> str:
        """Service URL trimmed back to the ``/MapServer`` root."""
        url = self.metadata.service_url.rstrip("/")
        marker = "/MapServer"
        if marker in url:
            return url.split(marker)[0] + marker
        return url

    async def evaluate(self, geometry: GeometryEnvelope) -> ScoringResult:
        layers: dict[int, dict] = {}
        for layer_id in self.layer_ids:
            outcome = await self.check_intersection(
                geometry,
                service_url=self.map_service_url,
                layer_id=layer_id,
                where_clause=self.where_clause,
                buffer_feet=self.buffer_feet,
            )
            layers[layer_id] = outcome.to_debug_info()
            if outcome.matched:
                return ScoringResult(
                    earned_score=self.metadata.max_score,
                    notes=self.metadata.notes,
                    debug_info={"matched_layer": layer_id, "layers": layers},
                )

        return ScoringResult(
            earned_score=0,
            notes=self.metadata.notes,
            debug_info={"layers": layers},
        )


class WfsCriterion(Criterion):
    """
    Criterion backed by a WFS 2.0 feature type.

    Args:
        metadata: Criterion metadata; ``service_url`` is the WFS endpoint.
        query_client: Open SpatialQueryClient.
        type_name: Feature type name, e.g. ``ulster:habitat_cores``.
        geometry_field: Geometry attribute used in the CQL filter.
    """

    def __init__(
        self,
        metadata: CriterionMetadata,
        query_client: SpatialQueryClient,
        type_name: str,
        geometry_field: str = "geom",
    ) -> None:
        super().__init__(metadata)
        if not metadata.service_url:
            raise ConfigurationError(
                f"Criterion {metadata.id} has no WFS endpoint",
                criterion_id=metadata.id,
            )
        self.query_client = query_client
        self.type_name = type_name
        self.geometry_field = geometry_field

    async def evaluate(self, geometry: GeometryEnvelope) -> ScoringResult:
        outcome = await self.query_client.query_wfs_outcome(
            self.metadata.service_url,
            self.type_name,
            geometry,
            geometry_field=self.geometry_field,
        )
        return self._result_from(outcome)


class AdjacentProtectedLands(FeatureServiceCriterion):
    """
    Parcel touches protected land in PAD-US.

    Scored in several categories with different weights, so category and
    max score are constructor parameters. A zero buffer means the parcel
    boundary itself is tested; no geometry service call is made.
    """

    def __init__(
        self,
        query_client: SpatialQueryClient,
        category: Category | str = Category.RECREATION_AND_TRAILS,
        max_score: float = 1.5,
        criterion_id: Optional[str] = None,
        name: str = "Adjacent to protected land",
    ) -> None:
        category = Category(category)
        if criterion_id is None:
            slug = category.value.lower().replace(" ", "-")
            criterion_id = f"adjacent-protected-lands-{slug}"
        super().__init__(
            CriterionMetadata(
                id=criterion_id,
                name=name,
                category=category,
                max_score=max_score,
                service_url=PAD_US_URL,
                data_source="USGS PAD-US 3.0",
                implemented=True,
                notes="Adjacent to protected land (PAD-US)",
            ),
            query_client,
            buffer_feet=0,
        )


class HamletProximity(FeatureServiceCriterion):
    """Parcel lies within one mile of a hamlet center."""

    def __init__(self, query_client: SpatialQueryClient) -> None:
        super().__init__(
            CriterionMetadata(
                id="hamlet-proximity",
                name="Within 1 mile of hamlet centers",
                category=Category.RECREATION_AND_TRAILS,
                max_score=1,
                service_url=NYS_PLACE_POINTS_URL,
                data_source="NYS Place Points",
                implemented=True,
                notes="Proximity to hamlet centers enhances community access",
            ),
            query_client,
            where_clause="PLACETYPE = 'Hamlet'",
            buffer_feet=ONE_MILE_FEET,
        )


class UnavailableCriterion(Criterion):
    """
    Documented indicator with no live data source yet.

    Listed in the breakdown so the checklist is complete; never evaluated
    against a remote service.
    """

    def __init__(self, metadata: CriterionMetadata) -> None:
        if metadata.implemented:
            metadata = metadata.model_copy(update={"implemented": False})
        super().__init__(metadata)

    async def evaluate(self, geometry: GeometryEnvelope) -> ScoringResult:
        return ScoringResult(
            earned_score=0,
            notes=self.metadata.notes or "No data source available",
        )
