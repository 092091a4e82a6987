"""
Catalog of conservation criteria.

The catalog is a declarative table: one CriterionSpec per indicator, in
display order within each category. Specs for live layers become
FeatureServiceCriterion / MultiLayerCriterion / WfsCriterion instances;
specs marked ``implemented=False`` become UnavailableCriterion entries
that only appear in the breakdown checklist.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

from ..acquisition import SpatialQueryClient
from .criteria import (
    AdjacentProtectedLands,
    Criterion,
    FeatureServiceCriterion,
    HamletProximity,
    MultiLayerCriterion,
    UnavailableCriterion,
    WfsCriterion,
)
from .models import Category, CriterionMetadata

logger = logging.getLogger(__name__)

DEC_HVNRM = "https://gisservices.dec.ny.gov/arcgis/rest/services/hvnrm"
DEC_BIODIVERSITY = f"{DEC_HVNRM}/hvnrm_biodiversity/MapServer"
DEC_WETLANDS = (
    "https://gisservices.dec.ny.gov/arcgis/rest/services/erm/"
    "informational_freshwater_wetlands/MapServer/0"
)

# Catalog row kinds
FEATURE = "feature"
MULTI_LAYER = "multi_layer"
WFS = "wfs"
ADJACENT_PROTECTED_LANDS = "adjacent_protected_lands"
HAMLET_PROXIMITY = "hamlet_proximity"


@dataclass(frozen=True)
class CriterionSpec:
    """One row of the criteria catalog."""

    id: str
    name: str
    category: Category
    max_score: float = 1
    service_url: Optional[str] = None
    implemented: bool = True
    kind: str = FEATURE
    where_clause: Optional[str] = None
    buffer_feet: Optional[float] = None
    layer_ids: tuple[int, ...] = ()
    wfs_type_name: Optional[str] = None
    data_source: Optional[str] = None
    notes: Optional[str] = None

    def metadata(self) -> CriterionMetadata:
        return CriterionMetadata(
            id=self.id,
            name=self.name,
            category=self.category,
            max_score=self.max_score,
            service_url=self.service_url,
            data_source=self.data_source,
            implemented=self.implemented,
            notes=self.notes,
        )

    def build(self, query_client: SpatialQueryClient) -> Criterion:
        """Instantiate the criterion this row describes."""
        if not self.implemented:
            return UnavailableCriterion(self.metadata())

        if self.kind == ADJACENT_PROTECTED_LANDS:
            return AdjacentProtectedLands(
                query_client,
                category=self.category,
                max_score=self.max_score,
                criterion_id=self.id,
                name=self.name,
            )
        if self.kind == HAMLET_PROXIMITY:
            return HamletProximity(query_client)
        if self.kind == MULTI_LAYER:
            return MultiLayerCriterion(
                self.metadata(),
                query_client,
                layer_ids=self.layer_ids,
                where_clause=self.where_clause,
                buffer_feet=self.buffer_feet,
            )
        if self.kind == WFS:
            return WfsCriterion(self.metadata(), query_client, type_name=self.wfs_type_name or "")
        if self.kind == FEATURE:
            return FeatureServiceCriterion(
                self.metadata(),
                query_client,
                where_clause=self.where_clause,
                buffer_feet=self.buffer_feet,
            )
        raise ValueError(f"Unknown criterion kind {self.kind!r} for {self.id}")


def _unavailable(criterion_id: str, name: str, category: Category, max_score: float = 1) -> CriterionSpec:
    return CriterionSpec(id=criterion_id, name=name, category=category, max_score=max_score, implemented=False)


CRITERIA_CATALOG: tuple[CriterionSpec, ...] = (
    # Drinking Water
    CriterionSpec(
        id="epa-principal-aquifers",
        name="EPA Principal Aquifers",
        category=Category.DRINKING_WATER,
        service_url="https://geopub.epa.gov/arcgis/rest/services/NEPAssist/Water/MapServer/6",
        implemented=False,
        data_source="EPA NEPAssist",
        notes="Principal aquifers for drinking water",
    ),
    _unavailable("bedrock-aquifers", "Bedrock Aquifers (Vly School Rondout)", Category.DRINKING_WATER),
    _unavailable("ashokan-watershed", "Ashokan Watershed", Category.DRINKING_WATER),
    CriterionSpec(
        id="dec-class-a-streams",
        name="DEC Class A Streams",
        category=Category.DRINKING_WATER,
        service_url=f"{DEC_HVNRM}/hvnrm_streams_and_watersheds/MapServer/9",
        # A/AA streams, -S suffix is the special designation
        where_clause=(
            "CLASSIFICA IN ('A', 'A-S', 'AA', 'AA-S') "
            "OR CLASSIFICA LIKE 'AA%' OR CLASSIFICA LIKE 'A-%'"
        ),
        # Streams are lines; riparian buffer for drinking water protection
        buffer_feet=500,
        data_source="NYS DEC",
        notes="Streams classified for drinking water usage",
    ),
    # Wildlife Habitat
    CriterionSpec(
        id="dec-sbas",
        name="DEC Significant Biodiversity Areas (SBAs)",
        category=Category.WILDLIFE_HABITAT,
        service_url=f"{DEC_BIODIVERSITY}/5",
        data_source="NYS DEC",
        notes="Significant Biodiversity Areas in the Hudson River Estuary corridor",
    ),
    CriterionSpec(
        id="nynhp-rare-animals",
        name="NYNHP Important Areas for Rare Animals",
        category=Category.WILDLIFE_HABITAT,
        service_url=DEC_BIODIVERSITY,
        kind=MULTI_LAYER,
        layer_ids=(0, 1, 2, 3),
        data_source="NY Natural Heritage Program",
    ),
    CriterionSpec(
        id="audubon-ibas",
        name="Audubon Important Bird Areas",
        category=Category.WILDLIFE_HABITAT,
        service_url=f"{DEC_BIODIVERSITY}/9",
        data_source="Audubon New York",
    ),
    CriterionSpec(
        id="nynhp-significant-communities",
        name="NYNHP Significant Communities",
        category=Category.WILDLIFE_HABITAT,
        service_url=f"{DEC_BIODIVERSITY}/7",
        data_source="NY Natural Heritage Program",
    ),
    CriterionSpec(
        id="wetland-300ft-buffer",
        name="Wetland with 300' buffer",
        category=Category.WILDLIFE_HABITAT,
        service_url=DEC_WETLANDS,
        buffer_feet=300,
        data_source="NYS DEC",
        notes="State regulated freshwater wetlands with 300ft buffer",
    ),
    _unavailable("tnc-resilient-sites", "TNC Resilient Sites", Category.WILDLIFE_HABITAT),
    _unavailable("nynhp-modeled-rare-species", "NYNHP Modeled Rare Species", Category.WILDLIFE_HABITAT, 1.5),
    _unavailable("habitat-cores", "Ulster County Habitat Cores", Category.WILDLIFE_HABITAT),
    _unavailable("vernal-pools-750ft", "Vernal Pool with 750' buffer", Category.WILDLIFE_HABITAT),
    _unavailable(
        "hudsonia-crest-ledge-talus",
        "Hudsonia Mapped Crest/ledge/talus w/600' buffer",
        Category.WILDLIFE_HABITAT,
    ),
    # Forests and Woodlands
    _unavailable("tnc-matrix-forest", "TNC Matrix Forest Blocks or Linkage Zones", Category.FORESTS_AND_WOODLANDS),
    _unavailable("nynhp-core-forests", "NYNHP Core Forests", Category.FORESTS_AND_WOODLANDS),
    _unavailable(
        "nynhp-high-ranking-forests",
        "NYNHP High Ranking Forests (60+ percentile)",
        Category.FORESTS_AND_WOODLANDS,
    ),
    _unavailable("nynhp-roadless-blocks", "NYNHP Roadless Blocks (100+ acres)", Category.FORESTS_AND_WOODLANDS),
    CriterionSpec(
        id="nynhp-rare-plants",
        name="NYNHP Important Areas for Rare Plants",
        category=Category.FORESTS_AND_WOODLANDS,
        service_url=f"{DEC_BIODIVERSITY}/1",
        data_source="NY Natural Heritage Program",
    ),
    CriterionSpec(
        id="adjacent-protected-lands-forests-and-woodlands",
        name="Adjacent to protected land",
        category=Category.FORESTS_AND_WOODLANDS,
        max_score=1,
        kind=ADJACENT_PROTECTED_LANDS,
    ),
    # Streams and Wetlands
    CriterionSpec(
        id="wetland-100ft-buffer",
        name="Wetland with 100' buffer",
        category=Category.STREAMS_AND_WETLANDS,
        service_url=DEC_WETLANDS,
        buffer_feet=100,
        data_source="NYS DEC",
        notes="State regulated freshwater wetlands with 100ft buffer",
    ),
    CriterionSpec(
        id="nynhp-fish-areas",
        name="NYNHP Important Areas for Fish",
        category=Category.STREAMS_AND_WETLANDS,
        service_url=f"{DEC_BIODIVERSITY}/6",
        data_source="NY Natural Heritage Program",
        notes="Important areas for migratory fish",
    ),
    CriterionSpec(
        id="fema-flood-zones",
        name="FEMA Flood Hazard Areas",
        category=Category.STREAMS_AND_WETLANDS,
        service_url="https://hazards.fema.gov/arcgis/rest/services/public/NFHL/MapServer/28",
        # Special Flood Hazard Areas only (A, AE, VE...); excludes zone X, B, C
        where_clause="SFHA_TF = 'T'",
        data_source="FEMA NFHL",
        notes="FEMA Special Flood Hazard Areas",
    ),
    CriterionSpec(
        id="hydric-soils",
        name="NRCS Hydric Soils",
        category=Category.STREAMS_AND_WETLANDS,
        service_url="https://landscape11.arcgis.com/arcgis/rest/services/USA_Soils_Map_Units/MapServer/0",
        data_source="NRCS SSURGO",
        notes="Intersection with mapped soil units",
    ),
    _unavailable(
        "nynhp-riparian-buffers",
        "NYNHP Riparian Buffers or w/in 100' of stream or 650' of Rondout Creek and tribs",
        Category.STREAMS_AND_WETLANDS,
    ),
    # Recreation and Trails
    CriterionSpec(
        id="adjacent-protected-lands-recreation-and-trails",
        name="Adjacent to protected land",
        category=Category.RECREATION_AND_TRAILS,
        max_score=1.5,
        kind=ADJACENT_PROTECTED_LANDS,
    ),
    _unavailable("adjacent-existing-trails", "Adjacent to Existing Trails", Category.RECREATION_AND_TRAILS),
    _unavailable("adjacent-mohonk-preserve", "Adjacent to Mohonk Preserve", Category.RECREATION_AND_TRAILS),
    _unavailable("trail-connection-area", "Within potential trail connection area", Category.RECREATION_AND_TRAILS),
    CriterionSpec(
        id="hamlet-proximity",
        name="Within 1 mile of hamlet centers",
        category=Category.RECREATION_AND_TRAILS,
        kind=HAMLET_PROXIMITY,
    ),
    # Historic and Cultural
    CriterionSpec(
        id="national-register",
        name="National Register Historic Sites and Districts",
        category=Category.HISTORIC_AND_CULTURAL,
        service_url=(
            "https://services.arcgis.com/g1fFjdXvjB9W7H12/arcgis/rest/services/"
            "National_Register_Building_Listings/FeatureServer/0"
        ),
        data_source="National Park Service",
        notes="Listed on State/National Register of Historic Places or National Historic Landmarks",
    ),
    _unavailable("historic-markers", "Historic Marker sites", Category.HISTORIC_AND_CULTURAL),
    _unavailable("adjacent-dh-canal", "Adjacent to D&H Canal", Category.HISTORIC_AND_CULTURAL),
    _unavailable("adjacent-special-properties", "Adjacent to Special Properties", Category.HISTORIC_AND_CULTURAL),
    _unavailable("cemeteries", "Cemeteries", Category.HISTORIC_AND_CULTURAL),
    # Agricultural
    _unavailable(
        "prime-farmland-soils",
        "Prime or Statewide Important Farmland Soils",
        Category.AGRICULTURAL,
        2,
    ),
    _unavailable("prime-soils-if-drained", "Prime Soils if Drained", Category.AGRICULTURAL),
    CriterionSpec(
        id="ag-districts",
        name="Agricultural District",
        category=Category.AGRICULTURAL,
        service_url="https://gisservices.its.ny.gov/arcgis/rest/services/AgDistricts_2017/MapServer/0",
        data_source="NYS Department of Agriculture and Markets",
        notes="NYS Certified Agricultural Districts",
    ),
    _unavailable(
        "active-farm",
        "Coded as an Active farm and/or Receiving an Ag Tax exemption",
        Category.AGRICULTURAL,
    ),
    CriterionSpec(
        id="adjacent-protected-lands-agricultural",
        name="Adjacent to protected land",
        category=Category.AGRICULTURAL,
        max_score=1,
        kind=ADJACENT_PROTECTED_LANDS,
    ),
    _unavailable("century-farms", "Century Farms", Category.AGRICULTURAL),
    # Scenic Areas
    _unavailable("adjacent-smsb", "Adjacent to SMSB", Category.SCENIC_AREAS),
    _unavailable("adjacent-scenic-roads", "Adjacent to local scenic roads", Category.SCENIC_AREAS),
    _unavailable("visible-from-smsb", "Areas visible from SMSB and local scenic roads", Category.SCENIC_AREAS),
    _unavailable("visible-sky-top", "Areas visible from-to Sky Top", Category.SCENIC_AREAS),
    _unavailable("gateway-areas", "Gateway areas", Category.SCENIC_AREAS),
)


class CriterionRegistry:
    """
    Ordered collection of criteria, grouped by category.

    Usage:
        async with SpatialQueryClient() as query_client:
            registry = CriterionRegistry.default(query_client)
            for criterion in registry.implemented():
                ...
    """

    def __init__(self, criteria: Sequence[Criterion]) -> None:
        ids = [c.id for c in criteria]
        duplicates = {i for i in ids if ids.count(i) > 1}
        if duplicates:
            raise ValueError(f"Duplicate criterion ids: {sorted(duplicates)}")
        self._criteria = list(criteria)

    @classmethod
    def from_specs(
        cls,
        specs: Sequence[CriterionSpec],
        query_client: SpatialQueryClient,
    ) -> "CriterionRegistry":
        return cls([spec.build(query_client) for spec in specs])

    @classmethod
    def default(cls, query_client: SpatialQueryClient) -> "CriterionRegistry":
        """Build the full conservation criteria catalog."""
        registry = cls.from_specs(CRITERIA_CATALOG, query_client)
        logger.info(
            "Loaded %d criteria (%d implemented)",
            len(registry),
            len(registry.implemented()),
        )
        return registry

    def __iter__(self) -> Iterator[Criterion]:
        return iter(self._criteria)

    def __len__(self) -> int:
        return len(self._criteria)

    def all(self) -> list[Criterion]:
        return list(self._criteria)

    def implemented(self) -> list[Criterion]:
        return [c for c in self._criteria if c.get_metadata().implemented]

    def get(self, criterion_id: str) -> Optional[Criterion]:
        for criterion in self._criteria:
            if criterion.id == criterion_id:
                return criterion
        return None

    def by_category(self) -> "OrderedDict[Category, list[Criterion]]":
        """Criteria grouped by category, categories in display order."""
        grouped: OrderedDict[Category, list[Criterion]] = OrderedDict()
        for category in Category:
            members = [c for c in self._criteria if c.get_metadata().category == category]
            if members:
                grouped[category] = members
        return grouped
