"""
Precomputed parcel scores from the Hudsonia reference tables.

Historical scoring runs were published as one CSV per category, keyed by
``Parcel ID`` with one numeric column per indicator. ReferenceScoreTable
merges them into a single in-memory ``parcel id -> {column: value}`` map.

The table is loaded lazily on first access and cached for the life of the
object. Loading is single-flight: concurrent first readers block on a lock
and only one of them reads the files.

Data Sources (relative to the data directory):
- appx.a.parcelscorehabitats.csv (Wildlife Habitat)
- appx.a.parcelscoresagricultural.csv (Agricultural)
- appx.a.parcelscoresdrinkingwater.csv (Drinking Water)
- appx.a_.parcelscoresforest.csv (Forests and Woodlands)
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Optional, Sequence

import pandas as pd

from .models import Category

logger = logging.getLogger(__name__)

PARCEL_ID_COLUMN = "Parcel ID"

# Default data directory relative to project root
DEFAULT_DATA_DIR = Path("HudsoniaParcelScores")


@dataclass(frozen=True)
class TabularIndicator:
    """
    One indicator column of a reference table.

    Attributes:
        column: CSV column name.
        name: Criterion name reported in the breakdown.
        category: Category the indicator scores into.
        max_score: Points for a met indicator.
        use_raw_value: Report the tabular value itself when it exceeds 1.
    """

    column: str
    name: str
    category: Category
    max_score: float = 1
    use_raw_value: bool = False

    @property
    def id(self) -> str:
        return f"tabular-{self.column.lower().replace('_', '-')}"

    def earned_score(self, value: float) -> float:
        if value <= 0:
            return 0
        if self.use_raw_value and value > 1:
            return value
        return self.max_score


@dataclass(frozen=True)
class ReferenceSource:
    """A reference CSV and the indicator columns read from it."""

    filename: str
    indicators: tuple[TabularIndicator, ...]


_WILDLIFE = Category.WILDLIFE_HABITAT
_FORESTS = Category.FORESTS_AND_WOODLANDS
_DRINKING = Category.DRINKING_WATER
_AG = Category.AGRICULTURAL

HUDSONIA_SOURCES: tuple[ReferenceSource, ...] = (
    ReferenceSource(
        "appx.a.parcelscoresdrinkingwater.csv",
        (
            TabularIndicator("EPA_Aquifers", "EPA Principal Aquifers", _DRINKING),
            TabularIndicator("Bedrock_Aquifers", "Bedrock Aquifers (Vly School Rondout)", _DRINKING),
            TabularIndicator("Ashokan_Watershed", "Ashokan Watershed", _DRINKING),
            TabularIndicator("Class_A_Streams", "DEC Class A Streams", _DRINKING),
        ),
    ),
    ReferenceSource(
        "appx.a.parcelscorehabitats.csv",
        (
            TabularIndicator("Wetland_300", "Wetland w/300' buffer", _WILDLIFE),
            TabularIndicator("IA", "NYNHP Important Areas for Rare Animals", _WILDLIFE),
            TabularIndicator("Communities", "NYNHP Significant Communities", _WILDLIFE),
            TabularIndicator("Resiliency", "TNC Resilient Sites", _WILDLIFE),
            TabularIndicator("Species", "NYNHP Modeled Rare Species", _WILDLIFE),
            TabularIndicator("Cores", "Ulster County Habitat Cores", _WILDLIFE),
            # Pool counts above 1 are scored as-is
            TabularIndicator("Pools", "Vernal Pool with 750' buffer", _WILDLIFE, use_raw_value=True),
            TabularIndicator("Habitat_1", "Hudsonia Mapped Crest/ledge/talus w/600' buffer", _WILDLIFE),
            TabularIndicator("Habitat_2", "Additional Significant Habitat", _WILDLIFE),
        ),
    ),
    ReferenceSource(
        "appx.a_.parcelscoresforest.csv",
        (
            TabularIndicator("Matrix_Forest", "TNC Matrix Forest Blocks or Linkage Zones", _FORESTS),
            TabularIndicator("Core_Forest", "NYNHP Core Forests", _FORESTS),
            TabularIndicator("High_Quality_Forest", "NYNHP High Ranking Forests (60+ percentile)", _FORESTS),
            TabularIndicator("Roadless_Blocks", "NYNHP Roadless Blocks (100+ acres)", _FORESTS),
            TabularIndicator("IA_Plants", "NYNHP Important Areas for Rare Plants", _FORESTS),
            TabularIndicator("Protected_Adjacent", "Adjacent to Protected Lands", _FORESTS),
        ),
    ),
    ReferenceSource(
        "appx.a.parcelscoresagricultural.csv",
        (
            TabularIndicator("Ag_Soils", "Prime Soils if Drained", _AG),
            TabularIndicator("Ag_District", "Agricultural District", _AG),
            TabularIndicator("Farms_Adjacent", "Adjacent to Active Farms", _AG),
            TabularIndicator("Protected", "Adjacent to protected land", _AG),
            TabularIndicator("Century_Farms", "Century Farms", _AG),
        ),
    ),
)


class ReferenceScoreTable:
    """
    Lazily loaded parcel id -> indicator values map.

    Usage:
        table = ReferenceScoreTable()
        row = table.get_scores("56.200-3-14")   # None for unknown parcels

        # In tests, skip file I/O entirely
        table = ReferenceScoreTable.from_rows({"p1": {"Pools": 2}})
    """

    def __init__(
        self,
        data_dir: Optional[Path | str] = None,
        sources: Sequence[ReferenceSource] = HUDSONIA_SOURCES,
        project_root: Optional[Path] = None,
    ) -> None:
        if data_dir is None:
            if project_root is None:
                project_root = Path(__file__).resolve().parents[3]
            data_dir = project_root / DEFAULT_DATA_DIR

        self.data_dir = Path(data_dir)
        self.sources = tuple(sources)
        self._scores: Optional[dict[str, dict[str, float]]] = None
        self._lock = threading.Lock()
        self.load_count = 0

    @classmethod
    def from_rows(
        cls,
        rows: Mapping[str, Mapping[str, float]],
        sources: Sequence[ReferenceSource] = HUDSONIA_SOURCES,
    ) -> "ReferenceScoreTable":
        """Build a pre-loaded table from in-memory rows."""
        table = cls(data_dir=Path("."), sources=sources)
        table._scores = {str(pid): dict(values) for pid, values in rows.items()}
        return table

    @property
    def indicators(self) -> list[TabularIndicator]:
        """All indicators, in source then column order."""
        return [ind for source in self.sources for ind in source.indicators]

    @property
    def is_loaded(self) -> bool:
        return self._scores is not None

    def get_scores(self, parcel_id: str) -> Optional[dict[str, float]]:
        """
        Look up the indicator values for a parcel.

        Args:
            parcel_id: Parcel identifier as it appears in the ``Parcel ID`` column.

        Returns:
            Column -> value dict, or None if the parcel is not in any table.
        """
        scores = self._ensure_loaded()
        row = scores.get(str(parcel_id).strip())
        return dict(row) if row is not None else None

    def __len__(self) -> int:
        return len(self._ensure_loaded())

    def _ensure_loaded(self) -> dict[str, dict[str, float]]:
        if self._scores is not None:
            return self._scores

        with self._lock:
            if self._scores is None:
                self._scores = self._load()
        return self._scores

    def _load(self) -> dict[str, dict[str, float]]:
        self.load_count += 1
        scores: dict[str, dict[str, float]] = {}

        for source in self.sources:
            path = self.data_dir / source.filename
            if not path.exists():
                logger.warning("Reference table not found: %s", path)
                continue

            df = self._read_table(path, source.indicators)
            if df is None:
                continue
            for parcel_id, values in self._iter_rows(df, source.indicators):
                scores.setdefault(parcel_id, {}).update(values)

            logger.info("Loaded %s (%d rows)", path.name, len(df))

        logger.info("Loaded reference scores for %d parcels", len(scores))
        return scores

    def _read_table(
        self,
        path: Path,
        indicators: Iterable[TabularIndicator],
    ) -> Optional[pd.DataFrame]:
        df = pd.read_csv(path, dtype={PARCEL_ID_COLUMN: str}, skipinitialspace=True)
        df.columns = [str(c).strip() for c in df.columns]

        if PARCEL_ID_COLUMN not in df.columns:
            logger.warning("%s has no %r column, skipping", path.name, PARCEL_ID_COLUMN)
            return None

        df[PARCEL_ID_COLUMN] = df[PARCEL_ID_COLUMN].str.strip()
        df = df[df[PARCEL_ID_COLUMN].notna() & (df[PARCEL_ID_COLUMN] != "")].copy()

        for indicator in indicators:
            if indicator.column in df.columns:
                df[indicator.column] = pd.to_numeric(df[indicator.column], errors="coerce").fillna(0)
            else:
                df[indicator.column] = 0

        return df

    def _iter_rows(self, df: pd.DataFrame, indicators: Sequence[TabularIndicator]):
        columns = [indicator.column for indicator in indicators]
        for record in df[[PARCEL_ID_COLUMN] + columns].to_dict(orient="records"):
            parcel_id = record.pop(PARCEL_ID_COLUMN)
            yield parcel_id, {column: float(value) for column, value in record.items()}
