"""
CSV Exporter for parcel score results.

Writes the per-criterion breakdown and a one-row-per-parcel summary with
spreadsheet-friendly column names.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

from ..scoring.models import Category, CompositeScoreResult

logger = logging.getLogger(__name__)


class CSVExporter:
    """Export parcel score results to CSV."""

    def __init__(self, output_dir: Path | str = "deliverables"):
        """
        Initialize the CSV exporter.

        Args:
            output_dir: Directory for output files
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def breakdown_frame(
        self,
        results: Iterable[CompositeScoreResult],
        matched_only: bool = False,
    ) -> pd.DataFrame:
        """One row per parcel and criterion."""
        rows = []
        for result in results:
            for item in result.breakdown:
                if matched_only and not item.matched:
                    continue
                rows.append({
                    "parcel_id": result.parcel_id,
                    "category": item.category.value,
                    "criterion_id": item.criterion_id,
                    "criterion": item.name,
                    "max_score": item.max_score,
                    "earned_score": item.earned_score,
                    "matched": item.matched,
                    "implemented": item.implemented,
                    "error": (item.debug_info or {}).get("error", ""),
                })

        columns = [
            "parcel_id", "category", "criterion_id", "criterion", "max_score",
            "earned_score", "matched", "implemented", "error",
        ]
        return pd.DataFrame(rows, columns=columns)

    def summary_frame(self, results: Iterable[CompositeScoreResult]) -> pd.DataFrame:
        """One row per parcel with category priority columns."""
        rows = []
        for result in results:
            row = {
                "parcel_id": result.parcel_id,
                "composite_score": result.composite_score,
                "overall_priority": result.overall_priority,
                "total_score": result.total_score,
                "criteria_matched": len(result.criteria_matched),
            }
            for category in Category:
                key = category.value.lower().replace(" ", "_")
                category_score = result.get_category(category)
                row[f"{key}_raw"] = category_score.raw_score if category_score else 0
                row[f"{key}_priority"] = (
                    category_score.priority_level.value if category_score else "None"
                )
            rows.append(row)

        df = pd.DataFrame(rows)
        if not df.empty:
            df = df.sort_values("composite_score", ascending=False)
        return df

    def export(
        self,
        results: Iterable[CompositeScoreResult],
        filename: str = "parcel_scores.csv",
        summary_filename: Optional[str] = None,
        matched_only: bool = False,
    ) -> Path:
        """
        Export score breakdowns to a CSV file.

        Args:
            results: Scored parcels
            filename: Output filename for the breakdown
            summary_filename: Optional filename for the per-parcel summary
            matched_only: If True, include matched criteria only

        Returns:
            Path to the generated breakdown CSV
        """
        results = list(results)
        output_path = self.output_dir / filename
        logger.info("Generating score CSV: %s", output_path)

        breakdown_df = self.breakdown_frame(results, matched_only=matched_only)
        breakdown_df.to_csv(output_path, index=False)
        logger.info("Score CSV saved: %s (%d rows)", output_path, len(breakdown_df))

        if summary_filename:
            summary_path = self.output_dir / summary_filename
            summary_df = self.summary_frame(results)
            summary_df.to_csv(summary_path, index=False)
            logger.info("Summary CSV saved: %s (%d parcels)", summary_path, len(summary_df))

        return output_path


def export_to_csv(
    results: Iterable[CompositeScoreResult],
    output_path: Path | str,
    matched_only: bool = False,
) -> Path:
    """
    Convenience function to export score breakdowns to CSV.

    Args:
        results: Scored parcels
        output_path: Output CSV path
        matched_only: If True, include matched criteria only

    Returns:
        Path to generated CSV file
    """
    output_path = Path(output_path)
    exporter = CSVExporter(output_path.parent)
    return exporter.export(results, output_path.name, matched_only=matched_only)
