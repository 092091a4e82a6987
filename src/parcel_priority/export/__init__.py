"""
Export module for parcel score results.

Provides CSV export of per-criterion breakdowns and per-parcel summaries.
"""

from .csv_exporter import CSVExporter, export_to_csv

__all__ = [
    "CSVExporter",
    "export_to_csv",
]
