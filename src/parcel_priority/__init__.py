"""
Parcel conservation priority scoring.

Scores land parcels against conservation criteria backed by public ArcGIS
and WFS layers (or precomputed reference tables) and rolls them up into
category priorities and a composite score.
"""

__version__ = "1.0.0"
