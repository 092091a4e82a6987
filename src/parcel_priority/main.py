"""
Command-line entry point for parcel conservation scoring.

Scores one parcel and prints the result as JSON:

    parcel-priority --parcel-id 56.200-3-14
    parcel-priority --geometry-file parcel.json
    parcel-priority --lat 41.8543 --lon -74.1237 --csv scores.csv
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from .acquisition import GeoServiceError, GeometryEnvelope, ParcelNotFoundError, SpatialQueryClient
from .export import export_to_csv
from .scoring import CompositeScoreAggregator, CriterionRegistry, ParcelScoringEngine, ReferenceScoreTable

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="parcel-priority",
        description="Score a land parcel for conservation priority.",
    )
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--parcel-id", help="Score from the precomputed reference tables")
    target.add_argument("--geometry-file", type=Path, help="Esri JSON parcel geometry to score live")
    target.add_argument("--lat", type=float, help="Latitude of a point inside the parcel (needs --lon)")
    parser.add_argument("--lon", type=float, help="Longitude of a point inside the parcel")
    parser.add_argument("--data-dir", type=Path, help="Directory holding the reference score CSVs")
    parser.add_argument("--config", type=Path, help="Path to scoring_thresholds.yaml")
    parser.add_argument("--csv", type=Path, help="Also write the criterion breakdown to this CSV file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


async def _score_live(
    aggregator: CompositeScoreAggregator,
    geometry: Optional[GeometryEnvelope] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> dict[str, Any]:
    async with SpatialQueryClient() as query_client:
        engine = ParcelScoringEngine(CriterionRegistry.default(query_client), aggregator=aggregator)

        if geometry is not None:
            result = await engine.score_geometry(geometry)
            return {"result": result}

        parcel, result = await engine.score_location(latitude, longitude)
        return {"parcel": parcel, "result": result}


def run(args: argparse.Namespace) -> int:
    aggregator = CompositeScoreAggregator(config_path=args.config)

    if args.parcel_id:
        engine = ParcelScoringEngine(
            aggregator=aggregator,
            reference_table=ReferenceScoreTable(data_dir=args.data_dir),
        )
        scored = {"result": engine.score_parcel_id(args.parcel_id)}
    elif args.geometry_file:
        with open(args.geometry_file, "r") as f:
            payload = json.load(f)
        # Accept a bare geometry or a feature with a "geometry" member
        if isinstance(payload, dict) and "geometry" in payload:
            payload = payload["geometry"]
        geometry = GeometryEnvelope.from_esri(payload)
        scored = asyncio.run(_score_live(aggregator, geometry=geometry))
    else:
        scored = asyncio.run(_score_live(aggregator, latitude=args.lat, longitude=args.lon))

    result = scored["result"]
    output = result.to_dict()
    if "parcel" in scored:
        output["parcel"] = scored["parcel"]

    print(json.dumps(output, indent=2))

    if args.csv:
        path = export_to_csv([result], args.csv)
        logger.info("Breakdown written to %s", path)

    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.lat is not None and args.lon is None:
        parser.error("--lat requires --lon")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        return run(args)
    except ParcelNotFoundError as e:
        logger.error("%s", e)
        return 2
    except GeoServiceError as e:
        logger.error("Scoring failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
