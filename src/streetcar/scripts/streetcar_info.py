#!/usr/bin/env python3
"""
Streetcar Info Script

Prints statistics for every sequence written by ``streetcar-init``: date,
start and end time, duration, distance driven (geodesic length of the first
feature on WGS 84), average speed, file count and size.

Usage:
    streetcar-info [--root DIR] [--col]

Examples:
    streetcar-info
    streetcar-info --col > sequences.tsv
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import numpy as np
import pandas as pd
import pandera.pandas as pa
import pyproj
import rich.console
import rich.table

import streetcar
from streetcar.capture_data import FeatureCollection
from streetcar.errors import FilesystemFailure
from streetcar.geojson import read_feature_collection
from streetcar.utils import format_bytes, format_duration, setup_logging

METERS_PER_MILE = 1609.344

_GEOD = pyproj.Geod(ellps="WGS84")

# ---------------------------------------------------------------------------
# Summary dataframe schema
# ---------------------------------------------------------------------------

sequence_summary_schema = pa.DataFrameSchema(
    columns={
        "slug": pa.Column(str, nullable=False),
        "sequence": pa.Column(int, checks=pa.Check.ge(0)),
        "time_start": pa.Column(int),
        "time_end": pa.Column(int),
        "duration_s": pa.Column(
            int,
            checks=pa.Check.ge(0),
            nullable=False,
        ),
        "distance_mi": pa.Column(float, checks=pa.Check.ge(0.0)),
        "avg_mph": pa.Column(float, nullable=True),
        "num_files": pa.Column(int, checks=pa.Check.ge(0)),
        "num_bytes": pa.Column(int, checks=pa.Check.ge(0)),
    },
    strict=False,
    coerce=True,
)


def line_distance_miles(coordinates: list[list[float]]) -> float:
    """Geodesic length of a ``[[lon, lat, ...], ...]`` path in statute miles."""
    if len(coordinates) < 2:
        return 0.0
    lons = [c[0] for c in coordinates]
    lats = [c[1] for c in coordinates]
    return float(_GEOD.line_length(lons, lats)) / METERS_PER_MILE


def summarize_collection(collection: FeatureCollection) -> dict:
    props = collection.collection_properties
    first = collection.features[0] if collection.features else None
    return {
        "slug": props.slug,
        "sequence": props.sequence,
        "time_start": props.time_start,
        "time_end": props.time_end,
        "duration_s": (props.time_end - props.time_start) // 1000,
        "distance_mi": line_distance_miles(first.geometry.coordinates) if first else 0.0,
        "num_files": props.num_files,
        "num_bytes": props.num_bytes,
    }


def build_summary(collections: list[FeatureCollection]) -> pd.DataFrame:
    """One validated row per sequence, ordered by start time."""
    columns = list(sequence_summary_schema.columns)
    if not collections:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame([summarize_collection(c) for c in collections])
    hours = df["duration_s"].to_numpy(dtype=np.float64) / 3600.0
    distance = df["distance_mi"].to_numpy(dtype=np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        df["avg_mph"] = np.where(hours > 0, distance / hours, np.nan)

    df = df.sort_values(["time_start", "sequence"]).reset_index(drop=True)
    return sequence_summary_schema.validate(df[columns])


def _display_rows(df: pd.DataFrame) -> list[dict[str, str]]:
    rows = []
    for rec in df.to_dict("records"):
        start = datetime.fromtimestamp(rec["time_start"] / 1000, tz=timezone.utc)
        end = datetime.fromtimestamp(rec["time_end"] / 1000, tz=timezone.utc)
        mph = rec["avg_mph"]
        rows.append(
            {
                "Slug": rec["slug"],
                "Sequence": str(rec["sequence"]),
                "Date": f"{start:%a %b %d %Y}",
                "Start": f"{start:%H:%M:%S} UTC",
                "End": f"{end:%H:%M:%S} UTC",
                "Duration": format_duration(rec["duration_s"]),
                "Distance": f"{rec['distance_mi']:.2f} mi",
                "Avg Speed": "-" if pd.isna(mph) else f"{mph:.2f} mph",
                "Files": f"{rec['num_files']} files",
                "Size": format_bytes(rec["num_bytes"]),
            }
        )
    return rows


def load_collections(geojson_dir: Path) -> list[FeatureCollection]:
    return [read_feature_collection(p) for p in sorted(geojson_dir.glob("*.geojson"))]


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="streetcar-info",
        description="Print statistics on streetcar GeoJSON sequence files",
    )
    parser.add_argument("--version", action="version", version=streetcar.__version__)
    parser.add_argument(
        "--root", type=Path, default=Path.cwd(), help="Working folder (default: cwd)"
    )
    parser.add_argument(
        "--col", action="store_true", help="Tab-separated output with a header row"
    )
    args = parser.parse_args(argv)

    setup_logging(1)
    logger = logging.getLogger("streetcar-info")

    geojson_dir = args.root.expanduser().resolve() / ".streetcar" / "geojson"
    try:
        summary = build_summary(load_collections(geojson_dir))
    except (FilesystemFailure, ValueError) as e:
        logger.error(str(e))
        return 1

    rows = _display_rows(summary)
    if not rows:
        logger.warning(f"No sequence files found in {geojson_dir}")
        return 0

    if args.col:
        pd.DataFrame(rows).to_csv(sys.stdout, sep="\t", index=False)
        return 0

    table = rich.table.Table(show_header=True, header_style="bold")
    for column in rows[0]:
        table.add_column(column)
    for row in rows:
        table.add_row(*row.values())
    rich.console.Console().print(table)
    return 0


if __name__ == "__main__":
    sys.exit(main())
