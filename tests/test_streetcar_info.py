"""Tests for the sequence statistics command."""

from __future__ import annotations

import math
from pathlib import Path

import pytest

from streetcar.capture_data import (
    Camera,
    CollectionProperties,
    FeatureCollection,
    FeatureProperties,
    LineString,
    SequenceFeature,
)
from streetcar.geojson import write_feature_collection
from streetcar.scripts import streetcar_info

# 2016-08-20T14:00:00Z
T0 = 1_471_701_600_000


def _collection(sequence: int, start: int, seconds: int, coords: list[list[float]]):
    return FeatureCollection(
        collection_properties=CollectionProperties(
            generator="streetcar",
            version="1.0.0",
            slug="2016_08_20_downtown",
            sequence=sequence,
            num_files=10,
            num_bytes=1536,
            time_start=start,
            time_end=start + seconds * 1000,
        ),
        features=[
            SequenceFeature(
                id=Camera.FRONT,
                bbox=[0.0, 0.0, 0.0, 1.0],
                properties=FeatureProperties(camera=Camera.FRONT, camera_angle=0),
                geometry=LineString(coordinates=coords),
            )
        ],
    )


def test_line_distance_miles() -> None:
    # one degree of latitude at the equator is about 68.7 statute miles
    assert streetcar_info.line_distance_miles([[0.0, 0.0], [0.0, 1.0]]) == pytest.approx(
        68.7, abs=0.1
    )
    assert streetcar_info.line_distance_miles([[5.0, 5.0]]) == 0.0


def test_build_summary_orders_by_start_and_computes_speed() -> None:
    later = _collection(1, T0 + 7200_000, 3600, [[0.0, 0.0], [0.0, 1.0]])
    earlier = _collection(0, T0, 0, [[0.0, 0.0]])

    summary = streetcar_info.build_summary([later, earlier])

    assert list(summary["sequence"]) == [0, 1]
    assert list(summary["duration_s"]) == [0, 3600]
    assert math.isnan(summary.loc[0, "avg_mph"])
    assert summary.loc[1, "avg_mph"] == pytest.approx(68.7, abs=0.1)


def test_build_summary_empty() -> None:
    assert streetcar_info.build_summary([]).empty


def test_main_prints_tab_separated_columns(tmp_path: Path, capsys) -> None:
    geojson_dir = tmp_path / ".streetcar" / "geojson"
    write_feature_collection(
        _collection(0, T0, 3725, [[0.0, 0.0], [0.0, 1.0]]),
        geojson_dir / "sequence0.geojson",
    )

    assert streetcar_info.main(["--root", str(tmp_path), "--col"]) == 0

    header, row = capsys.readouterr().out.strip().splitlines()
    assert header.split("\t") == [
        "Slug",
        "Sequence",
        "Date",
        "Start",
        "End",
        "Duration",
        "Distance",
        "Avg Speed",
        "Files",
        "Size",
    ]
    values = row.split("\t")
    assert values[0] == "2016_08_20_downtown"
    assert values[2] == "Sat Aug 20 2016"
    assert values[3] == "14:00:00 UTC"
    assert values[5] == "1h 2m 5s"
    assert float(values[6].removesuffix(" mi")) == pytest.approx(68.7, abs=0.1)
    assert values[8] == "10 files"
    assert values[9] == "1.5 KB"


def test_main_without_sequences(tmp_path: Path) -> None:
    assert streetcar_info.main(["--root", str(tmp_path)]) == 0


def test_main_rejects_foreign_files(tmp_path: Path) -> None:
    geojson_dir = tmp_path / ".streetcar" / "geojson"
    geojson_dir.mkdir(parents=True)
    (geojson_dir / "other.geojson").write_text('{"type": "FeatureCollection"}')

    assert streetcar_info.main(["--root", str(tmp_path)]) == 1
