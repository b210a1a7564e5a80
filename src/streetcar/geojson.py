"""GeoJSON feature collections, one per sequence."""

from __future__ import annotations

import datetime
import json
import logging
import pathlib
import re

import pydantic

import streetcar
from streetcar.capture_data import (
    CAMERA_ANGLES,
    CollectionProperties,
    FeatureCollection,
    FeatureProperties,
    LineString,
    SequenceFeature,
)
from streetcar.errors import ConfigurationError, FilesystemFailure
from streetcar.sequence import Sequence

logger = logging.getLogger(__name__)

_LEADING_NON_ALPHA = re.compile(r"^[^A-Za-z]*(.*)$")


def location_name(root: pathlib.Path) -> str:
    """Derive the location part of a slug from the working directory name.

    ``'/data/2016-08-20 Downtown'`` becomes ``'downtown'``: everything before
    the first letter is dropped and the rest is lowercased.
    """
    name = next((part for part in reversed(root.parts) if part.strip("/")), "")
    if not name:
        raise ConfigurationError(f"Cannot derive a location name from {root}")

    match = _LEADING_NON_ALPHA.match(name)
    if match and match.group(1):
        name = match.group(1)
    return name.lower()


def make_slug(time_start_ms: int, root: pathlib.Path) -> str:
    """``<YYYY_MM_DD>_<location>``, the date taken in UTC."""
    start = datetime.datetime.fromtimestamp(time_start_ms / 1000, tz=datetime.timezone.utc)
    return f"{start:%Y_%m_%d}_{location_name(root)}"


def sequence_features(sequence: Sequence) -> list[SequenceFeature]:
    features: list[SequenceFeature] = []
    for track in sequence.mapped_tracks:
        meta = track.meta
        features.append(
            SequenceFeature(
                id=track.camera,
                bbox=meta.bbox,
                properties=FeatureProperties(
                    camera=track.camera,
                    camera_angle=CAMERA_ANGLES[track.camera],
                    make=meta.make,
                    model=meta.model,
                    dimensions=[meta.dim_x, meta.dim_y],
                ),
                geometry=LineString(coordinates=[list(c) for c in track.coord_path]),
            )
        )
    return features


def build_feature_collection(
    sequence: Sequence, root: pathlib.Path
) -> FeatureCollection | None:
    """Return the collection for *sequence*, or None when no camera has a path."""
    features = sequence_features(sequence)
    if not features:
        logger.info("sequence%d: no camera has coordinates, nothing to map", sequence.index)
        return None

    return FeatureCollection(
        collection_properties=CollectionProperties(
            generator=streetcar.GENERATOR,
            version=streetcar.__version__,
            slug=make_slug(sequence.time_start, root),
            sequence=sequence.index,
            num_files=sequence.num_files,
            num_bytes=sequence.num_bytes,
            time_start=sequence.time_start,
            time_end=sequence.time_end,
        ),
        features=features,
    )


def write_feature_collection(
    collection: FeatureCollection, output_path: pathlib.Path
) -> pathlib.Path:
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(collection.to_geojson(), f, indent=2)
            f.write("\n")
    except OSError as exc:
        raise FilesystemFailure(f"Cannot write {output_path}: {exc}") from exc

    logger.info(
        "Wrote %s (%d feature(s))", output_path.name, len(collection.features)
    )
    return output_path


def clear_feature_collections(geojson_dir: pathlib.Path) -> int:
    """Remove ``sequence*.geojson`` files left by a previous run."""
    removed = 0
    for path in sorted(geojson_dir.glob("sequence*.geojson")):
        try:
            path.unlink()
        except OSError as exc:
            raise FilesystemFailure(f"Cannot remove {path}: {exc}") from exc
        removed += 1

    if removed:
        logger.debug("Removed %d stale feature collection(s)", removed)
    return removed


def read_feature_collection(path: pathlib.Path) -> FeatureCollection:
    try:
        return FeatureCollection.model_validate_json(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise FilesystemFailure(f"Cannot read {path}: {exc}") from exc
    except pydantic.ValidationError as exc:
        raise ValueError(f"{path} is not a streetcar feature collection: {exc}") from exc
