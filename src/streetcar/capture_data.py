"""Capture records and GeoJSON output models.

Coordinates follow GeoJSON axis order: ``(lon, lat)`` or ``(lon, lat, alt)``
in WGS 84 degrees and metres.
"""

from __future__ import annotations

import datetime
import pathlib
from enum import StrEnum
from typing import Literal

import pydantic
from pydantic.alias_generators import to_camel

Coordinate = tuple[float, ...]
NormalizedTime = int
"""Epoch milliseconds after UTC correction and collision resolution."""

# ---------------------------------------------------------------------------
# Cameras
# ---------------------------------------------------------------------------


class Camera(StrEnum):
    FRONT = "front"
    BACK = "back"
    LEFT = "left"
    RIGHT = "right"


# Folder names that identify a camera; "rear" is an alias for the back camera
CAMERA_FOLDER_NAMES: dict[str, Camera] = {
    "front": Camera.FRONT,
    "back": Camera.BACK,
    "rear": Camera.BACK,
    "left": Camera.LEFT,
    "right": Camera.RIGHT,
}

# Fixed compass bearing of each mounted camera, degrees
CAMERA_ANGLES: dict[Camera, int] = {
    Camera.FRONT: 0,
    Camera.RIGHT: 90,
    Camera.BACK: 180,
    Camera.LEFT: 270,
}


# ---------------------------------------------------------------------------
# Input record
# ---------------------------------------------------------------------------


class ImageRecord(pydantic.BaseModel):
    """Metadata of one image file, as produced by the extractor."""

    model_config = pydantic.ConfigDict(frozen=True)

    camera: Camera
    file_path: pathlib.Path
    byte_size: int = pydantic.Field(default=0, ge=0)

    raw_capture_time: datetime.datetime | str | None = None
    """Wall-clock capture time; the source timezone is not recorded."""

    coord: Coordinate | None = None
    speed_kph: float | None = pydantic.Field(default=None, ge=0.0)

    make: str | None = None
    model: str | None = None
    pixel_width: int | None = None
    pixel_height: int | None = None

    @pydantic.field_validator("coord")
    @classmethod
    def _check_coord(cls, value: Coordinate | None) -> Coordinate | None:
        if value is not None and len(value) not in (2, 3):
            raise ValueError(f"coord must be (lon, lat) or (lon, lat, alt), got {value}")
        return value


# ---------------------------------------------------------------------------
# GeoJSON output
# ---------------------------------------------------------------------------


class _GeoJSONModel(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LineString(_GeoJSONModel):
    type: Literal["LineString"] = "LineString"
    coordinates: list[list[float]]


class FeatureProperties(_GeoJSONModel):
    camera: Camera
    camera_angle: int
    make: str | None = None
    model: str | None = None
    dimensions: list[int | None] = pydantic.Field(default_factory=lambda: [None, None])


class SequenceFeature(_GeoJSONModel):
    """One camera's path within one sequence."""

    type: Literal["Feature"] = "Feature"
    id: Camera
    bbox: list[float]
    """``[min_lon, min_lat, max_lon, max_lat]`` over the feature's coordinates."""

    properties: FeatureProperties
    geometry: LineString


class CollectionProperties(_GeoJSONModel):
    generator: str
    version: str
    slug: str
    sequence: int
    num_files: int
    num_bytes: int
    time_start: NormalizedTime
    time_end: NormalizedTime


class FeatureCollection(_GeoJSONModel):
    type: Literal["FeatureCollection"] = "FeatureCollection"
    collection_properties: CollectionProperties
    features: list[SequenceFeature] = pydantic.Field(default_factory=list)

    def to_geojson(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
