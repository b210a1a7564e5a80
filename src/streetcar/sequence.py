"""
Sequence segmentation and per-camera path building.

A sequence is a maximal run of timeline keys without an internal gap of
``cut_gap_ms`` or more. Gaps are measured on the raw timeline, i.e. on any
image from any camera, whether or not it carries a coordinate or passes the
speed filter.

Within a sequence every camera is reduced to a ``CameraTrack``:

- samples slower than ``min_speed_kph`` are dropped entirely; samples without
  a speed reading are kept;
- samples without a coordinate still count towards files, bytes, time bounds
  and metadata, but add no path point unless ``infer_coordinates`` borrows a
  sibling camera's coordinate at the same instant;
- make, model and pixel dimensions are first-write-wins.
"""

from __future__ import annotations

import logging
import pathlib
from collections.abc import Sequence as SequenceABC
from dataclasses import dataclass, field

from streetcar.capture_data import Camera, Coordinate, ImageRecord, NormalizedTime
from streetcar.timeline import Timeline

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Segmenter
# ---------------------------------------------------------------------------


def segment(keys: SequenceABC[NormalizedTime], cut_gap_ms: int) -> list[range]:
    """Split sorted timeline keys into sequences.

    Returns one ``range`` of key indices per sequence, in order.
    """
    if cut_gap_ms <= 0:
        raise ValueError(f"cut_gap_ms must be positive, got {cut_gap_ms}")

    spans: list[range] = []
    start: int | None = None
    previous = 0

    for i, key in enumerate(keys):
        if start is None or key - previous >= cut_gap_ms:
            if start is not None:
                spans.append(range(start, i))
                logger.debug(
                    "%.1f s gap before %d, starting sequence %d",
                    (key - previous) / 1000,
                    key,
                    len(spans),
                )
            start = i
        previous = key

    if start is not None:
        spans.append(range(start, len(keys)))
    return spans


# ---------------------------------------------------------------------------
# Builder state
# ---------------------------------------------------------------------------


@dataclass
class CameraMeta:
    make: str | None = None
    model: str | None = None
    dim_x: int | None = None
    dim_y: int | None = None
    min_x: float | None = None
    min_y: float | None = None
    max_x: float | None = None
    max_y: float | None = None

    def update_device(self, record: ImageRecord) -> None:
        if self.make is None and record.make:
            self.make = record.make
        if self.model is None and record.model:
            self.model = record.model
        if self.dim_x is None and record.pixel_width:
            self.dim_x = record.pixel_width
        if self.dim_y is None and record.pixel_height:
            self.dim_y = record.pixel_height

    def update_bbox(self, coord: Coordinate) -> None:
        x, y = coord[0], coord[1]
        if self.min_x is None or x < self.min_x:
            self.min_x = x
        if self.min_y is None or y < self.min_y:
            self.min_y = y
        if self.max_x is None or x > self.max_x:
            self.max_x = x
        if self.max_y is None or y > self.max_y:
            self.max_y = y

    @property
    def bbox(self) -> list[float] | None:
        if self.min_x is None:
            return None
        return [self.min_x, self.min_y, self.max_x, self.max_y]


@dataclass
class CameraTrack:
    """Accumulated state of one camera within one sequence."""

    camera: Camera
    meta: CameraMeta = field(default_factory=CameraMeta)
    byte_total: int = 0
    file_count: int = 0
    time_start: NormalizedTime | None = None
    time_end: NormalizedTime | None = None
    coord_path: list[Coordinate] = field(default_factory=list)
    files: list[pathlib.Path] = field(default_factory=list)
    inferred_count: int = 0

    def add(self, t: NormalizedTime, record: ImageRecord, coord: Coordinate | None) -> None:
        self.byte_total += record.byte_size
        self.file_count += 1
        self.files.append(record.file_path)
        if self.time_start is None or t < self.time_start:
            self.time_start = t
        if self.time_end is None or t > self.time_end:
            self.time_end = t

        self.meta.update_device(record)
        if coord is not None:
            self.coord_path.append(coord)
            self.meta.update_bbox(coord)


@dataclass
class Sequence:
    index: int
    keys: tuple[NormalizedTime, ...]
    tracks: dict[Camera, CameraTrack] = field(default_factory=dict)
    excluded_slow: int = 0

    @property
    def num_files(self) -> int:
        return sum(track.file_count for track in self.tracks.values())

    @property
    def num_bytes(self) -> int:
        return sum(track.byte_total for track in self.tracks.values())

    @property
    def time_start(self) -> NormalizedTime | None:
        starts = [t.time_start for t in self.tracks.values() if t.time_start is not None]
        return min(starts) if starts else None

    @property
    def time_end(self) -> NormalizedTime | None:
        ends = [t.time_end for t in self.tracks.values() if t.time_end is not None]
        return max(ends) if ends else None

    @property
    def mapped_tracks(self) -> list[CameraTrack]:
        """Tracks with at least one path coordinate, in camera order."""
        return [
            self.tracks[camera]
            for camera in Camera
            if camera in self.tracks and self.tracks[camera].coord_path
        ]


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


def _borrow_coordinate(
    timeline: Timeline, t: NormalizedTime, camera: Camera, offset: float
) -> Coordinate | None:
    """First sibling coordinate at ``t``, shifted by *offset* in lon and lat.

    Altitude, when present, is copied unchanged.
    """
    for sibling in Camera:
        if sibling == camera:
            continue
        record = timeline.get(t, sibling)
        if record is not None and record.coord is not None:
            lon, lat, *rest = record.coord
            return (lon + offset, lat + offset, *rest)
    return None


def build_sequence(
    index: int,
    span: range,
    timeline: Timeline,
    *,
    min_speed_kph: float,
    infer_coordinates: bool = False,
    inferred_offset: float = 0.000001,
) -> Sequence:
    keys = timeline.keys[span.start : span.stop]
    sequence = Sequence(index=index, keys=keys)

    for camera in Camera:
        track: CameraTrack | None = None

        for t in keys:
            record = timeline.get(t, camera)
            if record is None:
                continue

            if record.speed_kph is not None and record.speed_kph < min_speed_kph:
                sequence.excluded_slow += 1
                continue

            coord = record.coord
            inferred = False
            if coord is None and infer_coordinates:
                coord = _borrow_coordinate(timeline, t, camera, inferred_offset)
                inferred = coord is not None

            if track is None:
                track = CameraTrack(camera=camera)
                sequence.tracks[camera] = track
            if inferred:
                track.inferred_count += 1
            track.add(t, record, coord)

    for track in sequence.tracks.values():
        if not track.coord_path:
            logger.debug(
                "sequence%d: %s has no coordinates, no feature", index, track.camera
            )
        elif track.inferred_count:
            logger.debug(
                "sequence%d: %s borrowed %d coordinate(s) from sibling cameras",
                index,
                track.camera,
                track.inferred_count,
            )

    return sequence


def build_sequences(
    timeline: Timeline,
    spans: SequenceABC[range],
    *,
    min_speed_kph: float,
    infer_coordinates: bool = False,
    inferred_offset: float = 0.000001,
) -> list[Sequence]:
    sequences = [
        build_sequence(
            index,
            span,
            timeline,
            min_speed_kph=min_speed_kph,
            infer_coordinates=infer_coordinates,
            inferred_offset=inferred_offset,
        )
        for index, span in enumerate(spans)
    ]
    for sequence in sequences:
        logger.info(
            "sequence%d: %d key(s), %d file(s), %d camera path(s), %d slow sample(s) dropped",
            sequence.index,
            len(sequence.keys),
            sequence.num_files,
            len(sequence.mapped_tracks),
            sequence.excluded_slow,
        )
    return sequences
