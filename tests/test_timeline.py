"""Tests for capture time normalization and collision handling."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from streetcar.capture_data import Camera, ImageRecord
from streetcar.errors import ExtractionFailure, InvalidCaptureTime
from streetcar.timeline import (
    Timeline,
    assemble,
    normalize_capture_time,
    parse_capture_time,
)


def _epoch_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def test_parse_capture_time_accepts_exif_layouts() -> None:
    assert parse_capture_time("2016:08:20 10:15:30") == datetime(2016, 8, 20, 10, 15, 30)
    assert parse_capture_time("2016:08:20 10:15:30.25") == datetime(
        2016, 8, 20, 10, 15, 30, 250000
    )
    assert parse_capture_time("2016-08-20 10:15:30\x00") == datetime(2016, 8, 20, 10, 15, 30)
    assert parse_capture_time("2016-08-20T10:15:30+02:00").utcoffset() == timedelta(hours=2)


@pytest.mark.parametrize("raw", [None, "", "   ", "0000:00:00 00:00:00", "yesterday"])
def test_parse_capture_time_rejects_missing_or_garbage(raw) -> None:
    with pytest.raises(InvalidCaptureTime):
        parse_capture_time(raw)


def test_invalid_capture_time_is_an_extraction_failure() -> None:
    assert issubclass(InvalidCaptureTime, ExtractionFailure)


def test_normalize_subtracts_negative_offset() -> None:
    t = normalize_capture_time("2016:08:20 10:00:00", timedelta(hours=-4))
    assert t == _epoch_ms(datetime(2016, 8, 20, 14, 0, tzinfo=timezone.utc))


def test_normalize_subtracts_positive_offset_with_minutes() -> None:
    t = normalize_capture_time("2016:08:20 10:00:00", timedelta(hours=5, minutes=30))
    assert t == _epoch_ms(datetime(2016, 8, 20, 4, 30, tzinfo=timezone.utc))


def test_normalize_keeps_milliseconds() -> None:
    t = normalize_capture_time("1970:01:01 00:00:01.5", timedelta(0))
    assert t == 1500


def test_normalize_aware_time_ignores_configured_offset() -> None:
    aware = datetime(2016, 8, 20, 14, 0, tzinfo=timezone.utc)
    assert normalize_capture_time(aware, timedelta(hours=-4)) == _epoch_ms(aware)


def _rec(name: str, camera: Camera = Camera.FRONT) -> ImageRecord:
    return ImageRecord(camera=camera, file_path=Path(f"/c/{camera}/{name}"))


def test_place_empty_slot() -> None:
    timeline = Timeline()
    a = _rec("a.jpg")

    assert timeline.place(5000, a) == 5000
    assert timeline.get(5000, Camera.FRONT) is a


def test_collision_moves_existing_record_back() -> None:
    timeline = Timeline()
    first, second = _rec("a.jpg"), _rec("b.jpg")

    timeline.place(5000, first)
    timeline.place(5000, second)

    assert timeline.get(4000, Camera.FRONT) is first
    assert timeline.get(5000, Camera.FRONT) is second
    assert timeline.keys == (4000, 5000)


def test_collision_moves_new_record_forward_when_previous_second_taken() -> None:
    timeline = Timeline()
    earlier, first, second = _rec("a.jpg"), _rec("b.jpg"), _rec("c.jpg")

    timeline.place(4000, earlier)
    timeline.place(5000, first)
    timeline.place(5000, second)

    assert timeline.get(4000, Camera.FRONT) is earlier
    assert timeline.get(5000, Camera.FRONT) is first
    assert timeline.get(6000, Camera.FRONT) is second


def test_collision_keeps_walking_forward() -> None:
    timeline = Timeline()
    for ms, name in ((4000, "a"), (5000, "b"), (6000, "c")):
        timeline.place(ms, _rec(f"{name}.jpg"))

    new = _rec("d.jpg")
    assert timeline.place(5000, new) == 7000
    assert timeline.keys == (4000, 5000, 6000, 7000)


def test_collision_only_applies_within_a_camera() -> None:
    timeline = Timeline()
    front, back = _rec("a.jpg", Camera.FRONT), _rec("a.jpg", Camera.BACK)

    timeline.place(5000, front)
    timeline.place(5000, back)

    assert timeline.keys == (5000,)
    assert dict(timeline.slot(5000)) == {Camera.FRONT: front, Camera.BACK: back}


def test_slot_is_read_only() -> None:
    timeline = Timeline()
    timeline.place(0, _rec("a.jpg"))

    with pytest.raises(TypeError):
        timeline.slot(0)[Camera.BACK] = _rec("b.jpg", Camera.BACK)  # type: ignore[index]


def test_assemble_resolves_collisions_in_file_path_order(make_record) -> None:
    second = make_record("front", 5000, name="IMG_0002.jpg")
    first = make_record("front", 5000, name="IMG_0001.jpg")

    timeline = assemble([second, first], timedelta(0))

    assert timeline.get(4000, Camera.FRONT) is first
    assert timeline.get(5000, Camera.FRONT) is second


def test_assemble_excludes_records_without_capture_time(make_record) -> None:
    good = make_record("front", 1000)
    bad = good.model_copy(
        update={"raw_capture_time": None, "file_path": Path("/c/front/bad.jpg")}
    )

    timeline = assemble([good, bad], timedelta(0))

    assert timeline.keys == (1000,)
    assert timeline.excluded == [Path("/c/front/bad.jpg")]


def test_assembled_keys_are_strictly_increasing_and_unique_per_camera(make_record) -> None:
    rng = random.Random(7)
    records = [
        make_record(
            rng.choice(["front", "back", "left"]),
            rng.randrange(0, 10) * 1000,
            name=f"IMG_{i:04d}.jpg",
        )
        for i in range(60)
    ]

    timeline = assemble(records, timedelta(0))
    keys = timeline.keys

    assert all(a < b for a, b in zip(keys, keys[1:]))
    placed = [rec for t in keys for rec in timeline.slot(t).values()]
    assert len(placed) == len(records)
    for camera in timeline.cameras:
        times = [t for t, _ in timeline.records(camera)]
        assert len(times) == len(set(times))
