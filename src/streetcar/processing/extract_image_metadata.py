"""
Image metadata extraction: reads the EXIF tags the pipeline needs from each
image file with Pillow and collects them into an ``ExtractionResultSet``.

#### Tags read

| Field | EXIF source | Notes |
|-------|-------------|-------|
| `raw_capture_time` | Exif `DateTimeOriginal`, `DateTimeDigitized`, IFD0 `DateTime` | first present wins; `SubsecTimeOriginal` appended as a fraction |
| `coord` | GPS `GPSLongitude`/`GPSLatitude` + refs, `GPSAltitude` | GeoJSON order `(lon, lat[, alt])`; altitude negated when `GPSAltitudeRef == 1` |
| `speed_kph` | GPS `GPSSpeed` + `GPSSpeedRef` | K = km/h, M = mph, N = knots |
| `make`, `model` | IFD0 `Make`, `Model` | |
| `pixel_width`, `pixel_height` | Exif `PixelXDimension`/`PixelYDimension` | decoded image size as fallback |

A file without an EXIF block or without any capture time raises
``ExtractionFailure``. Malformed GPS fields are treated as an absent
coordinate.

#### Concurrency

``extract_all`` fans the files out over a thread pool and waits for all of
them (the join barrier) before returning. Each file owns exactly one entry of
the result set. A failing, raising or timed-out extraction is recorded as a
failure for that file only.
"""

from __future__ import annotations

import concurrent.futures
import logging
import pathlib
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from PIL import Image, UnidentifiedImageError
from PIL.ExifTags import GPS, IFD, Base

from streetcar.capture_data import Camera, Coordinate, ImageRecord
from streetcar.errors import ExtractionFailure, InvalidCoordinate

logger = logging.getLogger(__name__)

Extractor = Callable[[pathlib.Path, Camera], ImageRecord]

# GPSSpeedRef → factor to km/h
_SPEED_TO_KPH: dict[str, float] = {
    "K": 1.0,
    "M": 1.609344,
    "N": 1.852,
}

# ---------------------------------------------------------------------------
# EXIF value helpers
# ---------------------------------------------------------------------------


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="ignore")
    text = str(value).strip("\x00 ").strip()
    return text or None


def _rational_to_float(value: Any) -> float:
    """IFDRational, ``(num, den)`` pair or plain number → float."""
    if hasattr(value, "numerator") and hasattr(value, "denominator"):
        num, den = value.numerator, value.denominator
    elif isinstance(value, (tuple, list)) and len(value) == 2:
        num, den = value
    else:
        return float(value)
    if not den:
        raise ZeroDivisionError("zero denominator")
    return float(num) / float(den)


def dms_to_decimal(dms: Any, ref: Any) -> float:
    """``(deg, min, sec)`` rationals plus N/S/E/W reference → signed degrees."""
    if dms is None or len(dms) != 3:
        raise InvalidCoordinate(f"Expected (deg, min, sec), got {dms!r}")
    try:
        d, m, s = (_rational_to_float(v) for v in dms)
    except (TypeError, ValueError, ZeroDivisionError) as exc:
        raise InvalidCoordinate(f"Bad DMS value {dms!r}: {exc}") from exc

    decimal = d + m / 60.0 + s / 3600.0
    if (_text(ref) or "").upper() in ("S", "W"):
        decimal = -decimal
    return decimal


def gps_coordinate(gps: Mapping[int, Any]) -> Coordinate | None:
    """Return ``(lon, lat[, alt])`` from a GPS IFD, None when GPS is absent.

    Raises
    ------
    InvalidCoordinate
        When the GPS fields are present but malformed.
    """
    required = (GPS.GPSLatitude, GPS.GPSLatitudeRef, GPS.GPSLongitude, GPS.GPSLongitudeRef)
    if not all(tag in gps for tag in required):
        return None

    lat = dms_to_decimal(gps[GPS.GPSLatitude], gps[GPS.GPSLatitudeRef])
    lon = dms_to_decimal(gps[GPS.GPSLongitude], gps[GPS.GPSLongitudeRef])
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        raise InvalidCoordinate(f"Coordinate out of range: lat={lat}, lon={lon}")

    if GPS.GPSAltitude not in gps:
        return (lon, lat)

    try:
        alt = _rational_to_float(gps[GPS.GPSAltitude])
    except (TypeError, ValueError, ZeroDivisionError):
        logger.debug("Ignoring malformed GPSAltitude %r", gps[GPS.GPSAltitude])
        return (lon, lat)

    alt_ref = gps.get(GPS.GPSAltitudeRef, 0)
    if isinstance(alt_ref, bytes):
        alt_ref = alt_ref[0] if alt_ref else 0
    if alt_ref == 1:
        alt = -alt
    return (lon, lat, alt)


def gps_speed_kph(gps: Mapping[int, Any]) -> float | None:
    if GPS.GPSSpeed not in gps:
        return None
    try:
        speed = _rational_to_float(gps[GPS.GPSSpeed])
    except (TypeError, ValueError, ZeroDivisionError):
        logger.debug("Ignoring malformed GPSSpeed %r", gps[GPS.GPSSpeed])
        return None

    ref = (_text(gps.get(GPS.GPSSpeedRef)) or "K").upper()
    factor = _SPEED_TO_KPH.get(ref)
    if factor is None or speed < 0:
        logger.debug("Ignoring GPSSpeed %r with ref %r", speed, ref)
        return None
    return speed * factor


def _capture_time(base: Mapping[int, Any], exif: Mapping[int, Any]) -> str | None:
    for text, subsec in (
        (_text(exif.get(Base.DateTimeOriginal)), _text(exif.get(Base.SubsecTimeOriginal))),
        (_text(exif.get(Base.DateTimeDigitized)), _text(exif.get(Base.SubsecTimeDigitized))),
        (_text(base.get(Base.DateTime)), _text(exif.get(Base.SubsecTime))),
    ):
        if text:
            if subsec and subsec.isdigit() and "." not in text:
                text = f"{text}.{subsec[:6]}"
            return text
    return None


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value) if value else None
    except (TypeError, ValueError):
        return None


def record_from_exif(
    path: pathlib.Path,
    camera: Camera,
    byte_size: int,
    base: Mapping[int, Any],
    exif: Mapping[int, Any],
    gps: Mapping[int, Any],
    image_size: tuple[int, int] | None = None,
) -> ImageRecord:
    """Build an ImageRecord from already-decoded EXIF tag mappings."""
    if not base and not exif:
        raise ExtractionFailure(f"{path.name}: no EXIF")

    raw_time = _capture_time(base, exif)
    if raw_time is None:
        raise ExtractionFailure(f"{path.name}: no capture time")

    try:
        coord = gps_coordinate(gps)
    except InvalidCoordinate as exc:
        logger.debug("%s: %s, treating coordinate as absent", path.name, exc)
        coord = None

    width = _int_or_none(exif.get(Base.ExifImageWidth))
    height = _int_or_none(exif.get(Base.ExifImageHeight))
    if (width is None or height is None) and image_size is not None:
        width, height = image_size

    return ImageRecord(
        camera=camera,
        file_path=path,
        byte_size=byte_size,
        raw_capture_time=raw_time,
        coord=coord,
        speed_kph=gps_speed_kph(gps),
        make=_text(base.get(Base.Make)),
        model=_text(base.get(Base.Model)),
        pixel_width=width,
        pixel_height=height,
    )


def read_image_record(path: pathlib.Path, camera: Camera) -> ImageRecord:
    """Extract one image's metadata with Pillow.

    Raises
    ------
    ExtractionFailure
        When the file is unreadable, is not an image, or lacks EXIF/capture time.
    """
    try:
        byte_size = path.stat().st_size
        with Image.open(path) as img:
            tags = img.getexif()
            image_size = img.size
            base = dict(tags)
            exif = dict(tags.get_ifd(IFD.Exif))
            gps = dict(tags.get_ifd(IFD.GPSInfo))
    except (UnidentifiedImageError, OSError) as exc:
        raise ExtractionFailure(f"{path.name}: {exc}") from exc

    return record_from_exif(path, camera, byte_size, base, exif, gps, image_size)


# ---------------------------------------------------------------------------
# Fan-out / fan-in
# ---------------------------------------------------------------------------


@dataclass
class ExtractionResultSet:
    """Everything extraction produced, keyed by file path."""

    records: dict[pathlib.Path, ImageRecord] = field(default_factory=dict)
    failures: dict[pathlib.Path, str] = field(default_factory=dict)

    @property
    def num_files(self) -> int:
        return len(self.records) + len(self.failures)

    @property
    def num_bytes(self) -> int:
        return sum(r.byte_size for r in self.records.values())

    @property
    def is_empty(self) -> bool:
        return not self.records


def extract_all(
    files: Sequence[tuple[pathlib.Path, Camera]],
    extractor: Extractor = read_image_record,
    *,
    max_workers: int = 8,
    timeout_s: float | None = None,
) -> ExtractionResultSet:
    """Extract every file on a thread pool and wait for all of them.

    ``timeout_s`` is a soft deadline: files still pending when it passes are
    recorded as timed out and the call returns, but a worker thread already
    inside a decoder cannot be interrupted. It runs to completion in the
    background and the interpreter waits for it at exit.
    """
    result = ExtractionResultSet()
    if not files:
        return result

    t_start = time.monotonic()
    executor = concurrent.futures.ThreadPoolExecutor(
        max_workers=max_workers, thread_name_prefix="extract"
    )
    try:
        futures = [
            (path, executor.submit(extractor, path, camera)) for path, camera in files
        ]
        done, _ = concurrent.futures.wait(
            [future for _, future in futures], timeout=timeout_s
        )
    finally:
        executor.shutdown(wait=timeout_s is None, cancel_futures=True)

    for path, future in futures:
        if future not in done:
            reason = f"timed out after {timeout_s} s"
        else:
            try:
                result.records[path] = future.result()
                continue
            except ExtractionFailure as exc:
                reason = str(exc)
            except Exception as exc:  # any decoder error only disqualifies this file
                reason = f"{type(exc).__name__}: {exc}"
        result.failures[path] = reason
        logger.debug("%s: no usable metadata (%s)", path, reason)

    logger.info(
        "Extracted metadata from %d/%d file(s) in %.1f s",
        len(result.records),
        result.num_files,
        time.monotonic() - t_start,
    )
    return result
