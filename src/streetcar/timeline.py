"""
Time normalization and timeline assembly.

Each camera writes its own EXIF clock. Capture times are read as wall-clock
values, shifted by one fixed UTC offset, and truncated to integer epoch
milliseconds. The resulting ``NormalizedTime`` is the only key used for
ordering and grouping.

Cameras with a one-second clock resolution regularly produce several images
with the same timestamp. ``Timeline.place`` keeps every (time, camera) pair
unique by shifting records in 1000 ms steps:

1. slot ``(t, c)`` is empty: the record goes there;
2. slot ``(t - 1000, c)`` is empty: the current occupant of ``(t, c)`` moves
   back to ``t - 1000`` and the new record takes ``(t, c)``;
3. otherwise the same rule is tried at ``t + 1000``.

Records are placed in file-path order, so the outcome does not depend on the
order in which extraction finished.
"""

from __future__ import annotations

import bisect
import datetime
import logging
import pathlib
import types
from collections.abc import Iterable, Iterator, Mapping

from streetcar.capture_data import Camera, ImageRecord, NormalizedTime
from streetcar.errors import InvalidCaptureTime

logger = logging.getLogger(__name__)

COLLISION_STEP_MS = 1000

_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)
_ONE_MS = datetime.timedelta(milliseconds=1)

_CAPTURE_TIME_FORMATS = (
    "%Y:%m:%d %H:%M:%S",
    "%Y:%m:%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
)

# ---------------------------------------------------------------------------
# Time normalizer
# ---------------------------------------------------------------------------


def parse_capture_time(raw: datetime.datetime | str | None) -> datetime.datetime:
    """Parse an EXIF ``DateTimeOriginal`` style value.

    Raises
    ------
    InvalidCaptureTime
        When *raw* is missing or matches none of the known layouts.
    """
    if raw is None:
        raise InvalidCaptureTime("No capture time")
    if isinstance(raw, datetime.datetime):
        return raw

    text = raw.strip().rstrip("\x00").strip()
    if not text:
        raise InvalidCaptureTime("Empty capture time")

    for fmt in _CAPTURE_TIME_FORMATS:
        try:
            return datetime.datetime.strptime(text, fmt)
        except ValueError:
            continue

    try:
        return datetime.datetime.fromisoformat(text)
    except ValueError:
        raise InvalidCaptureTime(f"Unparsable capture time: {raw!r}") from None


def normalize_capture_time(
    raw: datetime.datetime | str | None, utc_offset: datetime.timedelta
) -> NormalizedTime:
    """Return epoch milliseconds for a raw capture time.

    Naive values are camera wall-clock time: the fixed *utc_offset* is
    subtracted from them. Timezone-aware values are already anchored and are
    converted to UTC as they are.
    """
    captured = parse_capture_time(raw)
    if captured.tzinfo is None:
        captured = captured.replace(tzinfo=datetime.timezone.utc) - utc_offset
    return (captured - _EPOCH) // _ONE_MS


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------


class Timeline:
    """Sorted mapping ``NormalizedTime -> {Camera -> ImageRecord}``.

    Keys are kept in ascending order as they are inserted, and a time key
    holds at most one record per camera.
    """

    def __init__(self) -> None:
        self._keys: list[NormalizedTime] = []
        self._slots: dict[NormalizedTime, dict[Camera, ImageRecord]] = {}
        self.excluded: list[pathlib.Path] = []
        """Files left out because their capture time did not normalize."""

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[NormalizedTime]:
        return iter(self._keys)

    def __contains__(self, t: object) -> bool:
        return t in self._slots

    @property
    def keys(self) -> tuple[NormalizedTime, ...]:
        return tuple(self._keys)

    @property
    def cameras(self) -> list[Camera]:
        present = {camera for slot in self._slots.values() for camera in slot}
        return [camera for camera in Camera if camera in present]

    def slot(self, t: NormalizedTime) -> Mapping[Camera, ImageRecord]:
        return types.MappingProxyType(self._slots.get(t, {}))

    def get(self, t: NormalizedTime, camera: Camera) -> ImageRecord | None:
        return self._slots.get(t, {}).get(camera)

    def records(self, camera: Camera) -> list[tuple[NormalizedTime, ImageRecord]]:
        return [
            (t, self._slots[t][camera]) for t in self._keys if camera in self._slots[t]
        ]

    def _put(self, t: NormalizedTime, camera: Camera, record: ImageRecord) -> None:
        if t not in self._slots:
            bisect.insort(self._keys, t)
            self._slots[t] = {}
        self._slots[t][camera] = record

    def place(self, t: NormalizedTime, record: ImageRecord) -> NormalizedTime:
        """Insert *record* at *t*, resolving same-camera collisions.

        Returns the key the new record ended up at.
        """
        camera = record.camera
        while True:
            occupant = self.get(t, camera)
            if occupant is None:
                self._put(t, camera, record)
                return t

            earlier = t - COLLISION_STEP_MS
            if self.get(earlier, camera) is None:
                logger.debug(
                    "%s: %s collides at %d, moving %s back to %d",
                    camera,
                    record.file_path.name,
                    t,
                    occupant.file_path.name,
                    earlier,
                )
                self._put(earlier, camera, occupant)
                self._put(t, camera, record)
                return t

            logger.debug(
                "%s: %s collides at %d and %d, trying %d",
                camera,
                record.file_path.name,
                t,
                earlier,
                t + COLLISION_STEP_MS,
            )
            t += COLLISION_STEP_MS


# ---------------------------------------------------------------------------
# Timeline assembler
# ---------------------------------------------------------------------------


def assemble(
    records: Iterable[ImageRecord], utc_offset: datetime.timedelta
) -> Timeline:
    """Group records by normalized capture time into a sorted Timeline.

    Records are visited in file-path order. A record whose capture time cannot
    be normalized is excluded from the timeline and listed in
    ``Timeline.excluded``.
    """
    timeline = Timeline()
    for record in sorted(records, key=lambda r: str(r.file_path)):
        try:
            t = normalize_capture_time(record.raw_capture_time, utc_offset)
        except InvalidCaptureTime as exc:
            logger.debug("%s: excluded from timeline (%s)", record.file_path, exc)
            timeline.excluded.append(record.file_path)
            continue
        timeline.place(t, record)

    if timeline.excluded:
        logger.info(
            "Excluded %d file(s) without a usable capture time", len(timeline.excluded)
        )
    return timeline
