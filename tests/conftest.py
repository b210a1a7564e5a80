from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from streetcar.capture_data import Camera, ImageRecord


def at_ms(ms: int) -> datetime:
    """Aware capture time that normalizes to exactly *ms*."""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


@pytest.fixture(autouse=True)
def _clean_streetcar_env(monkeypatch) -> None:
    for name in (
        "STREETCAR_UTC_OFFSET",
        "STREETCAR_ROOT",
        "STREETCAR_CUT_SEQUENCE_MS",
        "STREETCAR_MIN_SPEED_KPH",
        "STREETCAR_INFER_COORDINATES",
        "STREETCAR_LINK_FILES",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_record():
    def _make(
        camera: str | Camera,
        ms: int,
        coord: tuple[float, ...] | None = (0.0, 0.0),
        *,
        name: str | None = None,
        speed: float | None = None,
        size: int = 100,
        **fields,
    ) -> ImageRecord:
        camera = Camera(camera)
        return ImageRecord(
            camera=camera,
            file_path=Path(f"/captures/{camera}/{name or f'img_{ms:08d}.jpg'}"),
            byte_size=size,
            raw_capture_time=at_ms(ms),
            coord=coord,
            speed_kph=speed,
            **fields,
        )

    return _make
