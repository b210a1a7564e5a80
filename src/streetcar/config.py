import datetime
import pathlib
import re

import pydantic
import pydantic_settings

from streetcar.errors import ConfigurationError

_UTC_OFFSET_RE = re.compile(r"^(?P<sign>[+-])(?P<hours>\d{1,2}):?(?P<minutes>\d{2})$")


def parse_utc_offset(value: str) -> datetime.timedelta:
    """Turn ``'-04:00'``, ``'+0530'`` or ``'Z'`` into a signed timedelta."""
    value = value.strip()
    if value.upper() in ("Z", "UTC"):
        return datetime.timedelta(0)

    match = _UTC_OFFSET_RE.match(value)
    if match is None:
        raise ValueError(f"UTC offset must look like +HH:MM or -HH:MM, got {value!r}")

    hours = int(match["hours"])
    minutes = int(match["minutes"])
    if hours > 14 or minutes >= 60:
        raise ValueError(f"UTC offset out of range: {value!r}")

    offset = datetime.timedelta(hours=hours, minutes=minutes)
    return -offset if match["sign"] == "-" else offset


class StreetcarConfig(pydantic_settings.BaseSettings):
    model_config = pydantic_settings.SettingsConfigDict(env_prefix="STREETCAR_")

    # Working directory holding the front/back/left/right camera folders
    ROOT: pathlib.Path = pydantic.Field(default_factory=pathlib.Path.cwd)

    # Fixed camera clock offset from UTC, e.g. "-04:00". No auto-detection.
    UTC_OFFSET: str

    # --- Sequence cutting ---
    # Units: milliseconds
    CUT_SEQUENCE_MS: int = pydantic.Field(default=5000, gt=0)

    # --- Sample filtering ---
    # Units: km/h
    MIN_SPEED_KPH: float = pydantic.Field(default=5.0, ge=0.0)

    # Borrow a sibling camera's coordinate when a sample has none
    INFER_COORDINATES: bool = False
    # Units: degrees, added to lon and lat of a borrowed coordinate
    INFERRED_COORD_OFFSET: float = 0.000001

    # --- Extraction ---
    MAX_WORKERS: int = pydantic.Field(default=8, ge=1)
    # Units: seconds; None waits for every extraction to finish
    EXTRACT_TIMEOUT_S: float | None = pydantic.Field(default=None, gt=0.0)

    # Symlink source images into sequence<s>/<camera>/ folders
    LINK_FILES: bool = True

    @pydantic.field_validator("ROOT")
    @classmethod
    def _resolve_root(cls, value: pathlib.Path) -> pathlib.Path:
        return value.expanduser().resolve()

    @pydantic.field_validator("UTC_OFFSET")
    @classmethod
    def _check_utc_offset(cls, value: str) -> str:
        parse_utc_offset(value)
        return value.strip()

    @property
    def utc_offset(self) -> datetime.timedelta:
        return parse_utc_offset(self.UTC_OFFSET)

    @property
    def STREETCAR_DIR(self) -> pathlib.Path:
        return self.ROOT / ".streetcar"

    @property
    def GEOJSON_DIR(self) -> pathlib.Path:
        return self.STREETCAR_DIR / "geojson"

    def geojson_path(self, sequence_index: int) -> pathlib.Path:
        return self.GEOJSON_DIR / f"sequence{sequence_index}.geojson"


def load_config(**overrides) -> StreetcarConfig:
    """Build the settings from ``STREETCAR_*`` env vars plus explicit overrides.

    Raises
    ------
    ConfigurationError
        When a value is missing or does not validate.
    """
    overrides = {k: v for k, v in overrides.items() if v is not None}
    try:
        return StreetcarConfig(**overrides)
    except pydantic.ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from exc
