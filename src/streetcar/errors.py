"""Exception types raised by the streetcar pipeline."""


class StreetcarError(Exception):
    """Base class for all streetcar errors."""


class ExtractionFailure(StreetcarError):
    """A file yielded no usable metadata (no EXIF block, no capture time)."""


class InvalidCaptureTime(ExtractionFailure):
    """The capture time is absent or cannot be parsed."""


class InvalidCoordinate(StreetcarError):
    """GPS fields are present but malformed."""


class FilesystemFailure(StreetcarError):
    """An output directory, file or symlink could not be created."""


class ConfigurationError(StreetcarError):
    """Settings are invalid; raised before any processing starts."""
