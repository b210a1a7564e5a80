"""Multi-camera capture alignment and GeoJSON sequence generation."""

__version__ = "1.0.0"
GENERATOR = "streetcar"
