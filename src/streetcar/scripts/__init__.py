"""
Streetcar Scripts Package

Command-line entry points.

Available scripts:
- streetcar_init: Cut camera folders into GeoJSON sequences
- streetcar_info: Print statistics on generated sequences
"""

__all__ = ["streetcar_init", "streetcar_info"]
