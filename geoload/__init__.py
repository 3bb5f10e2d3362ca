# =============================================================================
# GeoLoad Shared Libraries
# =============================================================================
# This package contains shared libraries for the GeoLoad pipeline.
# See individual sub-packages for detailed documentation.
# =============================================================================

"""
GeoLoad shared libraries.

Sub-packages:
- models: Pydantic job, schema and settings models
- spatial_utils: Archive extraction, record encoding and schema inference
"""

__version__ = "0.1.0"
