# =============================================================================
# Spatial Utils Library
# =============================================================================
# Archive handling, feature encoding and schema inference for the load
# pipeline. Everything here is pure Python; GDAL lives in the resources.
# =============================================================================

"""
Spatial utilities for the GeoLoad pipeline.

This library provides:
- extract_archive / scoped_workdir: Zip extraction into a temporary directory
- RecordEncoder: GeoJSON features -> flat records (GeoJSON or WKT geometry)
- to_ndjson: Newline-delimited JSON serialization
- infer_schema: Typed schema from a record stream
"""

from .archive import (
    ExtractedArchive,
    ExtractedFile,
    extract_archive,
    prepare_primary_file,
    scoped_workdir,
)
from .record_encoder import (
    GEOMETRY_FIELD,
    RecordEncoder,
    close_ring,
    linestring_to_polygon_wkt,
    to_ndjson,
)
from .schema_inference import infer_schema

__version__ = "0.1.0"

__all__ = [
    "ExtractedArchive",
    "ExtractedFile",
    "extract_archive",
    "prepare_primary_file",
    "scoped_workdir",
    "GEOMETRY_FIELD",
    "RecordEncoder",
    "close_ring",
    "linestring_to_polygon_wkt",
    "to_ndjson",
    "infer_schema",
]
