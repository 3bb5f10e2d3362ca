# =============================================================================
# Data Models Library
# =============================================================================
# Pydantic models and settings for the GeoLoad pipeline.
# =============================================================================

"""
Data models for the GeoLoad pipeline.

This library provides:
- Job: The tracked unit of work and its source/destination types
- JobConfig: The submission contract
- SchemaField: Warehouse column definitions
- Configuration models
"""

__version__ = "0.1.0"

# Schema models
from .schema import (
    FieldMode,
    FieldType,
    SchemaField,
    validate_unique_field_names,
)

# Job models
from .job import (
    Destination,
    GeometryEncoding,
    Job,
    JobConfig,
    JobSource,
    JobStatus,
    LocalSource,
    LogEntry,
    LogLevel,
    RemoteSource,
    TERMINAL_STATUSES,
    parse_target_table,
)

# Configuration models
from .config import (
    GDALSettings,
    IdentitySettings,
    PipelineSettings,
    StorageSettings,
    WarehouseSettings,
)

__all__ = [
    # Schema models
    "FieldMode",
    "FieldType",
    "SchemaField",
    "validate_unique_field_names",
    # Job models
    "Destination",
    "GeometryEncoding",
    "Job",
    "JobConfig",
    "JobSource",
    "JobStatus",
    "LocalSource",
    "LogEntry",
    "LogLevel",
    "RemoteSource",
    "TERMINAL_STATUSES",
    "parse_target_table",
    # Configuration models
    "GDALSettings",
    "IdentitySettings",
    "PipelineSettings",
    "StorageSettings",
    "WarehouseSettings",
]
