# =============================================================================
# Object Store URI Utilities
# =============================================================================
# Shared helpers for building and parsing object-store URIs and the staging
# path layout used by the load pipeline.
# =============================================================================

"""
Object store URI utilities for the GeoLoad pipeline.

This module provides functions for:
- Parsing gs:// and s3:// URIs into bucket and key components
- Building URIs from bucket and key
- Deriving a staging base name from a source file name
- Building the timestamped staging path
"""

import re
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Optional, Tuple

__all__ = [
    "SUPPORTED_SCHEMES",
    "parse_object_uri",
    "build_object_uri",
    "derive_base_name",
    "build_staging_path",
]

SUPPORTED_SCHEMES = ("gs", "s3")

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def parse_object_uri(uri: str) -> Tuple[str, str]:
    """
    Parse an object store URI into bucket and key components.

    Args:
        uri: Full URI (e.g., "gs://geo-staging/2024-01-01/converted/x.ndjson")

    Returns:
        Tuple of (bucket, key)

    Raises:
        ValueError: If the scheme is unsupported or bucket/key is missing

    Examples:
        >>> parse_object_uri("gs://geo-staging/a/b.ndjson")
        ('geo-staging', 'a/b.ndjson')
        >>> parse_object_uri("s3://landing/data.zip")
        ('landing', 'data.zip')
    """
    scheme, sep, remainder = uri.partition("://")
    if not sep or scheme not in SUPPORTED_SCHEMES:
        raise ValueError(
            f"Invalid object URI: '{uri}'. Must start with one of "
            f"{', '.join(s + '://' for s in SUPPORTED_SCHEMES)}"
        )

    parts = remainder.split("/", 1)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ValueError(
            f"Invalid object URI: '{uri}'. Expected '{scheme}://bucket/key'"
        )

    return parts[0], parts[1]


def build_object_uri(bucket: str, key: str, scheme: str = "gs") -> str:
    """
    Build a URI from bucket and key.

    Examples:
        >>> build_object_uri("geo-staging", "/a/b.ndjson")
        'gs://geo-staging/a/b.ndjson'
    """
    if scheme not in SUPPORTED_SCHEMES:
        raise ValueError(f"Unsupported URI scheme: '{scheme}'")
    return f"{scheme}://{bucket}/{key.lstrip('/')}"


def derive_base_name(file_name: str) -> str:
    """
    Strip directories and extension from a source file name.

    Characters outside ``[A-Za-z0-9._-]`` are replaced with underscores so the
    result is safe inside an object key.

    Examples:
        >>> derive_base_name("parcels.zip")
        'parcels'
        >>> derive_base_name("uploads/Land Use 2020.shp.zip")
        'Land_Use_2020.shp'
    """
    stem = PurePosixPath(file_name.replace("\\", "/")).stem
    cleaned = _UNSAFE_NAME_CHARS.sub("_", stem).strip("_")
    return cleaned or "dataset"


def build_staging_path(
    base_name: str,
    subarea: str = "converted",
    now: Optional[datetime] = None,
    extension: str = ".ndjson",
) -> str:
    """
    Build the staging object key ``{YYYY-MM-DD}/{subarea}/{epoch_ms}_{base_name}{ext}``.

    Examples:
        >>> from datetime import datetime, timezone
        >>> build_staging_path("parcels", now=datetime(2024, 3, 1, tzinfo=timezone.utc))
        '2024-03-01/converted/1709251200000_parcels.ndjson'
    """
    now = now or datetime.now(timezone.utc)
    epoch_ms = int(now.timestamp() * 1000)
    return f"{now.strftime('%Y-%m-%d')}/{subarea}/{epoch_ms}_{base_name}{extension}"
