# =============================================================================
# Record Encoder
# =============================================================================
# Flattens GeoJSON features into warehouse records with a serialized
# geometry column, and serializes record streams to NDJSON.
# =============================================================================

import json
import logging
from typing import Any, Iterable, Iterator, Optional

from ..models.job import GeometryEncoding

__all__ = [
    "GEOMETRY_FIELD",
    "RecordEncoder",
    "close_ring",
    "linestring_to_polygon_wkt",
    "to_ndjson",
]

logger = logging.getLogger(__name__)

GEOMETRY_FIELD = "geometry"


def _format_coordinate(value: Any) -> str:
    """Render one ordinate the way it appears in the source (1.0 -> 1)."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return repr(value) if isinstance(value, float) else str(value)


def close_ring(coordinates: list) -> list:
    """
    Return the coordinate sequence with its first point appended when open.

    Examples:
        >>> close_ring([[0, 0], [1, 0], [1, 1]])
        [[0, 0], [1, 0], [1, 1], [0, 0]]
        >>> close_ring([[0, 0], [1, 0], [0, 0]])
        [[0, 0], [1, 0], [0, 0]]
    """
    if not coordinates:
        return []
    ring = [list(point) for point in coordinates]
    if ring[0] != ring[-1]:
        ring.append(list(ring[0]))
    return ring


def linestring_to_polygon_wkt(coordinates: list) -> str:
    """
    Render a LineString's coordinates as a closed WKT polygon.

    Examples:
        >>> linestring_to_polygon_wkt([[0, 0], [1, 0], [1, 1]])
        'POLYGON((0 0, 1 0, 1 1, 0 0))'
    """
    ring = close_ring(coordinates)
    points = ", ".join(" ".join(_format_coordinate(v) for v in point) for point in ring)
    return f"POLYGON(({points}))"


class RecordEncoder:
    """
    Turn a GeoJSON FeatureCollection into flat records.

    Each record holds the feature's properties verbatim plus a ``geometry``
    value serialized according to ``encoding``:

    - ``geojson``: compact JSON text of the geometry, ``bbox`` removed; a null
      geometry stays null.
    - ``wkt``: LineStrings become closed ``POLYGON((...))`` rings. Any other
      geometry (or an empty LineString) is dropped and counted in
      ``dropped_count``.

    ``encode`` is a lazy single pass; call it again to re-encode.

    Example:
        >>> encoder = RecordEncoder(GeometryEncoding.WKT)
        >>> records = list(encoder.encode(feature_collection))
        >>> encoder.dropped_count
        0
    """

    def __init__(self, encoding: GeometryEncoding = GeometryEncoding.GEOJSON):
        self.encoding = GeometryEncoding(encoding)
        self.encoded_count = 0
        self.dropped_count = 0

    def encode(self, feature_collection: dict) -> Iterator[dict]:
        self.encoded_count = 0
        self.dropped_count = 0

        for feature in feature_collection.get("features") or []:
            record = self.encode_feature(feature)
            if record is None:
                self.dropped_count += 1
                continue
            self.encoded_count += 1
            yield record

        if self.dropped_count:
            logger.warning(
                f"Dropped {self.dropped_count} features whose geometry cannot be "
                f"encoded as {self.encoding.value}"
            )

    def encode_feature(self, feature: dict) -> Optional[dict]:
        """Encode one feature, or return None when it must be dropped."""
        record = dict(feature.get("properties") or {})
        geometry = feature.get("geometry")

        if self.encoding == GeometryEncoding.WKT:
            wkt = self._to_wkt(geometry)
            if wkt is None:
                return None
            record[GEOMETRY_FIELD] = wkt
        else:
            record[GEOMETRY_FIELD] = self._to_geojson(geometry)

        return record

    @staticmethod
    def _to_geojson(geometry: Optional[dict]) -> Optional[str]:
        if geometry is None:
            return None
        stripped = {k: v for k, v in geometry.items() if k != "bbox"}
        return json.dumps(stripped, separators=(",", ":"), ensure_ascii=False)

    @staticmethod
    def _to_wkt(geometry: Optional[dict]) -> Optional[str]:
        if not geometry or geometry.get("type") != "LineString":
            return None
        coordinates = geometry.get("coordinates") or []
        if not coordinates:
            return None
        return linestring_to_polygon_wkt(coordinates)


def to_ndjson(records: Iterable[dict]) -> Iterator[str]:
    """Yield each record as one compact JSON line (newline-terminated)."""
    for record in records:
        yield json.dumps(record, separators=(",", ":"), ensure_ascii=False, default=str) + "\n"
