"""Unit tests for the record encoder and NDJSON serialization."""

import json

import pytest

from geoload.models import GeometryEncoding
from geoload.spatial_utils import (
    RecordEncoder,
    close_ring,
    linestring_to_polygon_wkt,
    to_ndjson,
)


# =============================================================================
# Ring closing
# =============================================================================

class TestCloseRing:

    def test_open_ring_gets_first_point_appended(self):
        assert close_ring([[0, 0], [1, 0], [1, 1]]) == [[0, 0], [1, 0], [1, 1], [0, 0]]

    def test_closed_ring_unchanged(self):
        ring = [[0, 0], [1, 0], [1, 1], [0, 0]]

        assert close_ring(ring) == ring

    def test_empty_sequence(self):
        assert close_ring([]) == []

    def test_input_not_mutated(self):
        coords = [[0, 0], [1, 0], [1, 1]]
        close_ring(coords)

        assert coords == [[0, 0], [1, 0], [1, 1]]


class TestLinestringToPolygonWkt:

    def test_open_linestring_closed_in_wkt(self):
        wkt = linestring_to_polygon_wkt([[0, 0], [10, 0], [10, 10], [0, 10]])

        assert wkt == "POLYGON((0 0, 10 0, 10 10, 0 10, 0 0))"

    def test_already_closed_not_duplicated(self):
        wkt = linestring_to_polygon_wkt([[20, 20], [30, 20], [30, 30], [20, 20]])

        assert wkt == "POLYGON((20 20, 30 20, 30 30, 20 20))"

    def test_fractional_and_integral_floats(self):
        wkt = linestring_to_polygon_wkt([[-122.4194, 37.7749], [1.0, 2.0], [3, 4]])

        assert wkt == "POLYGON((-122.4194 37.7749, 1 2, 3 4, -122.4194 37.7749))"


# =============================================================================
# RecordEncoder
# =============================================================================

class TestRecordEncoderGeoJSON:

    def test_properties_copied_verbatim(self, parcels_fc):
        records = list(RecordEncoder().encode(parcels_fc))

        assert records[0]["parcel_id"] == 1
        assert records[0]["owner"] == "Smith"
        assert records[0]["area"] == 120.5
        assert records[0]["vacant"] is False
        assert records[1]["owner"] is None

    def test_geometry_is_compact_json_without_bbox(self, parcels_fc):
        records = list(RecordEncoder(GeometryEncoding.GEOJSON).encode(parcels_fc))

        geometry = records[0]["geometry"]
        assert isinstance(geometry, str)
        assert " " not in geometry
        assert json.loads(geometry) == {
            "type": "LineString",
            "coordinates": [[0, 0], [10, 0], [10, 10], [0, 10]],
        }

    def test_all_geometry_types_kept(self, mixed_geometry_fc):
        encoder = RecordEncoder()
        records = list(encoder.encode(mixed_geometry_fc))

        assert len(records) == 5
        assert encoder.dropped_count == 0
        assert json.loads(records[1]["geometry"])["type"] == "Point"

    def test_null_geometry_stays_null(self, mixed_geometry_fc):
        records = list(RecordEncoder().encode(mixed_geometry_fc))

        assert records[-1]["name"] == "null"
        assert records[-1]["geometry"] is None

    def test_missing_properties_tolerated(self):
        fc = {"type": "FeatureCollection", "features": [{"type": "Feature", "geometry": None}]}

        assert list(RecordEncoder().encode(fc)) == [{"geometry": None}]

    def test_source_feature_not_mutated(self, parcels_fc):
        list(RecordEncoder().encode(parcels_fc))

        assert "bbox" in parcels_fc["features"][0]["geometry"]
        assert "geometry" not in parcels_fc["features"][0]["properties"]


class TestRecordEncoderWKT:

    def test_linestrings_become_closed_polygons(self, parcels_fc):
        records = list(RecordEncoder(GeometryEncoding.WKT).encode(parcels_fc))

        assert records[0]["geometry"] == "POLYGON((0 0, 10 0, 10 10, 0 10, 0 0))"
        assert records[1]["geometry"] == "POLYGON((20 20, 30 20, 30 30, 20 20))"

    def test_non_linestring_features_dropped_and_counted(self, mixed_geometry_fc, caplog):
        encoder = RecordEncoder("wkt")
        records = list(encoder.encode(mixed_geometry_fc))

        assert [r["name"] for r in records] == ["line"]
        assert encoder.encoded_count == 1
        assert encoder.dropped_count == 4
        assert "Dropped 4 features" in caplog.text

    def test_counts_reset_on_reencode(self, mixed_geometry_fc):
        encoder = RecordEncoder(GeometryEncoding.WKT)
        list(encoder.encode(mixed_geometry_fc))
        list(encoder.encode(mixed_geometry_fc))

        assert encoder.dropped_count == 4
        assert encoder.encoded_count == 1

    def test_encode_is_lazy(self, parcels_fc):
        encoder = RecordEncoder(GeometryEncoding.WKT)
        stream = encoder.encode(parcels_fc)

        assert encoder.encoded_count == 0
        next(stream)
        assert encoder.encoded_count == 1

    def test_invalid_encoding_rejected(self):
        with pytest.raises(ValueError):
            RecordEncoder("kml")


# =============================================================================
# NDJSON
# =============================================================================

class TestToNdjson:

    def test_one_compact_object_per_line(self):
        lines = list(to_ndjson([{"a": 1, "b": "x"}, {"a": 2, "b": None}]))

        assert lines == ['{"a":1,"b":"x"}\n', '{"a":2,"b":null}\n']

    def test_non_ascii_preserved(self):
        (line,) = to_ndjson([{"name": "Zürich"}])

        assert "Zürich" in line

    def test_empty_stream(self):
        assert list(to_ndjson([])) == []
