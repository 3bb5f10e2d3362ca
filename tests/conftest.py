"""
Shared pytest fixtures for GeoLoad tests.

Provides reusable feature collections, archive builders and fake
collaborators so no test needs GDAL, network or object storage.
"""

import copy
import io
import zipfile

import pytest

from geoload.models import PipelineSettings


# =============================================================================
# Archive Builders
# =============================================================================

def build_zip(members: dict) -> bytes:
    """Build an in-memory zip from {name: bytes} in insertion order."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, data in members.items():
            archive.writestr(name, data)
    return buffer.getvalue()


SHAPEFILE_MEMBERS = {
    "parcels.shp": b"\x00\x00\x27\x0a shp geometry bytes",
    "parcels.shx": b"\x00\x00\x27\x0a shx index bytes",
    "parcels.dbf": b"\x03 dbf attribute bytes",
    "parcels.prj": b'GEOGCS["WGS 84"]',
}


@pytest.fixture
def shapefile_zip():
    """Zip bytes of a four-part shapefile bundle named parcels."""
    return build_zip(SHAPEFILE_MEMBERS)


# =============================================================================
# Feature Collection Fixtures
# =============================================================================

PARCELS_FC = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "properties": {"parcel_id": 1, "owner": "Smith", "area": 120.5, "vacant": False},
            "geometry": {
                "type": "LineString",
                "coordinates": [[0, 0], [10, 0], [10, 10], [0, 10]],
                "bbox": [0, 0, 10, 10],
            },
        },
        {
            "type": "Feature",
            "properties": {"parcel_id": 2, "owner": None, "area": 80, "vacant": True},
            "geometry": {
                "type": "LineString",
                "coordinates": [[20, 20], [30, 20], [30, 30], [20, 20]],
            },
        },
    ],
}


@pytest.fixture
def parcels_fc():
    """Two-feature collection with open and closed LineString boundaries."""
    return copy.deepcopy(PARCELS_FC)


@pytest.fixture
def mixed_geometry_fc():
    """Collection mixing LineString, Point, Polygon, empty and null geometries."""
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {"name": "line"},
                "geometry": {"type": "LineString", "coordinates": [[1.5, 2.5], [3, 4], [5, 6]]},
            },
            {
                "type": "Feature",
                "properties": {"name": "point"},
                "geometry": {"type": "Point", "coordinates": [1, 2]},
            },
            {
                "type": "Feature",
                "properties": {"name": "polygon"},
                "geometry": {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 0]]]},
            },
            {
                "type": "Feature",
                "properties": {"name": "empty"},
                "geometry": {"type": "LineString", "coordinates": []},
            },
            {
                "type": "Feature",
                "properties": {"name": "null"},
                "geometry": None,
            },
        ],
    }


# =============================================================================
# Fake Collaborators
# =============================================================================

class FakeConverter:
    """Stands in for GeometryConverter; returns a fixed feature collection."""

    def __init__(self, feature_collection=None, error=None):
        self.feature_collection = feature_collection or copy.deepcopy(PARCELS_FC)
        self.error = error
        self.calls = []

    def convert(self, primary_path):
        self.calls.append(primary_path)
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.feature_collection)


async def no_sleep(_seconds):
    """Sleep replacement that returns immediately."""
    return None


@pytest.fixture
def fake_converter():
    return FakeConverter()


@pytest.fixture
def pipeline_settings():
    """Pipeline settings independent of the process environment."""
    return PipelineSettings(
        ENABLE_REAL_PROCESSING=False,
        GEOLOAD_POLL_INTERVAL_SECONDS=0.01,
        GEOLOAD_POLL_MAX_ATTEMPTS=30,
        GCS_DEFAULT_BUCKET="geo-staging",
    )


@pytest.fixture
def make_zip():
    """Factory fixture: build_zip."""
    return build_zip


@pytest.fixture
def make_converter():
    """Factory fixture: FakeConverter."""
    return FakeConverter


@pytest.fixture
def instant_sleep():
    """Sleep replacement for monitors and orchestrators."""
    return no_sleep
