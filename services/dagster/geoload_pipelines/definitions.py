"""Dagster Definitions - Repository Configuration.

Defines jobs and resources for the GeoLoad pipeline. Backends are selected
once, here, from the environment (see geoload.models.config):

    ENABLE_REAL_PROCESSING=true   -> GCS + BigQuery
    otherwise                     -> in-memory store + simulated warehouse
"""

from dagster import Definitions

from .jobs import geo_load_job
from .resources import build_backends


# =============================================================================
# Resources
# =============================================================================

backends = build_backends()


# =============================================================================
# Definitions
# =============================================================================

defs = Definitions(
    jobs=[
        geo_load_job,
    ],
    resources=backends.as_resources(),
    schedules=[],
    sensors=[],
)
