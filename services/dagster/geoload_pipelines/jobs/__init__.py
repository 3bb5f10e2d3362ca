"""Dagster Jobs - Executable Workflows."""

from .load_job import geo_load_job, load_geodata

__all__ = ["geo_load_job", "load_geodata"]
