"""
Unit tests for the geo load op.

Tests the core logic in _run_geo_load without the Dagster execution context.
"""

from unittest.mock import Mock

import pytest

from geoload.errors import ValidationError
from services.dagster.geoload_pipelines.jobs.load_job import _run_geo_load
from services.dagster.geoload_pipelines.resources import InMemoryObjectStore, SimulatedWarehouse


@pytest.fixture
def store(shapefile_zip):
    store = InMemoryObjectStore()
    store.upload(shapefile_zip, "geo-uploads", "parcels/parcels.zip")
    return store


@pytest.fixture
def request_config():
    return {
        "bucket": "geo-uploads",
        "path": "parcels/parcels.zip",
        "project_id": "proj",
        "target_table": "geo.parcels",
    }


def _run(store, request, converter, settings, sleep, warehouse=None, log=None):
    return _run_geo_load(
        converter=converter,
        storage=store,
        warehouse=warehouse or SimulatedWarehouse(store=store, running_polls=1),
        identity=None,
        request=request,
        run_id="run-123",
        log=log or Mock(),
        settings=settings,
        sleep=sleep,
    )


def test_successful_load(store, request_config, fake_converter, pipeline_settings, instant_sleep):
    log = Mock()

    result = _run(store, request_config, fake_converter, pipeline_settings, instant_sleep, log=log)

    assert result["job_id"].startswith("job_")
    assert result["external_load_job_id"].startswith("geoload_")
    assert result["staged_uri"].startswith("gs://geo-uploads/")
    assert result["record_count"] == 2
    assert result["destination"] == "proj.geo.parcels"

    info_messages = [call.args[0] for call in log.info.call_args_list]
    assert any(m.startswith("Created load job job_") for m in info_messages)
    assert any("completed: 2 rows loaded into proj.geo.parcels" in m for m in info_messages)
    log.error.assert_not_called()


def test_value_wrapper_unwrapped(store, request_config, fake_converter, pipeline_settings, instant_sleep):
    result = _run(
        store, {"value": request_config}, fake_converter, pipeline_settings, instant_sleep
    )

    assert result["record_count"] == 2


def test_non_dict_request_rejected(store, fake_converter, pipeline_settings, instant_sleep):
    with pytest.raises(ValueError, match="Expected request to be a dict"):
        _run(store, "parcels.zip", fake_converter, pipeline_settings, instant_sleep)


def test_invalid_request(store, fake_converter, pipeline_settings, instant_sleep):
    with pytest.raises(ValidationError) as exc_info:
        _run(store, {"bucket": "geo-uploads"}, fake_converter, pipeline_settings, instant_sleep)

    assert "Path is required for remote source" in exc_info.value.errors


def test_failed_job_raises_and_logs_error(
    store, request_config, make_converter, pipeline_settings, instant_sleep
):
    log = Mock()
    converter = make_converter(error=RuntimeError("segfault in driver"))

    with pytest.raises(RuntimeError, match="failed: Unexpected error: segfault in driver"):
        _run(store, request_config, converter, pipeline_settings, instant_sleep, log=log)

    log.error.assert_called_once_with("Job failed: Unexpected error: segfault in driver")
