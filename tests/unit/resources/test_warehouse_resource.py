"""
Unit tests for BigQueryResource and SimulatedWarehouse.

HTTP calls go through a real httpx.Client wired to an httpx.MockTransport,
so request bodies and response handling are exercised without a network.
"""

import json
from unittest.mock import patch

import httpx
import pytest

from geoload.models import Destination, SchemaField
from services.dagster.geoload_pipelines.resources import (
    BigQueryResource,
    IdentityResource,
    InMemoryObjectStore,
    SimulatedWarehouse,
    Warehouse,
    WarehouseAPIError,
)

CLIENT_PATH = "services.dagster.geoload_pipelines.resources.warehouse_resource.httpx.Client"
RealClient = httpx.Client

DESTINATION = Destination(project_id="proj", dataset_id="geo", table_id="parcels")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def bigquery():
    return BigQueryResource(
        identity=IdentityResource(access_token="ya29.token"),
        location="EU",
        api_url="https://bq.example.com/bigquery/v2",
    )


class RecordingTransport:
    """Serves queued responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)

    def client_factory(self, **kwargs):
        return RealClient(transport=httpx.MockTransport(self), **kwargs)


def _body(request):
    return json.loads(request.content)


# =============================================================================
# Test: ensure_dataset / ensure_table
# =============================================================================


def test_ensure_dataset_created(bigquery):
    transport = RecordingTransport(httpx.Response(200, json={"id": "proj:geo"}))
    with patch(CLIENT_PATH, side_effect=transport.client_factory):
        assert bigquery.ensure_dataset("proj", "geo") is True

    request = transport.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/bigquery/v2/projects/proj/datasets"
    assert request.headers["Authorization"] == "Bearer ya29.token"
    assert _body(request) == {
        "datasetReference": {"projectId": "proj", "datasetId": "geo"},
        "location": "EU",
    }


def test_ensure_dataset_already_exists(bigquery):
    transport = RecordingTransport(
        httpx.Response(409, json={"error": {"code": 409, "message": "Already Exists"}})
    )
    with patch(CLIENT_PATH, side_effect=transport.client_factory):
        assert bigquery.ensure_dataset("proj", "geo") is False


def test_ensure_dataset_error(bigquery):
    transport = RecordingTransport(
        httpx.Response(403, json={"error": {"code": 403, "message": "Access Denied"}})
    )
    with patch(CLIENT_PATH, side_effect=transport.client_factory):
        with pytest.raises(WarehouseAPIError) as exc_info:
            bigquery.ensure_dataset("proj", "geo")

    assert exc_info.value.status_code == 403
    assert "Access Denied" in str(exc_info.value)


def test_ensure_table_sends_schema(bigquery):
    transport = RecordingTransport(httpx.Response(200, json={}), httpx.Response(409, json={}))
    schema = [
        SchemaField(name="parcel_id", type="INTEGER", mode="REQUIRED"),
        SchemaField(name="geometry", type="GEOGRAPHY"),
    ]
    with patch(CLIENT_PATH, side_effect=transport.client_factory):
        assert bigquery.ensure_table(DESTINATION, schema) is True
        assert bigquery.ensure_table(DESTINATION, schema) is False

    body = _body(transport.requests[0])
    assert transport.requests[0].url.path == "/bigquery/v2/projects/proj/datasets/geo/tables"
    assert body["tableReference"] == {"projectId": "proj", "datasetId": "geo", "tableId": "parcels"}
    assert body["schema"]["fields"] == [
        {"name": "parcel_id", "type": "INTEGER", "mode": "REQUIRED"},
        {"name": "geometry", "type": "GEOGRAPHY", "mode": "NULLABLE"},
    ]


# =============================================================================
# Test: submit_load_job
# =============================================================================


def test_submit_load_job_with_schema(bigquery):
    transport = RecordingTransport(
        httpx.Response(200, json={"jobReference": {"jobId": "geoload_1_abc"}})
    )
    schema = [SchemaField(name="geometry", type="GEOGRAPHY")]
    with patch(CLIENT_PATH, side_effect=transport.client_factory):
        job_id = bigquery.submit_load_job("gs://geo/x.ndjson", DESTINATION, schema)

    assert job_id == "geoload_1_abc"
    body = _body(transport.requests[0])
    load = body["configuration"]["load"]
    assert transport.requests[0].url.path == "/bigquery/v2/projects/proj/jobs"
    assert body["jobReference"]["location"] == "EU"
    assert body["jobReference"]["jobId"].startswith("geoload_")
    assert load["sourceUris"] == ["gs://geo/x.ndjson"]
    assert load["sourceFormat"] == "NEWLINE_DELIMITED_JSON"
    assert load["writeDisposition"] == "WRITE_TRUNCATE"
    assert load["createDisposition"] == "CREATE_IF_NEEDED"
    assert load["autodetect"] is False
    assert load["schema"]["fields"][0]["type"] == "GEOGRAPHY"


def test_submit_load_job_autodetect_without_schema(bigquery):
    transport = RecordingTransport(httpx.Response(200, json={"jobReference": {"jobId": "j"}}))
    with patch(CLIENT_PATH, side_effect=transport.client_factory):
        bigquery.submit_load_job("gs://geo/x.ndjson", DESTINATION)

    load = _body(transport.requests[0])["configuration"]["load"]
    assert load["autodetect"] is True
    assert "schema" not in load


def test_submit_load_job_rejected(bigquery):
    payload = {"error": {"code": 400, "message": "Invalid source URI"}}
    transport = RecordingTransport(httpx.Response(400, json=payload))
    with patch(CLIENT_PATH, side_effect=transport.client_factory):
        with pytest.raises(WarehouseAPIError) as exc_info:
            bigquery.submit_load_job("gs://geo/x.ndjson", DESTINATION)

    assert exc_info.value.payload == payload


def test_submit_load_job_conflict_raises(bigquery):
    payload = {"error": {"code": 409, "message": "Already Exists: Job proj:EU.geoload_1_abc"}}
    transport = RecordingTransport(httpx.Response(409, json=payload))
    with patch(CLIENT_PATH, side_effect=transport.client_factory):
        with pytest.raises(WarehouseAPIError) as exc_info:
            bigquery.submit_load_job("gs://geo/x.ndjson", DESTINATION)

    assert exc_info.value.status_code == 409
    assert exc_info.value.payload == payload


# =============================================================================
# Test: get_job_status
# =============================================================================


def test_get_job_status_running(bigquery):
    transport = RecordingTransport(httpx.Response(200, json={"status": {"state": "RUNNING"}}))
    with patch(CLIENT_PATH, side_effect=transport.client_factory):
        status = bigquery.get_job_status("j1", "proj")

    assert status.state == "RUNNING"
    assert status.done is False
    assert transport.requests[0].url.params["location"] == "EU"


def test_get_job_status_done_with_errors(bigquery):
    payload = {
        "status": {
            "state": "DONE",
            "errorResult": {"message": "Too many errors"},
            "errors": [{"message": "Invalid GEOGRAPHY value"}, {"message": "Too many errors"}],
        },
        "statistics": {"load": {"outputRows": "0"}},
    }
    transport = RecordingTransport(httpx.Response(200, json=payload))
    with patch(CLIENT_PATH, side_effect=transport.client_factory):
        status = bigquery.get_job_status("j1", "proj")

    assert status.done
    assert status.errors == ["Invalid GEOGRAPHY value", "Too many errors"]
    assert status.statistics == {"outputRows": "0"}


def test_get_job_status_error_result_only(bigquery):
    payload = {"status": {"state": "DONE", "errorResult": {"message": "Access Denied"}}}
    transport = RecordingTransport(httpx.Response(200, json=payload))
    with patch(CLIENT_PATH, side_effect=transport.client_factory):
        status = bigquery.get_job_status("j1", "proj")

    assert status.errors == ["Access Denied"]


def test_get_job_status_non_json_error(bigquery):
    transport = RecordingTransport(httpx.Response(502, text="Bad Gateway"))
    with patch(CLIENT_PATH, side_effect=transport.client_factory):
        with pytest.raises(WarehouseAPIError) as exc_info:
            bigquery.get_job_status("j1", "proj")

    assert exc_info.value.payload == "Bad Gateway"


def test_get_job_status_conflict_is_an_error(bigquery):
    transport = RecordingTransport(
        httpx.Response(409, json={"error": {"code": 409, "message": "Conflict"}})
    )
    with patch(CLIENT_PATH, side_effect=transport.client_factory):
        with pytest.raises(WarehouseAPIError) as exc_info:
            bigquery.get_job_status("j1", "proj")

    assert exc_info.value.status_code == 409
    assert "Conflict" in str(exc_info.value)


# =============================================================================
# Test: SimulatedWarehouse
# =============================================================================


def test_simulated_warehouse_lifecycle():
    store = InMemoryObjectStore()
    uri = store.upload(b'{"a":1}\n{"a":2}\n', "geo", "x.ndjson")
    warehouse = SimulatedWarehouse(store=store, running_polls=2)

    assert isinstance(warehouse, Warehouse)
    assert warehouse.ensure_dataset("proj", "geo") is True
    assert warehouse.ensure_dataset("proj", "geo") is False
    assert warehouse.ensure_table(DESTINATION, []) is True
    assert warehouse.ensure_table(DESTINATION, []) is False

    job_id = warehouse.submit_load_job(uri, DESTINATION)

    assert warehouse.get_job_status(job_id, "proj").state == "RUNNING"
    assert warehouse.get_job_status(job_id, "proj").state == "RUNNING"
    final = warehouse.get_job_status(job_id, "proj")
    assert final.done
    assert final.errors == []
    assert final.statistics == {"outputRows": "2"}


def test_simulated_warehouse_unknown_job():
    with pytest.raises(WarehouseAPIError) as exc_info:
        SimulatedWarehouse().get_job_status("missing", "proj")

    assert exc_info.value.status_code == 404
