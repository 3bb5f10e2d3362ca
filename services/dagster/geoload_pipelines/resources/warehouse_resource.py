# =============================================================================
# Warehouse Resource - BigQuery REST Operations
# =============================================================================
# Idempotent dataset/table creation, load job submission and job status
# lookups against the BigQuery v2 REST API, plus a simulated warehouse used
# when real processing is disabled.
# =============================================================================

from dataclasses import dataclass, field
import logging
import threading
import time
from typing import Any, Optional, Protocol, runtime_checkable
import uuid

from dagster import ConfigurableResource
import httpx
from pydantic import Field

from geoload.models import Destination, SchemaField
from geoload.uri_utils import parse_object_uri

from .identity_resource import IdentityResource
from .storage_resource import ObjectStore

__all__ = [
    "WarehouseAPIError",
    "WarehouseJobStatus",
    "Warehouse",
    "BigQueryResource",
    "SimulatedWarehouse",
]

logger = logging.getLogger(__name__)

NDJSON_SOURCE_FORMAT = "NEWLINE_DELIMITED_JSON"


class WarehouseAPIError(Exception):
    """
    Non-success HTTP response from the warehouse API.

    Attributes:
        status_code: HTTP status code
        payload: Decoded error body (dict) or raw text
    """

    def __init__(self, status_code: int, payload: Any):
        self.status_code = status_code
        self.payload = payload
        message = None
        if isinstance(payload, dict):
            message = (payload.get("error") or {}).get("message")
        super().__init__(f"Warehouse API error {status_code}: {message or payload}")


@dataclass
class WarehouseJobStatus:
    """Snapshot of a warehouse load job."""

    state: str
    errors: list[str] = field(default_factory=list)
    statistics: dict = field(default_factory=dict)

    @property
    def done(self) -> bool:
        return self.state == "DONE"


@runtime_checkable
class Warehouse(Protocol):
    """What the pipeline needs from the warehouse."""

    def ensure_dataset(self, project_id: str, dataset_id: str) -> bool: ...

    def ensure_table(self, destination: Destination, schema: list[SchemaField]) -> bool: ...

    def submit_load_job(
        self,
        source_uri: str,
        destination: Destination,
        schema: Optional[list[SchemaField]] = None,
    ) -> str: ...

    def get_job_status(self, job_id: str, project_id: str) -> WarehouseJobStatus: ...


def _new_load_job_id() -> str:
    return f"geoload_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def _parse_job_status(payload: dict) -> WarehouseJobStatus:
    status = payload.get("status") or {}
    errors = [e.get("message", str(e)) for e in status.get("errors") or []]
    if not errors and status.get("errorResult"):
        errors = [status["errorResult"].get("message", "Load job failed")]
    statistics = (payload.get("statistics") or {}).get("load") or {}
    return WarehouseJobStatus(
        state=status.get("state", "PENDING"),
        errors=errors,
        statistics=dict(statistics),
    )


class BigQueryResource(ConfigurableResource):
    """
    Dagster resource for the BigQuery REST API.

    Configuration matches WarehouseSettings from geoload.models.config.

    Attributes:
        identity: Provides the bearer token for every request
        location: Dataset and job location (default: "US")
        api_url: REST base URL
        timeout_seconds: Per-request HTTP timeout
        write_disposition: Load job write disposition (default: WRITE_TRUNCATE)

    Example:
        >>> bq = BigQueryResource(identity=IdentityResource(access_token="ya29..."))
        >>> bq.ensure_dataset("my-project", "geo")
        True
    """

    identity: IdentityResource
    location: str = Field("US", description="Dataset / job location")
    api_url: str = Field(
        "https://bigquery.googleapis.com/bigquery/v2",
        description="BigQuery REST base URL",
    )
    timeout_seconds: float = Field(30.0, description="HTTP timeout per request")
    write_disposition: str = Field("WRITE_TRUNCATE", description="Load job write disposition")

    def get_client(self) -> httpx.Client:
        """
        Create an HTTP client bound to the API base URL.

        Returns:
            httpx.Client carrying the identity's auth headers
        """
        return httpx.Client(
            base_url=self.api_url,
            headers=self.identity.auth_headers(),
            timeout=self.timeout_seconds,
        )

    def _request(
        self,
        method: str,
        url: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
        allow_conflict: bool = False,
    ) -> httpx.Response:
        with self.get_client() as client:
            response = client.request(method, url, json=json, params=params)

        # 409 means "already exists", which only create calls can treat as success
        if response.is_success or (allow_conflict and response.status_code == 409):
            return response

        try:
            payload = response.json()
        except ValueError:
            payload = response.text
        raise WarehouseAPIError(response.status_code, payload)

    def ensure_dataset(self, project_id: str, dataset_id: str) -> bool:
        """
        Create the dataset unless it exists.

        Returns:
            True if created, False if it already existed

        Raises:
            WarehouseAPIError: For any other non-success response
        """
        response = self._request(
            "POST",
            f"/projects/{project_id}/datasets",
            json={
                "datasetReference": {"projectId": project_id, "datasetId": dataset_id},
                "location": self.location,
            },
            allow_conflict=True,
        )
        created = response.status_code != 409
        logger.info(
            f"Dataset {project_id}.{dataset_id} "
            f"{'created' if created else 'already exists'}"
        )
        return created

    def ensure_table(self, destination: Destination, schema: list[SchemaField]) -> bool:
        """
        Create the destination table with the given schema unless it exists.

        Returns:
            True if created, False if it already existed

        Raises:
            WarehouseAPIError: For any other non-success response
        """
        response = self._request(
            "POST",
            f"/projects/{destination.project_id}/datasets/{destination.dataset_id}/tables",
            json={
                "tableReference": {
                    "projectId": destination.project_id,
                    "datasetId": destination.dataset_id,
                    "tableId": destination.table_id,
                },
                "schema": {"fields": [f.to_api() for f in schema]},
            },
            allow_conflict=True,
        )
        created = response.status_code != 409
        logger.info(f"Table {destination} {'created' if created else 'already exists'}")
        return created

    def submit_load_job(
        self,
        source_uri: str,
        destination: Destination,
        schema: Optional[list[SchemaField]] = None,
    ) -> str:
        """
        Submit an NDJSON load job.

        Without a schema the warehouse auto-detects column types.

        Returns:
            The load job id

        Raises:
            WarehouseAPIError: If the submission is rejected
        """
        load: dict[str, Any] = {
            "sourceUris": [source_uri],
            "destinationTable": {
                "projectId": destination.project_id,
                "datasetId": destination.dataset_id,
                "tableId": destination.table_id,
            },
            "sourceFormat": NDJSON_SOURCE_FORMAT,
            "writeDisposition": self.write_disposition,
            "createDisposition": "CREATE_IF_NEEDED",
            "autodetect": schema is None,
        }
        if schema is not None:
            load["schema"] = {"fields": [f.to_api() for f in schema]}

        job_id = _new_load_job_id()
        response = self._request(
            "POST",
            f"/projects/{destination.project_id}/jobs",
            json={
                "jobReference": {
                    "projectId": destination.project_id,
                    "jobId": job_id,
                    "location": self.location,
                },
                "configuration": {"load": load},
            },
        )
        submitted = (response.json().get("jobReference") or {}).get("jobId", job_id)
        logger.info(f"Submitted load job {submitted} for {destination}")
        return submitted

    def get_job_status(self, job_id: str, project_id: str) -> WarehouseJobStatus:
        """
        Fetch the state of a load job.

        Raises:
            WarehouseAPIError: If the lookup fails
        """
        response = self._request(
            "GET",
            f"/projects/{project_id}/jobs/{job_id}",
            params={"location": self.location},
        )
        return _parse_job_status(response.json())


class SimulatedWarehouse:
    """
    In-process stand-in for the warehouse used when real processing is off.

    Each load job reports RUNNING for ``running_polls`` status checks and then
    DONE. When a store is given, the staged file is read back so the reported
    ``outputRows`` matches what was staged.
    """

    def __init__(self, store: Optional[ObjectStore] = None, running_polls: int = 2):
        self.store = store
        self.running_polls = running_polls
        self.datasets: set[tuple[str, str]] = set()
        self.tables: dict[str, list[SchemaField]] = {}
        self.jobs: dict[str, dict] = {}
        self._lock = threading.Lock()

    def ensure_dataset(self, project_id: str, dataset_id: str) -> bool:
        with self._lock:
            key = (project_id, dataset_id)
            created = key not in self.datasets
            self.datasets.add(key)
        return created

    def ensure_table(self, destination: Destination, schema: list[SchemaField]) -> bool:
        with self._lock:
            key = str(destination)
            created = key not in self.tables
            self.tables.setdefault(key, list(schema))
        return created

    def submit_load_job(
        self,
        source_uri: str,
        destination: Destination,
        schema: Optional[list[SchemaField]] = None,
    ) -> str:
        job_id = _new_load_job_id()
        with self._lock:
            self.jobs[job_id] = {
                "source_uri": source_uri,
                "destination": str(destination),
                "polls": 0,
            }
        return job_id

    def get_job_status(self, job_id: str, project_id: str) -> WarehouseJobStatus:
        with self._lock:
            job = self.jobs.get(job_id)
            if job is None:
                raise WarehouseAPIError(404, {"error": {"message": f"Not found: Job {job_id}"}})
            job["polls"] += 1
            polls = job["polls"]

        if polls <= self.running_polls:
            return WarehouseJobStatus(state="RUNNING")
        return WarehouseJobStatus(
            state="DONE",
            statistics={"outputRows": str(self._count_rows(job["source_uri"]))},
        )

    def _count_rows(self, source_uri: str) -> int:
        if self.store is None:
            return 0
        bucket, key = parse_object_uri(source_uri)
        return sum(1 for line in self.store.download(bucket, key).splitlines() if line.strip())
