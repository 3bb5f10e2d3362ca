# =============================================================================
# Load Submitter
# =============================================================================
# Ensures the destination dataset (and table, when a schema is known) and
# submits the warehouse load job for a staged file.
# =============================================================================

import logging
from typing import Optional

import httpx

from geoload.errors import LoadSubmissionError, TableError
from geoload.models import Destination, SchemaField

from ..resources.warehouse_resource import Warehouse, WarehouseAPIError

__all__ = ["submit_load"]

logger = logging.getLogger(__name__)

_WAREHOUSE_ERRORS = (WarehouseAPIError, httpx.HTTPError)


def _payload_of(exc: Exception):
    return getattr(exc, "payload", None)


def submit_load(
    warehouse: Warehouse,
    destination: Destination,
    source_uri: str,
    schema: Optional[list[SchemaField]] = None,
) -> str:
    """
    Prepare the destination and submit the load job.

    Both ensure steps are idempotent, so resubmitting the same job is safe.
    Without a schema the table is not created up front and the load runs
    with auto-detection.

    Returns:
        The warehouse load job id

    Raises:
        LoadSubmissionError: If the dataset or the load job is rejected
        TableError: If table creation fails
    """
    try:
        warehouse.ensure_dataset(destination.project_id, destination.dataset_id)
    except _WAREHOUSE_ERRORS as exc:
        raise LoadSubmissionError(
            f"Failed to create dataset {destination.project_id}.{destination.dataset_id}: {exc}",
            payload=_payload_of(exc),
        ) from exc

    if schema:
        try:
            warehouse.ensure_table(destination, schema)
        except _WAREHOUSE_ERRORS as exc:
            raise TableError(
                f"Failed to create table {destination}: {exc}",
                payload=_payload_of(exc),
            ) from exc
    else:
        logger.info(f"No schema for {destination}; load will auto-detect columns")

    try:
        job_id = warehouse.submit_load_job(source_uri, destination, schema or None)
    except _WAREHOUSE_ERRORS as exc:
        raise LoadSubmissionError(
            f"Failed to submit load job for {destination}: {exc}",
            payload=_payload_of(exc),
        ) from exc

    return job_id
