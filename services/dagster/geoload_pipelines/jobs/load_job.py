# =============================================================================
# Geo Load Job - Object Store Dataset to BigQuery
# =============================================================================
# Runs one remote-source load through the JobOrchestrator inside a Dagster
# op, so scheduled or sensor-driven loads share the interactive pipeline.
# =============================================================================

import asyncio
from typing import Any, Dict, Optional

from dagster import In, OpExecutionContext, Out, job, op

from geoload.models import JobStatus, LogLevel, PipelineSettings

from ..pipeline.converter import GeometryConverter
from ..pipeline.orchestrator import JobOrchestrator

__all__ = ["load_geodata", "geo_load_job"]


def _run_geo_load(
    converter: GeometryConverter,
    storage,
    warehouse,
    identity,
    request: Dict[str, Any],
    run_id: str,
    log,
    settings: Optional[PipelineSettings] = None,
    sleep=asyncio.sleep,
) -> Dict[str, Any]:
    """
    Core logic for loading one remote dataset into the warehouse.

    This function is extracted for easier unit testing without Dagster context.

    Args:
        converter: GeometryConverter backed by the GDAL resource
        storage: Object store resource
        warehouse: Warehouse resource
        identity: Identity resource (None skips the scope check)
        request: Dict with bucket, path, project_id, target_table and optional
            custom_schema / geometry_encoding
        run_id: Dagster run ID (used as the job owner)
        log: Logger instance (context.log)
        settings: Pipeline settings (read from the environment when omitted)
        sleep: Sleep used between load job polls

    Returns:
        Load result dict with job_id, external_load_job_id, staged_uri,
        record_count and destination

    Raises:
        ValidationError: If the request is invalid
        RuntimeError: If the job fails
    """
    if not isinstance(request, dict):
        raise ValueError(f"Expected request to be a dict, got {type(request)}: {request}")

    # Unwrap 'value' key if present (Dagster wraps op inputs in 'value' when passed via run config)
    if "value" in request and isinstance(request.get("value"), dict):
        request = request["value"]

    config = {**request, "source_type": "remote"}

    async def _execute():
        orchestrator = JobOrchestrator(
            storage=storage,
            warehouse=warehouse,
            converter=converter,
            identity=identity,
            settings=settings,
            sleep=sleep,
        )
        try:
            created = await orchestrator.create_job(config, owner_id=f"dagster:{run_id}")
            log.info(f"Created load job {created.id} for {created.destination}")
            return await orchestrator.wait_for(created.id)
        finally:
            await orchestrator.shutdown()

    final = asyncio.run(_execute())

    for entry in final.logs:
        if entry.level == LogLevel.ERROR:
            log.error(entry.message)
        elif entry.level == LogLevel.WARN:
            log.warning(entry.message)
        else:
            log.info(entry.message)

    if final.status != JobStatus.COMPLETED:
        raise RuntimeError(f"Load job {final.id} failed: {final.error_message}")

    return {
        "job_id": final.id,
        "external_load_job_id": final.external_load_job_id,
        "staged_uri": final.staged_uri,
        "record_count": final.record_count,
        "destination": str(final.destination),
    }


@op(
    ins={"request": In(dagster_type=dict)},
    out={"load_result": Out(dagster_type=dict)},
    required_resource_keys={"gdal", "storage", "warehouse", "identity"},
)
def load_geodata(context: OpExecutionContext, request: dict) -> dict:
    """
    Load a vector dataset from object storage into a BigQuery table.

    Args:
        context: Dagster op execution context
        request: Dict with bucket, path, project_id and target_table

    Returns:
        Load result dict (see _run_geo_load)
    """
    return _run_geo_load(
        converter=GeometryConverter(context.resources.gdal),
        storage=context.resources.storage,
        warehouse=context.resources.warehouse,
        identity=context.resources.identity,
        request=request,
        run_id=context.run_id,
        log=context.log,
    )


@job(
    name="geo_load_job",
    description="Load a shapefile archive or vector file from object storage into BigQuery",
)
def geo_load_job():
    """
    Single-op job; the request is passed as the op input via run config:

        ops:
          load_geodata:
            inputs:
              request:
                bucket: geo-uploads
                path: parcels/parcels.zip
                project_id: my-project
                target_table: geo.parcels
    """
    load_geodata()
