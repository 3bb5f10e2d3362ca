# =============================================================================
# Job Orchestrator
# =============================================================================
# Owns the Job lifecycle: validates submissions, runs each job's pipeline as
# its own asyncio task, serializes every mutation of a job through a per-job
# lock, and hands out read-only snapshots to the presentation layer.
#
# Pipeline (progress checkpoints):
#   queued 0 -> extracting 10 -> converting 20 -> encoding 40/50
#   -> staging 60 -> loading 70/80 -> completed 100
# =============================================================================

import asyncio
from dataclasses import dataclass, field
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Union
import uuid

import pydantic

from geoload.errors import GeoLoadError, JobCancelled, SourceDownloadError, ValidationError
from geoload.models import (
    Job,
    JobConfig,
    JobStatus,
    LocalSource,
    LogEntry,
    LogLevel,
    PipelineSettings,
    SchemaField,
)
from geoload.spatial_utils import RecordEncoder, infer_schema, prepare_primary_file, scoped_workdir
from geoload.uri_utils import derive_base_name

from ..resources.backends import Backends, build_backends
from ..resources.identity_resource import PIPELINE_SCOPES, IdentityProvider
from ..resources.storage_resource import ObjectStore
from ..resources.warehouse_resource import Warehouse
from .converter import GeometryConverter
from .load_submitter import submit_load
from .monitor import JobMonitor
from .staging import stage_records

__all__ = ["JobOrchestrator"]

logger = logging.getLogger(__name__)

JobCallback = Callable[[Job], None]

_LOG_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


@dataclass
class _JobSlot:
    """Registry entry: the current job record plus its private machinery."""

    job: Job
    staging_bucket: str
    payload: Optional[bytes] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    cancel: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None
    subscribers: list[JobCallback] = field(default_factory=list)
    deleted: bool = False


class JobOrchestrator:
    """
    Runs shapefile-to-warehouse load jobs.

    Each job runs as its own task; all blocking work (zip IO, ogr2ogr, HTTP,
    object storage) goes through ``asyncio.to_thread``. Cancellation is
    cooperative: ``delete_job`` and ``shutdown`` set the job's event, which is
    checked between stages and between monitor polls.

    Example:
        >>> orchestrator = JobOrchestrator(storage, warehouse, GeometryConverter(gdal))
        >>> job = await orchestrator.create_job(
        ...     JobConfig(file_name="parcels.zip", file_bytes=data,
        ...               project_id="my-project", target_table="geo.parcels"),
        ...     owner_id="alice",
        ... )
        >>> final = await orchestrator.wait_for(job.id)
        >>> final.status
        <JobStatus.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        storage: ObjectStore,
        warehouse: Warehouse,
        converter: GeometryConverter,
        identity: Optional[IdentityProvider] = None,
        settings: Optional[PipelineSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.storage = storage
        self.warehouse = warehouse
        self.converter = converter
        self.identity = identity
        self.settings = settings or PipelineSettings()
        self.monitor = JobMonitor(
            warehouse,
            poll_interval=self.settings.poll_interval_seconds,
            max_attempts=self.settings.poll_max_attempts,
            sleep=sleep,
        )
        self._slots: dict[str, _JobSlot] = {}
        self._shutting_down = False

    @classmethod
    def from_settings(
        cls,
        settings: Optional[PipelineSettings] = None,
        backends: Optional[Backends] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> "JobOrchestrator":
        """Startup factory: select backends from settings once and wire them in."""
        settings = settings or PipelineSettings()
        backends = backends or build_backends(pipeline=settings)
        return cls(
            storage=backends.storage,
            warehouse=backends.warehouse,
            converter=GeometryConverter(backends.gdal),
            identity=backends.identity,
            settings=settings,
            sleep=sleep,
        )

    # -------------------------------------------------------------------------
    # Presentation-facing operations
    # -------------------------------------------------------------------------

    async def create_job(self, config: Union[JobConfig, dict], owner_id: str) -> Job:
        """
        Validate a submission, register a queued job and start its pipeline.

        Raises:
            ValidationError: With every problem found; no job is created
        """
        if not isinstance(config, JobConfig):
            try:
                config = JobConfig.model_validate(config)
            except pydantic.ValidationError as exc:
                raise ValidationError(
                    [
                        f"{'.'.join(str(part) for part in err['loc']) or 'config'}: {err['msg']}"
                        for err in exc.errors()
                    ]
                ) from exc

        errors = config.validation_errors()
        if not (owner_id or "").strip():
            errors.append("Owner ID is required")

        staging_bucket = (config.bucket or "").strip() or self.settings.staging_bucket
        if not staging_bucket:
            errors.append("Staging bucket is required (set GCS_DEFAULT_BUCKET)")
        if self._shutting_down:
            errors.append("Orchestrator is shutting down")
        if errors:
            raise ValidationError(errors)

        if self.identity is not None:
            authorized = await asyncio.to_thread(self.identity.is_authorized, PIPELINE_SCOPES)
            if not authorized:
                raise ValidationError(
                    ["Credential is missing, expired or lacks BigQuery and Cloud Storage scopes"]
                )

        job = Job(
            id=self._new_job_id(),
            owner_id=owner_id,
            source=config.to_source(),
            destination=config.to_destination(),
            schema_fields=config.custom_schema,
            geometry_encoding=config.geometry_encoding or self.settings.geometry_encoding,
        )
        job = job.model_copy(
            update={
                "logs": [
                    LogEntry(message=f"Job created: {job.file_name} -> {job.destination}")
                ]
            }
        )

        slot = _JobSlot(job=job, staging_bucket=staging_bucket, payload=config.file_bytes)
        self._slots[job.id] = slot
        slot.task = asyncio.create_task(self._run_job(slot), name=f"geoload-{job.id}")

        logger.info(f"Created job {job.id} for owner {owner_id}")
        return job.model_copy(deep=True)

    def get_jobs(self, owner_id: Optional[str] = None) -> list[Job]:
        """Snapshots of the owner's jobs (all jobs when None), newest first."""
        # Registry order breaks start_time ties
        jobs = [
            slot.job
            for slot in reversed(self._slots.values())
            if owner_id is None or slot.job.owner_id == owner_id
        ]
        jobs.sort(key=lambda j: j.start_time, reverse=True)
        return [j.model_copy(deep=True) for j in jobs]

    def get_job(self, job_id: str) -> Optional[Job]:
        slot = self._slots.get(job_id)
        return slot.job.model_copy(deep=True) if slot else None

    def subscribe(self, job_id: str, on_update: JobCallback) -> Callable[[], None]:
        """
        Call ``on_update`` with a fresh snapshot after every change to the job.

        Returns:
            A function that removes the subscription (safe to call twice)

        Raises:
            KeyError: If the job does not exist
        """
        slot = self._slots.get(job_id)
        if slot is None:
            raise KeyError(f"Job not found: {job_id}")
        slot.subscribers.append(on_update)

        def unsubscribe() -> None:
            if on_update in slot.subscribers:
                slot.subscribers.remove(on_update)

        return unsubscribe

    async def wait_for(self, job_id: str) -> Job:
        """
        Wait until the job's pipeline task has finished and return its snapshot.

        Raises:
            KeyError: If the job does not exist
        """
        slot = self._slots.get(job_id)
        if slot is None:
            raise KeyError(f"Job not found: {job_id}")
        if slot.task is not None:
            await asyncio.gather(slot.task, return_exceptions=True)
        return slot.job.model_copy(deep=True)

    async def delete_job(self, job_id: str) -> bool:
        """
        Remove a job and stop its pipeline at the next checkpoint.

        Returns:
            True if the job existed
        """
        slot = self._slots.pop(job_id, None)
        if slot is None:
            return False
        async with slot.lock:
            slot.deleted = True
            slot.cancel.set()
            slot.subscribers.clear()
        logger.info(f"Deleted job {job_id}")
        return True

    async def shutdown(self) -> None:
        """Cancel every running job and wait for their tasks to finish."""
        self._shutting_down = True
        tasks = []
        for slot in list(self._slots.values()):
            slot.cancel.set()
            if slot.task is not None and not slot.task.done():
                tasks.append(slot.task)
        if tasks:
            logger.info(f"Shutting down; waiting for {len(tasks)} running jobs")
            await asyncio.gather(*tasks, return_exceptions=True)

    def get_job_stats(self) -> dict[str, int]:
        """Counts of jobs by outcome."""
        stats = {"total": 0, "queued": 0, "processing": 0, "completed": 0, "failed": 0}
        for slot in self._slots.values():
            status = slot.job.status
            stats["total"] += 1
            if status == JobStatus.QUEUED:
                stats["queued"] += 1
            elif status == JobStatus.COMPLETED:
                stats["completed"] += 1
            elif status == JobStatus.FAILED:
                stats["failed"] += 1
            else:
                stats["processing"] += 1
        return stats

    # -------------------------------------------------------------------------
    # Update path
    # -------------------------------------------------------------------------

    def _new_job_id(self) -> str:
        while True:
            job_id = f"job_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
            if job_id not in self._slots:
                return job_id

    async def _update(
        self,
        slot: _JobSlot,
        status: Optional[JobStatus] = None,
        progress: Optional[int] = None,
        message: Optional[str] = None,
        level: LogLevel = LogLevel.INFO,
        error_message: Optional[str] = None,
        **fields: Any,
    ) -> None:
        """
        Apply one change to the job under its lock and notify subscribers.

        Raises:
            JobCancelled: If the job has been deleted
        """
        async with slot.lock:
            if slot.deleted:
                raise JobCancelled(f"Job {slot.job.id} was deleted")

            job = slot.job
            if status is not None:
                job = job.transition(status, progress=progress, error_message=error_message)
            elif progress is not None and not job.is_terminal:
                job = job.model_copy(update={"progress": min(max(job.progress, progress), 99)})
            if fields:
                job = job.model_copy(update=fields)
            if message:
                job = job.model_copy(
                    update={"logs": [*job.logs, LogEntry(level=level, message=message)]}
                )
                logger.log(_LOG_LEVELS[level], f"[{job.id}] {message}")

            slot.job = job
            for callback in list(slot.subscribers):
                try:
                    callback(job.model_copy(deep=True))
                except Exception:
                    logger.exception(f"Subscriber callback failed for job {job.id}")

    async def _log(self, slot: _JobSlot, level: LogLevel, message: str) -> None:
        await self._update(slot, message=message, level=level)

    @staticmethod
    def _checkpoint(slot: _JobSlot) -> None:
        if slot.cancel.is_set():
            raise JobCancelled(f"Job {slot.job.id} was cancelled")

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    async def _run_job(self, slot: _JobSlot) -> None:
        job_id = slot.job.id
        try:
            await self._run_pipeline(slot)
        except JobCancelled:
            if slot.deleted:
                logger.info(f"Job {job_id} stopped after deletion")
                return
            await self._fail(slot, "Job cancelled: orchestrator is shutting down")
        except GeoLoadError as exc:
            await self._fail(slot, str(exc))
        except Exception as exc:
            logger.exception(f"Unexpected error in job {job_id}")
            await self._fail(slot, f"Unexpected error: {exc}")
        finally:
            slot.payload = None

    async def _fail(self, slot: _JobSlot, message: str) -> None:
        try:
            await self._update(
                slot,
                status=JobStatus.FAILED,
                error_message=message,
                message=f"Job failed: {message}",
                level=LogLevel.ERROR,
            )
        except JobCancelled:
            logger.info(f"Job {slot.job.id} was deleted before its failure could be recorded")

    async def _run_pipeline(self, slot: _JobSlot) -> None:
        job = slot.job
        source = job.source
        destination = job.destination

        # Extract + convert
        self._checkpoint(slot)
        await self._update(
            slot,
            status=JobStatus.EXTRACTING,
            progress=10,
            message=f"Extracting {job.file_name}",
        )

        if isinstance(source, LocalSource):
            data = slot.payload or b""
        else:
            try:
                data = await asyncio.to_thread(self.storage.download, source.bucket, source.path)
            except Exception as exc:
                raise SourceDownloadError(
                    f"Failed to download {source.bucket}/{source.path}: {exc}"
                ) from exc
        slot.payload = None

        with scoped_workdir(prefix=f"geoload_{job.id}_") as workdir:
            primary = await asyncio.to_thread(prepare_primary_file, data, job.file_name, workdir)
            del data

            self._checkpoint(slot)
            await self._update(
                slot,
                status=JobStatus.CONVERTING,
                progress=20,
                message=f"Converting {primary.name} to GeoJSON",
            )
            feature_collection = await asyncio.to_thread(self.converter.convert, primary)

        feature_count = len(feature_collection.get("features") or [])

        # Encode + infer schema
        self._checkpoint(slot)
        encoder = RecordEncoder(job.geometry_encoding)
        await self._update(
            slot,
            status=JobStatus.ENCODING,
            progress=40,
            message=(
                f"Encoding {feature_count} features with "
                f"{job.geometry_encoding.value} geometry"
            ),
        )
        if feature_count == 0:
            await self._log(slot, LogLevel.WARN, "Source contains no features")

        schema: Optional[list[SchemaField]] = job.schema_fields
        if schema is None and self.settings.infer_schema:
            schema = await asyncio.to_thread(
                infer_schema, encoder.encode(feature_collection), self.settings.schema_sample_size
            )
            schema = schema or None
            if schema:
                summary = ", ".join(f"{f.name}:{f.type.value}" for f in schema)
                await self._update(
                    slot,
                    progress=50,
                    schema_fields=schema,
                    message=f"Inferred schema with {len(schema)} fields ({summary})",
                )
        if schema is None:
            await self._update(
                slot, progress=50, message="No schema given; warehouse will auto-detect columns"
            )
        elif job.schema_fields is not None:
            await self._update(slot, progress=50, message=f"Using provided schema with {len(schema)} fields")

        # Stage
        self._checkpoint(slot)
        await self._update(
            slot,
            status=JobStatus.STAGING,
            progress=60,
            message=f"Staging records to bucket {slot.staging_bucket}",
        )
        staged = await asyncio.to_thread(
            stage_records,
            encoder.encode(feature_collection),
            slot.staging_bucket,
            derive_base_name(job.file_name),
            self.storage,
            self.settings.staging_subarea,
        )
        if encoder.dropped_count:
            await self._log(
                slot,
                LogLevel.WARN,
                f"Dropped {encoder.dropped_count} features whose geometry is not a "
                f"non-empty LineString ({job.geometry_encoding.value} encoding)",
            )
        await self._update(
            slot,
            staged_uri=staged.uri,
            record_count=staged.record_count,
            message=f"Staged {staged.record_count} records to {staged.uri}",
        )

        # Load
        self._checkpoint(slot)
        await self._update(
            slot,
            status=JobStatus.LOADING,
            progress=70,
            message=f"Submitting load job into {destination}",
        )
        external_job_id = await asyncio.to_thread(
            submit_load, self.warehouse, destination, staged.uri, schema
        )
        await self._update(
            slot,
            progress=80,
            external_load_job_id=external_job_id,
            message=f"Load job submitted: {external_job_id}",
        )

        result = await self.monitor.wait_for_completion(
            external_job_id,
            destination.project_id,
            on_log=lambda level, message: self._log(slot, level, message),
            is_cancelled=slot.cancel.is_set,
        )

        rows = result.statistics.get("outputRows")
        loaded = f"{rows} rows" if rows is not None else "data"
        await self._update(
            slot,
            status=JobStatus.COMPLETED,
            message=f"Load job {external_job_id} completed: {loaded} loaded into {destination}",
        )
