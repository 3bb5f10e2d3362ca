# =============================================================================
# Job Models
# =============================================================================
# Defines the Job entity tracked end-to-end by the orchestrator, its source
# and destination types, and the submission contract (JobConfig).
# =============================================================================

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .schema import SchemaField, validate_unique_field_names

__all__ = [
    "JobStatus",
    "LogLevel",
    "LogEntry",
    "GeometryEncoding",
    "LocalSource",
    "RemoteSource",
    "JobSource",
    "Destination",
    "parse_target_table",
    "JobConfig",
    "Job",
    "TERMINAL_STATUSES",
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================


class JobStatus(str, Enum):
    """Pipeline stage of a job."""

    QUEUED = "queued"
    EXTRACTING = "extracting"
    CONVERTING = "converting"
    ENCODING = "encoding"
    STAGING = "staging"
    LOADING = "loading"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


class LogLevel(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class GeometryEncoding(str, Enum):
    """How the geometry of each feature is serialized into its record."""

    GEOJSON = "geojson"
    WKT = "wkt"


class LogEntry(BaseModel):
    """One user-facing log line attached to a job."""

    timestamp: datetime = Field(default_factory=_utcnow)
    level: LogLevel = LogLevel.INFO
    message: str


# =============================================================================
# Source / Destination
# =============================================================================


class LocalSource(BaseModel):
    """An archive uploaded directly by the user."""

    kind: Literal["local"] = "local"
    file_name: str = Field(..., min_length=1)
    size: int = Field(0, ge=0)


class RemoteSource(BaseModel):
    """A dataset already resident in object storage."""

    kind: Literal["remote"] = "remote"
    bucket: str = Field(..., min_length=1)
    path: str = Field(..., min_length=1)

    @property
    def file_name(self) -> str:
        return self.path.rstrip("/").rsplit("/", 1)[-1]


JobSource = Annotated[Union[LocalSource, RemoteSource], Field(discriminator="kind")]
"""Tagged union of job sources, discriminated on ``kind``."""


class Destination(BaseModel):
    """Fully qualified warehouse table."""

    project_id: str = Field(..., min_length=1)
    dataset_id: str = Field(..., min_length=1)
    table_id: str = Field(..., min_length=1)

    @property
    def table_ref(self) -> str:
        """The ``dataset.table`` form the user submitted."""
        return f"{self.dataset_id}.{self.table_id}"

    def __str__(self) -> str:
        return f"{self.project_id}.{self.dataset_id}.{self.table_id}"


def parse_target_table(target_table: str) -> tuple[str, str]:
    """
    Split a ``dataset.table`` string into its two parts.

    Examples:
        >>> parse_target_table("geo.parcels")
        ('geo', 'parcels')

    Raises:
        ValueError: If either part is empty or there are not exactly two parts
    """
    parts = (target_table or "").strip().split(".")
    if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
        raise ValueError("Target table must be in format: dataset.table")
    return parts[0].strip(), parts[1].strip()


# =============================================================================
# Submission Contract
# =============================================================================


class JobConfig(BaseModel):
    """
    What the presentation layer submits to create a job.

    Type-level checks happen in pydantic; cross-field rules are collected by
    ``validation_errors`` so the caller gets every problem at once.
    """

    source_type: Literal["local", "remote"] = "local"
    file_name: Optional[str] = None
    file_bytes: Optional[bytes] = Field(None, repr=False)
    bucket: Optional[str] = None
    path: Optional[str] = None
    project_id: Optional[str] = None
    target_table: Optional[str] = None
    custom_schema: Optional[list[SchemaField]] = None
    geometry_encoding: Optional[GeometryEncoding] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("custom_schema")
    @classmethod
    def validate_custom_schema(cls, v: Optional[list[SchemaField]]) -> Optional[list[SchemaField]]:
        if not v:
            return None
        return validate_unique_field_names(v)

    def validation_errors(self) -> list[str]:
        """Return every cross-field problem with this configuration."""
        errors: list[str] = []

        if not (self.project_id or "").strip():
            errors.append("Project ID is required")

        if not (self.target_table or "").strip():
            errors.append("Target table is required")
        else:
            try:
                parse_target_table(self.target_table)
            except ValueError as exc:
                errors.append(str(exc))

        if self.source_type == "local":
            if not (self.file_name or "").strip():
                errors.append("File name is required for local file processing")
            if not self.file_bytes:
                errors.append("File is required for local file processing")
        else:
            if not (self.bucket or "").strip():
                errors.append("Bucket is required for remote source")
            if not (self.path or "").strip():
                errors.append("Path is required for remote source")

        return errors

    def to_source(self) -> Union[LocalSource, RemoteSource]:
        if self.source_type == "local":
            return LocalSource(file_name=self.file_name, size=len(self.file_bytes or b""))
        return RemoteSource(bucket=self.bucket.strip(), path=self.path.strip().lstrip("/"))

    def to_destination(self) -> Destination:
        dataset_id, table_id = parse_target_table(self.target_table)
        return Destination(
            project_id=self.project_id.strip(), dataset_id=dataset_id, table_id=table_id
        )


# =============================================================================
# Job
# =============================================================================


class Job(BaseModel):
    """
    The unit of work tracked end-to-end.

    Invariants (enforced by ``transition`` and checked by ``invariant_violations``):
    - end_time is set iff status is completed or failed
    - error_message is set iff status is failed
    - progress reaches 100 only when status is completed

    Attributes:
        id: Unique job id
        owner_id: Submitting user
        status: Current pipeline stage
        progress: 0-100, non-decreasing
        source: Local upload or remote object reference
        destination: Target warehouse table
        schema_fields: Explicit or inferred schema (None until known)
        geometry_encoding: Geometry serialization used for the records
        external_load_job_id: Warehouse load job id, once submitted
        staged_uri: Object store URI of the staged NDJSON file
        record_count: Number of records staged
        logs: Append-only log entries
        start_time: Creation time
        end_time: Terminal transition time
        error_message: Failure reason
    """

    id: str
    owner_id: str
    status: JobStatus = JobStatus.QUEUED
    progress: int = Field(0, ge=0, le=100)
    source: JobSource
    destination: Destination
    schema_fields: Optional[list[SchemaField]] = None
    geometry_encoding: GeometryEncoding = GeometryEncoding.GEOJSON
    external_load_job_id: Optional[str] = None
    staged_uri: Optional[str] = None
    record_count: Optional[int] = None
    logs: list[LogEntry] = Field(default_factory=list)
    start_time: datetime = Field(default_factory=_utcnow)
    end_time: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def file_name(self) -> str:
        return self.source.file_name

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def transition(
        self,
        status: JobStatus,
        progress: Optional[int] = None,
        error_message: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "Job":
        """
        Return a copy of this job moved to ``status``.

        Progress never goes backwards and stays below 100 until completion.
        Terminal states are absorbing.

        Raises:
            ValueError: If the job is already terminal, or a failure has no message
        """
        if self.is_terminal:
            raise ValueError(
                f"Job {self.id} is already {self.status.value}; cannot move to {status.value}"
            )

        now = now or _utcnow()
        new_progress = max(self.progress, progress if progress is not None else self.progress)
        update: dict = {"status": status}

        if status == JobStatus.COMPLETED:
            update["progress"] = 100
            update["end_time"] = now
        elif status == JobStatus.FAILED:
            if not error_message:
                raise ValueError("A failed job requires an error message")
            update["progress"] = min(new_progress, 99)
            update["end_time"] = now
            update["error_message"] = error_message
        else:
            update["progress"] = min(new_progress, 99)

        return self.model_copy(update=update)

    def invariant_violations(self) -> list[str]:
        """List every broken lifecycle invariant (empty when consistent)."""
        problems = []
        if (self.end_time is not None) != self.is_terminal:
            problems.append("end_time must be set iff the job is terminal")
        if (self.error_message is not None) != (self.status == JobStatus.FAILED):
            problems.append("error_message must be set iff the job failed")
        if self.progress == 100 and self.status != JobStatus.COMPLETED:
            problems.append("progress may only reach 100 on completion")
        if self.status == JobStatus.COMPLETED and self.progress != 100:
            problems.append("a completed job must report 100% progress")
        return problems
