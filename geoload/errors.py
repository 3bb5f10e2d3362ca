# =============================================================================
# Pipeline Error Taxonomy
# =============================================================================
# Every failure that can end a job maps to one of these exceptions. The
# orchestrator turns them into the job's terminal error_message.
# =============================================================================

"""Exception types raised by the GeoLoad pipeline."""

from typing import Any, Optional

__all__ = [
    "GeoLoadError",
    "ValidationError",
    "SourceDownloadError",
    "ArchiveError",
    "MissingPrimaryFileError",
    "ConversionError",
    "StagingError",
    "LoadSubmissionError",
    "TableError",
    "WarehouseJobFailedError",
    "StatusCheckError",
    "MonitoringTimeoutError",
    "JobCancelled",
]


class GeoLoadError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(GeoLoadError):
    """
    Job configuration was rejected before any stage ran.

    Attributes:
        errors: Individual validation messages, in the order they were found
    """

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(f"Validation failed: {', '.join(self.errors)}")


class SourceDownloadError(GeoLoadError):
    """The remote source object could not be fetched from object storage."""


class ArchiveError(GeoLoadError):
    """The uploaded archive could not be opened or extracted."""


class MissingPrimaryFileError(ArchiveError):
    """No file with the primary geometry extension was found in the archive."""

    def __init__(self, extension: str, names: list[str]):
        self.extension = extension
        self.names = list(names)
        listing = ", ".join(self.names) if self.names else "<empty archive>"
        super().__init__(
            f"No '{extension}' file found in archive (entries: {listing})"
        )


class ConversionError(GeoLoadError):
    """The external conversion utility failed; stderr holds its diagnostics."""

    def __init__(self, message: str, stderr: str = ""):
        self.stderr = stderr
        detail = f": {stderr.strip()}" if stderr and stderr.strip() else ""
        super().__init__(f"{message}{detail}")


class StagingError(GeoLoadError):
    """Writing the encoded records to object storage failed."""


class LoadSubmissionError(GeoLoadError):
    """The warehouse rejected a dataset, table or load-job request."""

    def __init__(self, message: str, payload: Optional[Any] = None):
        self.payload = payload
        super().__init__(message)


class TableError(LoadSubmissionError):
    """Destination table creation failed (other than 'already exists')."""


class WarehouseJobFailedError(GeoLoadError):
    """The warehouse load job finished with errors."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) if self.errors else "Load job failed")


class StatusCheckError(GeoLoadError):
    """
    A load job status check failed in a way retrying will not fix.

    Raised for client errors such as 401, 403 or 404, and when every check in
    the budget failed so no job state was ever observed.
    """

    def __init__(self, external_job_id: str, message: str):
        self.external_job_id = external_job_id
        super().__init__(f"Status check for load job {external_job_id} failed: {message}")


class MonitoringTimeoutError(GeoLoadError):
    """Polling budget ran out while the load job was still pending or running."""

    def __init__(self, external_job_id: str, attempts: int, last_state: Optional[str] = None):
        self.external_job_id = external_job_id
        self.attempts = attempts
        self.last_state = last_state
        state = last_state or "unknown"
        super().__init__(
            f"Monitoring timed out after {attempts} status checks "
            f"(last state: {state}). Load job {external_job_id} may still be "
            f"running; check its status manually before resubmitting."
        )


class JobCancelled(GeoLoadError):
    """Raised when cooperative cancellation is detected between steps."""
