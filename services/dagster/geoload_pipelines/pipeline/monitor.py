# =============================================================================
# Job Monitor
# =============================================================================
# Bounded polling of a warehouse load job until it reaches DONE.
# =============================================================================

import asyncio
from enum import Enum
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

import httpx

from geoload.errors import (
    JobCancelled,
    MonitoringTimeoutError,
    StatusCheckError,
    WarehouseJobFailedError,
)
from geoload.models import LogLevel

from ..resources.warehouse_resource import Warehouse, WarehouseAPIError, WarehouseJobStatus

__all__ = ["MonitorState", "JobMonitor"]

logger = logging.getLogger(__name__)

LogCallback = Callable[[LogLevel, str], Union[None, Awaitable[None]]]

# HTTP statuses on a status check that are retried within the attempt budget
_RETRYABLE_STATUS_CODES = frozenset({408, 429})


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, WarehouseAPIError):
        return exc.status_code in _RETRYABLE_STATUS_CODES or exc.status_code >= 500
    return False


class MonitorState(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"


class JobMonitor:
    """
    Poll a load job until it finishes or the attempt budget runs out.

    ``sleep`` is injectable so tests can run the loop without waiting.

    Example:
        >>> monitor = JobMonitor(warehouse, poll_interval=5.0, max_attempts=30)
        >>> status = await monitor.wait_for_completion("geoload_1_ab12cd34", "my-project")
        >>> status.statistics.get("outputRows")
        '1523'
    """

    def __init__(
        self,
        warehouse: Warehouse,
        poll_interval: float = 5.0,
        max_attempts: int = 30,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.warehouse = warehouse
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.sleep = sleep

    async def wait_for_completion(
        self,
        external_job_id: str,
        project_id: str,
        on_log: Optional[LogCallback] = None,
        is_cancelled: Optional[Callable[[], bool]] = None,
    ) -> WarehouseJobStatus:
        """
        Wait for the load job to reach DONE.

        Returns:
            The final status when the job finished without errors

        Raises:
            WarehouseJobFailedError: DONE with errors (messages joined by "; ")
            MonitoringTimeoutError: Still PENDING/RUNNING after max_attempts checks
            StatusCheckError: A non-retryable check error (e.g. 403, 404), or
                every check failed so no state was ever observed
            JobCancelled: Cancellation observed before a poll or after a sleep
        """
        last_state: Optional[str] = None
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            self._check_cancelled(is_cancelled)

            try:
                status = await asyncio.to_thread(
                    self.warehouse.get_job_status, external_job_id, project_id
                )
            except (WarehouseAPIError, httpx.HTTPError) as exc:
                if not _is_transient(exc):
                    raise StatusCheckError(external_job_id, str(exc)) from exc
                last_error = exc
                await self._emit(
                    on_log,
                    LogLevel.WARN,
                    f"Status check {attempt}/{self.max_attempts} for load job "
                    f"{external_job_id} failed: {exc}",
                )
            else:
                last_state = status.state
                if status.state == MonitorState.DONE.value:
                    if status.errors:
                        raise WarehouseJobFailedError(status.errors)
                    return status
                await self._emit(
                    on_log,
                    LogLevel.INFO,
                    f"Load job {external_job_id} is {status.state} "
                    f"(check {attempt}/{self.max_attempts})",
                )

            if attempt < self.max_attempts:
                await self.sleep(self.poll_interval)
                self._check_cancelled(is_cancelled)

        if last_state is None and last_error is not None:
            raise StatusCheckError(
                external_job_id,
                f"{last_error} (all {self.max_attempts} checks failed)",
            ) from last_error
        raise MonitoringTimeoutError(external_job_id, self.max_attempts, last_state)

    @staticmethod
    def _check_cancelled(is_cancelled: Optional[Callable[[], bool]]) -> None:
        if is_cancelled is not None and is_cancelled():
            raise JobCancelled("Job was cancelled while monitoring the load job")

    @staticmethod
    async def _emit(on_log: Optional[LogCallback], level: LogLevel, message: str) -> None:
        if on_log is None:
            if level == LogLevel.WARN:
                logger.warning(message)
            else:
                logger.info(message)
            return
        result = on_log(level, message)
        if inspect.isawaitable(result):
            await result
