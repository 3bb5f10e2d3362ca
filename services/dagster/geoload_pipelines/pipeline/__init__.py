"""Pipeline Components - Conversion, Staging, Loading, Monitoring, Orchestration."""

from .converter import GeometryConverter
from .load_submitter import submit_load
from .monitor import JobMonitor, MonitorState
from .orchestrator import JobOrchestrator
from .staging import StagedObject, stage_records

__all__ = [
    "GeometryConverter",
    "submit_load",
    "JobMonitor",
    "MonitorState",
    "JobOrchestrator",
    "StagedObject",
    "stage_records",
]
