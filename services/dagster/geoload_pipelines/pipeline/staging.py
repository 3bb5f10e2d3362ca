# =============================================================================
# Staging Uploader
# =============================================================================
# Serializes encoded records to NDJSON and writes them to object storage
# under {YYYY-MM-DD}/{subarea}/{epoch_ms}_{base_name}.ndjson.
# =============================================================================

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Iterable, Optional

from geoload.errors import StagingError
from geoload.spatial_utils import to_ndjson
from geoload.uri_utils import build_staging_path

from ..resources.storage_resource import NDJSON_CONTENT_TYPE, ObjectStore

__all__ = ["StagedObject", "stage_records"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StagedObject:
    """Where the records landed and how many there were."""

    uri: str
    path: str
    record_count: int
    size_bytes: int


def stage_records(
    records: Iterable[dict],
    bucket: str,
    base_name: str,
    storage: ObjectStore,
    subarea: str = "converted",
    now: Optional[datetime] = None,
) -> StagedObject:
    """
    Write records as one NDJSON object.

    Args:
        records: Encoded records (consumed once)
        bucket: Staging bucket
        base_name: Dataset name used in the object key
        storage: Object store to upload to
        subarea: Path segment between the date and the file name
        now: Clock override for the timestamped path

    Returns:
        StagedObject describing the upload

    Raises:
        StagingError: If the upload fails
    """
    path = build_staging_path(base_name, subarea=subarea, now=now)

    record_count = 0
    lines = []
    for line in to_ndjson(records):
        lines.append(line)
        record_count += 1
    payload = "".join(lines).encode("utf-8")

    try:
        uri = storage.upload(payload, bucket, path, content_type=NDJSON_CONTENT_TYPE)
    except Exception as exc:
        raise StagingError(f"Failed to stage records to {bucket}/{path}: {exc}") from exc

    logger.info(f"Staged {record_count} records ({len(payload)} bytes) at {uri}")
    return StagedObject(uri=uri, path=path, record_count=record_count, size_bytes=len(payload))
