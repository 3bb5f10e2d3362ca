# =============================================================================
# Storage Resource - Object Store Operations
# =============================================================================
# Uploads staged NDJSON files and downloads remote source datasets.
# GCS is reached through its S3-interoperable XML API with HMAC keys, so the
# MinIO client serves GCS, MinIO and S3 alike.
# =============================================================================

import io
import logging
import threading
from typing import Protocol, runtime_checkable

from dagster import ConfigurableResource
from minio import Minio
from minio.error import S3Error
from pydantic import Field

from geoload.uri_utils import build_object_uri

__all__ = ["ObjectStore", "GCSStorageResource", "InMemoryObjectStore"]

logger = logging.getLogger(__name__)

NDJSON_CONTENT_TYPE = "application/x-ndjson"


@runtime_checkable
class ObjectStore(Protocol):
    """What the pipeline needs from object storage."""

    def upload(
        self, data: bytes, bucket: str, path: str, content_type: str = NDJSON_CONTENT_TYPE
    ) -> str:
        """Store data and return its URI."""
        ...

    def download(self, bucket: str, path: str) -> bytes:
        """Return the object's bytes."""
        ...


class GCSStorageResource(ConfigurableResource):
    """
    Dagster resource for object storage via the S3-compatible API.

    Configuration matches StorageSettings from geoload.models.config.

    Attributes:
        endpoint: Server endpoint (host:port), storage.googleapis.com for GCS
        access_key: HMAC access key
        secret_key: HMAC secret
        use_ssl: Whether to use SSL/TLS (default: True)
        uri_scheme: Scheme of returned URIs ("gs" for BigQuery loads)
    """

    endpoint: str = Field("storage.googleapis.com", description="Object store endpoint (host:port)")
    access_key: str = Field(..., description="HMAC access key")
    secret_key: str = Field(..., description="HMAC secret")
    use_ssl: bool = Field(True, description="Whether to use SSL/TLS")
    uri_scheme: str = Field("gs", description="Scheme of URIs returned by upload")

    def get_client(self) -> Minio:
        """
        Create a Minio client instance.

        Returns:
            Configured Minio client
        """
        return Minio(
            self.endpoint,
            access_key=self.access_key,
            secret_key=self.secret_key,
            secure=self.use_ssl,
        )

    def upload(
        self, data: bytes, bucket: str, path: str, content_type: str = NDJSON_CONTENT_TYPE
    ) -> str:
        """
        Upload bytes to bucket/path.

        Args:
            data: Object content
            bucket: Destination bucket
            path: Destination object key
            content_type: MIME type of the content

        Returns:
            URI of the stored object (e.g., "gs://bucket/path")

        Raises:
            RuntimeError: If the bucket does not exist or the upload fails
        """
        client = self.get_client()

        try:
            client.put_object(
                bucket,
                path,
                io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except S3Error as exc:
            if exc.code == "NoSuchBucket":
                raise RuntimeError(f"Bucket '{bucket}' does not exist") from exc
            raise RuntimeError(
                f"Upload of '{path}' to bucket '{bucket}' failed: {exc.code}"
            ) from exc

        uri = build_object_uri(bucket, path, self.uri_scheme)
        logger.info(f"Uploaded {len(data)} bytes to {uri}")
        return uri

    def download(self, bucket: str, path: str) -> bytes:
        """
        Download an object.

        Args:
            bucket: Source bucket
            path: Object key

        Returns:
            Object content

        Raises:
            RuntimeError: If the object or bucket does not exist
            S3Error: For other S3 failures
        """
        client = self.get_client()

        try:
            response = client.get_object(bucket, path)
        except S3Error as exc:
            if exc.code in ("NoSuchKey", "NoSuchBucket"):
                raise RuntimeError(
                    f"Object '{path}' not found in bucket '{bucket}'"
                ) from exc
            raise

        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()


class InMemoryObjectStore:
    """
    Process-local object store used when real processing is disabled.

    Thread-safe, since the pipeline calls storage from worker threads.
    """

    def __init__(self, uri_scheme: str = "gs"):
        self.uri_scheme = uri_scheme
        self.objects: dict[tuple[str, str], bytes] = {}
        self._lock = threading.Lock()

    def upload(
        self, data: bytes, bucket: str, path: str, content_type: str = NDJSON_CONTENT_TYPE
    ) -> str:
        with self._lock:
            self.objects[(bucket, path)] = bytes(data)
        return build_object_uri(bucket, path, self.uri_scheme)

    def download(self, bucket: str, path: str) -> bytes:
        with self._lock:
            try:
                return self.objects[(bucket, path)]
            except KeyError:
                raise RuntimeError(
                    f"Object '{path}' not found in bucket '{bucket}'"
                ) from None
