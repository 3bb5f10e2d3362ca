# =============================================================================
# Configuration Models Module
# =============================================================================
# Provides Pydantic Settings models for all collaborator configurations:
# - StorageSettings: GCS (S3-interoperable) object storage configuration
# - WarehouseSettings: BigQuery REST API configuration
# - IdentitySettings: Bearer credential configuration
# - GDALSettings: ogr2ogr environment configuration
# - PipelineSettings: Job pipeline behaviour (polling, encoding, backends)
# =============================================================================

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .job import GeometryEncoding

__all__ = [
    "StorageSettings",
    "WarehouseSettings",
    "IdentitySettings",
    "GDALSettings",
    "PipelineSettings",
]


# =============================================================================
# Storage Settings (GCS via S3 interoperability)
# =============================================================================

class StorageSettings(BaseSettings):
    """
    Configuration for the object store.

    GCS is reached through its S3-compatible XML API using HMAC keys, so the
    same S3 client works against GCS, MinIO or any other S3 endpoint.

    Maps environment variables:
    - GCS_ENDPOINT → endpoint
    - GCS_HMAC_ACCESS_KEY → access_key
    - GCS_HMAC_SECRET → secret_key
    - GCS_USE_SSL → use_ssl
    - GCS_URI_SCHEME → uri_scheme
    """

    endpoint: str = Field("storage.googleapis.com", validation_alias="GCS_ENDPOINT", description="Object store endpoint (host[:port])")
    access_key: str = Field("", validation_alias="GCS_HMAC_ACCESS_KEY", description="HMAC access key")
    secret_key: str = Field("", validation_alias="GCS_HMAC_SECRET", description="HMAC secret")
    use_ssl: bool = Field(True, validation_alias="GCS_USE_SSL", description="Whether to use SSL/TLS")
    uri_scheme: str = Field("gs", validation_alias="GCS_URI_SCHEME", description="Scheme of URIs handed to the warehouse")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Ignore unrelated env vars from shared .env files
    )


# =============================================================================
# Warehouse Settings (BigQuery)
# =============================================================================

class WarehouseSettings(BaseSettings):
    """
    Configuration for the BigQuery REST API.

    Maps environment variables:
    - GCP_PROJECT_ID → project_id
    - BIGQUERY_LOCATION → location
    - BIGQUERY_API_URL → api_url
    - BIGQUERY_WRITE_DISPOSITION → write_disposition
    """

    project_id: str = Field("", validation_alias="GCP_PROJECT_ID", description="Default GCP project")
    location: str = Field("US", validation_alias="BIGQUERY_LOCATION", description="Dataset / job location")
    api_url: str = Field(
        "https://bigquery.googleapis.com/bigquery/v2",
        validation_alias="BIGQUERY_API_URL",
        description="BigQuery REST base URL",
    )
    write_disposition: str = Field("WRITE_TRUNCATE", validation_alias="BIGQUERY_WRITE_DISPOSITION", description="Load job write disposition")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# =============================================================================
# Identity Settings
# =============================================================================

class IdentitySettings(BaseSettings):
    """
    Bearer credential used for warehouse calls.

    Maps environment variables:
    - GCP_ACCESS_TOKEN → access_token
    - GCP_TOKENINFO_URL → tokeninfo_url (empty disables remote validation)
    """

    access_token: str = Field("", validation_alias="GCP_ACCESS_TOKEN", description="OAuth bearer token")
    tokeninfo_url: str = Field(
        "https://oauth2.googleapis.com/tokeninfo",
        validation_alias="GCP_TOKENINFO_URL",
        description="Token introspection endpoint",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# =============================================================================
# GDAL Settings
# =============================================================================

class GDALSettings(BaseSettings):
    """
    Environment for ogr2ogr.

    Maps environment variables:
    - GDAL_DATA → gdal_data_path
    - PROJ_LIB → proj_lib_path
    - GEOLOAD_TARGET_CRS → target_crs (empty keeps the source CRS)
    """

    gdal_data_path: str = Field("", validation_alias="GDAL_DATA")
    proj_lib_path: str = Field("", validation_alias="PROJ_LIB")
    target_crs: str = Field("EPSG:4326", validation_alias="GEOLOAD_TARGET_CRS")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# =============================================================================
# Pipeline Settings
# =============================================================================

class PipelineSettings(BaseSettings):
    """
    Job pipeline behaviour.

    Maps environment variables:
    - ENABLE_REAL_PROCESSING → enable_real_processing (False selects simulated backends)
    - GEOLOAD_POLL_INTERVAL_SECONDS → poll_interval_seconds
    - GEOLOAD_POLL_MAX_ATTEMPTS → poll_max_attempts
    - GEOLOAD_STAGING_SUBAREA → staging_subarea
    - GEOLOAD_GEOMETRY_ENCODING → geometry_encoding
    - GEOLOAD_INFER_SCHEMA → infer_schema (False lets the warehouse auto-detect)
    - GEOLOAD_SCHEMA_SAMPLE_SIZE → schema_sample_size
    - GCS_DEFAULT_BUCKET → staging_bucket
    """

    enable_real_processing: bool = Field(False, validation_alias="ENABLE_REAL_PROCESSING")
    poll_interval_seconds: float = Field(5.0, gt=0, validation_alias="GEOLOAD_POLL_INTERVAL_SECONDS")
    poll_max_attempts: int = Field(30, ge=1, validation_alias="GEOLOAD_POLL_MAX_ATTEMPTS")
    staging_subarea: str = Field("converted", validation_alias="GEOLOAD_STAGING_SUBAREA")
    geometry_encoding: GeometryEncoding = Field(GeometryEncoding.GEOJSON, validation_alias="GEOLOAD_GEOMETRY_ENCODING")
    infer_schema: bool = Field(True, validation_alias="GEOLOAD_INFER_SCHEMA")
    schema_sample_size: Optional[int] = Field(None, ge=1, validation_alias="GEOLOAD_SCHEMA_SAMPLE_SIZE")
    staging_bucket: str = Field("", validation_alias="GCS_DEFAULT_BUCKET")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )
