"""Dagster Resources - External Service Connections."""

from .backends import Backends, build_backends
from .gdal_resource import GDALResource, GDALResult
from .identity_resource import Credential, IdentityProvider, IdentityResource
from .storage_resource import GCSStorageResource, InMemoryObjectStore, ObjectStore
from .warehouse_resource import (
    BigQueryResource,
    SimulatedWarehouse,
    Warehouse,
    WarehouseAPIError,
    WarehouseJobStatus,
)

__all__ = [
    "Backends",
    "build_backends",
    "GDALResource",
    "GDALResult",
    "Credential",
    "IdentityProvider",
    "IdentityResource",
    "GCSStorageResource",
    "InMemoryObjectStore",
    "ObjectStore",
    "BigQueryResource",
    "SimulatedWarehouse",
    "Warehouse",
    "WarehouseAPIError",
    "WarehouseJobStatus",
]
