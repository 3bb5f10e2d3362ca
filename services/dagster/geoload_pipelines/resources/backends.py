# =============================================================================
# Backend Selection
# =============================================================================
# Chooses real or simulated collaborators once, at startup, from settings.
# =============================================================================

from dataclasses import dataclass
import logging
from typing import Any, Optional

from dagster import ResourceDefinition

from geoload.models import (
    GDALSettings,
    IdentitySettings,
    PipelineSettings,
    StorageSettings,
    WarehouseSettings,
)

from .gdal_resource import GDALResource
from .identity_resource import IdentityProvider, IdentityResource
from .storage_resource import GCSStorageResource, InMemoryObjectStore, ObjectStore
from .warehouse_resource import BigQueryResource, SimulatedWarehouse, Warehouse

__all__ = ["Backends", "build_backends"]

logger = logging.getLogger(__name__)


@dataclass
class Backends:
    """
    The collaborators a pipeline run talks to.

    Attributes:
        storage: Object store for staging and remote sources
        warehouse: Load target
        gdal: ogr2ogr wrapper (real in both modes)
        identity: Credential provider (None when simulated)
        simulated: True when storage and warehouse are in-process fakes
    """

    storage: ObjectStore
    warehouse: Warehouse
    gdal: GDALResource
    identity: Optional[IdentityProvider]
    simulated: bool

    def as_resources(self) -> dict[str, Any]:
        """
        Dagster resource mapping, keyed the way the load op requires them.

        Plain objects (the simulated store and warehouse) are wrapped by
        Definitions as hardcoded resources; a missing identity becomes a
        resource that yields None.
        """
        return {
            "storage": self.storage,
            "warehouse": self.warehouse,
            "gdal": self.gdal,
            "identity": (
                self.identity if self.identity is not None else ResourceDefinition.none_resource()
            ),
        }


def build_backends(
    pipeline: Optional[PipelineSettings] = None,
    storage: Optional[StorageSettings] = None,
    warehouse: Optional[WarehouseSettings] = None,
    identity: Optional[IdentitySettings] = None,
    gdal: Optional[GDALSettings] = None,
) -> Backends:
    """
    Build collaborators from settings (read from the environment when omitted).

    ``PipelineSettings.enable_real_processing`` selects GCS + BigQuery;
    otherwise an InMemoryObjectStore and a SimulatedWarehouse are used.
    """
    pipeline = pipeline or PipelineSettings()
    storage = storage or StorageSettings()
    gdal = gdal or GDALSettings()

    gdal_resource = GDALResource(
        gdal_data_path=gdal.gdal_data_path,
        proj_lib_path=gdal.proj_lib_path,
        target_crs=gdal.target_crs,
    )

    if not pipeline.enable_real_processing:
        logger.info("Real processing disabled; using simulated storage and warehouse")
        store = InMemoryObjectStore(uri_scheme=storage.uri_scheme)
        return Backends(
            storage=store,
            warehouse=SimulatedWarehouse(store=store),
            gdal=gdal_resource,
            identity=None,
            simulated=True,
        )

    warehouse = warehouse or WarehouseSettings()
    identity = identity or IdentitySettings()

    identity_resource = IdentityResource(
        access_token=identity.access_token,
        tokeninfo_url=identity.tokeninfo_url,
    )
    logger.info(
        f"Real processing enabled; storage at {storage.endpoint}, "
        f"warehouse at {warehouse.api_url} ({warehouse.location})"
    )
    return Backends(
        storage=GCSStorageResource(
            endpoint=storage.endpoint,
            access_key=storage.access_key,
            secret_key=storage.secret_key,
            use_ssl=storage.use_ssl,
            uri_scheme=storage.uri_scheme,
        ),
        warehouse=BigQueryResource(
            identity=identity_resource,
            location=warehouse.location,
            api_url=warehouse.api_url,
            write_disposition=warehouse.write_disposition,
        ),
        gdal=gdal_resource,
        identity=identity_resource,
        simulated=False,
    )
