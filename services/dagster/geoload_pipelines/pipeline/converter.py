# =============================================================================
# Geometry Converter
# =============================================================================
# Normalizes a primary vector file into a GeoJSON FeatureCollection with
# ogr2ogr. The intermediate GeoJSON file never outlives the call.
# =============================================================================

import json
import logging
from pathlib import Path
from typing import Optional, Union

from geoload.errors import ConversionError

from ..resources.gdal_resource import GDALResource

__all__ = ["GeometryConverter"]

logger = logging.getLogger(__name__)


class GeometryConverter:
    """
    Convert any ogr2ogr-readable vector file to a GeoJSON FeatureCollection.

    Example:
        >>> converter = GeometryConverter(GDALResource(target_crs="EPSG:4326"))
        >>> fc = converter.convert(Path("/tmp/geoload_x/parcels.shp"))
        >>> fc["type"]
        'FeatureCollection'
    """

    def __init__(self, gdal: GDALResource, target_crs: Optional[str] = None):
        self.gdal = gdal
        self.target_crs = target_crs

    def convert(self, primary_path: Union[str, Path]) -> dict:
        """
        Run ogr2ogr and parse its GeoJSON output.

        Args:
            primary_path: Path to the primary file (e.g., the .shp)

        Returns:
            Parsed FeatureCollection

        Raises:
            ConversionError: On non-zero exit, missing executable, or unparsable output
        """
        primary_path = Path(primary_path)
        output_path = primary_path.with_name(f"{primary_path.stem}.geoload.geojson")

        try:
            result = self.gdal.ogr2ogr(
                input_path=str(primary_path),
                output_path=str(output_path),
                output_format="GeoJSON",
                target_crs=self.target_crs,
            )
            if not result.success:
                raise ConversionError(
                    f"ogr2ogr failed with exit code {result.return_code}",
                    stderr=result.stderr,
                )

            try:
                with open(output_path, "r", encoding="utf-8") as f:
                    feature_collection = json.load(f)
            except (OSError, json.JSONDecodeError) as exc:
                raise ConversionError(f"Unreadable ogr2ogr output: {exc}") from exc
        finally:
            output_path.unlink(missing_ok=True)

        if not isinstance(feature_collection, dict) or feature_collection.get("type") != "FeatureCollection":
            raise ConversionError("ogr2ogr output is not a GeoJSON FeatureCollection")

        feature_collection.setdefault("features", [])
        logger.info(
            f"Converted {primary_path.name} to GeoJSON "
            f"({len(feature_collection['features'])} features)"
        )
        return feature_collection
