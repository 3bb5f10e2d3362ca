# =============================================================================
# GDAL Resource - ogr2ogr Subprocess Wrapper
# =============================================================================
# Runs ogr2ogr to normalize a vector source (shapefile, GeoPackage, KML...)
# into GeoJSON. Tool failures come back as a GDALResult; nothing is raised.
# =============================================================================

from dataclasses import dataclass
import logging
import os
import subprocess
from typing import Dict, Optional

from dagster import ConfigurableResource
from pydantic import Field

__all__ = ["GDALResource", "GDALResult"]

logger = logging.getLogger(__name__)

# Conventional shell exit codes for "not found" and "timed out"
_EXIT_NOT_FOUND = 127
_EXIT_TIMEOUT = 124


@dataclass
class GDALResult:
    """
    Outcome of one GDAL invocation.

    ``output_path`` is only set when the command exited cleanly.
    """
    success: bool
    command: list[str]
    stdout: str
    stderr: str
    return_code: int
    output_path: Optional[str] = None


class GDALResource(ConfigurableResource):
    """
    Dagster resource wrapping the ogr2ogr CLI.

    Configuration matches GDALSettings from geoload.models.config.

    Attributes:
        gdal_data_path: GDAL_DATA for the subprocess (empty inherits the environment)
        proj_lib_path: PROJ_LIB for the subprocess (empty inherits the environment)
        target_crs: CRS conversions reproject to (empty keeps the source CRS)
        timeout_seconds: Wall clock limit per command (None waits forever)

    Example:
        >>> gdal = GDALResource(target_crs="EPSG:4326")
        >>> result = gdal.ogr2ogr("/tmp/geoload_x/parcels.shp", "/tmp/geoload_x/parcels.geojson")
        >>> result.success
        True
    """

    gdal_data_path: str = Field("", description="GDAL_DATA override")
    proj_lib_path: str = Field("", description="PROJ_LIB override")
    target_crs: str = Field("EPSG:4326", description="Reprojection target (empty disables)")
    timeout_seconds: Optional[int] = Field(None, description="Per-command timeout in seconds")

    def _subprocess_env(self) -> Dict[str, str]:
        env = os.environ.copy()
        if self.gdal_data_path:
            env["GDAL_DATA"] = self.gdal_data_path
        if self.proj_lib_path:
            env["PROJ_LIB"] = self.proj_lib_path
        return env

    def ogr2ogr(
        self,
        input_path: str,
        output_path: str,
        output_format: str = "GeoJSON",
        target_crs: Optional[str] = None,
        layer_name: Optional[str] = None,
        options: Optional[Dict[str, str]] = None,
    ) -> GDALResult:
        """
        Translate ``input_path`` into ``output_path``.

        Args:
            input_path: Any OGR-readable vector file
            output_path: File to write
            output_format: OGR driver name
            target_crs: Overrides the resource's target_crs; "" skips reprojection
            layer_name: Name for the output layer (-nln)
            options: Extra flags; an empty value emits the flag alone

        Returns:
            GDALResult for the run
        """
        crs = self.target_crs if target_crs is None else target_crs

        cmd = ["ogr2ogr", "-f", output_format]
        if crs:
            cmd += ["-t_srs", crs]
        if layer_name:
            cmd += ["-nln", layer_name]
        for flag, value in (options or {}).items():
            cmd.append(flag)
            if value:
                cmd.append(value)
        cmd += [output_path, input_path]

        return self._run_command(cmd, output_path)

    def _run_command(self, cmd: list[str], output_path: Optional[str] = None) -> GDALResult:
        logger.debug(f"Running {' '.join(cmd)}")
        try:
            completed = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                env=self._subprocess_env(),
                timeout=self.timeout_seconds,
            )
        except FileNotFoundError as exc:
            return GDALResult(
                success=False,
                command=cmd,
                stdout="",
                stderr=f"{cmd[0]} executable not found: {exc}",
                return_code=_EXIT_NOT_FOUND,
            )
        except subprocess.TimeoutExpired:
            return GDALResult(
                success=False,
                command=cmd,
                stdout="",
                stderr=f"{cmd[0]} timed out after {self.timeout_seconds}s",
                return_code=_EXIT_TIMEOUT,
            )

        ok = completed.returncode == 0
        if not ok:
            logger.warning(f"{cmd[0]} exited with {completed.returncode}")
        return GDALResult(
            success=ok,
            command=cmd,
            stdout=completed.stdout,
            stderr=completed.stderr,
            return_code=completed.returncode,
            output_path=output_path if ok else None,
        )
