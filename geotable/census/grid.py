"""
Tract gridding with geocube.
"""
import logging
from pathlib import Path

import rioxarray  # noqa: F401  registers the .rio accessor
from geocube.api.core import make_geocube

from ..config import BIN_NODATA, COMPRESSION, EQUAL_AREA_CRS, GRID_RESOLUTION

logger = logging.getLogger(__name__)


def rasterize_tracts(gdf, measurements, resolution=GRID_RESOLUTION, fill=BIN_NODATA,
                     output_crs=None):
    """
    Burn per-tract values onto a regular grid.

    The layer is reprojected to output_crs (EQUAL_AREA_CRS when None) first
    so resolution is in that CRS's units. Cells covered by no tract get
    fill.

    Returns:
        xarray.Dataset with one variable per measurement
    """
    if resolution <= 0:
        raise ValueError(f"Resolution must be positive, got {resolution}")
    measurements = list(measurements)
    missing = [m for m in measurements if m not in gdf.columns]
    if missing:
        raise ValueError(f"Measurements not found in tract layer: {missing}")
    if gdf.crs is None:
        raise ValueError("Tract layer has no CRS, cannot grid")

    layer = gdf[measurements + [gdf.geometry.name]]
    layer = layer.to_crs(output_crs or EQUAL_AREA_CRS)

    cube = make_geocube(
        vector_data=layer,
        measurements=measurements,
        resolution=(-resolution, resolution),
        fill=fill
    )
    logger.info(f"Gridded {len(layer)} tracts to {dict(cube.sizes)} cells at {resolution}")
    return cube


def write_grid(cube, measurement, output_file):
    """Write one grid variable as a compressed GeoTIFF"""
    if measurement not in cube.data_vars:
        raise ValueError(f"Measurement {measurement} not in grid. Available: {list(cube.data_vars)}")

    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    cube[measurement].rio.to_raster(output_file, compress=COMPRESSION)
    logger.info(f"✓ Created {output_file}")
    return output_file
