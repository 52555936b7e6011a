"""
Shared pytest fixtures.

Writes small synthetic rasters and tract layers so tests never depend on
files under data/.
"""

import numpy as np
import pandas as pd
import geopandas as gpd
import pytest
import rasterio
from rasterio.transform import from_origin
from shapely.geometry import box


# =============================================================================
# Raster Fixtures
# =============================================================================

@pytest.fixture
def write_raster(tmp_path):
    """Factory writing a GeoTIFF from a 2D or 3D array."""

    def _write(name, data, crs="EPSG:4326", transform=None, nodata=None):
        data = np.asarray(data)
        if data.ndim == 2:
            data = data[np.newaxis, ...]
        if transform is None:
            transform = from_origin(10.0, 50.0, 0.5, 0.5)
        path = tmp_path / name
        with rasterio.open(
            path,
            "w",
            driver="GTiff",
            height=data.shape[1],
            width=data.shape[2],
            count=data.shape[0],
            dtype=data.dtype,
            crs=crs,
            transform=transform,
            nodata=nodata,
        ) as dst:
            dst.write(data)
        return path

    return _write


@pytest.fixture
def small_raster(write_raster):
    """3 x 4 uint8 raster in EPSG:4326 with one nodata pixel at (1, 2)."""
    data = np.arange(1, 13, dtype=np.uint8).reshape(3, 4)
    data[1, 2] = 0
    return write_raster("small.tif", data, nodata=0)


# =============================================================================
# Census Fixtures
# =============================================================================

@pytest.fixture
def tracts():
    """Three tracts in EPSG:5070 covering 1, 1 and 2 square kilometres."""
    return gpd.GeoDataFrame(
        {
            "GEOID": ["06001000100", "06001000200", "06001000300"],
            "NAME": ["Tract 1", "Tract 2", "Tract 3"],
        },
        geometry=[
            box(0, 0, 1000, 1000),
            box(1000, 0, 2000, 1000),
            box(0, 1000, 2000, 2000),
        ],
        crs="EPSG:5070",
    )


@pytest.fixture
def attributes():
    """Attribute rows keyed by GEOID, including one unmatched row."""
    return pd.DataFrame(
        {
            "GEOID": ["06001000100", "06001000200", "06001000300", "06001999999"],
            "population": [500, 1500, 4000, 10],
        }
    )


@pytest.fixture
def census_files(tmp_path, tracts, attributes):
    """Tracts as a GeoPackage and attributes as a CSV on disk."""
    tracts_path = tmp_path / "tracts.gpkg"
    attributes_path = tmp_path / "attributes.csv"
    tracts.to_file(tracts_path, driver="GPKG")
    attributes.to_csv(attributes_path, index=False)
    return tracts_path, attributes_path
