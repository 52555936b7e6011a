"""
Raster Clipping
Cuts a raster to the features of a boundary layer, one GeoTIFF per feature
"""
import logging
import re
import sys
from pathlib import Path

import geopandas as gpd
import numpy as np
import rasterio
from rasterio.mask import mask

from ..config import (
    BLOCKSIZE,
    COMPRESSION,
    GEOGRAPHIC_CRS,
    OUTPUT_DIR,
    PREDICTOR,
    TILED
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)


def load_boundaries(path, default_crs=GEOGRAPHIC_CRS):
    """Load a boundary layer, assigning default_crs when the file has none"""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Boundary file not found: {path}")

    logger.info(f"Loading boundaries from {path}")
    gdf = gpd.read_file(path)

    if gdf.crs is None:
        logger.warning(f"No CRS found in boundary file. Setting to {default_crs}")
        gdf = gdf.set_crs(default_crs)

    logger.info(f"Available columns: {list(gdf.columns)}")
    return gdf


def clip_raster(src, geometries, output_file, all_touched=True):
    """
    Clip an open raster to geometries and write a tiled GeoTIFF

    Args:
        src: Open rasterio dataset
        geometries: Iterable of geometries in the raster CRS
        output_file: Destination GeoTIFF
        all_touched: Keep every pixel touched by a geometry, not only centres

    Returns:
        Path of the written file
    """
    out_image, out_transform = mask(
        src,
        list(geometries),
        crop=True,
        all_touched=all_touched,
        nodata=src.nodata
    )

    out_meta = src.meta.copy()
    out_meta.update({
        "driver": "GTiff",
        "height": out_image.shape[1],
        "width": out_image.shape[2],
        "transform": out_transform,
        "compress": COMPRESSION,
        "tiled": TILED,
        "blockxsize": BLOCKSIZE,
        "blockysize": BLOCKSIZE
    })
    # Horizontal differencing predictor is only valid for integer samples
    if np.issubdtype(np.dtype(src.dtypes[0]), np.integer):
        out_meta["predictor"] = PREDICTOR

    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    with rasterio.open(output_file, "w", **out_meta) as dest:
        dest.write(out_image)

    logger.info(f"✓ Created {output_file}")
    logger.info(f"  Dimensions: {out_image.shape[2]} x {out_image.shape[1]} pixels")
    return output_file


def select_features(gdf, id_field=None, ids=None):
    """Filter a boundary layer to the requested feature ids"""
    if id_field is None:
        if ids:
            raise ValueError("ids given without an id_field")
        return gdf

    if id_field not in gdf.columns:
        logger.error(f"Field {id_field} not found. Available: {gdf.columns.tolist()}")
        raise ValueError(f"Id field {id_field} not found in boundary file")

    gdf = gdf.copy()
    gdf[id_field] = gdf[id_field].astype(str)
    if not ids:
        return gdf

    selected = gdf[gdf[id_field].isin([str(i) for i in ids])]
    if len(selected) == 0:
        raise ValueError(f"No features found with {id_field} in {list(ids)}")

    logger.info(f"Found {len(selected)} target features")
    return selected


def _file_id(feature_id):
    """Make a feature id safe to use in a file name"""
    safe = re.sub(r"[^A-Za-z0-9._-]+", "_", str(feature_id)).strip("._")
    return safe or "feature"


def clip_to_boundaries(raster_path, boundaries_path, output_dir=OUTPUT_DIR, id_field=None, ids=None):
    """
    Clip a raster to each selected feature of a boundary layer

    Output files are named ``clip_<id>.tif``, using the row position when no
    id_field is given. Ids are reduced to file-name-safe characters; ids
    that end up with the same name raise ValueError before anything is written.
    """
    raster_path = Path(raster_path)
    if not raster_path.exists():
        raise FileNotFoundError(f"Raster not found: {raster_path}")

    features = select_features(load_boundaries(boundaries_path), id_field, ids)
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    output_files = []
    with rasterio.open(raster_path) as src:
        logger.info(f"Raster CRS: {src.crs}")
        logger.info(f"Raster bounds: {src.bounds}")

        if src.crs is not None and features.crs != src.crs:
            logger.info(f"Reprojecting boundaries from {features.crs} to {src.crs}")
            features = features.to_crs(src.crs.to_wkt())

        if id_field:
            file_ids = [_file_id(value) for value in features[id_field]]
        else:
            file_ids = [str(position) for position in range(len(features))]
        duplicates = sorted({f for f in file_ids if file_ids.count(f) > 1})
        if duplicates:
            raise ValueError(f"Features share output names: {duplicates}")

        for file_id, geometry in zip(file_ids, features.geometry):
            logger.info(f"Processing feature {file_id}")
            output_file = output_dir / f"clip_{file_id}.tif"
            output_files.append(clip_raster(src, [geometry], output_file))

    return output_files


def main(argv=None):
    """Clip a raster to boundary features"""
    import argparse

    parser = argparse.ArgumentParser(description="Clip a raster to the features of a boundary layer")
    parser.add_argument("raster", type=Path, help="Raster to clip")
    parser.add_argument("boundaries", type=Path, help="Boundary layer (any OGR format)")
    parser.add_argument("--output-dir", type=Path, default=OUTPUT_DIR)
    parser.add_argument("--id-field", help="Field naming each feature")
    parser.add_argument("--ids", nargs="+", help="Feature ids to keep")
    args = parser.parse_args(argv)

    logger.info("=" * 60)
    logger.info("Raster Clipping")
    logger.info("=" * 60)

    try:
        output_files = clip_to_boundaries(
            args.raster, args.boundaries, args.output_dir, args.id_field, args.ids
        )
    except (OSError, ValueError) as e:
        logger.error(f"Processing failed: {e}")
        return 1

    logger.info("=" * 60)
    logger.info("Processing complete!")
    logger.info(f"Created {len(output_files)} files:")
    for f in output_files:
        logger.info(f"  - {f}")
    logger.info("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
