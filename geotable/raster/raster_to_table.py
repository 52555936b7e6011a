#!/usr/bin/env python3
"""
Raster to Table Conversion
Flattens rasters into one row per pixel and streams them to partitioned Parquet.
"""
import json
import logging
import sys
import time
from pathlib import Path

import numpy as np
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq
import rasterio
from pyproj import Transformer
from rasterio.errors import RasterioError
from rasterio.windows import Window

from ..config import (
    CHUNK_ROWS,
    GEOGRAPHIC_CRS,
    PARQUET_COMPRESSION,
    PARQUET_DIR,
    RASTER_DIR
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)


def pixel_centers(transform, rows, cols):
    """
    Map coordinates of pixel centres.

    Args:
        transform: Affine transform of the raster
        rows: Row indices
        cols: Column indices, same length as rows

    Returns:
        Tuple (xs, ys) of float64 arrays in the raster CRS
    """
    cx = np.asarray(cols, dtype=np.float64) + 0.5
    cy = np.asarray(rows, dtype=np.float64) + 0.5
    xs = transform.a * cx + transform.b * cy + transform.c
    ys = transform.d * cx + transform.e * cy + transform.f
    return xs, ys


def _geographic_transformer(crs):
    # rasterio CRS objects go through WKT so pyproj sees the same definition
    if hasattr(crs, "to_wkt"):
        crs = crs.to_wkt()
    return Transformer.from_crs(crs, GEOGRAPHIC_CRS, always_xy=True)


def to_geographic(xs, ys, crs):
    """Reproject x/y coordinates from crs to lon/lat"""
    lon, lat = _geographic_transformer(crs).transform(xs, ys)
    return np.asarray(lon, dtype=np.float64), np.asarray(lat, dtype=np.float64)


def _resolve_bands(src, bands):
    """Validate 1-based band indexes, defaulting to every band"""
    if bands is None:
        return list(range(1, src.count + 1))
    bands = [int(b) for b in bands]
    if not bands:
        raise ValueError("At least one band must be selected")
    for band in bands:
        if band < 1 or band > src.count:
            raise ValueError(f"Band {band} out of range (1-{src.count})")
    return bands


def table_schema(src, bands, geographic):
    """Arrow schema of the table produced for an open raster"""
    fields = [
        ('row', pa.int32()),
        ('col', pa.int32()),
        ('x', pa.float64()),
        ('y', pa.float64())
    ]
    if geographic:
        fields += [('lon', pa.float64()), ('lat', pa.float64())]
    for band in bands:
        dtype = np.dtype(src.dtypes[band - 1])
        fields.append((f"band_{band}", pa.from_numpy_dtype(dtype)))
    return pa.schema(fields)


def iter_row_chunks(src, chunk_rows=CHUNK_ROWS, bands=None, drop_nodata=True, geographic=True):
    """
    Read an open raster in full-width strips and yield one DataFrame per strip.

    A pixel is dropped when drop_nodata is set and it is masked (nodata or
    NaN) in every selected band. lon/lat columns are only produced when the
    raster has a CRS.
    """
    if chunk_rows < 1:
        raise ValueError(f"chunk_rows must be positive, got {chunk_rows}")

    bands = _resolve_bands(src, bands)
    transformer = None
    if geographic and src.crs is not None:
        transformer = _geographic_transformer(src.crs)
    elif geographic:
        logger.warning(f"No CRS found in {src.name}, skipping lon/lat columns")

    width = src.width
    for row_off in range(0, src.height, chunk_rows):
        height = min(chunk_rows, src.height - row_off)
        window = Window(0, row_off, width, height)

        data = src.read(bands, window=window, masked=True)
        values = np.ma.getdata(data).reshape(len(bands), -1)
        masked = np.ma.getmaskarray(data).reshape(len(bands), -1)
        if np.issubdtype(values.dtype, np.floating):
            masked = masked | np.isnan(values)

        rows, cols = np.divmod(np.arange(height * width), width)
        rows = rows + row_off

        if drop_nodata:
            keep = ~masked.all(axis=0)
            rows, cols, values = rows[keep], cols[keep], values[:, keep]

        xs, ys = pixel_centers(src.transform, rows, cols)
        columns = {
            "row": rows.astype(np.int32),
            "col": cols.astype(np.int32),
            "x": xs,
            "y": ys
        }
        if transformer is not None:
            lon, lat = transformer.transform(xs, ys)
            columns["lon"] = np.asarray(lon, dtype=np.float64)
            columns["lat"] = np.asarray(lat, dtype=np.float64)
        for i, band in enumerate(bands):
            columns[f"band_{band}"] = values[i]

        yield pd.DataFrame(columns)


def raster_to_dataframe(path, bands=None, drop_nodata=True, geographic=True, chunk_rows=CHUNK_ROWS):
    """Load a whole raster as a single one-row-per-pixel DataFrame"""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Raster not found: {path}")

    with rasterio.open(path) as src:
        frames = list(iter_row_chunks(src, chunk_rows, bands, drop_nodata, geographic))
    return pd.concat(frames, ignore_index=True)


def _nodata_value(nodata):
    if nodata is not None and np.isnan(nodata):
        return "nan"
    return nodata


def raster_to_parquet(path, output_dir=PARQUET_DIR, bands=None, drop_nodata=True,
                      geographic=True, chunk_rows=CHUNK_ROWS):
    """
    Stream a raster to a Parquet partition.

    Writes ``raster=<stem>/data.parquet`` with one record batch per strip
    of chunk_rows raster rows, plus a ``metadata.json`` describing the
    source grid so the table can be turned back into a raster.
    The table is written under a temporary name, so a failed run leaves
    any previous partition untouched.

    Args:
        path: Input raster
        output_dir: Directory holding the partitions
        bands: 1-based band indexes, all bands when None
        drop_nodata: Skip pixels masked in every selected band
        geographic: Add lon/lat columns when the raster has a CRS
        chunk_rows: Raster rows per record batch

    Returns:
        Path of the written Parquet file
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Raster not found: {path}")

    partition_dir = Path(output_dir) / f"raster={path.stem}"
    partition_dir.mkdir(parents=True, exist_ok=True)
    parquet_file = partition_dir / "data.parquet"
    metadata_file = partition_dir / "metadata.json"

    tmp_file = partition_dir / "data.parquet.tmp"
    try:
        metadata = _write_partition(path, tmp_file, bands, drop_nodata, geographic, chunk_rows)
    except BaseException:
        tmp_file.unlink(missing_ok=True)
        raise

    # a partition is complete once metadata.json sits beside its data
    metadata_file.unlink(missing_ok=True)
    tmp_file.replace(parquet_file)
    with open(metadata_file, 'w') as f:
        json.dump(metadata, f, indent=2)

    logger.info(f"✓ Wrote {metadata['rows']} rows to {parquet_file}")
    return parquet_file


def _write_partition(path, parquet_file, bands, drop_nodata, geographic, chunk_rows):
    """Stream the table to parquet_file and return the grid metadata"""
    with rasterio.open(path) as src:
        logger.info(f"Raster CRS: {src.crs}")
        logger.info(f"Raster bounds: {src.bounds}")
        logger.info(f"Raster shape: {src.width} x {src.height} pixels, {src.count} band(s)")
        logger.info(f"Raster resolution: {src.res}")

        bands = _resolve_bands(src, bands)
        with_geo = geographic and src.crs is not None
        if geographic and src.crs is None:
            logger.warning(f"No CRS found in {path.name}, skipping lon/lat columns")

        schema = table_schema(src, bands, with_geo)
        row_count = 0

        with pq.ParquetWriter(parquet_file, schema, compression=PARQUET_COMPRESSION) as writer:
            for frame in iter_row_chunks(src, chunk_rows, bands, drop_nodata, with_geo):
                if frame.empty:
                    continue
                batch = pa.RecordBatch.from_arrays(
                    [pa.array(frame[field.name].to_numpy(), type=field.type) for field in schema],
                    schema=schema
                )
                writer.write_batch(batch)
                row_count += len(frame)

        metadata = {
            "source": str(path),
            "width": src.width,
            "height": src.height,
            "transform": list(src.transform.to_gdal()),
            "crs": src.crs.to_string() if src.crs is not None else None,
            "nodata": _nodata_value(src.nodata),
            "bands": bands,
            "rows": row_count
        }
    return metadata


def process_raster(path, output_dir, bands, drop_nodata, geographic, chunk_rows):
    """Convert a single raster, logging instead of raising"""
    logger.info(f"Processing {path}")
    start_time = time.time()
    try:
        raster_to_parquet(path, output_dir, bands, drop_nodata, geographic, chunk_rows)
    except (OSError, ValueError, RasterioError) as e:
        logger.error(f"Error processing {path}: {e}")
        return False

    duration = time.time() - start_time
    logger.info(f"✓ Completed {Path(path).name} in {duration:.2f}s")
    return True


def main(argv=None):
    import argparse

    parser = argparse.ArgumentParser(description="Convert rasters to one-row-per-pixel Parquet tables")
    parser.add_argument("rasters", nargs="*", type=Path, help="Raster files to convert")
    parser.add_argument("--input", action="append", type=Path, default=[], help="Additional raster file")
    parser.add_argument("--output-dir", type=Path, default=PARQUET_DIR, help="Parquet partition directory")
    parser.add_argument("--bands", type=int, nargs="+", help="1-based band indexes to export")
    parser.add_argument("--keep-nodata", action="store_true", help="Emit nodata pixels too")
    parser.add_argument("--no-geographic", action="store_true", help="Skip lon/lat columns")
    parser.add_argument("--chunk-rows", type=int, default=CHUNK_ROWS, help="Raster rows per record batch")
    args = parser.parse_args(argv)

    logger.info("=" * 60)
    logger.info("Raster to Table")
    logger.info("=" * 60)

    rasters = list(args.rasters) + list(args.input)
    if not rasters:
        rasters = sorted(RASTER_DIR.glob("*.tif"))
    if not rasters:
        logger.error(f"No rasters given and none found in {RASTER_DIR}")
        return 1

    success_count = 0
    total_start = time.time()

    for path in rasters:
        if process_raster(path, args.output_dir, args.bands, not args.keep_nodata,
                          not args.no_geographic, args.chunk_rows):
            success_count += 1

    total_duration = time.time() - total_start
    logger.info("=" * 60)
    logger.info(f"Finished {success_count}/{len(rasters)} rasters in {total_duration:.2f}s")

    return 0 if success_count == len(rasters) else 1


if __name__ == "__main__":
    sys.exit(main())
