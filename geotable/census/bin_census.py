#!/usr/bin/env python3
"""
Census Geodata Binning
Joins census attributes onto tract polygons and classifies a measure into bins
"""
import logging
import sys
import time
from pathlib import Path

import numpy as np
import pandas as pd

from ..config import (
    ATTRIBUTES_FILE,
    BIN_METHODS,
    BIN_NODATA,
    DEFAULT_BIN_COUNT,
    DEFAULT_TRACT_CRS,
    EQUAL_AREA_CRS,
    GRID_RESOLUTION,
    RESULTS_DIR,
    TRACT_ID_FIELDS,
    TRACTS_FILE
)
from ..raster.clip import load_boundaries

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)


def load_tracts(path=TRACTS_FILE, default_crs=DEFAULT_TRACT_CRS):
    """Load tract polygons; TIGER/Line files without a .prj are NAD83"""
    return load_boundaries(path, default_crs)


def get_id_field(gdf, candidates=TRACT_ID_FIELDS):
    """Identify the field containing tract identifiers"""
    for field in candidates:
        if field in gdf.columns:
            logger.info(f"Using field '{field}' for tract ids")
            return field

    logger.error(f"Could not find tract id field. Available columns: {list(gdf.columns)}")
    raise ValueError("Tract id field not found in tract layer")


def read_attributes(path=ATTRIBUTES_FILE, key="GEOID"):
    """Read an attribute table, keeping the join key as text"""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Attribute table not found: {path}")

    table = pd.read_csv(path, dtype={key: str})
    if key not in table.columns:
        raise ValueError(f"Key {key} not found in {path.name}. Available: {table.columns.tolist()}")

    logger.info(f"Read {len(table)} attribute rows from {path}")
    return table


def _join_keys(column):
    # missing keys stay missing instead of becoming the text "nan"
    keys = column.where(column.notna()).astype("string").str.strip()
    return keys.mask(keys.eq("").fillna(False))


def join_attributes(gdf, table, left_key, right_key=None):
    """
    Left-join an attribute table onto tract polygons.

    Keys are compared as stripped strings and missing keys never match.
    Every tract is kept; tracts without a matching attribute row get
    missing values.
    """
    right_key = right_key or left_key
    if left_key not in gdf.columns:
        raise ValueError(f"Key {left_key} not found in tract layer")
    if right_key not in table.columns:
        raise ValueError(f"Key {right_key} not found in attribute table")

    left = gdf.copy()
    left["_join_key"] = _join_keys(left[left_key])

    right = table.copy()
    right["_join_key"] = _join_keys(right[right_key])
    blank = int(right["_join_key"].isna().sum())
    if blank:
        logger.warning(f"Skipping {blank} attribute rows without a key")
        right = right[right["_join_key"].notna()]
    if right["_join_key"].duplicated().any():
        duplicates = right.loc[right["_join_key"].duplicated(), "_join_key"].unique()
        raise ValueError(f"Duplicate keys in attribute table: {list(duplicates[:5])}")
    if right_key == left_key:
        right = right.drop(columns=[right_key])

    merged = left.merge(right, on="_join_key", how="left", suffixes=("", "_attr"), indicator=True)
    unmatched = int((merged["_merge"] == "left_only").sum())
    if unmatched:
        logger.warning(f"{unmatched} of {len(merged)} tracts have no attribute row")
    else:
        logger.info(f"✓ All {len(merged)} tracts matched")

    return merged.drop(columns=["_join_key", "_merge"])


def compute_density(gdf, value_field, area_crs=EQUAL_AREA_CRS):
    """Add area_km2 and <value_field>_density, measuring area in an equal-area CRS"""
    if value_field not in gdf.columns:
        raise ValueError(f"Field {value_field} not found")
    if gdf.crs is None:
        raise ValueError("Tract layer has no CRS, cannot measure areas")

    out = gdf.copy()
    out["area_km2"] = (gdf.geometry.to_crs(area_crs).area / 1e6).to_numpy()
    values = pd.to_numeric(out[value_field], errors="coerce")
    out[f"{value_field}_density"] = values / out["area_km2"].where(out["area_km2"] > 0)
    return out


def bin_values(values, method="quantile", n_bins=DEFAULT_BIN_COUNT, breaks=None):
    """
    Classify values into integer bins.

    Args:
        values: Sequence of numbers, missing values allowed
        method: "quantile", "equal_interval" or "breaks"
        n_bins: Number of classes for quantile and equal_interval
        breaks: Strictly increasing class edges for "breaks"

    Returns:
        Tuple (codes, edges). codes is an int array of class indexes
        0..k-1 with BIN_NODATA for missing or out-of-range values.
    """
    if method not in BIN_METHODS:
        raise ValueError(f"Unknown bin method {method!r}, expected one of {BIN_METHODS}")

    series = pd.Series(np.asarray(values, dtype=np.float64)).replace([np.inf, -np.inf], np.nan)
    valid = series.dropna()

    if method == "breaks":
        if breaks is None or len(breaks) < 2:
            raise ValueError("At least two breaks are required")
        edges = np.asarray(breaks, dtype=np.float64)
        if np.any(np.diff(edges) <= 0):
            raise ValueError("Breaks must be strictly increasing")
        codes = pd.cut(series, edges, labels=False, include_lowest=True)
    else:
        if n_bins < 1:
            raise ValueError(f"n_bins must be positive, got {n_bins}")
        if valid.empty:
            return np.full(len(series), BIN_NODATA, dtype=int), np.array([], dtype=np.float64)
        if valid.nunique() == 1:
            value = valid.iloc[0]
            codes = series.where(series.isna(), 0)
            edges = np.array([value, value], dtype=np.float64)
        elif method == "quantile":
            codes, edges = pd.qcut(series, n_bins, labels=False, retbins=True, duplicates="drop")
        else:
            codes, edges = pd.cut(series, n_bins, labels=False, retbins=True, include_lowest=True)

    codes = pd.Series(codes).fillna(BIN_NODATA).astype(int).to_numpy()
    return codes, np.asarray(edges, dtype=np.float64)


def summarize_bins(gdf, bin_field, value_field):
    """Count, range and total of value_field per class"""
    summary = gdf.groupby(bin_field)[value_field].agg(["count", "min", "max", "sum"])
    return summary.sort_index().reset_index()


def write_binned(gdf, output_file):
    """Write the classified tracts; the driver follows the file extension"""
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    gdf.to_file(output_file)
    logger.info(f"✓ Created {output_file}")
    return output_file


def bin_census(tracts_path, attributes_path, value_field, tract_key=None, attr_key=None,
               density=False, method="quantile", n_bins=DEFAULT_BIN_COUNT, breaks=None):
    """
    Full binning pipeline: load, join, optional density, classify.

    Returns:
        Tuple (gdf, bin_field, edges)
    """
    tracts = load_tracts(tracts_path)
    tract_key = tract_key or get_id_field(tracts)
    attr_key = attr_key or tract_key

    table = read_attributes(attributes_path, attr_key)
    gdf = join_attributes(tracts, table, tract_key, attr_key)

    measure = value_field
    if density:
        gdf = compute_density(gdf, value_field)
        measure = f"{value_field}_density"
    elif value_field not in gdf.columns:
        raise ValueError(f"Field {value_field} not found after join")

    bin_field = f"{measure}_bin"
    codes, edges = bin_values(gdf[measure], method, n_bins, breaks)
    gdf[bin_field] = codes
    logger.info(f"Bin edges for {measure} ({method}): {np.round(edges, 4).tolist()}")

    return gdf, bin_field, edges


def main(argv=None):
    """Main processing function"""
    import argparse

    parser = argparse.ArgumentParser(description="Join census attributes to tracts and bin a measure")
    parser.add_argument("--tracts", type=Path, default=TRACTS_FILE, help="Tract polygon layer")
    parser.add_argument("--attributes", type=Path, default=ATTRIBUTES_FILE, help="Attribute CSV")
    parser.add_argument("--value", required=True, help="Attribute column to classify")
    parser.add_argument("--tract-key", help="Tract id field (detected when omitted)")
    parser.add_argument("--attr-key", help="Attribute table key (defaults to the tract key)")
    parser.add_argument("--density", action="store_true", help="Classify value per square kilometre")
    parser.add_argument("--method", choices=BIN_METHODS, default="quantile")
    parser.add_argument("--bins", type=int, default=DEFAULT_BIN_COUNT)
    parser.add_argument("--breaks", type=float, nargs="+", help="Class edges for --method breaks")
    parser.add_argument("--output", type=Path, default=RESULTS_DIR / "tracts_binned.gpkg")
    parser.add_argument("--grid", type=Path, help="Also write the classes as a GeoTIFF grid")
    parser.add_argument("--resolution", type=float, default=GRID_RESOLUTION, help="Grid cell size in metres")
    args = parser.parse_args(argv)

    logger.info("=" * 60)
    logger.info("Census Geodata Binning")
    logger.info("=" * 60)
    start_time = time.time()

    try:
        gdf, bin_field, _ = bin_census(
            args.tracts, args.attributes, args.value, args.tract_key, args.attr_key,
            args.density, args.method, args.bins, args.breaks
        )
        measure = bin_field[:-len("_bin")]
        summary = summarize_bins(gdf, bin_field, measure)
        logger.info(f"Class summary:\n{summary.to_string(index=False)}")

        write_binned(gdf, args.output)

        if args.grid:
            from .grid import rasterize_tracts, write_grid

            cube = rasterize_tracts(gdf, [bin_field], args.resolution)
            write_grid(cube, bin_field, args.grid)
    except (OSError, ValueError) as e:
        logger.error(f"Processing failed: {e}")
        return 1

    logger.info("=" * 60)
    logger.info(f"Processing complete in {time.time() - start_time:.2f}s")
    logger.info("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
