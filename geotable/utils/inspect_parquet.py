"""
Small helper to inspect Parquet output for a given raster partition.

The goal is to quickly verify that the table matches the source grid:
row counts against metadata.json, value ranges per band, etc.
"""
import json
import sys
from pathlib import Path

import pyarrow.compute as pc
import pyarrow.parquet as pq

from ..config import PARQUET_DIR


def inspect_parquet(path) -> bool:
    """
    Print basic information about one Parquet partition.

    This shows the schema, number of rows, columns, the row count recorded
    in metadata.json and min/mean/max for each band column.

    Returns:
        False when the partition or its data file is missing
    """
    path = Path(path)
    print(f"\nInspecting {path}")

    if not path.exists():
        print("  Not found!")
        return False

    parquet_file = path / "data.parquet"
    if not parquet_file.exists():
        print("  Parquet file not found!")
        return False

    table = pq.read_table(parquet_file)
    print(f"  Schema: {table.schema}")
    print(f"  Rows: {table.num_rows}")
    print(f"  Columns: {table.column_names}")

    metadata_file = path / "metadata.json"
    if metadata_file.exists():
        with open(metadata_file) as f:
            metadata = json.load(f)
        print(f"  Grid: {metadata['width']} x {metadata['height']}, CRS {metadata['crs']}")
        if metadata.get("rows") != table.num_rows:
            print(f"  Row count mismatch: metadata says {metadata.get('rows')}")

    if table.num_rows == 0:
        print("  No rows in table.")
        return True

    for name in table.column_names:
        if not name.startswith("band_"):
            continue
        column = table.column(name)
        # mean ignores nulls; NaN values are left in
        print(
            f"  {name} (min/mean/max): "
            f"{pc.min(column).as_py()}/{pc.mean(column).as_py():.3f}/{pc.max(column).as_py()}"
        )
    return True


def main(argv=None) -> int:
    """Inspect the given partitions, or every partition under PARQUET_DIR."""
    import argparse

    parser = argparse.ArgumentParser(description="Inspect raster Parquet partitions")
    parser.add_argument("partitions", nargs="*", type=Path, help="Partition directories (raster=<name>)")
    args = parser.parse_args(argv)

    paths = args.partitions
    if not paths:
        paths = sorted(PARQUET_DIR.glob("raster=*"))

    ok = [inspect_parquet(p) for p in paths]
    return 0 if all(ok) else 1


if __name__ == "__main__":
    sys.exit(main())
