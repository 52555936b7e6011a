"""
geotable: raster and census geodata to tables.

This package contains small scripts organized into logical modules:
- ``raster``: raster-to-table conversion and clipping to boundaries
- ``census``: census attribute joins, binning and gridding
- ``utils``: inspection helpers for the Parquet output

The modules are intentionally lightweight; each step can be called as a
command-line utility or imported as plain functions.
"""
