"""
Raster utilities.

This module contains scripts that clip rasters to vector boundaries and
flatten them into one-row-per-pixel Parquet tables.
"""
