"""
Configuration for raster tabulation and census binning
"""
from pathlib import Path

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent

# Input data paths
RAW_DIR = PROJECT_ROOT / "data" / "raw"
RASTER_DIR = RAW_DIR / "rasters"
TRACTS_FILE = RAW_DIR / "census" / "tracts.shp"
ATTRIBUTES_FILE = RAW_DIR / "census" / "attributes.csv"

# Output directories
OUTPUT_DIR = PROJECT_ROOT / "data" / "processed"
PARQUET_DIR = PROJECT_ROOT / "data" / "parquet"
RESULTS_DIR = PROJECT_ROOT / "data" / "results"

# Coordinate reference systems
GEOGRAPHIC_CRS = "EPSG:4326"  # lon/lat columns
EQUAL_AREA_CRS = "EPSG:5070"  # CONUS Albers, areas and grid cells in metres
DEFAULT_TRACT_CRS = "EPSG:4269"  # NAD83, TIGER/Line default

# GeoTIFF creation options
COMPRESSION = "LZW"
PREDICTOR = 2  # Horizontal differencing, integer data only
TILED = True
BLOCKSIZE = 512

# Parquet output
PARQUET_COMPRESSION = "snappy"
CHUNK_ROWS = 256  # Raster rows per record batch

# Census binning
TRACT_ID_FIELDS = ["GEOID", "GEOID20", "GEOID10", "GISJOIN", "TRACTCE"]
DEFAULT_BIN_COUNT = 5
BIN_METHODS = ("quantile", "equal_interval", "breaks")
BIN_NODATA = -1  # Class code for missing values and grid fill
GRID_RESOLUTION = 1000.0  # Metres, in EQUAL_AREA_CRS
