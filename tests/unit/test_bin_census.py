"""
Unit tests for census binning.

Tests value classification, attribute joins with census-style keys,
density computation and the end-to-end pipeline.
"""

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest

from geotable.census.bin_census import (
    bin_census,
    bin_values,
    compute_density,
    get_id_field,
    join_attributes,
    main,
    read_attributes,
    summarize_bins,
)
from geotable.config import BIN_NODATA


class TestBinValues:
    """Test classification methods."""

    def test_quantile(self):
        codes, edges = bin_values(range(1, 11), "quantile", 5)

        assert codes.tolist() == [0, 0, 1, 1, 2, 2, 3, 3, 4, 4]
        assert len(edges) == 6
        assert edges[0] == 1
        assert edges[-1] == 10

    def test_equal_interval(self):
        codes, edges = bin_values([0, 5, 10], "equal_interval", 2)

        assert codes.tolist() == [0, 0, 1]
        assert len(edges) == 3

    def test_explicit_breaks(self):
        codes, edges = bin_values([0, 5, 10, 50, 150, np.nan], "breaks", breaks=[0, 10, 100])

        assert codes.tolist() == [0, 0, 0, 1, BIN_NODATA, BIN_NODATA]
        assert edges.tolist() == [0.0, 10.0, 100.0]

    def test_missing_values_get_nodata(self):
        codes, _ = bin_values([1.0, None, 3.0, 4.0], "quantile", 2)

        assert codes[1] == BIN_NODATA
        assert codes.tolist().count(BIN_NODATA) == 1

    def test_constant_values_single_class(self):
        codes, edges = bin_values([7, 7, np.nan, 7], "quantile", 4)

        assert codes.tolist() == [0, 0, BIN_NODATA, 0]
        assert edges.tolist() == [7.0, 7.0]

    def test_all_missing(self):
        codes, edges = bin_values([np.nan, np.nan], "equal_interval", 3)

        assert codes.tolist() == [BIN_NODATA, BIN_NODATA]
        assert len(edges) == 0

    def test_duplicate_quantile_edges_dropped(self):
        codes, edges = bin_values([1, 1, 1, 1, 2, 3], "quantile", 4)

        assert len(edges) < 5
        assert codes.min() == 0
        assert codes.max() == len(edges) - 2

    def test_unknown_method(self):
        with pytest.raises(ValueError, match="Unknown bin method"):
            bin_values([1, 2], "jenks")

    def test_breaks_must_increase(self):
        with pytest.raises(ValueError, match="strictly increasing"):
            bin_values([1, 2], "breaks", breaks=[10, 5])

    def test_breaks_required(self):
        with pytest.raises(ValueError, match="two breaks"):
            bin_values([1, 2], "breaks")

    @pytest.mark.parametrize("method", ["quantile", "equal_interval"])
    def test_infinite_values_get_nodata(self, method):
        codes, edges = bin_values([1, 2, 3, np.inf, -np.inf], method, 2)

        assert codes.tolist()[3:] == [BIN_NODATA, BIN_NODATA]
        assert codes.tolist()[:3] == [0, 0, 1]
        assert np.isfinite(edges).all()
        assert edges[0] == pytest.approx(1, abs=0.01)
        assert edges[-1] == pytest.approx(3)


class TestJoin:
    """Test attribute reading and joins."""

    def test_get_id_field(self, tracts):
        assert get_id_field(tracts) == "GEOID"

    def test_get_id_field_missing(self, tracts):
        with pytest.raises(ValueError):
            get_id_field(tracts.drop(columns=["GEOID"]))

    def test_read_attributes_keeps_leading_zeros(self, census_files):
        _, attributes_path = census_files
        table = read_attributes(attributes_path, "GEOID")

        assert table["GEOID"].iloc[0] == "06001000100"

    def test_read_attributes_missing_key(self, census_files):
        _, attributes_path = census_files
        with pytest.raises(ValueError, match="not found"):
            read_attributes(attributes_path, "TRACT")

    def test_join_keeps_every_tract(self, tracts, attributes):
        joined = join_attributes(tracts, attributes.iloc[:2], "GEOID")

        assert isinstance(joined, gpd.GeoDataFrame)
        assert len(joined) == 3
        assert joined["population"].tolist()[:2] == [500, 1500]
        assert pd.isna(joined["population"].iloc[2])
        assert "_join_key" not in joined.columns

    def test_join_different_key_names(self, tracts, attributes):
        table = attributes.rename(columns={"GEOID": "geo_id"})
        table["geo_id"] = " " + table["geo_id"]
        joined = join_attributes(tracts, table, "GEOID", "geo_id")

        assert joined["population"].tolist() == [500, 1500, 4000]

    def test_join_missing_keys_never_match(self, tracts, attributes):
        gdf = tracts.copy()
        gdf.loc[2, "GEOID"] = None
        table = pd.concat(
            [attributes, pd.DataFrame({"GEOID": [None, "  "], "population": [999, 888]})],
            ignore_index=True,
        )
        joined = join_attributes(gdf, table, "GEOID")

        assert len(joined) == 3
        assert joined["population"].tolist()[:2] == [500, 1500]
        assert pd.isna(joined["population"].iloc[2])

    def test_join_duplicate_keys(self, tracts, attributes):
        table = pd.concat([attributes, attributes.iloc[:1]])
        with pytest.raises(ValueError, match="Duplicate keys"):
            join_attributes(tracts, table, "GEOID")


def test_compute_density(tracts, attributes):
    """Test density per square kilometre measured in an equal-area CRS."""
    joined = join_attributes(tracts, attributes, "GEOID")
    result = compute_density(joined, "population")

    np.testing.assert_allclose(result["area_km2"], [1.0, 1.0, 2.0])
    np.testing.assert_allclose(result["population_density"], [500.0, 1500.0, 2000.0])
    assert "population_density" not in joined.columns


def test_compute_density_missing_field(tracts):
    with pytest.raises(ValueError):
        compute_density(tracts, "population")


def test_summarize_bins():
    df = pd.DataFrame({"cls": [1, 0, 1, 0, 0], "value": [10, 1, 20, 2, 3]})
    summary = summarize_bins(df, "cls", "value")

    assert summary["cls"].tolist() == [0, 1]
    assert summary["count"].tolist() == [3, 2]
    assert summary["sum"].tolist() == [6, 30]
    assert summary["max"].tolist() == [3, 20]


def test_bin_census_pipeline(census_files):
    """Test load, join, density and classification from files."""
    tracts_path, attributes_path = census_files
    gdf, bin_field, edges = bin_census(
        tracts_path, attributes_path, "population", density=True, method="breaks", breaks=[0, 1000, 5000]
    )

    assert bin_field == "population_density_bin"
    assert gdf[bin_field].tolist() == [0, 1, 1]
    assert edges.tolist() == [0.0, 1000.0, 5000.0]


def test_main_writes_outputs(census_files, tmp_path):
    tracts_path, attributes_path = census_files
    output = tmp_path / "out" / "binned.gpkg"
    grid = tmp_path / "out" / "binned.tif"

    code = main([
        "--tracts", str(tracts_path),
        "--attributes", str(attributes_path),
        "--value", "population",
        "--bins", "3",
        "--output", str(output),
        "--grid", str(grid),
        "--resolution", "500",
    ])

    assert code == 0
    written = gpd.read_file(output)
    assert sorted(written["population_bin"].tolist()) == [0, 1, 2]
    assert grid.exists()


def test_main_unknown_value(census_files, tmp_path):
    tracts_path, attributes_path = census_files
    code = main([
        "--tracts", str(tracts_path),
        "--attributes", str(attributes_path),
        "--value", "income",
        "--output", str(tmp_path / "binned.gpkg"),
    ])

    assert code == 1
