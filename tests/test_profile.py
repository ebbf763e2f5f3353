"""
Tests for lake/wetland profile aggregation and record formatting.
"""

import pytest
import numpy as np

from src.wetland.errors import AreaConservationError, ConfigError, UnknownFormatError
from src.wetland.profile import (
    LakeParameterRecord,
    OutputFormat,
    aggregate_profile,
    lake_depth,
    parse_output_format,
    wetland_bin_count,
)
from src.wetland.settings import LakeDepthRegression, ProfileConfig


def _wetland_population(n, wettest=200000.0, driest=14000.0, base_elevation=100.0):
    wetness = np.linspace(wettest, driest, n)
    tan_beta = np.linspace(0.01, 0.05, n)
    difference = np.linspace(0.0, 0.02, n)
    elevation = base_elevation + 0.5 * np.arange(n)
    return wetness, tan_beta, difference, elevation


def _empty():
    return np.array([]), np.array([]), np.array([]), np.array([])


class TestLakeDepth:
    """Tests for the depth-area regression."""

    def test_linear_branch_just_below_breakpoint(self):
        assert lake_depth(40.9) == pytest.approx(7.04 - 0.07 * 40.9)

    def test_constant_branch_just_above_breakpoint(self):
        assert lake_depth(41.0) == pytest.approx(4.17)

    def test_non_positive_depth_rejected(self):
        regression = LakeDepthRegression(intercept=1.0, slope=-1.0, breakpoint_km2=100.0)
        with pytest.raises(ConfigError, match="non-positive"):
            lake_depth(5.0, regression)


class TestWetlandBinCount:
    """Tests for wetland_bin_count."""

    def test_minimum_applies(self):
        assert wetland_bin_count(0.2) == 5

    def test_large_fraction_needs_more_bins(self):
        assert wetland_bin_count(0.5) == 6

    def test_no_wetland_no_bins(self):
        assert wetland_bin_count(0.0) == 0


class TestParseOutputFormat:
    """Tests for parse_output_format."""

    def test_known_flags(self):
        assert parse_output_format("SEA") is OutputFormat.SEA
        assert parse_output_format("LAKE") is OutputFormat.LAKE
        assert OutputFormat.SEA.flag == 0
        assert OutputFormat.LAKE.flag == 1

    @pytest.mark.parametrize("flag", ["FOO", "sea", "", "LAKES"])
    def test_unknown_flags(self, flag):
        with pytest.raises(UnknownFormatError):
            parse_output_format(flag)


class TestAggregateWetlandOnly:
    """Wetland-only grids: no lake bins."""

    def test_five_equal_bins(self):
        """20 wetland cells out of 100 fill the minimum 5 bins of 4% each."""
        record = aggregate_profile(
            *_wetland_population(20),
            water_fraction=0.0,
            wetland_fraction=0.2,
            valid_count=100,
            cell_area_m2=900.0,
            output_format="LAKE",
            grid_id="17",
        )

        assert len(record.bins) == 5
        assert [b.area_fraction for b in record.bins] == pytest.approx([0.04] * 5)
        assert [b.cell_count for b in record.bins] == [4] * 5
        assert record.cumulative_area == pytest.approx(0.2)
        assert record.lake_depth == 0.0

    def test_lake_lines(self):
        record = aggregate_profile(
            *_wetland_population(20),
            water_fraction=0.0,
            wetland_fraction=0.2,
            valid_count=100,
            cell_area_m2=900.0,
            output_format="LAKE",
            grid_id="17",
        )

        header, data = record.lines()
        assert header == "17 1 5 0.010 0.01 0.010 1.0"
        # Elevation of the bin's last cell above the lowest wetland cell, highest first
        assert data == "9.500 0.20000 7.500 0.16000 5.500 0.12000 3.500 0.08000 1.500 0.04000"

    def test_sea_elevations_rise_with_dryness(self):
        config = ProfileConfig()
        record = aggregate_profile(
            *_wetland_population(20),
            water_fraction=0.0,
            wetland_fraction=0.2,
            valid_count=100,
            cell_area_m2=900.0,
            output_format=OutputFormat.SEA,
            grid_id="17",
            config=config,
        )

        elevations = [b.profile_elevation for b in record.bins]
        assert elevations == sorted(elevations)
        assert elevations[-1] == pytest.approx(2.0 * 200000.0 / config.water_threshold)

        header, data = record.lines()
        assert header.startswith("17 0 5 ")
        assert len(data.split()) == 5 * 4

    def test_sea_uniform_wetness_spreads_by_position(self):
        wetness = np.full(10, 20000.0)
        record = aggregate_profile(
            wetness, np.full(10, 0.02), np.zeros(10), np.arange(10.0),
            water_fraction=0.0,
            wetland_fraction=0.1,
            valid_count=100,
            cell_area_m2=900.0,
            output_format="SEA",
            grid_id="3",
        )

        elevation_range = 2.0 * 20000.0 / ProfileConfig().water_threshold
        expected = [elevation_range * (k + 1) / 5 for k in range(5)]
        assert [b.profile_elevation for b in record.bins] == pytest.approx(expected)

    def test_fewer_cells_than_bins_keeps_five_bins(self):
        """Three wetland cells still fill five bins; repeated positions stay empty."""
        record = aggregate_profile(
            *_wetland_population(3),
            water_fraction=0.0,
            wetland_fraction=0.03,
            valid_count=100,
            cell_area_m2=900.0,
            output_format="LAKE",
            grid_id="5",
        )

        assert len(record.bins) == 5
        assert record.header_line().startswith("5 1 5 ")
        # Bins close at ceil(k * 3 / 5) = 1, 2, 2, 3, 3
        assert [b.cell_count for b in record.bins] == [1, 1, 0, 1, 0]
        assert [b.cumulative_area for b in record.bins] == pytest.approx(
            [0.01, 0.02, 0.02, 0.03, 0.03]
        )
        assert record.bins[2].profile_elevation == record.bins[1].profile_elevation
        assert record.cumulative_area == pytest.approx(0.03)

    def test_fewer_cells_than_bins_sea_profile_monotone(self):
        record = aggregate_profile(
            *_wetland_population(2),
            water_fraction=0.0,
            wetland_fraction=0.02,
            valid_count=100,
            cell_area_m2=900.0,
            output_format="SEA",
            grid_id="6",
        )

        elevations = [b.profile_elevation for b in record.bins]
        assert len(record.bins) == 5
        assert elevations == sorted(elevations)
        assert not np.isnan(elevations).any()

    def test_wetland_fraction_without_cells_rejected(self):
        with pytest.raises(ValueError, match="without wetland cells"):
            aggregate_profile(
                *_empty(),
                water_fraction=0.0,
                wetland_fraction=0.02,
                valid_count=100,
                cell_area_m2=900.0,
                output_format="LAKE",
                grid_id="6",
            )

    def test_uneven_split_closes_on_cumulative_targets(self):
        """Seven cells in five bins: bins close at ceil(k * 7 / 5) cells."""
        record = aggregate_profile(
            *_wetland_population(7),
            water_fraction=0.0,
            wetland_fraction=0.07,
            valid_count=100,
            cell_area_m2=900.0,
            output_format="LAKE",
            grid_id="5",
        )

        assert [b.cell_count for b in record.bins] == [2, 1, 2, 1, 1]
        assert record.cumulative_area == pytest.approx(0.07)


class TestAggregateWithLake:
    """Grids with open water get lake bins below the wetland bins."""

    @pytest.mark.parametrize("area_km2, depth", [
        (40.9, 7.04 - 0.07 * 40.9),
        (41.0, 4.17),
    ])
    def test_depth_branches(self, area_km2, depth):
        # 5 water cells out of 100
        cell_area = area_km2 * 1e6 / 5
        record = aggregate_profile(
            *_empty(),
            water_fraction=0.05,
            wetland_fraction=0.0,
            valid_count=100,
            cell_area_m2=cell_area,
            output_format="LAKE",
            grid_id="9",
        )

        assert record.lake_depth == pytest.approx(depth)
        assert len(record.bins) == 4
        assert [b.kind for b in record.bins] == ["lake"] * 4

    def test_lake_bins_follow_square_root_of_depth(self):
        record = aggregate_profile(
            *_empty(),
            water_fraction=0.05,
            wetland_fraction=0.0,
            valid_count=100,
            cell_area_m2=900.0,
            output_format="LAKE",
            grid_id="9",
        )

        depth = record.lake_depth
        assert [b.bathymetry for b in record.bins] == pytest.approx(
            [depth / 4, depth / 2, 3 * depth / 4, depth]
        )
        assert [b.cumulative_area for b in record.bins] == pytest.approx(
            [0.05 * np.sqrt(i / 4) for i in range(1, 5)]
        )
        assert record.cumulative_area == pytest.approx(0.05)

        header, data = record.lines()
        assert header == f"9 1 4 {depth + 0.01:.3f} 0.01 {depth + 0.01:.3f} 1.0"
        assert data.split()[:2] == [f"{depth:.3f}", "0.05000"]

    def test_wetland_bins_sit_on_lake_depth(self):
        record = aggregate_profile(
            *_wetland_population(20),
            water_fraction=0.05,
            wetland_fraction=0.2,
            valid_count=100,
            cell_area_m2=900.0,
            output_format="LAKE",
            grid_id="11",
        )

        lake = [b for b in record.bins if b.kind == "lake"]
        wetland = [b for b in record.bins if b.kind == "wetland"]
        assert len(lake) == 4
        assert len(wetland) == 5
        assert wetland[0].bathymetry == pytest.approx(record.lake_depth + 1.5)
        assert wetland[0].cumulative_area == pytest.approx(0.09)
        assert record.cumulative_area == pytest.approx(0.25)

    def test_sea_lake_bins_carry_wettest_cell_attributes(self):
        wetness, tan_beta, difference, elevation = _wetland_population(20)
        record = aggregate_profile(
            wetness, tan_beta, difference, elevation,
            water_fraction=0.05,
            wetland_fraction=0.2,
            valid_count=100,
            cell_area_m2=900.0,
            output_format="SEA",
            grid_id="11",
        )

        for b in record.bins[:4]:
            assert b.wetness_index == pytest.approx(wetness[0])
            assert b.tan_beta == pytest.approx(tan_beta[0])
        assert len(record.data_line().split()) == 9 * 4


class TestAggregateEdgeCases:
    """Zero-bin records, area conservation and argument checks."""

    @pytest.mark.parametrize("fmt, header, data", [
        ("LAKE", "7 1 1 0.000 0.01 0.000 1.0", "0.0 0.0"),
        ("SEA", "7 0 1 0.000 0.01 0.000 1.0", "0.0 0.0 0.0 0.0"),
    ])
    def test_no_lake_no_wetland(self, fmt, header, data):
        record = aggregate_profile(
            *_empty(),
            water_fraction=0.0,
            wetland_fraction=0.0,
            valid_count=100,
            cell_area_m2=900.0,
            output_format=fmt,
            grid_id="7",
        )

        assert record.bins == []
        assert record.lines() == [header, data]
        assert str(record) == f"{header}\n{data}"

    def test_area_mismatch_raises(self):
        """A wetland fraction the cells cannot account for is an error."""
        with pytest.raises(AreaConservationError) as exc_info:
            aggregate_profile(
                *_wetland_population(20),
                water_fraction=0.0,
                wetland_fraction=0.25,
                valid_count=100,
                cell_area_m2=900.0,
                output_format="LAKE",
                grid_id="1",
            )

        assert exc_info.value.exit_code == 4
        assert exc_info.value.discrepancy == pytest.approx(-0.05)

    def test_unknown_format_raises(self):
        with pytest.raises(UnknownFormatError):
            aggregate_profile(
                *_empty(),
                water_fraction=0.0,
                wetland_fraction=0.0,
                valid_count=100,
                cell_area_m2=900.0,
                output_format="FOO",
                grid_id="1",
            )

    def test_mismatched_arrays_rejected(self):
        wetness, tan_beta, difference, elevation = _wetland_population(5)
        with pytest.raises(ValueError, match="same length"):
            aggregate_profile(
                wetness, tan_beta[:3], difference, elevation,
                water_fraction=0.0,
                wetland_fraction=0.05,
                valid_count=100,
                cell_area_m2=900.0,
                output_format="LAKE",
                grid_id="1",
            )


class TestLakeParameterRecord:
    """Tests for record formatting helpers."""

    def test_empty_record_bin_count_is_one(self):
        record = LakeParameterRecord(grid_id="1", output_format=OutputFormat.LAKE)
        assert record.bin_count == 1
        assert record.cumulative_area == 0.0
