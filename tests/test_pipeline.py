"""
End-to-end tests for LakeParamPipeline and the batch runner.
"""

from pathlib import Path

import pytest
import numpy as np
import rasterio

from src.wetland.errors import (
    DemFormatError,
    DemNotFoundError,
    NoValidDataError,
    UnknownFormatError,
)
from src.wetland.grid_io import DemGrid
from src.wetland.pipeline import (
    EXPORTED_GRIDS,
    LakeParamPipeline,
    OutputFormat,
    read_batch_file,
    run_batch,
    write_grids,
)
from src.wetland.settings import ProfileConfig


@pytest.fixture
def projected():
    return LakeParamPipeline(ProfileConfig(geographic=False))


class TestLakeParamPipelineRun:
    """Tests for LakeParamPipeline.run."""

    def test_record_conserves_area(self, projected, valley_dem):
        dem = DemGrid.from_array(valley_dem, cellsize=30.0)

        result = projected.run(dem, "42", "LAKE")
        record = result.record

        assert record.grid_id == "42"
        assert record.output_format is OutputFormat.LAKE
        assert record.valid_count == valley_dem.size
        assert record.cumulative_area == pytest.approx(
            record.water_fraction + record.wetland_fraction, abs=1e-5
        )
        header, data = record.lines()
        assert header.split()[:3] == ["42", "1", str(record.bin_count)]
        assert len(data.split()) == 2 * record.bin_count
        assert result.dx == result.dy == 30.0
        assert result.cell_area_m2 == 900.0

    def test_low_thresholds_produce_wetland_and_water(self, valley_dem):
        pipeline = LakeParamPipeline(
            ProfileConfig(geographic=False, wetland_threshold=50.0, water_threshold=3000.0)
        )
        dem = DemGrid.from_array(valley_dem, cellsize=30.0)

        result = pipeline.run(dem, "1", "SEA")
        record = result.record

        # Every cell sits on the tan-beta floor, so every cell clears 50
        assert record.water_fraction + record.wetland_fraction == pytest.approx(1.0)
        assert record.bins
        assert len(record.data_line().split()) == 4 * record.bin_count

    def test_geographic_cells_narrower_than_tall(self, valley_dem):
        dem = DemGrid.from_array(valley_dem, cellsize=0.001, xllcorner=10.0, yllcorner=45.0)

        result = LakeParamPipeline().run(dem, "7", "LAKE")

        assert result.dx < result.dy
        assert result.dy == pytest.approx(6371.0e3 * np.radians(0.001), rel=1e-4)

    def test_nodata_cells_excluded(self, projected, valley_dem):
        data = valley_dem.copy()
        data[:3, :3] = -9999.0
        dem = DemGrid.from_array(data, cellsize=30.0)

        result = projected.run(dem, "8", "LAKE", keep_grids=True)

        assert result.record.valid_count == data.size - 9
        assert np.all(result.grids["flow_accumulation"][:3, :3] == 0.0)
        assert np.all(result.grids["classes"][:3, :3] == -1)

    def test_all_nodata_raises(self, projected):
        dem = DemGrid.from_array(np.full((5, 5), -9999.0), cellsize=30.0)

        with pytest.raises(NoValidDataError, match="No valid data in current cell: 3") as exc_info:
            projected.run(dem, "3", "LAKE")
        assert exc_info.value.exit_code == 1

    def test_unknown_format_raises(self, projected, valley_dem):
        dem = DemGrid.from_array(valley_dem, cellsize=30.0)
        with pytest.raises(UnknownFormatError):
            projected.run(dem, "1", "FOO")

    def test_grids_only_kept_on_request(self, projected, valley_dem):
        dem = DemGrid.from_array(valley_dem, cellsize=30.0)

        assert projected.run(dem, "1", "LAKE").grids == {}

        grids = projected.run(dem, "1", "LAKE", keep_grids=True).grids
        for name in EXPORTED_GRIDS + ("valid", "elevation", "tan_beta", "flow_fractions"):
            assert name in grids
        assert grids["flow_fractions"].shape == (8,) + valley_dem.shape

    def test_deterministic(self, projected, valley_dem):
        dem = DemGrid.from_array(valley_dem, cellsize=30.0)
        first = projected.run(dem, "1", "SEA").record.lines()
        second = projected.run(dem, "1", "SEA").record.lines()
        assert first == second


class TestLakeParamPipelineRunFile:
    """Tests for LakeParamPipeline.run_file."""

    def test_runs_ascii_grid(self, projected, valley_asc):
        result = projected.run_file(valley_asc, "12", "LAKE")
        assert result.record.lines()[0].startswith("12 1 ")

    def test_format_checked_before_reading(self, projected, tmp_path):
        with pytest.raises(UnknownFormatError):
            projected.run_file(tmp_path / "missing.asc", "1", "FOO")

    def test_missing_file(self, projected, tmp_path):
        with pytest.raises(DemNotFoundError):
            projected.run_file(tmp_path / "missing.asc", "1", "LAKE")


class TestBatch:
    """Tests for read_batch_file and run_batch."""

    def test_read_batch_file(self, tmp_path, valley_asc):
        batch = tmp_path / "cells.txt"
        batch.write_text(f"# grids\n\n{valley_asc.name} 1\n/abs/path.asc 2\n")

        jobs = read_batch_file(batch)

        assert jobs == [(tmp_path / valley_asc.name, "1"), (Path("/abs/path.asc"), "2")]

    def test_malformed_batch_line(self, tmp_path):
        batch = tmp_path / "cells.txt"
        batch.write_text("only_one_field\n")
        with pytest.raises(DemFormatError, match="expected"):
            read_batch_file(batch)

    def test_failed_grids_skipped(self, projected, tmp_path, valley_asc):
        jobs = [(valley_asc, "1"), (tmp_path / "missing.asc", "2"), (valley_asc, "3")]

        results = run_batch(jobs, "LAKE", projected)

        assert [r.grid_id for r in results] == ["1", "3"]

    def test_results_yielded_one_grid_at_a_time(self, projected, valley_asc, monkeypatch):
        calls = []
        run_file = projected.run_file

        def counting_run_file(path, grid_id, *args, **kwargs):
            calls.append(grid_id)
            return run_file(path, grid_id, *args, **kwargs)

        monkeypatch.setattr(projected, "run_file", counting_run_file)
        results = run_batch([(valley_asc, "1"), (valley_asc, "2")], "LAKE", projected)

        assert calls == []
        assert next(results).grid_id == "1"
        assert calls == ["1"]
        assert next(results).grid_id == "2"
        assert calls == ["1", "2"]
        with pytest.raises(StopIteration):
            next(results)

    def test_batch_rejects_unknown_format(self, valley_asc):
        with pytest.raises(UnknownFormatError):
            run_batch([(valley_asc, "1")], "FOO")


class TestWriteGrids:
    """Tests for write_grids."""

    def test_writes_geotiffs(self, projected, valley_dem, tmp_path):
        dem = DemGrid.from_array(valley_dem, cellsize=30.0)
        result = projected.run(dem, "5", "LAKE", keep_grids=True)

        paths = write_grids(result, tmp_path / "grids")

        assert [p.name for p in paths] == [f"5_{name}.tif" for name in EXPORTED_GRIDS]
        with rasterio.open(tmp_path / "grids" / "5_classes.tif") as src:
            assert src.dtypes[0] == "int16"
            assert src.nodata == -1
        with rasterio.open(tmp_path / "grids" / "5_wetness_index.tif") as src:
            np.testing.assert_allclose(src.read(1), result.grids["wetness_index"])

    def test_requires_grids(self, projected, valley_dem, tmp_path):
        result = projected.run(DemGrid.from_array(valley_dem, cellsize=30.0), "5", "LAKE")
        with pytest.raises(ValueError, match="keep_grids"):
            write_grids(result, tmp_path)
