"""Tests for netCDF loading, cropping and grid write-back."""

from datetime import date
from pathlib import Path

import numpy as np
import numpy.testing as npt
import pytest
import xarray as xr

from sstrend._types import ObservationGrid
from sstrend.config import Config
from sstrend.dataset import (
    crop_dataset,
    grid_from_dataset,
    load_grid,
    normalize_longitude,
    write_grid,
)
from sstrend.exceptions import ConfigurationError, DataFileError, MalformedInputError


@pytest.fixture
def decoded(kelvin_dataset: xr.Dataset) -> xr.Dataset:
    """Scenario dataset with its time coordinate decoded."""
    return xr.decode_cf(kelvin_dataset)


@pytest.fixture
def nc_path(kelvin_dataset: xr.Dataset, tmp_path: Path) -> Path:
    path = tmp_path / "sst.nc"
    kelvin_dataset.to_netcdf(path, engine="h5netcdf")
    return path


# ── Longitude handling ────────────────────────────────────────────


@pytest.mark.unit
class TestNormalizeLongitude:
    """Tests for normalize_longitude()."""

    def test_shifts_and_sorts(self) -> None:
        ds = xr.Dataset(
            {"v": (("lon",), [1.0, 2.0, 3.0])},
            coords={"lon": [0.0, 90.0, 270.0]},
        )
        out = normalize_longitude(ds)
        assert out["lon"].values.tolist() == [-90.0, 0.0, 90.0]
        assert out["v"].values.tolist() == [3.0, 1.0, 2.0]

    def test_already_normalized_untouched(self) -> None:
        ds = xr.Dataset(coords={"lon": [-80.0, -79.0]})
        assert normalize_longitude(ds) is ds


# ── Cropping ──────────────────────────────────────────────────────


@pytest.mark.unit
class TestCropDataset:
    """Tests for crop_dataset()."""

    def test_full_window_keeps_everything(
        self, decoded: xr.Dataset, test_config: Config
    ) -> None:
        out = crop_dataset(decoded, test_config)
        assert dict(out.sizes) == {"time": 5, "lat": 3, "lon": 3}
        assert out["lon"].values.tolist() == [-80.0, -79.0, -78.0]

    def test_spatial_crop(self, decoded: xr.Dataset, test_config: Config) -> None:
        cfg = test_config.model_copy(update={"xmin": -79.5, "ymax": 11.5})
        out = crop_dataset(decoded, cfg)
        assert out["lon"].values.tolist() == [-79.0, -78.0]
        assert out["lat"].values.tolist() == [11.0, 10.0]

    def test_date_range_is_inclusive(self, decoded: xr.Dataset, test_config: Config) -> None:
        # Steps fall on 2000-01-01, 01-31, 03-01, 03-31, 04-30.
        cfg = test_config.model_copy(
            update={"start_date": date(2000, 1, 31), "end_date": date(2000, 3, 31)}
        )
        out = crop_dataset(decoded, cfg)
        days = np.datetime_as_string(out["time"].values, unit="D").tolist()
        assert days == ["2000-01-31", "2000-03-01", "2000-03-31"]

    def test_time_offset_applied(self, decoded: xr.Dataset, test_config: Config) -> None:
        cfg = test_config.model_copy(update={"time_offset_hours": 3.0})
        out = crop_dataset(decoded, cfg)
        assert out["time"].values[0] == np.datetime64("2000-01-01T03:00:00", "ns")

    def test_numeric_time_raises(self, kelvin_dataset: xr.Dataset, test_config: Config) -> None:
        cfg = test_config.model_copy(update={"time_offset_hours": 3.0})
        with pytest.raises(MalformedInputError, match="not decoded to datetimes"):
            crop_dataset(kelvin_dataset, cfg)

    def test_cftime_calendar_raises(
        self, kelvin_dataset: xr.Dataset, test_config: Config
    ) -> None:
        pytest.importorskip("cftime")
        ds = kelvin_dataset.copy()
        ds["time"].attrs["calendar"] = "noleap"
        noleap = xr.decode_cf(ds, use_cftime=True)
        assert noleap["time"].dtype == object

        with pytest.raises(MalformedInputError, match="not decoded to datetimes"):
            crop_dataset(noleap, test_config)

    def test_empty_crop_raises(self, decoded: xr.Dataset, test_config: Config) -> None:
        cfg = test_config.model_copy(update={"xmin": 0.0, "xmax": 10.0})
        with pytest.raises(MalformedInputError, match="empty grid"):
            crop_dataset(decoded, cfg)

    def test_missing_dimension_raises(self, test_config: Config) -> None:
        ds = xr.Dataset({"v": (("a", "b"), np.zeros((2, 2)))})
        with pytest.raises(MalformedInputError, match="no latitude dimension"):
            crop_dataset(ds, test_config)


# ── Grid extraction ───────────────────────────────────────────────


@pytest.mark.unit
class TestGridFromDataset:
    """Tests for grid_from_dataset()."""

    def test_first_3d_variable_selected(
        self, decoded: xr.Dataset, test_config: Config
    ) -> None:
        ds = decoded.assign(mask=(("lat", "lon"), np.ones((3, 3))))[["mask", "sst"]]
        grid = grid_from_dataset(ds, test_config)
        assert grid.attrs["variable"] == "sst"
        assert grid.shape == (5, 3, 3)

    def test_transposes_to_time_lat_lon(
        self, decoded: xr.Dataset, test_config: Config
    ) -> None:
        ds = decoded.transpose("lon", "time", "lat")
        grid = grid_from_dataset(ds, test_config)
        assert grid.shape == (5, 3, 3)
        npt.assert_allclose(grid.values[:, 1, 1] - 273.15, [10.0, 10.2, 10.4, 10.6, 10.8])

    def test_unknown_variable_raises(self, decoded: xr.Dataset, test_config: Config) -> None:
        cfg = test_config.model_copy(update={"variable": "analysed_sst"})
        with pytest.raises(ConfigurationError, match="Variable not found"):
            grid_from_dataset(decoded, cfg)

    def test_no_3d_variable_raises(self, test_config: Config) -> None:
        ds = xr.Dataset({"v": (("lat",), [1.0])}, coords={"lat": [1.0]})
        with pytest.raises(MalformedInputError, match="three-dimensional"):
            grid_from_dataset(ds, test_config)


# ── File I/O ──────────────────────────────────────────────────────


@pytest.mark.integration
class TestLoadGrid:
    """Tests for load_grid() on real netCDF files."""

    def test_load_decodes_seconds_since_epoch(self, nc_path: Path, test_config: Config) -> None:
        grid = load_grid(nc_path, test_config)

        assert grid.shape == (5, 3, 3)
        assert grid.times.dtype == np.dtype("datetime64[ns]")
        assert grid.times[0] == np.datetime64("2000-01-01T00:00:00", "ns")
        assert grid.lon.tolist() == [-80.0, -79.0, -78.0]
        assert grid.values[0, 0, 0] == -999.0

    def test_missing_file_raises(self, tmp_path: Path, test_config: Config) -> None:
        with pytest.raises(DataFileError, match="File not found"):
            load_grid(tmp_path / "absent.nc", test_config)

    def test_unparseable_file_raises(self, tmp_path: Path, test_config: Config) -> None:
        bad = tmp_path / "bad.nc"
        bad.write_bytes(b"not a netcdf file")
        with pytest.raises(DataFileError, match="Cannot parse"):
            load_grid(bad, test_config)


@pytest.mark.integration
class TestWriteGrid:
    """Tests for write_grid()."""

    def test_round_trip_dimensions(
        self, scenario_grid: ObservationGrid, tmp_path: Path, test_config: Config
    ) -> None:
        path = write_grid(scenario_grid, tmp_path / "out" / "celsius.nc", name="sst")

        reloaded = load_grid(path, test_config)
        assert reloaded.shape == scenario_grid.shape
        npt.assert_array_equal(reloaded.times, scenario_grid.times)
        npt.assert_allclose(reloaded.values, scenario_grid.values, equal_nan=True)

    def test_time_offset_removed_on_write(
        self, nc_path: Path, tmp_path: Path, test_config: Config
    ) -> None:
        cfg = test_config.model_copy(update={"time_offset_hours": 3.0})
        grid = load_grid(nc_path, cfg)
        assert grid.times[0] == np.datetime64("2000-01-01T03:00:00", "ns")

        path = write_grid(grid, tmp_path / "out" / "kelvin.nc")

        with xr.open_dataset(path, engine="h5netcdf") as written, xr.open_dataset(
            nc_path, engine="h5netcdf"
        ) as source:
            npt.assert_array_equal(written["time"].values, source["time"].values)
            assert "time_offset_hours" not in written["sst"].attrs

    def test_write_failure_raises(
        self, scenario_grid: ObservationGrid, tmp_path: Path
    ) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        with pytest.raises(DataFileError, match="Cannot write grid"):
            write_grid(scenario_grid, blocker / "grid.nc")
