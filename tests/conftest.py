"""Shared test fixtures for the sstrend test suite."""

from __future__ import annotations

import numpy as np
import pytest
import xarray as xr

from sstrend._types import ObservationGrid
from sstrend.config import Config

# 3x3 grid, 5 evenly spaced steps (30 days apart).
N_STEPS = 5
STEP_DAYS = 30
LINEAR_SERIES = [10.0, 10.2, 10.4, 10.6, 10.8]
SPARSE_SERIES = [np.nan, np.nan, 10.0, np.nan, np.nan]
CONSTANT_VALUE = 15.0


@pytest.fixture
def test_config() -> Config:
    """Config with no crop limits, no time offset and a serial run."""
    return Config(
        xmin=-180.0,
        xmax=180.0,
        ymin=-90.0,
        ymax=90.0,
        start_date=None,
        end_date=None,
        time_offset_hours=0.0,
    )


@pytest.fixture
def monthly_times() -> np.ndarray:
    """Five timestamps 30 days apart starting 2000-01-01."""
    start = np.datetime64("2000-01-01T00:00:00", "ns")
    return start + np.arange(N_STEPS) * np.timedelta64(STEP_DAYS, "D")


@pytest.fixture
def celsius_values() -> np.ndarray:
    """(time, lat, lon) Celsius cube for the end-to-end scenario.

    Cell (0, 0) has a single valid reading, cell (0, 1) is never observed,
    cell (1, 1) rises linearly and every other cell is constant.
    """
    values = np.full((N_STEPS, 3, 3), CONSTANT_VALUE, dtype=np.float64)
    values[:, 0, 0] = SPARSE_SERIES
    values[:, 0, 1] = np.nan
    values[:, 1, 1] = LINEAR_SERIES
    return values


@pytest.fixture
def scenario_grid(celsius_values: np.ndarray, monthly_times: np.ndarray) -> ObservationGrid:
    """Celsius ``ObservationGrid`` for the end-to-end scenario."""
    return ObservationGrid(
        values=celsius_values,
        times=monthly_times,
        lat=np.array([12.0, 11.0, 10.0]),
        lon=np.array([-80.0, -79.0, -78.0]),
        attrs={"variable": "sst"},
    )


@pytest.fixture
def kelvin_dataset(celsius_values: np.ndarray, monthly_times: np.ndarray) -> xr.Dataset:
    """The scenario cube in Kelvin, 0..360 longitudes, -999 for missing."""
    kelvin = celsius_values + 273.15
    kelvin[np.isnan(kelvin)] = -999.0
    seconds = (monthly_times - np.datetime64("1970-01-01T00:00:00", "ns")) / np.timedelta64(
        1, "s"
    )
    return xr.Dataset(
        {"sst": (("time", "lat", "lon"), kelvin, {"units": "kelvin"})},
        coords={
            "time": ("time", seconds, {"units": "seconds since 1970-01-01 00:00:00"}),
            "lat": [12.0, 11.0, 10.0],
            "lon": [280.0, 281.0, 282.0],
        },
    )
