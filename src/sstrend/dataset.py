"""NetCDF loading, cropping, and write-back of SST grids.

Time coordinates stored as "seconds since <epoch>" are decoded by xarray
into ``datetime64`` values. Longitudes in the 0..360 convention are
shifted to [-180, 180] before the bounding box is applied.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import xarray as xr

from sstrend._types import ObservationGrid
from sstrend.exceptions import ConfigurationError, DataFileError, MalformedInputError

if TYPE_CHECKING:
    from sstrend.config import Config

logger = logging.getLogger(__name__)

_LAT_NAMES: tuple[str, ...] = ("lat", "latitude", "y")
_LON_NAMES: tuple[str, ...] = ("lon", "longitude", "x")
_TIME_NAMES: tuple[str, ...] = ("time", "valid_time", "t")


def _find_dim(ds: xr.Dataset, candidates: tuple[str, ...], kind: str) -> str:
    """Return the first of *candidates* present as a dimension of *ds*."""
    for name in candidates:
        if name in ds.dims:
            return name
    raise MalformedInputError(
        what=f"Dataset has no {kind} dimension",
        cause=f"Dimensions are {list(ds.dims)}, expected one of {list(candidates)}",
        fix=f"Rename the {kind} dimension to '{candidates[0]}'",
    )


def _select_variable(ds: xr.Dataset, variable: str | None) -> str:
    """Pick the SST variable: the configured one, else the first 3D variable."""
    if variable is not None:
        if variable not in ds.data_vars:
            raise ConfigurationError(
                what="Variable not found in dataset",
                cause=f"No data variable named {variable!r}",
                fix=f"Pass one of: {', '.join(map(str, ds.data_vars))}",
            )
        return variable
    for name, da in ds.data_vars.items():
        if da.ndim == 3:
            return str(name)
    raise MalformedInputError(
        what="Dataset has no three-dimensional variable",
        cause=f"Data variables: {list(ds.data_vars)}",
        fix="Set Config.variable to the SST variable name",
    )


def _check_time_decoded(ds: xr.Dataset, time_name: str) -> None:
    """Require a ``datetime64`` time coordinate.

    Raises:
        MalformedInputError: If xarray left the coordinate numeric or
            decoded it to ``cftime`` objects.
    """
    coord = ds[time_name]
    if np.issubdtype(coord.dtype, np.datetime64):
        return
    units = coord.attrs.get("units") or coord.encoding.get("units", "unknown")
    calendar = coord.attrs.get("calendar") or coord.encoding.get("calendar", "standard")
    raise MalformedInputError(
        what="Time coordinate is not decoded to datetimes",
        cause=f"dtype {coord.dtype}, units {units!r}, calendar {calendar!r}",
        fix="Use 'seconds since <epoch>' units on a standard calendar",
    )


def normalize_longitude(ds: xr.Dataset, lon_name: str = "lon") -> xr.Dataset:
    """Shift longitudes above 180 by -360 and re-sort along longitude.

    Example:
        >>> ds = xr.Dataset(coords={"lon": [0.0, 90.0, 270.0]})
        >>> normalize_longitude(ds)["lon"].values.tolist()
        [-90.0, 0.0, 90.0]
    """
    lon = ds[lon_name].values
    if not np.any(lon > 180):
        return ds
    shifted = np.where(lon > 180, lon - 360, lon)
    return ds.assign_coords({lon_name: shifted}).sortby(lon_name)


def crop_dataset(ds: xr.Dataset, config: Config) -> xr.Dataset:
    """Crop *ds* to the configured bounding box and inclusive date range.

    The configured hour offset is applied to the time coordinate before
    the date range is evaluated.

    Raises:
        MalformedInputError: If the time coordinate is not ``datetime64``
            or nothing is left after cropping.
    """
    lat_name = _find_dim(ds, _LAT_NAMES, "latitude")
    lon_name = _find_dim(ds, _LON_NAMES, "longitude")
    time_name = _find_dim(ds, _TIME_NAMES, "time")
    _check_time_decoded(ds, time_name)

    ds = normalize_longitude(ds, lon_name)

    if config.time_offset_hours:
        offset = np.timedelta64(int(round(config.time_offset_hours * 3600)), "s")
        ds = ds.assign_coords({time_name: ds[time_name] + offset})

    lat = ds[lat_name].values
    lon = ds[lon_name].values
    times = ds[time_name].values.astype("datetime64[ns]")

    lat_keep = (lat >= config.ymin) & (lat <= config.ymax)
    lon_keep = (lon >= config.xmin) & (lon <= config.xmax)
    time_keep = np.ones(times.shape, dtype=bool)
    if config.start_date is not None:
        time_keep &= times >= np.datetime64(config.start_date, "ns")
    if config.end_date is not None:
        end_exclusive = config.end_date + timedelta(days=1)
        time_keep &= times < np.datetime64(end_exclusive, "ns")

    cropped = ds.isel(
        {
            lat_name: np.flatnonzero(lat_keep),
            lon_name: np.flatnonzero(lon_keep),
            time_name: np.flatnonzero(time_keep),
        }
    )
    if any(cropped.sizes[d] == 0 for d in (lat_name, lon_name, time_name)):
        raise MalformedInputError(
            what="Crop left an empty grid",
            cause=(
                f"{int(lat_keep.sum())} rows, {int(lon_keep.sum())} columns and "
                f"{int(time_keep.sum())} time steps fall inside the requested window"
            ),
            fix="Check the bounding box and date range against the dataset extent",
        )

    logger.debug(
        "Cropped to %d time steps x %d rows x %d columns",
        cropped.sizes[time_name],
        cropped.sizes[lat_name],
        cropped.sizes[lon_name],
    )
    return cropped


def grid_from_dataset(ds: xr.Dataset, config: Config) -> ObservationGrid:
    """Crop *ds* and extract the SST variable as an ``ObservationGrid``."""
    variable = _select_variable(ds, config.variable)
    cropped = crop_dataset(ds, config)
    lat_name = _find_dim(cropped, _LAT_NAMES, "latitude")
    lon_name = _find_dim(cropped, _LON_NAMES, "longitude")
    time_name = _find_dim(cropped, _TIME_NAMES, "time")

    da = cropped[variable]
    if set(da.dims) != {time_name, lat_name, lon_name}:
        raise MalformedInputError(
            what=f"Variable {variable!r} is not a (time, lat, lon) grid",
            cause=f"Its dimensions are {da.dims}",
            fix="Select a variable defined on time, latitude and longitude",
        )
    da = da.transpose(time_name, lat_name, lon_name)

    attrs = {str(k): v for k, v in da.attrs.items()}
    attrs["variable"] = variable
    attrs["time_offset_hours"] = config.time_offset_hours
    return ObservationGrid(
        values=np.asarray(da.values, dtype=np.float64),
        times=np.asarray(cropped[time_name].values).astype("datetime64[ns]"),
        lat=np.asarray(cropped[lat_name].values, dtype=np.float64),
        lon=np.asarray(cropped[lon_name].values, dtype=np.float64),
        attrs=attrs,
    )


def load_grid(path: str | Path, config: Config) -> ObservationGrid:
    """Open a netCDF SST dataset and return the cropped grid.

    Args:
        path: Path to the netCDF file.
        config: Supplies the variable name, crop window, and engine.

    Returns:
        ``ObservationGrid`` with values shaped ``(time, lat, lon)``.

    Raises:
        DataFileError: If the file is missing or cannot be parsed.
        MalformedInputError: If required dimensions are absent or the
            crop window is empty.
    """
    resolved = Path(path).expanduser()
    if not resolved.exists():
        raise DataFileError(
            what="Cannot open SST dataset",
            cause=f"File not found: {resolved}",
            fix="Check the input path",
        )

    logger.info("Loading %s", resolved)
    try:
        ds = xr.open_dataset(resolved, engine=config.netcdf_engine)
    except (OSError, ValueError) as exc:
        raise DataFileError(
            what="Cannot parse SST dataset",
            cause=f"{type(exc).__name__}: {exc}",
            fix=f"Check that {resolved.name} is a netCDF file readable by "
            f"the {config.netcdf_engine!r} engine",
        ) from exc

    with ds:
        grid = grid_from_dataset(ds, config)

    logger.info(
        "Loaded %s grid of shape %s (%s to %s)",
        grid.attrs.get("variable"),
        grid.shape,
        np.datetime_as_string(grid.times[0], unit="D"),
        np.datetime_as_string(grid.times[-1], unit="D"),
    )
    return grid


def write_grid(
    grid: ObservationGrid,
    path: str | Path,
    name: str = "sst",
    engine: str = "h5netcdf",
) -> Path:
    """Write *grid* to netCDF with ``time``, ``lat`` and ``lon`` dimensions.

    An hour offset recorded by ``grid_from_dataset`` is removed again so
    the written timestamps match the source file.

    Raises:
        DataFileError: If the file cannot be written.
    """
    path = Path(path)
    attrs = {
        k: v for k, v in grid.attrs.items() if k not in ("variable", "time_offset_hours")
    }
    times = grid.times
    offset_hours = float(grid.attrs.get("time_offset_hours", 0.0))
    if offset_hours:
        times = times - np.timedelta64(int(round(offset_hours * 3600)), "s")
    da = xr.DataArray(
        grid.values,
        dims=("time", "lat", "lon"),
        coords={"time": times, "lat": grid.lat, "lon": grid.lon},
        name=name,
        attrs=attrs,
    )
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        da.to_dataset().to_netcdf(path, engine=engine)
    except (OSError, ValueError) as exc:
        raise DataFileError(
            what="Cannot write grid",
            cause=f"{type(exc).__name__}: {exc}",
            fix=f"Check that {path.parent} is writable",
        ) from exc
    logger.debug("Wrote %s grid to %s", name, path)
    return path
