"""Top-level functions for running the SST trend pipeline.

Example:
    >>> import sstrend
    >>> cfg = sstrend.Config(xmin=-90, xmax=-60, workers=4)
    >>> result = sstrend.run("pathfinder_monthly.nc", "out/", cfg)
    >>> result.slope_table().head()
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from sstrend._pipeline import compute_trend_layers
from sstrend._types import ObservationGrid
from sstrend.analysis.preprocess import preprocess
from sstrend.config import Config
from sstrend.dataset import load_grid, write_grid
from sstrend.exceptions import MalformedInputError
from sstrend.results import TrendMetadata, TrendResult

logger = logging.getLogger(__name__)


def compute_trends(
    grid: ObservationGrid,
    config: Config | None = None,
    source: str = "",
) -> TrendResult:
    """Fit the per-cell AR(1)-GLS trend on a Celsius grid.

    Args:
        grid: Preprocessed grid (NaN for missing readings).
        config: Run configuration; defaults to ``Config()``.
        source: Provenance string recorded in the metadata.

    Returns:
        ``TrendResult`` with slopes in °C per decade and p-values.

    Raises:
        MalformedInputError: If the grid, time axis and coordinates are
            misaligned.
    """
    config = config or Config()
    if grid.values.ndim == 3 and (
        grid.lat.shape[0] != grid.values.shape[1]
        or grid.lon.shape[0] != grid.values.shape[2]
    ):
        raise MalformedInputError(
            what="Coordinates do not match the grid",
            cause=(
                f"Grid has shape {grid.values.shape}, "
                f"lat has {grid.lat.shape[0]} and lon has {grid.lon.shape[0]} values"
            ),
            fix="Crop the coordinates with the same indices as the grid",
        )
    layers = compute_trend_layers(grid.values, grid.times, config)

    valid_mask = np.any(np.isfinite(grid.values), axis=0)
    metadata = TrendMetadata(
        source=source,
        variable=str(grid.attrs.get("variable", "")),
        period_start=str(np.datetime_as_string(grid.times[0], unit="s")),
        period_end=str(np.datetime_as_string(grid.times[-1], unit="s")),
        time_steps=int(grid.times.shape[0]),
        bounds=config.bbox,
    )
    return TrendResult.from_layers(
        layers,
        valid_mask=valid_mask,
        lat=grid.lat,
        lon=grid.lon,
        metadata=metadata,
        p_value_breaks=config.p_value_breaks,
        p_value_labels=config.p_value_labels,
    )


def run(
    input_path: str | Path,
    output_dir: str | Path,
    config: Config | None = None,
    prefix: str = "sst",
) -> TrendResult:
    """Run the full batch: load, clean, regress, aggregate, save.

    Writes ``{prefix}_masked_kelvin.nc`` and ``{prefix}_masked_celsius.nc``
    next to the slope and p-value tables in *output_dir*.

    Args:
        input_path: netCDF SST dataset.
        output_dir: Directory receiving every artifact.
        config: Run configuration; defaults to ``Config()``.
        prefix: File name prefix for the artifacts.

    Returns:
        The computed ``TrendResult``.

    Raises:
        DataFileError: If the input cannot be read or outputs written.
        MalformedInputError: If the dataset fails a structural check.
        ConfigurationError: If the configured variable is absent.
    """
    config = config or Config()
    out = Path(output_dir)

    raw = load_grid(input_path, config)
    cleaned = preprocess(raw, config)
    write_grid(cleaned.kelvin, out / f"{prefix}_masked_kelvin.nc", engine=config.netcdf_engine)
    write_grid(cleaned.celsius, out / f"{prefix}_masked_celsius.nc", engine=config.netcdf_engine)

    result = compute_trends(cleaned.celsius, config, source=str(input_path))
    result.save(out, prefix=prefix)
    logger.info("Run complete: %r", result)
    return result
