"""Grid-level orchestration of the per-cell regression.

Validates the structural preconditions of a run, then maps
``fit_ar1_gls`` over every spatial cell. Cells are independent: rows are
dispatched to a process pool when ``Config.workers > 1`` and the layers
are filled by row index once every row has returned.
"""

from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import TYPE_CHECKING, Any

import numpy as np
import numpy.typing as npt

from sstrend._types import FitStatus, TrendLayers
from sstrend.analysis.regression import fit_ar1_gls
from sstrend.exceptions import MalformedInputError

if TYPE_CHECKING:
    from sstrend.config import Config

logger = logging.getLogger(__name__)

# Share of undefined cells above which a warning is logged.
_UNDEFINED_WARN_RATIO: float = 0.5


# ── Input validation ───────────────────────────────────────────────


def _times_to_seconds(
    times: npt.ArrayLike,
) -> npt.NDArray[np.float64]:
    """Convert timestamps to float seconds since the Unix epoch.

    Numeric input is assumed to already be in seconds.
    """
    arr = np.asarray(times)
    if np.issubdtype(arr.dtype, np.datetime64):
        delta = arr.astype("datetime64[ns]") - np.datetime64("1970-01-01T00:00:00", "ns")
        seconds: npt.NDArray[np.float64] = delta / np.timedelta64(1, "s")
        return seconds
    if np.issubdtype(arr.dtype, np.number):
        return arr.astype(np.float64)
    raise MalformedInputError(
        what="Time axis has an unsupported type",
        cause=f"Expected datetime64 or numeric seconds, got dtype {arr.dtype}",
        fix="Decode the time coordinate before running the regression",
    )


def _validate_inputs(
    values: npt.NDArray[np.floating[Any]],
    seconds: npt.NDArray[np.float64],
) -> None:
    """Check grid/time alignment before any cell is fitted.

    Raises:
        MalformedInputError: If the grid is not 3D, its time dimension
            does not match the time axis, or the time axis is not
            strictly increasing.
    """
    if values.ndim != 3:
        raise MalformedInputError(
            what="Observation grid must be three-dimensional",
            cause=f"Got an array with shape {values.shape}",
            fix="Pass a (time, lat, lon) array",
        )
    if values.shape[0] == 0:
        raise MalformedInputError(
            what="Observation grid has no time steps",
            fix="Widen the date range of the run",
        )
    if seconds.ndim != 1 or seconds.shape[0] != values.shape[0]:
        raise MalformedInputError(
            what="Time axis does not match the grid",
            cause=(
                f"Grid has {values.shape[0]} time steps, "
                f"time axis has shape {seconds.shape}"
            ),
            fix="Crop the grid and the time axis with the same time indices",
        )
    if not np.all(np.isfinite(seconds)):
        raise MalformedInputError(
            what="Time axis contains missing timestamps",
            fix="Drop time steps with undefined timestamps",
        )
    steps = np.diff(seconds)
    if np.any(steps <= 0):
        bad = int(np.argmax(steps <= 0)) + 1
        raise MalformedInputError(
            what="Time axis is not strictly increasing",
            cause=f"Timestamp at index {bad} is not after index {bad - 1}",
            fix="Sort the dataset by time and drop duplicate steps",
        )


# ── Per-row worker ─────────────────────────────────────────────────


def _fit_row(
    args: tuple[int, npt.NDArray[np.float64], npt.NDArray[np.float64], int],
) -> tuple[int, npt.NDArray[np.float64]]:
    """Fit every cell of one grid row.

    Top-level so it can be pickled by ``ProcessPoolExecutor``.

    Returns:
        The row index and a ``(lon, 5)`` array of slope, p-value, phi,
        status and observation count per cell.
    """
    row_idx, row_data, seconds, min_observations = args
    n_cols = row_data.shape[1]
    out = np.full((n_cols, 5), np.nan, dtype=np.float64)
    for col in range(n_cols):
        res = fit_ar1_gls(seconds, row_data[:, col], min_observations=min_observations)
        out[col] = (res.slope, res.p_value, res.phi, int(res.status), res.n_obs)
    return row_idx, out


def _store_row(layers: TrendLayers, row_idx: int, out: npt.NDArray[np.float64]) -> None:
    layers.slope[row_idx] = out[:, 0]
    layers.p_value[row_idx] = out[:, 1]
    layers.phi[row_idx] = out[:, 2]
    layers.status[row_idx] = out[:, 3].astype(np.int8)
    layers.n_obs[row_idx] = out[:, 4].astype(np.int32)


# ── Grid computation ───────────────────────────────────────────────


def compute_trend_layers(
    values: npt.ArrayLike,
    times: npt.ArrayLike,
    config: Config,
) -> TrendLayers:
    """Run the AR(1)-GLS trend fit on every cell of a ``(time, lat, lon)`` grid.

    Per-cell numerical failures are recorded as ``FitStatus`` codes with
    NaN estimates; only structural problems raise.

    Args:
        values: Celsius readings with NaN marking missing observations.
        times: ``datetime64`` timestamps or epoch seconds, one per step.
        config: Supplies ``min_observations`` and ``workers``.

    Returns:
        ``TrendLayers`` with slope per second and p-value per cell.

    Raises:
        MalformedInputError: If the grid and time axis are misaligned
            or the time axis is not strictly increasing.
    """
    grid = np.asarray(values, dtype=np.float64)
    seconds = _times_to_seconds(times)
    _validate_inputs(grid, seconds)

    n_rows, n_cols = grid.shape[1], grid.shape[2]
    layers = TrendLayers.empty((n_rows, n_cols))
    tasks = [
        (row, grid[:, row, :], seconds, config.min_observations)
        for row in range(n_rows)
    ]

    logger.info(
        "Fitting %d cells (%d time steps) with %d worker(s)",
        n_rows * n_cols,
        grid.shape[0],
        config.workers,
    )

    if config.workers == 1 or n_rows <= 1:
        for task in tasks:
            row_idx, out = _fit_row(task)
            _store_row(layers, row_idx, out)
            logger.debug("Row %d/%d done", row_idx + 1, n_rows)
    else:
        with ProcessPoolExecutor(max_workers=config.workers) as executor:
            futures = [executor.submit(_fit_row, task) for task in tasks]
            for done, future in enumerate(as_completed(futures), start=1):
                row_idx, out = future.result()
                _store_row(layers, row_idx, out)
                logger.debug("Row %d done (%d/%d)", row_idx, done, n_rows)

    _log_summary(layers)
    return layers


def _log_summary(layers: TrendLayers) -> None:
    """Log how many cells ended in each ``FitStatus``."""
    total = layers.status.size
    counts = {s.name: int(np.count_nonzero(layers.status == s)) for s in FitStatus}
    logger.info(
        "Regression finished: %d ok, %d insufficient data, %d singular",
        counts["OK"],
        counts["INSUFFICIENT_DATA"],
        counts["SINGULAR_FIT"],
    )
    undefined = total - counts["OK"]
    if total and undefined / total > _UNDEFINED_WARN_RATIO:
        logger.warning(
            "%d of %d cells have no defined trend",
            undefined,
            total,
        )
