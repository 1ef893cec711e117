"""Missing-value masking and unit conversion.

Pure computation module: numpy arrays in, numpy arrays out. Inputs are
never modified in place.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import numpy as np
import numpy.typing as npt

from sstrend._types import CleanedGrids, ObservationGrid

if TYPE_CHECKING:
    from sstrend.config import Config

logger = logging.getLogger(__name__)

KELVIN_OFFSET: float = 273.15


def mask_missing(
    values: npt.ArrayLike,
    threshold: float = -54.0,
) -> npt.NDArray[np.float64]:
    """Replace sentinel readings with NaN.

    Pathfinder stores missing readings as -52; the threshold sits a little
    below it so that roundoff around the sentinel is still caught. Values
    strictly below *threshold* become NaN, everything else is kept.

    Parameters:
        values: Raw readings of any shape.
        threshold: Boundary below which a reading is missing.

    Returns:
        Float64 copy of *values* with missing readings set to NaN.

    Example:
        >>> mask_missing(np.array([-60.0, -53.9, 300.0]))
        array([   nan,  -53.9, 300. ])
    """
    arr = np.asarray(values, dtype=np.float64)
    with np.errstate(invalid="ignore"):
        masked: npt.NDArray[np.float64] = np.where(arr < threshold, np.nan, arr)
    return masked


def kelvin_to_celsius(
    values: npt.ArrayLike,
    decimals: int = 2,
    offset: float = KELVIN_OFFSET,
) -> npt.NDArray[np.float64]:
    """Convert Kelvin readings to Celsius rounded to *decimals* places.

    NaN propagates unchanged.

    Example:
        >>> kelvin_to_celsius(np.array([300.0, np.nan]))
        array([26.85,   nan])
    """
    arr = np.asarray(values, dtype=np.float64)
    celsius: npt.NDArray[np.float64] = np.round(arr - offset, decimals)
    return celsius


def preprocess(grid: ObservationGrid, config: Config) -> CleanedGrids:
    """Produce the masked-Kelvin and masked-Celsius versions of *grid*.

    Args:
        grid: Raw grid as loaded from disk.
        config: Supplies the missing threshold, Kelvin offset and rounding.

    Returns:
        ``CleanedGrids`` holding both conventions with shared coordinates.
    """
    kelvin = mask_missing(grid.values, config.missing_threshold)
    celsius = kelvin_to_celsius(kelvin, config.decimals, config.kelvin_offset)

    n_missing = int(np.count_nonzero(np.isnan(kelvin)))
    logger.info(
        "Masked %d of %d readings below %s",
        n_missing,
        kelvin.size,
        config.missing_threshold,
    )

    kelvin_attrs: dict[str, Any] = {"units": "kelvin"}
    celsius_attrs: dict[str, Any] = {"units": "degree_Celsius"}
    kelvin_grid = grid.with_values(kelvin)
    kelvin_grid.attrs.update(kelvin_attrs)
    celsius_grid = grid.with_values(celsius)
    celsius_grid.attrs.update(celsius_attrs)
    return CleanedGrids(kelvin=kelvin_grid, celsius=celsius_grid)
