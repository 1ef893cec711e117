"""Internal shared types for cross-boundary data contracts.

These types define the data shapes passed between the dataset loader,
preprocessor, regression engine, and aggregator.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import numpy.typing as npt


class FitStatus(enum.IntEnum):
    """Outcome of a single per-cell regression."""

    OK = 0
    INSUFFICIENT_DATA = 1
    SINGULAR_FIT = 2


@dataclass
class ObservationGrid:
    """A cropped, time-indexed SST cube.

    Args:
        values: Readings shaped ``(time, lat, lon)``; NaN marks missing.
        times: ``datetime64[ns]`` timestamps, one per time step.
        lat: Latitude of each row.
        lon: Longitude of each column, normalized to [-180, 180].
        attrs: Dataset attributes carried through to written grids.

    Example:
        >>> import numpy as np
        >>> grid = ObservationGrid(
        ...     values=np.zeros((5, 3, 3)),
        ...     times=np.arange(5).astype("datetime64[D]").astype("datetime64[ns]"),
        ...     lat=np.array([10.0, 11.0, 12.0]),
        ...     lon=np.array([-80.0, -79.0, -78.0]),
        ... )
        >>> grid.shape
        (5, 3, 3)
    """

    values: npt.NDArray[np.floating[Any]]
    times: npt.NDArray[np.datetime64]
    lat: npt.NDArray[np.floating[Any]]
    lon: npt.NDArray[np.floating[Any]]
    attrs: dict[str, Any] = field(default_factory=dict)

    @property
    def shape(self) -> tuple[int, ...]:
        return tuple(self.values.shape)

    def with_values(self, values: npt.NDArray[np.floating[Any]]) -> ObservationGrid:
        """Return a grid sharing coordinates but holding *values*."""
        return ObservationGrid(
            values=values,
            times=self.times,
            lat=self.lat,
            lon=self.lon,
            attrs=dict(self.attrs),
        )


@dataclass
class CleanedGrids:
    """Both preprocessed conventions of the same grid.

    Args:
        kelvin: Missing values masked, still in Kelvin.
        celsius: Missing values masked and converted to Celsius.
    """

    kelvin: ObservationGrid
    celsius: ObservationGrid


@dataclass(frozen=True)
class RegressionResult:
    """Trend estimate for one cell.

    Args:
        slope: Coefficient on time, in value units per second.
        p_value: Two-sided p-value of the slope.
        phi: Estimated AR(1) correlation between adjacent time steps.
        n_obs: Number of valid observations used.
        status: Fit outcome; ``slope`` and ``p_value`` are NaN unless OK.
    """

    slope: float = math.nan
    p_value: float = math.nan
    phi: float = math.nan
    n_obs: int = 0
    status: FitStatus = FitStatus.OK

    @classmethod
    def undefined(cls, status: FitStatus, n_obs: int = 0) -> RegressionResult:
        """Build a result carrying no estimate."""
        return cls(n_obs=n_obs, status=status)

    @property
    def is_defined(self) -> bool:
        return self.status is FitStatus.OK


@dataclass
class TrendLayers:
    """Per-cell regression outputs assembled into 2D layers.

    Args:
        slope: Slope per second, NaN where undefined.
        p_value: Slope p-value, NaN where undefined.
        phi: Estimated AR(1) parameter, NaN where undefined.
        status: ``FitStatus`` code per cell.
        n_obs: Valid observation count per cell.
    """

    slope: npt.NDArray[np.floating[Any]]
    p_value: npt.NDArray[np.floating[Any]]
    phi: npt.NDArray[np.floating[Any]]
    status: npt.NDArray[np.int8]
    n_obs: npt.NDArray[np.int32]

    @classmethod
    def empty(cls, shape: tuple[int, int]) -> TrendLayers:
        """Allocate NaN-filled layers for a ``(lat, lon)`` shape."""
        return cls(
            slope=np.full(shape, np.nan, dtype=np.float64),
            p_value=np.full(shape, np.nan, dtype=np.float64),
            phi=np.full(shape, np.nan, dtype=np.float64),
            status=np.full(shape, FitStatus.INSUFFICIENT_DATA, dtype=np.int8),
            n_obs=np.zeros(shape, dtype=np.int32),
        )
