"""Run configuration for the SST trend pipeline.

Every phase (loading, preprocessing, regression, aggregation) receives
the same immutable ``Config`` explicitly; there is no module-level state.
"""

from __future__ import annotations

import logging
import math
from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

logger = logging.getLogger("sstrend")

# Upper interval boundaries for p-value significance bins (right-closed).
DEFAULT_P_VALUE_BREAKS: tuple[float, ...] = (
    0.0001,
    0.001,
    0.01,
    0.05,
    0.1,
    math.inf,
)
DEFAULT_P_VALUE_LABELS: tuple[str, ...] = (
    "< 0.0001",
    "0.0001 - 0.001",
    "0.001 - 0.01",
    "0.01 - 0.05",
    "0.05 - 0.1",
    "> 0.1",
)


class Config(BaseModel):
    """Pipeline configuration model.

    Defaults reproduce the Caribbean Pathfinder run: a -100..-55 E,
    0..40 N bounding box over September 1981 to December 2019.

    Args:
        xmin: Western edge of the bounding box (degrees, [-180, 180]).
        xmax: Eastern edge of the bounding box.
        ymin: Southern edge of the bounding box.
        ymax: Northern edge of the bounding box.
        start_date: First date kept (inclusive), or ``None`` for no limit.
        end_date: Last date kept (inclusive), or ``None`` for no limit.
        variable: Name of the SST variable in the dataset, or ``None``
            to use the first three-dimensional data variable.
        time_offset_hours: Shift applied to decoded timestamps. The
            default of 3 hours centres monthly readings at noon.
        missing_threshold: Raw values strictly below this are missing.
        kelvin_offset: Subtracted from Kelvin readings to get Celsius.
        decimals: Decimal places kept after Celsius conversion.
        min_observations: Fewest valid observations a cell needs for a fit.
        p_value_breaks: Upper bounds of the significance bins; the last
            must be infinite.
        p_value_labels: One label per bin, in the same order.
        workers: Worker processes for the per-cell regression; 1 runs
            serially in the calling process.
        netcdf_engine: xarray engine used to read and write netCDF.

    Example:
        >>> cfg = Config(xmin=-90, xmax=-60, workers=4)
        >>> cfg.min_observations
        3
    """

    model_config = ConfigDict(frozen=True, validate_default=True, extra="forbid")

    xmin: float = -100.0
    xmax: float = -55.0
    ymin: float = 0.0
    ymax: float = 40.0
    start_date: date | None = date(1981, 9, 15)
    end_date: date | None = date(2019, 12, 16)
    variable: str | None = None
    time_offset_hours: float = 3.0
    missing_threshold: float = -54.0
    kelvin_offset: float = 273.15
    decimals: int = 2
    min_observations: int = 3
    p_value_breaks: tuple[float, ...] = DEFAULT_P_VALUE_BREAKS
    p_value_labels: tuple[str, ...] = DEFAULT_P_VALUE_LABELS
    workers: int = 1
    netcdf_engine: str = "h5netcdf"

    @field_validator("xmin", "xmax")
    @classmethod
    def _validate_longitude(cls, v: float) -> float:
        """Ensure longitudes are in the normalized [-180, 180] range."""
        if not -180.0 <= v <= 180.0:
            msg = "longitude bounds must be within [-180, 180]"
            raise ValueError(msg)
        return v

    @field_validator("ymin", "ymax")
    @classmethod
    def _validate_latitude(cls, v: float) -> float:
        """Ensure latitudes are within [-90, 90]."""
        if not -90.0 <= v <= 90.0:
            msg = "latitude bounds must be within [-90, 90]"
            raise ValueError(msg)
        return v

    @field_validator("min_observations")
    @classmethod
    def _validate_min_observations(cls, v: int) -> int:
        """A line with AR(1) errors needs at least three points."""
        if v < 3:
            msg = "min_observations must be at least 3"
            raise ValueError(msg)
        return v

    @field_validator("workers")
    @classmethod
    def _validate_workers(cls, v: int) -> int:
        """Ensure worker count is positive."""
        if v <= 0:
            msg = "workers must be greater than 0"
            raise ValueError(msg)
        return v

    @field_validator("decimals")
    @classmethod
    def _validate_decimals(cls, v: int) -> int:
        if v < 0:
            msg = "decimals must not be negative"
            raise ValueError(msg)
        return v

    @field_validator("p_value_breaks")
    @classmethod
    def _validate_breaks(cls, v: tuple[float, ...]) -> tuple[float, ...]:
        """Breaks must be strictly increasing and end at infinity."""
        if not v:
            msg = "p_value_breaks must not be empty"
            raise ValueError(msg)
        if any(lo >= hi for lo, hi in zip(v, v[1:])):
            msg = "p_value_breaks must be strictly increasing"
            raise ValueError(msg)
        if not math.isinf(v[-1]):
            msg = "the last p_value_breaks entry must be infinite"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def _validate_consistency(self) -> Config:
        """Cross-field checks on the bounding box, dates and bins."""
        if self.xmin >= self.xmax:
            msg = "xmin must be less than xmax"
            raise ValueError(msg)
        if self.ymin >= self.ymax:
            msg = "ymin must be less than ymax"
            raise ValueError(msg)
        if (
            self.start_date is not None
            and self.end_date is not None
            and self.start_date > self.end_date
        ):
            msg = "start_date must not be after end_date"
            raise ValueError(msg)
        if len(self.p_value_labels) != len(self.p_value_breaks):
            msg = "p_value_labels must have one label per p_value_breaks entry"
            raise ValueError(msg)
        return self

    @property
    def bbox(self) -> dict[str, float]:
        """Bounding box as ``{"minx", "miny", "maxx", "maxy"}``."""
        return {
            "minx": self.xmin,
            "miny": self.ymin,
            "maxx": self.xmax,
            "maxy": self.ymax,
        }


def config_from_overrides(base: Config | None = None, **kwargs: Any) -> Config:
    """Return a new ``Config`` with *kwargs* applied on top of *base*.

    Keyword arguments whose value is ``None`` are ignored so that unset
    command-line options keep their defaults.

    Args:
        base: Starting configuration; defaults to ``Config()``.
        **kwargs: Any ``Config`` field.

    Raises:
        ValidationError: If a provided value fails pydantic validation.

    Example:
        >>> config_from_overrides(workers=8, variable=None).workers
        8
    """
    current = (base or Config()).model_dump()
    current.update({k: v for k, v in kwargs.items() if v is not None})
    cfg = Config(**current)
    logger.debug("Resolved configuration: %s", cfg)
    return cfg
