"""sstrend — per-pixel SST trends with AR(1)-aware significance.

Example:
    >>> import sstrend
    >>>
    >>> # Full batch from a netCDF file
    >>> cfg = sstrend.Config(xmin=-100, xmax=-55, ymin=0, ymax=40)
    >>> result = sstrend.run("pathfinder_monthly.nc", "out/", cfg)
    >>> print(f"Mean trend: {result.mean_slope:.3f} C/decade")
    >>>
    >>> # Or on an already cleaned grid
    >>> result = sstrend.compute_trends(grid, cfg)
    >>> result.pvalue_table()["bins"].value_counts()
"""

from sstrend.__about__ import __version__
from sstrend._types import FitStatus, ObservationGrid, RegressionResult
from sstrend.analysis import fit_ar1_gls, kelvin_to_celsius, mask_missing, preprocess
from sstrend.api import compute_trends, run
from sstrend.config import Config
from sstrend.dataset import load_grid, write_grid
from sstrend.exceptions import (
    ConfigurationError,
    DataFileError,
    MalformedInputError,
    SSTrendError,
)
from sstrend.results import SECONDS_PER_DECADE, TrendMetadata, TrendResult, bin_p_values

__all__ = [
    # Version
    "__version__",
    # Pipeline
    "compute_trends",
    "run",
    # Building blocks
    "bin_p_values",
    "fit_ar1_gls",
    "kelvin_to_celsius",
    "load_grid",
    "mask_missing",
    "preprocess",
    "write_grid",
    # Types and results
    "FitStatus",
    "ObservationGrid",
    "RegressionResult",
    "SECONDS_PER_DECADE",
    "TrendMetadata",
    "TrendResult",
    # Configuration
    "Config",
    # Exceptions
    "ConfigurationError",
    "DataFileError",
    "MalformedInputError",
    "SSTrendError",
]
