"""SST trend exception hierarchy.

All exceptions follow a three-part message pattern: what failed,
likely cause, and suggested fix.

Per-cell numerical failures are not exceptions at the run level; they
surface as ``FitStatus`` codes and NaN values in the output layers.
"""

from __future__ import annotations


class SSTrendError(Exception):
    """Base exception for all sstrend errors.

    Args:
        what: Description of what failed.
        cause: Likely cause of the failure.
        fix: Suggested action to resolve the issue.

    Example:
        >>> raise SSTrendError(
        ...     what="Operation failed",
        ...     cause="Unexpected internal state",
        ...     fix="Please report this issue",
        ... )
    """

    def __init__(
        self,
        what: str,
        cause: str = "",
        fix: str = "",
    ) -> None:
        self.what = what
        self.cause = cause
        self.fix = fix
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Build the multi-line error message from parts."""
        parts = [self.what]
        if self.cause:
            parts.append(f"Cause: {self.cause}")
        if self.fix:
            parts.append(f"Fix: {self.fix}")
        return "\n".join(parts)


class MalformedInputError(SSTrendError):
    """Raised when the grid or time axis violates a structural precondition.

    Fatal: raised before any regression runs, since every cell's time
    alignment would be invalid.

    Example:
        >>> raise MalformedInputError(
        ...     what="Time axis is not strictly increasing",
        ...     cause="Timestamp at index 4 is not after index 3",
        ...     fix="Sort the dataset by time and drop duplicate steps",
        ... )
    """


class ConfigurationError(SSTrendError):
    """Raised for run parameters that cannot be applied to the input.

    Example:
        >>> raise ConfigurationError(
        ...     what="Variable not found in dataset",
        ...     cause="No data variable named 'sea_surface_temperature'",
        ...     fix="Pass one of: sst, quality_level",
        ... )
    """


class DataFileError(SSTrendError):
    """Raised when an input dataset cannot be read or an output written.

    Example:
        >>> raise DataFileError(
        ...     what="Cannot open SST dataset",
        ...     cause="File not found: pathfinder_monthly.nc",
        ...     fix="Check the --input path",
        ... )
    """


class SingularFitError(SSTrendError):
    """Raised by the regression engine when a fit has no stable estimate.

    Caught per cell by the grid computation and converted into a
    ``FitStatus.SINGULAR_FIT`` result; never escapes a full run.
    """
