"""Result object model and spatial aggregation of trend layers."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np
import numpy.typing as npt
import pandas as pd
from pydantic import BaseModel, Field

from sstrend._types import FitStatus
from sstrend.config import DEFAULT_P_VALUE_BREAKS, DEFAULT_P_VALUE_LABELS
from sstrend.exceptions import DataFileError

if TYPE_CHECKING:
    from sstrend._types import TrendLayers

logger = logging.getLogger(__name__)

SECONDS_PER_DECADE: float = 365.25 * 10 * 86400


# ── Aggregation helpers ────────────────────────────────────────────


def per_decade(slope_per_second: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """Rescale slopes from units per second to units per decade.

    Example:
        >>> per_decade(np.array([1.0 / SECONDS_PER_DECADE, np.nan]))
        array([ 1., nan])
    """
    scaled: npt.NDArray[np.float64] = (
        np.asarray(slope_per_second, dtype=np.float64) * SECONDS_PER_DECADE
    )
    return scaled


def layer_to_table(
    layer: npt.NDArray[np.floating[Any]],
    lat: npt.NDArray[np.floating[Any]],
    lon: npt.NDArray[np.floating[Any]],
    name: str,
    keep: npt.NDArray[np.bool_] | None = None,
) -> pd.DataFrame:
    """Flatten a ``(lat, lon)`` layer to a long table.

    Rows follow the layer in row-major order. Cells where *keep* is
    ``False`` are dropped; NaN values in kept cells stay as NaN.

    Parameters:
        layer: 2D values shaped ``(len(lat), len(lon))``.
        lat: Row coordinates, reported as ``y``.
        lon: Column coordinates, reported as ``x``.
        name: Name of the value column.
        keep: Optional boolean mask of cells to include.

    Returns:
        DataFrame with columns ``[name, "x", "y"]``.

    Example:
        >>> df = layer_to_table(np.ones((2, 3)), np.array([1.0, 2.0]),
        ...                     np.array([5.0, 6.0, 7.0]), "sst")
        >>> df.columns.tolist()
        ['sst', 'x', 'y']
    """
    if layer.shape != (lat.size, lon.size):
        msg = (
            f"layer shape {layer.shape} does not match coordinates "
            f"({lat.size}, {lon.size})"
        )
        raise ValueError(msg)

    xx, yy = np.meshgrid(lon, lat)
    df = pd.DataFrame(
        {
            name: layer.ravel(),
            "x": xx.ravel(),
            "y": yy.ravel(),
        }
    )
    if keep is not None:
        df = df[np.asarray(keep, dtype=bool).ravel()].reset_index(drop=True)
    return df


def bin_p_values(
    p_values: npt.ArrayLike,
    breaks: Sequence[float] = DEFAULT_P_VALUE_BREAKS,
    labels: Sequence[str] = DEFAULT_P_VALUE_LABELS,
) -> pd.Categorical:
    """Classify p-values into ordered significance bins.

    Intervals are closed on the right: ``(-inf, b0], (b0, b1], ...``, so
    a p-value equal to a boundary belongs to the lower bin (0.05 falls in
    ``"0.01 - 0.05"``). NaN p-values get a NaN bin.

    Example:
        >>> list(bin_p_values([0.00005, 0.05, 0.2]))
        ['< 0.0001', '0.01 - 0.05', '> 0.1']
    """
    edges = [-math.inf, *breaks]
    binned = pd.cut(
        np.asarray(p_values, dtype=np.float64),
        bins=edges,
        labels=list(labels),
        right=True,
        ordered=True,
    )
    return binned


# ── Result objects ─────────────────────────────────────────────────


class TrendMetadata(BaseModel):
    """Metadata describing how a ``TrendResult`` was produced.

    Uses Pydantic (not dataclass) for JSON serialization alongside the
    exported tables.

    Attributes:
        source: Input dataset path or identifier.
        variable: Name of the SST variable used.
        period_start: ISO-8601 timestamp of the first time step.
        period_end: ISO-8601 timestamp of the last time step.
        time_steps: Number of time steps regressed.
        bounds: Bounding box ``{"minx", "miny", "maxx", "maxy"}``.
        status_counts: Number of cells per ``FitStatus`` name.
    """

    source: str = ""
    variable: str = ""
    period_start: str = ""
    period_end: str = ""
    time_steps: int = 0
    bounds: dict[str, float] = Field(default_factory=dict)
    status_counts: dict[str, int] = Field(default_factory=dict)


@dataclass
class TrendResult:
    """Per-cell SST trend and its significance.

    Dataclass (not Pydantic) because numpy arrays are the payload.

    Attributes:
        slope: Trend in degrees Celsius per decade, shaped ``(lat, lon)``.
        p_value: Two-sided p-value of the trend.
        status: ``FitStatus`` code per cell.
        valid_mask: ``True`` where the cell has at least one observation.
        lat: Row coordinates.
        lon: Column coordinates.
        metadata: Provenance of the result.
        p_value_breaks: Significance bin boundaries for ``pvalue_table``.
        p_value_labels: Significance bin labels for ``pvalue_table``.
    """

    slope: npt.NDArray[np.floating[Any]]
    p_value: npt.NDArray[np.floating[Any]]
    status: npt.NDArray[np.int8]
    valid_mask: npt.NDArray[np.bool_]
    lat: npt.NDArray[np.floating[Any]]
    lon: npt.NDArray[np.floating[Any]]
    metadata: TrendMetadata = field(default_factory=TrendMetadata)
    p_value_breaks: tuple[float, ...] = DEFAULT_P_VALUE_BREAKS
    p_value_labels: tuple[str, ...] = DEFAULT_P_VALUE_LABELS

    @classmethod
    def from_layers(
        cls,
        layers: TrendLayers,
        valid_mask: npt.NDArray[np.bool_],
        lat: npt.NDArray[np.floating[Any]],
        lon: npt.NDArray[np.floating[Any]],
        metadata: TrendMetadata | None = None,
        p_value_breaks: tuple[float, ...] = DEFAULT_P_VALUE_BREAKS,
        p_value_labels: tuple[str, ...] = DEFAULT_P_VALUE_LABELS,
    ) -> TrendResult:
        """Aggregate regression layers into a result in °C per decade."""
        counts = {s.name: int(np.count_nonzero(layers.status == s)) for s in FitStatus}
        meta = (metadata or TrendMetadata()).model_copy(update={"status_counts": counts})
        return cls(
            slope=per_decade(layers.slope),
            p_value=layers.p_value.copy(),
            status=layers.status.copy(),
            valid_mask=np.asarray(valid_mask, dtype=bool),
            lat=np.asarray(lat, dtype=np.float64),
            lon=np.asarray(lon, dtype=np.float64),
            metadata=meta,
            p_value_breaks=tuple(p_value_breaks),
            p_value_labels=tuple(p_value_labels),
        )

    def __repr__(self) -> str:
        """Summary showing shape and defined-cell count, not the arrays."""
        defined = int(np.count_nonzero(self.status == FitStatus.OK))
        return (
            f"{type(self).__name__}(shape={self.slope.shape}, "
            f"defined={defined}, time_steps={self.metadata.time_steps})"
        )

    @property
    def mean_slope(self) -> float:
        """Mean trend over defined cells, NaN if there are none."""
        if np.all(np.isnan(self.slope)):
            return float("nan")
        return float(np.nanmean(self.slope))

    def slope_table(self) -> pd.DataFrame:
        """Slope per cell as columns ``sst, x, y`` (°C per decade)."""
        return layer_to_table(self.slope, self.lat, self.lon, "sst", self.valid_mask)

    def pvalue_table(self) -> pd.DataFrame:
        """P-value per cell as columns ``pval, x, y, bins``."""
        df = layer_to_table(self.p_value, self.lat, self.lon, "pval", self.valid_mask)
        df["bins"] = bin_p_values(df["pval"], self.p_value_breaks, self.p_value_labels)
        return df

    def save(self, output_dir: str | Path, prefix: str = "sst") -> dict[str, Path]:
        """Write the slope and p-value tables as pickle and CSV.

        Files are named ``{prefix}_slope.{pkl,csv}`` and
        ``{prefix}_pval.{pkl,csv}``; metadata goes to
        ``{prefix}_metadata.json``.

        Returns:
            Mapping of artifact name to written path.

        Raises:
            DataFileError: If the output directory cannot be written.
        """
        out = Path(output_dir)
        tables = {"slope": self.slope_table(), "pval": self.pvalue_table()}
        written: dict[str, Path] = {}
        try:
            out.mkdir(parents=True, exist_ok=True)
            for name, df in tables.items():
                pkl_path = out / f"{prefix}_{name}.pkl"
                csv_path = out / f"{prefix}_{name}.csv"
                df.to_pickle(pkl_path)
                df.to_csv(csv_path, index=False)
                written[f"{name}_pickle"] = pkl_path
                written[f"{name}_csv"] = csv_path
            meta_path = out / f"{prefix}_metadata.json"
            meta_path.write_text(self.metadata.model_dump_json(indent=2), encoding="utf-8")
            written["metadata"] = meta_path
        except OSError as exc:
            raise DataFileError(
                what="Cannot write trend tables",
                cause=f"{type(exc).__name__}: {exc}",
                fix=f"Check that {out} is writable",
            ) from exc

        logger.info("Wrote %d artifacts to %s", len(written), out)
        return written
