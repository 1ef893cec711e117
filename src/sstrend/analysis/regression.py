"""Linear trend fitting with AR(1)-correlated residuals.

Fits ``value ~ a + b * time`` by generalized least squares where the
residual correlation between observations at time-axis positions ``i``
and ``j`` is ``phi ** |i - j|``. The autocorrelation ``phi`` is estimated
by restricted maximum likelihood (REML), profiling out the coefficients
and residual variance; the coefficients and their t-test then come from
a statsmodels ``GLS`` fit under the estimated correlation matrix.

Pure computation module: one cell at a time, no grid awareness.
"""

from __future__ import annotations

import logging
import math
from typing import Any

import numpy as np
import numpy.typing as npt
import statsmodels.api as sm
from scipy import linalg, optimize

from sstrend._types import FitStatus, RegressionResult
from sstrend.exceptions import SingularFitError

logger = logging.getLogger(__name__)

SECONDS_PER_DAY: float = 86400.0

# phi is searched on the open interval (-1, 1); the bound keeps the
# correlation matrix safely positive definite.
_PHI_BOUND: float = 0.999
_PHI_XATOL: float = 1e-6

# Residual sum of squares below this fraction of the total sum of squares
# is treated as an exact fit.
_PERFECT_FIT_RTOL: float = 1e-20


def ar1_correlation(
    positions: npt.NDArray[np.floating[Any]],
    phi: float,
) -> npt.NDArray[np.float64]:
    """Build the AR(1) correlation matrix for observations at *positions*.

    Example:
        >>> ar1_correlation(np.array([0.0, 1.0, 3.0]), 0.5)
        array([[1.   , 0.5  , 0.125],
               [0.5  , 1.   , 0.25 ],
               [0.125, 0.25 , 1.   ]])
    """
    lags = np.abs(positions[:, np.newaxis] - positions[np.newaxis, :])
    corr: npt.NDArray[np.float64] = np.power(float(phi), lags)
    return corr


def _design_matrix(days: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """Intercept and centred time columns."""
    design: npt.NDArray[np.float64] = sm.add_constant(
        days - days.mean(), has_constant="add"
    )
    return design


def _reml_objective(
    phi: float,
    design: npt.NDArray[np.float64],
    y: npt.NDArray[np.float64],
    positions: npt.NDArray[np.float64],
) -> float:
    """Negative profile REML log-likelihood of *phi* (constants dropped)."""
    n, p = design.shape
    corr = ar1_correlation(positions, phi)
    try:
        chol = linalg.cholesky(corr, lower=True)
    except linalg.LinAlgError:
        return math.inf

    xw = linalg.solve_triangular(chol, design, lower=True)
    yw = linalg.solve_triangular(chol, y, lower=True)
    beta, *_ = np.linalg.lstsq(xw, yw, rcond=None)
    resid = yw - xw @ beta
    rss = float(resid @ resid)
    if rss <= 0.0:
        return math.inf

    sign, logdet_info = np.linalg.slogdet(xw.T @ xw)
    if sign <= 0:
        return math.inf
    logdet_corr = 2.0 * float(np.sum(np.log(np.diag(chol))))
    dof = n - p
    return 0.5 * (dof * math.log(rss / dof) + logdet_corr + logdet_info)


def estimate_phi(
    design: npt.NDArray[np.float64],
    y: npt.NDArray[np.float64],
    positions: npt.NDArray[np.float64],
) -> float:
    """Estimate the AR(1) parameter by REML.

    Raises:
        SingularFitError: If the likelihood is not finite anywhere on the
            search interval.
    """
    res = optimize.minimize_scalar(
        _reml_objective,
        bounds=(-_PHI_BOUND, _PHI_BOUND),
        args=(design, y, positions),
        method="bounded",
        options={"xatol": _PHI_XATOL},
    )
    if not np.isfinite(res.fun) or not np.isfinite(res.x):
        raise SingularFitError(
            what="AR(1) parameter could not be estimated",
            cause="REML likelihood is not finite on (-1, 1)",
        )
    return float(res.x)


def fit_ar1_gls(
    seconds: npt.ArrayLike,
    values: npt.ArrayLike,
    positions: npt.ArrayLike | None = None,
    min_observations: int = 3,
) -> RegressionResult:
    """Fit a linear trend with AR(1) residuals to one cell's series.

    Missing (NaN) observations are dropped before fitting. Numerical
    failures never raise; they are reported through ``status``.

    Parameters:
        seconds: Observation times in seconds since the epoch, shared by
            every cell of the grid.
        values: Readings aligned with *seconds*; NaN marks missing.
        positions: Index of each observation on the time axis, used for
            the correlation lag. Defaults to ``0 .. n-1``.
        min_observations: Fewest valid observations required for a fit.

    Returns:
        ``RegressionResult`` with the slope in value units per second and
        its two-sided p-value. A series that lies exactly on a line gets
        a p-value of 0.0. A constant series or a failed fit yields
        ``FitStatus.SINGULAR_FIT`` with NaN estimates; fewer than
        *min_observations* valid points yields
        ``FitStatus.INSUFFICIENT_DATA``.

    Example:
        >>> t = np.arange(5) * 30 * 86400.0
        >>> res = fit_ar1_gls(t, [10.0, 10.2, 10.4, 10.6, 10.8])
        >>> res.status
        <FitStatus.OK: 0>
    """
    t = np.asarray(seconds, dtype=np.float64)
    v = np.asarray(values, dtype=np.float64)
    pos = (
        np.arange(t.size, dtype=np.float64)
        if positions is None
        else np.asarray(positions, dtype=np.float64)
    )

    valid = np.isfinite(v)
    n_obs = int(np.count_nonzero(valid))
    if n_obs < min_observations:
        return RegressionResult.undefined(FitStatus.INSUFFICIENT_DATA, n_obs)

    y = v[valid]
    days = t[valid] / SECONDS_PER_DAY
    pos = pos[valid]

    try:
        return _fit(days, y, pos, n_obs)
    except (SingularFitError, np.linalg.LinAlgError, ValueError) as exc:
        logger.debug("Singular fit with %d observations: %s", n_obs, exc)
        return RegressionResult.undefined(FitStatus.SINGULAR_FIT, n_obs)


def _fit(
    days: npt.NDArray[np.float64],
    y: npt.NDArray[np.float64],
    positions: npt.NDArray[np.float64],
    n_obs: int,
) -> RegressionResult:
    """Run the GLS fit on already-filtered observations."""
    design = _design_matrix(days)
    if np.linalg.matrix_rank(design) < design.shape[1]:
        raise SingularFitError(what="Design matrix is rank deficient")

    tss = float(np.sum((y - y.mean()) ** 2))
    if tss == 0.0:
        raise SingularFitError(
            what="Series has zero variance",
            cause="All observations are equal",
        )

    ols = sm.OLS(y, design).fit()
    if float(ols.ssr) <= _PERFECT_FIT_RTOL * tss:
        # Residual variance is zero so the t-statistic is unbounded.
        return RegressionResult(
            slope=float(ols.params[1]) / SECONDS_PER_DAY,
            p_value=0.0,
            phi=0.0,
            n_obs=n_obs,
            status=FitStatus.OK,
        )

    phi = estimate_phi(design, y, positions)
    gls = sm.GLS(y, design, sigma=ar1_correlation(positions, phi)).fit()
    slope_per_day = float(gls.params[1])
    p_value = float(gls.pvalues[1])

    if not (math.isfinite(slope_per_day) and math.isfinite(p_value)):
        raise SingularFitError(
            what="GLS fit produced non-finite estimates",
            cause=f"slope={slope_per_day}, p={p_value}",
        )

    return RegressionResult(
        slope=slope_per_day / SECONDS_PER_DAY,
        p_value=p_value,
        phi=phi,
        n_obs=n_obs,
        status=FitStatus.OK,
    )
