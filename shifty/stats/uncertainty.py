"""
Jacobian-based parameter uncertainties for nonlinear least squares.

The parameter covariance is estimated from the local linearisation of the
residual vector r(p):

    Cov(p) ≈ (JᵀJ)⁻¹ · s²,     s² = χ² / DoF

where J is the numeric Jacobian (central differences) and s² the reduced
chi-squared. JᵀJ is inverted through its Cholesky factor. When two free
parameters explain the same shifts (for example temperature and a reference
offset) JᵀJ is singular or nearly so; non-positive pivots are then floored to
1e-10 before their square root instead of aborting the factorisation.

None of these routines can fail a fit: every failure degrades to an
all-zero uncertainty vector and a NumericalDegeneracyWarning.
"""

from __future__ import annotations

import logging
import math
import warnings
from typing import Callable, Dict, Optional, Sequence

import numpy as np
from scipy.linalg import LinAlgError, cho_solve, cholesky

from ..errors import NumericalDegeneracyWarning

logger = logging.getLogger(__name__)

DEFAULT_JACOBIAN_STEP = 1e-6
PIVOT_FLOOR = 1e-10

ResidualFunction = Callable[[np.ndarray], np.ndarray]


def calculate_jacobian(
    residual_fn: ResidualFunction,
    params: Sequence[float],
    step: float = DEFAULT_JACOBIAN_STEP,
) -> np.ndarray:
    """Return the (n_residuals, n_params) Jacobian by central differences."""
    p = np.asarray(params, dtype=float)
    base = np.asarray(residual_fn(p), dtype=float)
    jacobian = np.zeros((base.size, p.size))

    for j in range(p.size):
        plus = p.copy()
        plus[j] += step
        minus = p.copy()
        minus[j] -= step
        jacobian[:, j] = (
            np.asarray(residual_fn(plus), dtype=float)
            - np.asarray(residual_fn(minus), dtype=float)
        ) / (2.0 * step)

    return jacobian


def _floored_cholesky(matrix: np.ndarray) -> np.ndarray:
    n = matrix.shape[0]
    lower = np.zeros_like(matrix)
    for i in range(n):
        for j in range(i + 1):
            s = matrix[i, j] - np.dot(lower[i, :j], lower[j, :j])
            if i == j:
                if s <= 0:
                    s = PIVOT_FLOOR
                lower[i, j] = math.sqrt(s)
            else:
                lower[i, j] = s / lower[j, j]
    return lower


def regularized_cholesky(matrix: np.ndarray) -> np.ndarray:
    """Return the lower Cholesky factor, flooring non-positive pivots.

    Args:
        matrix (numpy.ndarray): Symmetric matrix, normally JᵀJ.

    Returns:
        numpy.ndarray: Lower-triangular ``L`` with ``L Lᵀ ≈ matrix``.

    Raises:
        ValueError: If ``matrix`` is not square or contains non-finite values.

    Note:
        SciPy's factorisation is tried first; the floored column-wise
        factorisation is only used when SciPy reports the matrix as not
        positive definite, so well-conditioned inputs are unaffected.
    """
    a = np.asarray(matrix, dtype=float)
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise ValueError(f"Expected a square matrix, got shape {a.shape}")
    try:
        return cholesky(a, lower=True)
    except LinAlgError:
        logger.debug("Matrix not positive definite; flooring non-positive pivots")
        return _floored_cholesky(a)


def invert_symmetric_matrix(matrix: np.ndarray) -> np.ndarray:
    """Invert a symmetric (semi-)definite matrix via its regularised Cholesky factor."""
    lower = regularized_cholesky(matrix)
    return cho_solve((lower, True), np.eye(lower.shape[0]))


def _unscaled_covariance(
    residual_fn: ResidualFunction, params: Sequence[float], step: float
) -> np.ndarray:
    jacobian = calculate_jacobian(residual_fn, params, step)
    return invert_symmetric_matrix(jacobian.T @ jacobian)


def _standard_errors(covariance: np.ndarray) -> np.ndarray:
    variances = np.diag(covariance).copy()
    bad = ~np.isfinite(variances) | (variances <= 0)
    variances[bad] = 0.0
    return np.sqrt(variances)


def calculate_parameter_uncertainties(
    params: Sequence[float],
    residual_fn: ResidualFunction,
    residual_variance: float,
    step: float = DEFAULT_JACOBIAN_STEP,
) -> np.ndarray:
    """Estimate the standard error of each fitted parameter.

    Args:
        params (Sequence[float]): Fitted parameter values.
        residual_fn (Callable): Maps a parameter vector to residuals.
        residual_variance (float): Reduced chi-squared used to scale
            ``(JᵀJ)⁻¹``.
        step (float): Central-difference step.

    Returns:
        numpy.ndarray: Non-negative, finite standard errors, one per
        parameter. All zeros if any step of the computation fails.
    """
    n = len(params)
    try:
        covariance = _unscaled_covariance(residual_fn, params, step) * float(residual_variance)
        return _standard_errors(covariance)
    except Exception as exc:
        warnings.warn(
            f"Uncertainty calculation failed ({exc}); reporting zero uncertainties.",
            NumericalDegeneracyWarning,
            stacklevel=2,
        )
        return np.zeros(n)


def correlation_from_covariance(covariance: np.ndarray) -> np.ndarray:
    """Convert a covariance matrix to correlations.

    Rows or columns with a non-positive variance get 1 on the diagonal and 0
    elsewhere.
    """
    cov = np.asarray(covariance, dtype=float)
    diag = np.diag(cov)
    with np.errstate(invalid="ignore"):
        sd = np.where(diag > 0, np.sqrt(np.where(diag > 0, diag, 1.0)), 0.0)

    n = cov.shape[0]
    corr = np.eye(n)
    for i in range(n):
        for j in range(n):
            if sd[i] > 0 and sd[j] > 0:
                corr[i, j] = cov[i, j] / (sd[i] * sd[j])
    return corr


def calculate_full_uncertainties(
    params: Sequence[float],
    residual_fn: ResidualFunction,
    residual_variance: float,
    step: float = DEFAULT_JACOBIAN_STEP,
) -> Dict[str, Optional[np.ndarray]]:
    """Return covariance, correlation and standard errors for diagnostics.

    On failure ``covariance`` and ``correlation`` are ``None`` and the
    uncertainties are zero.
    """
    try:
        covariance = _unscaled_covariance(residual_fn, params, step) * float(residual_variance)
        return {
            "covariance": covariance,
            "correlation": correlation_from_covariance(covariance),
            "uncertainties": _standard_errors(covariance),
        }
    except Exception as exc:
        warnings.warn(
            f"Full uncertainty calculation failed ({exc}); reporting zero uncertainties.",
            NumericalDegeneracyWarning,
            stacklevel=2,
        )
        return {
            "covariance": None,
            "correlation": None,
            "uncertainties": np.zeros(len(params)),
        }
