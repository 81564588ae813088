"""
Statistical utilities for the least-squares fit.

This subpackage provides numerical routines for uncertainty propagation. All
functions operate on arrays and callables; no chemistry-specific logic is
included.

Modules:
    uncertainty:
        Central-difference Jacobian, Cholesky inversion of JᵀJ with pivot
        flooring for degenerate problems, standard errors, covariance and
        correlation matrices.

Design Principle:
    This subpackage has no dependencies on chemistry/ or plotting modules.
    It provides pure numerical utilities that can be independently tested.
"""

from .uncertainty import (
    calculate_full_uncertainties,
    calculate_jacobian,
    calculate_parameter_uncertainties,
    correlation_from_covariance,
    invert_symmetric_matrix,
    regularized_cholesky,
)

__all__ = [
    "calculate_full_uncertainties",
    "calculate_jacobian",
    "calculate_parameter_uncertainties",
    "correlation_from_covariance",
    "invert_symmetric_matrix",
    "regularized_cholesky",
]
