"""Exception and warning classes raised by the estimation pipeline."""

from __future__ import annotations


class ShiftyError(Exception):
    """Base class for errors raised by this package."""


class DatabaseError(ShiftyError, ValueError):
    """A buffer or sample record is malformed."""


class InputError(ShiftyError, ValueError):
    """Caller data cannot be matched to the selected buffers."""


class UnderdeterminedError(ShiftyError, ValueError):
    """More free parameters than assigned observations."""

    def __init__(self, n_observations: int, n_parameters: int):
        self.n_observations = int(n_observations)
        self.n_parameters = int(n_parameters)
        self.degrees_of_freedom = self.n_observations - self.n_parameters
        super().__init__(
            f"Underdetermined system: {self.n_observations} observations, "
            f"{self.n_parameters} parameters (DoF = {self.degrees_of_freedom})"
        )


class ConvergenceFailure(ShiftyError, RuntimeError):
    """The least-squares solver raised while fitting."""


class NumericalDegeneracyWarning(UserWarning):
    """Parameter uncertainties could not be computed and were set to zero."""


class PhysicalImplausibilityWarning(UserWarning):
    """A fitted value lies outside its physically meaningful domain."""
