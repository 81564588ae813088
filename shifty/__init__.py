"""
A Python package for estimating sample pH from NMR chemical shifts of buffer molecules.

Fits pH (and optionally temperature, ionic strength and chemical-shift
reference offsets) to observed shifts using tabulated buffer equilibria.

Modules:
    - database: Parses buffer and sample records into immutable objects.
    - chemistry: Corrected pKa values, ionisation fractions and shift prediction.
    - assignment: Matches observed shifts to predicted buffer resonances.
    - fitting: Bounded least-squares fit with iterative reassignment.
    - stats: Jacobian-based parameter uncertainties.
    - validation: Post-fit quality and plausibility checks.
    - tables: pandas views of results and CSV export.
    - plotting: Shift-versus-pH figures.
"""

__version__ = "1.0.0"

from .assignment import (
    assign_peaks,
    assign_single_shift,
    calculate_assignment_quality,
    calculate_confidence,
    generate_predictions,
    get_assigned_peaks,
)
from .database import BufferDatabase, load_database, nuclei_for_buffers
from .errors import (
    ConvergenceFailure,
    DatabaseError,
    InputError,
    NumericalDegeneracyWarning,
    PhysicalImplausibilityWarning,
    ShiftyError,
    UnderdeterminedError,
)
from .fitting import ParameterVector, fit_parameters, fit_with_reassignment
from .schema import (
    Assignment,
    Buffer,
    Conditions,
    Confidence,
    FitOptions,
    FitResult,
    Sample,
    ValidationReport,
)
from .validation import validate_fit_result

__all__ = [
    # Data model
    "Assignment",
    "Buffer",
    "BufferDatabase",
    "Conditions",
    "Confidence",
    "FitOptions",
    "FitResult",
    "Sample",
    "ValidationReport",
    "load_database",
    "nuclei_for_buffers",
    # Assignment
    "assign_peaks",
    "assign_single_shift",
    "calculate_assignment_quality",
    "calculate_confidence",
    "generate_predictions",
    "get_assigned_peaks",
    # Fitting
    "ParameterVector",
    "fit_parameters",
    "fit_with_reassignment",
    # Validation
    "validate_fit_result",
    # Errors
    "ConvergenceFailure",
    "DatabaseError",
    "InputError",
    "NumericalDegeneracyWarning",
    "PhysicalImplausibilityWarning",
    "ShiftyError",
    "UnderdeterminedError",
]
