# src/casecurve/errors.py
from __future__ import annotations

import numpy as np


class DataFormatError(ValueError):
    """A case record is missing a required field or holds an unparseable value."""


class EmptyDatasetError(ValueError):
    """Too few observations to fit a 3-parameter curve with a residual degree of freedom."""


class CurveFitError(RuntimeError):
    """Base class for per-model fitting failures."""


class ConvergenceError(CurveFitError):
    pass


class SingularJacobianError(CurveFitError, np.linalg.LinAlgError):
    pass


class IntervalDegradedWarning(UserWarning):
    """Prediction intervals could not be computed; bounds collapse to the point estimate."""
