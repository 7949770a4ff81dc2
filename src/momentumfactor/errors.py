"""Error kinds raised by the momentum / factor-regression pipeline."""
from __future__ import annotations

import numpy as np


class MomentumFactorError(Exception):
    """Base class for all package errors."""


class IngestionError(MomentumFactorError, ValueError):
    """Malformed input row (bad date, duplicate key, missing column). Aborts the run."""


class RegressionError(MomentumFactorError):
    """The factor regression could not be fitted; upstream tables remain valid."""


class InsufficientDataError(RegressionError, ValueError):
    """Fewer joined observations than the regression needs (n <= regressors)."""


class SingularMatrixError(RegressionError, np.linalg.LinAlgError):
    """Design matrix is rank deficient (constant or collinear factors)."""
