# src/momentumfactor/__init__.py
try:
    from importlib.metadata import version as _pkg_version
    __version__ = _pkg_version("momentumfactor")
except Exception:
    __version__ = "0.0.0"  # fallback when running from source without install

from .errors import (
    IngestionError,
    InsufficientDataError,
    MomentumFactorError,
    RegressionError,
    SingularMatrixError,
)

__all__ = [
    "__version__",
    "MomentumFactorError", "IngestionError",
    "RegressionError", "InsufficientDataError", "SingularMatrixError",
]
