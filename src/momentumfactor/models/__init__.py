from .momentum import (
    annual_returns,
    assign_momentum_groups,
    build_return_table,
    compound_return,
    filter_outliers,
    long_short_returns,
    momentum_sets,
)
from .ff3_regression import RegressionResult, ff3_regression_annual

__all__ = [
    "build_return_table", "filter_outliers", "compound_return",
    "annual_returns", "assign_momentum_groups", "momentum_sets",
    "long_short_returns",
    "RegressionResult", "ff3_regression_annual",
]
