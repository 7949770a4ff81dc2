"""
Fama-French three-factor regression of annual portfolio returns.

    y_t = alpha + b_mkt * MKT_RF_t + b_smb * SMB_t + b_hml * HML_t + e_t

Fitted by closed-form OLS (statsmodels) with the classical homoscedastic
covariance; t-statistics and two-tailed p-values use n - 4 degrees of freedom.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

import numpy as np
import pandas as pd
import statsmodels.api as sm

from ..errors import InsufficientDataError, SingularMatrixError
from ..records import FACTOR_COLS, LONG_RET, RF, SHORT_RET, SPREAD_RET

logger = logging.getLogger(__name__)

CONST = "const"

# dependent variable -> (portfolio column, subtract risk-free?)
TARGETS = {
    "spread": (SPREAD_RET, False),
    "long": (LONG_RET, True),
    "short": (SHORT_RET, True),
}


@dataclass(frozen=True)
class RegressionResult:
    """Coefficients and inference from one factor regression.

    Index of every Series is ['const', <factor columns>]; 'const' is alpha.
    """

    params: pd.Series
    bse: pd.Series
    tvalues: pd.Series
    pvalues: pd.Series
    nobs: int
    df_resid: float
    rsquared: float
    rsquared_adj: float
    target: str
    results: sm.regression.linear_model.RegressionResultsWrapper = field(repr=False, compare=False)

    @property
    def summary_text(self) -> str:
        """Full statsmodels summary."""
        return str(self.results.summary())

    @property
    def alpha(self) -> float:
        return float(self.params[CONST])

    @property
    def alpha_pvalue(self) -> float:
        return float(self.pvalues[CONST])

    @property
    def betas(self) -> pd.Series:
        return self.params.drop(CONST)

    def is_alpha_significant(self, level: float = 0.05) -> bool:
        return bool(self.alpha_pvalue < level)

    def coef_table(self) -> pd.DataFrame:
        """coef / std err / t / P>|t| per regressor."""
        return pd.DataFrame({
            "coef": self.params,
            "std err": self.bse,
            "t": self.tvalues,
            "P>|t|": self.pvalues,
        })


def regression_frame(
    portfolio: pd.DataFrame,
    factors_annual: pd.DataFrame,
    factor_cols: Iterable[str] = FACTOR_COLS,
    target: str = "spread",
) -> pd.DataFrame:
    """Inner-join portfolio and factor tables by year; column 'y' is the dependent variable."""
    if target not in TARGETS:
        raise ValueError(f"Unknown regression target {target!r}; expected one of {sorted(TARGETS)}")
    col, excess = TARGETS[target]
    cols = list(factor_cols)
    needed = cols + ([RF] if excess else [])
    missing = [c for c in needed if c not in factors_annual.columns]
    if missing:
        raise KeyError(f"Factor table is missing column(s): {missing}")

    joined = portfolio[[col]].join(factors_annual[needed], how="inner")
    joined["y"] = joined[col] - joined[RF] if excess else joined[col]
    return joined[["y"] + cols].dropna()


def ff3_regression_annual(
    portfolio: pd.DataFrame,
    factors_annual: pd.DataFrame,
    factor_cols: Iterable[str] = FACTOR_COLS,
    target: str = "spread",
) -> RegressionResult:
    """OLS of the portfolio return on const + Fama-French factors, one row per year.

    Raises
    ------
    InsufficientDataError : joined rows <= number of regressors (const + factors)
    SingularMatrixError : design matrix is rank deficient
    """
    cols = list(factor_cols)
    data = regression_frame(portfolio, factors_annual, cols, target=target)

    k = len(cols) + 1
    if len(data) <= k:
        raise InsufficientDataError(
            f"{len(data)} joined year(s) for {k} regressors; need at least {k + 1}"
        )

    # has_constant="add": a constant factor must still get its own intercept column
    X = sm.add_constant(data[cols], has_constant="add")
    rank = np.linalg.matrix_rank(X.to_numpy(dtype=float))
    if rank < X.shape[1]:
        raise SingularMatrixError(
            f"Design matrix has rank {rank} < {X.shape[1]}; factors are constant or collinear"
        )

    res = sm.OLS(data["y"], X).fit()
    logger.info("FF3 regression (%s): n=%d alpha=%.4f (p=%.3f) R2=%.3f",
                target, int(res.nobs), res.params[CONST], res.pvalues[CONST], res.rsquared)

    return RegressionResult(
        params=res.params,
        bse=res.bse,
        tvalues=res.tvalues,
        pvalues=res.pvalues,
        nobs=int(res.nobs),
        df_resid=float(res.df_resid),
        rsquared=float(res.rsquared),
        rsquared_adj=float(res.rsquared_adj),
        target=target,
        results=res,
    )
