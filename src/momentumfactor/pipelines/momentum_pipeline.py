"""
Momentum Pipeline: end-to-end functions to load monthly stock returns and
Fama-French factors, build the annual momentum long-short portfolio, compare
it with the market and test its alpha with a three-factor regression.

Quick start
-----------

from momentumfactor.pipelines import MomentumConfig, run_analysis

result = run_analysis(
    returns_path="crsp_monthly.csv",            # PERMNO, date, RET
    factors_path="F-F_Research_Data_Factors.CSV",
    cfg=MomentumConfig(),
)

print(result["portfolio"])                     # long / short / spread per year
print(result["comparison"])                    # portfolio legs vs market
print(result["stats"])                         # AnnRet / AnnVol / Sharpe / HitRate
print(result["regression"].coef_table())       # alpha + betas, t, p
# result["regression"].summary_text            # full statsmodels summary
# save_outputs(result, "momentum_out")         # CSVs + PNG plots

Notes
-----
- Factors are expected MONTHLY and in PERCENT (Ken French format); the loader
  converts them to DECIMALS on a DatetimeIndex.
- By default each year's factors are the January observation of that year
  (factor_method="month", factor_month=1). factor_method="compound" compounds
  the twelve months instead.
- The market benchmark is the compounded calendar-year MKT_RF + RF.
- Plotting needs matplotlib and imports it lazily.
"""
from __future__ import annotations

import logging
import os
import re
import sys
from dataclasses import dataclass
from io import StringIO
from typing import Dict, Optional

import numpy as np
import pandas as pd

from ..errors import IngestionError, RegressionError
from ..models.ff3_regression import TARGETS, ff3_regression_annual
from ..models.momentum import (
    annual_returns,
    assign_momentum_groups,
    build_return_table,
    compound_return,
    long_short_returns,
    momentum_sets,
)
from ..records import (
    DATE, HML, LONG_RET, MARKET, MKT_RF, RET, RF, SECURITY, SHORT_RET, SMB,
    SPREAD_RET, YEAR,
)

logger = logging.getLogger(__name__)

FF3_COLS = [MKT_RF, SMB, HML, RF]
FACTOR_METHODS = ("month", "compound")

# =============================================================================
# Configuration & logging
# =============================================================================

@dataclass
class MomentumConfig:
    # Security-return file columns (CRSP monthly naming by default)
    id_col: str = "PERMNO"
    date_col: str = "date"
    ret_col: str = "RET"
    date_format: Optional[str] = None        # None -> parse each value independently ("mixed")

    # Cleaning
    outlier_threshold: Optional[float] = 3.0  # global std devs; None disables

    # Momentum buckets
    low_quantile: float = 0.1
    high_quantile: float = 0.9

    # Factor collapse to one row per year
    factor_method: str = "month"             # "month" | "compound"
    factor_month: int = 1                    # used when factor_method == "month"

    # Regression dependent variable
    regression_target: str = "spread"        # "spread" | "long" | "short"

    def __post_init__(self) -> None:
        if not 0.0 < self.low_quantile < self.high_quantile < 1.0:
            raise ValueError(
                f"Need 0 < low_quantile < high_quantile < 1, got {self.low_quantile}, {self.high_quantile}"
            )
        if self.outlier_threshold is not None and self.outlier_threshold <= 0:
            raise ValueError(f"outlier_threshold must be positive or None, got {self.outlier_threshold}")
        if self.factor_method not in FACTOR_METHODS:
            raise ValueError(f"factor_method must be one of {FACTOR_METHODS}, got {self.factor_method!r}")
        if not 1 <= self.factor_month <= 12:
            raise ValueError(f"factor_month must be 1..12, got {self.factor_month}")
        if self.regression_target not in TARGETS:
            raise ValueError(f"regression_target must be one of {sorted(TARGETS)}, got {self.regression_target!r}")


def setup_logging(level: int = logging.INFO, log_path: Optional[str] = None) -> None:
    """Console (and optional file) logging for scripts; the library itself never calls this."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_path:
        parent = os.path.dirname(log_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    logging.basicConfig(level=level, format="%(asctime)s | %(levelname)s | %(message)s", handlers=handlers)


# =============================================================================
# Utilities
# =============================================================================

def cum_index(r: pd.Series) -> pd.Series:
    """Cumulative index from returns (start = 1)."""
    return (1.0 + r.fillna(0.0)).cumprod()


def perf_summary(
    r: pd.Series,
    name: str = "strategy",
    periods_per_year: int = 1,
    rf: Optional[pd.Series] = None,
) -> pd.Series:
    """AnnRet (geometric), AnnVol, Sharpe and HitRate for a return series.

    rf, when given, is subtracted before the Sharpe ratio; leave it out for
    self-financing series such as the long-short spread.
    """
    r = r.dropna()
    if r.empty:
        return pd.Series({"AnnRet": np.nan, "AnnVol": np.nan, "Sharpe": np.nan, "HitRate": np.nan}, name=name)
    ann_ret = (1 + r).prod() ** (periods_per_year / len(r)) - 1
    ann_vol = r.std() * np.sqrt(periods_per_year)
    excess = r - rf.reindex(r.index).fillna(0.0) if rf is not None else r
    sharpe = (excess.mean() * periods_per_year) / ann_vol if ann_vol > 0 else np.nan
    hit = float((r > 0).mean())
    return pd.Series({"AnnRet": ann_ret, "AnnVol": ann_vol, "Sharpe": sharpe, "HitRate": hit}, name=name)


# =============================================================================
# Data loading
# =============================================================================

def load_security_returns(file_path: str, cfg: Optional[MomentumConfig] = None) -> pd.DataFrame:
    """Read a monthly security-return CSV into raw (security_id, date, ret) rows.

    Only the configured identifier / date / return columns are kept. Dates are
    read as text and parsed later by build_return_table().
    """
    cfg = cfg or MomentumConfig()
    df = pd.read_csv(file_path, dtype={cfg.date_col: str}, low_memory=False)
    wanted = [cfg.id_col, cfg.date_col, cfg.ret_col]
    missing = [c for c in wanted if c not in df.columns]
    if missing:
        raise IngestionError(f"{file_path}: missing column(s) {missing}; found {list(df.columns)}")
    out = df[wanted].rename(columns={cfg.id_col: SECURITY, cfg.date_col: DATE, cfg.ret_col: RET})
    logger.info("Loaded %d return rows for %d securities from %s",
                len(out), out[SECURITY].nunique(), file_path)
    return out


def load_ff3_monthly(file_path: str) -> pd.DataFrame:
    """Load Fama-French 3 factors (monthly) from raw CSV/TXT into DECIMALS with columns
    ['MKT_RF','SMB','HML','RF'] on a month-start DatetimeIndex.

    Only rows keyed by a YYYYMM token are read, so the text preamble and the
    annual section (YYYY keys) of the Ken French file are skipped.
    """
    with open(file_path, "r") as f:
        lines = f.readlines()
    data_lines = [ln.strip() + "\n" for ln in lines if re.match(r"^\s*\d{6}(\s|,)", ln)]
    if not data_lines:
        raise IngestionError(f"No YYYYMM data lines detected in factor file {file_path}")

    df = pd.read_csv(StringIO("".join(data_lines)), sep=r"[,\s]+", header=None, engine="python")
    if df.shape[1] != 5:
        raise IngestionError(f"Unexpected FF3 column count: {df.shape[1]} (expected Date + 4)")
    df.columns = ["Date"] + FF3_COLS

    dates = pd.to_datetime(df["Date"].astype(str), format="%Y%m", errors="coerce")
    if dates.isna().any():
        bad = list(df.loc[dates.isna(), "Date"].head(3))
        raise IngestionError(f"Unparseable year-month keys in factor file, e.g. {bad}")
    df["Date"] = dates
    df = df.set_index("Date").sort_index()
    if df.index.duplicated().any():
        raise IngestionError("Duplicate year-month rows in factor file")

    for c in df.columns:
        v = pd.to_numeric(df[c], errors="coerce")
        df[c] = v.where(v > -99.99) / 100.0  # -99.99 / -999 are missing-value codes
    logger.info("Loaded %d monthly factor rows (%s to %s)",
                len(df), df.index.min().strftime("%Y-%m"), df.index.max().strftime("%Y-%m"))
    return df


def collapse_factors_annual(
    ff_monthly: pd.DataFrame,
    method: str = "month",
    month: int = 1,
) -> pd.DataFrame:
    """One factor row per year, indexed by year.

    method="month" keeps the observation of `month` (January by default);
    method="compound" compounds each column over the available months.
    """
    if method == "month":
        sub = ff_monthly[ff_monthly.index.month == month]
        out = sub.copy()
        out.index = sub.index.year
    elif method == "compound":
        out = ff_monthly.groupby(ff_monthly.index.year).agg(compound_return)
    else:
        raise ValueError(f"Unknown factor collapse method {method!r}; expected one of {FACTOR_METHODS}")
    out.index.name = YEAR
    return out[FF3_COLS].dropna()


def market_annual_returns(ff_monthly: pd.DataFrame) -> pd.DataFrame:
    """Compounded calendar-year market (MKT_RF + RF) and risk-free returns."""
    years = ff_monthly.index.year
    market = (ff_monthly[MKT_RF] + ff_monthly[RF]).groupby(years).agg(compound_return)
    rf = ff_monthly[RF].groupby(years).agg(compound_return)
    out = pd.DataFrame({MARKET: market, RF: rf})
    out.index.name = YEAR
    return out.dropna()


# =============================================================================
# Benchmark comparison
# =============================================================================

def benchmark_comparison(portfolio: pd.DataFrame, market: pd.DataFrame) -> pd.DataFrame:
    """Per-year long / short / spread returns next to the market and risk-free returns."""
    cols = [LONG_RET, SHORT_RET, SPREAD_RET]
    return portfolio[cols].join(market[[MARKET, RF]], how="inner")


def comparison_stats(comparison: pd.DataFrame) -> pd.DataFrame:
    """AnnRet / AnnVol / Sharpe / HitRate for each leg and the market, one row per series."""
    rf = comparison[RF]
    return pd.concat(
        [
            perf_summary(comparison[LONG_RET], "Long", rf=rf),
            perf_summary(comparison[SHORT_RET], "Short", rf=rf),
            perf_summary(comparison[SPREAD_RET], "LongShort"),
            perf_summary(comparison[MARKET], "Market", rf=rf),
        ],
        axis=1,
    ).T


# =============================================================================
# Plotting
# =============================================================================

def plot_portfolio_vs_market(comparison: pd.DataFrame, title: str = "Momentum vs Market",
                             out_path: Optional[str] = None) -> None:
    """Annual returns of the long, short and long-short legs against the market."""
    import matplotlib.pyplot as plt

    labels = {LONG_RET: "Long (high)", SHORT_RET: "Short (low)", SPREAD_RET: "Long-Short", MARKET: "Market"}
    fig, ax = plt.subplots(figsize=(10, 5))
    for col, label in labels.items():
        if col in comparison.columns:
            ax.plot(comparison.index, comparison[col], marker="o", label=label)
    ax.axhline(0.0, color="grey", linewidth=0.8)
    ax.set_title(title)
    ax.set_xlabel("Year")
    ax.set_ylabel("Annual return")
    ax.legend()
    fig.tight_layout()
    if out_path:
        fig.savefig(out_path, dpi=150)
    plt.close(fig)


def plot_cumulative(curves: pd.DataFrame, title: str = "Cumulative Growth", out_path: Optional[str] = None) -> None:
    """Plot cumulative growth indices and optionally save to file."""
    import matplotlib.pyplot as plt

    plt.figure(figsize=(10, 5))
    for col in curves.columns:
        plt.plot(curves.index, curves[col], label=col)
    plt.title(title)
    plt.xlabel("Year")
    plt.ylabel("Index (start = 1)")
    plt.legend()
    plt.tight_layout()
    if out_path:
        plt.savefig(out_path, dpi=150)
    plt.close()


# =============================================================================
# Orchestrator
# =============================================================================

def run_analysis(
    returns_path: str,
    factors_path: str,
    cfg: Optional[MomentumConfig] = None,
) -> Dict[str, object]:
    """High-level: load everything, build the momentum portfolio, compare, regress.

    Returns dict with keys:
      - observations, annual, groups (DataFrames)
      - portfolio (DataFrame, year index): long/short/spread returns
      - factors_monthly, factors_annual, market (DataFrames)
      - comparison, stats, curves (DataFrames)
      - regression (RegressionResult or None) and regression_error (exception or None)

    IngestionError propagates. Regression errors are logged and recorded under
    `regression_error`; all other artifacts are still returned.
    """
    cfg = cfg or MomentumConfig()

    raw = load_security_returns(returns_path, cfg)
    ff_monthly = load_ff3_monthly(factors_path)

    obs = build_return_table(raw, date_format=cfg.date_format, outlier_threshold=cfg.outlier_threshold)
    annual = annual_returns(obs)
    groups = assign_momentum_groups(annual, cfg.low_quantile, cfg.high_quantile)
    long_set, short_set = momentum_sets(groups)
    portfolio = long_short_returns(long_set, short_set, annual)
    logger.info("Portfolio returns for %d year(s)", len(portfolio))

    factors_annual = collapse_factors_annual(ff_monthly, cfg.factor_method, cfg.factor_month)
    market = market_annual_returns(ff_monthly)
    comparison = benchmark_comparison(portfolio, market)
    stats = comparison_stats(comparison)
    curves = pd.DataFrame(
        {
            "Long": cum_index(comparison[LONG_RET]),
            "Short": cum_index(comparison[SHORT_RET]),
            "LongShort": cum_index(comparison[SPREAD_RET]),
            "Market": cum_index(comparison[MARKET]),
        }
    )

    regression = None
    regression_error = None
    try:
        regression = ff3_regression_annual(portfolio, factors_annual, target=cfg.regression_target)
    except RegressionError as exc:
        logger.warning("Factor regression skipped: %s", exc)
        regression_error = exc

    return {
        "observations": obs,
        "annual": annual,
        "groups": groups,
        "portfolio": portfolio,
        "factors_monthly": ff_monthly,
        "factors_annual": factors_annual,
        "market": market,
        "comparison": comparison,
        "stats": stats,
        "curves": curves,
        "regression": regression,
        "regression_error": regression_error,
    }


def save_outputs(result: Dict[str, object], out_dir: str = "momentum_out", save_plots: bool = True) -> None:
    """Write the run's artifacts under `out_dir`.

      - portfolio.csv, comparison.csv, stats.csv, groups.csv
      - regression_coefs.csv, regression_summary.txt (if the regression ran)
      - portfolio_vs_market.png, cumulative.png (if save_plots)
    """
    os.makedirs(out_dir, exist_ok=True)
    for key in ("portfolio", "comparison", "stats", "groups"):
        frame = result.get(key)
        if isinstance(frame, pd.DataFrame):
            frame.to_csv(os.path.join(out_dir, f"{key}.csv"))

    regression = result.get("regression")
    if regression is not None:
        regression.coef_table().to_csv(os.path.join(out_dir, "regression_coefs.csv"))
        with open(os.path.join(out_dir, "regression_summary.txt"), "w") as f:
            f.write(regression.summary_text)

    if save_plots:
        if isinstance(result.get("comparison"), pd.DataFrame):
            plot_portfolio_vs_market(result["comparison"], out_path=os.path.join(out_dir, "portfolio_vs_market.png"))
        if isinstance(result.get("curves"), pd.DataFrame):
            plot_cumulative(result["curves"], out_path=os.path.join(out_dir, "cumulative.png"))
    logger.info("Saved outputs to %s", out_dir)


# End of module
