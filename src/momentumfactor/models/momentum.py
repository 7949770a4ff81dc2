"""
Momentum portfolio construction: monthly returns -> annual returns ->
prior-year momentum deciles -> long/short portfolio returns.

Every function takes a table and returns a new table; inputs are never
modified in place.

Pipeline
--------

obs = build_return_table(raw)                 # clean + outlier filter
annual = annual_returns(obs)                  # compound months per (security, year)
groups = assign_momentum_groups(annual)       # low / mid / high per decision year
long_set, short_set = momentum_sets(groups)
portfolio = long_short_returns(long_set, short_set, annual)

Notes
-----
- The outlier filter uses the GLOBAL mean and sample std of the unfiltered
  table. It is coarse and not robust (the outliers inflate the std used to
  find them), and removing rows can expose new outliers, so applying it
  twice is not idempotent in general. It is kept for reproducibility and can
  be disabled with ``outlier_threshold=None``.
- Percentiles use linear interpolation between order statistics (numpy /
  pandas ``interpolation="linear"``, Hyndman-Fan type 7): for n sorted
  values x[0..n-1] and level q, h = (n - 1) * q and the percentile is
  x[floor(h)] + (h - floor(h)) * (x[floor(h) + 1] - x[floor(h)]).
- Boundary ties go to the extreme bucket (<= p_low is low, >= p_high is
  high), so bucket sizes are not exactly 10/80/10 for discrete data.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional, Tuple, Union

import numpy as np
import pandas as pd

from ..errors import IngestionError
from ..records import (
    ANNUAL_RET, DATE, GROUP, HIGH, LONG_RET, LOW, MID, MONTH, N_LONG, N_SHORT,
    P_HIGH, P_LOW, PAST_RET, RET, SECURITY, SHORT_RET, SPREAD_RET, YEAR,
    Observation, observations_frame,
)

logger = logging.getLogger(__name__)

# =============================================================================
# Utilities
# =============================================================================

def compound_return(s: pd.Series) -> float:
    """Compound returns over a period: prod(1+r) - 1, ignoring NaNs."""
    s = pd.to_numeric(s, errors="coerce").dropna()
    return (1.0 + s).prod() - 1.0 if not s.empty else np.nan


def _parse_dates(raw: pd.Series, date_format: Optional[str] = None) -> pd.Series:
    """Parse a date column; any value that is not a calendar date is an IngestionError."""
    if pd.api.types.is_datetime64_any_dtype(raw):
        parsed = raw
    else:
        text = raw.astype(str).str.strip()
        # "mixed" parses each value on its own so valid dates in differing formats all pass
        parsed = pd.to_datetime(text, format=date_format or "mixed", errors="coerce")
    bad = parsed.isna()
    if bad.any():
        examples = list(raw[bad].head(3))
        raise IngestionError(f"{int(bad.sum())} row(s) with unparseable dates, e.g. {examples}")
    return parsed


# =============================================================================
# Return Table Builder
# =============================================================================

def filter_outliers(obs: pd.DataFrame, threshold: Optional[float] = 3.0, col: str = RET) -> pd.DataFrame:
    """Drop rows whose `col` is more than `threshold` global std devs from the global mean.

    Mean and sample std (ddof=1) are computed once over the whole table.
    threshold=None disables the filter.
    """
    if threshold is None or obs.empty:
        return obs.copy()
    mean = obs[col].mean()
    std = obs[col].std()
    if not np.isfinite(std) or std == 0:
        return obs.copy()
    keep = (obs[col] - mean).abs() <= threshold * std
    n_out = int((~keep).sum())
    if n_out:
        logger.info("Outlier filter removed %d of %d rows (|r - %.4f| > %.2f x %.4f)",
                    n_out, len(obs), mean, threshold, std)
    return obs.loc[keep].copy()


def build_return_table(
    raw: Union[pd.DataFrame, Iterable[Observation]],
    date_format: Optional[str] = None,
    outlier_threshold: Optional[float] = 3.0,
) -> pd.DataFrame:
    """Clean raw (security_id, date, ret) rows into the Observation table.

    - Returns are coerced to numbers; missing / non-numeric returns are dropped.
    - Every row needs a security id (IngestionError otherwise).
    - Every date must parse (IngestionError otherwise).
    - At most one row per (security_id, year, month) (IngestionError otherwise).
    - The global outlier filter runs last, over the whole cleaned table.

    Returns columns [security_id, date, year, month, ret] sorted by
    (security_id, year, month).
    """
    if not isinstance(raw, pd.DataFrame):
        raw = observations_frame(raw)
    missing = [c for c in (SECURITY, DATE, RET) if c not in raw.columns]
    if missing:
        raise IngestionError(f"Return table is missing column(s): {missing}")

    df = raw[[SECURITY, DATE, RET]].copy()
    df[DATE] = _parse_dates(df[DATE], date_format)
    df[YEAR] = df[DATE].dt.year.astype("int64")
    df[MONTH] = df[DATE].dt.month.astype("int64")
    df[RET] = pd.to_numeric(df[RET], errors="coerce")

    no_id = df[SECURITY].isna()
    if no_id.any():
        rows = list(df.index[no_id][:3])
        raise IngestionError(f"{int(no_id.sum())} row(s) without a security id, e.g. rows {rows}")

    n_raw = len(df)
    df = df.dropna(subset=[RET])
    if len(df) < n_raw:
        logger.info("Dropped %d of %d rows with missing returns", n_raw - len(df), n_raw)

    dup = df.duplicated([SECURITY, YEAR, MONTH], keep=False)
    if dup.any():
        first = df.loc[dup, [SECURITY, YEAR, MONTH]].iloc[0].tolist()
        raise IngestionError(f"{int(dup.sum())} duplicate (security, year, month) rows, e.g. {first}")

    df = filter_outliers(df, threshold=outlier_threshold)
    df = df.sort_values([SECURITY, YEAR, MONTH], kind="mergesort").reset_index(drop=True)
    return df[[SECURITY, DATE, YEAR, MONTH, RET]]


# =============================================================================
# Annual Return Aggregator
# =============================================================================

def annual_returns(obs: pd.DataFrame) -> pd.DataFrame:
    """Compound monthly returns into one return per (security_id, year).

    The product is evaluated in ascending month order so runs are bit-for-bit
    reproducible. Only months that are present are used.
    """
    if obs.empty:
        return pd.DataFrame(columns=[SECURITY, YEAR, ANNUAL_RET]).astype({YEAR: "int64", ANNUAL_RET: "float64"})
    ordered = obs.sort_values([SECURITY, YEAR, MONTH], kind="mergesort")
    out = (
        ordered.groupby([SECURITY, YEAR], sort=True)[RET]
        .agg(compound_return)
        .rename(ANNUAL_RET)
        .reset_index()
    )
    logger.info("Annual returns: %d security-years from %d observations", len(out), len(obs))
    return out


# =============================================================================
# Momentum Bucketizer
# =============================================================================

def assign_momentum_groups(
    annual: pd.DataFrame,
    low_quantile: float = 0.1,
    high_quantile: float = 0.9,
) -> pd.DataFrame:
    """Bucket securities each decision year by their prior-year annual return.

    The annual return of calendar year Y becomes `past_ret` for decision
    year Y+1. Within each decision year:
      low  : past_ret <= p_low
      high : past_ret >= p_high
      mid  : otherwise
    where p_low / p_high are linear-interpolated percentiles of that year's
    past_ret. A year with a single security puts it in `low`.

    Returns columns [security_id, year, past_ret, p_low, p_high, group].
    """
    if not 0.0 < low_quantile < high_quantile < 1.0:
        raise ValueError(f"Need 0 < low_quantile < high_quantile < 1, got {low_quantile}, {high_quantile}")

    prior = annual[[SECURITY, YEAR, ANNUAL_RET]].rename(columns={ANNUAL_RET: PAST_RET})
    prior = prior.assign(**{YEAR: prior[YEAR] + 1})
    cols = [SECURITY, YEAR, PAST_RET, P_LOW, P_HIGH, GROUP]
    if prior.empty:
        return prior.reindex(columns=cols)

    bounds = (
        prior.groupby(YEAR)[PAST_RET]
        .quantile([low_quantile, high_quantile], interpolation="linear")
        .unstack()
    )
    bounds.columns = [P_LOW, P_HIGH]
    out = prior.merge(bounds.reset_index(), on=YEAR, how="left")

    out[GROUP] = np.where(
        out[PAST_RET] <= out[P_LOW], LOW,
        np.where(out[PAST_RET] >= out[P_HIGH], HIGH, MID),
    )
    out = out.sort_values([YEAR, SECURITY], kind="mergesort").reset_index(drop=True)

    counts = out.groupby(GROUP).size()
    logger.info("Momentum groups over %d decision years: %s",
                out[YEAR].nunique(), counts.to_dict())
    return out[cols]


def momentum_sets(groups: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Split groups into (long_set, short_set) tables of (security_id, year)."""
    long_set = groups.loc[groups[GROUP] == HIGH, [SECURITY, YEAR]].reset_index(drop=True)
    short_set = groups.loc[groups[GROUP] == LOW, [SECURITY, YEAR]].reset_index(drop=True)
    return long_set, short_set


# =============================================================================
# Long-Short Portfolio Evaluator
# =============================================================================

def _leg_returns(members: pd.DataFrame, annual: pd.DataFrame, ret_name: str, count_name: str) -> pd.DataFrame:
    """Equal-weighted mean of the actual annual return of `members`, per year."""
    held = members[[SECURITY, YEAR]].merge(
        annual[[SECURITY, YEAR, ANNUAL_RET]], on=[SECURITY, YEAR], how="inner"
    )
    leg = held.groupby(YEAR)[ANNUAL_RET].agg(["mean", "count"])
    leg.columns = [ret_name, count_name]
    return leg


def long_short_returns(
    long_set: pd.DataFrame,
    short_set: pd.DataFrame,
    annual: pd.DataFrame,
) -> pd.DataFrame:
    """Year-indexed long, short and spread returns.

    Only years where both legs hold at least one security with a return
    that year are reported.

    Returns columns [long_return, short_return, spread_return, n_long, n_short].
    """
    long_leg = _leg_returns(long_set, annual, LONG_RET, N_LONG)
    short_leg = _leg_returns(short_set, annual, SHORT_RET, N_SHORT)

    out = long_leg.join(short_leg, how="inner")
    out[SPREAD_RET] = out[LONG_RET] - out[SHORT_RET]
    out.index.name = YEAR

    dropped = long_leg.index.symmetric_difference(short_leg.index)
    if len(dropped):
        logger.warning("Dropped %d year(s) with only one portfolio leg: %s", len(dropped), list(dropped))
    return out[[LONG_RET, SHORT_RET, SPREAD_RET, N_LONG, N_SHORT]].sort_index()
