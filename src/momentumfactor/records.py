"""
Canonical column names and typed row records.

All tables in the package are pandas DataFrames that use the column names
below. Input files are mapped onto these names once, at ingestion; nothing
downstream refers to the raw file headers.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from typing import Iterable

import pandas as pd

# -- observation / return tables -------------------------------------------------
SECURITY = "security_id"
DATE = "date"
YEAR = "year"
MONTH = "month"
RET = "ret"
ANNUAL_RET = "annual_ret"

# -- momentum groups ---------------------------------------------------------------
PAST_RET = "past_ret"
P_LOW = "p_low"
P_HIGH = "p_high"
GROUP = "group"
LOW, MID, HIGH = "low", "mid", "high"

# -- portfolio ---------------------------------------------------------------------
LONG_RET = "long_return"
SHORT_RET = "short_return"
SPREAD_RET = "spread_return"
N_LONG = "n_long"
N_SHORT = "n_short"

# -- factors -----------------------------------------------------------------------
MKT_RF = "MKT_RF"
SMB = "SMB"
HML = "HML"
RF = "RF"
FACTOR_COLS = (MKT_RF, SMB, HML)
MARKET = "MARKET"


@dataclass(frozen=True)
class Observation:
    """One monthly return for one security."""

    security_id: object
    date: date
    monthly_return: float

    @property
    def year(self) -> int:
        return self.date.year

    @property
    def month(self) -> int:
        return self.date.month


@dataclass(frozen=True)
class FactorObservation:
    """Fama-French three factors plus the risk-free rate for one year (decimals)."""

    year: int
    mkt_rf: float
    smb: float
    hml: float
    rf: float


def observations_frame(records: Iterable[Observation]) -> pd.DataFrame:
    """Raw (security_id, date, ret) table from typed observations."""
    rows = [(r.security_id, r.date, r.monthly_return) for r in records]
    return pd.DataFrame(rows, columns=[SECURITY, DATE, RET])


def factors_frame(records: Iterable[FactorObservation]) -> pd.DataFrame:
    """Year-indexed factor table from typed records."""
    rows = [asdict(r) for r in records]
    df = pd.DataFrame(rows, columns=["year", "mkt_rf", "smb", "hml", "rf"])
    df = df.rename(columns={"mkt_rf": MKT_RF, "smb": SMB, "hml": HML, "rf": RF})
    df = df.set_index(YEAR).sort_index()
    return df.astype(float)
