import numpy as np
import pandas as pd
import pytest
from scipy import stats

from momentumfactor.errors import InsufficientDataError, RegressionError, SingularMatrixError
from momentumfactor.models.ff3_regression import ff3_regression_annual, regression_frame
from momentumfactor.records import (
    HML, LONG_RET, MKT_RF, RF, SHORT_RET, SMB, SPREAD_RET, YEAR, FactorObservation, factors_frame,
)


def _factors(years, seed=0):
    rng = np.random.default_rng(seed)
    df = pd.DataFrame(
        {
            MKT_RF: rng.normal(0.0, 0.05, len(years)),
            SMB: rng.normal(0.0, 0.03, len(years)),
            HML: rng.normal(0.0, 0.03, len(years)),
            RF: np.full(len(years), 0.004),
        },
        index=pd.Index(years, name=YEAR),
    )
    return df


def _portfolio(spread, long=None):
    df = pd.DataFrame({SPREAD_RET: spread})
    df[LONG_RET] = long if long is not None else spread
    df[SHORT_RET] = df[LONG_RET] - df[SPREAD_RET]
    return df


def test_noise_free_fit_recovers_coefficients():
    years = list(range(2000, 2012))
    f = _factors(years)
    y = 0.03 + 1.2 * f[MKT_RF] - 0.5 * f[SMB] + 0.1 * f[HML]
    res = ff3_regression_annual(_portfolio(y), f)
    assert res.alpha == pytest.approx(0.03, abs=1e-10)
    assert res.params[MKT_RF] == pytest.approx(1.2, abs=1e-9)
    assert res.params[SMB] == pytest.approx(-0.5, abs=1e-9)
    assert res.params[HML] == pytest.approx(0.1, abs=1e-9)
    assert res.nobs == 12
    assert res.df_resid == 8


def test_classical_standard_errors_and_two_tailed_pvalues():
    years = list(range(1990, 2010))
    f = _factors(years, seed=1)
    noise = np.random.default_rng(2).normal(0.0, 0.02, len(years))
    y = 0.01 + 0.8 * f[MKT_RF] + 0.3 * f[HML] + noise
    res = ff3_regression_annual(_portfolio(y), f)

    X = np.column_stack([np.ones(len(years)), f[[MKT_RF, SMB, HML]].to_numpy()])
    beta, *_ = np.linalg.lstsq(X, y.to_numpy(), rcond=None)
    resid = y.to_numpy() - X @ beta
    df_resid = len(years) - 4
    sigma2 = resid @ resid / df_resid
    bse = np.sqrt(np.diag(sigma2 * np.linalg.inv(X.T @ X)))
    tvals = beta / bse
    pvals = 2 * stats.t.sf(np.abs(tvals), df_resid)

    np.testing.assert_allclose(res.params.to_numpy(), beta, rtol=1e-8)
    np.testing.assert_allclose(res.bse.to_numpy(), bse, rtol=1e-8)
    np.testing.assert_allclose(res.tvalues.to_numpy(), tvals, rtol=1e-8)
    np.testing.assert_allclose(res.pvalues.to_numpy(), pvals, rtol=1e-6)

    table = res.coef_table()
    assert list(table.columns) == ["coef", "std err", "t", "P>|t|"]
    assert list(table.index) == ["const", MKT_RF, SMB, HML]
    assert res.is_alpha_significant(level=1.0)
    assert list(res.betas.index) == [MKT_RF, SMB, HML]


def test_three_joined_years_is_insufficient():
    years = [2000, 2001, 2002]
    f = _factors(years)
    with pytest.raises(InsufficientDataError):
        ff3_regression_annual(_portfolio(pd.Series([0.1, 0.2, 0.3], index=years)), f)


def test_four_joined_years_is_still_insufficient():
    years = [2000, 2001, 2002, 2003]
    f = _factors(years)
    with pytest.raises(InsufficientDataError):
        ff3_regression_annual(_portfolio(pd.Series([0.1, 0.2, 0.3, 0.0], index=years)), f)


def test_insufficiency_counts_rows_after_inner_join():
    f = _factors(list(range(2005, 2012)))
    spread = pd.Series(np.linspace(-0.1, 0.1, 8), index=range(2000, 2008))
    # only 2005..2007 overlap
    with pytest.raises(InsufficientDataError):
        ff3_regression_annual(_portfolio(spread), f)


def test_constant_factor_is_singular():
    years = list(range(2000, 2010))
    f = _factors(years)
    f[SMB] = 0.01
    spread = pd.Series(np.linspace(-0.1, 0.1, len(years)), index=years)
    with pytest.raises(SingularMatrixError):
        ff3_regression_annual(_portfolio(spread), f)


def test_collinear_factors_are_singular():
    years = list(range(2000, 2010))
    f = _factors(years)
    f[HML] = 2.0 * f[MKT_RF]
    spread = pd.Series(np.linspace(-0.1, 0.1, len(years)), index=years)
    with pytest.raises(SingularMatrixError):
        ff3_regression_annual(_portfolio(spread), f)


def test_error_hierarchy():
    assert issubclass(InsufficientDataError, RegressionError)
    assert issubclass(InsufficientDataError, ValueError)
    assert issubclass(SingularMatrixError, RegressionError)
    assert issubclass(SingularMatrixError, np.linalg.LinAlgError)


def test_inner_join_drops_years_without_factors():
    f = _factors(list(range(2003, 2012)))
    spread = pd.Series(np.random.default_rng(3).normal(0, 0.1, 12), index=range(2000, 2012))
    res = ff3_regression_annual(_portfolio(spread), f)
    assert res.nobs == 9


def test_long_target_uses_excess_over_risk_free():
    years = list(range(2000, 2012))
    f = _factors(years)
    long = 0.004 + 0.02 + 1.0 * f[MKT_RF]
    spread = pd.Series(0.0, index=years)
    frame = regression_frame(_portfolio(spread, long=long), f, target="long")
    np.testing.assert_allclose(frame["y"].to_numpy(), (long - 0.004).to_numpy())

    res = ff3_regression_annual(_portfolio(spread, long=long), f, target="long")
    assert res.target == "long"
    assert res.alpha == pytest.approx(0.02, abs=1e-10)
    assert res.params[MKT_RF] == pytest.approx(1.0, abs=1e-9)


def test_unknown_target_rejected():
    f = _factors([2000])
    with pytest.raises(ValueError):
        regression_frame(_portfolio(pd.Series([0.1], index=[2000])), f, target="market")


def test_factors_from_typed_records():
    records = [FactorObservation(y, 0.01 * i, 0.02, -0.01 * i, 0.003) for i, y in enumerate(range(2000, 2003))]
    f = factors_frame(records)
    assert list(f.columns) == [MKT_RF, SMB, HML, RF]
    assert f.index.tolist() == [2000, 2001, 2002]
    assert f.loc[2002, HML] == pytest.approx(-0.02)
