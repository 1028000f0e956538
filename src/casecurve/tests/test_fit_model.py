from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

import casecurve.fit.fit_model as fm
from casecurve.errors import ConvergenceError, IntervalDegradedWarning, SingularJacobianError
from casecurve.fit.fit_model import (
    compare_models,
    fit_all,
    fit_model,
    information_criteria,
    param_covariance,
    parameter_table,
)
from casecurve.fit.growth_models import logistic
from casecurve.forecast.intervals import forecast_model
from casecurve.io.case_loader import CaseSeries


def _series(x, y) -> CaseSeries:
    x = np.asarray(x, dtype=np.int64)
    return CaseSeries(x=x, y=np.asarray(y, float), dates=pd.Timestamp("2020-03-01") + pd.to_timedelta(x - 1, unit="D"))


def _logistic_data(n=40, asym=5000.0, xmid=20.0, scal=3.0, sd=10.0, seed=7):
    rng = np.random.default_rng(seed)
    x = np.arange(1, n + 1, dtype=float)
    y = logistic(x, asym, xmid, scal) + rng.normal(0.0, sd, size=n)
    return x, y


def test_exponential_recovers_growth_rate():
    x = np.arange(1, 16, dtype=float)
    y = np.round(100.0 * np.exp(0.3 * x))
    fit = fit_model("exponential", x, y)
    scale, rate = fit.params
    assert abs(rate - 0.3) / 0.3 < 0.01
    assert abs(scale - 100.0) / 100.0 < 0.05
    assert fit.rss >= 0
    assert fit.df_resid == 13
    assert fit.r2 > 0.9999


def test_exact_exponential_has_zero_residual():
    x = np.arange(1, 21, dtype=float)
    y = 2.5 * np.exp(0.21 * x)
    fit = fit_model("exponential", x, y)
    assert fit.params == pytest.approx([2.5, 0.21], rel=1e-8)
    assert fit.rss == pytest.approx(0.0, abs=1e-12)
    assert fit.r2 == pytest.approx(1.0, abs=1e-12)


def test_logistic_recovers_asymptote_under_noise():
    x, y = _logistic_data()
    fit = fit_model("logistic", x, y)
    asym, xmid, scal = fit.params
    assert abs(asym - 5000.0) / 5000.0 < 0.10
    assert xmid == pytest.approx(20.0, abs=0.5)
    assert scal == pytest.approx(3.0, rel=0.1)
    assert fit.df_resid == 37
    assert np.all(fit.stderr > 0)
    # fitted curve stays under its asymptote and increases
    grid = np.linspace(-20, 80, 501)
    mu = fit.predict(grid)
    assert np.all(mu > 0) and np.all(mu < asym)
    assert np.all(np.diff(mu) > 0)


def test_summary_statistics_follow_definitions():
    x, y = _logistic_data()
    fit = fit_model("logistic", x, y)
    n, k = 40, 3
    assert fit.rss == pytest.approx(float(np.sum((y - fit.fitted) ** 2)))
    assert fit.sigma2 == pytest.approx(fit.rss / (n - k))
    ll = -n / 2 * (np.log(2 * np.pi) + np.log(fit.sigma2) + 1)
    assert fit.loglik == pytest.approx(ll)
    assert fit.aic == pytest.approx(-2 * ll + 2 * (k + 1))
    assert fit.bic == pytest.approx(-2 * ll + np.log(n) * (k + 1))
    tss = float(np.sum((y - y.mean()) ** 2))
    assert fit.r2 == pytest.approx(1 - fit.rss / tss)
    assert fit.cov.shape == (3, 3)
    assert np.allclose(fit.cov, fit.cov.T)


def test_information_criteria_use_residual_variance():
    ll2, aic2, bic2 = information_criteria(50.0, 20, 2)
    ll3, aic3, bic3 = information_criteria(50.0, 20, 3)
    assert ll2 == pytest.approx(-10 * (np.log(2 * np.pi) + np.log(50.0 / 18) + 1))
    assert ll3 == pytest.approx(-10 * (np.log(2 * np.pi) + np.log(50.0 / 17) + 1))
    # same RSS with one more parameter: smaller sigma^2 but a larger penalty
    assert ll3 > ll2
    assert aic3 - aic2 == pytest.approx(-2 * (ll3 - ll2) + 2.0)
    assert bic3 - bic2 == pytest.approx(-2 * (ll3 - ll2) + np.log(20))


def test_no_residual_degrees_of_freedom():
    with pytest.raises(ConvergenceError, match="degrees of freedom"):
        fit_model("logistic", [1, 2, 3], [1.0, 2.0, 3.0])


def test_unknown_model_name():
    with pytest.raises(ValueError):
        fit_model("weibull", np.arange(1, 10), np.arange(1, 10))


def test_aic_ordering_invariant_under_affine_day_index():
    x, y = _logistic_data(n=25, asym=1000.0, xmid=15.0, scal=4.0, sd=5.0, seed=11)
    base = {m: fit_model(m, x, y) for m in ("exponential", "logistic")}
    moved = {m: fit_model(m, 2.0 * x + 10.0, y) for m in ("exponential", "logistic")}

    order = sorted(base, key=lambda m: base[m].aic)
    assert order == sorted(moved, key=lambda m: moved[m].aic)
    for m in base:
        assert moved[m].aic == pytest.approx(base[m].aic, rel=1e-5)
        assert moved[m].bic == pytest.approx(base[m].bic, rel=1e-5)


def test_param_covariance_rejects_singular_jacobian():
    x = np.arange(1, 11, dtype=float)
    J = np.column_stack([x, 2.0 * x])
    with pytest.raises(SingularJacobianError):
        param_covariance(J, 1.0)
    with pytest.raises(SingularJacobianError):
        param_covariance(np.column_stack([x, np.zeros_like(x)]), 1.0)
    # also usable as a plain LinAlgError
    with pytest.raises(np.linalg.LinAlgError):
        param_covariance(J, 1.0)


def test_param_covariance_matches_ols():
    x = np.arange(1, 11, dtype=float)
    J = np.column_stack([np.ones_like(x), x])
    cov = param_covariance(J, 2.0)
    assert cov == pytest.approx(2.0 * np.linalg.inv(J.T @ J))


def test_singular_fit_raises_unless_allowed(monkeypatch):
    def always_singular(J, sigma2):
        raise SingularJacobianError("forced")

    monkeypatch.setattr(fm, "param_covariance", always_singular)
    x, y = _logistic_data()
    with pytest.raises(SingularJacobianError):
        fit_model("logistic", x, y)

    fit = fit_model("logistic", x, y, allow_singular=True)
    assert fit.cov is None
    assert np.all(np.isnan(fit.stderr))


def test_rank_deficient_fit_keeps_point_forecast_only():
    # every observation on the same day: scale and rate cannot be separated
    x = np.full(5, 3.0)
    y = np.array([10.0, 12.0, 9.0, 11.0, 10.0])
    with pytest.raises(SingularJacobianError):
        fit_model("exponential", x, y)

    fit = fit_model("exponential", x, y, allow_singular=True)
    assert fit.cov is None
    assert fit.predict([3.0])[0] == pytest.approx(y.mean(), rel=1e-4)

    s = _series([1, 2, 3, 4, 5], y)
    with pytest.warns(IntervalDegradedWarning):
        fc = forecast_model(fit, s, horizon=4)
    assert fc.interval_valid is False
    assert len(fc.table) == 9
    assert np.all(fc.table["lower"] == fc.table["fitted"])
    assert np.all(fc.table["upper"] == fc.table["fitted"])


def test_fit_all_keeps_going_when_one_model_fails(monkeypatch):
    real_fit = fm.fit_model

    def flaky(name, x, y, **kw):
        if name == "logistic":
            raise ConvergenceError("forced failure")
        return real_fit(name, x, y, **kw)

    monkeypatch.setattr(fm, "fit_model", flaky)
    x = np.arange(1, 16)
    s = _series(x, np.round(100.0 * np.exp(0.3 * x)))
    fits, failures = fit_all(s, models=("exponential", "logistic"))

    assert list(fits) == ["exponential"]
    assert "forced failure" in failures["logistic"]

    table = compare_models(fits, failures)
    assert table["model"].tolist() == ["exponential", "logistic"]
    assert table["status"].tolist() == ["ok", "failed"]
    assert table.loc[0, "aic_rank"] == 1
    assert np.isnan(table.loc[1, "aic"])


def test_fit_all_parallel_matches_serial():
    x, y = _logistic_data()
    s = _series(x.astype(int), y)
    serial, _ = fit_all(s, models=("exponential", "logistic"))
    parallel, _ = fit_all(s, models=("exponential", "logistic"), n_jobs=2)
    assert set(serial) == set(parallel)
    for m in serial:
        assert parallel[m].params == pytest.approx(serial[m].params)


def test_compare_models_ranks_by_aic():
    x, y = _logistic_data()
    s = _series(x.astype(int), y)
    fits, failures = fit_all(s)
    for fit in fits.values():
        assert fit.rss >= 0
        assert fit.df_resid >= 1
    table = compare_models(fits, failures)

    assert len(table) == 3
    ok = table[table["status"] == "ok"]
    assert ok["aic"].is_monotonic_increasing
    assert ok["aic_rank"].tolist() == list(range(1, len(ok) + 1))
    assert ok["delta_aic"].iloc[0] == 0.0
    assert table.loc[0, "model"] == "logistic"

    params = parameter_table(fits)
    assert len(params) == sum(f.k for f in fits.values())
    assert set(params.columns) == {"model", "parameter", "estimate", "std_error"}
