# src/casecurve/forecast/intervals.py
from __future__ import annotations
import logging
import warnings
from dataclasses import dataclass
from typing import Dict

import numpy as np
import pandas as pd
from scipy import stats

from casecurve.errors import IntervalDegradedWarning
from casecurve.fit.lm import numeric_jacobian
from casecurve.fit.types import FitResult

DEFAULT_HORIZON = 14
DEFAULT_LEVEL = 0.95

FORECAST_COLS = ["x", "date", "observed", "fitted", "lower", "upper", "interval_valid"]


@dataclass(frozen=True)
class Forecast:
    model: str
    level: float
    interval_valid: bool
    table: pd.DataFrame

    @property
    def width(self) -> np.ndarray:
        return (self.table["upper"] - self.table["lower"]).to_numpy(dtype=float)


def _check_args(horizon: int, level: float) -> None:
    if int(horizon) != horizon or horizon < 0:
        raise ValueError(f"horizon must be a non-negative integer, got {horizon!r}")
    if not (0.0 < level < 1.0):
        raise ValueError(f"level must lie in (0, 1), got {level!r}")


def extended_range(series, horizon: int = DEFAULT_HORIZON) -> np.ndarray:
    """All integer day indices from the first observation to max(x) + horizon."""
    _check_args(horizon, DEFAULT_LEVEL)
    return np.arange(int(np.min(series.x)), int(np.max(series.x)) + int(horizon) + 1, dtype=np.int64)


def prediction_variance(fit: FitResult, x_new: np.ndarray) -> np.ndarray:
    """
    Delta method: grad(mu)^T Cov(theta) grad(mu) + sigma2, per x_new.
    Rows where the covariance is missing come back as nan.
    """
    x_new = np.asarray(x_new, float)
    if fit.cov is None:
        return np.full(len(x_new), np.nan)
    G = numeric_jacobian(fit.spec.func, x_new, fit.params)
    with np.errstate(over="ignore", invalid="ignore"):
        var_mean = np.einsum("ij,jk,ik->i", G, fit.cov, G)
    return var_mean + fit.sigma2


def forecast_model(
    fit: FitResult,
    series,
    horizon: int = DEFAULT_HORIZON,
    level: float = DEFAULT_LEVEL,
) -> Forecast:
    _check_args(horizon, level)
    x_new = extended_range(series, horizon)
    y_hat = fit.predict(x_new)

    var = prediction_variance(fit, x_new)
    valid = np.isfinite(var) & (var >= 0) & np.isfinite(y_hat)

    t_crit = float(stats.t.ppf(1.0 - (1.0 - level) / 2.0, fit.df_resid))
    half = np.zeros(len(x_new))
    half[valid] = t_crit * np.sqrt(var[valid])
    lower = y_hat - half
    upper = y_hat + half

    if not valid.all():
        n_bad = int((~valid).sum())
        msg = (
            f"{fit.model}: prediction interval unavailable for {n_bad}/{len(x_new)} rows; "
            "bounds set to the point estimate"
        )
        logging.warning(msg)
        warnings.warn(msg, IntervalDegradedWarning, stacklevel=2)

    observed = pd.Series(np.asarray(series.y, float), index=np.asarray(series.x, np.int64))
    table = pd.DataFrame(
        {
            "x": x_new,
            "date": series.date_for(x_new),
            "observed": observed.reindex(x_new).to_numpy(),
            "fitted": y_hat,
            "lower": lower,
            "upper": upper,
            "interval_valid": valid,
        },
        columns=FORECAST_COLS,
    )
    return Forecast(model=fit.model, level=float(level), interval_valid=bool(valid.all()), table=table)


def forecast_all(
    fits: Dict[str, FitResult],
    series,
    horizon: int = DEFAULT_HORIZON,
    level: float = DEFAULT_LEVEL,
) -> Dict[str, Forecast]:
    return {name: forecast_model(fit, series, horizon=horizon, level=level) for name, fit in fits.items()}
