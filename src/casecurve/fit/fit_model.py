# src/casecurve/fit/fit_model.py
from __future__ import annotations
import logging
import numpy as np
import pandas as pd
from typing import Dict, Iterable, Optional, Tuple
from joblib import Parallel, delayed

from casecurve.errors import ConvergenceError, CurveFitError, SingularJacobianError
from .types import FitResult
from .growth_models import MODEL_NAMES, get_model_spec
from .lm import levenberg_marquardt, numeric_jacobian

# condition number of the column-scaled J^T J treated as singular
SINGULAR_COND = 1e14


def gaussian_loglik(rss: float, n: int, k: int) -> float:
    """
    Gaussian log-likelihood evaluated at the residual variance RSS/(n - k),
    the same sigma^2 used for the covariance and prediction intervals.
    """
    s2 = max(rss / (n - k), np.finfo(float).tiny)
    return float(-0.5 * n * (np.log(2.0 * np.pi) + np.log(s2) + 1.0))


def information_criteria(rss: float, n: int, k: int) -> Tuple[float, float, float]:
    """(logLik, AIC, BIC); the error variance counts as one extra parameter."""
    ll = gaussian_loglik(rss, n, k)
    aic = -2.0 * ll + 2.0 * (k + 1)
    bic = -2.0 * ll + np.log(n) * (k + 1)
    return ll, float(aic), float(bic)


def param_covariance(J: np.ndarray, sigma2: float) -> np.ndarray:
    """
    sigma2 * (J^T J)^-1, inverted on unit-norm columns so that parameters of
    very different magnitude do not look singular.
    """
    col = np.linalg.norm(J, axis=0)
    if np.any(col == 0) or not np.all(np.isfinite(col)):
        raise SingularJacobianError("Jacobian has a zero or non-finite column")
    Js = J / col
    A = Js.T @ Js
    cond = np.linalg.cond(A)
    if not np.isfinite(cond) or cond > SINGULAR_COND:
        raise SingularJacobianError(f"J^T J is singular (condition number {cond:.3g})")
    try:
        A_inv = np.linalg.inv(A)
    except np.linalg.LinAlgError as e:
        raise SingularJacobianError(str(e)) from e
    return sigma2 * A_inv / np.outer(col, col)


def fit_model(
    name: str,
    x: np.ndarray,
    y: np.ndarray,
    max_iter: int = 200,
    tol: float = 1e-8,
    allow_singular: bool = False,
) -> FitResult:
    spec = get_model_spec(name)
    x = np.asarray(x, float)
    y = np.asarray(y, float)

    mask = np.isfinite(x) & np.isfinite(y)
    x = x[mask]
    y = y[mask]
    n = int(len(x))
    k = spec.n_params
    if n - k < 1:
        raise ConvergenceError(f"{name}: {n} points leave no residual degrees of freedom for {k} parameters")

    order = np.argsort(x)
    x = x[order]
    y = y[order]

    p0 = spec.start(x, y)
    lm = levenberg_marquardt(spec.func, x, y, p0, in_domain=spec.in_domain, max_iter=max_iter, tol=tol)

    theta = lm.params
    y_hat = spec.func(x, *theta)
    rss = float(np.sum((y - y_hat) ** 2))
    sigma2 = rss / (n - k)
    ll, aic, bic = information_criteria(rss, n, k)
    tss = float(np.sum((y - np.mean(y)) ** 2))
    r2 = float(1.0 - rss / tss) if tss > 0 else float("nan")

    J = numeric_jacobian(spec.func, x, theta)
    try:
        cov = param_covariance(J, sigma2)
    except SingularJacobianError:
        if not allow_singular:
            raise
        logging.warning(f"{name}: singular J^T J, parameter covariance unavailable")
        cov = None

    return FitResult(
        spec=spec,
        params=np.asarray(theta, float),
        fitted=np.asarray(y_hat, float),
        rss=rss,
        n=n,
        sigma2=float(sigma2),
        loglik=ll,
        aic=aic,
        bic=bic,
        r2=r2,
        cov=cov,
        iterations=lm.iterations,
        message=lm.message,
    )


def _fit_or_failure(name, x, y, max_iter, tol, allow_singular):
    try:
        return name, fit_model(name, x, y, max_iter=max_iter, tol=tol, allow_singular=allow_singular), None
    except CurveFitError as e:
        return name, None, f"{type(e).__name__}: {e}"


def fit_all(
    series,
    models: Iterable[str] = MODEL_NAMES,
    max_iter: int = 200,
    tol: float = 1e-8,
    allow_singular: bool = False,
    n_jobs: int = 1,
) -> Tuple[Dict[str, FitResult], Dict[str, str]]:
    """
    Fit every requested model to the same (x, y). A model that fails is
    reported in `failures` and does not stop the others.
    """
    models = list(models)
    for name in models:
        get_model_spec(name)
    x = np.asarray(series.x, float)
    y = np.asarray(series.y, float)

    if n_jobs == 1:
        results = [_fit_or_failure(m, x, y, max_iter, tol, allow_singular) for m in models]
    else:
        results = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(_fit_or_failure)(m, x, y, max_iter, tol, allow_singular) for m in models
        )

    fits: Dict[str, FitResult] = {}
    failures: Dict[str, str] = {}
    for name, fit, err in results:
        if fit is None:
            failures[name] = err
            logging.warning(f"{name}: fit failed ({err})")
        else:
            fits[name] = fit
            logging.info(
                f"{name}: aic={fit.aic:.2f} bic={fit.bic:.2f} r2={fit.r2:.4f} "
                f"iterations={fit.iterations} ({fit.message})"
            )
    return fits, failures


COMPARISON_COLS = [
    "model", "status", "aic_rank", "k", "n", "df_resid", "rss", "sigma",
    "loglik", "aic", "bic", "delta_aic", "r2", "message",
]


def compare_models(fits: Dict[str, FitResult], failures: Optional[Dict[str, str]] = None) -> pd.DataFrame:
    """
    One row per model, ranked by AIC (1 = best). Failed models go last.
    """
    rows = []
    for name, fit in fits.items():
        rows.append(
            {
                "model": name,
                "status": "ok",
                "k": fit.k,
                "n": fit.n,
                "df_resid": fit.df_resid,
                "rss": fit.rss,
                "sigma": float(np.sqrt(fit.sigma2)),
                "loglik": fit.loglik,
                "aic": fit.aic,
                "bic": fit.bic,
                "r2": fit.r2,
                "message": fit.message,
            }
        )
    ok = pd.DataFrame(rows, columns=[c for c in COMPARISON_COLS if c not in {"aic_rank", "delta_aic"}])
    ok = ok.sort_values("aic", kind="mergesort").reset_index(drop=True)
    ok["aic_rank"] = np.arange(1, len(ok) + 1)
    ok["delta_aic"] = ok["aic"] - (ok["aic"].min() if len(ok) else np.nan)

    failed = pd.DataFrame(
        [{"model": name, "status": "failed", "message": msg} for name, msg in (failures or {}).items()],
        columns=["model", "status", "message"],
    )
    if failed.empty:
        out = ok
    elif ok.empty:
        out = failed
    else:
        out = pd.concat([ok, failed], ignore_index=True)
    return out.reindex(columns=COMPARISON_COLS)


def parameter_table(fits: Dict[str, FitResult]) -> pd.DataFrame:
    rows = []
    for name, fit in fits.items():
        for pname, est, se in zip(fit.param_names, fit.params, fit.stderr):
            rows.append({"model": name, "parameter": pname, "estimate": float(est), "std_error": float(se)})
    return pd.DataFrame(rows, columns=["model", "parameter", "estimate", "std_error"])
