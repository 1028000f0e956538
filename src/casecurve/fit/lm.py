# src/casecurve/fit/lm.py
from __future__ import annotations
import numpy as np
from dataclasses import dataclass
from typing import Callable, Optional

from casecurve.errors import ConvergenceError

# central-difference step relative to |theta| (~ eps ** (1/3))
_FD_STEP = np.finfo(float).eps ** (1.0 / 3.0)
# rss below this fraction of sum(y^2) is rounding noise
_EXACT_FIT = 1e-20


@dataclass
class LMResult:
    params: np.ndarray
    rss: float
    iterations: int
    message: str


def evaluate(func: Callable, x: np.ndarray, theta: np.ndarray) -> np.ndarray:
    with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
        return np.asarray(func(x, *theta), dtype=float)


def numeric_jacobian(func: Callable, x: np.ndarray, theta: np.ndarray) -> np.ndarray:
    """
    d func(x; theta) / d theta by central differences, shape (len(x), len(theta)).
    """
    theta = np.asarray(theta, float)
    x = np.asarray(x, float)
    J = np.empty((len(x), len(theta)), dtype=float)
    for j in range(len(theta)):
        h = _FD_STEP * max(abs(theta[j]), 1e-3)
        up = theta.copy()
        dn = theta.copy()
        up[j] += h
        dn[j] -= h
        J[:, j] = (evaluate(func, x, up) - evaluate(func, x, dn)) / (up[j] - dn[j])
    return J


def gradient_cosine(J: np.ndarray, r: np.ndarray) -> float:
    """Largest |cos| between the residual vector and a Jacobian column (0 at a stationary point)."""
    r_norm = float(np.linalg.norm(r))
    if r_norm == 0.0:
        return 0.0
    col_norm = np.linalg.norm(J, axis=0)
    live = col_norm > 0
    if not live.any():
        return 0.0
    cos = np.abs(J[:, live].T @ r) / (col_norm[live] * r_norm)
    return float(np.max(cos))


def levenberg_marquardt(
    func: Callable,
    x: np.ndarray,
    y: np.ndarray,
    p0: np.ndarray,
    in_domain: Optional[Callable[[np.ndarray], bool]] = None,
    max_iter: int = 200,
    tol: float = 1e-8,
    gtol: float = 1e-3,
    lam0: float = 1e-3,
    lam_max: float = 1e12,
) -> LMResult:
    """
    Minimize sum((y - func(x, *theta))**2) with Marquardt-scaled damping.

    Converged when an accepted step lowers RSS by less than `tol` (relative)
    while the residuals are orthogonal to the Jacobian columns to within
    `gtol`, or when the fit is exact to rounding. Trial points outside
    `in_domain` or with non-finite values are rejected by raising the damping.
    """
    x = np.asarray(x, float)
    y = np.asarray(y, float)
    theta = np.asarray(p0, float).copy()
    in_domain = in_domain or (lambda th: bool(np.all(np.isfinite(th))))

    if not in_domain(theta):
        raise ConvergenceError(f"Starting values {theta.tolist()} are outside the model domain")
    mu = evaluate(func, x, theta)
    if not np.all(np.isfinite(mu)):
        raise ConvergenceError("Non-finite model values at starting values")

    r = y - mu
    rss = float(r @ r)
    exact = _EXACT_FIT * max(float(y @ y), 1.0)
    if rss <= exact:
        return LMResult(theta, rss, 0, "exact fit")

    lam = lam0
    for it in range(1, max_iter + 1):
        J = numeric_jacobian(func, x, theta)
        if not np.all(np.isfinite(J)):
            raise ConvergenceError(f"Non-finite Jacobian at iteration {it}")

        g = J.T @ r
        A = J.T @ J
        d = np.diag(A).copy()
        d = np.maximum(d, 1e-12 * max(float(d.max()), 1.0))
        cos = gradient_cosine(J, r)

        accepted = False
        while lam <= lam_max:
            try:
                step = np.linalg.solve(A + lam * np.diag(d), g)
            except np.linalg.LinAlgError:
                lam *= 10.0
                continue
            trial = theta + step
            if in_domain(trial):
                mu_t = evaluate(func, x, trial)
                if np.all(np.isfinite(mu_t)):
                    r_t = y - mu_t
                    rss_t = float(r_t @ r_t)
                    if rss_t < rss:
                        accepted = True
                        break
            lam *= 10.0

        if not accepted:
            if cos <= gtol:
                return LMResult(theta, rss, it, "stationary point")
            raise ConvergenceError(
                f"No downhill step at maximum damping after {it} iterations (rss={rss:.6g})"
            )

        reduction = (rss - rss_t) / rss
        theta, r, rss = trial, r_t, rss_t
        lam = max(lam / 10.0, 1e-15)

        if rss <= exact:
            return LMResult(theta, rss, it, "exact fit")
        if reduction < tol and cos <= gtol:
            return LMResult(theta, rss, it, "relative reduction below tolerance")

    raise ConvergenceError(f"No convergence within {max_iter} iterations (rss={rss:.6g})")
