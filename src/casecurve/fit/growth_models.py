# src/casecurve/fit/growth_models.py
from __future__ import annotations
import numpy as np
from dataclasses import dataclass
from typing import Callable, Dict, Tuple
from .lowess import lowess_smooth

# asymptote seed = max(y) * (1 + ASYM_PAD)
ASYM_PAD = 0.05


# --------- Model functions ---------
def exponential(x, scale, rate):
    # y(x) = scale * exp(rate * x)
    return scale * np.exp(rate * x)


def logistic(x, asym, xmid, scal):
    # y(x) = asym / (1 + exp((xmid - x) / scal))
    return asym / (1.0 + np.exp((xmid - x) / scal))


def gompertz(x, asym, b2, b3):
    # y(x) = asym * exp(-b2 * b3^x)
    return asym * np.exp(-b2 * np.power(b3, x))


# --------- Starting values ---------
def _ols_line(x: np.ndarray, z: np.ndarray) -> Tuple[float, float]:
    """Intercept and slope of z ~ a + b*x."""
    slope, intercept = np.polyfit(x, z, 1)
    return float(intercept), float(slope)


def start_exponential(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Linearize: log(y) ~ a + b*x over the positive counts."""
    x = np.asarray(x, float)
    y = np.asarray(y, float)
    pos = y > 0
    if pos.sum() < 2:
        return np.array([max(float(np.mean(y)), 1.0), 0.0], dtype=float)
    a, b = _ols_line(x[pos], np.log(y[pos]))
    return np.array([np.exp(a), b], dtype=float)


def start_logistic(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """
    Self-starting values in the spirit of SSlogis: asymptote just above the
    largest count, midpoint where the smoothed curve crosses half of it, and a
    scale matching the smoothed slope there (slope at xmid = asym / (4*scal)).
    """
    x = np.asarray(x, float)
    y = np.asarray(y, float)
    asym = float(np.max(y)) * (1.0 + ASYM_PAD)
    if asym <= 0:
        asym = 1.0

    y_s = lowess_smooth(x, y)
    idx = int(np.argmin(np.abs(y_s - 0.5 * asym)))
    xmid = float(x[idx])

    slope = float(np.gradient(y_s, x)[idx])
    if not np.isfinite(slope) or slope <= 0:
        slope = float(y_s[-1] - y_s[0]) / max(float(x[-1] - x[0]), 1.0)
    if not np.isfinite(slope) or slope <= 0:
        slope = asym / max(float(x[-1] - x[0]), 1.0)

    scal = max(asym / (4.0 * slope), 1e-3)
    return np.array([asym, xmid, scal], dtype=float)


def start_gompertz(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """
    log(-log(y/asym)) = log(b2) + x*log(b3); the slope is taken between the
    means of the early and late halves so single noisy points do not dominate.
    """
    x = np.asarray(x, float)
    y = np.asarray(y, float)
    asym = float(np.max(y)) * (1.0 + ASYM_PAD)
    if asym <= 0:
        asym = 1.0

    ratio = y / asym
    ok = (ratio > 0) & (ratio < 1)
    b2, b3 = 1.0, 0.9
    if ok.sum() >= 2:
        xs = x[ok]
        zs = np.log(-np.log(ratio[ok]))
        half = len(xs) // 2
        early, late = slice(0, half), slice(half, None)
        dx = float(np.mean(xs[late]) - np.mean(xs[early]))
        if dx > 0:
            slope = float(np.mean(zs[late]) - np.mean(zs[early])) / dx
            if slope < 0:
                b3 = float(np.exp(slope))
                b2 = float(np.exp(np.mean(zs) - slope * np.mean(xs)))

    b3 = float(np.clip(b3, 1e-6, 1.0 - 1e-6))
    return np.array([asym, b2, b3], dtype=float)


# --------- Registry ---------
@dataclass(frozen=True)
class ModelSpec:
    name: str
    func: Callable
    param_names: Tuple[str, ...]
    # open domain: lower < theta < upper
    bounds: Tuple[np.ndarray, np.ndarray]
    start: Callable[[np.ndarray, np.ndarray], np.ndarray]

    @property
    def n_params(self) -> int:
        return len(self.param_names)

    def in_domain(self, theta: np.ndarray) -> bool:
        lower, upper = self.bounds
        theta = np.asarray(theta, float)
        return bool(np.all(np.isfinite(theta)) and np.all(theta > lower) and np.all(theta < upper))

    def __call__(self, x, theta):
        return self.func(np.asarray(x, float), *theta)


_INF = np.inf

MODEL_SPECS: Dict[str, ModelSpec] = {
    "exponential": ModelSpec(
        "exponential", exponential, ("scale", "rate"),
        (np.array([0.0, -_INF]), np.array([_INF, _INF])),
        start_exponential,
    ),
    "logistic": ModelSpec(
        "logistic", logistic, ("asym", "xmid", "scal"),
        (np.array([0.0, -_INF, 0.0]), np.array([_INF, _INF, _INF])),
        start_logistic,
    ),
    "gompertz": ModelSpec(
        "gompertz", gompertz, ("asym", "b2", "b3"),
        (np.array([0.0, 0.0, 0.0]), np.array([_INF, _INF, 1.0])),
        start_gompertz,
    ),
}

MODEL_NAMES = tuple(MODEL_SPECS)


def get_model_spec(name: str) -> ModelSpec:
    try:
        return MODEL_SPECS[name]
    except KeyError:
        raise ValueError(f"Unknown model {name!r}. Available: {list(MODEL_SPECS)}") from None
