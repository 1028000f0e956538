# src/casecurve/fit/lowess.py
from __future__ import annotations
import numpy as np
from statsmodels.nonparametric.smoothers_lowess import lowess


def lowess_smooth(x: np.ndarray, y: np.ndarray, frac: float = 0.25) -> np.ndarray:
    """
    LOWESS smoothing used to compute robust start values.
    Returns values aligned with the input order. Short series get a wider span
    so every local fit sees at least three points.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    n = len(x)
    frac = float(min(1.0, max(frac, 3.0 / max(n, 1))))

    y_hat = lowess(y, x, frac=frac, it=3, return_sorted=False)
    y_hat = np.asarray(y_hat, dtype=float)
    # lowess yields nan where a local fit has no weight; keep the raw value there
    return np.where(np.isfinite(y_hat), y_hat, y)
