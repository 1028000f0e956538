# src/casecurve/fit/types.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple
import numpy as np

from .growth_models import ModelSpec


@dataclass(frozen=True)
class FitResult:
    spec: ModelSpec
    params: np.ndarray
    fitted: np.ndarray

    # fit quality
    rss: float
    n: int
    sigma2: float           # RSS / (n - p)
    loglik: float
    aic: float
    bic: float
    r2: float

    # sigma2 * (J^T J)^-1; None only when a singular Jacobian was tolerated
    cov: Optional[np.ndarray] = None
    iterations: int = 0
    message: str = "ok"

    @property
    def model(self) -> str:
        return self.spec.name

    @property
    def param_names(self) -> Tuple[str, ...]:
        return self.spec.param_names

    @property
    def k(self) -> int:
        return self.spec.n_params

    @property
    def df_resid(self) -> int:
        return self.n - self.k

    @property
    def stderr(self) -> np.ndarray:
        if self.cov is None:
            return np.full(self.k, np.nan)
        with np.errstate(invalid="ignore"):
            return np.sqrt(np.diag(self.cov))

    def predict(self, x) -> np.ndarray:
        with np.errstate(over="ignore", invalid="ignore"):
            return self.spec(x, self.params)

    def params_dict(self) -> dict:
        return {k: float(v) for k, v in zip(self.param_names, self.params)}
