#!/usr/bin/env python3
"""
case_series.py
---------------------------------
Synthetic cumulative-count generator. Produces a daily table

    date, cases

sampled from one of the registered growth curves (exponential, logistic,
gompertz) at x = 1..n_days, with optional Gaussian noise. Counts are clipped at
zero and can be rounded to integers like real case reports.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import pandas as pd

from casecurve.fit.growth_models import get_model_spec


def synth_case_frame(
    model: str,
    params: Sequence[float],
    n_days: int,
    start_date: str = "2020-02-24",
    noise_sd: float = 0.0,
    seed: Optional[int] = 42,
    round_counts: bool = False,
    date_col: str = "date",
    value_col: str = "cases",
) -> pd.DataFrame:
    spec = get_model_spec(model)
    if len(params) != spec.n_params:
        raise ValueError(f"{model} takes {spec.n_params} parameters {spec.param_names}, got {len(params)}")
    if n_days < 1:
        raise ValueError("n_days must be >= 1")

    rng = np.random.default_rng(seed)
    x = np.arange(1, n_days + 1, dtype=float)
    y = spec(x, np.asarray(params, float))
    if noise_sd > 0:
        y = y + rng.normal(0.0, noise_sd, size=len(x))
    y = np.clip(y, 0.0, None)
    if round_counts:
        y = np.round(y)

    dates = pd.date_range(pd.Timestamp(start_date), periods=n_days, freq="D")
    return pd.DataFrame({date_col: dates.strftime("%Y-%m-%d"), value_col: y})
