# src/casecurve/report/pipeline.py
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from casecurve.fit.fit_model import compare_models, fit_all, parameter_table
from casecurve.fit.growth_models import MODEL_NAMES
from casecurve.forecast.intervals import DEFAULT_HORIZON, DEFAULT_LEVEL, forecast_all
from casecurve.io.case_loader import CaseSeries, load_case_series


# ============================================================
# Config
# ============================================================

@dataclass(frozen=True)
class ReportConfig:
    # input columns
    date_col: str = "date"
    value_col: str = "cases"
    date_format: Optional[str] = None

    # forecast
    horizon: int = DEFAULT_HORIZON          # days beyond the last observation
    level: float = DEFAULT_LEVEL            # two-sided prediction interval

    # fitting
    models: Tuple[str, ...] = MODEL_NAMES
    max_iter: int = 200
    tol: float = 1e-8
    allow_singular: bool = False            # keep fits with singular J^T J (intervals degrade)
    n_jobs: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============================================================
# Pipeline
# ============================================================

def run_case_report(series: CaseSeries, cfg: Optional[ReportConfig] = None) -> Dict[str, Any]:
    """
    Fit all configured models to one series, rank them and forecast.

    Returns:
      - series: the CaseSeries used
      - fits: model -> FitResult (successful fits only)
      - failures: model -> error message
      - comparison: AIC-ranked metrics table (failed models last)
      - parameters: estimates and standard errors
      - forecasts: model -> Forecast
    """
    cfg = cfg or ReportConfig()
    fits, failures = fit_all(
        series,
        models=cfg.models,
        max_iter=cfg.max_iter,
        tol=cfg.tol,
        allow_singular=cfg.allow_singular,
        n_jobs=cfg.n_jobs,
    )
    comparison = compare_models(fits, failures)
    forecasts = forecast_all(fits, series, horizon=cfg.horizon, level=cfg.level)

    if len(comparison) and comparison.loc[0, "status"] == "ok":
        logging.info(f"Best model by AIC: {comparison.loc[0, 'model']}")
    else:
        logging.warning("No model could be fitted")

    return {
        "series": series,
        "fits": fits,
        "failures": failures,
        "comparison": comparison,
        "parameters": parameter_table(fits),
        "forecasts": forecasts,
        "config": cfg,
    }


def run_report_from_source(source: Union[str, Path], cfg: Optional[ReportConfig] = None) -> Dict[str, Any]:
    cfg = cfg or ReportConfig()
    series = load_case_series(
        source,
        date_col=cfg.date_col,
        value_col=cfg.value_col,
        date_format=cfg.date_format,
    )
    return run_case_report(series, cfg)
