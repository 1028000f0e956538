from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Union

import numpy as np
import plotly.graph_objects as go

# one colour per model, band drawn with the same colour at low opacity
_COLORS = {
    "exponential": (31, 119, 180),
    "logistic": (44, 160, 44),
    "gompertz": (214, 39, 40),
}
_FALLBACK = (127, 127, 127)


def _rgba(rgb, alpha: float) -> str:
    return f"rgba({rgb[0]},{rgb[1]},{rgb[2]},{alpha})"


def build_forecast_figure(report: Dict[str, Any], title: str = "Cumulative cases") -> go.Figure:
    series = report["series"]
    forecasts = report["forecasts"]
    comparison = report["comparison"]
    rank = {
        r["model"]: int(r["aic_rank"])
        for _, r in comparison.iterrows()
        if r["status"] == "ok"
    }

    fig = go.Figure()
    fig.add_trace(
        go.Scatter(x=series.dates, y=series.y, mode="markers", name="observed", marker=dict(color="black", size=5))
    )

    for name, fc in sorted(forecasts.items(), key=lambda kv: rank.get(kv[0], 99)):
        rgb = _COLORS.get(name, _FALLBACK)
        tbl = fc.table
        label = f"{name} (AIC rank {rank[name]})" if name in rank else name
        if not fc.interval_valid:
            label += " [no interval]"

        band = tbl[tbl["interval_valid"]]
        if len(band):
            fig.add_trace(
                go.Scatter(
                    x=np.concatenate([band["date"].to_numpy(), band["date"].to_numpy()[::-1]]),
                    y=np.concatenate([band["upper"].to_numpy(), band["lower"].to_numpy()[::-1]]),
                    fill="toself",
                    fillcolor=_rgba(rgb, 0.15),
                    line=dict(width=0),
                    hoverinfo="skip",
                    showlegend=False,
                    legendgroup=name,
                )
            )
        fig.add_trace(
            go.Scatter(
                x=tbl["date"],
                y=tbl["fitted"],
                mode="lines",
                name=label,
                line=dict(color=_rgba(rgb, 1.0)),
                legendgroup=name,
            )
        )

    fig.add_vline(x=series.dates[-1].strftime("%Y-%m-%d"), line_dash="dot", line_color="gray")
    level = next(iter(forecasts.values())).level if forecasts else None
    subtitle = f" ({level:.0%} prediction intervals)" if level is not None else ""
    fig.update_layout(
        title=title + subtitle,
        xaxis_title="date",
        yaxis_title="cases",
        template="plotly_white",
    )
    return fig


def write_forecast_html(report: Dict[str, Any], path: Union[str, Path], title: str = "Cumulative cases") -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    build_forecast_figure(report, title=title).write_html(str(path), include_plotlyjs="cdn")
    return path
