# src/casecurve/cli/report_cli.py
from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path

from casecurve.errors import DataFormatError, EmptyDatasetError
from casecurve.fit.growth_models import MODEL_NAMES
from casecurve.report.export import export_report
from casecurve.report.pipeline import ReportConfig, run_report_from_source


def add_report_subcommand(subparsers: argparse._SubParsersAction) -> None:
    """
    Fit exponential/logistic/gompertz curves to one daily cumulative series and
    write the comparison table, per-model forecasts and an HTML figure.
    """
    p = subparsers.add_parser(
        "report",
        help="Fit growth curves to a case CSV (path or URL) and write forecasts.",
    )

    p.add_argument("source", help="Input CSV/XLSX path or CSV URL, one row per day")
    p.add_argument("--outdir", required=True, help="Output directory")
    p.add_argument("--date-col", default="date")
    p.add_argument("--value-col", default="cases", help="Cumulative count column")
    p.add_argument("--date-format", default=None, help="strftime format of the date column (default: inferred)")
    p.add_argument("--horizon", type=int, default=14, help="Days to forecast beyond the last observation")
    p.add_argument("--level", type=float, default=0.95, help="Prediction interval level")
    p.add_argument("--models", nargs="+", default=list(MODEL_NAMES), choices=list(MODEL_NAMES))
    p.add_argument("--max-iter", type=int, default=200)
    p.add_argument("--n-jobs", type=int, default=1, help="Fit models in parallel (joblib)")
    p.add_argument(
        "--allow-singular",
        action="store_true",
        default=False,
        help="Keep fits with a singular Jacobian; their intervals are reported as unavailable.",
    )
    p.add_argument("--no-html", action="store_true", default=False, help="Skip forecast.html")
    p.add_argument(
        "--loglevel",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )

    p.set_defaults(_fn=_run_report)


def _run_report(args: argparse.Namespace) -> int:
    logging.basicConfig(level=getattr(logging, args.loglevel), format="%(levelname)s: %(message)s")

    cfg = ReportConfig(
        date_col=args.date_col,
        value_col=args.value_col,
        date_format=args.date_format,
        horizon=args.horizon,
        level=args.level,
        models=tuple(args.models),
        max_iter=args.max_iter,
        allow_singular=bool(args.allow_singular),
        n_jobs=args.n_jobs,
    )

    try:
        report = run_report_from_source(args.source, cfg)
    except (DataFormatError, EmptyDatasetError) as e:
        print(f"[ERROR] {args.source}: {e}", file=sys.stderr)
        return 2

    out = export_report(report, Path(args.outdir), include_html=not args.no_html)

    print(report["comparison"].to_string(index=False))
    print("Wrote outputs:")
    for p in out["files"] + [out["zip_path"]]:
        print(f"  {p}")
    return 0
