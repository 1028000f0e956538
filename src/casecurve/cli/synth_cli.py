# src/casecurve/cli/synth_cli.py
from __future__ import annotations
import argparse
from pathlib import Path

from casecurve.fit.growth_models import MODEL_NAMES
from casecurve.synthetic.case_series import synth_case_frame


def add_synth_subcommand(subparsers: argparse._SubParsersAction) -> None:
    p = subparsers.add_parser(
        "synth",
        help="Write a synthetic daily cumulative-count CSV from a growth curve.",
    )
    p.add_argument("--model", default="logistic", choices=list(MODEL_NAMES))
    p.add_argument(
        "--params",
        type=float,
        nargs="+",
        required=True,
        help="Curve parameters, e.g. logistic: ASYM XMID SCAL; gompertz: ASYM B2 B3; exponential: SCALE RATE",
    )
    p.add_argument("--days", type=int, default=40)
    p.add_argument("--start-date", default="2020-02-24")
    p.add_argument("--noise-sd", type=float, default=0.0)
    p.add_argument("--seed", type=int, default=42)
    p.add_argument("--round", action="store_true", default=False, help="Round counts to integers")
    p.add_argument("--out", required=True, help="Output CSV path")

    p.set_defaults(_fn=_run_synth)


def _run_synth(args: argparse.Namespace) -> int:
    df = synth_case_frame(
        args.model,
        args.params,
        n_days=args.days,
        start_date=args.start_date,
        noise_sd=args.noise_sd,
        seed=args.seed,
        round_counts=bool(args.round),
    )
    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(out, index=False)
    print(f"[OK] {args.model} -> {out}  (rows={len(df)})")
    return 0
