# src/casecurve/cli/main.py
import argparse

from casecurve.cli.report_cli import add_report_subcommand
from casecurve.cli.synth_cli import add_synth_subcommand


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="casecurve",
        description="casecurve: growth-curve fits and forecasts for cumulative case counts",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    add_report_subcommand(sub)
    add_synth_subcommand(sub)

    args = parser.parse_args(argv)
    return args._fn(args)  # each subcommand sets a handler


if __name__ == "__main__":
    raise SystemExit(main())
