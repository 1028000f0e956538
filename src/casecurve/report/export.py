# src/casecurve/report/export.py
from __future__ import annotations
import io
import zipfile
from pathlib import Path
from typing import Any, Dict

from casecurve.viz.forecast_plot import write_forecast_html


def export_report(
    report: Dict[str, Any],
    out_dir: Path,
    zip_name: str = "casecurve_outputs.zip",
    include_html: bool = True,
) -> Dict[str, Any]:
    """
    Write the report tables and return a ZIP containing them.
    Files written:
      - comparison.csv
      - parameters.csv
      - forecast_<model>.csv (one per fitted model)
      - forecast.html (optional)
      - <zip_name>
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    paths = []
    comparison_path = out_dir / "comparison.csv"
    parameters_path = out_dir / "parameters.csv"
    report["comparison"].to_csv(comparison_path, index=False)
    report["parameters"].to_csv(parameters_path, index=False)
    paths.extend([comparison_path, parameters_path])

    for name, fc in report["forecasts"].items():
        p = out_dir / f"forecast_{name}.csv"
        tbl = fc.table.copy()
        tbl["date"] = tbl["date"].dt.strftime("%Y-%m-%d")
        tbl.to_csv(p, index=False)
        paths.append(p)

    if include_html:
        paths.append(write_forecast_html(report, out_dir / "forecast.html"))

    zip_path = out_dir / zip_name
    bio = io.BytesIO()
    with zipfile.ZipFile(bio, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for p in paths:
            zf.write(p, arcname=p.name)
    zip_path.write_bytes(bio.getvalue())

    return {"zip_bytes": bio.getvalue(), "zip_path": zip_path, "files": paths}
