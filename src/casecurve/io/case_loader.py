# src/casecurve/io/case_loader.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd

from casecurve.errors import DataFormatError, EmptyDatasetError

# 3 parameters + 1 residual degree of freedom
MIN_OBSERVATIONS = 4


@dataclass(frozen=True)
class CaseSeries:
    x: np.ndarray            # day index, 1 = first observed date
    y: np.ndarray            # cumulative count
    dates: pd.DatetimeIndex

    def __post_init__(self) -> None:
        x = np.array(self.x, dtype=np.int64)
        y = np.array(self.y, dtype=float)
        x.setflags(write=False)
        y.setflags(write=False)
        object.__setattr__(self, "x", x)
        object.__setattr__(self, "y", y)
        object.__setattr__(self, "dates", pd.DatetimeIndex(self.dates))

    @property
    def n(self) -> int:
        return int(len(self.x))

    @property
    def start_date(self) -> pd.Timestamp:
        return self.dates[0]

    def date_for(self, x) -> pd.DatetimeIndex:
        offsets = np.asarray(x, dtype=np.int64) - 1
        return pd.DatetimeIndex(self.start_date + pd.to_timedelta(offsets, unit="D"))

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"date": self.dates, "x": self.x, "y": self.y})


def read_table(source: Union[str, Path]) -> pd.DataFrame:
    """
    Read a case table from a local CSV/XLSX file or a CSV URL.
    """
    s = str(source)
    if "://" not in s and not Path(s).exists():
        raise FileNotFoundError(s)
    if s.lower().endswith((".xlsx", ".xls")):
        return pd.read_excel(s)
    return pd.read_csv(s)


def series_from_frame(
    df: pd.DataFrame,
    date_col: str = "date",
    value_col: str = "cases",
    date_format: Optional[str] = None,
) -> CaseSeries:
    """
    Build the ordered observation sequence from raw daily records.

    Rows are sorted by date (input order is not trusted), and the day index is
    x_i = (date_i - date_min) + 1.
    """
    missing = [c for c in (date_col, value_col) if c not in df.columns]
    if missing:
        raise DataFormatError(f"Missing required columns: {missing}. Got: {df.columns.tolist()}")

    raw = df[[date_col, value_col]]
    blank = raw.isna().any(axis=1)
    if blank.any():
        rows = raw.index[blank].tolist()[:5]
        raise DataFormatError(f"Missing {date_col!r}/{value_col!r} values in rows {rows}")

    dates = pd.to_datetime(raw[date_col], format=date_format, errors="coerce")
    bad = dates.isna()
    if bad.any():
        examples = raw.loc[bad, date_col].astype(str).tolist()[:5]
        raise DataFormatError(f"Unparseable dates in {date_col!r}: {examples}")

    values = pd.to_numeric(raw[value_col], errors="coerce")
    bad = values.isna() | ~np.isfinite(values.to_numpy(dtype=float))
    if bad.any():
        examples = raw.loc[bad, value_col].astype(str).tolist()[:5]
        raise DataFormatError(f"Non-numeric counts in {value_col!r}: {examples}")
    if (values < 0).any():
        raise DataFormatError(f"Negative counts in {value_col!r}")

    out = pd.DataFrame({"date": dates.dt.normalize(), "y": values.astype(float)})
    out = out.sort_values("date", kind="mergesort").reset_index(drop=True)

    dup = out["date"].duplicated()
    if dup.any():
        examples = out.loc[dup, "date"].dt.strftime("%Y-%m-%d").tolist()[:5]
        raise DataFormatError(f"Duplicated dates: {examples}")

    if len(out) < MIN_OBSERVATIONS:
        raise EmptyDatasetError(
            f"Need at least {MIN_OBSERVATIONS} observations to fit, got {len(out)}"
        )

    x = ((out["date"] - out["date"].iloc[0]).dt.days + 1).to_numpy(dtype=np.int64)
    y = out["y"].to_numpy(dtype=float)
    return CaseSeries(x=x, y=y, dates=pd.DatetimeIndex(out["date"]))


def load_case_series(
    source: Union[str, Path],
    date_col: str = "date",
    value_col: str = "cases",
    date_format: Optional[str] = None,
) -> CaseSeries:
    df = read_table(source)
    series = series_from_frame(df, date_col=date_col, value_col=value_col, date_format=date_format)
    logging.info(
        f"Loaded {series.n} observations from {source} "
        f"({series.dates[0]:%Y-%m-%d} .. {series.dates[-1]:%Y-%m-%d})"
    )
    return series
