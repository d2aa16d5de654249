# pingmap/processing/results.py

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Union

import pandas as pd

from pingmap.models import ProbeOutcome, ProbeResult
from pingmap.sweep.hilbert import hilbert_coordinates
from pingmap.utils.logging import get_logger

log = get_logger(__name__)

COLUMNS = ["offset", "address", "outcome", "reachable", "attempts", "x", "y"]


def results_to_dataframe(results: Iterable[ProbeResult], size: int) -> pd.DataFrame:
    """
    One row per probed address, sorted by offset.

    ``size`` is the block size the sweep mapped offsets with, so x/y match
    the pixels painted on the canvas.
    """
    rows = []
    for r in results:
        x, y = hilbert_coordinates(r.offset, size)
        rows.append({
            "offset": r.offset,
            "address": r.address,
            "outcome": r.outcome.value,
            "reachable": r.reachable,
            "attempts": r.attempts,
            "x": x,
            "y": y,
        })

    df = pd.DataFrame(rows, columns=COLUMNS)
    if df.empty:
        return df
    return df.sort_values("offset", kind="stable").reset_index(drop=True)


def outcome_counts(df: pd.DataFrame) -> pd.Series:
    """Count rows per outcome, listing every outcome even when absent."""
    order = [o.value for o in ProbeOutcome]
    return df["outcome"].value_counts().reindex(order, fill_value=0)


def save_csv(df: pd.DataFrame, path: Union[str, Path]) -> None:
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(out_path, index=False)
    log.info("Wrote %d rows to %s", len(df), out_path)
