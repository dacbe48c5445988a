from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import pandas as pd

from .config import QueryDefinition

LOGGER = logging.getLogger("ethbench.benchmarks.comparison")

METRICS: dict[str, str] = {
    "Duration_ms": "duration_ms",
    "Bytes_Processed": "bytes_processed",
    "Slot_Milliseconds": "slot_ms",
}

COMPARISON_COLUMNS: list[str] = ["Case"] + [
    f"{metric}_{suffix}"
    for metric in METRICS.values()
    for suffix in ("unoptimized", "optimized", "delta", "change_pct")
]


def build_comparison(summary: pd.DataFrame, definitions: Iterable[QueryDefinition]) -> pd.DataFrame:
    """Pair unoptimized and optimized runs of each case and compute per-metric deltas.

    Each metric is compared on its own: an optimized query may finish sooner
    while consuming more slot time, and both changes are reported as-is.
    Cases without both variants in ``summary`` are left out.
    """
    lookup = {d.name: d for d in definitions if d.case and d.variant}
    if summary.empty or not lookup:
        return pd.DataFrame(columns=COMPARISON_COLUMNS)

    frame = summary[summary["Query_Name"].isin(list(lookup))].copy()
    frame["Case"] = frame["Query_Name"].map(lambda name: lookup[name].case)
    frame["Variant"] = frame["Query_Name"].map(lambda name: lookup[name].variant)

    case_order = list(dict.fromkeys(d.case for d in lookup.values()))
    rows = []
    for case in case_order:
        subset = frame[frame["Case"] == case].set_index("Variant")
        if not {"unoptimized", "optimized"} <= set(subset.index):
            LOGGER.info("Skipping comparison for %s: both variants did not complete", case)
            continue
        row: dict[str, object] = {"Case": case}
        for column, metric in METRICS.items():
            before = subset.at["unoptimized", column]
            after = subset.at["optimized", column]
            row[f"{metric}_unoptimized"] = before
            row[f"{metric}_optimized"] = after
            if pd.isna(before) or pd.isna(after):
                row[f"{metric}_delta"] = pd.NA
                row[f"{metric}_change_pct"] = pd.NA
                continue
            row[f"{metric}_delta"] = int(after) - int(before)
            row[f"{metric}_change_pct"] = (
                round((int(after) - int(before)) / int(before) * 100.0, 2) if int(before) else pd.NA
            )
        rows.append(row)

    return pd.DataFrame(rows, columns=COMPARISON_COLUMNS)


def write_comparison(comparison: pd.DataFrame, path: Path) -> Path:
    comparison.to_csv(path, sep="\t", index=False, na_rep="")
    LOGGER.info("Comparison of %d case(s) written to %s", len(comparison), path)
    return path
