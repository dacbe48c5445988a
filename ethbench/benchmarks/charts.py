from __future__ import annotations

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

LOGGER = logging.getLogger("ethbench.benchmarks.charts")

sns.set_style("whitegrid")
plt.rcParams["figure.dpi"] = 100
plt.rcParams["savefig.dpi"] = 300
plt.rcParams["font.size"] = 10
plt.rcParams["axes.labelsize"] = 11
plt.rcParams["axes.titlesize"] = 13
plt.rcParams["legend.fontsize"] = 9

VARIANT_COLORS = {
    "unoptimized": "#C73E1D",
    "optimized": "#2E86AB",
}

# (column prefix in the comparison table, axis label, output file)
CHART_METRICS: tuple[tuple[str, str, str], ...] = (
    ("duration_ms", "Duration (ms)", "duration_comparison.png"),
    ("slot_ms", "Slot Milliseconds", "slot_time_comparison.png"),
    ("bytes_processed", "Bytes Processed (GB)", "bytes_processed_comparison.png"),
)


def render_comparison_charts(comparison: pd.DataFrame, output_dir: Path) -> list[Path]:
    """Render one grouped bar chart per metric; metrics are never combined."""
    if comparison.empty:
        LOGGER.warning("No completed unoptimized/optimized pairs to chart")
        return []

    paths = []
    for metric, label, filename in CHART_METRICS:
        chart_path = output_dir / filename
        if _render_metric_chart(comparison, metric, label, chart_path):
            LOGGER.info("Rendering chart %s", chart_path)
            paths.append(chart_path)
    return paths


def _render_metric_chart(comparison: pd.DataFrame, metric: str, label: str, chart_path: Path) -> bool:
    before = _as_float(comparison[f"{metric}_unoptimized"])
    after = _as_float(comparison[f"{metric}_optimized"])
    if np.isnan(before).all() and np.isnan(after).all():
        LOGGER.warning("No %s values available for chart", label.lower())
        return False
    if metric == "bytes_processed":
        before = before / 1e9
        after = after / 1e9

    cases = list(comparison["Case"])
    x = np.arange(len(cases))
    width = 0.38

    fig, ax = plt.subplots(figsize=(10, 6))
    for offset, variant, values in ((-width / 2, "unoptimized", before), (width / 2, "optimized", after)):
        bars = ax.bar(
            x + offset,
            np.nan_to_num(values),
            width,
            label=variant.title(),
            color=VARIANT_COLORS[variant],
            alpha=0.85,
            edgecolor="white",
            linewidth=1.5,
        )
        for bar, value in zip(bars, values):
            if np.isnan(value):
                continue
            ax.text(
                bar.get_x() + bar.get_width() / 2.0,
                bar.get_height(),
                f"{value:,.2f}" if metric == "bytes_processed" else f"{value:,.0f}",
                ha="center",
                va="bottom",
                fontsize=8,
                fontweight="semibold",
            )

    ax.set_xticks(x)
    ax.set_xticklabels(cases)
    ax.set_ylabel(label, fontweight="semibold")
    ax.set_xlabel("Query", fontweight="semibold")
    ax.set_title(f"{label}: Unoptimized vs Optimized", fontweight="bold", pad=15)
    ax.legend(frameon=True, fancybox=True, shadow=True)
    ax.grid(True, alpha=0.3, axis="y", linestyle="--")
    ax.set_axisbelow(True)
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)

    plt.tight_layout()
    fig.savefig(chart_path, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    return True


def _as_float(series: pd.Series) -> np.ndarray:
    return pd.array(series.tolist(), dtype="Float64").to_numpy(dtype=float, na_value=np.nan)
