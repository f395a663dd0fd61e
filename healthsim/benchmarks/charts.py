from __future__ import annotations

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from .collector import RunReport

LOGGER = logging.getLogger("healthsim.benchmark.charts")

sns.set_style("whitegrid")
plt.rcParams["figure.dpi"] = 100
plt.rcParams["savefig.dpi"] = 300
plt.rcParams["font.size"] = 10
plt.rcParams["axes.labelsize"] = 11
plt.rcParams["axes.titlesize"] = 13
plt.rcParams["legend.fontsize"] = 9
plt.rcParams["figure.titlesize"] = 14

OUTCOME_COLORS = {
    "tx_success": "#2E86AB",  # Blue
    "view_success": "#6A994E",  # Green
    "failed": "#C73E1D",  # Red
}

OUTCOME_LABELS = {
    "tx_success": "Transactions",
    "view_success": "Views",
    "failed": "Failed",
}

MAX_ERROR_ROWS = 8


def render_run_charts(report: RunReport, output_dir: Path, filename: str = "run_summary.png") -> Path | None:
    """Render throughput, latency, outcome and error panels for a run."""
    chart_path = output_dir / filename
    df = report.to_dataframe()
    if df.empty:
        LOGGER.warning("No finished batches, skipping chart %s", chart_path)
        return None

    fig, axes = plt.subplots(2, 2, figsize=(14, 10))
    _render_throughput(df, axes[0][0])
    _render_latency(df, axes[0][1])
    _render_outcomes(df, axes[1][0])
    _render_errors(report.errors_dataframe(), axes[1][1])

    title = "Contract Benchmark Summary"
    if report.timed_out:
        title += " (deadline reached)"
    fig.suptitle(title, fontweight="bold")
    plt.tight_layout()
    fig.savefig(chart_path, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    LOGGER.info("Rendering chart %s", chart_path)
    return chart_path


def _render_throughput(df: pd.DataFrame, ax: plt.Axes) -> None:
    labels = [str(size) for size in df["batch_size"]]
    bars = ax.bar(labels, df["throughput_per_s"], color="#2E86AB", alpha=0.8, edgecolor="white", linewidth=2)
    for bar in bars:
        height = bar.get_height()
        ax.text(
            bar.get_x() + bar.get_width() / 2.0,
            height,
            f"{height:.1f}",
            ha="center",
            va="bottom",
            fontweight="semibold",
        )
    ax.set_xlabel("Batch size", fontweight="semibold")
    ax.set_ylabel("Throughput (actions/s)", fontweight="semibold")
    ax.set_title("Throughput per Batch", fontweight="bold", pad=12)
    ax.grid(True, alpha=0.3, axis="y", linestyle="--")


def _render_latency(df: pd.DataFrame, ax: plt.Axes) -> None:
    ax.plot(
        df["batch_size"],
        df["avg_latency_s"],
        marker="o",
        linewidth=2.5,
        markersize=8,
        color="#F18F01",
        label="Avg latency",
    )
    ax.set_xlabel("Batch size", fontweight="semibold")
    ax.set_ylabel("Average confirmation latency (s)", fontweight="semibold")
    ax.set_ylim(bottom=0)
    ax.grid(True, alpha=0.3, linestyle="--")

    rate_ax = ax.twinx()
    rate_ax.plot(
        df["batch_size"],
        df["success_rate"],
        marker="s",
        linestyle="--",
        linewidth=1.5,
        color="#A23B72",
        label="Success rate",
    )
    rate_ax.set_ylabel("Success rate (%)", fontweight="semibold")
    rate_ax.set_ylim(0, 105)
    rate_ax.grid(False)

    handles, labels = ax.get_legend_handles_labels()
    rate_handles, rate_labels = rate_ax.get_legend_handles_labels()
    ax.legend(handles + rate_handles, labels + rate_labels, loc="lower right", frameon=True)
    ax.set_title("Latency and Success Rate", fontweight="bold", pad=12)


def _render_outcomes(df: pd.DataFrame, ax: plt.Axes) -> None:
    labels = [str(size) for size in df["batch_size"]]
    bottom = np.zeros(len(df))
    for column, color in OUTCOME_COLORS.items():
        values = df[column].to_numpy(dtype=float)
        ax.bar(
            labels,
            values,
            bottom=bottom,
            label=OUTCOME_LABELS[column],
            color=color,
            alpha=0.8,
            edgecolor="white",
            linewidth=1.5,
        )
        bottom += values
    ax.set_xlabel("Batch size", fontweight="semibold")
    ax.set_ylabel("Attempted actions", fontweight="semibold")
    ax.set_title("Outcome Breakdown", fontweight="bold", pad=12)
    ax.legend(loc="upper left", frameon=True, fancybox=True)
    ax.grid(True, alpha=0.3, axis="y", linestyle="--")


def _render_errors(errors: pd.DataFrame, ax: plt.Axes) -> None:
    if errors.empty:
        ax.text(0.5, 0.5, "No failures recorded", ha="center", va="center", fontsize=12)
        ax.set_axis_off()
        return

    top_reasons = (
        errors.groupby("reason")["count"].sum().sort_values(ascending=False).head(MAX_ERROR_ROWS).index
    )
    pivot = (
        errors[errors["reason"].isin(top_reasons)]
        .pivot_table(index="reason", columns="batch_size", values="count", aggfunc="sum", fill_value=0)
        .reindex(top_reasons)
        .astype(int)
    )
    pivot.index = [_shorten(reason) for reason in pivot.index]
    sns.heatmap(
        pivot,
        annot=True,
        fmt="d",
        cmap="YlOrRd",
        cbar_kws={"label": "Occurrences"},
        ax=ax,
    )
    ax.set_xlabel("Batch size", fontweight="semibold")
    ax.set_ylabel("")
    ax.set_title("Failure Reasons", fontweight="bold", pad=12)


def _shorten(reason: str, width: int = 48) -> str:
    if len(reason) <= width:
        return reason
    return reason[: width - 3] + "..."
