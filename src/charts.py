# chart rendering for the analysis scripts. Earth Engine computes the numbers
# (histograms, areas, monthly means), we fetch them with getInfo() and draw
# them here as PNG files with matplotlib

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
from pathlib import Path


def _save(fig, out_path):
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(out_path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    print(f"  ✓ Chart saved: {out_path}")
    return out_path


def plot_histogram(hist, title, xlabel, out_path, ylabel="Pixel count", color="#4393c3"):
    """
    Plot the output of ee.Reducer.histogram().

    hist is the dictionary returned for one band: {"bucketMeans", "histogram",
    "bucketMin", "bucketWidth"}.
    """
    counts = np.asarray(hist.get("histogram") or [], dtype=float)
    width = float(hist.get("bucketWidth") or 1)
    start = float(hist.get("bucketMin") or 0)
    lefts = start + width * np.arange(len(counts))

    fig, ax = plt.subplots(figsize=(10, 5))
    ax.bar(lefts, counts, width=width, align="edge", color=color, edgecolor="white")
    ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    ax.grid(axis="y", alpha=0.3)
    return _save(fig, out_path)


# ColumnChart equivalent
def plot_columns(labels, values, title, xlabel, ylabel, out_path, color="#2b8cbe"):
    fig, ax = plt.subplots(figsize=(max(6, 0.5 * len(labels) + 3), 5))
    positions = np.arange(len(labels))
    ax.bar(positions, values, color=color)
    ax.set_xticks(positions)
    ax.set_xticklabels([str(label) for label in labels], rotation=45, ha="right")
    ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    ax.grid(axis="y", alpha=0.3)
    return _save(fig, out_path)


def plot_pie(labels, values, colors, title, out_path):
    """Pie chart with one slice per label, legend on the right."""
    fig, ax = plt.subplots(figsize=(9, 6))
    wedges, _ = ax.pie(
        values,
        colors=colors,
        startangle=90,
        counterclock=False,
        wedgeprops={"edgecolor": "#444444", "linewidth": 0.5},
    )
    total = float(np.sum(values)) or 1.0
    legend_labels = [f"{label} ({100 * v / total:.1f}%)" for label, v in zip(labels, values)]
    ax.legend(wedges, legend_labels, loc="center left", bbox_to_anchor=(1.0, 0.5), frameon=False)
    ax.set_title(title)
    ax.axis("equal")
    return _save(fig, out_path)


def plot_time_series(dates, values, title, ylabel, out_path, label=None, color="#ffc61a"):
    fig, ax = plt.subplots(figsize=(12, 5))
    ax.plot(dates, values, color=color, linewidth=3, marker="o", markersize=2, label=label)
    ax.axhline(0, color="#1a1aff", linewidth=0.8)
    ax.set_title(title)
    ax.set_xlabel("Date", fontweight="bold")
    ax.set_ylabel(ylabel, fontweight="bold", color="#1a1aff")
    ax.grid(alpha=0.3)
    if label:
        ax.legend()
    fig.autofmt_xdate()
    return _save(fig, out_path)
