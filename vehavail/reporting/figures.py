import os
import tempfile
from pathlib import Path

import pandas as pd

# Matplotlib must be configured before importing pyplot.
_mpl_cache_dir = Path(tempfile.gettempdir()) / "matplotlib"
_mpl_cache_dir.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("MPLCONFIGDIR", str(_mpl_cache_dir))

import matplotlib  # noqa: E402

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
from sklearn.metrics import ConfusionMatrixDisplay  # noqa: E402


def save_figure(fig, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=300, bbox_inches="tight")
    plt.close(fig)


def plot_confusion_matrix(cm: pd.DataFrame, title: str):
    fig, ax = plt.subplots(figsize=(5, 5))
    disp = ConfusionMatrixDisplay(confusion_matrix=cm.to_numpy(), display_labels=list(cm.columns))
    disp.plot(ax=ax, colorbar=False, values_format="d")
    ax.set_xlabel("Predicted")
    ax.set_ylabel("Actual")
    ax.set_title(title)
    fig.tight_layout()
    return fig


def plot_share_bars(shares: pd.DataFrame, title: str, ylabel: str = "Share of households"):
    """Grouped bars: one group per row of `shares`, one bar per column."""
    fig, ax = plt.subplots(figsize=(7, 4.5))
    shares.plot(kind="bar", ax=ax, width=0.8)
    ax.set_title(title)
    ax.set_xlabel("")
    ax.set_ylabel(ylabel)
    ax.set_ylim(0, 1)
    ax.legend(title=shares.columns.name, fontsize=8)
    ax.tick_params(axis="x", labelrotation=0)
    fig.tight_layout()
    return fig
