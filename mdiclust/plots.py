"""
Visualization helpers for sampler output.

These functions return Matplotlib figures so they can be embedded in
Jupyter notebooks without embedding plotting logic inline.
"""

from __future__ import annotations

from typing import Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from sklearn.decomposition import PCA

from .data_io import ViewData


def _phi_columns(phis: pd.DataFrame) -> list:
    columns = [col for col in phis.columns if str(col).startswith("phi_")]
    if not columns:
        raise ValueError("No phi columns found in the sample table.")
    return columns


def plot_similarity_matrix(
    psm: np.ndarray,
    *,
    labels: Optional[np.ndarray] = None,
    title: str = "Posterior similarity matrix",
    cmap: str = "Blues",
    figsize: Optional[Sequence[float]] = None,
) -> plt.Figure:
    """
    Heatmap of a posterior similarity matrix.

    When ``labels`` is given, items are ordered by label so that clusters
    appear as diagonal blocks.
    """

    psm = np.asarray(psm)
    if psm.ndim != 2 or psm.shape[0] != psm.shape[1]:
        raise ValueError("psm must be square.")
    order = np.arange(psm.shape[0]) if labels is None else np.argsort(labels, kind="stable")

    fig, ax = plt.subplots(figsize=figsize or (6, 5))
    sns.heatmap(
        psm[np.ix_(order, order)],
        vmin=0.0,
        vmax=1.0,
        cmap=cmap,
        square=True,
        xticklabels=False,
        yticklabels=False,
        cbar_kws={"label": "co-clustering probability"},
        ax=ax,
    )
    ax.set_title(title)
    fig.tight_layout()
    return fig


def plot_phi_trace(
    phis: pd.DataFrame,
    *,
    figsize: Optional[Sequence[float]] = None,
) -> plt.Figure:
    """
    Phi against iteration, one line per chain, one panel per view pair.
    """

    columns = _phi_columns(phis)
    fig, axes = plt.subplots(len(columns), 1, figsize=figsize or (7, 2.5 * len(columns)), sharex=True)
    axes = np.atleast_1d(axes)

    for ax, column in zip(axes, columns):
        for chain, frame in phis.groupby("chain"):
            ax.plot(frame["iteration"], frame[column], linewidth=0.8, label=f"chain {chain}")
        ax.set_ylabel(column)
        ax.grid(True, linestyle="--", linewidth=0.5, alpha=0.5)
    axes[-1].set_xlabel("iteration")
    if phis["chain"].nunique() > 1:
        axes[0].legend(loc="upper right", fontsize="small")

    fig.tight_layout()
    return fig


def plot_phi_density(
    phis: pd.DataFrame,
    *,
    figsize: Optional[Sequence[float]] = None,
) -> plt.Figure:
    """
    Pooled posterior density of every phi.
    """

    columns = _phi_columns(phis)
    long = phis.melt(value_vars=columns, var_name="pair", value_name="phi")

    fig, ax = plt.subplots(figsize=figsize or (6, 4))
    sns.histplot(data=long, x="phi", hue="pair", stat="density", element="step", ax=ax)
    ax.set_xlabel("phi")
    ax.set_title("Phi posterior")
    fig.tight_layout()
    return fig


def cluster_scatter_2d(
    view: ViewData,
    labels: np.ndarray,
    *,
    title: str = "",
    use_pca: bool = True,
    figsize: Optional[Sequence[float]] = None,
    cmap: str = "tab20",
    marker_size: float = 20.0,
) -> plt.Figure:
    """
    Plot a 2D scatter of clustered data.

    If the view has more than two features and ``use_pca`` is True, a PCA
    projection onto the first two components is used.
    """

    values = np.asarray(view.values, dtype=np.float64)
    if use_pca and values.shape[1] > 2:
        projector = PCA(n_components=2, random_state=0)
        coords = projector.fit_transform(values)
        x_label, y_label = "PC1", "PC2"
    else:
        if values.shape[1] == 1:
            values = np.column_stack([values[:, 0], np.zeros(values.shape[0])])
        coords = values[:, :2]
        names = view.feature_names or ("feature_0", "feature_1")
        x_label = names[0]
        y_label = names[1] if len(names) > 1 else ""

    fig, ax = plt.subplots(figsize=figsize or (7, 6))
    scatter = ax.scatter(
        coords[:, 0],
        coords[:, 1],
        c=labels,
        cmap=cmap,
        s=marker_size,
        alpha=0.8,
        edgecolors="none",
    )
    ax.set_xlabel(x_label)
    ax.set_ylabel(y_label)
    ax.set_title(title or f"Cluster assignment ({view.name or view.kind})")
    ax.grid(True, linestyle="--", linewidth=0.5, alpha=0.5)
    fig.colorbar(scatter, ax=ax, label="cluster id")
    fig.tight_layout()
    return fig
