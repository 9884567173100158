"""Smoke tests for the plotting helpers."""

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

from mdiclust.data_io import ViewData
from mdiclust.plots import (
    cluster_scatter_2d,
    plot_phi_density,
    plot_phi_trace,
    plot_similarity_matrix,
)


@pytest.fixture
def phis(rng: np.random.Generator) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "chain": np.repeat([0, 1], 20),
            "iteration": np.tile(np.arange(20), 2),
            "phi_a_b": rng.gamma(2.0, 1.0, 40),
        }
    )


def test_similarity_heatmap() -> None:
    labels = np.array([1, 0, 1, 0])
    psm = (labels[:, None] == labels[None, :]).astype(float)
    fig = plot_similarity_matrix(psm, labels=labels)
    assert isinstance(fig, plt.Figure)
    plt.close(fig)
    with pytest.raises(ValueError):
        plot_similarity_matrix(np.zeros((2, 3)))


def test_phi_plots(phis: pd.DataFrame) -> None:
    for plot in (plot_phi_trace, plot_phi_density):
        fig = plot(phis)
        assert isinstance(fig, plt.Figure)
        plt.close(fig)
    with pytest.raises(ValueError):
        plot_phi_trace(phis.drop(columns="phi_a_b"))


def test_cluster_scatter(rng: np.random.Generator) -> None:
    view = ViewData(values=rng.normal(size=(30, 4)), name="v")
    fig = cluster_scatter_2d(view, rng.integers(0, 3, 30))
    assert isinstance(fig, plt.Figure)
    plt.close(fig)
