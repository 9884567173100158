"""Shared fixtures for the mdiclust test suite."""

import matplotlib

matplotlib.use("Agg")

import numpy as np  # noqa: E402
import pytest  # noqa: E402

from mdiclust.data_io import ViewData  # noqa: E402
from mdiclust.synthetic import generate_multiview_dataset  # noqa: E402


@pytest.fixture
def rng() -> np.random.Generator:
    """Random generator for tests."""
    return np.random.default_rng(42)


@pytest.fixture
def shared_dataset():
    """Two well-separated Gaussian views with identical memberships."""
    return generate_multiview_dataset(
        n_samples=50,
        n_clusters=3,
        view_kinds=("gaussian", "gaussian"),
        n_features=3,
        separation=6.0,
        shared_fraction=1.0,
        seed=7,
    )


@pytest.fixture
def mixed_dataset():
    """Gaussian and categorical view sharing most memberships."""
    return generate_multiview_dataset(
        n_samples=40,
        n_clusters=3,
        view_kinds=("gaussian", "categorical"),
        n_features=(2, 6),
        shared_fraction=0.8,
        max_clusters=5,
        seed=11,
    )


@pytest.fixture
def gaussian_view(rng: np.random.Generator) -> ViewData:
    """Single Gaussian view with two clusters."""
    values = np.vstack(
        [rng.normal(-5.0, 1.0, size=(20, 2)), rng.normal(5.0, 1.0, size=(20, 2))]
    )
    return ViewData(values=values, kind="gaussian", n_clusters=4, name="g")
