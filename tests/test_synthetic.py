"""Tests for the synthetic data generators."""

import numpy as np
import pytest

from mdiclust.metrics import adjusted_rand_index
from mdiclust.synthetic import (
    describe_dataset,
    fixed_label_mask,
    generate_categorical_mixture,
    generate_count_mixture,
    generate_gaussian_mixture,
    generate_multiview_dataset,
    permute_labels,
    sample_labels,
    toeplitz_covariance,
)


class TestGenerators:
    def test_gaussian_shape_and_means(self) -> None:
        labels = np.repeat([0, 1], 500)
        data = generate_gaussian_mixture(labels=labels, n_features=3, means=[0.0, 10.0], seed=0)
        assert data.shape == (1000, 3)
        assert np.allclose(data[:500].mean(axis=0), 0.0, atol=0.2)
        assert np.allclose(data[500:].mean(axis=0), 10.0, atol=0.2)

    def test_gaussian_matrix_covariance(self) -> None:
        cov = toeplitz_covariance(4, decay=0.2)
        data = generate_gaussian_mixture(
            labels=np.zeros(5000, dtype=int), n_features=4, means=[0.0], covariance=cov, seed=1
        )
        assert np.allclose(np.cov(data.T), cov, atol=0.1)

    def test_gaussian_label_range(self) -> None:
        with pytest.raises(ValueError):
            generate_gaussian_mixture(labels=[0, 2], n_features=2, means=[0.0, 1.0])

    def test_same_seed_same_data(self) -> None:
        kwargs = dict(labels=[0, 1, 1], n_features=2, means=[0.0, 3.0])
        assert np.array_equal(
            generate_gaussian_mixture(seed=5, **kwargs), generate_gaussian_mixture(seed=5, **kwargs)
        )

    def test_categorical_codes(self) -> None:
        codes = generate_categorical_mixture(labels=np.repeat([0, 1], 50), n_features=4, n_levels=3, seed=2)
        assert codes.shape == (100, 4)
        assert codes.min() >= 0 and codes.max() <= 2
        assert codes.dtype.kind == "i"

    def test_count_mixture(self) -> None:
        counts = generate_count_mixture(
            labels=np.repeat([0, 1], 2000), n_features=2, means=[5.0, 50.0], seed=3
        )
        assert (counts >= 0).all()
        assert np.allclose(counts[:2000].mean(axis=0), 5.0, rtol=0.15)
        assert np.allclose(counts[2000:].mean(axis=0), 50.0, rtol=0.15)

    def test_toeplitz(self) -> None:
        cov = toeplitz_covariance(3, decay=0.5)
        assert np.allclose(cov, [[1.0, 0.5, 0.0], [0.5, 1.0, 0.5], [0.0, 0.5, 1.0]])
        with pytest.raises(ValueError):
            toeplitz_covariance(0)


class TestLabels:
    def test_sample_labels_probs(self) -> None:
        with pytest.raises(ValueError):
            sample_labels(10, 2, label_probs=[0.2, 0.2])
        labels = sample_labels(100, 3, seed=0)
        assert set(np.unique(labels)) <= {0, 1, 2}

    def test_permute_none_keeps_labels(self) -> None:
        labels = np.arange(10) % 3
        assert np.array_equal(permute_labels(labels, fraction=0.0, seed=0), labels)

    def test_permute_keeps_counts(self) -> None:
        labels = np.arange(30) % 3
        shuffled = permute_labels(labels, fraction=1.0, seed=0)
        assert np.array_equal(np.bincount(shuffled), np.bincount(labels))

    def test_fixed_mask_fraction(self) -> None:
        mask = fixed_label_mask(50, fraction=0.2, seed=0)
        assert mask.sum() == 10


class TestMultiViewDataset:
    def test_shared_views(self) -> None:
        dataset = generate_multiview_dataset(
            n_samples=30, n_clusters=3, view_kinds=("gaussian", "categorical"), seed=0
        )
        assert len(dataset.views) == 2
        assert dataset.labels.shape == (2, 30)
        assert np.array_equal(dataset.labels[0], dataset.labels[1])
        assert dataset.views[1].kind == "categorical"

    def test_independent_views(self) -> None:
        dataset = generate_multiview_dataset(
            n_samples=300, n_clusters=3, shared_fraction=0.0, seed=1
        )
        assert abs(adjusted_rand_index(dataset.labels[0], dataset.labels[1])) < 0.05

    def test_fixed_and_description(self) -> None:
        dataset = generate_multiview_dataset(
            n_samples=20,
            n_clusters=2,
            view_kinds=("gaussian",),
            fixed_fraction=0.5,
            max_clusters=6,
            seed=2,
        )
        info = describe_dataset(dataset)
        assert info["view0"]["n_fixed"] == 10
        assert info["view0"]["n_clusters"] == 6
        start = dataset.initial_labels()[0]
        mask = dataset.fixed[0]
        assert np.array_equal(start[mask], dataset.labels[0][mask])
        assert np.all(start[~mask] == -1)

    def test_initial_labels_with_other_masks(self) -> None:
        dataset = generate_multiview_dataset(n_samples=12, n_clusters=2, seed=3)
        masks = [np.arange(12) < 4, np.zeros(12, dtype=bool)]
        first, second = dataset.initial_labels(masks)
        assert np.array_equal(first[:4], dataset.labels[0][:4])
        assert np.all(first[4:] == -1)
        assert np.all(second == -1)

    def test_unknown_kind(self) -> None:
        with pytest.raises(ValueError):
            generate_multiview_dataset(n_samples=10, n_clusters=2, view_kinds=("poisson",))
