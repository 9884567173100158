"""Tests for the single-view Gibbs updates."""

import numpy as np
import pytest

from mdiclust.data_io import ViewData
from mdiclust.errors import ConfigurationError
from mdiclust.views import ViewModel, check_labels


class TestViewModelUpdates:
    """Invariants that must hold after every sweep."""

    def test_allocations_stay_in_range(
        self, gaussian_view: ViewData, rng: np.random.Generator
    ) -> None:
        """Labels always lie in [0, K)."""
        model = ViewModel(gaussian_view, rng=rng)
        for _ in range(50):
            model.gibbs_sweep(rng)
            assert model.allocations.min() >= 0
            assert model.allocations.max() < gaussian_view.n_clusters

    def test_weights_on_simplex(self, gaussian_view: ViewData, rng: np.random.Generator) -> None:
        """Weights are non-negative and sum to one after every update."""
        model = ViewModel(gaussian_view, rng=rng)
        for _ in range(50):
            model.gibbs_sweep(rng)
            assert np.all(model.weights >= 0)
            assert np.isclose(model.weights.sum(), 1.0)

    def test_fixed_items_never_move(self, gaussian_view: ViewData, rng: np.random.Generator) -> None:
        """Items in the fixed mask keep their supplied labels."""
        fixed = np.zeros(gaussian_view.n_samples, dtype=bool)
        fixed[[0, 1, 25, 30]] = True
        labels = np.zeros(gaussian_view.n_samples, dtype=int)
        labels[[25, 30]] = 3
        model = ViewModel(gaussian_view, fixed=fixed, initial_labels=labels, rng=rng)
        for _ in range(50):
            model.gibbs_sweep(rng)
            assert np.array_equal(model.allocations[fixed], labels[fixed])

    def test_separates_two_clusters(self, gaussian_view: ViewData, rng: np.random.Generator) -> None:
        """Well-separated groups never share a cluster."""
        model = ViewModel(gaussian_view, rng=rng)
        for _ in range(100):
            model.gibbs_sweep(rng)
        left, right = model.allocations[:20], model.allocations[20:]
        assert not set(left.tolist()) & set(right.tolist())

    def test_inputs_are_read_only(self, gaussian_view: ViewData, rng: np.random.Generator) -> None:
        """The observation matrix and mask cannot be mutated through the model."""
        model = ViewModel(gaussian_view, rng=rng)
        with pytest.raises(ValueError):
            model.values[0, 0] = 1.0
        with pytest.raises(ValueError):
            model.fixed[0] = True

    def test_rejected_weight_proposal_keeps_weights(
        self, gaussian_view: ViewData, rng: np.random.Generator
    ) -> None:
        """A normaliser that always grows for the proposal rejects it."""
        model = ViewModel(gaussian_view, rng=rng)
        before = model.weights.copy()

        def log_normaliser(weights: np.ndarray) -> float:
            return 0.0 if weights is model.weights else 1e3

        assert not model.update_weights(rng, log_normaliser)
        assert np.array_equal(model.weights, before)

    def test_swap_labels(self, gaussian_view: ViewData, rng: np.random.Generator) -> None:
        """Swapping exchanges allocations, weights and components together."""
        model = ViewModel(gaussian_view, rng=rng)
        allocations = model.allocations.copy()
        weights = model.weights.copy()
        components = list(model.components)
        model.swap_labels(0, 1)
        assert np.array_equal(model.allocations == 1, allocations == 0)
        assert np.array_equal(model.allocations == 0, allocations == 1)
        assert model.weights[0] == weights[1] and model.weights[1] == weights[0]
        assert model.components[0] is components[1]


class TestLabelValidation:
    """Configuration errors raised before any sampling."""

    def test_mask_shape(self, gaussian_view: ViewData) -> None:
        with pytest.raises(ConfigurationError):
            check_labels(gaussian_view, np.zeros(3, dtype=bool), None)

    def test_fixed_without_labels(self, gaussian_view: ViewData) -> None:
        fixed = np.ones(gaussian_view.n_samples, dtype=bool)
        with pytest.raises(ConfigurationError):
            check_labels(gaussian_view, fixed, None)

    def test_too_many_fixed_labels(self) -> None:
        """More distinct fixed labels than K is rejected."""
        view = ViewData(values=np.zeros((6, 1)), n_clusters=2)
        fixed = np.ones(6, dtype=bool)
        with pytest.raises(ConfigurationError):
            check_labels(view, fixed, np.array([0, 1, 2, 0, 1, 2]))

    def test_fixed_label_out_of_range(self) -> None:
        view = ViewData(values=np.zeros((4, 1)), n_clusters=3)
        fixed = np.array([True, False, False, False])
        with pytest.raises(ConfigurationError):
            check_labels(view, fixed, np.array([3, 0, 0, 0]))

    def test_free_labels_out_of_range_are_redrawn(self, rng: np.random.Generator) -> None:
        """Only fixed labels are validated; free ones are resampled."""
        view = ViewData(values=rng.normal(size=(4, 1)), n_clusters=2)
        model = ViewModel(view, initial_labels=np.array([5, -1, 0, 1]), rng=rng)
        assert model.allocations.min() >= 0 and model.allocations.max() < 2
