"""Tests for the Gaussian and categorical mixture components."""

import numpy as np
import pytest
from scipy.stats import norm

from mdiclust.components import (
    CategoricalComponent,
    CategoricalPrior,
    GaussianComponent,
    GaussianPrior,
    make_component,
)
from mdiclust.errors import NumericalError

# Tolerances
RTOL = 1e-6
ATOL = 1e-8


@pytest.fixture
def gaussian_prior() -> GaussianPrior:
    """Prior for three standardised features."""
    values = np.random.default_rng(0).normal(size=(200, 3))
    return GaussianPrior.from_data(values)


@pytest.fixture
def categorical_prior() -> CategoricalPrior:
    """Prior for features with 2, 3 and 4 levels."""
    return CategoricalPrior(n_levels=np.array([2, 3, 4]), alpha=1.0)


class TestGaussianComponent:
    """Density evaluation and conjugate updates of the Gaussian component."""

    def test_log_density_matches_scipy(self, gaussian_prior: GaussianPrior) -> None:
        """Log density is the sum of independent normal log pdfs."""
        component = GaussianComponent(
            gaussian_prior, mean=np.array([0.0, 1.0, -1.0]), variance=np.array([1.0, 2.0, 0.5])
        )
        x = np.array([0.3, 0.0, -2.0])
        expected = norm.logpdf(x, loc=component.mean, scale=np.sqrt(component.variance)).sum()
        assert np.isclose(component.log_density(x), expected, rtol=RTOL, atol=ATOL)

    def test_log_likelihood_rows(self, gaussian_prior: GaussianPrior) -> None:
        """Vectorised evaluation agrees with the single-item version."""
        component = GaussianComponent(gaussian_prior)
        X = np.random.default_rng(1).normal(size=(5, 3))
        rows = [component.log_density(x) for x in X]
        assert np.allclose(component.log_likelihood(X), rows, rtol=RTOL, atol=ATOL)

    def test_zero_variance_raises(self, gaussian_prior: GaussianPrior) -> None:
        """Degenerate parameters are reported as numerical errors."""
        component = GaussianComponent(gaussian_prior, variance=np.zeros(3))
        with pytest.raises(NumericalError):
            component.log_density(np.zeros(3))

    def test_empty_cluster_draws_from_prior(
        self, gaussian_prior: GaussianPrior, rng: np.random.Generator
    ) -> None:
        """With no members the component is redrawn from its prior."""
        component = GaussianComponent(gaussian_prior)
        values = rng.normal(size=(10, 3))
        allocations = np.zeros(10, dtype=int)
        component.resample(values, allocations, cluster=1, rng=rng)
        assert np.all(np.isfinite(component.mean))
        assert np.all(component.variance >= gaussian_prior.variance_floor)

    def test_posterior_concentrates_on_members(
        self, gaussian_prior: GaussianPrior, rng: np.random.Generator
    ) -> None:
        """Many members pin the mean close to their sample mean."""
        component = GaussianComponent(gaussian_prior)
        values = rng.normal(loc=3.0, scale=0.5, size=(2000, 3))
        component.resample(values, np.zeros(2000, dtype=int), cluster=0, rng=rng)
        assert np.allclose(component.mean, values.mean(axis=0), atol=0.1)
        assert np.allclose(component.variance, 0.25, atol=0.05)

    def test_identical_members_keep_finite_density(
        self, gaussian_prior: GaussianPrior, rng: np.random.Generator
    ) -> None:
        """Variance is floored so identical points do not collapse the density."""
        component = GaussianComponent(gaussian_prior)
        values = np.ones((500, 3))
        component.resample(values, np.zeros(500, dtype=int), cluster=0, rng=rng)
        assert np.all(component.variance >= gaussian_prior.variance_floor)
        assert np.isfinite(component.log_density(np.ones(3)))


class TestCategoricalComponent:
    """Density evaluation and Dirichlet updates of the categorical component."""

    def test_uniform_start(self, categorical_prior: CategoricalPrior) -> None:
        """Before any update each feature is uniform over its levels."""
        component = CategoricalComponent(categorical_prior)
        expected = np.log(1 / 2) + np.log(1 / 3) + np.log(1 / 4)
        assert np.isclose(component.log_density(np.array([1, 2, 3])), expected)

    def test_resample_stays_on_simplex(
        self, categorical_prior: CategoricalPrior, rng: np.random.Generator
    ) -> None:
        """Each feature's probabilities sum to one; padded levels stay at zero."""
        component = CategoricalComponent(categorical_prior)
        values = np.column_stack(
            [rng.integers(0, 2, 30), rng.integers(0, 3, 30), rng.integers(0, 4, 30)]
        )
        component.resample(values, np.zeros(30, dtype=int), cluster=0, rng=rng)
        assert np.allclose(component.probabilities.sum(axis=1), 1.0)
        assert component.probabilities[0, 2:].sum() == 0.0
        assert component.probabilities[1, 3:].sum() == 0.0

    def test_empty_cluster_draws_from_prior(
        self, categorical_prior: CategoricalPrior, rng: np.random.Generator
    ) -> None:
        """An unoccupied cluster still gets valid probabilities."""
        component = CategoricalComponent(categorical_prior)
        values = np.zeros((5, 3), dtype=int)
        component.resample(values, np.zeros(5, dtype=int), cluster=2, rng=rng)
        assert np.allclose(component.probabilities.sum(axis=1), 1.0)
        assert np.isfinite(component.log_density(np.array([1, 2, 3])))

    def test_posterior_follows_counts(
        self, categorical_prior: CategoricalPrior, rng: np.random.Generator
    ) -> None:
        """A feature that is always level 1 gets most of its mass there."""
        component = CategoricalComponent(categorical_prior)
        values = np.tile(np.array([1, 0, 3]), (500, 1))
        component.resample(values, np.zeros(500, dtype=int), cluster=0, rng=rng)
        assert component.probabilities[0, 1] > 0.95
        assert component.probabilities[2, 3] > 0.95

    def test_unknown_level_rejected(self, categorical_prior: CategoricalPrior) -> None:
        """Codes beyond a feature's levels are a caller error."""
        component = CategoricalComponent(categorical_prior)
        with pytest.raises(ValueError):
            component.log_density(np.array([2, 0, 0]))


def test_make_component_dispatch(
    gaussian_prior: GaussianPrior, categorical_prior: CategoricalPrior
) -> None:
    """Components are built from the view kind tag."""
    assert isinstance(make_component("gaussian", gaussian_prior), GaussianComponent)
    assert isinstance(make_component("categorical", categorical_prior), CategoricalComponent)
    with pytest.raises(ValueError):
        make_component("poisson", gaussian_prior)
