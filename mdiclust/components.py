"""
Per-cluster densities for the two supported view kinds.

Each component holds one cluster's parameters for one view and exposes the
same small interface:

    log_likelihood(X)            -> log density of every row of ``X``
    log_density(x)               -> log density of a single feature vector
    resample(X, allocations, k)  -> redraw parameters from the conjugate
                                    posterior given the rows allocated to k

Empty clusters are resampled from the prior, so an overfitted mixture keeps
all K components alive even when some are unoccupied.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .errors import NumericalError


__all__ = [
    "GaussianPrior",
    "CategoricalPrior",
    "MixtureComponent",
    "GaussianComponent",
    "CategoricalComponent",
    "make_component",
]

_LOG_2PI = np.log(2.0 * np.pi)
_PROBABILITY_FLOOR = 1e-12


@dataclass(frozen=True)
class GaussianPrior:
    """
    Normal-Inverse-Gamma hyperparameters, one entry per feature.

    ``mu | sigma2 ~ N(mean, sigma2 / kappa)`` and
    ``sigma2 ~ InvGamma(shape, scale)``.
    """

    mean: np.ndarray
    kappa: float
    shape: float
    scale: np.ndarray
    variance_floor: float = 1e-6

    @classmethod
    def from_data(
        cls,
        values: np.ndarray,
        *,
        kappa: float = 0.01,
        shape: float = 2.0,
        scale_factor: float = 0.5,
        variance_floor: float = 1e-6,
    ) -> "GaussianPrior":
        """Empirical-Bayes prior centred on the column means."""
        values = np.asarray(values, dtype=np.float64)
        column_var = values.var(axis=0)
        column_var = np.where(column_var > variance_floor, column_var, 1.0)
        return cls(
            mean=values.mean(axis=0),
            kappa=float(kappa),
            shape=float(shape),
            scale=scale_factor * column_var,
            variance_floor=float(variance_floor),
        )


@dataclass(frozen=True)
class CategoricalPrior:
    """
    Symmetric Dirichlet prior for each feature's category probabilities.
    """

    n_levels: np.ndarray
    alpha: float = 1.0

    @classmethod
    def from_data(cls, values: np.ndarray, *, alpha: float = 1.0) -> "CategoricalPrior":
        codes = np.asarray(values, dtype=int)
        return cls(n_levels=codes.max(axis=0) + 1, alpha=float(alpha))

    @property
    def max_levels(self) -> int:
        return int(self.n_levels.max())

    def level_mask(self) -> np.ndarray:
        """Boolean (n_features, max_levels) mask of levels that exist."""
        return np.arange(self.max_levels)[None, :] < self.n_levels[:, None]


class MixtureComponent:
    """
    Interface shared by the component variants.
    """

    kind: str = ""

    def log_likelihood(self, values: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def log_density(self, x: np.ndarray) -> float:
        x = np.asarray(x)
        if x.ndim != 1:
            raise ValueError("log_density expects a single feature vector.")
        return float(self.log_likelihood(x[None, :])[0])

    def resample(
        self,
        values: np.ndarray,
        allocations: np.ndarray,
        cluster: int,
        rng: np.random.Generator,
    ) -> None:
        members = values[allocations == cluster]
        self.sample_posterior(members, rng)

    def sample_posterior(self, members: np.ndarray, rng: np.random.Generator) -> None:
        raise NotImplementedError

    def _check_finite(self, log_lik: np.ndarray) -> np.ndarray:
        if not np.all(np.isfinite(log_lik)):
            raise NumericalError(f"Non-finite log-density in {self.kind} component.")
        return log_lik


class GaussianComponent(MixtureComponent):
    """
    Diagonal Gaussian component with a conjugate Normal-Inverse-Gamma prior.
    """

    kind = "gaussian"

    def __init__(
        self,
        prior: GaussianPrior,
        mean: Optional[np.ndarray] = None,
        variance: Optional[np.ndarray] = None,
    ) -> None:
        self.prior = prior
        n_features = prior.mean.shape[0]
        self.mean = np.array(prior.mean if mean is None else mean, dtype=np.float64)
        self.variance = np.array(
            np.ones(n_features) if variance is None else variance, dtype=np.float64
        )
        if self.mean.shape != (n_features,) or self.variance.shape != (n_features,):
            raise ValueError(f"Gaussian parameters must have shape ({n_features},).")

    def log_likelihood(self, values: np.ndarray) -> np.ndarray:
        if np.any(self.variance <= 0.0):
            raise NumericalError("Gaussian component has non-positive variance.")
        resid = np.asarray(values, dtype=np.float64) - self.mean
        log_lik = -0.5 * np.sum(
            _LOG_2PI + np.log(self.variance) + resid**2 / self.variance,
            axis=1,
        )
        return self._check_finite(log_lik)

    def sample_posterior(self, members: np.ndarray, rng: np.random.Generator) -> None:
        prior = self.prior
        n = members.shape[0]
        if n == 0:
            kappa_n = prior.kappa
            mean_n = prior.mean
            shape_n = prior.shape
            scale_n = prior.scale
        else:
            x_bar = members.mean(axis=0)
            sum_sq = np.sum((members - x_bar) ** 2, axis=0)
            kappa_n = prior.kappa + n
            mean_n = (prior.kappa * prior.mean + n * x_bar) / kappa_n
            shape_n = prior.shape + 0.5 * n
            scale_n = (
                prior.scale
                + 0.5 * sum_sq
                + 0.5 * prior.kappa * n * (x_bar - prior.mean) ** 2 / kappa_n
            )

        # sigma2 ~ InvGamma(shape_n, scale_n)
        variance = scale_n / rng.gamma(shape_n, 1.0, size=scale_n.shape)
        variance = np.maximum(variance, prior.variance_floor)
        mean = rng.normal(mean_n, np.sqrt(variance / kappa_n))
        if not (np.all(np.isfinite(variance)) and np.all(np.isfinite(mean))):
            raise NumericalError("Gaussian posterior draw produced non-finite parameters.")
        self.mean = mean
        self.variance = variance


class CategoricalComponent(MixtureComponent):
    """
    Independent categorical features with Dirichlet priors.

    Probabilities are stored in a padded ``(n_features, max_levels)`` table;
    levels beyond a feature's ``n_levels`` carry zero probability.
    """

    kind = "categorical"

    def __init__(self, prior: CategoricalPrior, probabilities: Optional[np.ndarray] = None) -> None:
        self.prior = prior
        self._mask = prior.level_mask()
        if probabilities is None:
            probabilities = self._mask / prior.n_levels[:, None]
        self.probabilities = np.array(probabilities, dtype=np.float64)
        if self.probabilities.shape != self._mask.shape:
            raise ValueError(
                f"Categorical probabilities must have shape {self._mask.shape}."
            )

    def log_likelihood(self, values: np.ndarray) -> np.ndarray:
        codes = np.asarray(values, dtype=int)
        n_features = self.probabilities.shape[0]
        if codes.shape[1] != n_features:
            raise ValueError(f"Expected {n_features} features, received {codes.shape[1]}.")
        if (codes >= self.prior.n_levels).any():
            raise ValueError("Category code exceeds the number of levels for its feature.")
        with np.errstate(divide="ignore"):
            log_prob = np.log(self.probabilities)
        log_lik = log_prob[np.arange(n_features), codes].sum(axis=1)
        return self._check_finite(log_lik)

    def sample_posterior(self, members: np.ndarray, rng: np.random.Generator) -> None:
        prior = self.prior
        codes = np.asarray(members, dtype=int)
        n_features, max_levels = self._mask.shape
        counts = np.zeros((n_features, max_levels))
        for feature in range(n_features):
            counts[feature] = np.bincount(codes[:, feature], minlength=max_levels)

        # Dirichlet draws via normalised gammas; padded levels stay at zero.
        concentration = np.where(self._mask, prior.alpha + counts, 1.0)
        draws = rng.gamma(concentration) * self._mask
        draws = np.maximum(draws, _PROBABILITY_FLOOR) * self._mask
        totals = draws.sum(axis=1, keepdims=True)
        if not np.all(totals > 0):
            raise NumericalError("Categorical posterior draw degenerated to zero mass.")
        self.probabilities = draws / totals


def make_component(kind: str, prior) -> MixtureComponent:
    """Build an unfitted component of the requested kind."""
    if kind == "gaussian":
        return GaussianComponent(prior)
    if kind == "categorical":
        return CategoricalComponent(prior)
    raise ValueError(f"Unsupported component kind '{kind}'.")
