"""
Per-view mixture state and its Gibbs update.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

import numpy as np
from scipy.special import logsumexp

from .components import (
    CategoricalPrior,
    GaussianPrior,
    MixtureComponent,
    make_component,
)
from .data_io import ViewData
from .errors import ConfigurationError, NumericalError


__all__ = ["ViewModel", "check_labels"]


def check_labels(
    view: ViewData,
    fixed: Optional[np.ndarray] = None,
    initial_labels: Optional[np.ndarray] = None,
) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """
    Validate a view's fixed-label mask and starting labels.

    Returns the mask as a boolean array and the labels as an integer array
    (or ``None``). Raises :class:`ConfigurationError` on any inconsistency.
    """

    name = view.name if view.name is not None else view.kind
    n_samples = view.n_samples
    n_clusters = int(view.n_clusters)

    fixed = np.zeros(n_samples, dtype=bool) if fixed is None else np.asarray(fixed, dtype=bool)
    if fixed.shape != (n_samples,):
        raise ConfigurationError(
            f"Fixed mask for view '{name}' has shape {fixed.shape}, expected ({n_samples},)."
        )
    if initial_labels is None:
        if fixed.any():
            raise ConfigurationError(f"View '{name}' has fixed items but no initial labels.")
        return fixed, None

    labels = np.asarray(initial_labels)
    if labels.shape != (n_samples,):
        raise ConfigurationError(
            f"Initial labels for view '{name}' have shape {labels.shape}, "
            f"expected ({n_samples},)."
        )
    labels = labels.astype(int)
    fixed_labels = labels[fixed]
    n_distinct = np.unique(fixed_labels).size
    if n_distinct > n_clusters:
        raise ConfigurationError(
            f"View '{name}' has {n_distinct} distinct fixed labels but n_clusters={n_clusters}."
        )
    if (fixed_labels < 0).any() or (fixed_labels >= n_clusters).any():
        raise ConfigurationError(
            f"Fixed labels for view '{name}' must lie in [0, {n_clusters})."
        )
    return fixed, labels


class ViewModel:
    """
    Allocation vector, mixture weights and components of one view.

    Parameters
    ----------
    view
        Observation matrix and view settings.
    fixed
        Optional boolean mask of items whose labels never change.
    initial_labels
        Optional starting labels in ``[0, K)``. Required for fixed items.
    concentration
        Symmetric Dirichlet concentration on the mixture weights.
    rng
        Generator used for initialisation.
    """

    def __init__(
        self,
        view: ViewData,
        *,
        fixed: Optional[np.ndarray] = None,
        initial_labels: Optional[np.ndarray] = None,
        concentration: Optional[float] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        fixed, initial_labels = check_labels(view, fixed, initial_labels)

        self.view = view
        self.kind = view.kind
        self.n_clusters = int(view.n_clusters)
        self.name = view.name
        self.values = (
            np.array(view.values, dtype=np.float64)
            if view.kind == "gaussian"
            else np.array(view.values, dtype=int)
        )
        self.values.setflags(write=False)
        self.fixed = fixed.copy()
        self.fixed.setflags(write=False)

        rng = rng if rng is not None else np.random.default_rng()
        self.allocations = self._initial_allocations(initial_labels, rng)

        # Default concentration: 1/K for overfitted mixtures.
        self.concentration = (
            1.0 / self.n_clusters if concentration is None else float(concentration)
        )
        if self.concentration <= 0:
            raise ConfigurationError("Dirichlet concentration must be positive.")

        if self.kind == "gaussian":
            self.prior = GaussianPrior.from_data(self.values)
        else:
            self.prior = CategoricalPrior.from_data(self.values)
        self.components: List[MixtureComponent] = [
            make_component(self.kind, self.prior) for _ in range(self.n_clusters)
        ]
        self.update_components(rng)
        self.weights = _floor_simplex(rng.dirichlet(self.concentration + self.occupancy()))

        self.n_weight_proposals = 0
        self.n_weight_accepted = 0

    @property
    def label(self) -> str:
        return self.name if self.name is not None else self.kind

    @property
    def n_samples(self) -> int:
        return int(self.values.shape[0])

    def _initial_allocations(
        self,
        initial_labels: Optional[np.ndarray],
        rng: np.random.Generator,
    ) -> np.ndarray:
        n_samples = self.values.shape[0]
        if initial_labels is None:
            return rng.integers(0, self.n_clusters, size=n_samples)

        # Out-of-range labels on free items are redrawn.
        labels = initial_labels.copy()
        free_bad = ~self.fixed & ((labels < 0) | (labels >= self.n_clusters))
        labels[free_bad] = rng.integers(0, self.n_clusters, size=int(free_bad.sum()))
        return labels

    def occupancy(self) -> np.ndarray:
        """Number of items allocated to each cluster."""
        return np.bincount(self.allocations, minlength=self.n_clusters)

    def n_occupied(self) -> int:
        return int(np.count_nonzero(self.occupancy()))

    def log_likelihood_matrix(self) -> np.ndarray:
        """(n_samples, K) matrix of component log-densities."""
        return np.column_stack(
            [component.log_likelihood(self.values) for component in self.components]
        )

    def update_allocations(
        self,
        rng: np.random.Generator,
        log_concordance: Optional[np.ndarray] = None,
    ) -> None:
        """
        Redraw the label of every unfixed item from its full conditional.

        Component parameters stay fixed during the sweep, and the concordance
        term of an item only involves that item's labels in the other views,
        so all items are drawn in one vectorised Gumbel-max step.
        """

        free = ~self.fixed
        if not free.any():
            return
        with np.errstate(divide="ignore"):
            log_weights = np.log(self.weights)
        log_post = self.log_likelihood_matrix() + log_weights[None, :]
        if log_concordance is not None:
            log_post = log_post + log_concordance
        log_post = log_post[free]

        log_norm = logsumexp(log_post, axis=1, keepdims=True)
        if not np.all(np.isfinite(log_norm)):
            raise NumericalError(
                f"Allocation probabilities for view '{self.label}' are not finite."
            )
        gumbel = rng.gumbel(size=log_post.shape)
        self.allocations[free] = np.argmax(log_post - log_norm + gumbel, axis=1)

    def update_weights(
        self,
        rng: np.random.Generator,
        log_normaliser: Optional[Callable[[np.ndarray], float]] = None,
    ) -> bool:
        """
        Redraw the mixture weights.

        The Dirichlet posterior over occupancy counts is exact for a single
        view. When the view is linked to others, ``log_normaliser(weights)``
        gives log Z of the joint allocation prior and the Dirichlet draw is
        accepted with probability ``min(1, (Z_old / Z_new) ** N)``.
        Returns whether the draw was accepted.
        """

        proposal = _floor_simplex(rng.dirichlet(self.concentration + self.occupancy()))
        self.n_weight_proposals += 1

        if log_normaliser is None:
            accept = True
        else:
            log_ratio = self.n_samples * (log_normaliser(self.weights) - log_normaliser(proposal))
            if not np.isfinite(log_ratio):
                raise NumericalError(
                    f"Weight acceptance ratio for view '{self.label}' is not finite."
                )
            accept = bool(np.log(rng.uniform()) < log_ratio)

        if accept:
            self.weights = proposal
            self.n_weight_accepted += 1
        return accept

    def swappable_labels(self) -> np.ndarray:
        """Labels not used by any fixed item; only these may be swapped."""
        used = np.unique(self.allocations[self.fixed])
        return np.setdiff1d(np.arange(self.n_clusters), used)

    def swap_labels(self, a: int, b: int) -> None:
        """Exchange the identities of clusters ``a`` and ``b`` in place."""
        if a == b:
            return
        in_a = self.allocations == a
        in_b = self.allocations == b
        if (self.fixed & (in_a | in_b)).any():
            raise ValueError("Cannot swap a label held by a fixed item.")
        self.allocations[in_a] = b
        self.allocations[in_b] = a
        self.weights[[a, b]] = self.weights[[b, a]]
        self.components[a], self.components[b] = self.components[b], self.components[a]

    def update_components(self, rng: np.random.Generator) -> None:
        for cluster, component in enumerate(self.components):
            component.resample(self.values, self.allocations, cluster, rng)

    def gibbs_sweep(
        self,
        rng: np.random.Generator,
        *,
        log_concordance: Optional[np.ndarray] = None,
        log_normaliser: Optional[Callable[[np.ndarray], float]] = None,
    ) -> bool:
        """Allocations, then weights, then component parameters."""
        self.update_allocations(rng, log_concordance)
        accepted = self.update_weights(rng, log_normaliser)
        self.update_components(rng)
        return accepted

    def weight_acceptance_rate(self) -> float:
        if self.n_weight_proposals == 0:
            return float("nan")
        return self.n_weight_accepted / self.n_weight_proposals


def _floor_simplex(weights: np.ndarray) -> np.ndarray:
    # Dirichlet draws can underflow to exactly zero for tiny concentrations.
    weights = np.maximum(weights, np.finfo(np.float64).tiny)
    return weights / weights.sum()
