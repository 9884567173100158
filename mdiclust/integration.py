"""
Pairwise concordance parameters linking the view models.

For views m and l the allocation prior of item n carries the factor

    1 + phi[m, l] * 1[c_n^m == c_n^l]

so a large ``phi`` rewards items that take the same label in both views and
``phi == 0`` decouples the two allocations. The joint allocation prior is
normalised by

    Z = sum over label tuples c of prod_m w_m[c_m] * prod_{m<l} (1 + phi_ml 1[c_m == c_l])

which is evaluated exactly by broadcasting over all label combinations.
"""

from __future__ import annotations

from itertools import combinations
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .errors import ConfigurationError


__all__ = ["IntegrationLayer", "view_pairs"]


MAX_LABEL_COMBINATIONS = 2_000_000


def view_pairs(n_views: int) -> List[Tuple[int, int]]:
    """Unordered view pairs in a fixed order: (0, 1), (0, 2), ..., (M-2, M-1)."""
    return list(combinations(range(n_views), 2))


class IntegrationLayer:
    """
    Holds one phi per unordered pair of views and updates them by Metropolis.

    Parameters
    ----------
    n_clusters
        Number of clusters K_m of each view.
    prior_shape, prior_rate
        Gamma prior on every phi.
    proposal_scale
        Standard deviation of the random walk on ``log(phi)``.
    initial_phis
        Optional starting values, one per pair in :func:`view_pairs` order.
    """

    def __init__(
        self,
        n_clusters: Sequence[int],
        *,
        prior_shape: float = 1.0,
        prior_rate: float = 0.2,
        proposal_scale: float = 0.5,
        initial_phis: Optional[Sequence[float]] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.n_clusters = tuple(int(k) for k in n_clusters)
        self.pairs = view_pairs(len(self.n_clusters))
        if prior_shape <= 0 or prior_rate <= 0:
            raise ConfigurationError("phi prior shape and rate must be positive.")
        if proposal_scale <= 0:
            raise ConfigurationError("proposal_scale must be positive.")
        if self.pairs and int(np.prod(self.n_clusters, dtype=np.int64)) > MAX_LABEL_COMBINATIONS:
            raise ConfigurationError(
                f"Too many label combinations ({np.prod(self.n_clusters, dtype=np.int64)}) "
                "to evaluate the allocation normalising constant; reduce n_clusters."
            )

        self.prior_shape = float(prior_shape)
        self.prior_rate = float(prior_rate)
        self.proposal_scale = float(proposal_scale)

        if initial_phis is None:
            rng = rng if rng is not None else np.random.default_rng()
            phis = rng.gamma(self.prior_shape, 1.0 / self.prior_rate, size=len(self.pairs))
        else:
            phis = np.asarray(initial_phis, dtype=np.float64)
            if phis.shape != (len(self.pairs),):
                raise ConfigurationError(
                    f"initial_phis must have length {len(self.pairs)} (one per view pair)."
                )
            if (phis <= 0).any() or not np.all(np.isfinite(phis)):
                raise ConfigurationError("initial_phis must be positive and finite.")
        self.phis = np.asarray(phis, dtype=np.float64)

        self.n_proposed = np.zeros(len(self.pairs), dtype=int)
        self.n_accepted = np.zeros(len(self.pairs), dtype=int)

    @property
    def n_views(self) -> int:
        return len(self.n_clusters)

    def phi(self, m: int, l: int) -> float:
        if m == l:
            raise ValueError("phi is only defined between distinct views.")
        return float(self.phis[self.pairs.index((min(m, l), max(m, l)))])

    def factor(self, m: int, l: int, label_m: int, label_l: int) -> float:
        """Concordance factor for one item with labels ``label_m`` and ``label_l``."""
        return 1.0 + self.phi(m, l) * float(label_m == label_l)

    def log_concordance(self, view: int, allocations: np.ndarray) -> np.ndarray:
        """
        Log concordance factor for every item and every candidate label of ``view``.

        ``allocations`` has shape (n_views, n_samples); the row for ``view``
        itself is ignored. Returns an (n_samples, K_view) matrix.
        """

        n_samples = allocations.shape[1]
        candidates = np.arange(self.n_clusters[view])
        out = np.zeros((n_samples, candidates.size))
        for idx, (m, l) in enumerate(self.pairs):
            if view not in (m, l):
                continue
            other = l if view == m else m
            agree = allocations[other][:, None] == candidates[None, :]
            out += np.log1p(self.phis[idx]) * agree
        return out

    def log_normaliser(
        self,
        weights: Sequence[np.ndarray],
        phis: Optional[np.ndarray] = None,
    ) -> float:
        """Log of the allocation-prior normalising constant Z(weights, phis)."""
        phis = self.phis if phis is None else phis
        if not self.pairs:
            return 0.0

        n_views = self.n_views
        tensor = np.ones(self.n_clusters)
        for m, w in enumerate(weights):
            shape = [1] * n_views
            shape[m] = self.n_clusters[m]
            tensor = tensor * np.asarray(w).reshape(shape)
        for idx, (m, l) in enumerate(self.pairs):
            shape = [1] * n_views
            shape[m] = self.n_clusters[m]
            shape[l] = self.n_clusters[l]
            agree = np.eye(self.n_clusters[m], self.n_clusters[l])
            tensor = tensor * (1.0 + phis[idx] * agree).reshape(shape)
        return float(np.log(tensor.sum()))

    def _log_target(
        self,
        idx: int,
        phis: np.ndarray,
        n_agree: int,
        n_samples: int,
        weights: Sequence[np.ndarray],
    ) -> float:
        phi = phis[idx]
        return (
            n_agree * np.log1p(phi)
            - n_samples * self.log_normaliser(weights, phis)
            + (self.prior_shape - 1.0) * np.log(phi)
            - self.prior_rate * phi
        )

    def update(
        self,
        allocations: np.ndarray,
        weights: Sequence[np.ndarray],
        rng: np.random.Generator,
    ) -> np.ndarray:
        """
        One Metropolis step per pair, random walk on log(phi).

        Returns a boolean array of acceptance outcomes, one per pair.
        """

        n_samples = allocations.shape[1]
        accepted = np.zeros(len(self.pairs), dtype=bool)
        for idx, (m, l) in enumerate(self.pairs):
            n_agree = int(np.sum(allocations[m] == allocations[l]))
            current = self.phis.copy()
            proposed = current.copy()
            proposed[idx] = current[idx] * np.exp(self.proposal_scale * rng.standard_normal())
            if not np.isfinite(proposed[idx]) or proposed[idx] <= 0.0:
                self.n_proposed[idx] += 1
                continue

            # Jacobian of the log transform: log(phi') - log(phi).
            log_ratio = (
                self._log_target(idx, proposed, n_agree, n_samples, weights)
                - self._log_target(idx, current, n_agree, n_samples, weights)
                + np.log(proposed[idx])
                - np.log(current[idx])
            )
            self.n_proposed[idx] += 1
            if np.log(rng.uniform()) < log_ratio:
                self.phis[idx] = proposed[idx]
                self.n_accepted[idx] += 1
                accepted[idx] = True
        return accepted

    def acceptance_rates(self) -> np.ndarray:
        """Fraction of accepted proposals per pair (NaN before any proposal)."""
        with np.errstate(invalid="ignore", divide="ignore"):
            return np.where(self.n_proposed > 0, self.n_accepted / np.maximum(self.n_proposed, 1), np.nan)

    def reset_diagnostics(self) -> None:
        self.n_proposed[:] = 0
        self.n_accepted[:] = 0
