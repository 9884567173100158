"""
Synthetic multi-view data with known cluster memberships.

Every generator takes an explicit seed (an integer or a
``numpy.random.Generator``); nothing touches global random state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.linalg import toeplitz

from .data_io import ViewData

ArrayLike = np.ndarray
SeedLike = Union[int, np.random.Generator, None]


def _as_generator(seed: SeedLike) -> np.random.Generator:
    """Return a Generator no matter how the seed is specified."""
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


def toeplitz_covariance(
    n_features: int,
    *,
    decay: float = 0.1,
    floor: float = 0.0,
) -> ArrayLike:
    """
    Banded Toeplitz covariance with linearly decaying off-diagonals.

    Entry (i, j) is ``max(1 - decay * |i - j|, floor)``.
    """

    if n_features <= 0:
        raise ValueError("n_features must be positive.")
    if not (0.0 < decay <= 1.0):
        raise ValueError("decay must be in (0, 1].")
    profile = np.maximum(1.0 - decay * np.arange(n_features), floor)
    return toeplitz(profile)


def sample_labels(
    n_samples: int,
    n_components: int,
    *,
    label_probs: Optional[Sequence[float]] = None,
    seed: SeedLike = None,
) -> np.ndarray:
    """Draw component memberships in [0, n_components)."""
    if n_samples <= 0 or n_components <= 0:
        raise ValueError("`n_samples` and `n_components` must be positive.")
    if label_probs is None:
        label_probs = np.full(n_components, 1.0 / n_components)
    else:
        label_probs = np.asarray(label_probs, dtype=np.float64)
        if label_probs.shape != (n_components,):
            raise ValueError("`label_probs` must have length equal to n_components.")
        if not np.isclose(label_probs.sum(), 1.0):
            raise ValueError("`label_probs` must sum to 1.")
    return _as_generator(seed).choice(n_components, size=n_samples, p=label_probs)


def _check_labels(labels: Sequence[int], n_components: Optional[int] = None) -> np.ndarray:
    label_arr = np.asarray(labels, dtype=int)
    if label_arr.ndim != 1:
        raise ValueError("Labels must be one-dimensional.")
    if (label_arr < 0).any():
        raise ValueError("Labels must be non-negative.")
    if n_components is not None and (label_arr >= n_components).any():
        raise ValueError("Labels must be in [0, n_components).")
    return label_arr


def generate_gaussian_mixture(
    *,
    labels: Sequence[int],
    n_features: int,
    means: Union[Sequence[float], ArrayLike],
    covariance: Union[float, ArrayLike] = 1.0,
    seed: SeedLike = None,
) -> np.ndarray:
    """
    Gaussian observations for given memberships.

    ``means`` is 1-D of length K (the same value on every feature) or of
    shape (K, n_features). ``covariance`` is a shared scalar variance or a
    shared (n_features, n_features) matrix.
    """

    if n_features <= 0:
        raise ValueError("`n_features` must be positive.")
    mean_matrix = np.asarray(means, dtype=np.float64)
    if mean_matrix.ndim == 1:
        mean_matrix = np.repeat(mean_matrix[:, None], n_features, axis=1)
    if mean_matrix.shape != (mean_matrix.shape[0], n_features):
        raise ValueError(
            f"Expected `means` to be 1-D of length K or shape (K, {n_features}). "
            f"Received array with shape {mean_matrix.shape!r}."
        )
    label_arr = _check_labels(labels, mean_matrix.shape[0])
    rng = _as_generator(seed)

    noise = rng.standard_normal(size=(label_arr.size, n_features))
    if np.isscalar(covariance):
        variance = float(covariance)
        if variance <= 0:
            raise ValueError("Variance must be strictly positive.")
        noise = noise * np.sqrt(variance)
    else:
        cov_arr = np.asarray(covariance, dtype=np.float64)
        if cov_arr.shape != (n_features, n_features):
            raise ValueError(
                f"`covariance` must have shape ({n_features}, {n_features}). "
                f"Received {cov_arr.shape}."
            )
        noise = noise @ np.linalg.cholesky(cov_arr).T
    return mean_matrix[label_arr] + noise


def generate_categorical_mixture(
    *,
    labels: Sequence[int],
    n_features: int,
    n_levels: int = 2,
    concentration: float = 0.3,
    seed: SeedLike = None,
) -> np.ndarray:
    """
    Integer-coded categorical observations for given memberships.

    Each cluster draws its per-feature level probabilities from a symmetric
    Dirichlet(``concentration``); small values give well-separated clusters.
    """

    if n_features <= 0 or n_levels < 2:
        raise ValueError("`n_features` must be positive and `n_levels` at least 2.")
    label_arr = _check_labels(labels)
    rng = _as_generator(seed)
    n_components = int(label_arr.max()) + 1
    probs = rng.dirichlet(np.full(n_levels, concentration), size=(n_components, n_features))

    # Inverse-CDF draw of one level per (item, feature).
    cdf = np.cumsum(probs[label_arr], axis=2)
    u = rng.uniform(size=(label_arr.size, n_features, 1))
    codes = (u > cdf).sum(axis=2)
    return np.minimum(codes, n_levels - 1).astype(int)


def generate_count_mixture(
    *,
    labels: Sequence[int],
    n_features: int,
    means: Union[Sequence[float], ArrayLike],
    dispersion: float = 2.0,
    seed: SeedLike = None,
) -> np.ndarray:
    """
    Negative-binomial counts for given memberships.

    ``means`` has length K or shape (K, n_features); ``dispersion`` is the
    negative-binomial size parameter (variance = mu + mu**2 / dispersion).
    """

    if dispersion <= 0:
        raise ValueError("dispersion must be positive.")
    mean_matrix = np.asarray(means, dtype=np.float64)
    if mean_matrix.ndim == 1:
        mean_matrix = np.repeat(mean_matrix[:, None], n_features, axis=1)
    if mean_matrix.shape[1] != n_features:
        raise ValueError(f"`means` must have {n_features} columns.")
    if (mean_matrix <= 0).any():
        raise ValueError("Count means must be positive.")
    label_arr = _check_labels(labels, mean_matrix.shape[0])
    rng = _as_generator(seed)

    mu = mean_matrix[label_arr]
    return rng.negative_binomial(dispersion, dispersion / (dispersion + mu))


def permute_labels(labels: Sequence[int], *, fraction: float = 1.0, seed: SeedLike = None) -> np.ndarray:
    """
    Shuffle the labels of a random ``fraction`` of items among themselves.

    ``fraction=1`` gives a partition independent of the input.
    """

    if not (0.0 <= fraction <= 1.0):
        raise ValueError("fraction must be in [0, 1].")
    label_arr = _check_labels(labels).copy()
    rng = _as_generator(seed)
    n_shuffle = int(round(fraction * label_arr.size))
    idx = rng.choice(label_arr.size, size=n_shuffle, replace=False)
    label_arr[idx] = label_arr[rng.permutation(idx)]
    return label_arr


def fixed_label_mask(
    n_samples: int,
    *,
    fraction: float,
    seed: SeedLike = None,
) -> np.ndarray:
    """Boolean mask marking a random ``fraction`` of items as observed."""
    if not (0.0 <= fraction <= 1.0):
        raise ValueError("fraction must be in [0, 1].")
    rng = _as_generator(seed)
    mask = np.zeros(n_samples, dtype=bool)
    mask[rng.choice(n_samples, size=int(round(fraction * n_samples)), replace=False)] = True
    return mask


@dataclass(frozen=True)
class MultiViewDataset:
    """
    Synthetic views with their ground truth.

    Attributes
    ----------
    views:
        One :class:`ViewData` per view.
    labels:
        Ground-truth memberships per view, shape (n_views, n_samples).
    fixed:
        Per-view masks of items whose labels are handed to the sampler.
    """

    views: Tuple[ViewData, ...]
    labels: np.ndarray
    fixed: Tuple[np.ndarray, ...]

    def initial_labels(
        self, fixed: Optional[Sequence[np.ndarray]] = None
    ) -> Tuple[np.ndarray, ...]:
        """
        Starting labels that reveal the truth on fixed items only.

        Free items get ``-1``, which the sampler redraws at random, so chains
        never start from the true partition. ``fixed`` overrides the
        dataset's own masks.
        """

        masks = self.fixed if fixed is None else fixed
        return tuple(
            np.where(np.asarray(mask, dtype=bool), self.labels[m], -1)
            for m, mask in enumerate(masks)
        )


def generate_multiview_dataset(
    *,
    n_samples: int,
    n_clusters: int,
    view_kinds: Sequence[str] = ("gaussian", "gaussian"),
    n_features: Union[int, Sequence[int]] = 4,
    separation: float = 4.0,
    shared_fraction: float = 1.0,
    fixed_fraction: Union[float, Sequence[float]] = 0.0,
    max_clusters: Optional[int] = None,
    seed: SeedLike = None,
) -> MultiViewDataset:
    """
    Generate several views whose memberships share a configurable structure.

    The first view's labels are drawn uniformly; every other view keeps a
    ``shared_fraction`` of them and shuffles the rest, so ``1.0`` gives
    identical partitions and ``0.0`` independent ones.

    Parameters
    ----------
    separation
        Distance between neighbouring Gaussian cluster means (unit variance).
    fixed_fraction
        Fraction of items per view whose labels are marked as known.
    max_clusters
        K handed to the sampler for every view (defaults to ``n_clusters``).
    """

    if not (0.0 <= shared_fraction <= 1.0):
        raise ValueError("shared_fraction must be in [0, 1].")
    n_views = len(view_kinds)
    if n_views == 0:
        raise ValueError("At least one view kind is required.")
    features = [n_features] * n_views if np.isscalar(n_features) else list(n_features)
    fixed_fracs = [fixed_fraction] * n_views if np.isscalar(fixed_fraction) else list(fixed_fraction)
    if len(features) != n_views or len(fixed_fracs) != n_views:
        raise ValueError("Per-view settings must have one entry per view kind.")

    rng = _as_generator(seed)
    base = sample_labels(n_samples, n_clusters, seed=rng)
    labels = [base]
    for _ in range(1, n_views):
        labels.append(permute_labels(base, fraction=1.0 - shared_fraction, seed=rng))

    views = []
    for m, kind in enumerate(view_kinds):
        name = f"view{m}"
        if kind == "gaussian":
            means = separation * np.arange(n_clusters, dtype=np.float64)
            values = generate_gaussian_mixture(
                labels=labels[m], n_features=features[m], means=means, seed=rng
            )
        elif kind == "categorical":
            values = generate_categorical_mixture(
                labels=labels[m], n_features=features[m], seed=rng
            )
        else:
            raise ValueError(f"Unknown view kind '{kind}'.")
        views.append(
            ViewData(
                values=values,
                kind=kind,
                n_clusters=max_clusters or n_clusters,
                name=name,
            )
        )

    fixed = tuple(
        fixed_label_mask(n_samples, fraction=frac, seed=rng) for frac in fixed_fracs
    )
    return MultiViewDataset(views=tuple(views), labels=np.vstack(labels), fixed=fixed)


def describe_dataset(dataset: MultiViewDataset) -> Dict[str, Dict[str, object]]:
    """Small JSON-friendly description of a dataset for run metadata."""
    return {
        view.name: {
            "kind": view.kind,
            "n_samples": view.n_samples,
            "n_features": view.n_features,
            "n_clusters": view.n_clusters,
            "n_fixed": int(mask.sum()),
        }
        for view, mask in zip(dataset.views, dataset.fixed)
    }
