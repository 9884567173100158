"""
Summaries of retained allocation samples.

Cluster labels are not identifiable across MCMC samples (label switching),
so the summaries here work on co-clustering frequencies, which do not depend
on the label values. The exceptions are :func:`allocation_probabilities` and
:func:`fusion_probabilities`, which read labels directly and are meaningful
when fixed labels anchor the cluster identities or when views are linked.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import fcluster, linkage
from scipy.spatial.distance import squareform

from .errors import ConvergenceWarning
from .sampler import ChainResult


__all__ = [
    "PosteriorSummary",
    "posterior_similarity_matrix",
    "expected_adjusted_rand",
    "point_estimate",
    "allocation_probabilities",
    "predicted_labels",
    "fusion_probabilities",
    "summarise_chains",
]

logger = logging.getLogger(__name__)


def _as_samples(samples: np.ndarray) -> np.ndarray:
    samples = np.asarray(samples)
    if samples.ndim != 2:
        raise ValueError("Allocation samples must have shape (n_samples, n_items).")
    if samples.shape[0] == 0:
        raise ValueError("At least one allocation sample is required.")
    return samples.astype(int)


def posterior_similarity_matrix(samples: np.ndarray) -> np.ndarray:
    """
    Fraction of samples in which each pair of items shares a cluster.

    Parameters
    ----------
    samples
        Allocation samples of shape (n_samples, n_items).

    Returns
    -------
    np.ndarray
        Symmetric (n_items, n_items) matrix with unit diagonal.
    """

    samples = _as_samples(samples)
    n_samples, n_items = samples.shape
    psm = np.zeros((n_items, n_items))
    for sample in samples:
        psm += sample[:, None] == sample[None, :]
    psm /= n_samples
    # Exact symmetry and unit diagonal regardless of accumulation order.
    psm = 0.5 * (psm + psm.T)
    np.fill_diagonal(psm, 1.0)
    return np.clip(psm, 0.0, 1.0)


def expected_adjusted_rand(psm: np.ndarray, labels: np.ndarray) -> float:
    """
    Posterior expected adjusted Rand index (PEAR) of a candidate partition.

    Uses the approximation of Fritsch & Ickstadt (2009), computed from the
    upper triangle of the posterior similarity matrix.
    """

    psm = np.asarray(psm, dtype=np.float64)
    labels = np.asarray(labels)
    n_items = labels.shape[0]
    if psm.shape != (n_items, n_items):
        raise ValueError("psm and labels describe different numbers of items.")
    if n_items < 2:
        return 1.0

    upper = np.triu_indices(n_items, k=1)
    together = (labels[:, None] == labels[None, :])[upper].astype(np.float64)
    probs = psm[upper]
    n_pairs = together.size

    sum_together = together.sum()
    sum_probs = probs.sum()
    expected = sum_together * sum_probs / n_pairs
    numerator = np.dot(together, probs) - expected
    denominator = 0.5 * (sum_together + sum_probs) - expected
    if denominator == 0:
        return 1.0 if numerator == 0 else 0.0
    return float(numerator / denominator)


def _linkage_candidates(psm: np.ndarray, max_clusters: int) -> List[np.ndarray]:
    n_items = psm.shape[0]
    if n_items < 2:
        return []
    distance = squareform(1.0 - psm, checks=False)
    candidates = []
    for method in ("average", "complete"):
        tree = linkage(distance, method=method)
        for k in range(1, min(max_clusters, n_items) + 1):
            candidates.append(fcluster(tree, t=k, criterion="maxclust") - 1)
    return candidates


def point_estimate(
    psm: np.ndarray,
    samples: Optional[np.ndarray] = None,
    *,
    max_clusters: int = 20,
) -> np.ndarray:
    """
    Partition maximising the posterior expected adjusted Rand index.

    Candidates are the distinct sampled partitions (when ``samples`` is
    given) plus average- and complete-linkage cuts of ``1 - psm`` into
    1..``max_clusters`` groups. Labels of the returned partition are
    relabelled to 0, 1, 2, ... in order of first appearance.
    """

    psm = np.asarray(psm, dtype=np.float64)
    candidates = _linkage_candidates(psm, max_clusters)
    if samples is not None:
        candidates.extend(np.unique(_as_samples(samples), axis=0))
    if not candidates:
        return np.zeros(psm.shape[0], dtype=int)

    scores = [expected_adjusted_rand(psm, candidate) for candidate in candidates]
    best = candidates[int(np.argmax(scores))]
    return _relabel(best)


def _relabel(labels: np.ndarray) -> np.ndarray:
    _, first_index, inverse = np.unique(labels, return_index=True, return_inverse=True)
    order = np.argsort(np.argsort(first_index))
    return order[inverse].astype(int)


def allocation_probabilities(samples: np.ndarray, n_clusters: Optional[int] = None) -> np.ndarray:
    """
    (n_items, n_clusters) frequency of each label per item.
    """

    samples = _as_samples(samples)
    if n_clusters is None:
        n_clusters = int(samples.max()) + 1
    counts = np.zeros((samples.shape[1], n_clusters))
    for sample in samples:
        counts[np.arange(samples.shape[1]), sample] += 1
    return counts / samples.shape[0]


def predicted_labels(samples: np.ndarray, n_clusters: Optional[int] = None) -> np.ndarray:
    """Most frequent label per item."""
    return np.argmax(allocation_probabilities(samples, n_clusters), axis=1)


def fusion_probabilities(samples_a: np.ndarray, samples_b: np.ndarray) -> np.ndarray:
    """
    Per-item fraction of samples in which two views give the same label.
    """

    samples_a = _as_samples(samples_a)
    samples_b = _as_samples(samples_b)
    if samples_a.shape != samples_b.shape:
        raise ValueError(
            f"Sample arrays differ in shape: {samples_a.shape} vs {samples_b.shape}."
        )
    return (samples_a == samples_b).mean(axis=0)


@dataclass(frozen=True)
class PosteriorSummary:
    """
    Pooled summary of the successful chains.

    Attributes
    ----------
    view_names:
        Names of the views, in sampler order.
    similarity:
        Posterior similarity matrix per view name.
    clustering:
        Point-estimate partition per view name.
    phis:
        Pooled phi samples, one row per retained sample with ``chain`` and
        ``iteration`` columns.
    n_chains:
        Number of chains handed in.
    n_failed:
        Number of chains excluded because they failed.
    """

    view_names: tuple
    similarity: Dict[str, np.ndarray]
    clustering: Dict[str, np.ndarray]
    phis: pd.DataFrame
    n_chains: int
    n_failed: int

    def fusion(self, results: Sequence[ChainResult], view_a: str, view_b: str) -> np.ndarray:
        """Pooled per-item fusion probability between two named views."""
        a = self.view_names.index(view_a)
        b = self.view_names.index(view_b)
        kept = [r for r in results if r.succeeded and r.n_samples]
        return fusion_probabilities(
            np.vstack([r.view_allocations(a) for r in kept]),
            np.vstack([r.view_allocations(b) for r in kept]),
        )


def summarise_chains(
    results: Sequence[ChainResult],
    *,
    burn_in: float = 0.0,
    max_clusters: int = 20,
) -> PosteriorSummary:
    """
    Pool successful chains into per-view similarity matrices and clusterings.

    Parameters
    ----------
    results
        Chain results from :meth:`MDISampler.run`.
    burn_in
        Extra fraction of each chain's retained samples to discard.
    max_clusters
        Largest number of groups tried for the linkage candidates.
    """

    if not (0.0 <= burn_in < 1.0):
        raise ValueError("burn_in must be in [0, 1).")
    results = list(results)
    if not results:
        raise ValueError("No chain results to summarise.")

    kept = [r for r in results if r.succeeded and r.n_samples > 0]
    n_failed = len(results) - len(kept)
    if n_failed:
        warnings.warn(
            f"{n_failed} of {len(results)} chain(s) failed and were excluded from the summary.",
            ConvergenceWarning,
            stacklevel=2,
        )
    if not kept:
        raise ValueError("Every chain failed; nothing to summarise.")

    view_names = kept[0].view_names
    pair_labels = kept[0].pair_labels()
    allocations = []
    phi_frames = []
    for result in kept:
        start = int(np.floor(burn_in * result.n_samples))
        allocations.append(result.allocations[start:])
        frame = pd.DataFrame(result.phis[start:], columns=pair_labels)
        frame.insert(0, "iteration", result.iterations[start:])
        frame.insert(0, "chain", result.chain_id)
        phi_frames.append(frame)
    pooled = np.concatenate(allocations, axis=0)

    similarity = {}
    clustering = {}
    for view, name in enumerate(view_names):
        samples = pooled[:, view, :]
        psm = posterior_similarity_matrix(samples)
        similarity[name] = psm
        clustering[name] = point_estimate(psm, samples, max_clusters=max_clusters)
        logger.info(
            "view %s: %d pooled samples, %d clusters in point estimate",
            name,
            samples.shape[0],
            np.unique(clustering[name]).size,
        )

    return PosteriorSummary(
        view_names=tuple(view_names),
        similarity=similarity,
        clustering=clustering,
        phis=pd.concat(phi_frames, ignore_index=True),
        n_chains=len(results),
        n_failed=n_failed,
    )
