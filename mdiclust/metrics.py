"""
Utilities for summarizing and comparing clustering results.
"""

from __future__ import annotations

from itertools import combinations
from typing import Mapping

import numpy as np
import pandas as pd
from sklearn.metrics import adjusted_mutual_info_score, adjusted_rand_score


def _check_same_items(labels_a: np.ndarray, labels_b: np.ndarray) -> None:
    if np.asarray(labels_a).shape[0] != np.asarray(labels_b).shape[0]:
        raise ValueError(
            "Partitions must label the same items; received lengths "
            f"{np.asarray(labels_a).shape[0]} and {np.asarray(labels_b).shape[0]}."
        )


def adjusted_rand_index(labels_a: np.ndarray, labels_b: np.ndarray) -> float:
    """
    Adjusted Rand index between two partitions of the same items.

    Invariant to relabelling, symmetric, 1 for identical partitions and 0 in
    expectation for independent ones.
    """

    _check_same_items(labels_a, labels_b)
    return float(adjusted_rand_score(labels_a, labels_b))


def cluster_counts(labels: np.ndarray, *, name: str = "cluster") -> pd.DataFrame:
    """
    Return a DataFrame of cluster sizes.
    """

    unique, counts = np.unique(labels, return_counts=True)
    frame = pd.DataFrame({name: unique, "size": counts})
    return frame.sort_values(by=name).reset_index(drop=True)


def partition_metrics(labels_a: np.ndarray, labels_b: np.ndarray) -> pd.Series:
    """
    Compute adjusted Rand index (ARI) and adjusted mutual information (AMI).
    """

    _check_same_items(labels_a, labels_b)
    ari = adjusted_rand_score(labels_a, labels_b)
    ami = adjusted_mutual_info_score(labels_a, labels_b)
    return pd.Series({"ARI": ari, "AMI": ami})


def contingency_table(labels_a: np.ndarray, labels_b: np.ndarray) -> pd.DataFrame:
    """
    Cross-tabulate two cluster labelings.
    """

    _check_same_items(labels_a, labels_b)
    return pd.crosstab(
        np.asarray(labels_a),
        np.asarray(labels_b),
        rownames=["labels_a"],
        colnames=["labels_b"],
    )


def pairwise_ari(partitions: Mapping[str, np.ndarray]) -> pd.DataFrame:
    """
    Symmetric table of ARI between every pair of named partitions.
    """

    names = list(partitions)
    table = pd.DataFrame(np.eye(len(names)), index=names, columns=names)
    for a, b in combinations(names, 2):
        value = adjusted_rand_index(partitions[a], partitions[b])
        table.loc[a, b] = value
        table.loc[b, a] = value
    return table
