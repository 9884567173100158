"""
Containers for view data and checkpoint helpers for sampler chains.

The containers aim to be lightweight and composable: minimal global state,
explicit arguments, and simple return types. Chains are written as a pair of
files, ``<stem>.npz`` holding the arrays and ``<stem>.json`` holding the
scalar metadata, and load back into an identical ``ChainResult``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Tuple, Union

import numpy as np

from .errors import ConfigurationError

if TYPE_CHECKING:
    from .sampler import ChainResult


PathLike = Union[str, Path]

VIEW_KINDS = ("gaussian", "categorical")


@dataclass(frozen=True)
class ViewData:
    """
    One data view handed to the sampler.

    Attributes
    ----------
    values:
        Two-dimensional array with shape (n_samples, n_features). Gaussian
        views hold real values; categorical views hold integer category codes
        starting at 0.
    kind:
        Either ``"gaussian"`` or ``"categorical"``.
    n_clusters:
        Maximum number of clusters K for this view (fixed for the whole run).
    name:
        Optional label used in logs, tables and plots.
    feature_names:
        Optional iterable of feature identifiers aligned with the columns.
    """

    values: np.ndarray
    kind: str = "gaussian"
    n_clusters: int = 10
    name: Optional[str] = None
    feature_names: Optional[Tuple[str, ...]] = None

    def __post_init__(self) -> None:
        if self.values.ndim != 2:
            raise ConfigurationError("ViewData.values must be two-dimensional.")
        if self.kind not in VIEW_KINDS:
            raise ConfigurationError(
                f"Unknown view kind '{self.kind}'. Expected one of {VIEW_KINDS}."
            )
        if int(self.n_clusters) < 1:
            raise ConfigurationError("n_clusters must be at least 1.")
        if self.feature_names is not None and len(self.feature_names) != self.values.shape[1]:
            raise ConfigurationError("feature_names length must match number of columns.")
        if self.kind == "gaussian" and not np.all(np.isfinite(self.values)):
            raise ConfigurationError("Gaussian views must contain only finite values.")
        if self.kind == "categorical":
            if not np.all(np.equal(np.mod(self.values, 1), 0)) or (self.values < 0).any():
                raise ConfigurationError(
                    "Categorical views must contain non-negative integer codes."
                )

    @property
    def n_samples(self) -> int:
        return int(self.values.shape[0])

    @property
    def n_features(self) -> int:
        return int(self.values.shape[1])


def save_chain(result: "ChainResult", path: PathLike) -> Tuple[Path, Path]:
    """
    Write a chain to ``<path>.npz`` and ``<path>.json``.

    Returns the two paths written.
    """

    stem = Path(path)
    if stem.suffix in (".npz", ".json"):
        stem = stem.with_suffix("")
    stem.parent.mkdir(parents=True, exist_ok=True)

    arrays_path = stem.with_suffix(".npz")
    meta_path = stem.with_suffix(".json")

    np.savez(
        arrays_path,
        iterations=result.iterations,
        allocations=result.allocations,
        phis=result.phis,
        phi_acceptance=result.phi_acceptance,
        weight_acceptance=result.weight_acceptance,
    )
    meta = {
        "chain_id": result.chain_id,
        "seed": result.seed,
        "spawn_key": list(result.spawn_key),
        "state": result.state.value,
        "duration_sec": result.duration_sec,
        "error": result.error,
        "view_names": list(result.view_names),
        "pairs": [list(pair) for pair in result.pairs],
    }
    meta_path.write_text(json.dumps(meta, indent=2))
    return arrays_path, meta_path


def load_chain(path: PathLike) -> "ChainResult":
    """
    Load a chain previously written with :func:`save_chain`.
    """

    from .sampler import ChainResult, ChainState

    stem = Path(path)
    if stem.suffix in (".npz", ".json"):
        stem = stem.with_suffix("")
    arrays_path = stem.with_suffix(".npz")
    meta_path = stem.with_suffix(".json")
    for candidate in (arrays_path, meta_path):
        if not candidate.exists():
            raise FileNotFoundError(f"File not found: {candidate}")

    meta = json.loads(meta_path.read_text())
    with np.load(arrays_path) as arrays:
        return ChainResult(
            chain_id=int(meta["chain_id"]),
            seed=meta["seed"],
            state=ChainState(meta["state"]),
            iterations=arrays["iterations"].copy(),
            allocations=arrays["allocations"].copy(),
            phis=arrays["phis"].copy(),
            phi_acceptance=arrays["phi_acceptance"].copy(),
            weight_acceptance=arrays["weight_acceptance"].copy(),
            duration_sec=float(meta["duration_sec"]),
            view_names=tuple(meta["view_names"]),
            pairs=tuple(tuple(pair) for pair in meta["pairs"]),
            error=meta["error"],
            spawn_key=tuple(int(key) for key in meta.get("spawn_key", [])),
        )
