"""
Markov chain Monte Carlo driver for Multiple Dataset Integration (MDI).

Each iteration updates every pairwise concordance parameter (phi) by
Metropolis, then sweeps every view model in turn conditional on the current
labels of the other views. After the burn-in, every ``thin``-th iteration is
appended to the chain's sample store.

Chains are independent: each one builds its own view models from the
immutable inputs and draws from its own ``numpy.random.Generator`` spawned
from the configured seed, so they can run in separate joblib workers.
"""

from __future__ import annotations

import dataclasses
import logging
import time
import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from .data_io import ViewData
from .errors import ConfigurationError, ConvergenceWarning, NumericalError
from .integration import IntegrationLayer, view_pairs
from .views import ViewModel, check_labels


__all__ = [
    "ChainState",
    "SamplerConfig",
    "ChainResult",
    "MDISampler",
    "check_chain_diagnostics",
]

logger = logging.getLogger(__name__)


class ChainState(str, Enum):
    INITIALIZING = "initializing"
    ITERATING = "iterating"
    BURN_IN = "burn_in"
    COLLECTING = "collecting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class SamplerConfig:
    """
    Run settings shared by every chain.

    Attributes
    ----------
    n_iter:
        Total number of iterations per chain.
    thin:
        Keep every ``thin``-th iteration after burn-in.
    burn_in:
        Fraction of ``n_iter`` discarded before samples are kept.
    n_chains:
        Number of independent chains.
    seed:
        Root seed; chain seeds are spawned from it.
    concentration:
        Dirichlet concentration on the weights (default ``1 / K``).
    phi_prior_shape, phi_prior_rate:
        Gamma prior on every phi.
    phi_proposal_scale:
        Random-walk standard deviation on ``log(phi)``.
    initial_phi:
        Starting value for every phi; drawn from the prior when ``None``.
    label_swaps:
        Label-swap proposals per linked view per iteration (0 disables).
    n_jobs:
        joblib workers used to run chains.
    acceptance_range:
        Healthy range for the phi acceptance rate; outside it a
        ``ConvergenceWarning`` is emitted.
    """

    n_iter: int = 1000
    thin: int = 1
    burn_in: float = 0.2
    n_chains: int = 1
    seed: Optional[int] = None
    concentration: Optional[float] = None
    phi_prior_shape: float = 1.0
    phi_prior_rate: float = 0.2
    phi_proposal_scale: float = 1.0
    initial_phi: Optional[float] = None
    label_swaps: int = 1
    n_jobs: int = 1
    acceptance_range: Tuple[float, float] = (0.1, 0.9)

    def __post_init__(self) -> None:
        if self.n_iter <= 0:
            raise ConfigurationError("n_iter must be positive.")
        if self.thin <= 0:
            raise ConfigurationError("thin must be positive.")
        if not (0.0 <= self.burn_in < 1.0):
            raise ConfigurationError("burn_in must be in [0, 1).")
        if self.n_chains <= 0:
            raise ConfigurationError("n_chains must be positive.")
        if self.concentration is not None and self.concentration <= 0:
            raise ConfigurationError("concentration must be positive.")
        if self.label_swaps < 0:
            raise ConfigurationError("label_swaps must be non-negative.")
        if self.initial_phi is not None and self.initial_phi <= 0:
            raise ConfigurationError("initial_phi must be positive.")
        low, high = self.acceptance_range
        if not (0.0 <= low < high <= 1.0):
            raise ConfigurationError("acceptance_range must satisfy 0 <= low < high <= 1.")
        if self.n_retained == 0:
            raise ConfigurationError(
                "No samples would be retained; lower burn_in or thin, or raise n_iter."
            )

    @property
    def burn_in_iterations(self) -> int:
        return int(np.floor(self.burn_in * self.n_iter))

    def is_retained(self, iteration: int) -> bool:
        return iteration > self.burn_in_iterations and iteration % self.thin == 0

    @property
    def n_retained(self) -> int:
        return sum(1 for it in range(1, self.n_iter + 1) if self.is_retained(it))

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)


@dataclass
class ChainResult:
    """
    Retained samples and diagnostics of one chain.

    ``allocations`` has shape (n_samples_kept, n_views, n_items) and ``phis``
    has shape (n_samples_kept, n_pairs), both in iteration order. ``seed`` is
    the root entropy and ``spawn_key`` identifies this chain's child stream.
    """

    chain_id: int
    seed: Optional[int]
    state: ChainState
    iterations: np.ndarray
    allocations: np.ndarray
    phis: np.ndarray
    phi_acceptance: np.ndarray
    weight_acceptance: np.ndarray
    duration_sec: float
    view_names: Tuple[str, ...]
    pairs: Tuple[Tuple[int, int], ...]
    error: Optional[str] = None
    spawn_key: Tuple[int, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.state == ChainState.DONE

    @property
    def n_samples(self) -> int:
        return int(self.iterations.shape[0])

    def seed_sequence(self) -> np.random.SeedSequence:
        """The seed sequence that reproduces this chain."""
        return np.random.SeedSequence(self.seed, spawn_key=self.spawn_key)

    def view_allocations(self, view: int) -> np.ndarray:
        """(n_samples_kept, n_items) allocation samples of one view."""
        return self.allocations[:, view, :]

    def pair_labels(self) -> List[str]:
        return [f"phi_{self.view_names[m]}_{self.view_names[l]}" for m, l in self.pairs]

    def trace_frame(self) -> pd.DataFrame:
        """One row per retained sample: phis and occupied-cluster counts."""
        frame = pd.DataFrame(self.phis, columns=self.pair_labels())
        for view, name in enumerate(self.view_names):
            frame[f"n_occupied_{name}"] = [
                np.unique(sample).size for sample in self.view_allocations(view)
            ]
        frame.insert(0, "iteration", self.iterations)
        frame.insert(0, "chain", self.chain_id)
        return frame


@dataclass
class _ChainStore:
    iterations: List[int] = field(default_factory=list)
    allocations: List[np.ndarray] = field(default_factory=list)
    phis: List[np.ndarray] = field(default_factory=list)

    def append(self, iteration: int, allocations: np.ndarray, phis: np.ndarray) -> None:
        self.iterations.append(iteration)
        self.allocations.append(allocations.copy())
        self.phis.append(phis.copy())

    def arrays(self, n_views: int, n_items: int, n_pairs: int):
        if not self.iterations:
            return (
                np.zeros(0, dtype=int),
                np.zeros((0, n_views, n_items), dtype=int),
                np.zeros((0, n_pairs)),
            )
        return (
            np.asarray(self.iterations, dtype=int),
            np.stack(self.allocations).astype(int),
            np.stack(self.phis).reshape(len(self.iterations), n_pairs),
        )


class MDISampler:
    """
    Joint clustering of several views linked by pairwise concordance.

    Parameters
    ----------
    views
        One :class:`ViewData` per view. All views must share the row count.
    config
        Run settings; defaults to ``SamplerConfig()``.
    fixed
        Optional per-view boolean masks of items with known labels.
    initial_labels
        Optional per-view starting labels; required where a mask is given.

    Configuration problems raise :class:`ConfigurationError` here, before
    any chain starts.
    """

    def __init__(
        self,
        views: Sequence[ViewData],
        config: Optional[SamplerConfig] = None,
        *,
        fixed: Optional[Sequence[Optional[np.ndarray]]] = None,
        initial_labels: Optional[Sequence[Optional[np.ndarray]]] = None,
    ) -> None:
        views = tuple(views)
        if not views:
            raise ConfigurationError("At least one view is required.")
        n_items = {view.n_samples for view in views}
        if len(n_items) != 1:
            raise ConfigurationError(
                f"All views must have the same number of rows; received {sorted(n_items)}."
            )

        self.views = views
        self.config = config if config is not None else SamplerConfig()
        self.n_items = n_items.pop()
        self.view_names = tuple(
            view.name if view.name is not None else f"view{idx}"
            for idx, view in enumerate(views)
        )
        if len(set(self.view_names)) != len(self.view_names):
            raise ConfigurationError(f"View names must be unique; received {self.view_names}.")
        self.pairs = tuple(view_pairs(len(views)))

        self.fixed = self._per_view(fixed, "fixed")
        self.initial_labels = self._per_view(initial_labels, "initial_labels")
        checked = [
            check_labels(view, mask, labels)
            for view, mask, labels in zip(views, self.fixed, self.initial_labels)
        ]
        self.fixed = [mask for mask, _ in checked]
        self.initial_labels = [labels for _, labels in checked]

        # Validates the phi prior and the size of the label-combination grid.
        self._integration_layer(rng=np.random.default_rng(0))

    def _per_view(self, values, name: str) -> List[Optional[np.ndarray]]:
        if values is None:
            return [None] * len(self.views)
        values = list(values)
        if len(values) != len(self.views):
            raise ConfigurationError(
                f"`{name}` must provide one entry per view ({len(self.views)}); "
                f"received {len(values)}."
            )
        return values

    def _integration_layer(self, rng: np.random.Generator) -> IntegrationLayer:
        config = self.config
        initial = None
        if config.initial_phi is not None:
            initial = np.full(len(self.pairs), config.initial_phi)
        return IntegrationLayer(
            [view.n_clusters for view in self.views],
            prior_shape=config.phi_prior_shape,
            prior_rate=config.phi_prior_rate,
            proposal_scale=config.phi_proposal_scale,
            initial_phis=initial,
            rng=rng,
        )

    def chain_seeds(self, n_chains: Optional[int] = None) -> List[np.random.SeedSequence]:
        """Child seed sequences of the root seed, one per chain id."""
        n_chains = self.config.n_chains if n_chains is None else n_chains
        return np.random.SeedSequence(self.config.seed).spawn(n_chains)

    def run_chain(
        self,
        chain_id: int = 0,
        seed: Optional[np.random.SeedSequence] = None,
    ) -> ChainResult:
        """
        Run one chain to completion.

        A :class:`NumericalError` stops the chain and returns it in the
        ``FAILED`` state; it is never retried.
        """

        config = self.config
        if seed is None:
            # spawn() is prefix-stable: ids past n_chains still get their own stream.
            seed = self.chain_seeds(chain_id + 1)[chain_id]
        elif not isinstance(seed, np.random.SeedSequence):
            seed = np.random.SeedSequence(seed)
        rng = np.random.default_rng(seed)
        store = _ChainStore()
        state = ChainState.INITIALIZING
        error = None
        start = time.perf_counter()

        integration = self._integration_layer(rng)
        models: List[ViewModel] = []
        phi_acceptance = np.full(len(self.pairs), np.nan)
        weight_acceptance = np.full(len(self.views), np.nan)

        try:
            for view, mask, labels in zip(self.views, self.fixed, self.initial_labels):
                models.append(
                    ViewModel(
                        view,
                        fixed=mask,
                        initial_labels=labels,
                        concentration=config.concentration,
                        rng=rng,
                    )
                )
            # Shared (n_views, n_items) table; each model updates its own row in place.
            allocations = np.vstack([model.allocations for model in models])
            for idx, model in enumerate(models):
                model.allocations = allocations[idx]

            state = ChainState.ITERATING
            logger.debug("chain %d: %s", chain_id, state.value)
            for iteration in range(1, config.n_iter + 1):
                self._iterate(models, integration, allocations, rng)

                if iteration <= config.burn_in_iterations:
                    state = ChainState.BURN_IN
                elif config.is_retained(iteration):
                    state = ChainState.COLLECTING
                    store.append(iteration, allocations, integration.phis)
                else:
                    state = ChainState.ITERATING
            state = ChainState.DONE
        except NumericalError as exc:
            state = ChainState.FAILED
            error = str(exc)
            logger.warning("chain %d failed: %s", chain_id, exc)

        duration = time.perf_counter() - start
        if models and len(models) == len(self.views):
            weight_acceptance = np.array([model.weight_acceptance_rate() for model in models])
        if self.pairs:
            phi_acceptance = integration.acceptance_rates()

        iterations, kept_allocations, kept_phis = store.arrays(
            len(self.views), self.n_items, len(self.pairs)
        )
        logger.info(
            "chain %d finished in %.2fs (%s, %d samples)",
            chain_id,
            duration,
            state.value,
            iterations.shape[0],
        )
        return ChainResult(
            chain_id=chain_id,
            seed=int(seed.entropy),
            spawn_key=tuple(int(key) for key in seed.spawn_key),
            state=state,
            iterations=iterations,
            allocations=kept_allocations,
            phis=kept_phis,
            phi_acceptance=np.asarray(phi_acceptance, dtype=np.float64),
            weight_acceptance=np.asarray(weight_acceptance, dtype=np.float64),
            duration_sec=float(duration),
            view_names=self.view_names,
            pairs=self.pairs,
            error=error,
        )

    def _iterate(
        self,
        models: Sequence[ViewModel],
        integration: IntegrationLayer,
        allocations: np.ndarray,
        rng: np.random.Generator,
    ) -> None:
        linked = len(models) > 1
        if linked:
            integration.update(allocations, [model.weights for model in models], rng)

        for idx, model in enumerate(models):
            if not linked:
                model.gibbs_sweep(rng)
                continue

            def log_normaliser(weights: np.ndarray, idx: int = idx) -> float:
                current = [m.weights for m in models]
                current[idx] = weights
                return integration.log_normaliser(current)

            model.gibbs_sweep(
                rng,
                log_concordance=integration.log_concordance(idx, allocations),
                log_normaliser=log_normaliser,
            )
            for _ in range(self.config.label_swaps):
                _propose_label_swap(idx, models, integration, allocations, rng)

    def run(self) -> List[ChainResult]:
        """
        Run every chain, in parallel when ``config.n_jobs != 1``.

        Returns one result per chain, failed chains included.
        """

        config = self.config
        logger.info(
            "running %d chain(s): %d views, %d items, %d iterations (burn-in %d, thin %d)",
            config.n_chains,
            len(self.views),
            self.n_items,
            config.n_iter,
            config.burn_in_iterations,
            config.thin,
        )
        seeds = self.chain_seeds()
        results = Parallel(n_jobs=config.n_jobs)(
            delayed(self.run_chain)(chain_id, seed) for chain_id, seed in enumerate(seeds)
        )
        check_chain_diagnostics(results, acceptance_range=config.acceptance_range)
        return list(results)


def check_chain_diagnostics(
    results: Sequence[ChainResult],
    *,
    acceptance_range: Tuple[float, float] = (0.1, 0.9),
) -> None:
    """
    Emit a ``ConvergenceWarning`` for each chain whose phi acceptance rate
    falls outside ``acceptance_range``.
    """

    low, high = acceptance_range
    for result in results:
        if not result.succeeded:
            continue
        for (m, l), rate in zip(result.pairs, result.phi_acceptance):
            if np.isfinite(rate) and not (low <= rate <= high):
                warnings.warn(
                    f"chain {result.chain_id}: phi acceptance rate {rate:.2f} for views "
                    f"({result.view_names[m]}, {result.view_names[l]}) is outside "
                    f"[{low}, {high}].",
                    ConvergenceWarning,
                    stacklevel=2,
                )


def _propose_label_swap(
    idx: int,
    models: Sequence[ViewModel],
    integration: IntegrationLayer,
    allocations: np.ndarray,
    rng: np.random.Generator,
) -> bool:
    """
    Metropolis move exchanging two cluster labels of one view.

    The view's own likelihood and its symmetric weight prior are unchanged by
    the swap, so only the concordance with the other views and the
    normalising constant enter the acceptance ratio. Labels held by fixed
    items are never swapped.
    """

    model = models[idx]
    candidates = model.swappable_labels()
    if candidates.size < 2:
        return False
    a, b = rng.choice(candidates, size=2, replace=False)

    log_conc = integration.log_concordance(idx, allocations)
    labels = model.allocations
    swapped = np.where(labels == a, b, np.where(labels == b, a, labels))
    items = np.arange(labels.size)
    delta_conc = log_conc[items, swapped].sum() - log_conc[items, labels].sum()

    weights = [m.weights for m in models]
    new_weights = list(weights)
    new_weights[idx] = model.weights.copy()
    new_weights[idx][[a, b]] = new_weights[idx][[b, a]]
    delta_norm = integration.log_normaliser(new_weights) - integration.log_normaliser(weights)

    log_ratio = delta_conc - model.n_samples * delta_norm
    if np.log(rng.uniform()) < log_ratio:
        model.swap_labels(int(a), int(b))
        return True
    return False
