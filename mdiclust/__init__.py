"""
Bayesian integrative clustering of several data views.

This package provides a Multiple Dataset Integration (MDI) sampler together
with the building blocks used around it in notebooks: synthetic data, count
transforms, Gaussian mixture baselines, posterior summaries and plots. Use
the modules from notebooks to keep interactive code light and reproducible.
"""

from .components import CategoricalComponent, GaussianComponent, MixtureComponent
from .data_io import ViewData, load_chain, save_chain
from .errors import ConfigurationError, ConvergenceWarning, NumericalError
from .gmm import MixtureSelection, select_gaussian_mixture
from .integration import IntegrationLayer
from .metrics import (
    adjusted_rand_index,
    cluster_counts,
    contingency_table,
    pairwise_ari,
    partition_metrics,
)
from .posterior import (
    PosteriorSummary,
    allocation_probabilities,
    fusion_probabilities,
    point_estimate,
    posterior_similarity_matrix,
    predicted_labels,
    summarise_chains,
)
from .plots import cluster_scatter_2d, plot_phi_density, plot_phi_trace, plot_similarity_matrix
from .preprocessing import compare_transforms, log_transform, standardize
from .sampler import ChainResult, ChainState, MDISampler, SamplerConfig
from .synthetic import (
    MultiViewDataset,
    generate_categorical_mixture,
    generate_count_mixture,
    generate_gaussian_mixture,
    generate_multiview_dataset,
    toeplitz_covariance,
)
from .views import ViewModel

__all__ = [
    "CategoricalComponent",
    "GaussianComponent",
    "MixtureComponent",
    "ViewData",
    "load_chain",
    "save_chain",
    "ConfigurationError",
    "ConvergenceWarning",
    "NumericalError",
    "MixtureSelection",
    "select_gaussian_mixture",
    "IntegrationLayer",
    "adjusted_rand_index",
    "cluster_counts",
    "contingency_table",
    "pairwise_ari",
    "partition_metrics",
    "PosteriorSummary",
    "allocation_probabilities",
    "fusion_probabilities",
    "point_estimate",
    "posterior_similarity_matrix",
    "predicted_labels",
    "summarise_chains",
    "cluster_scatter_2d",
    "plot_phi_density",
    "plot_phi_trace",
    "plot_similarity_matrix",
    "compare_transforms",
    "log_transform",
    "standardize",
    "ChainResult",
    "ChainState",
    "MDISampler",
    "SamplerConfig",
    "MultiViewDataset",
    "generate_categorical_mixture",
    "generate_count_mixture",
    "generate_gaussian_mixture",
    "generate_multiview_dataset",
    "toeplitz_covariance",
    "ViewModel",
]
