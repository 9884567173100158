"""
Exception and warning types raised by the MDI sampler.
"""

from __future__ import annotations

from sklearn.exceptions import ConvergenceWarning as _SklearnConvergenceWarning


__all__ = ["ConfigurationError", "NumericalError", "ConvergenceWarning"]


class ConfigurationError(ValueError):
    """
    Inconsistent sampler inputs, detected before any iteration runs.
    """


class NumericalError(ArithmeticError):
    """
    Degenerate component parameters or a non-finite density.

    Raised inside a chain; aborts that chain only.
    """


class ConvergenceWarning(_SklearnConvergenceWarning):
    """
    Non-fatal diagnostic: poor phi mixing or excluded chains.
    """
