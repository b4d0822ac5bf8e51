"""
errors.py
~~~~~~~~~

Exceptions raised by the matrix engine and the multilayer perceptron.
Every check happens before any state is touched, so a raised error means
nothing was modified.
"""


class MLPError(Exception):
    """Base class for all toolkit errors."""


class ConstructionError(MLPError, ValueError):
    """Invalid input dimension, layer size or missing layer argument."""


class ShapeMismatchError(MLPError, ValueError):
    """Operands or datasets whose dimensions do not line up."""


class RangeError(MLPError, ValueError):
    """Randomization bounds where upper < lower."""


class RateError(MLPError, ValueError):
    """Learning rate that is not strictly positive."""


class ActivationTypeError(MLPError, TypeError):
    """Activation function built from something that is not callable."""
