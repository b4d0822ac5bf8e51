"""
mlp_toolkit package
~~~~~~~~~~~~~~~~~~~

Minimal feedforward neural network toolkit.
Contains the dense matrix engine, the multilayer perceptron trained with
stochastic backpropagation, toy datasets, model persistence and API server.
"""

from mlp_toolkit.activation import ActivationFunction, get_activation
from mlp_toolkit.errors import (
    ActivationTypeError,
    ConstructionError,
    MLPError,
    RangeError,
    RateError,
    ShapeMismatchError,
)
from mlp_toolkit.matrix import Matrix
from mlp_toolkit.network import MultiLayerPerceptron, Prediction

__version__ = "1.0.0"
