"""
activation.py
~~~~~~~~~~~~~

Activation functions for network layers.

An activation pairs a scalar function with its derivative. The derivative
is expressed in terms of the *activated* value: for sigmoid it is
``y * (1 - y)`` where ``y = sigmoid(x)``, not ``sigmoid'(x)``. The
backward pass calls it with layer outputs, never with weighted sums.
"""

import math
from typing import Callable, Dict, Optional, Union

from mlp_toolkit.errors import ActivationTypeError, ConstructionError

ScalarFunction = Callable[[float], float]


class ActivationFunction:
    """
    A (value, derivative) pair shared by every node of a layer.

    Args:
        function: Scalar function applied to each weighted sum
        derivative: Derivative evaluated at the activated output
        name: Optional registry name, required to persist a network

    Raises:
        ActivationTypeError: If either function is not callable
    """

    __slots__ = ('_function', '_derivative', '_name')

    def __init__(
        self,
        function: ScalarFunction,
        derivative: ScalarFunction,
        name: Optional[str] = None
    ):
        if not callable(function) or not callable(derivative):
            raise ActivationTypeError(
                "Activation function and derivative must both be callable, got "
                f"{type(function).__name__} and {type(derivative).__name__}"
            )
        object.__setattr__(self, '_function', function)
        object.__setattr__(self, '_derivative', derivative)
        object.__setattr__(self, '_name', name)

    def __setattr__(self, key, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    @property
    def function(self) -> ScalarFunction:
        return self._function

    @property
    def derivative(self) -> ScalarFunction:
        return self._derivative

    @property
    def name(self) -> Optional[str]:
        return self._name

    def __repr__(self) -> str:
        return f"ActivationFunction(name={self._name!r})"


def _sigmoid(x: float) -> float:
    # Clip to keep exp from overflowing
    x = max(min(x, 500.0), -500.0)
    return 1.0 / (1.0 + math.exp(-x))


SIGMOID = ActivationFunction(_sigmoid, lambda y: y * (1.0 - y), name='sigmoid')
TANH = ActivationFunction(math.tanh, lambda y: 1.0 - y * y, name='tanh')
IDENTITY = ActivationFunction(lambda x: x, lambda y: 1.0, name='identity')
RELU = ActivationFunction(
    lambda x: x if x > 0.0 else 0.0,
    lambda y: 1.0 if y > 0.0 else 0.0,
    name='relu'
)

ACTIVATIONS: Dict[str, ActivationFunction] = {
    activation.name: activation
    for activation in (SIGMOID, TANH, IDENTITY, RELU)
}


def get_activation(activation: Union[str, ActivationFunction]) -> ActivationFunction:
    """
    Resolve an activation by registry name, or pass an instance through.

    Raises:
        ConstructionError: If the name is unknown or the value is neither a
            name nor an ActivationFunction
    """
    if isinstance(activation, ActivationFunction):
        return activation
    if isinstance(activation, str):
        try:
            return ACTIVATIONS[activation.lower()]
        except KeyError:
            raise ConstructionError(
                f"Unknown activation '{activation}'. "
                f"Available: {', '.join(sorted(ACTIVATIONS))}"
            ) from None
    raise ConstructionError(
        f"Layer activation must be an ActivationFunction or a name, got {activation!r}"
    )
