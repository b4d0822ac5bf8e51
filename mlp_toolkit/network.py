"""
network.py
~~~~~~~~~~

Multilayer perceptron trained with per-example stochastic backpropagation.

Layers are appended one at a time; each owns a weight matrix
(nodes x previous layer size), a bias column (nodes x 1) and an
activation function. Weights and biases start at zero until
``randomize_weights`` is called.
"""

import logging
import time
from collections import namedtuple
from numbers import Real
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import numpy as np

from mlp_toolkit.activation import ActivationFunction, get_activation
from mlp_toolkit.errors import (
    ConstructionError,
    RateError,
    ShapeMismatchError,
)
from mlp_toolkit.matrix import Matrix

logger = logging.getLogger(__name__)

Prediction = namedtuple('Prediction', ['prediction', 'activations'])
Prediction.__doc__ = """\
Result of a forward pass.

prediction: the output layer values as a flat list
activations: column matrices; activations[0] is the input and
    activations[i + 1] is the activated output of layer i
"""

Vector = Sequence[float]


def _is_positive_int(value) -> bool:
    return (
        not isinstance(value, bool)
        and isinstance(value, (int, np.integer))
        and value >= 1
    )


class MultiLayerPerceptron:
    """
    A fully connected feedforward network.

    Args:
        input_dimension: Number of input values (>= 1)

    Raises:
        ConstructionError: If input_dimension is not a positive integer

    Example:
        >>> net = (MultiLayerPerceptron(2)
        ...        .add_layer(2, 'sigmoid')
        ...        .add_layer(1, 'sigmoid')
        ...        .randomize_weights())
        >>> net.sizes
        [2, 2, 1]
    """

    def __init__(self, input_dimension: int):
        if not _is_positive_int(input_dimension):
            raise ConstructionError(
                f"Input dimension must be a positive integer, got {input_dimension!r}"
            )
        self.input_dimension = int(input_dimension)
        self.weights: List[Matrix] = []
        self.biases: List[Matrix] = []
        self.activations: List[ActivationFunction] = []

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_layer(
        self,
        nodes: Optional[int] = None,
        activation: Union[ActivationFunction, str, None] = None
    ) -> 'MultiLayerPerceptron':
        """
        Append a layer whose input size is the previous layer's node count.

        Args:
            nodes: Number of nodes in the layer (>= 1)
            activation: ActivationFunction, or the name of a stock one

        Returns:
            The network itself, for chaining

        Raises:
            ConstructionError: If nodes or activation is missing or invalid
        """
        if nodes is None or activation is None:
            raise ConstructionError("A layer needs both a node count and an activation")
        if not _is_positive_int(nodes):
            raise ConstructionError(
                f"Layer node count must be a positive integer, got {nodes!r}"
            )
        activation = get_activation(activation)

        previous = self.weights[-1].rows if self.weights else self.input_dimension
        self.weights.append(Matrix(int(nodes), previous))
        self.biases.append(Matrix(int(nodes), 1))
        self.activations.append(activation)

        logger.debug(
            f"Added layer {len(self.weights) - 1}: {nodes} nodes, "
            f"{previous} inputs, activation={activation.name}"
        )
        return self

    def randomize_weights(self, lower: float = -1.0, upper: float = 1.0) -> 'MultiLayerPerceptron':
        """Draw every weight and bias uniformly from [lower, upper)."""
        for weights, biases in zip(self.weights, self.biases):
            weights.randomize(lower, upper)
            biases.randomize(lower, upper)
        return self

    @property
    def sizes(self) -> List[int]:
        """Node counts from the input to the output layer."""
        return [self.input_dimension] + [weights.rows for weights in self.weights]

    @property
    def output_dimension(self) -> int:
        self._require_layers()
        return self.weights[-1].rows

    def describe(self, node: str = '*') -> str:
        """Centered text drawing of the topology, one line per layer."""
        node += ' '
        width = max(self.sizes) * len(node) + 1
        return '\n\n'.join((node * size).center(width) for size in self.sizes)

    # ------------------------------------------------------------------
    # Forward pass
    # ------------------------------------------------------------------

    def predict(self, inputs: Vector) -> Prediction:
        """
        Run the input through every layer.

        Args:
            inputs: One value per input node

        Returns:
            Prediction with the output values and every layer's activations

        Raises:
            ShapeMismatchError: If the input length differs from input_dimension
        """
        self._require_layers()
        output = Matrix.from_vector(inputs)
        if output.rows != self.weights[0].columns:
            raise ShapeMismatchError(
                f"Prediction input has {output.rows} values, "
                f"network expects {self.weights[0].columns}"
            )

        activations = [output]
        for weights, biases, activation in zip(self.weights, self.biases, self.activations):
            output = Matrix.dot(weights, output).add_in_place(biases)
            output.map_in_place(lambda value, row, column: activation.function(value))
            activations.append(output)

        return Prediction(Matrix.transpose(output).to_flat(), activations)

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def train_iteration(self, inputs: Vector, targets: Vector, learning_rate: float) -> float:
        """
        Apply one backpropagation step for a single example.

        Each layer's gradient is ``derivative(output) * error * learning_rate``
        and is added to the parameters, moving the prediction toward the
        target. The error handed to the previous layer is computed from the
        weights as they were before this step's update.

        Args:
            inputs: One value per input node
            targets: One value per output node
            learning_rate: Step size (> 0)

        Returns:
            float: Sum of absolute errors for this example before the update

        Raises:
            RateError: If learning_rate is not positive
            ShapeMismatchError: If inputs or targets have the wrong length
        """
        self._require_rate(learning_rate)
        self._require_layers()
        targets = Matrix.from_vector(targets)
        if targets.rows != self.output_dimension:
            raise ShapeMismatchError(
                f"Target has {targets.rows} values, network outputs {self.output_dimension}"
            )

        prediction, activations = self.predict(inputs)
        errors = Matrix.subtract(targets, Matrix.from_vector(prediction))
        example_error = float(np.abs(errors.data).sum())

        for i in reversed(range(len(self.weights))):
            derivative = self.activations[i].derivative
            gradients = Matrix.mapped(
                activations[i + 1],
                lambda value, row, column: derivative(value)
            )
            gradients.multiply_in_place(errors).multiply_in_place(learning_rate)

            weight_deltas = Matrix.dot(gradients, Matrix.transpose(activations[i]))

            # Propagate with the weights as they stood before the update
            errors = Matrix.dot(Matrix.transpose(self.weights[i]), errors)

            self.weights[i].add_in_place(weight_deltas)
            self.biases[i].add_in_place(gradients)

        return example_error

    def train(
        self,
        train_inputs: Sequence[Vector],
        train_targets: Sequence[Vector],
        validation_inputs: Optional[Sequence[Vector]] = None,
        validation_targets: Optional[Sequence[Vector]] = None,
        num_epochs: int = 1,
        learning_rate: float = 0.1,
        verbose: bool = False,
        callback: Optional[Callable[[Dict[str, Any]], None]] = None,
        yield_func: Optional[Callable[[], None]] = None
    ) -> None:
        """
        Train with stochastic gradient descent, one example at a time.

        Every epoch visits each training example once in a fresh random
        order.

        Args:
            train_inputs: Training examples
            train_targets: One target vector per training example
            validation_inputs: Examples used to report progress
            validation_targets: One target vector per validation example
            num_epochs: Number of passes over the training data
            learning_rate: Step size (> 0)
            verbose: Log the validation error after each epoch
            callback: Called after each epoch with a dict holding epoch,
                total_epochs, error (None without validation data) and
                elapsed_time
            yield_func: Called after each example so cooperative schedulers
                can run other tasks

        Raises:
            ShapeMismatchError: If a dataset and its targets differ in length
            RateError: If learning_rate is not positive
        """
        validation_inputs = [] if validation_inputs is None else validation_inputs
        validation_targets = [] if validation_targets is None else validation_targets
        if (len(train_inputs) != len(train_targets)
                or len(validation_inputs) != len(validation_targets)):
            raise ShapeMismatchError("You have to supply one target for each data item")
        self._require_rate(learning_rate)
        if isinstance(num_epochs, bool) or not isinstance(num_epochs, (int, np.integer)) or num_epochs < 0:
            raise ValueError(f"num_epochs must be a non-negative integer, got {num_epochs!r}")

        report = verbose or callback is not None
        n = len(train_inputs)
        start = time.time()

        for epoch in range(1, num_epochs + 1):
            for index in np.random.permutation(n):
                self.train_iteration(train_inputs[index], train_targets[index], learning_rate)
                if yield_func:
                    yield_func()

            if not report:
                continue

            error = None
            if len(validation_inputs) > 0:
                error = self.evaluate(validation_inputs, validation_targets)
            if verbose:
                logger.info(f"Epoch {epoch}; Error {error}")
            if callback:
                callback({
                    'epoch': epoch,
                    'total_epochs': num_epochs,
                    'error': error,
                    'elapsed_time': time.time() - start
                })

    def evaluate(self, inputs: Sequence[Vector], targets: Sequence[Vector]) -> float:
        """
        Sum of absolute differences between predictions and targets over
        every example and every output.

        Raises:
            ShapeMismatchError: If inputs and targets differ in length, or a
                target does not match the output size
        """
        if len(inputs) != len(targets):
            raise ShapeMismatchError("You have to supply one target for each data item")

        error = 0.0
        for example, target in zip(inputs, targets):
            prediction = self.predict(example).prediction
            target = Matrix.from_vector(target).to_flat()
            if len(target) != len(prediction):
                raise ShapeMismatchError(
                    f"Target has {len(target)} values, network outputs {len(prediction)}"
                )
            error += sum(abs(p - t) for p, t in zip(prediction, target))
        return error

    # ------------------------------------------------------------------
    # Parameter records
    # ------------------------------------------------------------------

    def to_record(self) -> Dict[str, List[List[List[float]]]]:
        """Raw weight and bias rows per layer, in layer order."""
        return {
            'weights': [weights.to_grid() for weights in self.weights],
            'biases': [biases.to_grid() for biases in self.biases],
        }

    def load_record(self, record: Dict[str, Any]) -> 'MultiLayerPerceptron':
        """
        Replace each layer's weights and biases, shapes included, positionally.

        Everything is validated before any layer is touched.

        Raises:
            ShapeMismatchError: If the record's layer count differs from the
                network's or the shapes do not chain from input to output
        """
        try:
            weights = [Matrix.from_grid(grid) for grid in record['weights']]
            biases = [Matrix.from_grid(grid) for grid in record['biases']]
        except (KeyError, TypeError) as e:
            raise ShapeMismatchError(f"Malformed parameter record: {e}") from e

        if len(weights) != len(self.weights) or len(biases) != len(self.biases):
            raise ShapeMismatchError(
                f"Record has {len(weights)} weight and {len(biases)} bias entries, "
                f"network has {len(self.weights)} layers"
            )

        previous = self.input_dimension
        for i, (w, b) in enumerate(zip(weights, biases)):
            if w.rows < 1 or w.columns != previous or b.shape != (w.rows, 1):
                raise ShapeMismatchError(
                    f"Layer {i}: weights {w.rows}x{w.columns} and biases "
                    f"{b.rows}x{b.columns} do not fit after a layer of {previous}"
                )
            previous = w.rows

        self.weights = weights
        self.biases = biases
        return self

    def to_dict(self) -> Dict[str, Any]:
        """
        Architecture and parameters as JSON-friendly data.

        Raises:
            ValueError: If a layer uses an unnamed activation
        """
        layers = []
        for weights, activation in zip(self.weights, self.activations):
            if activation.name is None:
                raise ValueError("Cannot serialize a layer with an unnamed activation")
            layers.append({'nodes': weights.rows, 'activation': activation.name})

        return {
            'input_dimension': self.input_dimension,
            'layers': layers,
            **self.to_record()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MultiLayerPerceptron':
        """Rebuild a network produced by ``to_dict``."""
        net = cls(data['input_dimension'])
        for layer in data['layers']:
            net.add_layer(layer.get('nodes'), layer.get('activation'))
        if 'weights' in data:
            net.load_record(data)
        return net

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _require_layers(self) -> None:
        if not self.weights:
            raise ConstructionError("Network has no layers")

    @staticmethod
    def _require_rate(learning_rate) -> None:
        if (isinstance(learning_rate, bool)
                or not isinstance(learning_rate, (Real, np.number))
                or not learning_rate > 0):
            raise RateError(f"Learning rate must be positive, got {learning_rate!r}")
