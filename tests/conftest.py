"""
conftest.py
~~~~~~~~~~~

Shared fixtures. The server's model directory is pointed at a temporary
directory before any test module imports the API server.
"""

import os
import tempfile

import numpy as np
import pytest

os.environ.setdefault('MODEL_DIR', tempfile.mkdtemp(prefix='mlp_models_'))

from mlp_toolkit.activation import ActivationFunction, IDENTITY
from mlp_toolkit.network import MultiLayerPerceptron


@pytest.fixture
def temp_db_dir(tmp_path):
    """Create a temporary directory for database storage."""
    db_dir = tmp_path / "test_models"
    db_dir.mkdir()
    return str(db_dir)


@pytest.fixture
def identity():
    return IDENTITY


@pytest.fixture
def unnamed_identity():
    """Identity activation built by hand, without a registry name."""
    return ActivationFunction(lambda x: x, lambda y: 1)


@pytest.fixture
def ones_network(identity):
    """2 inputs -> 2 identity nodes with every weight and bias set to 1."""
    return MultiLayerPerceptron(2).add_layer(2, identity).randomize_weights(1, 1)


@pytest.fixture
def simple_network():
    """A small randomized 3-4-2 sigmoid network."""
    np.random.seed(7)
    return (MultiLayerPerceptron(3)
            .add_layer(4, 'sigmoid')
            .add_layer(2, 'sigmoid')
            .randomize_weights())
