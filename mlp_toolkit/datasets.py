"""
datasets.py
~~~~~~~~~~~

Small datasets for training and demonstrating networks.

The boolean gate datasets are tiny enough to train on in seconds and are
used as both training and validation data. Larger datasets can be supplied
as ``.npz`` archives holding ``inputs`` and ``targets`` arrays.
"""

import logging
from typing import Dict, List, Tuple

import numpy as np

logger = logging.getLogger(__name__)

Dataset = Tuple[List[List[float]], List[List[float]]]

_GATE_INPUTS = [[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]]

_GATE_TARGETS: Dict[str, List[List[float]]] = {
    'xor': [[0.0], [1.0], [1.0], [0.0]],
    'and': [[0.0], [0.0], [0.0], [1.0]],
    'or': [[0.0], [1.0], [1.0], [1.0]],
    'nand': [[1.0], [1.0], [1.0], [0.0]],
}

DATASET_NAMES = tuple(sorted(_GATE_TARGETS))


def load_dataset(name: str) -> Dataset:
    """
    Return (inputs, targets) for a two-input boolean gate.

    Args:
        name: One of 'xor', 'and', 'or', 'nand'

    Returns:
        tuple: Fresh lists, safe for the caller to modify

    Raises:
        ValueError: If the dataset name is unknown
    """
    key = name.lower() if isinstance(name, str) else name
    if key not in _GATE_TARGETS:
        raise ValueError(
            f"Unknown dataset {name!r}. Available: {', '.join(DATASET_NAMES)}"
        )
    inputs = [list(row) for row in _GATE_INPUTS]
    targets = [list(row) for row in _GATE_TARGETS[key]]
    return inputs, targets


def load_npz(filepath: str) -> Dataset:
    """
    Load a dataset from a numpy ``.npz`` archive.

    The archive must contain an ``inputs`` array of shape (n, input_dim) and
    a ``targets`` array of shape (n, output_dim). One-dimensional arrays are
    treated as one value per example.

    Raises:
        ValueError: If an array is missing or the lengths differ
    """
    with np.load(filepath) as data:
        missing = {'inputs', 'targets'} - set(data.files)
        if missing:
            raise ValueError(
                f"{filepath} is missing array(s): {', '.join(sorted(missing))}"
            )
        inputs = np.asarray(data['inputs'], dtype=float)
        targets = np.asarray(data['targets'], dtype=float)

    if inputs.ndim == 1:
        inputs = inputs.reshape(-1, 1)
    if targets.ndim == 1:
        targets = targets.reshape(-1, 1)
    if len(inputs) != len(targets):
        raise ValueError(
            f"{filepath}: {len(inputs)} inputs but {len(targets)} targets"
        )

    logger.info(f"Loaded {len(inputs)} examples from {filepath}")
    return inputs.tolist(), targets.tolist()
