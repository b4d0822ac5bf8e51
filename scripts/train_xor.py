#!/usr/bin/env python3
"""
Train a small network on a boolean gate dataset and print its predictions.

Usage:
    python scripts/train_xor.py [--dataset xor | --npz data.npz] [--epochs 10000] [--weights path]

The script will:
1. Load the gate dataset, or the ``inputs``/``targets`` arrays of --npz
2. Build a network with two hidden layers of 2 sigmoid nodes, sized to the data
3. Load weights from --weights if the file exists, otherwise randomize them
4. Train on the dataset, logging the error every epoch when --verbose is set
5. Print the prediction for every input and save the weights
"""

import argparse
import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from mlp_toolkit.activation import SIGMOID
from mlp_toolkit.datasets import DATASET_NAMES, load_dataset, load_npz
from mlp_toolkit.model_persistence import load_weights, save_weights
from mlp_toolkit.network import MultiLayerPerceptron


def build_network(input_dimension: int = 2, output_dimension: int = 1) -> MultiLayerPerceptron:
    return (MultiLayerPerceptron(input_dimension=input_dimension)
            .add_layer(nodes=2, activation=SIGMOID)
            .add_layer(nodes=2, activation=SIGMOID)
            .add_layer(nodes=output_dimension, activation=SIGMOID))


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.split('\n')[1])
    parser.add_argument('--dataset', default='xor', choices=DATASET_NAMES)
    parser.add_argument('--npz', help='.npz file with inputs and targets; overrides --dataset')
    parser.add_argument('--epochs', type=int, default=10000)
    parser.add_argument('--learning-rate', type=float, default=0.1)
    parser.add_argument('--weights', help='JSON weights file to load and save')
    parser.add_argument('--verbose', action='store_true')
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(message)s')

    if args.npz:
        if not os.path.exists(args.npz):
            print(f"❌ Error: {args.npz} not found!")
            return 1
        inputs, targets = load_npz(args.npz)
        source = args.npz
    else:
        inputs, targets = load_dataset(args.dataset)
        source = args.dataset

    if not inputs:
        print(f"❌ Error: {source} has no examples")
        return 1

    mlp = build_network(len(inputs[0]), len(targets[0]))
    print(mlp.describe())

    if not (args.weights and load_weights(mlp, args.weights)):
        mlp.randomize_weights()

    print(f"\n🏋️  Training on '{source}' for {args.epochs} epochs...")
    mlp.train(
        inputs, targets, inputs, targets,
        num_epochs=args.epochs,
        learning_rate=args.learning_rate,
        verbose=args.verbose
    )

    print(f"✅ Final error: {mlp.evaluate(inputs, targets):.4f}")
    for example in inputs:
        print(f"   {example} => {mlp.predict(example).prediction}")

    if args.weights:
        save_weights(mlp, args.weights)
        print(f"💾 Weights saved to {args.weights}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
