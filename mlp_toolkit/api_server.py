"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for training
multilayer perceptrons.

This module provides endpoints for:
- Creating networks from a layer description
- Training networks in the background with real-time progress updates
- Predicting and evaluating with trained networks
- Persisting networks to/from SQLite database

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for async background training tasks
- SQLite for network persistence
"""

import os
import sys
import uuid
import logging
from typing import Dict, Any, List, Optional, Tuple

import gevent
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

from mlp_toolkit.datasets import load_dataset, load_npz
from mlp_toolkit.errors import MLPError
from mlp_toolkit.network import MultiLayerPerceptron
from mlp_toolkit.model_persistence import (
    save_network,
    load_network,
    list_saved_networks,
    delete_network,
    delete_old_networks
)

# ============================================================================
# LOGGING SETUP
# ============================================================================

def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('FLASK_ENV') == 'production'

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if is_production:
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('mlp_toolkit').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# CONFIGURATION
# ============================================================================

MODEL_DIR = os.getenv('MODEL_DIR', 'models')
CLEANUP_DAYS = int(os.getenv('CLEANUP_DAYS', '2'))
is_production = os.getenv('FLASK_ENV') == 'production'

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})

socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not is_production,
    engineio_logger=not is_production,
    ping_timeout=60,
    ping_interval=25
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Networks currently loaded in memory: {network_id: network_info}
active_networks: Dict[str, Dict[str, Any]] = {}

# Training jobs being tracked: {job_id: job_info}
training_jobs: Dict[str, Dict[str, Any]] = {}


def reload_saved_networks() -> None:
    """
    Reload all saved networks from the database into memory.

    Called at startup to restore networks that were saved before the
    application was restarted.
    """
    saved_networks = list_saved_networks(MODEL_DIR)

    if not saved_networks:
        logger.info("No saved networks to reload")
        return

    loaded_count = 0
    for net_info in saved_networks:
        network_id = net_info['network_id']
        net = load_network(network_id, MODEL_DIR)
        if net is None:
            logger.warning(f"Failed to load network {network_id}")
            continue
        active_networks[network_id] = {
            'network': net,
            'architecture': net_info['architecture'],
            'trained': net_info['trained'],
            'validation_error': net_info['validation_error']
        }
        loaded_count += 1

    logger.info(f"Reloaded {loaded_count} network(s) from database")


reload_saved_networks()

# ============================================================================
# BACKGROUND TASKS
# ============================================================================

_cleanup_task_started = False


def delete_saved_networks_older_than(days: float) -> int:
    """
    Delete saved networks older than ``days`` and drop exactly those from
    memory. Networks that were never saved stay loaded.

    Returns:
        int: Number of networks deleted, or -1 on error
    """
    saved_before = {net['network_id'] for net in list_saved_networks(MODEL_DIR)}
    deleted_count = delete_old_networks(days=days, model_dir=MODEL_DIR)

    if deleted_count > 0:
        saved_after = {net['network_id'] for net in list_saved_networks(MODEL_DIR)}
        for nid in saved_before - saved_after:
            if active_networks.pop(nid, None) is not None:
                logger.info(f"Removed network {nid} from memory (deleted from database)")

    return deleted_count


def cleanup_old_networks_task() -> None:
    """
    Background task that runs on startup, then every 24 hours, to delete
    old networks from the database and drop them from memory.
    """
    while True:
        try:
            logger.info("Starting automatic cleanup of old networks...")
            deleted_count = delete_saved_networks_older_than(CLEANUP_DAYS)

            if deleted_count > 0:
                logger.info(f"Cleanup completed: deleted {deleted_count} network(s)")
            elif deleted_count == 0:
                logger.info("Cleanup completed: no old networks found to delete")
            else:
                logger.error("Cleanup returned error code")

            cleanup_finished_training_jobs()

            gevent.sleep(86400)

        except Exception as e:
            logger.exception(f"Error during network cleanup: {e}")
            gevent.sleep(3600)


def cleanup_finished_training_jobs() -> None:
    """Remove completed or failed training jobs from memory."""
    finished_statuses = {'completed', 'failed'}
    jobs_to_remove = [
        job_id for job_id, job_info in training_jobs.items()
        if job_info.get('status') in finished_statuses
    ]

    for job_id in jobs_to_remove:
        del training_jobs[job_id]

    if jobs_to_remove:
        logger.info(f"Cleaned up {len(jobs_to_remove)} finished training job(s)")


def start_cleanup_task() -> None:
    """
    Start the background cleanup task.

    This function is idempotent - calling it multiple times has no effect.
    """
    global _cleanup_task_started

    if _cleanup_task_started:
        logger.debug("Cleanup task already started, skipping")
        return

    _cleanup_task_started = True
    logger.info("Starting cleanup task (runs immediately, then every 24 hours)")
    gevent.spawn(cleanup_old_networks_task)


start_cleanup_task()

# ============================================================================
# REQUEST HELPERS
# ============================================================================

@app.errorhandler(MLPError)
def handle_toolkit_error(error: MLPError):
    """Precondition violations from the toolkit become 400 responses."""
    logger.warning(f"Rejected request: {error}")
    return jsonify({'error': str(error), 'type': type(error).__name__}), 400


def get_active_network(network_id: str) -> Optional[MultiLayerPerceptron]:
    info = active_networks.get(network_id)
    return info['network'] if info else None


def read_dataset(data: Dict[str, Any], prefix: str = '') -> Tuple[List, List]:
    """
    Read (inputs, targets) from a request body.

    ``<prefix>dataset`` names a built-in dataset, ``<prefix>npz`` is the
    path of an ``.npz`` file on the server, or ``<prefix>inputs`` and
    ``<prefix>targets`` hold the examples inline.

    Raises:
        ValueError: If no form is present, the dataset is unknown, or the
            inline inputs and targets differ in length
    """
    name = data.get(f'{prefix}dataset')
    if name is not None:
        return load_dataset(name)

    npz_path = data.get(f'{prefix}npz')
    if npz_path is not None:
        if not isinstance(npz_path, str):
            raise ValueError(f"'{prefix}npz' must be a file path")
        try:
            return load_npz(npz_path)
        except OSError as e:
            raise ValueError(f"Could not load '{npz_path}': {e}")

    inputs = data.get(f'{prefix}inputs')
    targets = data.get(f'{prefix}targets')
    if not isinstance(inputs, list) or not isinstance(targets, list):
        raise ValueError(
            f"Provide '{prefix}dataset', '{prefix}npz' or both "
            f"'{prefix}inputs' and '{prefix}targets'"
        )
    if len(inputs) != len(targets):
        raise ValueError(
            f"'{prefix}inputs' has {len(inputs)} examples but "
            f"'{prefix}targets' has {len(targets)}"
        )
    return inputs, targets


def find_active_job(network_id: str) -> Optional[str]:
    """Return the id of a pending or running job for ``network_id``, if any."""
    for job_id, job in training_jobs.items():
        if job['network_id'] == network_id and job.get('status') in ('pending', 'training'):
            return job_id
    return None

# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """Return server status with counts of networks and running jobs."""
    active_statuses = ('pending', 'training')
    active_training = sum(
        1 for job in training_jobs.values()
        if job.get('status') in active_statuses
    )

    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks),
        'training_jobs': active_training
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Create a new network.

    Request body:
        {
            'input_dimension': 2,
            'layers': [{'nodes': 2, 'activation': 'sigmoid'},
                       {'nodes': 1, 'activation': 'sigmoid'}],
            'randomize': true
        }

    Returns:
        JSON with network_id, architecture, and status
    """
    data = request.get_json(silent=True) or {}
    input_dimension = data.get('input_dimension', 2)
    layers = data.get('layers', [
        {'nodes': 2, 'activation': 'sigmoid'},
        {'nodes': 1, 'activation': 'sigmoid'}
    ])

    if not isinstance(layers, list) or not layers or not all(isinstance(l, dict) for l in layers):
        logger.warning(f"Invalid layers requested: {layers}")
        return jsonify({'error': 'layers must be a non-empty list of objects'}), 400

    net = MultiLayerPerceptron(input_dimension)
    for layer in layers:
        net.add_layer(layer.get('nodes'), layer.get('activation'))
    if data.get('randomize', True):
        net.randomize_weights()

    network_id = str(uuid.uuid4())
    active_networks[network_id] = {
        'network': net,
        'architecture': net.sizes,
        'trained': False,
        'validation_error': None
    }

    logger.info(f"Created network {network_id} with architecture {net.sizes}")

    return jsonify({
        'network_id': network_id,
        'architecture': net.sizes,
        'status': 'created'
    }), 201


@app.route('/api/networks/<network_id>/train', methods=['POST'])
def train_network(network_id: str):
    """
    Start training a network in the background.

    Request body:
        {
            'dataset': 'xor',            # or 'inputs' + 'targets'
            'validation_dataset': 'xor', # or 'validation_inputs' + ...
            'epochs': 1000,
            'learning_rate': 0.1
        }

    Validation data defaults to the training data.

    Returns:
        JSON with job_id, network_id, and status
    """
    net = get_active_network(network_id)
    if net is None:
        logger.warning(f"Training requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    data = request.get_json(silent=True) or {}
    epochs = data.get('epochs', 1000)
    learning_rate = data.get('learning_rate', 0.1)

    if not isinstance(epochs, int) or isinstance(epochs, bool) or epochs < 1:
        return jsonify({'error': 'epochs must be a positive integer'}), 400
    if (not isinstance(learning_rate, (int, float)) or isinstance(learning_rate, bool)
            or learning_rate <= 0):
        return jsonify({'error': 'learning_rate must be a positive number'}), 400

    try:
        train_data = read_dataset(data)
        if any(key in data for key in ('validation_dataset', 'validation_inputs')):
            validation_data = read_dataset(data, prefix='validation_')
        else:
            validation_data = train_data
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    running = find_active_job(network_id)
    if running is not None:
        logger.warning(f"Network {network_id} is already training in job {running}")
        return jsonify({
            'error': 'Network is already training',
            'job_id': running
        }), 409

    job_id = str(uuid.uuid4())
    training_jobs[job_id] = {
        'network_id': network_id,
        'status': 'pending',
        'progress': 0,
        'epochs': epochs
    }

    logger.info(
        f"Created training job {job_id} for network {network_id}: "
        f"epochs={epochs}, lr={learning_rate}"
    )

    socketio.start_background_task(
        train_network_task,
        network_id, job_id, train_data, validation_data, epochs, learning_rate
    )

    return jsonify({
        'job_id': job_id,
        'network_id': network_id,
        'status': 'training_started'
    }), 202


def train_network_task(
    network_id: str,
    job_id: str,
    train_data: Tuple[List, List],
    validation_data: Tuple[List, List],
    epochs: int,
    learning_rate: float
) -> None:
    """
    Background task that trains a network.

    Sends progress updates via WebSocket as training progresses.
    """
    net = active_networks[network_id]['network']

    def on_epoch_complete(data: Dict[str, Any]) -> None:
        """Called after each training epoch to send progress updates."""
        progress = (data['epoch'] / data['total_epochs']) * 100

        training_jobs[job_id]['status'] = 'training'
        training_jobs[job_id]['progress'] = progress

        socketio.emit('training_update', {
            'job_id': job_id,
            'network_id': network_id,
            'epoch': data['epoch'],
            'total_epochs': data['total_epochs'],
            'error': data['error'],
            'elapsed_time': data['elapsed_time'],
            'progress': progress
        })
        gevent.sleep(0)

    try:
        logger.info(f"Starting training for job {job_id}")

        net.train(
            train_data[0],
            train_data[1],
            validation_data[0],
            validation_data[1],
            num_epochs=epochs,
            learning_rate=learning_rate,
            callback=on_epoch_complete,
            yield_func=lambda: gevent.sleep(0)
        )

        validation_error = net.evaluate(*validation_data)

        active_networks[network_id]['trained'] = True
        active_networks[network_id]['validation_error'] = validation_error

        training_jobs[job_id]['status'] = 'completed'
        training_jobs[job_id]['validation_error'] = validation_error
        training_jobs[job_id]['progress'] = 100

        save_network(net, network_id, model_dir=MODEL_DIR,
                     trained=True, validation_error=validation_error)

        logger.info(
            f"Training completed for job {job_id}: validation error {validation_error:.4f}"
        )

        socketio.emit('training_complete', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'completed',
            'validation_error': validation_error,
            'progress': 100
        })
        gevent.sleep(0)

    except Exception as e:
        logger.exception(f"Training failed for job {job_id}: {e}")

        training_jobs[job_id]['status'] = 'failed'
        training_jobs[job_id]['error'] = str(e)

        socketio.emit('training_error', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'failed',
            'error': str(e)
        })
        gevent.sleep(0)


@app.route('/api/training/<job_id>', methods=['GET'])
def get_training_status(job_id: str):
    """Get the current status of a training job."""
    if job_id in training_jobs:
        return jsonify(training_jobs[job_id]), 200

    logger.warning(f"Status requested for non-existent job: {job_id}")
    return jsonify({'error': 'Training job not found'}), 404


@app.route('/api/networks/<network_id>/predict', methods=['POST'])
def predict(network_id: str):
    """
    Run one input through a network.

    Request body:
        {'input': [0, 1]}

    Returns:
        JSON with the network output
    """
    net = get_active_network(network_id)
    if net is None:
        return jsonify({'error': 'Network not found'}), 404

    data = request.get_json(silent=True) or {}
    inputs = data.get('input')
    if not isinstance(inputs, list):
        return jsonify({'error': "'input' must be a list of numbers"}), 400

    return jsonify({
        'network_id': network_id,
        'input': inputs,
        'prediction': net.predict(inputs).prediction
    }), 200


@app.route('/api/networks/<network_id>/evaluate', methods=['POST'])
def evaluate(network_id: str):
    """
    Compute the L1 error of a network on a dataset.

    Request body:
        {'dataset': 'xor'}, {'npz': 'path/to/data.npz'}
        or {'inputs': [...], 'targets': [...]}
    """
    net = get_active_network(network_id)
    if net is None:
        return jsonify({'error': 'Network not found'}), 404

    data = request.get_json(silent=True) or {}
    try:
        inputs, targets = read_dataset(data)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({
        'network_id': network_id,
        'examples': len(inputs),
        'error': net.evaluate(inputs, targets)
    }), 200


@app.route('/api/networks/<network_id>/weights', methods=['GET'])
def get_weights(network_id: str):
    """Return the raw weight and bias rows of every layer."""
    net = get_active_network(network_id)
    if net is None:
        return jsonify({'error': 'Network not found'}), 404

    return jsonify({'network_id': network_id, **net.to_record()}), 200


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """List all available networks (both in-memory and saved to disk)."""
    in_memory = [
        {
            'network_id': nid,
            'architecture': info['architecture'],
            'trained': info['trained'],
            'validation_error': info['validation_error'],
            'status': 'in_memory'
        }
        for nid, info in active_networks.items()
    ]

    in_memory_ids = set(active_networks.keys())
    saved_only = []
    for net in list_saved_networks(MODEL_DIR):
        if net['network_id'] not in in_memory_ids:
            net['status'] = 'saved'
            saved_only.append(net)

    logger.debug(f"Listing networks: {len(in_memory)} in memory, {len(saved_only)} saved")

    return jsonify({'networks': in_memory + saved_only}), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from both memory and disk."""
    deleted_from_memory = False
    if network_id in active_networks:
        del active_networks[network_id]
        deleted_from_memory = True

    deleted_from_disk = delete_network(network_id, MODEL_DIR)

    if not deleted_from_memory and not deleted_from_disk:
        logger.warning(f"Delete attempted for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    logger.info(f"Deleted network {network_id}: memory={deleted_from_memory}, disk={deleted_from_disk}")

    return jsonify({
        'network_id': network_id,
        'deleted_from_memory': deleted_from_memory,
        'deleted_from_disk': deleted_from_disk
    }), 200


@app.route('/api/networks', methods=['DELETE'])
def delete_all_networks():
    """Delete all networks from both memory and disk."""
    saved_ids = [net['network_id'] for net in list_saved_networks(MODEL_DIR)]
    all_network_ids = list(set(active_networks) | set(saved_ids))

    deleted_from_memory_count = 0
    deleted_from_disk_count = 0

    for network_id in all_network_ids:
        if network_id in active_networks:
            del active_networks[network_id]
            deleted_from_memory_count += 1

        if delete_network(network_id, MODEL_DIR):
            deleted_from_disk_count += 1

    logger.info(
        f"Deleted all networks: {len(all_network_ids)} total, "
        f"{deleted_from_memory_count} from memory, {deleted_from_disk_count} from disk"
    )

    return jsonify({
        'deleted_count': len(all_network_ids),
        'deleted_from_memory': deleted_from_memory_count,
        'deleted_from_disk': deleted_from_disk_count
    }), 200


@app.route('/api/networks/cleanup', methods=['POST'])
def cleanup_old_networks_endpoint():
    """
    Manually trigger cleanup of networks older than specified days.

    Request body (optional):
        {'days': 2}
    """
    data = request.get_json(silent=True) or {}
    days = data.get('days', CLEANUP_DAYS)

    if not isinstance(days, (int, float)) or isinstance(days, bool) or days < 0:
        return jsonify({'error': 'days must be a non-negative number'}), 400

    deleted_count = delete_saved_networks_older_than(days)
    if deleted_count == -1:
        return jsonify({'error': 'Error occurred during cleanup'}), 500

    logger.info(f"Manual cleanup: deleted {deleted_count} network(s) older than {days} day(s)")

    return jsonify({
        'deleted_count': deleted_count,
        'days': days
    }), 200

# ============================================================================
# SERVER STARTUP
# ============================================================================

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8000))
    logger.info(f"Starting server at http://localhost:{port}/")

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not is_production,
            use_reloader=False
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        else:
            raise
