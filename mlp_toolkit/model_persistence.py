"""
model_persistence.py
~~~~~~~~~~~~~~~~~~~~

Persistence for multilayer perceptrons.

Two storage forms are supported:

- A JSON weights file holding the raw weight and bias rows of every layer,
  loaded back into an already constructed network.
- A SQLite model store keeping whole networks (architecture, activation
  names and parameters) with training metadata.
"""

import sqlite3
import json
import os
import logging
from typing import Optional, List, Dict, Any, Generator
from contextlib import contextmanager

from mlp_toolkit.errors import MLPError
from mlp_toolkit.network import MultiLayerPerceptron

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# WEIGHTS FILE
# ============================================================================

def save_weights(network: MultiLayerPerceptron, path: str) -> None:
    """
    Write a network's weights and biases to a JSON file.

    The file holds ``{"weights": [...], "biases": [...]}`` with one entry of
    raw matrix rows per layer, in layer order.

    Args:
        network: Network whose parameters are saved
        path: Destination file; parent directories are created
    """
    directory = os.path.dirname(path)
    if directory and not os.path.exists(directory):
        os.makedirs(directory)

    with open(path, 'w') as f:
        json.dump(network.to_record(), f)

    logger.info(f"Saved weights for network {network.sizes} to {path}")


def load_weights(network: MultiLayerPerceptron, path: str) -> bool:
    """
    Load weights and biases from a JSON file into a network.

    Args:
        network: Network whose layers are replaced positionally
        path: File written by ``save_weights``

    Returns:
        bool: False if the file does not exist (the network is untouched),
        True once the parameters are loaded

    Raises:
        ShapeMismatchError: If the stored layers do not fit the network
        json.JSONDecodeError: If the file is not valid JSON
    """
    if not os.path.exists(path):
        logger.debug(f"No weights file at {path}, keeping current parameters")
        return False

    with open(path) as f:
        record = json.load(f)

    network.load_record(record)
    logger.info(f"Loaded weights for network {network.sizes} from {path}")
    return True


# ============================================================================
# MODEL STORE
# ============================================================================

class ModelDatabase:
    """
    Manages SQLite database for neural network model persistence.

    The database stores:
    - Network metadata (architecture, training status, validation error)
    - Networks serialized as JSON (architecture, activations, parameters)
    """

    def __init__(self, db_path: str = 'models/networks.db'):
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._ensure_directory()
        self._initialize_schema()

    def _ensure_directory(self) -> None:
        """Create the database directory if it doesn't exist."""
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_schema(self) -> None:
        """Create the database schema if it doesn't exist."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS networks (
                    network_id TEXT PRIMARY KEY,
                    architecture TEXT NOT NULL,
                    network_data TEXT NOT NULL,
                    trained INTEGER NOT NULL DEFAULT 0,
                    validation_error REAL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_trained
                ON networks(trained)
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_created_at
                ON networks(created_at DESC)
            ''')

    @staticmethod
    def _row_metadata(row: sqlite3.Row) -> Dict[str, Any]:
        architecture = json.loads(row['architecture'])
        return {
            'network_id': row['network_id'],
            'architecture': architecture,
            'trained': bool(row['trained']),
            'validation_error': row['validation_error'],
            'created_at': row['created_at'],
            'updated_at': row['updated_at']
        }

    def save_network_to_db(
        self,
        network: MultiLayerPerceptron,
        network_id: str,
        trained: bool = True,
        validation_error: Optional[float] = None
    ) -> bool:
        """
        Save a network to the database, replacing any network with the same id.

        Args:
            network: Network to save
            network_id: Unique identifier for the network
            trained: Whether the network has been trained
            validation_error: L1 error on the validation set (>= 0)

        Returns:
            bool: True once saved

        Raises:
            ValueError: If validation_error is negative or a layer uses an
                unnamed activation
        """
        if validation_error is not None and validation_error < 0:
            raise ValueError(
                f"Validation error must be non-negative, got {validation_error}"
            )

        network_data = json.dumps(network.to_dict())
        architecture_json = json.dumps(network.sizes)

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO networks
                (network_id, architecture, network_data, trained,
                 validation_error, updated_at)
                VALUES (?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(network_id) DO UPDATE SET
                    architecture = excluded.architecture,
                    network_data = excluded.network_data,
                    trained = excluded.trained,
                    validation_error = excluded.validation_error,
                    updated_at = CURRENT_TIMESTAMP
            ''', (
                network_id,
                architecture_json,
                network_data,
                1 if trained else 0,
                validation_error
            ))

        logger.info(
            f"Saved network '{network_id}' with architecture "
            f"{network.sizes}, trained={trained}, validation_error={validation_error}"
        )
        return True

    def load_network_from_db(self, network_id: str) -> Optional[MultiLayerPerceptron]:
        """
        Load a network from the database.

        Args:
            network_id: Unique identifier of the network

        Returns:
            MultiLayerPerceptron or None if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT network_data FROM networks WHERE network_id = ?',
                (network_id,)
            )
            row = cursor.fetchone()

            if row is None:
                logger.warning(f"Network '{network_id}' not found")
                return None

            network = MultiLayerPerceptron.from_dict(json.loads(row['network_data']))
            logger.info(f"Loaded network '{network_id}'")
            return network

    def list_networks_from_db(self) -> List[Dict[str, Any]]:
        """
        List all networks with metadata.

        Returns:
            List of network metadata dictionaries
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT
                    network_id,
                    architecture,
                    trained,
                    validation_error,
                    created_at,
                    updated_at
                FROM networks
                ORDER BY created_at DESC
            ''')

            networks = []
            for row in cursor.fetchall():
                metadata = self._row_metadata(row)
                architecture = metadata['architecture']

                # Weight and bias shapes follow from consecutive layer sizes
                metadata['weights_shape'] = [
                    [architecture[i+1], architecture[i]]
                    for i in range(len(architecture) - 1)
                ]
                metadata['biases_shape'] = [
                    [architecture[i+1], 1]
                    for i in range(len(architecture) - 1)
                ]
                networks.append(metadata)

            logger.debug(f"Listed {len(networks)} networks")
            return networks

    def delete_network_from_db(self, network_id: str) -> bool:
        """
        Delete a network from the database.

        Args:
            network_id: Unique identifier of the network

        Returns:
            bool: True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'DELETE FROM networks WHERE network_id = ?',
                (network_id,)
            )

            deleted = cursor.rowcount > 0
            if deleted:
                logger.info(f"Deleted network '{network_id}'")
            else:
                logger.warning(
                    f"Could not delete network '{network_id}': not found"
                )
            return deleted

    def get_network_metadata_from_db(
        self,
        network_id: str
    ) -> Optional[Dict[str, Any]]:
        """
        Get network metadata without loading the full network.

        Args:
            network_id: Unique identifier of the network

        Returns:
            Metadata dictionary or None if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT
                    network_id,
                    architecture,
                    trained,
                    validation_error,
                    created_at,
                    updated_at
                FROM networks
                WHERE network_id = ?
            ''', (network_id,))

            row = cursor.fetchone()
            if row is None:
                logger.warning(
                    f"Metadata for network '{network_id}' not found"
                )
                return None

            return self._row_metadata(row)

    def delete_old_networks_from_db(self, days: float) -> int:
        """
        Delete networks created more than ``days`` days ago.

        Args:
            days: Age threshold in days (>= 0, fractions allowed)

        Returns:
            int: Number of networks deleted

        Raises:
            ValueError: If days is negative
        """
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM networks WHERE created_at < datetime('now', ?)",
                (f'-{float(days):f} days',)
            )
            deleted = cursor.rowcount

        logger.info(f"Deleted {deleted} network(s) older than {days} day(s)")
        return deleted


# Global database instance
_db = None


def _get_db(model_dir: str = 'models') -> ModelDatabase:
    """
    Get the database for a model directory.

    The default directory shares one global instance; any other directory
    gets a fresh instance.

    Returns:
        ModelDatabase: Database stored under model_dir
    """
    global _db
    if model_dir != 'models':
        return ModelDatabase(db_path=f'{model_dir}/networks.db')
    if _db is None:
        _db = ModelDatabase()
    return _db


def _valid_id(network_id) -> bool:
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return False
    return True


def save_network(
    network: MultiLayerPerceptron,
    network_id: str,
    model_dir: str = 'models',
    trained: bool = True,
    validation_error: Optional[float] = None
) -> bool:
    """
    Save a network to the SQLite database.

    Args:
        network: The network to save
        network_id: A unique identifier for the network
        model_dir: Directory for the database file
        trained: Boolean indicating if the network has been trained
        validation_error: L1 error on the validation set

    Returns:
        bool: True if the save was successful, False otherwise

    Example:
        >>> net = MultiLayerPerceptron(2).add_layer(1, 'sigmoid')
        >>> save_network(net, "my_network", trained=False)
        True
    """
    if not _valid_id(network_id):
        return False

    try:
        return _get_db(model_dir).save_network_to_db(
            network, network_id, trained, validation_error
        )

    except ValueError as e:
        logger.error(f"Validation error saving network '{network_id}': {e}")
        return False
    except sqlite3.Error as e:
        logger.error(f"Database error saving network '{network_id}': {e}")
        return False
    except Exception as e:
        logger.exception(
            f"Unexpected error saving network '{network_id}': {e}"
        )
        return False


def load_network(network_id: str, model_dir: str = 'models') -> Optional[MultiLayerPerceptron]:
    """
    Load a network from the SQLite database.

    Args:
        network_id: The unique identifier of the network to load
        model_dir: Directory where the database is stored

    Returns:
        The loaded network or None if not found or unreadable

    Example:
        >>> net = load_network("my_network")
        >>> if net:
        ...     print(f"Loaded network with sizes {net.sizes}")
    """
    if not _valid_id(network_id):
        return None

    try:
        return _get_db(model_dir).load_network_from_db(network_id)

    except (json.JSONDecodeError, KeyError, MLPError) as e:
        logger.error(
            f"Deserialization error loading network '{network_id}': {e}"
        )
        return None
    except sqlite3.Error as e:
        logger.error(
            f"Database error loading network '{network_id}': {e}"
        )
        return None
    except Exception as e:
        logger.exception(
            f"Unexpected error loading network '{network_id}': {e}"
        )
        return None


def list_saved_networks(
    model_dir: str = 'models'
) -> List[Dict[str, Any]]:
    """
    List all saved networks with their metadata.

    Args:
        model_dir: Directory where the database is stored

    Returns:
        list: A list of metadata dictionaries for each saved network
    """
    try:
        return _get_db(model_dir).list_networks_from_db()

    except sqlite3.Error as e:
        logger.error(f"Database error listing networks: {e}")
        return []
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error listing networks: {e}")
        return []
    except Exception as e:
        logger.exception(f"Unexpected error listing networks: {e}")
        return []


def delete_network(network_id: str, model_dir: str = 'models') -> bool:
    """
    Delete a saved network from the database.

    Args:
        network_id: The unique identifier of the network to delete
        model_dir: Directory where the database is stored

    Returns:
        bool: True if deletion was successful, False otherwise
    """
    if not _valid_id(network_id):
        return False

    try:
        return _get_db(model_dir).delete_network_from_db(network_id)

    except sqlite3.Error as e:
        logger.error(f"Database error deleting network '{network_id}': {e}")
        return False
    except Exception as e:
        logger.exception(
            f"Unexpected error deleting network '{network_id}': {e}"
        )
        return False


def get_network_metadata(
    network_id: str,
    model_dir: str = 'models'
) -> Optional[Dict[str, Any]]:
    """
    Get metadata for a specific network without loading the full network.

    Args:
        network_id: The unique identifier of the network
        model_dir: Directory where the database is stored

    Returns:
        dict: Network metadata or None if not found
    """
    if not _valid_id(network_id):
        return None

    try:
        return _get_db(model_dir).get_network_metadata_from_db(network_id)

    except sqlite3.Error as e:
        logger.error(
            f"Database error getting metadata for '{network_id}': {e}"
        )
        return None
    except json.JSONDecodeError as e:
        logger.error(
            f"JSON decode error getting metadata for '{network_id}': {e}"
        )
        return None
    except Exception as e:
        logger.exception(
            f"Unexpected error getting metadata for '{network_id}': {e}"
        )
        return None


def delete_old_networks(days: float = 2, model_dir: str = 'models') -> int:
    """
    Delete saved networks older than the given number of days.

    Args:
        days: Age threshold in days
        model_dir: Directory where the database is stored

    Returns:
        int: Number of networks deleted, or -1 on error

    Raises:
        ValueError: If days is negative
    """
    if days < 0:
        raise ValueError(f"days must be non-negative, got {days}")

    try:
        return _get_db(model_dir).delete_old_networks_from_db(days)

    except sqlite3.Error as e:
        logger.error(f"Database error deleting old networks: {e}")
        return -1
    except Exception as e:
        logger.exception(f"Unexpected error deleting old networks: {e}")
        return -1
