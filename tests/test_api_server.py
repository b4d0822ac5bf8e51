"""
test_api_server.py
~~~~~~~~~~~~~~~~~~

Tests for the REST API using Flask's test client. Background training is
run synchronously and Socket.IO events are recorded instead of sent.
"""

import os
import sqlite3

import numpy as np
import pytest

from mlp_toolkit import api_server
from mlp_toolkit.model_persistence import get_network_metadata, save_network
from mlp_toolkit.network import MultiLayerPerceptron


@pytest.fixture(autouse=True)
def isolated_state(tmp_path, monkeypatch):
    """Fresh in-memory state and model directory for every test."""
    monkeypatch.setattr(api_server, 'MODEL_DIR', str(tmp_path))
    api_server.active_networks.clear()
    api_server.training_jobs.clear()
    yield
    api_server.active_networks.clear()
    api_server.training_jobs.clear()


@pytest.fixture
def client():
    api_server.app.config['TESTING'] = True
    return api_server.app.test_client()


@pytest.fixture
def events(monkeypatch):
    """Record emitted events and run background tasks inline."""
    emitted = []
    monkeypatch.setattr(
        api_server.socketio, 'emit',
        lambda event, data=None, **kwargs: emitted.append((event, data))
    )
    monkeypatch.setattr(
        api_server.socketio, 'start_background_task',
        lambda target, *args, **kwargs: target(*args, **kwargs)
    )
    return emitted


def create(client, **body):
    response = client.post('/api/networks', json=body)
    assert response.status_code == 201, response.get_json()
    return response.get_json()['network_id']


def age_network(db_path, network_id, modifier):
    """Move a network's created_at back in time, e.g. modifier='-3 days'."""
    conn = sqlite3.connect(db_path)
    conn.execute(
        "UPDATE networks SET created_at = datetime('now', ?) WHERE network_id = ?",
        (modifier, network_id)
    )
    conn.commit()
    conn.close()


@pytest.mark.unit
class TestNetworks:

    def test_status(self, client):
        response = client.get('/api/status')
        assert response.status_code == 200
        assert response.get_json() == {
            'status': 'online', 'active_networks': 0, 'training_jobs': 0
        }

    def test_create_default_network(self, client):
        response = client.post('/api/networks', json={})
        body = response.get_json()
        assert response.status_code == 201
        assert body['architecture'] == [2, 2, 1]
        assert body['network_id'] in api_server.active_networks

    def test_create_custom_network(self, client):
        network_id = create(client, input_dimension=3, layers=[
            {'nodes': 4, 'activation': 'tanh'},
            {'nodes': 2, 'activation': 'identity'},
        ])
        net = api_server.active_networks[network_id]['network']
        assert net.sizes == [3, 4, 2]

    @pytest.mark.parametrize("body, error_type", [
        ({'input_dimension': 0}, 'ConstructionError'),
        ({'layers': [{'nodes': 0, 'activation': 'sigmoid'}]}, 'ConstructionError'),
        ({'layers': [{'nodes': 2}]}, 'ConstructionError'),
        ({'layers': [{'nodes': 2, 'activation': 'softsign'}]}, 'ConstructionError'),
    ])
    def test_create_rejects_invalid_construction(self, client, body, error_type):
        response = client.post('/api/networks', json=body)
        assert response.status_code == 400
        assert response.get_json()['type'] == error_type
        assert api_server.active_networks == {}

    def test_create_rejects_malformed_layers(self, client):
        response = client.post('/api/networks', json={'layers': 'big'})
        assert response.status_code == 400

    def test_predict(self, client):
        network_id = create(client, randomize=False)
        response = client.post(f'/api/networks/{network_id}/predict', json={'input': [0, 1]})
        assert response.status_code == 200
        assert response.get_json()['prediction'] == [0.5]

    def test_predict_wrong_length(self, client):
        network_id = create(client)
        response = client.post(f'/api/networks/{network_id}/predict', json={'input': [0, 1, 1]})
        assert response.status_code == 400
        assert response.get_json()['type'] == 'ShapeMismatchError'

    def test_predict_missing_input(self, client):
        network_id = create(client)
        response = client.post(f'/api/networks/{network_id}/predict', json={})
        assert response.status_code == 400

    def test_unknown_network(self, client):
        assert client.post('/api/networks/nope/predict', json={'input': [1, 1]}).status_code == 404
        assert client.post('/api/networks/nope/evaluate', json={'dataset': 'xor'}).status_code == 404
        assert client.get('/api/networks/nope/weights').status_code == 404
        assert client.post('/api/networks/nope/train', json={}).status_code == 404
        assert client.delete('/api/networks/nope').status_code == 404

    def test_evaluate_named_dataset(self, client):
        network_id = create(client, randomize=False)
        response = client.post(f'/api/networks/{network_id}/evaluate', json={'dataset': 'xor'})
        assert response.status_code == 200
        assert response.get_json()['error'] == pytest.approx(2.0)
        assert response.get_json()['examples'] == 4

    def test_evaluate_inline_data(self, client):
        network_id = create(client, randomize=False)
        response = client.post(f'/api/networks/{network_id}/evaluate', json={
            'inputs': [[1, 1]], 'targets': [[1]]
        })
        assert response.get_json()['error'] == pytest.approx(0.5)

    def test_evaluate_mismatched_data(self, client):
        network_id = create(client)
        response = client.post(f'/api/networks/{network_id}/evaluate', json={
            'inputs': [[1, 1], [0, 0]], 'targets': [[1]]
        })
        assert response.status_code == 400

    def test_evaluate_npz_file(self, client, tmp_path):
        path = tmp_path / 'gate.npz'
        np.savez(path, inputs=np.array([[1, 1], [0, 0]]), targets=np.array([1, 0]))
        network_id = create(client, randomize=False)
        response = client.post(f'/api/networks/{network_id}/evaluate', json={'npz': str(path)})
        assert response.status_code == 200
        assert response.get_json()['examples'] == 2
        assert response.get_json()['error'] == pytest.approx(1.0)

    @pytest.mark.parametrize("npz", ['missing.npz', 7])
    def test_evaluate_unreadable_npz(self, client, tmp_path, npz):
        if isinstance(npz, str):
            npz = str(tmp_path / npz)
        network_id = create(client)
        response = client.post(f'/api/networks/{network_id}/evaluate', json={'npz': npz})
        assert response.status_code == 400

    def test_evaluate_without_data(self, client):
        network_id = create(client)
        response = client.post(f'/api/networks/{network_id}/evaluate', json={})
        assert response.status_code == 400

    def test_weights(self, client):
        network_id = create(client, randomize=False)
        body = client.get(f'/api/networks/{network_id}/weights').get_json()
        assert body['weights'] == [[[0, 0], [0, 0]], [[0, 0]]]
        assert body['biases'] == [[[0], [0]], [[0]]]

    def test_list_includes_saved_networks(self, client):
        create(client)
        saved = MultiLayerPerceptron(1).add_layer(1, 'relu')
        save_network(saved, 'on-disk', model_dir=api_server.MODEL_DIR)

        networks = client.get('/api/networks').get_json()['networks']
        assert sorted(n['status'] for n in networks) == ['in_memory', 'saved']

    def test_delete_network(self, client):
        network_id = create(client)
        response = client.delete(f'/api/networks/{network_id}')
        assert response.status_code == 200
        assert response.get_json()['deleted_from_memory'] is True
        assert network_id not in api_server.active_networks

    def test_delete_all_networks(self, client):
        create(client)
        create(client)
        response = client.delete('/api/networks')
        assert response.get_json()['deleted_count'] == 2
        assert api_server.active_networks == {}

    def test_cleanup(self, client):
        response = client.post('/api/networks/cleanup', json={'days': 1})
        assert response.status_code == 200
        assert response.get_json()['deleted_count'] == 0
        assert client.post('/api/networks/cleanup', json={'days': -1}).status_code == 400
        assert client.post('/api/networks/cleanup', json={'days': True}).status_code == 400

    def test_cleanup_honours_fractional_days(self, client):
        network_id = create(client)
        net = api_server.active_networks[network_id]['network']
        save_network(net, network_id, model_dir=api_server.MODEL_DIR)
        db_path = os.path.join(api_server.MODEL_DIR, 'networks.db')

        age_network(db_path, network_id, '-1 hour')
        response = client.post('/api/networks/cleanup', json={'days': 0.5})
        assert response.get_json() == {'deleted_count': 0, 'days': 0.5}
        assert network_id in api_server.active_networks

        age_network(db_path, network_id, '-1 day')
        response = client.post('/api/networks/cleanup', json={'days': 0.5})
        assert response.get_json()['deleted_count'] == 1
        assert network_id not in api_server.active_networks

    def test_cleanup_keeps_unsaved_networks_loaded(self, client):
        saved_id = create(client)
        unsaved_id = create(client)
        net = api_server.active_networks[saved_id]['network']
        save_network(net, saved_id, model_dir=api_server.MODEL_DIR)
        age_network(os.path.join(api_server.MODEL_DIR, 'networks.db'), saved_id, '-3 days')

        response = client.post('/api/networks/cleanup', json={'days': 2})
        assert response.get_json()['deleted_count'] == 1
        assert list(api_server.active_networks) == [unsaved_id]


@pytest.mark.integration
class TestTraining:

    def test_train_completes_and_saves(self, client, events):
        network_id = create(client)
        response = client.post(f'/api/networks/{network_id}/train', json={
            'dataset': 'or', 'epochs': 20, 'learning_rate': 0.5
        })
        assert response.status_code == 202
        job_id = response.get_json()['job_id']

        status = client.get(f'/api/training/{job_id}').get_json()
        assert status['status'] == 'completed'
        assert status['progress'] == 100

        updates = [data for event, data in events if event == 'training_update']
        assert [u['epoch'] for u in updates] == list(range(1, 21))
        assert events[-1][0] == 'training_complete'

        assert api_server.active_networks[network_id]['trained'] is True
        metadata = get_network_metadata(network_id, api_server.MODEL_DIR)
        assert metadata['trained'] is True
        assert metadata['validation_error'] == pytest.approx(status['validation_error'])

    def test_train_with_separate_validation_data(self, client, events):
        network_id = create(client)
        response = client.post(f'/api/networks/{network_id}/train', json={
            'inputs': [[0, 0], [1, 1]],
            'targets': [[0], [1]],
            'validation_inputs': [[0, 1]],
            'validation_targets': [[1]],
            'epochs': 3
        })
        assert response.status_code == 202
        updates = [data for event, data in events if event == 'training_update']
        assert len(updates) == 3

    def test_failed_training_reports_error(self, client, events):
        network_id = create(client)
        response = client.post(f'/api/networks/{network_id}/train', json={
            'inputs': [[1, 2, 3]], 'targets': [[1]], 'epochs': 1
        })
        job_id = response.get_json()['job_id']

        status = client.get(f'/api/training/{job_id}').get_json()
        assert status['status'] == 'failed'
        assert events[-1][0] == 'training_error'
        assert api_server.active_networks[network_id]['trained'] is False

    @pytest.mark.parametrize("body", [
        {'dataset': 'xor', 'epochs': 0},
        {'dataset': 'xor', 'epochs': 'many'},
        {'dataset': 'xor', 'learning_rate': 0},
        {'dataset': 'xor', 'learning_rate': True},
        {'inputs': [[0, 0], [1, 1]], 'targets': [[0]], 'epochs': 1},
        {'dataset': 'xor', 'validation_inputs': [[0, 1]], 'validation_targets': []},
        {'dataset': 'mnist'},
        {'epochs': 5},
    ])
    def test_train_rejects_invalid_requests(self, client, events, body):
        network_id = create(client)
        response = client.post(f'/api/networks/{network_id}/train', json=body)
        assert response.status_code == 400
        assert api_server.training_jobs == {}

    def test_second_job_on_same_network_conflicts(self, client, monkeypatch):
        started = []
        monkeypatch.setattr(
            api_server.socketio, 'start_background_task',
            lambda target, *args, **kwargs: started.append(args)
        )
        network_id = create(client)
        other_id = create(client)
        url = f'/api/networks/{network_id}/train'

        first = client.post(url, json={'dataset': 'xor', 'epochs': 5})
        assert first.status_code == 202

        second = client.post(url, json={'dataset': 'xor', 'epochs': 5})
        assert second.status_code == 409
        assert second.get_json()['job_id'] == first.get_json()['job_id']
        assert len(started) == 1
        assert len(api_server.training_jobs) == 1

        response = client.post(f'/api/networks/{other_id}/train', json={'dataset': 'xor'})
        assert response.status_code == 202

    def test_network_can_train_again_after_job_finishes(self, client, events):
        network_id = create(client)
        url = f'/api/networks/{network_id}/train'
        assert client.post(url, json={'dataset': 'xor', 'epochs': 2}).status_code == 202
        assert client.post(url, json={'dataset': 'xor', 'epochs': 2}).status_code == 202

    def test_unknown_job(self, client):
        assert client.get('/api/training/missing').status_code == 404
