import pytest
from flask_jwt_extended import create_refresh_token

from sosdispatch.extensions import socketio
from sosdispatch.realtime import NAMESPACE, broadcaster
from sosdispatch.services import lifecycle


def _events(client, name):
    return [packet['args'][0] for packet in client.get_received(NAMESPACE) if packet['name'] == name]


@pytest.fixture
def connect(app, token_for):
    clients = []

    def _connect(user=None, token=None):
        auth = {'token': token if token is not None else token_for(user)}
        client = socketio.test_client(app, namespace=NAMESPACE, auth=auth)
        clients.append(client)
        return client

    yield _connect
    for client in clients:
        if client.is_connected(NAMESPACE):
            client.disconnect(namespace=NAMESPACE)


def test_connection_requires_valid_token(connect):
    assert not connect(token='garbage').is_connected(NAMESPACE)
    assert not connect(token='').is_connected(NAMESPACE)


def test_refresh_token_cannot_open_socket(connect, patient):
    refresh_token = create_refresh_token(identity=patient.id)
    assert not connect(token=refresh_token).is_connected(NAMESPACE)


def test_inactive_user_is_refused(connect, make_user):
    user = make_user('PATIENT', status='INACTIVE')
    assert not connect(user).is_connected(NAMESPACE)


def test_connected_client_gets_greeting(connect, patient):
    client = connect(patient)
    assert client.is_connected(NAMESPACE)
    greeting = _events(client, 'connection_response')
    assert greeting == [{'data': 'Connected to SOS Dispatch', 'userId': patient.id}]


def test_accept_broadcasts_status_and_notifies_patient(connect, make_request, hospital, patient, dispatcher):
    patient_client = connect(patient)
    staff_client = connect(dispatcher)
    patient_client.get_received(NAMESPACE)
    staff_client.get_received(NAMESPACE)
    emergency = make_request()

    lifecycle.accept_emergency(hospital.id, emergency.id)

    staff_updates = _events(staff_client, 'status-update')
    assert [(u['emergencyId'], u['status']) for u in staff_updates] == [(emergency.id, 'ASSIGNED')]
    assert _events(staff_client, 'notification') == []

    patient_received = patient_client.get_received(NAMESPACE)
    names = [packet['name'] for packet in patient_received]
    assert names == ['notification', 'status-update']
    assert patient_received[0]['args'][0]['type'] == 'EMERGENCY_ACCEPTED'


def test_assign_broadcasts_bed_count(connect, make_request, hospital, dispatcher):
    client = connect(dispatcher)
    client.get_received(NAMESPACE)

    lifecycle.assign_to_hospital(make_request().id, hospital.id)

    stats = _events(client, 'stats-updated')
    assert {'hospitalId': hospital.id, 'availableBeds': 2} in stats


def test_new_hospital_and_emergency_events(connect, dispatcher, patient):
    from sosdispatch.schemas import CreateEmergencyRequest

    client = connect(dispatcher)
    client.get_received(NAMESPACE)

    broadcaster.broadcast_hospital_created('h-1', 'Chulalongkorn Hospital')
    lifecycle.create_emergency_request(CreateEmergencyRequest.model_validate({
        'type': 'fire', 'location': 'Chatuchak', 'latitude': 13.80, 'longitude': 100.55, 'grade': 'URGENT',
    }), patient)

    assert _events(client, 'hospital-created') == [{'id': 'h-1', 'name': 'Chulalongkorn Hospital'}]
    emergencies = _events(client, 'emergency')
    assert len(emergencies) == 1
    assert emergencies[0]['grade'] == 'URGENT'
    assert emergencies[0]['coordinates'] == {'latitude': 13.80, 'longitude': 100.55}
    assert [n['type'] for n in _events(client, 'notification')] == ['EMERGENCY']


def test_broadcasts_go_to_the_namespace_with_connect_handlers(app):
    assert broadcaster.namespace == NAMESPACE
    assert 'connect' in socketio.server.handlers[broadcaster.namespace]
