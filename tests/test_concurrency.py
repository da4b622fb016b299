import threading

import pytest
from werkzeug.security import generate_password_hash

from sosdispatch import create_app
from sosdispatch.config import TestConfig
from sosdispatch.enums import EmergencyStatus, OrganizationStatus, OrganizationType, UserRole
from sosdispatch.errors import ValidationError
from sosdispatch.extensions import db
from sosdispatch.models import EmergencyRequest, EmergencyResponse, Organization, User
from sosdispatch.services import lifecycle


@pytest.fixture
def file_app(tmp_path):
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'dispatch.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {'connect_args': {'timeout': 15}}

    app = create_app(FileConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _seed_hospitals(app, *beds):
    with app.app_context():
        hospitals = [
            Organization(
                name=f"Hospital {n}",
                type=OrganizationType.HOSPITAL.value,
                status=OrganizationStatus.ACTIVE.value,
                available_beds=count,
                medical_info={},
                vehicle_types=[],
            )
            for n, count in enumerate(beds)
        ]
        db.session.add_all(hospitals)
        db.session.commit()
        return [h.id for h in hospitals]


def _seed_requests(app, count):
    with app.app_context():
        patient = User(
            email='patient@example.com',
            password_hash=generate_password_hash('secret123'),
            first_name='Patient',
            last_name='User',
            role=UserRole.PATIENT.value,
            status='ACTIVE',
        )
        db.session.add(patient)
        db.session.flush()
        emergencies = []
        for _ in range(count):
            emergency = EmergencyRequest(
                status=EmergencyStatus.PENDING.value,
                type='accident',
                location='Rama IV Rd, Bangkok',
                latitude=13.7300,
                longitude=100.5400,
                medical_info={'grade': 'CRITICAL', 'severity': 4},
                patient_id=patient.id,
            )
            emergency.description = 'Pedestrian struck by car'
            emergencies.append(emergency)
        db.session.add_all(emergencies)
        db.session.commit()
        return [e.id for e in emergencies]


def _race(app, monkeypatch, *calls):
    """Run each call in its own thread and app context.

    Every caller reads the request, then waits at a barrier until all of them
    have read it, so the status checks overlap.
    """
    barrier = threading.Barrier(len(calls))
    original = lifecycle._already_responding

    def held(emergency, organization_id):
        barrier.wait(timeout=10)
        return original(emergency, organization_id)

    monkeypatch.setattr(lifecycle, '_already_responding', held)
    outcomes = [None] * len(calls)

    def run(index, call):
        with app.app_context():
            try:
                call()
                outcomes[index] = 'ok'
            except ValidationError:
                outcomes[index] = 'rejected'
            except Exception as e:
                outcomes[index] = repr(e)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=run, args=(i, call)) for i, call in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return sorted(outcomes)


def _state(app, emergency_ids, hospital_ids):
    with app.app_context():
        responses = EmergencyResponse.query.filter(
            EmergencyResponse.emergency_request_id.in_(emergency_ids)
        ).count()
        beds = [db.session.get(Organization, id).available_beds for id in hospital_ids]
        statuses = [db.session.get(EmergencyRequest, id).status for id in emergency_ids]
        return responses, beds, statuses


def test_one_request_two_hospitals_only_one_assignment(file_app, monkeypatch):
    first, second = _seed_hospitals(file_app, 2, 2)
    (emergency_id,) = _seed_requests(file_app, 1)

    outcomes = _race(
        file_app, monkeypatch,
        lambda: lifecycle.assign_to_hospital(emergency_id, first),
        lambda: lifecycle.assign_to_hospital(emergency_id, second),
    )

    assert outcomes == ['ok', 'rejected']
    responses, beds, statuses = _state(file_app, [emergency_id], [first, second])
    assert responses == 1
    assert sorted(beds) == [1, 2]
    assert statuses == ['ASSIGNED']


def test_last_bed_two_requests_only_one_assignment(file_app, monkeypatch):
    (hospital_id,) = _seed_hospitals(file_app, 1)
    first, second = _seed_requests(file_app, 2)

    outcomes = _race(
        file_app, monkeypatch,
        lambda: lifecycle.assign_to_hospital(first, hospital_id),
        lambda: lifecycle.assign_to_hospital(second, hospital_id),
    )

    assert outcomes == ['ok', 'rejected']
    responses, beds, statuses = _state(file_app, [first, second], [hospital_id])
    assert responses == 1
    assert beds == [0]
    assert sorted(statuses) == ['ASSIGNED', 'PENDING']


def test_accept_and_assign_race_for_one_request(file_app, monkeypatch):
    assigning, accepting = _seed_hospitals(file_app, 2, 2)
    (emergency_id,) = _seed_requests(file_app, 1)

    outcomes = _race(
        file_app, monkeypatch,
        lambda: lifecycle.assign_to_hospital(emergency_id, assigning),
        lambda: lifecycle.accept_emergency(accepting, emergency_id),
    )

    assert outcomes == ['ok', 'rejected']
    responses, _, statuses = _state(file_app, [emergency_id], [assigning, accepting])
    assert responses == 1
    assert statuses == ['ASSIGNED']
