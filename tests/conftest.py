import itertools

import pytest
from flask_jwt_extended import create_access_token
from werkzeug.security import generate_password_hash

from sosdispatch import create_app
from sosdispatch.config import TestConfig
from sosdispatch.enums import EmergencyGrade, EmergencyStatus, OrganizationStatus, OrganizationType, UserRole
from sosdispatch.extensions import db
from sosdispatch.models import EmergencyRequest, Organization, User

PASSWORD = 'secret123'

_counter = itertools.count()


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(role, organization=None, status='ACTIVE', email=None):
        n = next(_counter)
        user = User(
            email=email or f"{str(role).lower()}{n}@example.com",
            password_hash=generate_password_hash(PASSWORD),
            first_name=str(role).title(),
            last_name=f"User{n}",
            role=str(role),
            status=status,
            organization_id=organization.id if organization else None,
        )
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def make_organization(app):
    def _make(type=OrganizationType.HOSPITAL, name=None, status=None, available_beds=None, **fields):
        if status is None:
            status = OrganizationStatus.ACTIVE if type is OrganizationType.HOSPITAL else OrganizationStatus.AVAILABLE
        organization = Organization(
            name=name or f"{type.value.title()} {next(_counter)}",
            type=str(type),
            status=str(status),
            available_beds=available_beds,
            medical_info={},
            vehicle_types=[],
            **fields,
        )
        db.session.add(organization)
        db.session.commit()
        return organization
    return _make


@pytest.fixture
def hospital(make_organization):
    return make_organization(
        OrganizationType.HOSPITAL, name='Siriraj Hospital', available_beds=3,
        latitude=13.7590, longitude=100.4855,
    )


@pytest.fixture
def rescue_team(make_organization):
    return make_organization(
        OrganizationType.RESCUE_TEAM, name='Bangkok Rescue', latitude=13.7460, longitude=100.5340,
    )


@pytest.fixture
def patient(make_user):
    return make_user(UserRole.PATIENT)


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN)


@pytest.fixture
def dispatcher(make_user):
    return make_user(UserRole.EMERGENCY_CENTER)


@pytest.fixture
def hospital_user(make_user, hospital):
    return make_user(UserRole.HOSPITAL, organization=hospital)


@pytest.fixture
def rescue_user(make_user, rescue_team):
    return make_user(UserRole.RESCUE_TEAM, organization=rescue_team)


@pytest.fixture
def make_request(app, patient):
    def _make(status=EmergencyStatus.PENDING, grade=EmergencyGrade.URGENT, medical_info=None, owner=None):
        emergency = EmergencyRequest(
            status=str(status),
            type='accident',
            location='Sukhumvit Rd, Bangkok',
            latitude=13.7400,
            longitude=100.5600,
            medical_info=medical_info if medical_info is not None
            else {'grade': str(grade), 'severity': grade.severity},
            patient_id=(owner or patient).id,
        )
        emergency.description = 'Motorbike collision, conscious'
        db.session.add(emergency)
        db.session.commit()
        return emergency
    return _make


@pytest.fixture
def token_for(app):
    def _token(user):
        return create_access_token(identity=user.id)
    return _token


@pytest.fixture
def auth_headers(token_for):
    def _headers(user):
        return {'Authorization': f"Bearer {token_for(user)}"}
    return _headers
