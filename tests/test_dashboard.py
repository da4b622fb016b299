from datetime import datetime, timedelta

from sosdispatch.enums import EmergencyGrade, EmergencyStatus, OrganizationStatus, OrganizationType, ResponseStatus
from sosdispatch.extensions import db
from sosdispatch.models import EmergencyResponse
from sosdispatch.services import dashboard


def test_average_skips_responses_without_completion():
    t0 = datetime(2024, 5, 1, 8, 0)
    t1 = datetime(2024, 5, 1, 9, 0)
    intervals = [(t0, t0 + timedelta(minutes=5)), (t1, None)]
    assert dashboard.average_response_minutes(intervals) == 5.0


def test_average_is_zero_without_completed_responses():
    assert dashboard.average_response_minutes([]) == 0.0
    assert dashboard.average_response_minutes([(None, datetime(2024, 5, 1))]) == 0.0


def test_average_rounds_to_two_decimals():
    t0 = datetime(2024, 5, 1, 8, 0)
    intervals = [(t0, t0 + timedelta(seconds=100)), (t0, t0 + timedelta(seconds=200))]
    assert dashboard.average_response_minutes(intervals) == 2.5
    assert dashboard.average_response_minutes([(t0, t0 + timedelta(seconds=70))]) == 1.17


def test_count_critical_reads_severity_only():
    blobs = [
        {'grade': 'CRITICAL', 'severity': 4},
        {'grade': 'URGENT', 'severity': 3},
        {'severity': 4},
        {'unexpected': 'shape'},
        None,
        {},
    ]
    assert dashboard.count_critical(blobs) == 2


def test_hospital_beds_falls_back_to_capacity(make_organization):
    hospital = make_organization(OrganizationType.HOSPITAL)
    hospital.medical_info = {'capacity': {'availableBeds': 7}}
    assert dashboard.hospital_beds(hospital) == 7
    hospital.available_beds = 2
    assert dashboard.hospital_beds(hospital) == 2


def test_stats(make_request, make_organization, hospital, rescue_team):
    make_organization(OrganizationType.HOSPITAL, available_beds=4)
    make_organization(OrganizationType.HOSPITAL, available_beds=9, status=OrganizationStatus.INACTIVE)
    make_organization(OrganizationType.RESCUE_TEAM, status=OrganizationStatus.BUSY)
    make_organization(OrganizationType.RESCUE_TEAM, status=OrganizationStatus.OFFLINE)

    make_request(grade=EmergencyGrade.CRITICAL)
    make_request(status=EmergencyStatus.ASSIGNED, grade=EmergencyGrade.CRITICAL)
    make_request(status=EmergencyStatus.CANCELLED)
    done = make_request(status=EmergencyStatus.COMPLETED, grade=EmergencyGrade.NON_URGENT)

    dispatched = datetime(2024, 5, 1, 8, 0)
    db.session.add(EmergencyResponse(
        emergency_request_id=done.id,
        organization_id=hospital.id,
        status=ResponseStatus.COMPLETED.value,
        dispatch_time=dispatched,
        completion_time=dispatched + timedelta(minutes=12),
    ))
    db.session.add(EmergencyResponse(
        emergency_request_id=done.id,
        organization_id=rescue_team.id,
        status=ResponseStatus.COMPLETED.value,
        dispatch_time=dispatched,
    ))
    db.session.commit()

    assert dashboard.get_stats() == {
        'totalEmergencies': 4,
        'activeEmergencies': 2,
        'completedEmergencies': 1,
        'cancelledEmergencies': 1,
        'activeTeams': 2,
        'connectedHospitals': 2,
        'criticalCases': 2,
        'averageResponseTime': 12.0,
        'availableHospitalBeds': 7,
    }


def test_team_locations_and_capacities(hospital, rescue_team, make_organization):
    make_organization(OrganizationType.RESCUE_TEAM, status=OrganizationStatus.OFFLINE)

    teams = dashboard.get_team_locations()
    assert [t['id'] for t in teams] == [rescue_team.id]
    assert teams[0]['latitude'] == rescue_team.latitude

    capacities = dashboard.get_hospital_capacities()
    assert capacities == [{'id': hospital.id, 'name': 'Siriraj Hospital', 'availableBeds': 3, 'capacity': {}}]


def test_active_emergencies_excludes_closed(make_request):
    open_case = make_request(status=EmergencyStatus.IN_PROGRESS)
    make_request(status=EmergencyStatus.COMPLETED)
    assert [e.id for e in dashboard.get_active_emergencies()] == [open_case.id]
