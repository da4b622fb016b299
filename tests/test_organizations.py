import pytest

from sosdispatch.enums import OrganizationStatus, OrganizationType
from sosdispatch.errors import NotFoundError, ValidationError
from sosdispatch.schemas import (
    HospitalCapacity,
    MedicalInfo,
    RescueTeamStatusUpdate,
    UpdateOrganization,
    read_medical_info,
)
from sosdispatch.services import organizations


def test_haversine_matches_known_distance():
    # Bangkok to Chiang Mai, roughly 580 km as the crow flies
    distances = organizations.haversine_km(13.7563, 100.5018, [18.7883, 13.7563], [98.9853, 100.5018])
    assert 570 < distances[0] < 595
    assert distances[1] == pytest.approx(0.0)


def test_find_nearby_rejects_non_positive_radius(app):
    with pytest.raises(ValidationError):
        organizations.nearby_hospitals(13.75, 100.5, 0)


def test_nearby_skips_inactive_and_unlocated_hospitals(make_organization):
    make_organization(OrganizationType.HOSPITAL, latitude=13.75, longitude=100.50, status=OrganizationStatus.INACTIVE)
    make_organization(OrganizationType.HOSPITAL)
    assert organizations.nearby_hospitals(13.75, 100.50, 50) == []


def test_update_merges_medical_info(hospital):
    organizations.update_organization(hospital.id, OrganizationType.HOSPITAL, UpdateOrganization.model_validate({
        'medicalInfo': {'staff': {'doctors': 12}},
    }))
    organizations.update_organization(hospital.id, OrganizationType.HOSPITAL, UpdateOrganization.model_validate({
        'medicalInfo': {'capacity': {'availableBeds': 6}},
    }))

    assert hospital.medical_info == {'staff': {'doctors': 12}, 'capacity': {'availableBeds': 6}}
    assert hospital.available_beds == 6


def test_update_rejects_explicit_null_name(hospital):
    with pytest.raises(ValidationError, match='name cannot be empty'):
        organizations.update_organization(
            hospital.id, OrganizationType.HOSPITAL, UpdateOrganization.model_validate({'name': None}),
        )


def test_hospital_lookup_does_not_return_rescue_teams(rescue_team):
    with pytest.raises(NotFoundError, match='Hospital not found'):
        organizations.get_organization(rescue_team.id, OrganizationType.HOSPITAL)


def test_capacity_update_keeps_other_records(hospital):
    hospital.medical_info = {'ambulances': {'total': 4}}
    organizations.update_capacity(hospital.id, HospitalCapacity(available_beds=9, total_beds=30))

    assert hospital.available_beds == 9
    assert hospital.medical_info == {'ambulances': {'total': 4}, 'capacity': {'availableBeds': 9, 'totalBeds': 30}}


def test_rescue_team_status_keeps_current_emergency(rescue_team):
    organizations.update_rescue_team_status(rescue_team.id, RescueTeamStatusUpdate.model_validate({
        'status': 'busy', 'currentEmergencyId': 'e-42',
    }))
    assert rescue_team.status == 'BUSY'
    assert rescue_team.medical_info['currentEmergencyId'] == 'e-42'


# ==================== MEDICAL INFO RECORDS ====================

def test_medical_info_accepts_symptom_string():
    info = MedicalInfo.model_validate({'grade': 'non-urgent', 'symptoms': 'cough, fever,'})
    assert info.symptoms == ['cough', 'fever']
    assert info.dump() == {'grade': 'NON_URGENT', 'symptoms': ['cough', 'fever']}


@pytest.mark.parametrize('blob', [None, {}, {'severity': 9}, {'grade': 'purple'}, {'mood': 'calm'}])
def test_unreadable_medical_info(blob):
    assert read_medical_info(blob) is None
