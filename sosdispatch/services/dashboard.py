import logging

from ..enums import (
    ACTIVE_EMERGENCY_STATUSES,
    CRITICAL_SEVERITY,
    ON_DUTY_STATUSES,
    EmergencyStatus,
    OrganizationStatus,
    OrganizationType,
    ResponseStatus,
)
from ..extensions import db
from ..models import EmergencyRequest, EmergencyResponse, Organization
from ..schemas import read_medical_info

logger = logging.getLogger(__name__)


# ==================== REDUCTIONS ====================

def average_response_minutes(intervals):
    """Mean of (completion - dispatch) in minutes over (dispatch, completion) pairs.

    Pairs missing either timestamp are skipped rather than counted as zero.
    Returns 0.0 when no pair is complete.
    """
    minutes = [
        (completion - dispatch).total_seconds() / 60
        for dispatch, completion in intervals
        if dispatch is not None and completion is not None
    ]
    if not minutes:
        return 0.0
    return round(sum(minutes) / len(minutes), 2)


def read_severity(medical_info):
    info = read_medical_info(medical_info)
    return info.severity if info else None


def count_critical(medical_infos):
    return sum(1 for blob in medical_infos if read_severity(blob) == CRITICAL_SEVERITY)


def hospital_beds(hospital):
    """Bed count from the column, falling back to the capacity record"""
    if hospital.available_beds is not None:
        return hospital.available_beds
    capacity = (hospital.medical_info or {}).get('capacity') or {}
    beds = capacity.get('availableBeds')
    return beds if isinstance(beds, int) else 0


# ==================== QUERIES ====================

def _count_requests(*statuses):
    query = EmergencyRequest.query
    if statuses:
        query = query.filter(EmergencyRequest.status.in_([s.value for s in statuses]))
    return query.count()


def _active_organizations(organization_type):
    # rescue teams report AVAILABLE/BUSY while on duty, hospitals stay ACTIVE
    if organization_type is OrganizationType.RESCUE_TEAM:
        statuses = ON_DUTY_STATUSES
    else:
        statuses = (OrganizationStatus.ACTIVE,)
    return Organization.query.filter(
        Organization.type == organization_type.value,
        Organization.status.in_([s.value for s in statuses]),
    ).all()


def get_stats():
    logger.info("Fetching dashboard statistics")

    completed_responses = db.session.execute(
        db.select(EmergencyResponse.dispatch_time, EmergencyResponse.completion_time)
        .where(EmergencyResponse.status == ResponseStatus.COMPLETED.value)
    ).all()
    medical_infos = db.session.execute(db.select(EmergencyRequest.medical_info)).scalars().all()
    hospitals = _active_organizations(OrganizationType.HOSPITAL)

    stats = {
        'totalEmergencies': _count_requests(),
        'activeEmergencies': _count_requests(*ACTIVE_EMERGENCY_STATUSES),
        'completedEmergencies': _count_requests(EmergencyStatus.COMPLETED),
        'cancelledEmergencies': _count_requests(EmergencyStatus.CANCELLED),
        'activeTeams': len(_active_organizations(OrganizationType.RESCUE_TEAM)),
        'connectedHospitals': len(hospitals),
        'criticalCases': count_critical(medical_infos),
        'averageResponseTime': average_response_minutes(completed_responses),
        'availableHospitalBeds': sum(hospital_beds(h) for h in hospitals),
    }
    logger.info(f"Dashboard stats fetched: {stats}")
    return stats


def get_active_emergencies():
    logger.info("Fetching active emergencies")
    emergencies = (
        EmergencyRequest.query
        .filter(EmergencyRequest.status.in_([s.value for s in ACTIVE_EMERGENCY_STATUSES]))
        .order_by(EmergencyRequest.created_at.desc())
        .all()
    )
    logger.info(f"Found {len(emergencies)} active emergencies")
    return emergencies


def get_team_locations():
    teams = _active_organizations(OrganizationType.RESCUE_TEAM)
    logger.info(f"Found {len(teams)} active rescue teams")
    return [
        {'id': t.id, 'name': t.name, 'latitude': t.latitude, 'longitude': t.longitude, 'status': t.status}
        for t in teams
    ]


def get_hospital_capacities():
    hospitals = _active_organizations(OrganizationType.HOSPITAL)
    logger.info(f"Found {len(hospitals)} active hospitals")
    return [
        {
            'id': h.id,
            'name': h.name,
            'availableBeds': hospital_beds(h),
            'capacity': (h.medical_info or {}).get('capacity') or {},
        }
        for h in hospitals
    ]
