import logging

import numpy as np

from ..enums import ON_DUTY_STATUSES, OrganizationStatus, OrganizationType
from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Organization
from ..realtime import broadcaster

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

_COLUMN_FIELDS = (
    'name', 'address', 'city', 'state', 'postal_code', 'contact_phone', 'contact_email',
    'latitude', 'longitude', 'available_beds', 'vehicle_types',
)


def haversine_km(latitude, longitude, latitudes, longitudes):
    """Great-circle distances from one point to arrays of points, in km"""
    lat1 = np.radians(latitude)
    lat2 = np.radians(np.asarray(latitudes, dtype=float))
    dlat = lat2 - lat1
    dlon = np.radians(np.asarray(longitudes, dtype=float)) - np.radians(longitude)
    a = np.sin(dlat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))


def _apply_fields(organization, data):
    values = data.model_dump(exclude_unset=True)
    if values.get('name', '') is None:
        raise ValidationError("name cannot be empty")
    for field in _COLUMN_FIELDS:
        if field in values:
            setattr(organization, field, values[field])
    if data.medical_info is not None:
        # merge so a partial update keeps the other sub-records
        organization.medical_info = {**(organization.medical_info or {}), **data.medical_info.dump()}
        capacity = data.medical_info.capacity
        if capacity is not None and 'available_beds' not in values:
            organization.available_beds = capacity.available_beds


# ==================== COMMON ====================

def create_organization(organization_type, data):
    logger.info(f"Creating new {organization_type}: {data.name}")
    organization = Organization(
        type=organization_type.value,
        status=(OrganizationStatus.AVAILABLE if organization_type is OrganizationType.RESCUE_TEAM
                else OrganizationStatus.ACTIVE).value,
        medical_info={},
        vehicle_types=[],
    )
    _apply_fields(organization, data)
    if organization_type is not OrganizationType.HOSPITAL:
        organization.available_beds = None
    db.session.add(organization)
    db.session.commit()
    return organization


def list_organizations(organization_type, search=None):
    logger.info(f"Finding all {organization_type} with search: {search}")
    query = Organization.query.filter_by(type=organization_type.value)
    if search:
        pattern = f"%{search}%"
        query = query.filter(db.or_(Organization.name.ilike(pattern), Organization.city.ilike(pattern)))
    return query.order_by(Organization.name).all()


def get_organization(organization_id, organization_type):
    organization = Organization.query.filter_by(id=organization_id, type=organization_type.value).first()
    if not organization:
        label = 'Hospital' if organization_type is OrganizationType.HOSPITAL else 'Rescue team'
        logger.error(f"{label} with ID {organization_id} not found")
        raise NotFoundError(f"{label} not found")
    return organization


def update_organization(organization_id, organization_type, data):
    logger.info(f"Updating {organization_type} with ID: {organization_id}")
    organization = get_organization(organization_id, organization_type)
    _apply_fields(organization, data)
    db.session.commit()
    return organization


def find_nearby(organization_type, latitude, longitude, radius_km, statuses):
    """Organizations of a type within ``radius_km``, nearest first"""
    if radius_km <= 0:
        raise ValidationError("radius must be positive")
    candidates = Organization.query.filter(
        Organization.type == organization_type.value,
        Organization.status.in_([s.value for s in statuses]),
        Organization.latitude.isnot(None),
        Organization.longitude.isnot(None),
    ).all()
    if not candidates:
        return []

    distances = haversine_km(
        latitude, longitude,
        [o.latitude for o in candidates],
        [o.longitude for o in candidates],
    )
    nearby = []
    for index in np.argsort(distances):
        if distances[index] > radius_km:
            break
        organization = candidates[index]
        nearby.append({**organization.to_dict(), 'distance': round(float(distances[index]), 3)})
    logger.info(f"Found {len(nearby)} {organization_type} within {radius_km} km of ({latitude}, {longitude})")
    return nearby


# ==================== HOSPITALS ====================

def create_hospital(data):
    hospital = create_organization(OrganizationType.HOSPITAL, data)
    broadcaster.broadcast_hospital_created(hospital.id, hospital.name)
    return hospital


def hospital_detail(hospital):
    """Hospital dict with every capacity field present"""
    data = hospital.to_dict(include_users=True)
    capacity = dict((hospital.medical_info or {}).get('capacity') or {})
    data['medicalInfo'] = {
        **data['medicalInfo'],
        'capacity': {
            **capacity,
            'totalBeds': capacity.get('totalBeds', 0),
            'availableBeds': hospital.available_beds if hospital.available_beds is not None
            else capacity.get('availableBeds', 0),
            'icuBeds': capacity.get('icuBeds', 0),
            'availableIcuBeds': capacity.get('availableIcuBeds', 0),
        },
    }
    return data


def remove_hospital(hospital_id):
    logger.info(f"Removing hospital with ID: {hospital_id}")
    hospital = get_organization(hospital_id, OrganizationType.HOSPITAL)
    hospital.status = OrganizationStatus.INACTIVE.value
    db.session.commit()
    return hospital


def update_capacity(hospital_id, capacity):
    logger.info(f"Updating capacity for hospital with ID: {hospital_id}")
    hospital = get_organization(hospital_id, OrganizationType.HOSPITAL)
    hospital.available_beds = capacity.available_beds
    hospital.medical_info = {**(hospital.medical_info or {}), 'capacity': capacity.dump()}
    db.session.commit()
    broadcaster.broadcast_hospital_update(hospital.id, hospital.available_beds)
    return hospital


def nearby_hospitals(latitude, longitude, radius_km):
    return find_nearby(OrganizationType.HOSPITAL, latitude, longitude, radius_km, (OrganizationStatus.ACTIVE,))


# ==================== RESCUE TEAMS ====================

def update_rescue_team_status(team_id, data):
    team = get_organization(team_id, OrganizationType.RESCUE_TEAM)
    logger.info(f"Rescue team {team_id} status {team.status} -> {data.status}")
    team.status = data.status.value
    extra = {k: v for k, v in (('notes', data.notes), ('currentEmergencyId', data.current_emergency_id)) if v}
    if extra:
        team.medical_info = {**(team.medical_info or {}), **extra}
    db.session.commit()
    broadcaster.broadcast_stats_updated(reason='team-status', teamId=team.id, status=team.status)
    return team


def available_rescue_teams(latitude, longitude, radius_km):
    return find_nearby(
        OrganizationType.RESCUE_TEAM, latitude, longitude, radius_km,
        tuple(s for s in ON_DUTY_STATUSES if s is not OrganizationStatus.BUSY),
    )
