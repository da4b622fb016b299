import logging

from flask import Blueprint, current_app, request
from flask_jwt_extended import current_user

from ..auth import require_role
from ..enums import STAFF_ROLES, OrganizationType, UserRole
from ..errors import ForbiddenError, ValidationError
from ..schemas import (
    AcceptEmergency,
    CreateOrganization,
    HospitalCapacity,
    ResponseStatusUpdate,
    UpdateOrganization,
    parse_body,
)
from ..services import lifecycle, organizations

logger = logging.getLogger(__name__)

hospitals_bp = Blueprint('hospitals', __name__, url_prefix='/hospitals')


def ensure_member(organization_id):
    """Organization users may only act for their own organization; admins for any"""
    if current_user.role != UserRole.ADMIN and current_user.organization_id != organization_id:
        logger.warning(f"User {current_user.id} tried to act for organization {organization_id}")
        raise ForbiddenError("You can only manage your own organization")


def query_float(name, default=None):
    value = request.args.get(name)
    if value is None or value == '':
        if default is None:
            raise ValidationError(f"{name} is required")
        return default
    try:
        return float(value)
    except ValueError:
        raise ValidationError(f"{name} must be a number") from None


@hospitals_bp.route('', methods=['POST'])
@require_role(UserRole.ADMIN, UserRole.HOSPITAL)
def create_hospital():
    """Register a hospital"""
    data = parse_body(CreateOrganization)
    return organizations.create_hospital(data).to_dict(), 201


@hospitals_bp.route('', methods=['GET'])
@require_role(*STAFF_ROLES)
def list_hospitals():
    """Get all hospitals"""
    search = request.args.get('search')
    logger.info(f"GET /hospitals called with search: {search}")
    return [h.to_dict() for h in organizations.list_organizations(OrganizationType.HOSPITAL, search)], 200


@hospitals_bp.route('/nearby/<latitude>/<longitude>', methods=['GET'])
@require_role()
def nearby_hospitals(latitude, longitude):
    """Find active hospitals within a radius"""
    try:
        latitude, longitude = float(latitude), float(longitude)
    except ValueError:
        raise ValidationError("latitude and longitude must be numbers") from None
    radius = query_float('radius', current_app.config['DEFAULT_SEARCH_RADIUS_KM'])
    return organizations.nearby_hospitals(latitude, longitude, radius), 200


@hospitals_bp.route('/<hospital_id>', methods=['GET'])
@require_role(*STAFF_ROLES)
def get_hospital(hospital_id):
    """Get hospital by ID"""
    hospital = organizations.get_organization(hospital_id, OrganizationType.HOSPITAL)
    return organizations.hospital_detail(hospital), 200


@hospitals_bp.route('/<hospital_id>', methods=['PUT'])
@require_role(UserRole.ADMIN, UserRole.HOSPITAL)
def update_hospital(hospital_id):
    """Update hospital details"""
    ensure_member(hospital_id)
    data = parse_body(UpdateOrganization)
    return organizations.update_organization(hospital_id, OrganizationType.HOSPITAL, data).to_dict(), 200


@hospitals_bp.route('/<hospital_id>', methods=['DELETE'])
@require_role(UserRole.ADMIN)
def remove_hospital(hospital_id):
    """Delete a hospital"""
    return organizations.remove_hospital(hospital_id).to_dict(), 200


@hospitals_bp.route('/<hospital_id>/capacity', methods=['PUT'])
@require_role(UserRole.HOSPITAL)
def update_capacity(hospital_id):
    """Update hospital bed capacity"""
    ensure_member(hospital_id)
    capacity = parse_body(HospitalCapacity)
    return organizations.update_capacity(hospital_id, capacity).to_dict(), 200


@hospitals_bp.route('/<hospital_id>/accept-emergency', methods=['POST'])
@require_role(UserRole.HOSPITAL)
def accept_emergency(hospital_id):
    """Hospital accepts a pending emergency"""
    ensure_member(hospital_id)
    data = parse_body(AcceptEmergency)
    response = lifecycle.accept_emergency(hospital_id, data.emergency_id, data.notes)
    return response.to_dict(include_organization=True, include_request=True), 201


@hospitals_bp.route('/<hospital_id>/active-rescue-teams', methods=['GET'])
@require_role(UserRole.HOSPITAL, UserRole.ADMIN)
def active_rescue_teams(hospital_id):
    """Get rescue teams working on the hospital's cases"""
    ensure_member(hospital_id)
    return lifecycle.active_rescue_teams_for_hospital(hospital_id), 200


# ==================== EMERGENCY RESPONSES ====================

def _own_response(response_id):
    response = lifecycle.get_response(response_id)
    ensure_member(response.organization_id)
    return response


@hospitals_bp.route('/emergency-responses/<response_id>', methods=['GET'])
@require_role(UserRole.HOSPITAL)
def get_emergency_response(response_id):
    """Get emergency response by ID"""
    response = _own_response(response_id)
    return response.to_dict(include_organization=True, include_request=True), 200


@hospitals_bp.route('/emergency-responses/<response_id>', methods=['PUT'])
@require_role(UserRole.HOSPITAL)
def start_emergency_response(response_id):
    """Start an accepted emergency response"""
    _own_response(response_id)
    response = lifecycle.start_response(response_id)
    return response.to_dict(include_request=True), 200


@hospitals_bp.route('/emergency-responses/<response_id>/status', methods=['PATCH'])
@require_role(UserRole.HOSPITAL)
def override_emergency_response_status(response_id):
    """Set an emergency response status manually"""
    _own_response(response_id)
    data = parse_body(ResponseStatusUpdate)
    logger.info(f"PATCH /hospitals/emergency-responses/{response_id}/status called with status: {data.status}")
    response = lifecycle.override_response_status(response_id, data.status)
    return response.to_dict(include_request=True), 200


@hospitals_bp.route('/emergency-responses/<response_id>/notify-rescue', methods=['POST'])
@require_role(UserRole.HOSPITAL)
def notify_rescue(response_id):
    """Ask rescue teams for assistance"""
    _own_response(response_id)
    return lifecycle.notify_rescue_teams(response_id), 200
