import logging

from flask import Blueprint
from flask_jwt_extended import current_user

from ..auth import require_role
from ..enums import STAFF_ROLES, UserRole
from ..errors import ForbiddenError
from ..schemas import AssignHospital, CreateEmergencyRequest, UpdateEmergencyStatus, parse_body
from ..services import lifecycle

logger = logging.getLogger(__name__)

sos_bp = Blueprint('sos', __name__, url_prefix='/sos')


def _own_organization():
    if not current_user.organization_id:
        raise ForbiddenError("User is not linked to an organization")
    return current_user.organization_id


@sos_bp.route('', methods=['POST'])
@require_role()
def create_emergency():
    """Submit an SOS request"""
    data = parse_body(CreateEmergencyRequest)
    emergency = lifecycle.create_emergency_request(data, current_user)
    return emergency.to_dict(), 201


@sos_bp.route('', methods=['GET'])
@require_role()
def my_emergencies():
    """Get the user's own emergency requests"""
    return [e.to_dict() for e in lifecycle.list_for_patient(current_user.id)], 200


@sos_bp.route('/all', methods=['GET'])
@require_role(*STAFF_ROLES)
def all_emergencies():
    """Get all emergency requests"""
    return [e.to_dict() for e in lifecycle.list_all()], 200


@sos_bp.route('/dashboard/active-emergencies', methods=['GET'])
@require_role(UserRole.HOSPITAL)
def hospital_active_emergencies():
    """Get the hospital's active emergencies"""
    emergencies = lifecycle.active_for_hospital(_own_organization())
    return [e.to_dict() for e in emergencies], 200


@sos_bp.route('/rescue/assigned-cases', methods=['GET'])
@require_role(UserRole.RESCUE_TEAM)
def rescue_assigned_cases():
    """Get cases assigned to the rescue team"""
    emergencies = lifecycle.cases_for_rescue_team(_own_organization())
    return [e.to_dict() for e in emergencies], 200


@sos_bp.route('/<emergency_id>', methods=['GET'])
@require_role()
def get_emergency(emergency_id):
    """Get emergency request by ID"""
    return lifecycle.get_for_user(emergency_id, current_user).to_dict(), 200


@sos_bp.route('/<emergency_id>/status', methods=['PUT'])
@require_role(*STAFF_ROLES)
def update_emergency_status(emergency_id):
    """Update emergency request status"""
    data = parse_body(UpdateEmergencyStatus)
    emergency = lifecycle.update_status(emergency_id, data.status, data.notes)
    return emergency.to_dict(), 200


@sos_bp.route('/<emergency_id>/assign', methods=['POST'])
@require_role(UserRole.ADMIN, UserRole.EMERGENCY_CENTER)
def assign_emergency(emergency_id):
    """Assign a pending emergency to a hospital"""
    data = parse_body(AssignHospital)
    emergency = lifecycle.assign_to_hospital(emergency_id, data.hospital_id, current_user.id)
    return emergency.to_dict(), 200
