import logging

from flask import Blueprint

from ..auth import require_role
from ..enums import UserRole
from ..schemas import AssignCase, CancelCase, parse_body
from ..services import dashboard, lifecycle

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/dashboard')

DASHBOARD_ROLES = (UserRole.ADMIN, UserRole.EMERGENCY_CENTER)


@dashboard_bp.route('/stats', methods=['GET'])
@require_role(*DASHBOARD_ROLES)
def stats():
    """Get dashboard statistics"""
    return dashboard.get_stats(), 200


@dashboard_bp.route('/active-emergencies', methods=['GET'])
@require_role(*DASHBOARD_ROLES)
def active_emergencies():
    """Get open emergencies for the dashboard"""
    return [e.to_dict() for e in dashboard.get_active_emergencies()], 200


@dashboard_bp.route('/team-locations', methods=['GET'])
@require_role(*DASHBOARD_ROLES)
def team_locations():
    """Get rescue team locations"""
    return dashboard.get_team_locations(), 200


@dashboard_bp.route('/hospital-capacities', methods=['GET'])
@require_role(*DASHBOARD_ROLES)
def hospital_capacities():
    """Get bed capacity of every hospital"""
    return dashboard.get_hospital_capacities(), 200


@dashboard_bp.route('/assign-case', methods=['POST'])
@require_role(*DASHBOARD_ROLES)
def assign_case():
    """Assign a case to a hospital or rescue team"""
    data = parse_body(AssignCase)
    emergency = lifecycle.assign_case(data.case_id, data.assigned_to_id, data.notes)
    return emergency.to_dict(), 200


@dashboard_bp.route('/cancel-case', methods=['POST'])
@require_role(*DASHBOARD_ROLES)
def cancel_case():
    """Cancel an open case"""
    data = parse_body(CancelCase)
    emergency = lifecycle.cancel_case(data.case_id, data.reason)
    return emergency.to_dict(), 200
