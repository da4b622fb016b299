from flask import Blueprint, current_app, request

from ..auth import require_role
from ..enums import STAFF_ROLES, OrganizationType, UserRole
from ..schemas import CreateOrganization, RescueTeamStatusUpdate, UpdateOrganization, parse_body
from ..services import organizations
from .hospitals import ensure_member, query_float

rescue_teams_bp = Blueprint('rescue_teams', __name__, url_prefix='/rescue-teams')


@rescue_teams_bp.route('', methods=['POST'])
@require_role(UserRole.ADMIN, UserRole.RESCUE_TEAM)
def create_rescue_team():
    """Register a rescue team"""
    data = parse_body(CreateOrganization)
    return organizations.create_organization(OrganizationType.RESCUE_TEAM, data).to_dict(), 201


@rescue_teams_bp.route('', methods=['GET'])
@require_role(*STAFF_ROLES)
def list_rescue_teams():
    """Get all rescue teams"""
    teams = organizations.list_organizations(OrganizationType.RESCUE_TEAM, request.args.get('search'))
    return [t.to_dict() for t in teams], 200


@rescue_teams_bp.route('/available', methods=['GET'])
@require_role(UserRole.ADMIN, UserRole.EMERGENCY_CENTER)
def available_rescue_teams():
    """Find available rescue teams near a point"""
    teams = organizations.available_rescue_teams(
        query_float('latitude'),
        query_float('longitude'),
        query_float('radius', current_app.config['DEFAULT_SEARCH_RADIUS_KM']),
    )
    return teams, 200


@rescue_teams_bp.route('/<team_id>', methods=['GET'])
@require_role(UserRole.ADMIN, UserRole.EMERGENCY_CENTER, UserRole.RESCUE_TEAM)
def get_rescue_team(team_id):
    """Get rescue team by ID"""
    team = organizations.get_organization(team_id, OrganizationType.RESCUE_TEAM)
    return team.to_dict(include_users=True), 200


@rescue_teams_bp.route('/<team_id>', methods=['PUT'])
@require_role(UserRole.ADMIN, UserRole.RESCUE_TEAM)
def update_rescue_team(team_id):
    """Update rescue team details"""
    ensure_member(team_id)
    data = parse_body(UpdateOrganization)
    return organizations.update_organization(team_id, OrganizationType.RESCUE_TEAM, data).to_dict(), 200


@rescue_teams_bp.route('/<team_id>/status', methods=['PUT'])
@require_role(UserRole.RESCUE_TEAM)
def update_rescue_team_status(team_id):
    """Update rescue team status"""
    ensure_member(team_id)
    data = parse_body(RescueTeamStatusUpdate)
    return organizations.update_rescue_team_status(team_id, data).to_dict(), 200
