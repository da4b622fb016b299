from flask import Blueprint, request
from flask_jwt_extended import current_user

from ..auth import require_role
from ..schemas import UpdateSettings, parse_body
from ..services import settings

settings_bp = Blueprint('settings', __name__, url_prefix='/settings')


@settings_bp.route('/me', methods=['GET'])
@require_role()
def get_my_settings():
    """Get the user's settings"""
    return settings.get_user_settings(current_user.id).to_dict(), 200


@settings_bp.route('/me', methods=['PUT'])
@require_role()
def update_my_settings():
    """Update the user's settings"""
    data = parse_body(UpdateSettings)
    return settings.update_user_settings(current_user.id, data).to_dict(), 200


@settings_bp.route('/me/<category>', methods=['GET'])
@require_role()
def get_category(category):
    """Get one settings category"""
    stored = settings.get_user_settings(current_user.id)
    return getattr(stored, settings.category_column(category)) or {}, 200


@settings_bp.route('/me/<category>', methods=['PATCH'])
@require_role()
def update_category(category):
    """Update one settings category"""
    return settings.update_category(current_user.id, category, request.get_json(silent=True)), 200


@settings_bp.route('/reset', methods=['POST'])
@require_role()
def reset():
    """Reset settings to defaults"""
    return settings.reset_to_default(current_user.id).to_dict(), 200
