from flask import Blueprint, request
from flask_jwt_extended import current_user

from ..auth import require_role
from ..services import notifications

notifications_bp = Blueprint('notifications', __name__, url_prefix='/notifications')


@notifications_bp.route('', methods=['GET'])
@require_role()
def list_notifications():
    """Get the user's notifications"""
    unread_only = request.args.get('unread', '').lower() == 'true'
    return [n.to_dict() for n in notifications.list_for_user(current_user.id, unread_only)], 200


@notifications_bp.route('/<notification_id>/read', methods=['PATCH'])
@require_role()
def mark_read(notification_id):
    """Mark one notification as read"""
    return notifications.mark_as_read(notification_id, current_user.id).to_dict(), 200


@notifications_bp.route('/read-all', methods=['PATCH'])
@require_role()
def mark_all_read():
    """Mark all notifications as read"""
    return {'updated': notifications.mark_all_as_read(current_user.id)}, 200
