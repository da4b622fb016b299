# ==================== WEBSOCKET EVENTS ====================

import logging
from datetime import datetime

from flask import request
from flask_jwt_extended import decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from flask_socketio import ConnectionRefusedError, emit, join_room
from jwt.exceptions import PyJWTError

from .config import Config
from .enums import UserStatus
from .extensions import db, socketio
from .models import User

logger = logging.getLogger(__name__)

NAMESPACE = Config.SOCKETIO_NAMESPACE

EMERGENCY = 'emergency'
STATUS_UPDATE = 'status-update'
NOTIFICATION = 'notification'
HOSPITAL_CREATED = 'hospital-created'
STATS_UPDATED = 'stats-updated'


def user_room(user_id):
    return f"user_{user_id}"


class Broadcaster:
    """Fire-and-forget publisher of named events to connected clients.

    Events go to every client on the namespace; only ``notification`` is
    addressed to a single user's room. Emission failures are logged and
    never raised to the caller.
    """

    def __init__(self, server, namespace=NAMESPACE):
        self.server = server
        self.namespace = namespace

    def _emit(self, event, payload, room=None):
        try:
            self.server.emit(event, payload, namespace=self.namespace, to=room)
        except Exception as e:
            logger.warning(f"Failed to broadcast {event}: {str(e)}")

    def broadcast_emergency(self, payload):
        self._emit(EMERGENCY, payload)

    def broadcast_status_update(self, emergency_id, status, **extra):
        self._emit(STATUS_UPDATE, {
            'emergencyId': emergency_id,
            'status': str(status),
            'timestamp': datetime.utcnow().isoformat(),
            **extra,
        })

    def broadcast_hospital_update(self, hospital_id, available_beds):
        # capacity changes feed the dashboard's availableHospitalBeds figure
        self._emit(STATS_UPDATED, {'hospitalId': hospital_id, 'availableBeds': available_beds})

    def broadcast_hospital_created(self, hospital_id, name):
        self._emit(HOSPITAL_CREATED, {'id': hospital_id, 'name': name})

    def broadcast_stats_updated(self, **payload):
        self._emit(STATS_UPDATED, {'timestamp': datetime.utcnow().isoformat(), **payload})

    def send_notification(self, user_id, payload):
        self._emit(NOTIFICATION, payload, room=user_room(user_id))


broadcaster = Broadcaster(socketio)


def _authenticate(auth):
    token = (auth or {}).get('token') or request.args.get('token')
    if not token:
        return None
    try:
        claims = decode_token(token)
    except (PyJWTError, JWTExtendedException) as e:
        logger.warning(f"Socket token rejected: {str(e)}")
        return None
    if claims.get('type') != 'access':
        logger.warning("Socket token rejected: not an access token")
        return None
    user = db.session.get(User, claims.get('sub'))
    if not user or user.status != UserStatus.ACTIVE:
        return None
    return user


@socketio.on('connect', namespace=NAMESPACE)
def handle_connect(auth=None):
    """WebSocket connection handler"""
    user = _authenticate(auth)
    if user is None:
        raise ConnectionRefusedError('Invalid token')
    join_room(user_room(user.id))
    logger.info(f"Client connected: {request.sid} (user {user.id}, role {user.role})")
    emit('connection_response', {'data': 'Connected to SOS Dispatch', 'userId': user.id})


@socketio.on('disconnect', namespace=NAMESPACE)
def handle_disconnect(*args):
    """Handle WebSocket disconnection"""
    logger.info(f"Client disconnected: {request.sid}")
