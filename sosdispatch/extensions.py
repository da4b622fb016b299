# ==================== EXTENSIONS ====================

from contextlib import contextmanager

from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
jwt = JWTManager()
socketio = SocketIO()
cors = CORS()


@contextmanager
def atomic():
    """Commit the session when the block succeeds, roll back everything otherwise"""
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
