# ==================== INITIALIZATION ====================

import logging

from flask import Flask

from .config import Config
from .crypto import phi_encryption
from .errors import register_error_handlers
from .extensions import cors, db, jwt, socketio

logger = logging.getLogger(__name__)


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Logging setup
    logging.basicConfig(level=getattr(logging, app.config['LOG_LEVEL']))

    cors.init_app(app, origins=[app.config['CLIENT_URL']], supports_credentials=True)
    db.init_app(app)
    jwt.init_app(app)
    socketio.init_app(app, cors_allowed_origins=[app.config['CLIENT_URL']])
    phi_encryption.init_app(app)

    # importing these registers the JWT callbacks and socket handlers
    from . import auth, realtime  # noqa: F401
    from .routes import register_blueprints

    register_error_handlers(app)
    register_blueprints(app)

    with app.app_context():
        db.create_all()
        logger.info("Database tables created")

    return app
