from .auth import auth_bp
from .dashboard import dashboard_bp
from .hospitals import hospitals_bp
from .notifications import notifications_bp
from .rescue_teams import rescue_teams_bp
from .settings import settings_bp
from .sos import sos_bp

BLUEPRINTS = (auth_bp, sos_bp, hospitals_bp, rescue_teams_bp, dashboard_bp, notifications_bp, settings_bp)


def register_blueprints(app, url_prefix='/api'):
    for blueprint in BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=f"{url_prefix}{blueprint.url_prefix}")
