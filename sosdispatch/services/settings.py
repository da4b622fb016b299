import copy
import logging

from ..errors import ValidationError
from ..extensions import db
from ..models import UserSettings

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = {
    'notification': {
        'emergencyAlerts': True,
        'statusUpdates': True,
        'assignmentAlerts': True,
        'sound': True,
        'email': False,
    },
    'system': {
        'language': 'th',
        'theme': 'light',
        'timezone': 'Asia/Bangkok',
        'autoRefreshSeconds': 30,
    },
    'communication': {
        'preferredChannel': 'app',
        'radioChannel': None,
    },
    'profile': {
        'displayName': None,
        'showPhone': False,
    },
    'emergency': {
        'defaultSearchRadiusKm': 10,
        'autoAcceptCritical': False,
    },
}

CATEGORIES = tuple(DEFAULT_SETTINGS)


def category_column(category):
    if category not in CATEGORIES:
        raise ValidationError(f"Unknown settings category: {category}. Valid categories are: {', '.join(CATEGORIES)}")
    return f"{category}_settings"


def get_user_settings(user_id):
    """Load a user's settings row, creating it with defaults on first access"""
    settings = db.session.get(UserSettings, user_id)
    if settings is None:
        settings = UserSettings(user_id=user_id)
        for category in CATEGORIES:
            setattr(settings, category_column(category), copy.deepcopy(DEFAULT_SETTINGS[category]))
        db.session.add(settings)
        db.session.commit()
        logger.info(f"Created default settings for user {user_id}")
    return settings


def update_category(user_id, category, payload):
    column = category_column(category)
    if not isinstance(payload, dict):
        raise ValidationError("Settings payload must be an object")
    settings = get_user_settings(user_id)
    setattr(settings, column, {**(getattr(settings, column) or {}), **payload})
    db.session.commit()
    return getattr(settings, column)


def update_user_settings(user_id, data):
    """Merge every category present in ``data`` into the stored settings"""
    settings = get_user_settings(user_id)
    for category in CATEGORIES:
        payload = getattr(data, category_column(category))
        if payload is not None:
            column = category_column(category)
            setattr(settings, column, {**(getattr(settings, column) or {}), **payload})
    db.session.commit()
    return settings


def reset_to_default(user_id):
    settings = get_user_settings(user_id)
    for category in CATEGORIES:
        setattr(settings, category_column(category), copy.deepcopy(DEFAULT_SETTINGS[category]))
    db.session.commit()
    logger.info(f"Settings reset to default for user {user_id}")
    return settings
