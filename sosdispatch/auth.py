# ==================== AUTHENTICATION ====================

import logging
from functools import wraps
from urllib.parse import urlencode

import requests
from flask import current_app
from flask_jwt_extended import (
    create_access_token,
    create_refresh_token,
    current_user,
    decode_token,
    jwt_required,
)
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from werkzeug.security import check_password_hash, generate_password_hash

from .enums import UserRole, UserStatus
from .errors import ConflictError, ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from .extensions import db, jwt
from .models import Organization, User

logger = logging.getLogger(__name__)


# ==================== JWT CALLBACKS ====================

def _auth_error(message):
    return {'message': message, 'error': 'Unauthorized'}, 401


@jwt.user_lookup_loader
def load_user(jwt_header, jwt_payload):
    user = db.session.get(User, jwt_payload['sub'])
    if user is None or user.status != UserStatus.ACTIVE:
        return None
    return user


@jwt.user_lookup_error_loader
def user_lookup_failed(jwt_header, jwt_payload):
    logger.warning(f"Token rejected for missing or inactive user {jwt_payload.get('sub')}")
    return _auth_error("User is inactive or not found")


@jwt.unauthorized_loader
def missing_token(reason):
    return _auth_error(reason)


@jwt.invalid_token_loader
def invalid_token(reason):
    return _auth_error(f"Invalid token: {reason}")


@jwt.expired_token_loader
def expired_token(jwt_header, jwt_payload):
    return _auth_error("Token has expired")


# ==================== DECORATORS ====================

def require_role(*allowed_roles):
    """Decorator to check user role; no roles means any authenticated user"""
    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            if allowed_roles and current_user.role not in allowed_roles:
                logger.warning(f"User {current_user.id} with role {current_user.role} denied {fn.__name__}")
                raise ForbiddenError("Insufficient permissions")
            return fn(*args, **kwargs)
        return wrapper
    return decorator


# ==================== TOKENS ====================

def issue_tokens(user):
    expires = current_app.config['JWT_ACCESS_TOKEN_EXPIRES']
    claims = {'role': user.role, 'organizationId': user.organization_id}
    return {
        'access_token': create_access_token(identity=user.id, additional_claims=claims),
        'refresh_token': create_refresh_token(identity=user.id),
        'token_type': 'Bearer',
        'expires_in': int(expires.total_seconds()),
    }


def register_user(data):
    if User.query.filter_by(email=data.email).first():
        raise ConflictError("Email already in use")
    if data.organization_id and not db.session.get(Organization, data.organization_id):
        raise NotFoundError("Organization not found")
    if data.role in (UserRole.HOSPITAL, UserRole.RESCUE_TEAM) and not data.organization_id:
        raise ValidationError(f"{data.role} users must belong to an organization")

    user = User(
        email=data.email,
        password_hash=generate_password_hash(data.password),
        first_name=data.first_name,
        last_name=data.last_name,
        phone=data.phone,
        role=data.role.value,
        organization_id=data.organization_id,
    )
    db.session.add(user)
    db.session.commit()
    logger.info(f"Registration successful for user: {user.id}, role: {user.role}")
    return user


def authenticate(email, password):
    user = User.query.filter_by(email=email.strip().lower()).first()
    if not user or not user.password_hash or not check_password_hash(user.password_hash, password):
        raise UnauthorizedError("Invalid email or password")
    if user.status != UserStatus.ACTIVE:
        raise UnauthorizedError("User is inactive")
    return user


def refresh(refresh_token):
    try:
        claims = decode_token(refresh_token)
    except (PyJWTError, JWTExtendedException) as e:
        raise UnauthorizedError(f"Cannot refresh token: {str(e)}") from None
    if claims.get('type') != 'refresh':
        raise UnauthorizedError("Cannot refresh token: not a refresh token")
    user = load_user(None, claims)
    if user is None:
        raise UnauthorizedError("User is inactive or not found")
    return issue_tokens(user)


# ==================== OAUTH ====================

def oauth_authorize_url(provider):
    """Authorize URL on the external identity provider"""
    config = current_app.config
    if provider not in config['OAUTH_PROVIDERS']:
        raise ValidationError(f"Unsupported provider: {provider}")
    if not config['OAUTH_PROVIDER_URL']:
        raise ValidationError("OAuth login is not configured")
    query = urlencode({'provider': provider, 'redirect_to': config['OAUTH_REDIRECT_URL']})
    return f"{config['OAUTH_PROVIDER_URL']}/auth/v1/authorize?{query}"


def _provider_headers(token=None):
    headers = {'apikey': current_app.config['OAUTH_PROVIDER_API_KEY'], 'Content-Type': 'application/json'}
    if token:
        headers['Authorization'] = f"Bearer {token}"
    return headers


def exchange_code(code):
    url = f"{current_app.config['OAUTH_PROVIDER_URL']}/auth/v1/token?grant_type=pkce"
    try:
        response = requests.post(url, json={'auth_code': code}, headers=_provider_headers(), timeout=10)
        response.raise_for_status()
    except requests.RequestException as e:
        raise UnauthorizedError(f"Cannot authenticate with provider: {str(e)}") from None
    return response.json()['access_token']


def login_with_provider_token(access_token):
    """Resolve the provider's user and issue our own tokens for them"""
    url = f"{current_app.config['OAUTH_PROVIDER_URL']}/auth/v1/user"
    try:
        response = requests.get(url, headers=_provider_headers(access_token), timeout=10)
        response.raise_for_status()
    except requests.RequestException as e:
        raise UnauthorizedError(f"Cannot authenticate with provider: {str(e)}") from None

    profile = response.json()
    email = (profile.get('email') or '').strip().lower()
    if not email:
        raise UnauthorizedError("Provider account has no email address")

    user = User.query.filter_by(email=email).first()
    if user is None:
        names = (profile.get('user_metadata') or {}).get('full_name', '').split(' ', 1)
        user = User(
            email=email,
            first_name=names[0],
            last_name=names[1] if len(names) > 1 else '',
            role=UserRole.PATIENT.value,
        )
        db.session.add(user)
        db.session.commit()
        logger.info(f"Created patient account {user.id} from provider login")
    elif user.status != UserStatus.ACTIVE:
        raise UnauthorizedError("User is inactive")
    return issue_tokens(user)
