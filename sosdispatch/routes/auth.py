import logging

from flask import Blueprint, request
from flask_jwt_extended import current_user

from .. import auth
from ..auth import require_role
from ..errors import ValidationError
from ..schemas import LoginUser, OAuthLogin, RefreshToken, RegisterUser, parse_body

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


@auth_bp.route('/register', methods=['POST'])
def register():
    """Create an account and sign it in"""
    data = parse_body(RegisterUser)
    logger.info(f"Register endpoint hit for email: {data.email}, role: {data.role}")
    user = auth.register_user(data)
    return {'message': 'Registration successful', 'user': user.to_dict(), **auth.issue_tokens(user)}, 201


@auth_bp.route('/login', methods=['POST'])
def login():
    """User login - returns JWT tokens"""
    data = parse_body(LoginUser)
    user = auth.authenticate(data.email, data.password)
    logger.info(f"Login successful for user: {user.id}, role: {user.role}")
    return {'message': 'Login successful', 'user': user.to_dict(), **auth.issue_tokens(user)}, 200


@auth_bp.route('/refresh', methods=['POST'])
def refresh():
    """Exchange a refresh token for a new token pair"""
    data = parse_body(RefreshToken)
    return {'message': 'Token refreshed successfully', **auth.refresh(data.refresh_token)}, 200


@auth_bp.route('/verify-token', methods=['POST'])
@require_role()
def verify_token():
    """Check that the bearer token is still valid"""
    return {'message': 'Token is valid', 'user': current_user.to_dict()}, 200


@auth_bp.route('/me', methods=['GET'])
@require_role()
def me():
    """Get the signed-in user"""
    return {'message': 'User profile retrieved', 'user': current_user.to_dict()}, 200


@auth_bp.route('/login/oauth', methods=['POST'])
def oauth_login():
    """Get the provider authorization URL"""
    data = parse_body(OAuthLogin)
    url = auth.oauth_authorize_url(data.provider)
    logger.info(f"OAuth URL generated for provider: {data.provider}")
    return {'url': url}, 200


@auth_bp.route('/callback', methods=['GET'])
def oauth_callback():
    """Finish an OAuth login"""
    provider = request.args.get('provider')
    code = request.args.get('code')
    access_token = request.args.get('access_token')
    if not provider:
        raise ValidationError("Missing provider in callback")
    if not code and not access_token:
        raise ValidationError("Missing code or access_token in callback")

    if code:
        access_token = auth.exchange_code(code)
    tokens = auth.login_with_provider_token(access_token)
    logger.info(f"OAuth callback successful for provider: {provider}")
    return {'message': 'OAuth callback successful', **tokens}, 200
