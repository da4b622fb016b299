# ==================== CONFIGURATION ====================

import os
from datetime import timedelta

from cryptography.fernet import Fernet
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Application configuration"""
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///sos_dispatch.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {'pool_pre_ping': True}

    JWT_SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=1)
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(days=7)

    # PHI encryption (free-text emergency descriptions)
    PHI_ENCRYPTION_KEY = os.getenv('PHI_ENCRYPTION_KEY', Fernet.generate_key())

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Frontend origin allowed by CORS and Socket.IO
    CLIENT_URL = os.getenv('CLIENT_URL', 'http://localhost:3000')

    # Realtime
    SOCKETIO_NAMESPACE = '/notifications'

    # External identity provider (OAuth login)
    OAUTH_PROVIDER_URL = os.getenv('OAUTH_PROVIDER_URL', '')
    OAUTH_PROVIDER_API_KEY = os.getenv('OAUTH_PROVIDER_API_KEY', '')
    OAUTH_REDIRECT_URL = os.getenv('OAUTH_REDIRECT_URL', 'http://localhost:3000/auth/callback')
    OAUTH_PROVIDERS = ('google', 'facebook', 'apple')

    DEFAULT_SEARCH_RADIUS_KM = float(os.getenv('DEFAULT_SEARCH_RADIUS_KM', '10'))

    PORT = int(os.getenv('PORT', '3001'))


class TestConfig(Config):
    """In-memory database and fixed keys for the test suite"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET_KEY = 'test-secret-key-with-enough-length-for-hs256'
    PHI_ENCRYPTION_KEY = Fernet.generate_key()
    LOG_LEVEL = 'DEBUG'
    OAUTH_PROVIDER_URL = 'https://auth.example.test'
    OAUTH_PROVIDER_API_KEY = 'test-api-key'
