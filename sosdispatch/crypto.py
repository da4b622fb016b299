# ==================== ENCRYPTION ====================

import json
import logging

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class PHIEncryption:
    """Encryption for patient-supplied free text stored with emergency requests"""

    def __init__(self, key=None):
        self.cipher = Fernet(key) if key else None

    def init_app(self, app):
        self.cipher = Fernet(app.config['PHI_ENCRYPTION_KEY'])

    def encrypt_phi(self, data):
        """Encrypt sensitive patient data"""
        if data is None:
            return None
        if isinstance(data, dict):
            data = json.dumps(data)
        return self.cipher.encrypt(data.encode()).decode()

    def decrypt_phi(self, encrypted_data):
        """Decrypt sensitive patient data"""
        if encrypted_data is None:
            return None
        try:
            decrypted = self.cipher.decrypt(encrypted_data.encode())
            return decrypted.decode()
        except InvalidToken:
            logger.error("Decryption failed: invalid token or key")
            return None


phi_encryption = PHIEncryption()
