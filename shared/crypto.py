"""
Cryptography utilities for password storage and bearer tokens.

Bearer tokens are Fernet tokens: signed, timestamped and opaque to clients.
The signing key is derived from the configured secret with PBKDF2.
"""

from cryptography.fernet import Fernet, InvalidToken
from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
import base64
import json
import os
from typing import Optional

PASSWORD_ITERATIONS = 200000
PASSWORD_SCHEME = "pbkdf2_sha256"
TOKEN_SALT = b'cadenza-token-salt-v1'


def _pbkdf2(salt: bytes, iterations: int) -> PBKDF2HMAC:
    return PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )


def hash_password(password: str) -> str:
    """
    Hash a password with a random salt.

    Returns:
        String of the form 'pbkdf2_sha256$iterations$salt$hash'
    """
    salt = os.urandom(16)
    derived = _pbkdf2(salt, PASSWORD_ITERATIONS).derive(password.encode())
    return "$".join([
        PASSWORD_SCHEME,
        str(PASSWORD_ITERATIONS),
        base64.urlsafe_b64encode(salt).decode(),
        base64.urlsafe_b64encode(derived).decode(),
    ])


def verify_password(password: str, stored: str) -> bool:
    """Check a password against a hash produced by hash_password."""
    try:
        scheme, iterations, salt_b64, hash_b64 = stored.split("$")
    except (ValueError, AttributeError):
        return False
    if scheme != PASSWORD_SCHEME:
        return False
    salt = base64.urlsafe_b64decode(salt_b64.encode())
    expected = base64.urlsafe_b64decode(hash_b64.encode())
    try:
        _pbkdf2(salt, int(iterations)).verify(password.encode(), expected)
        return True
    except InvalidKey:
        return False


class TokenManager:
    """Issues and validates signed bearer tokens carrying a user id."""

    def __init__(self, secret: str, ttl_seconds: int):
        self.ttl_seconds = ttl_seconds
        self._fernet = Fernet(self.generate_key_from_secret(secret))

    @staticmethod
    def generate_key_from_secret(secret: str, salt: bytes = TOKEN_SALT) -> bytes:
        """
        Derive a Fernet key from the configured secret using PBKDF2.

        Args:
            secret: Server secret
            salt: Salt bytes for key derivation

        Returns:
            URL-safe base64 encoded 32-byte key
        """
        kdf = _pbkdf2(salt, 100000)
        return base64.urlsafe_b64encode(kdf.derive(secret.encode()))

    def issue(self, user_id: str) -> str:
        payload = json.dumps({"uid": user_id}).encode()
        return self._fernet.encrypt(payload).decode()

    def verify(self, token: str) -> Optional[str]:
        """
        Validate a token.

        Returns:
            The user id, or None if the token is malformed, tampered or expired
        """
        if not token:
            return None
        try:
            raw = self._fernet.decrypt(token.encode(), ttl=self.ttl_seconds)
            return json.loads(raw.decode()).get("uid")
        except (InvalidToken, ValueError):
            return None
