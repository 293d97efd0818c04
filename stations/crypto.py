"""
Router credential encryption.

Station router passwords are stored as Fernet tokens. The Fernet key is
derived from ``settings.ROUTER_ENCRYPTION_KEY`` so any string secret works.
"""

import base64
import hashlib
import logging

from cryptography.fernet import Fernet, InvalidToken
from django.conf import settings

logger = logging.getLogger(__name__)

_TOKEN_PREFIX = "gAAAAA"


def _cipher() -> Fernet:
    secret = getattr(settings, "ROUTER_ENCRYPTION_KEY", "") or settings.SECRET_KEY
    digest = hashlib.sha256(secret.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def is_encrypted(value: str) -> bool:
    """True when ``value`` is a token produced by :func:`encrypt_password`"""
    if not value or not value.startswith(_TOKEN_PREFIX):
        return False
    try:
        _cipher().decrypt(value.encode())
        return True
    except InvalidToken:
        return False


def encrypt_password(value: str) -> str:
    if not value or is_encrypted(value):
        return value
    return _cipher().encrypt(value.encode()).decode()


def decrypt_password(token: str) -> str:
    """Decrypt a stored router password; plaintext legacy values pass through."""
    if not token:
        return token
    try:
        return _cipher().decrypt(token.encode()).decode()
    except InvalidToken:
        logger.warning("Router password is not a valid token, assuming plaintext")
        return token
