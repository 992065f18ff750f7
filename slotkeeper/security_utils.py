"""
Security utilities: secret encryption at rest, key hashing and comparisons
"""

import base64
import hashlib
import logging
import secrets
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from .config import SECRET_KEY

logger = logging.getLogger(__name__)


# ============================================================================
# ENCRYPTION AT REST
# ============================================================================


def get_fernet_key(secret: Optional[str] = None) -> bytes:
    """Derive a Fernet key from the site-wide SECRET_KEY"""
    key = hashlib.sha256((secret or SECRET_KEY).encode()).digest()
    return base64.urlsafe_b64encode(key)


def get_cipher(secret: Optional[str] = None) -> Fernet:
    return Fernet(get_fernet_key(secret))


def encrypt_secret(plaintext: str, cipher: Optional[Fernet] = None) -> str:
    """Encrypt a secret (OAuth token, client secret) for storage"""
    cipher = cipher or get_cipher()
    return cipher.encrypt(plaintext.encode()).decode()


def decrypt_secret(encrypted: Optional[str], cipher: Optional[Fernet] = None) -> Optional[str]:
    """
    Decrypt a stored secret.

    Returns None when there is nothing stored or the value cannot be decrypted
    (for example after SECRET_KEY rotation). Callers treat None as "not available".
    """
    if not encrypted:
        return None
    cipher = cipher or get_cipher()
    try:
        return cipher.decrypt(encrypted.encode()).decode()
    except (InvalidToken, ValueError):
        logger.error("❌ Stored secret could not be decrypted - re-authorization needed")
        return None


# ============================================================================
# RATE LIMITING HELPERS
# ============================================================================


def generate_rate_limit_key(identifier: str, endpoint: str) -> str:
    """
    Generate a consistent rate limit key

    Args:
        identifier: IP address or other identifier
        endpoint: API endpoint or action name

    Returns:
        Rate limit key
    """
    # Hash the identifier for privacy
    hashed_id = hashlib.sha256(identifier.encode()).hexdigest()[:16]
    return f"rate_limit:{endpoint}:{hashed_id}"


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two strings in constant time to prevent timing attacks"""
    return secrets.compare_digest(a.encode(), b.encode())


def mask_sensitive_data(data: str, visible_chars: int = 4) -> str:
    """
    Mask sensitive data for logging/display

    Args:
        data: Sensitive data to mask
        visible_chars: Number of characters to show at the end

    Returns:
        Masked string
    """
    if len(data) <= visible_chars:
        return "*" * len(data)

    return "*" * (len(data) - visible_chars) + data[-visible_chars:]
