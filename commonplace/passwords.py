"""Password hashing, strength checks and single-use reset tokens."""

import hashlib
import logging
import re
import secrets

import bcrypt
from whenever import TimeDelta

from .config import settings
from .database import Database
from .models import PasswordResetToken

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 10
# bcrypt only looks at the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(BCRYPT_ROUNDS)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode())
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def validate_password_strength(password: str) -> tuple[bool, list[str]]:
    """Check the minimum password rules.

    Returns:
        Tuple of (valid, list of human-readable problems)
    """
    errors = []
    if len(password) < 8:
        errors.append("Password must be at least 8 characters")
    if not re.search(r"[a-zA-Z]", password):
        errors.append("Password must contain at least one letter")
    if not re.search(r"[0-9]", password):
        errors.append("Password must contain at least one number")
    return not errors, errors


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def create_password_reset_token(db: Database, user_id: str) -> str:
    """Issue a reset token for a user, invalidating any earlier ones.

    Only the token's hash is stored; the returned plaintext token goes into
    the reset link.
    """
    token = secrets.token_hex(32)
    expires_at = db.now_func() + TimeDelta(minutes=settings.reset_token_ttl_minutes)
    db.replace_reset_token(user_id, hash_reset_token(token), expires_at)
    return token


def consume_password_reset_token(db: Database, token: str) -> PasswordResetToken | None:
    """Redeem a reset token. Tokens work once; expired ones are discarded."""
    token_hash = hash_reset_token(token)
    record = db.get_reset_token(token_hash)
    if record is None:
        return None

    db.delete_reset_token(token_hash)
    if record.expires_at < db.now_func():
        logger.info(f"Rejected expired reset token for user {record.user_id}")
        return None

    return record
