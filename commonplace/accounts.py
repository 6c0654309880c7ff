"""User registration and the password reset flow."""

import logging
import re
import sqlite3

from .config import settings
from .database import Database
from .mailer import EmailResult, send_password_reset_email
from .models import FolderType, User
from .passwords import (
    consume_password_reset_token,
    create_password_reset_token,
    hash_password,
    validate_password_strength,
)

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DEFAULT_FOLDERS = ("Fragments", "Ideas", "Tasks", "Journal")
RESET_REQUESTED_MESSAGE = (
    "If you have an account with that email, a reset link has been sent."
)


def register_user(
    db: Database, email: str, password: str, name: str | None = None
) -> User:
    """Create an account with the default folder set.

    Raises:
        ValueError: on an invalid email, a weak password or a taken email
    """
    email = email.strip()
    if not email or not password:
        raise ValueError("Email and password are required")
    if not EMAIL_PATTERN.match(email):
        raise ValueError("Invalid email format")

    valid, errors = validate_password_strength(password)
    if not valid:
        raise ValueError(", ".join(errors))

    if db.find_user_by_email(email):
        raise ValueError("An account with this email already exists")

    try:
        user = db.create_user(email, hash_password(password), name=name or None)
    except sqlite3.IntegrityError:
        raise ValueError("An account with this email already exists") from None

    for folder_name in DEFAULT_FOLDERS:
        db.create_folder(user.id, folder_name, FolderType.FRAGMENTS)

    logger.info(f"Registered user {user.id}")
    return user


def request_password_reset(
    db: Database, email: str, app_url: str | None = None
) -> EmailResult | None:
    """Send a reset link if the email belongs to a user.

    Unknown addresses are ignored so callers can always show the same
    message.

    Returns:
        Email result, or None when no user matched
    """
    email = email.strip().lower()
    if not email:
        raise ValueError("Email is required")

    user = db.find_user_by_email(email)
    if user is None:
        logger.info("Password reset requested for unknown email")
        return None

    token = create_password_reset_token(db, user.id)
    base_url = (app_url or settings.app_url).rstrip("/")
    reset_url = f"{base_url}/auth/reset-password?token={token}"
    return send_password_reset_email(user.email, reset_url, name=user.name)


def reset_password(db: Database, token: str, password: str) -> None:
    """Set a new password using a reset token.

    Raises:
        ValueError: on a weak password or an invalid or expired token
    """
    if not token or not password:
        raise ValueError("Token and password are required")

    valid, errors = validate_password_strength(password)
    if not valid:
        raise ValueError(", ".join(errors))

    record = consume_password_reset_token(db, token)
    if record is None:
        raise ValueError("Invalid or expired reset token")

    db.update_user_password(record.user_id, hash_password(password))
    logger.info(f"Password reset for user {record.user_id}")
