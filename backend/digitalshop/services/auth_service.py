# Overview: Password hashing, login and self-service account operations.

"""
Authentication Service

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, 12 in production)
- New passwords: minimum 8 characters with upper, lower and digit
- Login errors never reveal whether the email exists
- Tokens are stateless JWTs (see token_service.py); logout is client-side
"""

import logging
import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..permissions import ROLES
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError

logger = logging.getLogger(__name__)


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


class AuthenticationError(Exception):
    """Raised on failed login (401)."""
    status = 401


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Hash password using bcrypt. Strength is the caller's concern."""
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never match."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def validate_role(role: str) -> str:
    role = (role or "").strip().upper()
    if role not in ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(ROLES)}")
    return role


def create_user(email: str, password: str, full_name: str, role: str = "STAFF") -> User:
    """
    Create a user with a bcrypt-hashed password.

    Raises:
        ValidationError: missing fields, weak password, bad role
        ConflictError: email already registered
    """
    email = normalize_email(email)
    full_name = (full_name or "").strip()
    if not email or not full_name:
        raise ValidationError("Email, password and full name are required")
    if "@" not in email:
        raise ValidationError("Invalid email address")

    validate_password_strength(password)
    role = validate_role(role or "STAFF")

    existing = db.session.query(User).filter(User.email == email).first()
    if existing:
        raise ConflictError("Email already registered")

    user = User(
        email=email,
        password_hash=hash_password(password),
        full_name=full_name,
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    logger.info("User registered: id=%s email=%s role=%s", user.id, user.email, user.role)
    return user


def authenticate(email: str, password: str) -> User:
    """
    Verify credentials and stamp last_login_at.

    Raises AuthenticationError with the message to show the client.
    """
    email = normalize_email(email)
    user = db.session.query(User).filter(User.email == email).first()

    if not user or not verify_password(password, user.password_hash):
        logger.warning("Failed login attempt for %s", email)
        raise AuthenticationError("Invalid email or password")

    if not user.is_active:
        logger.warning("Login attempt for inactive user %s", user.id)
        raise AuthenticationError("Account is inactive. Please contact administrator.")

    user.last_login_at = utcnow()
    db.session.commit()
    logger.info("User logged in: id=%s role=%s", user.id, user.role)
    return user


def change_password(user: User, current_password: str, new_password: str) -> None:
    if not current_password or not new_password:
        raise ValidationError("Current password and new password are required")
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")

    validate_password_strength(new_password)
    user.password_hash = hash_password(new_password)
    db.session.commit()
    logger.info("Password changed for user %s", user.id)
